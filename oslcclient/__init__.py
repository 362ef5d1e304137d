##
## © Copyright 2021- IBM Inc. All rights reserved
# SPDX-License-Identifier: MIT
##


from .exceptions import *
from .namespaces import *
from .resource import *
from .discovery import *
from .server import *
from .httpops import *
from .client import *
from .ldm import *
from . import __meta__

__app__ = __meta__.app
__version__ = __meta__.version
__license__ = __meta__.license
__author__ = __meta__.author
