#!/usr/bin/env python
# -*- coding: UTF-8 -*-

##
## © Copyright 2021- IBM Inc. All rights reserved
# SPDX-License-Identifier: MIT
##


app = 'oslcclient'
description = 'Python client for OSLC servers: discovery, query, CRUD and incoming links'
version = '0.1.0'
license = 'MIT'
author_name = 'OSLC client contributors'
author_mail = ''
author = '%s <%s>' % (author_name, author_mail)
url = ''
