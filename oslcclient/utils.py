##
## © Copyright 2021- IBM Inc. All rights reserved
# SPDX-License-Identifier: MIT
##

import base64
import datetime
import inspect
import logging
import os

import cryptography.fernet
import cryptography.hazmat.backends
import cryptography.hazmat.primitives
import cryptography.hazmat.primitives.hashes
import cryptography.hazmat.primitives.kdf.pbkdf2

logger = logging.getLogger(__name__)

############################################################################
# TRACE logging level, below DEBUG, used for wire-level and auth state logging

TRACE = 5

logging.addLevelName(TRACE, "TRACE")

def _trace(self, message, *args, **kwargs):
    if self.isEnabledFor(TRACE):
        self._log(TRACE, message, args, **kwargs)

if not hasattr(logging.Logger, "trace"):
    logging.Logger.trace = _trace

############################################################################
# debug flag from the environment

DEBUG_ENVVAR = "OSLC_DEBUG"

def debug_enabled(environ=None):
    environ = os.environ if environ is None else environ
    return str(environ.get(DEBUG_ENVVAR, "")).strip().lower() in ("1", "true", "yes", "on")

############################################################################
# setup logging

LOGFOLDER = './logs'

loglevels = {
        'TRACE':        TRACE
        ,'DEBUG':       logging.DEBUG
        ,'INFO':        logging.INFO
        ,'WARNING':     logging.WARNING
        ,'ERROR':       logging.ERROR
        ,'CRITICAL':    logging.CRITICAL
        ,'OFF':         None
        }

def parse_loglevels(loglevel):
    '''
    Turn a "CONSOLE[,FILE]" string into a (consolelevel, filelevel) pair
    '''
    levels = [loglevels.get(l.strip().upper(), -1) for l in loglevel.split(",", 1)]
    if len(levels) < 2:
        levels.append(logging.DEBUG)
    if -1 in levels:
        raise ValueError( f'Logging level {loglevel} not valid - should be comma-separated one or two values from {", ".join(loglevels)}' )
    return levels[0], levels[1]

def setup_logging(consolelevel=None, filelevel=logging.INFO, logfolder=LOGFOLDER):
    if filelevel is not None or consolelevel is not None:
        log = logging.getLogger()
        log.setLevel(TRACE)

        if filelevel is not None:
            os.makedirs(logfolder, exist_ok=True)
            filelogformatter = logging.Formatter("%(asctime)s [%(levelname)-5s|%(name)s] %(message)s")
            datetimestamp = '{:%Y%m%d-%H%M%S}'.format(datetime.datetime.now())
            handler = logging.FileHandler(os.path.join(logfolder, f"oslcclient-{datetimestamp}.log"), mode='w')
            handler.setLevel(filelevel)
            handler.setFormatter(filelogformatter)
            log.addHandler(handler)

        if consolelevel is not None:
            console = logging.StreamHandler()
            console.setLevel(consolelevel)
            console.setFormatter(logging.Formatter('%(name)-12s: %(levelname)-8s %(message)s'))
            log.addHandler(console)

############################################################################
# obfuscated credentials files

ITERATIONS = 100000

def _derive_key(password, salt, iterations=ITERATIONS):
    kdf = cryptography.hazmat.primitives.kdf.pbkdf2.PBKDF2HMAC(
        algorithm=cryptography.hazmat.primitives.hashes.SHA256(), length=32, salt=salt,
        iterations=iterations, backend=cryptography.hazmat.backends.default_backend())
    return base64.urlsafe_b64encode(kdf.derive(password))

def fernet_encrypt(message, password, iterations=ITERATIONS):
    salt = os.urandom(16)
    key = _derive_key(password.encode(), salt, iterations)
    token = cryptography.fernet.Fernet(key).encrypt(message)
    return base64.urlsafe_b64encode(b'%b%b%b' % (salt, iterations.to_bytes(4, 'big'), base64.urlsafe_b64decode(token)))

def fernet_decrypt(token, password):
    decoded = base64.urlsafe_b64decode(token)
    salt, iterbytes, token = decoded[:16], decoded[16:20], base64.urlsafe_b64encode(decoded[20:])
    iterations = int.from_bytes(iterbytes, 'big')
    key = _derive_key(password.encode(), salt, iterations)
    return cryptography.fernet.Fernet(key).decrypt(token)

#####################################################################################
# return function stack trace of the calling line, as a string of file:line:function()<=...
def callers():
    caller_list = []
    frame = inspect.currentframe().f_back.f_back
    while frame is not None and frame.f_back:
        caller_list.append('{2}:{1}:{0}()'.format(frame.f_code.co_name, frame.f_lineno, os.path.basename(frame.f_code.co_filename)))
        frame = frame.f_back
    return ' <= '.join(caller_list)

#####################################################################################
# show a long body in a log message or exception without flooding it
def snippet(text, length=800):
    if text is None:
        return ""
    if isinstance(text, (bytes, bytearray)):
        text = text.decode('utf-8', errors='replace')
    return text[:length]
