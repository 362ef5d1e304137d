##
## © Copyright 2021- IBM Inc. All rights reserved
# SPDX-License-Identifier: MIT
##


import calendar
import datetime
import email.utils
import logging
import os.path
import shutil
import socket
import urllib.parse

import cachecontrol as CC
import cachecontrol.caches.file_cache
import cachecontrol.heuristics
import requests
import urllib3

from . import httpops
from . import utils

logger = logging.getLogger(__name__)

CACHE_FOLDER = '.web_cache'
WEB_SAVE_FOLDER = "cache"

# The number of days to locally cache responses when caching is enabled
CACHEDAYS = 7

# default request timeout in seconds
DEFAULT_TIMEOUT = 30.0

DEFAULT_ACCEPT = 'application/rdf+xml, text/turtle;q=0.9, application/ld+json;q=0.8, application/json;q=0.7, application/xml;q=0.6, text/xml;q=0.5, */*;q=0.1'

DEFAULT_HEADERS = {
    'Accept': DEFAULT_ACCEPT,
    'OSLC-Core-Version': '2.0',
}

# this port will be checked for a proxy - if it is there, it will be used for all requests
# (The default proxy port for Telerik Fiddler is 8888)
PROXY_PORT = 8888

# this is the default proxy dictionary for Requests, set by setupproxy()
proxydict = None

# Disable the InsecureRequestWarning so we can quietly control SSL certificate validation
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

##############################################################################################
# CacheControl setup

class _AddDaysHeuristic(cachecontrol.heuristics.BaseHeuristic):
    def __init__(self, days):
        super().__init__()
        self.days = days

    def update_headers(self, response):
        date = email.utils.parsedate(response.headers['date'])
        expires = datetime.datetime(*date[:6]) + datetime.timedelta(days=self.days)
        return {
            'expires' : email.utils.formatdate(calendar.timegm(expires.timetuple())),
            'cache-control' : 'public',
        }

    def warning(self, response):
        msg = 'Automatically cached! Response is Stale.'
        return '110 - "%s"' % msg

# caching control: 0 for full caching, 1 to wipe the cache then use caching, 2 to wipe cache and disable caching

def caching_save_data(cachingcontrol):
    return ( cachingcontrol < 2 )

def caching_wipe_cache(cachingcontrol):
    return ( cachingcontrol > 0 )

##############################################################################################

def setupproxy(url, proxyport=PROXY_PORT):
    # If a proxy is running on proxyport, setup proxydict so requests uses the proxy
    global proxydict
    if proxydict is None and proxyport != 0:
        if tcp_can_connect_to_url('127.0.0.1', proxyport, timeout=2.0):
            proxydict = {
                            'https':'http://127.0.0.1:'+str(proxyport)
                            ,'http':'http://127.0.0.1:'+str(proxyport)
                        }
            logger.info( f'Setting proxy for {urllib.parse.urlsplit(url).netloc} to {proxydict}' )
    return proxydict

# utility to see if a port is active listening for connections
def tcp_can_connect_to_url(host, port, timeout=5):
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.settimeout(timeout)
    try:
        s.connect((host, port))
        return True
    except OSError:
        return False
    finally:
        s.close()

#################################################################################################

def _make_session(cachingcontrol=2, cachefolder=CACHE_FOLDER, cachedays=CACHEDAYS):
    webcachefolder = os.path.join(cachefolder, WEB_SAVE_FOLDER)
    if caching_wipe_cache(cachingcontrol) and os.path.isdir(webcachefolder):
        logger.info( f"Erasing existing cache {webcachefolder}" )
        shutil.rmtree(webcachefolder)

    if caching_save_data(cachingcontrol):
        os.makedirs(webcachefolder, exist_ok=True)
        # cache to file with the heuristic to make responses persist for a number of days
        return CC.CacheControl(requests.Session(), heuristic=_AddDaysHeuristic(cachedays), cache=cachecontrol.caches.file_cache.FileCache(webcachefolder))
    return requests.Session()


# The transport holds the session (cookie jar and default headers), the user's credentials and the
# server-wide settings. Application code just makes the request; HttpRequest handles any login needed
# and replays the request once.

class AuthenticatingTransport( httpops.HttpOperations_Mixin ):
    def __init__(self, user=None, password=None, *, timeout=DEFAULT_TIMEOUT, verifysslcerts=True,
                    configuration_context=None, headers=None, cachingcontrol=2, cachefolder=CACHE_FOLDER,
                    auto_retry=False, debug=None):
        super().__init__()
        logger.info( f"Creating transport {user=} {verifysslcerts=} {cachingcontrol=} {timeout=}" )
        self.__user = user
        self.__password = password
        self.timeout = timeout
        self.verifysslcerts = verifysslcerts
        self.auto_retry = auto_retry
        self.cachingcontrol = cachingcontrol
        self.cachefolder = cachefolder
        self.debug = utils.debug_enabled() if debug is None else debug

        self._session = _make_session(cachingcontrol=cachingcontrol, cachefolder=cachefolder)
        self._session.verify = verifysslcerts
        self._session.headers.update(DEFAULT_HEADERS)
        if configuration_context:
            self._session.headers['Configuration-Context'] = configuration_context
        if headers:
            self._session.headers.update(headers)
        if proxydict:
            self._session.proxies.update(proxydict)

    @property
    def username(self):
        return self.__user

    def get_user_password(self, url=None):
        return (self.__user, self.__password)

    @property
    def headers(self):
        return self._session.headers

    @property
    def cookies(self):
        return self._session.cookies

    def get_cookie(self, name, default=None):
        return httpops.getcookievalue(self._session.cookies, name, default)

    def set_bearer_token(self, token):
        logger.debug( "Using bearer token for subsequent requests" )
        self._session.headers['Authorization'] = f"Bearer {token}"

    def set_basic_auth(self, username, password):
        logger.debug( f"Using basic authentication as {username} for subsequent requests" )
        self._session.auth = (username, password)

    def request(self, method, url, *, data=None, headers=None, params=None, **kwargs):
        '''
        Send one request through the authentication state machine.

        Returns the final response (which may be a 401 if authentication didn't succeed);
        any other status >= 400 raises HttpError unless raise_for_status=False.
        '''
        return self._get_request(method, url, params=params, headers=headers, data=data).execute( **kwargs )

    def close(self):
        self._session.close()

    def _get_request(self, verb, uri, *, params=None, headers=None, data=None):
        return httpops.HttpRequest( self, verb, str(uri), params=params, headers=headers, data=data )
