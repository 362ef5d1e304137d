##
## © Copyright 2021- IBM Inc. All rights reserved
# SPDX-License-Identifier: MIT
##


import enum
import http
import logging
import re
import time
import urllib.parse

import requests

from . import utils
from .exceptions import HttpError, TransportError

logger = logging.getLogger(__name__)

# header a Jazz server adds (often to a 200 response) when the user must log in using the JEE form
FORM_AUTH_HEADER = 'X-com-ibm-team-repository-web-auth-msg'

TOKEN_URI_RE = re.compile(r'token_uri="([^"]+)"')

##############################################################################################
# utilities for text<>binary handling

def to_text(content, encoding=None, errors='replace'):
    if content is None or isinstance(content, str):
        return content
    if isinstance(content, requests.Response):
        return content.text
    if isinstance(content, (bytes, bytearray)):
        encoding = encoding or 'utf-8'
        if encoding == "7bit":
            encoding = 'us-ascii'
        return content.decode(encoding, errors=errors)
    raise TypeError(f"Can't convert {type(content)} to text")

def to_binary(text, encoding='utf-8', errors='strict'):
    if isinstance(text, (bytes, bytearray)):
        return text
    return text.encode(encoding, errors)

#################################################################################################

def getcookievalue(cookies, cookiename, defaultvalue=None):
    for c in cookies:
        if c.name == cookiename:
            return c.value
    logger.debug( f"Cookie {cookiename} not found" )
    return defaultvalue

def form_auth_url(request_url):
    '''
    JEE form login location: {origin}/{first path segment}/j_security_check, or {origin}/j_security_check at the root
    '''
    parsed = urllib.parse.urlparse(request_url)
    segments = parsed.path.split('/')
    contextroot = segments[1] if len(segments) > 1 else ''
    path = f"/{contextroot}/j_security_check" if contextroot else "/j_security_check"
    return urllib.parse.urlunparse([parsed.scheme, parsed.netloc, path, "", "", ""])

##############################################################################################
# authentication challenges

class Challenge(enum.Enum):
    NONE = 'none'
    FORM_AUTH_REQUIRED = 'form'
    TOKEN_REALM_CHALLENGE = 'token'
    BASIC_CHALLENGE = 'basic'


class AuthState(enum.Enum):
    INITIAL = 'initial'
    CHALLENGE_DETECTED = 'challenge detected'
    AUTHENTICATING = 'authenticating'
    RETRIED = 'retried'
    DONE = 'done'


def classify_challenge(response):
    '''
    Work out what kind of authentication (if any) a response is asking for.

    Returns a (Challenge, token_uri) pair; token_uri is only set for Challenge.TOKEN_REALM_CHALLENGE.
    The form header wins over the status code because Jazz sends it on a 200.
    '''
    if response.headers.get(FORM_AUTH_HEADER) == 'authrequired':
        return Challenge.FORM_AUTH_REQUIRED, None
    if response.status_code == http.HTTPStatus.UNAUTHORIZED:
        wwwauth = response.headers.get('WWW-Authenticate', '')
        if 'jauth realm' in wwwauth:
            m = TOKEN_URI_RE.search(wwwauth)
            if m:
                return Challenge.TOKEN_REALM_CHALLENGE, m.group(1)
            logger.warning( f"jauth realm challenge without a token_uri, falling back to basic: {wwwauth}" )
        return Challenge.BASIC_CHALLENGE, None
    return Challenge.NONE, None

##############################################################################################

class HttpOperations_Mixin():
    ############################################################################
    # methods for HTTP operations, the class mixing this in provides _get_request()
    def __init__(self, *args, **kwargs):
        super().__init__()

    def execute_get(self, uri, *, params=None, headers=None, **kwargs):
        request = self._get_get_request(uri, params=params, headers=headers)
        return request.execute( **kwargs )

    def execute_get_rdf(self, uri, *, params=None, headers=None, **kwargs):
        reqheaders = {'Accept': 'application/rdf+xml', 'OSLC-Core-Version': '2.0'}
        if headers is not None:
            reqheaders.update(headers)
        return self.execute_get(uri, params=params, headers=reqheaders, **kwargs)

    def execute_post_content(self, uri, *, data=None, params=None, headers=None, put=False, **kwargs):
        data = data if data is not None else ""
        request = self._get_post_request(uri, data=data, params=params, headers=headers, put=put)
        return request.execute( **kwargs )

    def execute_post_rdf_xml(self, uri, *, data=None, params=None, headers=None, put=False, **kwargs):
        reqheaders = {'Accept': 'application/rdf+xml', 'Content-Type': 'application/rdf+xml; charset=utf-8'}
        if headers is not None:
            reqheaders.update(headers)
        return self.execute_post_content(uri, data=to_binary(data), params=params, headers=reqheaders, put=put, **kwargs)

    # assumes you included the If-Match: ETag header if the server needs it!
    def execute_put_rdf_xml(self, uri, *, data=None, params=None, headers=None, **kwargs):
        return self.execute_post_rdf_xml(uri, data=data, params=params, headers=headers, put=True, **kwargs)

    def execute_delete(self, uri, *, params=None, headers=None, **kwargs):
        request = self._get_delete_request(uri, params=params, headers=headers)
        return request.execute( **kwargs )

    # record an action in the log
    def record_action( self, action ):
        # this allows splitting out each request+response when parsing the log
        logtext = "\n\n>>>>>>>>>>>>>>>>>>>>>>>>>>>>>>>>>>!\n"
        logtext += f"\nACTION: {action}\n\n"
        logtext += "<<<<<<<<<<<<<<<<<<<<<<<<<<<<<<<<<<!\n"
        logger.trace(logtext)

    ###########################################################################
    # below here is internal implementation

    def _get_get_request(self, uri, *, params=None, headers=None):
        return self._get_request('GET', uri, params=params, headers=headers)

    def _get_post_request(self, uri, *, params=None, headers=None, data=None, put=False):
        return self._get_request('PUT' if put else 'POST', uri, params=params, headers=headers, data=data)

    def _get_delete_request(self, uri, *, params=None, headers=None):
        return self._get_request('DELETE', uri, params=params, headers=headers)


class HttpRequest():
    '''
    One request and its authentication context.

    The context owns the replay guard: a challenge on the first response leads to
    one authentication and one replay, never more.
    '''
    def __init__(self, transport, verb, uri, *, params=None, headers=None, data=None):
        # Requests encoding of parameters uses + for space - we need it to use %20!
        if params:
            sep = "&" if "?" in uri else "?"
            paramstring = f"{sep}{urllib.parse.urlencode( params, doseq=True, quote_via=urllib.parse.quote, safe='/')}"
        else:
            paramstring = ""
        self._req = requests.Request( verb, uri+paramstring, headers=dict(headers or {}), data=data )
        self._transport = transport
        self.state = AuthState.INITIAL
        self.challenge = Challenge.NONE
        self.retried = False

    @property
    def url(self):
        return self._req.url

    @property
    def method(self):
        return self._req.method

    def execute( self, *, intent=None, raise_for_status=True, automaticlogin=True, **kwargs ):
        '''
        Send the request, handling any authentication challenge.

        A final 401 is returned to the caller; with raise_for_status any other status >= 400 raises HttpError.
        '''
        response = self._execute_request( intent=intent or "", automaticlogin=automaticlogin, **kwargs )
        if raise_for_status and response.status_code >= 400 and response.status_code != http.HTTPStatus.UNAUTHORIZED:
            logger.info( f"Request failed. URL: {self._req.url}, {response.status_code}" )
            raise HttpError( f"{self._req.method} {self._req.url} failed", response )
        return response

    # execute the request, retrying with increasing delays on temporary server errors (login is handled at the lower level)
    def _execute_request( self, **kwargs ):
        for wait_dur in [2, 5, 10, 0]:
            response = self._execute_one_request_with_login( **kwargs )
            if wait_dur == 0 or not self._is_retryable_response(response):
                return response
            logger.warning( f'RETRY: Retry after {wait_dur} seconds... URL: {self._req.url} status {response.status_code}' )
            time.sleep(wait_dur)
        raise RuntimeError('programming error this point should never be reached')

    def _is_retryable_response( self, response ):
        if self._transport.auto_retry:
            return response.status_code in [
                                        http.HTTPStatus.REQUEST_TIMEOUT,
                                        http.HTTPStatus.LOCKED,
                                        http.HTTPStatus.SERVICE_UNAVAILABLE,
                                    ]
        return False

    def _transition( self, state ):
        logger.trace( f"AUTH: {self._req.method} {self._req.url} {self.state.value} -> {state.value} ({self.challenge.value})" )
        if self._transport.debug:
            logger.debug( f"AUTH: {self.state.value} -> {state.value} ({self.challenge.value}) for {self._req.url}" )
        self.state = state

    # execute a request once, except if the response is an authentication challenge
    # then authenticate using the matching strategy and replay the request exactly once
    def _execute_one_request_with_login( self, *, intent="", automaticlogin=True, allow_redirects=True ):
        request = self._req
        response = self._send( request, intent=intent, allow_redirects=allow_redirects )

        if not automaticlogin or self.retried:
            self._transition( AuthState.DONE )
            return response

        challenge, token_uri = classify_challenge( response )
        if challenge is Challenge.NONE:
            self._transition( AuthState.DONE )
            return response

        self.challenge = challenge
        self._transition( AuthState.CHALLENGE_DETECTED )

        username, password = self._transport.get_user_password( request.url )
        if not username:
            logger.warning( f"Server asked for {challenge.value} authentication for {request.url} but no credentials are configured" )
            self._transition( AuthState.DONE )
            return response

        self._transition( AuthState.AUTHENTICATING )
        if challenge is Challenge.FORM_AUTH_REQUIRED:
            self._jazz_form_authorize( request.url, username, password )
        elif challenge is Challenge.TOKEN_REALM_CHALLENGE:
            token = self._token_authorize( token_uri, username, password )
            request.headers['Authorization'] = f"Bearer {token}"
        else:
            request.auth = (username, password)

        # the one and only replay - make sure it isn't satisfied from cache
        self.retried = True
        self._transition( AuthState.RETRIED )
        request.headers['Cache-Control'] = 'no-cache'
        response = self._send( request, intent="RETRY AFTER AUTHENTICATION "+intent, allow_redirects=allow_redirects )

        residual, _ = classify_challenge( response )
        if residual is not Challenge.NONE:
            logger.warning( f"Authorization failure after {challenge.value} authentication. Check user ID {username} and password for URL [{request.url}]" )
        elif challenge is Challenge.BASIC_CHALLENGE:
            self._transport.set_basic_auth( username, password )

        self._transition( AuthState.DONE )
        return response

    def _send( self, request, *, intent="", allow_redirects=True, donotlogbody=False ):
        session = self._transport._session
        prepped = session.prepare_request( request )
        try:
            response = session.send( prepped, timeout=self._transport.timeout, allow_redirects=allow_redirects )
        except requests.Timeout as e:
            raise TransportError( f"Timeout after {self._transport.timeout}s on {request.method} {request.url}" ) from e
        except requests.RequestException as e:
            raise TransportError( f"{request.method} {request.url} failed: {e}" ) from e
        self.log_redirection_history( response, intent=intent, donotlogbody=donotlogbody )
        return response

    # login using the JEE form - success is a redirect, which must not be followed
    def _jazz_form_authorize( self, request_url, username, password ):
        auth_url = form_auth_url( request_url )
        loginrequest = requests.Request( "POST", auth_url,
                        headers={'Content-Type': 'application/x-www-form-urlencoded'},
                        data={'j_username': username, 'j_password': password} )
        response = self._send( loginrequest, intent="Authenticate Form", allow_redirects=False, donotlogbody=True )
        if response.status_code != http.HTTPStatus.FOUND:
            logger.info( f"Form login to {auth_url} returned {response.status_code} instead of a redirect" )
            raise HttpError( f"Form authentication at {auth_url} failed", response )
        return response

    # get a bearer token from the jauth token endpoint - the body is the token
    def _token_authorize( self, token_uri, username, password ):
        tokenrequest = requests.Request( "POST", token_uri,
                        headers={'Content-Type': 'application/x-www-form-urlencoded', 'Accept': 'text/plain'},
                        data={'username': username, 'password': password} )
        response = self._send( tokenrequest, intent="Get jauth token", donotlogbody=True )
        if response.status_code >= 400:
            raise HttpError( f"Token request to {token_uri} failed", response )
        token = response.text.strip()
        self._transport.set_bearer_token( token )
        return token

    # log a request/response, which may be the result of one or more redirections, so first log each of their request/response
    def log_redirection_history( self, response, intent, action=None, donotlogbody=False ):
        if not logger.isEnabledFor( utils.TRACE ):
            return
        thisintent = intent
        after = ""
        for i,r in enumerate(response.history):
            after = " (after redirects)"
            logger.trace( f"\nWIRE: redir {i} request +++++ {r.request.method} {r.request.url}\n\n{self._log_request(r.request,intent=thisintent,donotlogbody=donotlogbody)}")
            logger.trace( f"\nWIRE: redir response ----- {r.status_code}\n\n{self._log_response(r)}")
            thisintent = 'Redirection of '+intent
        logger.trace( f"\nWIRE: request +++++ {response.request.method} {response.request.url}\n\n{self._log_request(response.request,intent=intent+after,donotlogbody=donotlogbody)}")
        logger.trace( f"\nWIRE: response ----- {response.status_code}\n\n{self._log_response(response, action=action)}")

    # generate a string for logging of a http request with a stacktrace of the callers and showing URL, headers and any data
    def _log_request( self, request, donotlogbody=False, intent=None, action=None ):
        logtext = utils.callers()
        # this allows splitting out each request+response when parsing the log
        logtext += "\n\n>>>>>>>>>>>>>>>>>>>>>>>>>>>>>>>>>>!\n"
        if intent is not None:
            logtext += f"\n\nINTENT: {intent}\n\n"

        if donotlogbody:
            # redact username/password parameter values
            url_parts = list(urllib.parse.urlparse(request.url))
            query = dict(urllib.parse.parse_qsl(url_parts[4]))
            for k in ('j_username', 'j_password', 'username', 'password'):
                if k in query:
                    query[k] = "REDACTED"
            url_parts[4] = urllib.parse.urlencode(query)
            logtext += f"{request.method} {urllib.parse.urlunparse(url_parts)}\n"
        else:
            logtext += f"{request.method} {request.url}\n"

        for k in sorted(request.headers.keys()):
            v = "REDACTED" if k.lower() == 'authorization' else to_text(request.headers[k])
            logtext += "  " + k + ": " + v + "\n"

        if request.body is not None:
            if donotlogbody:
                rawtext = "BODY REDACTED"
            elif len(request.body) > 1000000:
                rawtext = "LONG LONG CONTENT NOT SHOWN..."
            else:
                rawtext = to_text(request.body)
            # the surroundings allow splitting out the request body when parsing the log
            logtext += "\n::::::::::=\n"
            logtext += "\n" + rawtext + "\n\n"
            logtext += "\n----------=\n"

        if action is not None:
            logtext += f"\n\nACTION: {action}\n\n"
        return logtext

    # generate a string for logging of a http response showing response code, headers and any data
    def _log_response( self, response, action=None ):
        logtext = f"Response: {response.status_code}\n"
        for c,v in sorted(response.headers.items()):
            logtext += "  " + c + ": " + v + "\n"

        if response.content is not None:
            if len(response.content) > 1000000:
                rawtext = "LONG LONG CONTENT..."
            else:
                rawtext = to_text(response.content, response.encoding)
            # the surroundings allow splitting out the response body when parsing the log
            logtext += "\n::::::::::@\n"
            logtext += rawtext
            logtext += "\n----------@\n\n"

        if action:
            logtext += f"\n\nACTION: {action}\n\n"

        # this allows splitting out each request+response when parsing the log
        logtext += "<<<<<<<<<<<<<<<<<<<<<<<<<<<<<<<<<<!\n"
        return logtext
