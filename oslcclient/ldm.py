##
## © Copyright 2021- IBM Inc. All rights reserved
# SPDX-License-Identifier: MIT
##

# Incoming links: ask a Link Discovery Management server (or an LQE SPARQL endpoint) which
# resources link to a set of targets, and turn the answers into inverse (outgoing) links.

import collections.abc
import http
import json
import logging
import re
import types
import typing

from rdflib import Graph

from . import client
from .exceptions import FormatError, HttpError, OSLCError, UnauthorizedError
from .namespaces import OSLC_LDM
from .resource import rdf_format

logger = logging.getLogger(__name__)

DISCOVERY_ACCEPT = 'text/turtle, application/rdf+xml;q=0.9, application/ld+json;q=0.8, application/json;q=0.7'

_CORE = 'http://open-services.net/ns/core#'
_RM = 'http://open-services.net/ns/rm#'
_QM = 'http://open-services.net/ns/qm#'
_CM = 'http://open-services.net/ns/cm#'
_RM_NAV = 'http://jazz.net/ns/rm/navigation#'

# link type -> inverse link type; order matters when several link types share an inverse
INVERSE_LINK_TYPES = types.MappingProxyType({
    _CORE+'related':                        _CORE+'related',
    _RM+'constraints':                      _RM+'constrainedBy',
    _RM+'constrainedBy':                    _RM+'constraints',
    _RM+'decomposes':                       _RM+'decomposedBy',
    _RM+'decomposedBy':                     _RM+'decomposes',
    _RM+'elaborates':                       _RM+'elaboratedBy',
    _RM+'elaboratedBy':                     _RM+'elaborates',
    _RM+'satisfies':                        _RM+'satisfiedBy',
    _RM+'satisfiedBy':                      _RM+'satisfies',
    _RM+'specifies':                        _RM+'specifiedBy',
    _RM+'specifiedBy':                      _RM+'specifies',
    _QM+'validatesRequirement':             _RM+'validatedBy',
    _QM+'validatesRequirementCollection':   _RM+'validatedBy',

    _CM+'implementsRequirement':            _RM+'implementedBy',
    _CM+'tracksRequirement':                _RM+'trackedBy',
    _CM+'affectsRequirement':               _RM+'affectedBy',
    _RM+'implementedBy':                    _CM+'implementsRequirement',
    _RM+'trackedBy':                        _CM+'tracksRequirement',
    _RM+'affectedBy':                       _CM+'affectsRequirement',

    _CM+'testedByTestCase':                 _QM+'testsChangeRequest',
    _QM+'testsChangeRequest':               _CM+'testedByTestCase',
    _CM+'relatedTestScript':                _QM+'relatedChangeRequest',
    _CM+'relatedTestCase':                  _QM+'relatedChangeRequest',
    _CM+'relatedTestPlan':                  _QM+'relatedChangeRequest',
    _CM+'relatedTestExecutionRecord':       _QM+'relatedChangeRequest',
    _CM+'blocksTestExecutionRecord':        _QM+'blockedByChangeRequest',
    _QM+'blockedByChangeRequest':           _CM+'blocksTestExecutionRecord',
    _CM+'affectsTestResult':                _QM+'affectedByChangeRequest',
    _QM+'affectedByChangeRequest':          _CM+'affectsTestResult',

    _CM+'affectedByDefect':                 _CM+'affectsPlanItem',
    _CM+'affectsPlanItem':                  _CM+'affectedByDefect',

    _RM_NAV+'parent':                       _RM_NAV+'children',
    _RM_NAV+'children':                     _RM_NAV+'parent',
})

MISSING_QUERY_STRING_RE = re.compile(r'does not contain a query string', re.IGNORECASE)
UNAUTHORIZED_RE = re.compile(r'unauthorized', re.IGNORECASE)
SPARQL_JSON_CONTENT_TYPE_RE = re.compile(r'sparql-results\+json|application/json', re.IGNORECASE)
RDF_CONTENT_TYPE_RE = re.compile(r'text/turtle|application/rdf\+xml|application/ld\+json', re.IGNORECASE)


class LinkTriple(typing.NamedTuple):
    source_url: str
    link_type: str
    target_url: str


class InvertedLinkTriple(typing.NamedTuple):
    target_url: str
    inverse_link_type: str
    source_url: str


def _as_url_string(value, name):
    if not isinstance(value, str) or not value.strip():
        raise ValueError( f"{name} must be a non-empty string" )
    return value


def build_discover_links_turtle(target_urls, link_types=None):
    resources = ", ".join( f"<{_as_url_string(u, 'target URL')}>" for u in target_urls )
    turtle = f"@prefix oslc_ldm: <{OSLC_LDM}> .\n"
    turtle += f"[] oslc_ldm:resources {resources}"
    if link_types:
        predicates = ", ".join( f"<{_as_url_string(p, 'link type')}>" for p in link_types )
        turtle += f" ;\n   oslc_ldm:linkPredicates {predicates}"
    turtle += " .\n"
    return turtle


def build_incoming_links_sparql(target_urls, link_types=None):
    objects = " ".join( f"<{_as_url_string(u, 'target URL')}>" for u in target_urls )
    whereparts = [f"VALUES ?o {{ {objects} }}", "?s ?p ?o ."]
    if link_types:
        predicates = " ".join( f"<{_as_url_string(p, 'link type')}>" for p in link_types )
        whereparts.insert(0, f"VALUES ?p {{ {predicates} }}")
    return f"SELECT ?s ?p ?o WHERE {{ {' '.join(whereparts)} }}"


def parse_rdf_triples(data, content_type, base):
    '''
    Every triple in an RDF response body as a LinkTriple; unparseable bodies raise FormatError
    '''
    fmt = rdf_format(content_type, default='turtle')
    graph = Graph()
    try:
        graph.parse( data=data, format=fmt, publicID=base )
    except Exception as e:
        raise FormatError( f"Can't parse link discovery response as {fmt}: {e}", content_type=content_type, body=data ) from e
    return [LinkTriple(str(s), str(p), str(o)) for s, p, o in graph]


def _row_value(row, *keys):
    for key in keys:
        value = row.get(key)
        if isinstance(value, collections.abc.Mapping):
            value = value.get('value')
        if value:
            return value
    return None


def parse_sparql_results(obj):
    '''
    LinkTriples from SPARQL JSON results: results.bindings, a top-level bindings, or a results list
    of rows keyed s/p/o or subject/predicate/object. Rows missing any part are dropped.
    '''
    if not isinstance(obj, collections.abc.Mapping):
        raise FormatError( "Unexpected SPARQL results format", body=json.dumps(obj) )
    results = obj.get('results')
    bindings = results.get('bindings') if isinstance(results, collections.abc.Mapping) else None
    if bindings is None:
        bindings = obj.get('bindings')

    triples = []
    if isinstance(bindings, list):
        for b in bindings:
            triples.append( (_row_value(b, 's'), _row_value(b, 'p'), _row_value(b, 'o')) )
    elif isinstance(results, list):
        for r in results:
            if isinstance(r, collections.abc.Mapping):
                triples.append( (_row_value(r, 's', 'subject'), _row_value(r, 'p', 'predicate'), _row_value(r, 'o', 'object')) )
    else:
        logger.debug( f"Unexpected SPARQL JSON shape {obj}" )
        raise FormatError( "Unexpected SPARQL results format", body=json.dumps(obj) )
    return [LinkTriple(*t) for t in triples if all(t)]


class LDMClient( client.OSLCClient ):
    '''
    Finds links pointing at resources, using either a Link Discovery Management server
    ({base}/discover-links) or, when the base URL contains /lqe, the LQE SPARQL endpoint.
    '''
    def __init__(self, ldm_server_base_url, user=None, password=None, configuration_context=None, **kwargs):
        super().__init__(user, password, configuration_context, **kwargs)
        if not ldm_server_base_url:
            raise ValueError( "The LDM server base URL is required" )
        self.ldm_server_base_url = ldm_server_base_url[:-1] if ldm_server_base_url.endswith('/') else ldm_server_base_url
        self.debug = self.transport.debug
        self._warned = set()

    @property
    def is_lqe(self):
        return '/lqe' in self.ldm_server_base_url

    def get_incoming_links(self, target_urls, link_types=None, configuration_context=None):
        if not isinstance(target_urls, (list, tuple)) or len(target_urls) == 0:
            raise ValueError( "target_urls must be a non-empty list" )
        link_types = [] if link_types is None else link_types
        if not isinstance(link_types, (list, tuple)):
            raise ValueError( "link_types must be a list" )
        for u in target_urls:
            _as_url_string(u, 'target URL')
        for p in link_types:
            _as_url_string(p, 'link type')

        configuration_context = configuration_context or self.configuration_context
        headers = {}
        if configuration_context:
            headers['Configuration-Context'] = _as_url_string(configuration_context, 'configuration context')

        if self.is_lqe:
            triples = self._get_incoming_links_via_lqe(target_urls, link_types, headers)
        else:
            triples = self._get_incoming_links_via_ldm(target_urls, link_types, headers)
        logger.info( f"Found {len(triples)} incoming links for {len(target_urls)} targets" )
        return triples

    def invert(self, triples):
        if not isinstance(triples, (list, tuple)):
            raise ValueError( "triples must be a list" )
        result = []
        for t in triples:
            if isinstance(t, collections.abc.Mapping):
                source = t.get('sourceURL', t.get('source_url'))
                predicate = t.get('linkType', t.get('link_type'))
                target = t.get('targetURL', t.get('target_url'))
            else:
                source, predicate, target = t[0], t[1], t[2]
            source = _as_url_string(source, 'source URL')
            predicate = _as_url_string(predicate, 'link type')
            target = _as_url_string(target, 'target URL')
            result.append( InvertedLinkTriple(target, self.inverse_link_type(predicate), source) )
        return result

    def inverse_link_type(self, predicate):
        '''
        The inverse of predicate: a direct entry in INVERSE_LINK_TYPES, else the first link type whose
        inverse is predicate, else predicate itself
        '''
        inverse = INVERSE_LINK_TYPES.get(predicate)
        if inverse is not None:
            return inverse
        matches = [k for k, v in INVERSE_LINK_TYPES.items() if v == predicate]
        if matches:
            if len(matches) > 1:
                self._warn_once( predicate, f"Multiple inverse link type mappings found for {predicate}, using {matches[0]}" )
            return matches[0]
        self._warn_once( predicate, f"No inverse link type mapping found for {predicate}" )
        return predicate

    def _warn_once(self, predicate, message):
        if predicate not in self._warned:
            self._warned.add(predicate)
            logger.warning( message )

    ############################################################################
    # Link Discovery Management server

    def _get_incoming_links_via_ldm(self, target_urls, link_types, headers):
        url = f"{self.ldm_server_base_url}/discover-links"
        headers = dict(headers, Accept=DISCOVERY_ACCEPT)

        # newest servers take an RDF request body, older ones form fields
        attempts = [
            ('turtle', lambda: self._post_discover_links_turtle(url, target_urls, link_types, headers)),
            ('objectResources', lambda: self._post_discover_links_form(url, 'objectResources', target_urls, link_types, headers)),
            ('objectConceptResources', lambda: self._post_discover_links_form(url, 'objectConceptResources', target_urls, link_types, headers)),
        ]
        lasterror = None
        for name, attempt in attempts:
            try:
                return attempt()
            except OSLCError as e:
                logger.info( f"discover-links {name} request to {url} failed: {e}" )
                lasterror = e
        raise lasterror

    def _post_discover_links_turtle(self, url, target_urls, link_types, headers):
        body = build_discover_links_turtle(target_urls, link_types)
        if self.debug:
            logger.debug( f"discover-links request body:\n{body}" )
        response = self.transport.execute_post_content( url, data=body.encode('utf-8'),
                                                        headers=dict(headers, **{'Content-Type': 'text/turtle'}),
                                                        intent="Discover links (RDF)" )
        return self._parse_discovery_response(response, url)

    def _post_discover_links_form(self, url, fieldname, target_urls, link_types, headers):
        data = [(fieldname, u) for u in target_urls] + [('predicateFilters', p) for p in link_types]
        response = self.transport.execute_post_content( url, data=data,
                                                        headers=dict(headers, **{'Content-Type': 'application/x-www-form-urlencoded'}),
                                                        intent=f"Discover links ({fieldname})" )
        return self._parse_discovery_response(response, url)

    def _parse_discovery_response(self, response, url):
        if response.status_code == http.HTTPStatus.UNAUTHORIZED:
            raise UnauthorizedError( f"Not authorized to discover links at {url}", response )
        return parse_rdf_triples( response.text, response.headers.get('Content-Type') or 'text/turtle', url )

    ############################################################################
    # LQE SPARQL endpoint

    def _get_incoming_links_via_lqe(self, target_urls, link_types, headers):
        url = f"{self.ldm_server_base_url}/sparql"
        sparql = build_incoming_links_sparql(target_urls, link_types)
        if self.debug:
            logger.debug( f"LQE base URL: {self.ldm_server_base_url}" )
            logger.debug( f"SPARQL request body:\n{sparql}" )
        headers = dict(headers, **{'Accept': 'application/sparql-results+json', 'X-Jazz-CSRF-Prevent': '1'})

        response = self.transport.execute_post_content( url, data=sparql.encode('utf-8'),
                                                        headers=dict(headers, **{'Content-Type': 'application/sparql-query'}),
                                                        raise_for_status=False, intent="LQE SPARQL query" )
        if response.status_code == http.HTTPStatus.BAD_REQUEST and MISSING_QUERY_STRING_RE.search(response.text or ''):
            logger.info( f"{url} wants a query parameter - resending the query form-encoded" )
            response = self.transport.execute_post_content( url, data={'query': sparql},
                                                            headers=dict(headers, **{'Content-Type': 'application/x-www-form-urlencoded'}),
                                                            raise_for_status=False, intent="LQE SPARQL query (form)" )
        return self._parse_lqe_response(response, url)

    def _parse_lqe_response(self, response, url):
        contenttype = response.headers.get('Content-Type', '')
        text = response.text or ''
        if self.debug:
            logger.debug( f"LQE response {response.status_code} content-type: {contenttype}" )

        # a successful result body can mention "unauthorized" in a URI or literal
        isresults = response.status_code < 400 and (
                        SPARQL_JSON_CONTENT_TYPE_RE.search(contenttype) or RDF_CONTENT_TYPE_RE.search(contenttype)
                        or text.lstrip().startswith(('{', '[')) )
        if response.status_code == http.HTTPStatus.UNAUTHORIZED or (not isresults and UNAUTHORIZED_RE.search(text)):
            wwwauth = response.headers.get('WWW-Authenticate', '')
            message = ( f"LQE unauthorized. status={response.status_code}. content-type={contenttype}. "
                        f"www-authenticate={wwwauth}. "
                        f"x-com-ibm-team-repository-web-auth-msg={response.headers.get('X-com-ibm-team-repository-web-auth-msg', '')}. " )
            if 'OAuth realm' in wwwauth:
                message += "Note: LQE is requesting OAuth Authorization; provide an Authorization header (e.g., Bearer token). "
            message += f"body={text.strip()}"
            raise UnauthorizedError( message, response )

        if response.status_code >= 400:
            raise HttpError( f"LQE query at {url} failed", response )

        if SPARQL_JSON_CONTENT_TYPE_RE.search(contenttype):
            try:
                obj = json.loads(text)
            except ValueError as e:
                raise FormatError( "Unexpected SPARQL results format", content_type=contenttype, body=text ) from e
            return parse_sparql_results(obj)

        if RDF_CONTENT_TYPE_RE.search(contenttype):
            return parse_rdf_triples( text, contenttype, url )

        trimmed = text.strip()
        if trimmed.startswith('{') or trimmed.startswith('['):
            try:
                return parse_sparql_results( json.loads(trimmed) )
            except (ValueError, FormatError):
                logger.debug( "LQE response body looks like JSON but isn't SPARQL results" )
        if trimmed.startswith('@prefix') or trimmed.startswith('<') or 'PREFIX ' in trimmed:
            try:
                return parse_rdf_triples( text, 'text/turtle', url )
            except FormatError:
                logger.debug( "LQE response body looks like Turtle but doesn't parse" )

        raise FormatError( "Unexpected SPARQL results format", content_type=contenttype, body=text )
