import httpretty
import pytest

from oslcclient.client import OSLCClient
from oslcclient.server import AuthenticatingTransport

SERVER = 'http://jazz.example.com:9443/ccm'
CATALOG = f'{SERVER}/oslc/workitems/catalog'
PROVIDER = f'{SERVER}/oslc/contexts/_jke/workitems/services.xml'
QUERY_BASE = f'{SERVER}/oslc/contexts/_jke/workitems'
FACTORY = f'{SERVER}/oslc/contexts/_jke/workitems/defect'

ROOTSERVICES_TTL = f'''
@prefix oslc_cm1: <http://open-services.net/xmlns/cm/1.0/> .
<{SERVER}/rootservices> oslc_cm1:cmServiceProviders <{CATALOG}> .
'''

CATALOG_TTL = f'''
@prefix dcterms: <http://purl.org/dc/terms/> .
@prefix oslc: <http://open-services.net/ns/core#> .
@prefix rdf: <http://www.w3.org/1999/02/22-rdf-syntax-ns#> .
<{CATALOG}> oslc:serviceProvider <{PROVIDER}>, <{SERVER}/oslc/contexts/_other/workitems/services.xml> .
<{PROVIDER}> dcterms:title "JKE Banking"^^rdf:XMLLiteral .
<{SERVER}/oslc/contexts/_other/workitems/services.xml> dcterms:title "Other Project"^^rdf:XMLLiteral .
'''

PROVIDER_TTL = f'''
@prefix oslc: <http://open-services.net/ns/core#> .
@prefix oslc_cm: <http://open-services.net/ns/cm#> .
<{PROVIDER}> oslc:service [
    oslc:queryCapability [
        oslc:resourceType oslc_cm:ChangeRequest ;
        oslc:queryBase <{QUERY_BASE}>
    ] ;
    oslc:creationFactory [
        oslc:resourceType <http://open-services.net/ns/cm#Defect> ;
        oslc:creation <{FACTORY}>
    ]
] .
'''


@pytest.fixture
def transport():
    return AuthenticatingTransport('alice', 'secret', cachingcontrol=2, debug=False)


@pytest.fixture
def anonymous_transport():
    return AuthenticatingTransport(cachingcontrol=2, debug=False)


@pytest.fixture
def oslc_client(transport):
    return OSLCClient(transport=transport)


@pytest.fixture
def register_discovery():
    """Register rootservices, catalog and provider documents for SERVER"""
    def _register_discovery(catalog=CATALOG_TTL, provider=PROVIDER_TTL):
        httpretty.register_uri(httpretty.GET, f'{SERVER}/rootservices', body=ROOTSERVICES_TTL, content_type='text/turtle')
        httpretty.register_uri(httpretty.GET, CATALOG, body=catalog, content_type='text/turtle')
        httpretty.register_uri(httpretty.GET, PROVIDER, body=provider, content_type='text/turtle')
    return _register_discovery


@pytest.fixture
def counting_responses():
    """Build a httpretty callback body that serves responses in order and counts calls"""
    def _counting_responses(*responses):
        calls = []

        def callback(request, uri, response_headers):
            index = min(len(calls), len(responses) - 1)
            calls.append(request)
            status, headers, body = responses[index]
            response_headers.update(headers)
            return [status, response_headers, body]

        callback.calls = calls
        return callback
    return _counting_responses
