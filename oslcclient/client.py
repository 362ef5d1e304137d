##
## © Copyright 2021- IBM Inc. All rights reserved
# SPDX-License-Identifier: MIT
##


import http
import logging
import typing

import lxml.etree as ET
import tqdm
from rdflib import Graph, URIRef

from . import discovery
from . import server
from .exceptions import DiscoveryError, FormatError, HttpError, OSLCError, RequestFailedError
from .namespaces import FOAF, OSLC, RDFS, DEFAULT_PREFIXES
from .resource import Compact, OSLCResource, parse_rdf

logger = logging.getLogger(__name__)


class XMLDocument(typing.NamedTuple):
    etag: typing.Optional[str]
    xml: ET._ElementTree


class FeedDocument(typing.NamedTuple):
    etag: typing.Optional[str]
    feed: str


class OSLCClient():
    '''
    Client for one OSLC service provider.

    Call use() to walk rootservices -> catalog -> service provider, then query, create,
    update and delete resources through the provider's capabilities.
    '''
    def __init__(self, user=None, password=None, configuration_context=None, *, transport=None, prefixes=DEFAULT_PREFIXES, **transportargs):
        self.transport = transport or server.AuthenticatingTransport(user, password, configuration_context=configuration_context, **transportargs)
        self.configuration_context = configuration_context
        self.prefixes = prefixes
        self.base_url = None
        self.rootservices = None
        self.catalog = None
        self.service_provider = None
        self._owners = {}

    def use(self, server_url, service_provider_name, domain='CM'):
        self.base_url = server_url[:-1] if server_url.endswith('/') else server_url
        domain = domain.upper()
        if domain not in discovery.SERVICE_PROVIDERS:
            raise DiscoveryError( f"Unknown domain {domain}, should be one of {', '.join(discovery.SERVICE_PROVIDERS)}", step='rootservices' )
        self.transport.record_action( f"Use {domain} service provider '{service_provider_name}' on {self.base_url}" )

        rsurl = f"{self.base_url}/rootservices"
        self.rootservices = self._get_discovery_document( rsurl, discovery.RootServices, 'rootservices' )

        catalogurl = self.rootservices.service_provider_catalog( discovery.SERVICE_PROVIDERS[domain], discovery.DOMAINS[domain] )
        if not catalogurl:
            raise DiscoveryError( f"No ServiceProviderCatalog for {domain} services", step='rootservices', url=rsurl )
        self.catalog = self._get_discovery_document( catalogurl, discovery.ServiceProviderCatalog, 'catalog' )

        spurl = self.catalog.service_provider( service_provider_name )
        if not spurl:
            raise DiscoveryError( f"{service_provider_name} not found in service catalog", step='catalog', url=catalogurl )
        self.service_provider = self._get_discovery_document( spurl, discovery.ServiceProvider, 'service provider' )
        logger.info( f"Using service provider {spurl}" )
        return self.service_provider

    def _get_discovery_document(self, url, cls, step):
        try:
            resource = self.get_resource( url )
        except OSLCError as e:
            raise DiscoveryError( f"Failed to fetch {step} document: {e}", step=step, url=url, status=e.status ) from e
        if not isinstance(resource, OSLCResource) or len(resource.graph) == 0:
            raise DiscoveryError( f"The {step} document is not RDF", step=step, url=url )
        return cls( url, resource.graph, resource.etag, prefixes=self.prefixes )

    def get_resource(self, url, oslc_version='2.0', accept='application/rdf+xml'):
        '''
        GET url and return, depending on its Content-Type, an XMLDocument, a FeedDocument or an OSLCResource
        '''
        headers = {'Accept': accept, 'OSLC-Core-Version': oslc_version}
        response = self.transport.execute_get( url, headers=headers, intent=f"Get resource {url}" )
        if response.status_code == http.HTTPStatus.UNAUTHORIZED:
            raise HttpError( f"Not authorized to read {url}", response )
        etag = response.headers.get('ETag')
        contenttype = response.headers.get('Content-Type', '')

        if 'text/xml' in contenttype or 'application/xml' in contenttype:
            try:
                xml = ET.fromstring( response.content )
            except ET.XMLSyntaxError as e:
                raise FormatError( f"Can't parse XML from {url}: {e}", content_type=contenttype, body=response.content ) from e
            return XMLDocument( etag, ET.ElementTree( xml ) )
        if 'application/atom+xml' in contenttype:
            return FeedDocument( etag, response.text )

        # assume the content-type is some RDF representation
        graph = Graph()
        parse_rdf( graph, response.content, contenttype, publicID=url )
        return OSLCResource( url, graph, etag, prefixes=self.prefixes )

    def get_compact_resource(self, url, oslc_version='2.0', accept='application/x-oslc-compact+xml'):
        headers = {'Accept': accept, 'OSLC-Core-Version': oslc_version}
        response = self.transport.execute_get( url, headers=headers, intent=f"Get compact {url}" )
        if response.status_code == http.HTTPStatus.UNAUTHORIZED:
            raise HttpError( f"Not authorized to read {url}", response )
        graph = Graph()
        # the compact representation is RDF/XML whatever the Content-Type says
        parse_rdf( graph, response.content, 'application/rdf+xml', publicID=url )
        return Compact( url, graph, response.headers.get('ETag'), prefixes=self.prefixes )

    def put_resource(self, resource, etag=None, oslc_version='2.0'):
        url = resource.get_uri()
        etag = etag or resource.etag
        headers = {'OSLC-Core-Version': oslc_version}
        if etag:
            headers['If-Match'] = etag
        response = self.transport.execute_put_rdf_xml( url, data=resource.serialize('application/rdf+xml'), headers=headers,
                                                        raise_for_status=False, intent=f"Update {url}" )
        if response.status_code not in (http.HTTPStatus.OK, http.HTTPStatus.CREATED):
            raise RequestFailedError( f"Failed to update resource {url}", response )
        resource.etag = response.headers.get('ETag', resource.etag)
        return resource

    def create_resource(self, resource_type, resource, oslc_version='2.0'):
        factory = self._provider().creation_factory( resource_type )
        if not factory:
            raise DiscoveryError( f"No creation factory found for {resource_type}", step='creation factory', url=self._provider().get_uri() )
        response = self.transport.execute_post_rdf_xml( factory, data=resource.serialize('application/rdf+xml'),
                                                        headers={'OSLC-Core-Version': oslc_version},
                                                        raise_for_status=False, intent=f"Create {resource_type}" )
        if response.status_code not in (http.HTTPStatus.OK, http.HTTPStatus.CREATED):
            raise RequestFailedError( f"Failed to create resource at {factory}", response )
        location = response.headers.get('Location')
        if not location:
            raise RequestFailedError( f"Create at {factory} returned no Location", response )
        return self.get_resource( location )

    def delete_resource(self, resource, oslc_version='2.0'):
        url = resource.get_uri()
        headers = {
            'OSLC-Core-Version': oslc_version,
            'X-Jazz-CSRF-Prevent': self.transport.get_cookie( 'JSESSIONID', '1' ),
        }
        response = self.transport.execute_delete( url, headers=headers, raise_for_status=False, intent=f"Delete {url}" )
        if response.status_code not in (http.HTTPStatus.OK, http.HTTPStatus.NO_CONTENT):
            raise RequestFailedError( f"Failed to delete resource {url}", response )
        return None

    def query(self, resource_type, prefix=None, select=None, where=None, order_by=None, **kwargs):
        qb = self._provider().query_base( resource_type )
        if not qb:
            raise DiscoveryError( f"No query capability found for {resource_type}", step='query capability', url=self._provider().get_uri() )
        return self.query_with_base( qb, prefix=prefix, select=select, where=where, order_by=order_by, **kwargs )

    def query_with_base(self, query_base, prefix=None, select=None, where=None, order_by=None, *, max_pages=None, progressbar=False):
        '''
        Run an OSLC query and merge every page (following oslc:nextPage) into one graph.

        max_pages stops after that many pages; a page URL seen before always stops the loop.
        '''
        params = {}
        for name, value in (('oslc.prefix', prefix), ('oslc.select', select), ('oslc.where', where), ('oslc.orderBy', order_by)):
            if value:
                params[name] = value
        params['oslc.paging'] = 'false'
        headers = {'OSLC-Core-Version': '2.0', 'Accept': 'application/rdf+xml', 'X-Jazz-CSRF-Prevent': '1'}

        result = Graph()
        seen = set()
        pages = 0
        url = query_base
        pbar = tqdm.tqdm(initial=0, unit=" pages", desc="Query pages") if progressbar else None
        try:
            while url:
                if url in seen:
                    logger.warning( f"Query page {url} already retrieved - stopping" )
                    break
                if max_pages is not None and pages >= max_pages:
                    logger.warning( f"Stopped after {pages} pages, next page {url} not retrieved" )
                    break
                seen.add(url)
                response = self.transport.execute_get( url, params=params if pages == 0 else None, headers=headers,
                                                        raise_for_status=False, intent=f"Query page {pages+1}" )
                if response.status_code != http.HTTPStatus.OK:
                    raise RequestFailedError( f"Failed to query {url}", response )
                page = Graph()
                parse_rdf( page, response.content, response.headers.get('Content-Type'), publicID=response.url )
                result += page
                pages += 1
                if pbar is not None:
                    pbar.update(1)
                url = self._next_page( page, response.url, query_base )
        finally:
            if pbar is not None:
                pbar.close()
        logger.info( f"Query {query_base} returned {len(result)} triples in {pages} pages" )
        return result

    @staticmethod
    def _next_page(page, pageurl, query_base):
        for subject in (pageurl, query_base):
            nextpage = page.value( URIRef(subject), OSLC.nextPage )
            if nextpage is not None:
                return str(nextpage)
        for nextpage in page.objects( None, OSLC.nextPage ):
            return str(nextpage)
        return None

    def query_resources(self, resource_type, prefix=None, select=None, where=None, order_by=None, **kwargs):
        graph = self.query( resource_type, prefix=prefix, select=select, where=where, order_by=order_by, **kwargs )
        return self.query_resources_from_graph( graph )

    def query_resources_from_graph(self, graph):
        '''One OSLCResource per rdfs:member of a query result, each with its own graph'''
        resources = []
        seen = set()
        for member in graph.objects( None, RDFS.member ):
            # a member can be listed by both the query base and the page
            if member in seen:
                continue
            seen.add( member )
            membergraph = Graph()
            for triple in graph.triples( (member, None, None) ):
                membergraph.add( triple )
            resources.append( OSLCResource( member, membergraph, prefixes=self.prefixes ) )
        return resources

    def get_owner(self, url):
        if url in self._owners:
            return self._owners[url]
        response = self.transport.execute_get( url, headers={'Accept': 'application/rdf+xml'}, raise_for_status=False, intent=f"Get owner {url}" )
        if response.status_code != http.HTTPStatus.OK:
            return 'Unknown'
        contentlocation = response.headers.get('Content-Location', url)
        graph = Graph()
        parse_rdf( graph, response.content, response.headers.get('Content-Type'), publicID=url )
        name = graph.value( URIRef(contentlocation), FOAF.name )
        if name is None:
            return 'Unknown'
        self._owners[url] = str(name)
        return self._owners[url]

    def _provider(self):
        if self.service_provider is None:
            raise DiscoveryError( "No service provider - call use() first", step='service provider' )
        return self.service_provider
