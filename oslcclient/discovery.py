##
## © Copyright 2021- IBM Inc. All rights reserved
# SPDX-License-Identifier: MIT
##

# Lookups over the discovery documents: rootservices -> catalog -> service provider -> capability.
#
# The functions take a graph and a subject and return a URI string or None; the view classes
# at the bottom wrap them for a fetched OSLCResource.

import logging

from rdflib import URIRef
from rdflib.namespace import RDF as RDFNS

from .namespaces import DCTERMS, JD, OSLC, OSLC_AM, OSLC_AM1, OSLC_CM, OSLC_CM1, OSLC_QM, OSLC_QM1, OSLC_RM, DEFAULT_PREFIXES
from .resource import OSLCResource

logger = logging.getLogger(__name__)

# rootservices predicate linking to each domain's service provider catalog
SERVICE_PROVIDERS = {
    'CM': OSLC_CM1.cmServiceProviders,
    'RM': OSLC_RM.rmServiceProviders,
    'QM': OSLC_QM1.qmServiceProviders,
    'AM': OSLC_AM1.amServiceProviders,
}

# oslc:domain of the jd:oslcCatalogs entries in a Jazz rootservices document
DOMAINS = {
    'CM': OSLC_CM,
    'RM': OSLC_RM,
    'QM': OSLC_QM,
    'AM': OSLC_AM,
}


def _first_uri(values):
    for value in values:
        return str(value)
    return None


def service_provider_catalog_uri(graph, rootservices, predicate, domain=None):
    '''
    The catalog URI linked from rootservices by predicate, or if there isn't one the first
    jd:oslcCatalogs entry whose oslc:domain is domain
    '''
    rootservices = URIRef(str(rootservices))
    catalog = graph.value(rootservices, URIRef(str(predicate)))
    if catalog is not None:
        return str(catalog)
    if domain is not None:
        for candidate in graph.objects(rootservices, JD.oslcCatalogs):
            if (candidate, OSLC.domain, URIRef(str(domain))) in graph:
                return str(candidate)
    return None


def service_provider_uri(graph, title):
    '''
    The subject whose dcterms:title is the XML literal title, exact match only
    '''
    for sp, value in graph.subject_objects(DCTERMS.title):
        if getattr(value, 'datatype', None) == RDFNS.XMLLiteral and str(value) == title:
            return str(sp)
    return None


def _capabilities(graph, provider, capability):
    for service in graph.objects(URIRef(str(provider)), OSLC.service):
        yield from graph.objects(service, capability)


def query_base(graph, provider, resource_type):
    '''
    oslc:queryBase of the first query capability with oslc:resourceType resource_type.

    "First" is the graph's iteration order, which isn't guaranteed to be document order.
    '''
    resource_type = URIRef(str(resource_type))
    for qc in _capabilities(graph, provider, OSLC.queryCapability):
        if (qc, OSLC.resourceType, resource_type) in graph:
            return _first_uri(graph.objects(qc, OSLC.queryBase))
    return None


def creation_factory(graph, provider, resource_type, *, prefixes=DEFAULT_PREFIXES):
    '''
    oslc:creation of the first creation factory for resource_type.

    A URIRef, full URI or known prefixed name must match exactly; any other string matches
    a resource type URI that ends with it (e.g. "ChangeRequest").
    '''
    exact = None
    if isinstance(resource_type, URIRef) or '/' in str(resource_type):
        exact = URIRef(str(resource_type))
    elif prefixes.is_prefixed(resource_type):
        exact = prefixes.expand(resource_type)
    for cf in _capabilities(graph, provider, OSLC.creationFactory):
        for rtype in graph.objects(cf, OSLC.resourceType):
            if (exact is not None and rtype == exact) or (exact is None and str(rtype).endswith(str(resource_type))):
                return _first_uri(graph.objects(cf, OSLC.creation))
    return None


##############################################################################################
# thin views over fetched documents

class RootServices(OSLCResource):
    def service_provider_catalog(self, predicate, domain=None):
        return service_provider_catalog_uri(self.graph, self.uri, predicate, domain)


class ServiceProviderCatalog(OSLCResource):
    def service_provider(self, title):
        return service_provider_uri(self.graph, title)


class ServiceProvider(OSLCResource):
    def query_base(self, resource_type):
        return query_base(self.graph, self.uri, self._resource_type(resource_type))

    def creation_factory(self, resource_type):
        return creation_factory(self.graph, self.uri, resource_type, prefixes=self.prefixes)

    def _resource_type(self, resource_type):
        if self.prefixes.is_prefixed(resource_type):
            return self.prefixes.expand(resource_type)
        return resource_type
