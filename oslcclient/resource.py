##
## © Copyright 2021- IBM Inc. All rights reserved
# SPDX-License-Identifier: MIT
##

import logging

from rdflib import BNode, Graph, Literal, URIRef
from rdflib.term import Identifier

from .namespaces import DCTERMS, OSLC, RTC_CM, RTC_EXT, DEFAULT_PREFIXES

logger = logging.getLogger(__name__)

# work item properties whose local names contain dots, so they can't be written back as RDF/XML
UNSERIALIZABLE_PREDICATES = [
    RTC_EXT['com.ibm.team.apt.attribute.complexity'],
    RTC_EXT['com.ibm.team.apt.attribute.acceptance'],
    RTC_CM['com.ibm.team.workitem.linktype.relatedworkitem.related'],
    RTC_CM['com.ibm.team.workitem.linktype.resolvesworkitem.resolves'],
    RTC_CM['com.ibm.team.build.linktype.reportedWorkItems.com.ibm.team.build.common.link.reportedAgainstBuilds'],
    RTC_CM['com.ibm.team.enterprise.promotion.linktype.promotedBuildMaps.promotedBuildMaps'],
    RTC_CM['com.ibm.team.enterprise.promotion.linktype.promotionBuildResult.promotionBuildResult'],
    RTC_CM['com.ibm.team.enterprise.promotion.linktype.promotionDefinition.promotionDefinition'],
    RTC_CM['com.ibm.team.enterprise.promotion.linktype.resultWorkItem.promoted'],
]


# Content-Type -> rdflib parser name
RDF_FORMATS = {
    'application/rdf+xml':              'xml',
    'application/x-oslc-compact+xml':   'xml',
    'text/turtle':                      'turtle',
    'application/x-turtle':             'turtle',
    'application/ld+json':              'json-ld',
    'application/n-triples':            'nt',
    'text/n3':                          'n3',
}

def rdf_format(content_type, default='xml'):
    mimetype = (content_type or '').split(';', 1)[0].strip().lower()
    return RDF_FORMATS.get(mimetype, default)

def parse_rdf(graph, data, content_type, publicID=None):
    '''
    Parse data into graph. A parse failure is logged and leaves whatever was parsed so far.
    '''
    fmt = rdf_format(content_type)
    try:
        graph.parse(data=data, format=fmt, publicID=publicID)
        return True
    except Exception as e:
        logger.error( f"Failed to parse {content_type} ({fmt}) from {publicID}: {e}" )
        return False


def _to_term(value):
    if isinstance(value, Identifier):
        return value
    return Literal(value)


class OSLCResource():
    '''
    A view of one subject in an RDF graph.

    Property names can be URIRefs, full URIs or prefixed names like dcterms:title.
    Setting a property replaces every existing value; setting None removes it.
    '''
    def __init__(self, uri=None, graph=None, etag=None, *, prefixes=DEFAULT_PREFIXES):
        self.prefixes = prefixes
        self.etag = etag
        if uri:
            self.uri = URIRef(str(uri))
            self.graph = graph if graph is not None else Graph()
            for predicate in UNSERIALIZABLE_PREDICATES:
                self.graph.remove((self.uri, predicate, None))
        else:
            self.uri = BNode()
            self.graph = Graph()

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.uri}>"

    def get_uri(self):
        return str(self.uri)

    def _predicate(self, prop):
        if isinstance(prop, URIRef):
            return prop
        return self.prefixes.expand(prop)

    def get_terms(self, prop):
        return list(self.graph.objects(self.uri, self._predicate(prop)))

    def get(self, prop):
        '''
        None for no value, a string for one value, a list of strings for several
        '''
        values = [str(v) for v in self.get_terms(prop)]
        if not values:
            return None
        if len(values) == 1:
            return values[0]
        return values

    def get_all(self, prop):
        return [str(v) for v in self.get_terms(prop)]

    def get_one(self, prop):
        values = self.get_all(prop)
        return values[0] if values else None

    def set(self, prop, value):
        predicate = self._predicate(prop)
        self.graph.remove((self.uri, predicate, None))
        if value is None:
            return
        values = value if isinstance(value, (list, tuple, set)) else [value]
        for v in values:
            self.graph.add((self.uri, predicate, _to_term(v)))

    def get_identifier(self):
        return self.get(DCTERMS.identifier)

    def get_title(self):
        return self.get_one(DCTERMS.title)

    def get_short_title(self):
        return self.get(OSLC.shortTitle)

    def get_description(self):
        return self.get_one(DCTERMS.description)

    def set_title(self, value):
        self.set(DCTERMS.title, Literal(value))

    def set_description(self, value):
        self.set(DCTERMS.description, Literal(value))

    def get_link_types(self):
        return {str(p) for p, o in self.graph.predicate_objects(self.uri) if isinstance(o, URIRef)}

    def get_properties(self):
        result = {}
        for p, o in self.graph.predicate_objects(self.uri):
            key = str(p)
            if key in result:
                if not isinstance(result[key], list):
                    result[key] = [result[key]]
                result[key].append(str(o))
            else:
                result[key] = str(o)
        return result

    def serialize(self, format='application/rdf+xml'):
        return self.graph.serialize(format=format)


class Compact(OSLCResource):
    '''OSLC resource preview: titles, icon and the small/large preview documents'''

    def get_icon(self):
        return self.get(OSLC.icon)

    def get_icon_title(self):
        return self.get(OSLC.iconTitle)

    def get_icon_src_set(self):
        return self.get(OSLC.iconSrcSet)

    def _preview(self, predicate):
        preview = self.graph.value(self.uri, predicate)
        if preview is None:
            return None
        document = self.graph.value(preview, OSLC.document)
        hint_height = self.graph.value(preview, OSLC.hintHeight)
        hint_width = self.graph.value(preview, OSLC.hintWidth)
        return {
            'document': None if document is None else str(document),
            'hint_height': None if hint_height is None else str(hint_height),
            'hint_width': None if hint_width is None else str(hint_width),
        }

    def get_small_preview(self):
        return self._preview(OSLC.smallPreview)

    def get_large_preview(self):
        return self._preview(OSLC.largePreview)
