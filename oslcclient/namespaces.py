##
## © Copyright 2021- IBM Inc. All rights reserved
# SPDX-License-Identifier: MIT
##

import collections.abc
import logging

from rdflib import Namespace, URIRef

logger = logging.getLogger(__name__)

RDF = Namespace('http://www.w3.org/1999/02/22-rdf-syntax-ns#')
RDFS = Namespace('http://www.w3.org/2000/01/rdf-schema#')
DCTERMS = Namespace('http://purl.org/dc/terms/')
FOAF = Namespace('http://xmlns.com/foaf/0.1/')
OWL = Namespace('http://www.w3.org/2002/07/owl#')
OSLC = Namespace('http://open-services.net/ns/core#')
OSLC_AM = Namespace('http://open-services.net/ns/am#')
OSLC_CM = Namespace('http://open-services.net/ns/cm#')
OSLC_QM = Namespace('http://open-services.net/ns/qm#')
OSLC_RM = Namespace('http://open-services.net/ns/rm#')
OSLC_LDM = Namespace('http://open-services.net/ns/ldm#')
OSLC_AM1 = Namespace('http://open-services.net/xmlns/am/1.0/')
OSLC_CM1 = Namespace('http://open-services.net/xmlns/cm/1.0/')
OSLC_QM1 = Namespace('http://open-services.net/xmlns/qm/1.0/')
RTC_CM = Namespace('http://jazz.net/xmlns/prod/jazz/rtc/cm/1.0/')
RTC_EXT = Namespace('http://jazz.net/xmlns/prod/jazz/rtc/ext/1.0/')
RQM_QM = Namespace('http://jazz.net/ns/qm/rqm#')
RM_NAV = Namespace('http://jazz.net/ns/rm/navigation#')
ATOM = Namespace('http://www.w3.org/2005/Atom')
JD = Namespace('http://jazz.net/xmlns/prod/jazz/discovery/1.0/')
XSD = Namespace('http://www.w3.org/2001/XMLSchema#')


class PrefixMap(collections.abc.Mapping):
    '''
    Read-only prefix -> namespace URI table.

    Built once and never mutated; use with_prefixes() to get an extended copy.
    '''
    def __init__(self, prefixes=None, **kwargs):
        self._prefixes = {}
        for source in (prefixes or {}), kwargs:
            for prefix, uri in source.items():
                self._prefixes[prefix] = str(uri)

    def __getitem__(self, prefix):
        return self._prefixes[prefix]

    def __iter__(self):
        return iter(self._prefixes)

    def __len__(self):
        return len(self._prefixes)

    def __repr__(self):
        return f"PrefixMap({self._prefixes!r})"

    def with_prefixes(self, prefixes=None, **kwargs):
        result = dict(self._prefixes)
        result.update(prefixes or {})
        result.update(kwargs)
        return PrefixMap(result)

    def namespace(self, prefix):
        return Namespace(self[prefix])

    def is_prefixed(self, name):
        '''True when name looks like prefix:local with a prefix known here'''
        if name is None:
            return False
        name = str(name)
        pos_colon = name.find(':')
        return pos_colon > 0 and '/' not in name and name[:pos_colon] in self._prefixes

    def expand(self, name, noexception=False):
        '''
        Turn prefix:local into a URIRef. Full URIs (anything with a /) are returned as URIRefs unchanged.
        '''
        if name is None:
            return None
        name = str(name)
        pos_colon = name.find(':')
        if '/' not in name and pos_colon >= 0:
            prefix = name[:pos_colon]
            if prefix not in self._prefixes:
                if noexception:
                    return URIRef(name)
                raise KeyError(f"Prefix is not resolved: {name}")
            return URIRef(self._prefixes[prefix] + name[pos_colon + 1:])
        return URIRef(name.replace('{', '').replace('}', ''))

    def compact(self, uri):
        '''
        Turn a URI into prefix:local using the longest matching namespace, or return it unchanged
        '''
        if uri is None:
            return None
        uri = str(uri)
        best = None
        for prefix, ns in self._prefixes.items():
            if uri.startswith(ns) and (best is None or len(ns) > len(self._prefixes[best])):
                best = prefix
        if best is None:
            return uri
        return f"{best}:{uri[len(self._prefixes[best]):]}"


DEFAULT_PREFIXES = PrefixMap({
    'rdf':          RDF,
    'rdfs':         RDFS,
    'dcterms':      DCTERMS,
    'foaf':         FOAF,
    'owl':          OWL,
    'xsd':          XSD,
    'oslc':         OSLC,
    'oslc_am':      OSLC_AM,
    'oslc_cm':      OSLC_CM,
    'oslc_qm':      OSLC_QM,
    'oslc_rm':      OSLC_RM,
    'oslc_ldm':     OSLC_LDM,
    'oslc_am1':     OSLC_AM1,
    'oslc_cm1':     OSLC_CM1,
    'oslc_qm1':     OSLC_QM1,
    'rtc_cm':       RTC_CM,
    'rtc_ext':      RTC_EXT,
    'rqm_qm':       RQM_QM,
    'rm_nav':       RM_NAV,
    'atom':         ATOM,
    'jd':           JD,
})
