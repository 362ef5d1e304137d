import pytest
from rdflib import URIRef

from oslcclient.namespaces import DCTERMS, DEFAULT_PREFIXES, OSLC_CM, PrefixMap


def test_expand():
    assert DEFAULT_PREFIXES.expand('dcterms:title') == DCTERMS.title
    assert DEFAULT_PREFIXES.expand('oslc_cm:ChangeRequest') == OSLC_CM.ChangeRequest
    assert DEFAULT_PREFIXES.expand('http://example.com/ns#thing') == URIRef('http://example.com/ns#thing')
    assert DEFAULT_PREFIXES.expand(None) is None


def test_expand_unknown_prefix():
    with pytest.raises(KeyError):
        DEFAULT_PREFIXES.expand('nope:thing')
    assert DEFAULT_PREFIXES.expand('nope:thing', noexception=True) == URIRef('nope:thing')


def test_compact_uses_longest_namespace():
    prefixes = PrefixMap(ex='http://example.com/', exns='http://example.com/ns#')
    assert prefixes.compact('http://example.com/ns#thing') == 'exns:thing'
    assert prefixes.compact('http://example.com/other') == 'ex:other'
    assert prefixes.compact('http://elsewhere.com/x') == 'http://elsewhere.com/x'


def test_is_prefixed():
    assert DEFAULT_PREFIXES.is_prefixed('oslc_cm:Defect')
    assert not DEFAULT_PREFIXES.is_prefixed('Defect')
    assert not DEFAULT_PREFIXES.is_prefixed('http://open-services.net/ns/cm#Defect')
    assert not DEFAULT_PREFIXES.is_prefixed('nope:Defect')


def test_prefix_map_is_read_only():
    with pytest.raises(TypeError):
        DEFAULT_PREFIXES['ex'] = 'http://example.com/'
    extended = DEFAULT_PREFIXES.with_prefixes(ex='http://example.com/')
    assert extended.expand('ex:a') == URIRef('http://example.com/a')
    assert 'ex' not in DEFAULT_PREFIXES
    assert extended.namespace('ex').a == URIRef('http://example.com/a')
