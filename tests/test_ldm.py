import json
import logging
import urllib.parse

import httpretty
import pytest

from oslcclient.exceptions import FormatError, HttpError, UnauthorizedError
from oslcclient.ldm import (
    INVERSE_LINK_TYPES, InvertedLinkTriple, LDMClient, LinkTriple, build_discover_links_turtle,
    build_incoming_links_sparql, parse_sparql_results,
)

LDM = 'http://jazz.example.com:9443/ldx'
LQE = 'http://jazz.example.com:9443/lqe'
REQUIREMENT = 'http://jazz.example.com:9443/rm/resources/TX_1'
WORKITEM = 'http://jazz.example.com:9443/ccm/resource/itemName/com.ibm.team.workitem.WorkItem/42'
TESTCASE = 'http://jazz.example.com:9443/qm/oslc_qm/contexts/_q/resources/TestCase/7'

CM = 'http://open-services.net/ns/cm#'
RM = 'http://open-services.net/ns/rm#'
QM = 'http://open-services.net/ns/qm#'

LINKS_TTL = f'''
<{WORKITEM}> <{CM}implementsRequirement> <{REQUIREMENT}> .
<{TESTCASE}> <{QM}validatesRequirement> <{REQUIREMENT}> .
'''

SPARQL_JSON = {
    'head': {'vars': ['s', 'p', 'o']},
    'results': {'bindings': [
        {'s': {'type': 'uri', 'value': WORKITEM}, 'p': {'type': 'uri', 'value': CM+'implementsRequirement'}, 'o': {'type': 'uri', 'value': REQUIREMENT}},
        {'s': {'type': 'uri', 'value': TESTCASE}, 'p': {'type': 'uri', 'value': QM+'validatesRequirement'}},
    ]},
}


@pytest.fixture
def ldm_client(transport):
    return LDMClient(LDM, transport=transport)


@pytest.fixture
def lqe_client(anonymous_transport):
    return LDMClient(LQE + '/', transport=anonymous_transport)


def test_discover_links_turtle_body():
    body = build_discover_links_turtle([REQUIREMENT, WORKITEM], [CM+'implementsRequirement'])
    assert '@prefix oslc_ldm: <http://open-services.net/ns/ldm#> .' in body
    assert f'oslc_ldm:resources <{REQUIREMENT}>, <{WORKITEM}>' in body
    assert f'oslc_ldm:linkPredicates <{CM}implementsRequirement>' in body
    assert 'linkPredicates' not in build_discover_links_turtle([REQUIREMENT])


def test_incoming_links_sparql():
    sparql = build_incoming_links_sparql([REQUIREMENT], [CM+'implementsRequirement'])
    assert sparql.startswith('SELECT ?s ?p ?o WHERE {')
    assert f'VALUES ?o {{ <{REQUIREMENT}> }}' in sparql
    assert f'VALUES ?p {{ <{CM}implementsRequirement> }}' in sparql
    assert '?s ?p ?o .' in sparql
    assert 'VALUES ?p' not in build_incoming_links_sparql([REQUIREMENT])


@pytest.mark.parametrize(
    'results',
    [
        SPARQL_JSON,
        {'bindings': SPARQL_JSON['results']['bindings']},
        {'results': [
            {'subject': WORKITEM, 'predicate': CM+'implementsRequirement', 'object': REQUIREMENT},
            {'s': TESTCASE, 'p': QM+'validatesRequirement'},
        ]},
    ]
)
def test_parse_sparql_results_shapes(results):
    assert parse_sparql_results(results) == [LinkTriple(WORKITEM, CM+'implementsRequirement', REQUIREMENT)]


def test_parse_sparql_results_unexpected():
    with pytest.raises(FormatError):
        parse_sparql_results({'boolean': True})


@httpretty.activate
def test_incoming_links_via_ldm(ldm_client, counting_responses):
    discover = counting_responses((200, {'Content-Type': 'text/turtle'}, LINKS_TTL))
    httpretty.register_uri(httpretty.POST, f'{LDM}/discover-links', body=discover)

    links = ldm_client.get_incoming_links([REQUIREMENT], configuration_context='http://jazz.example.com:9443/gc/configuration/1')

    assert sorted(links) == sorted([
        LinkTriple(WORKITEM, CM+'implementsRequirement', REQUIREMENT),
        LinkTriple(TESTCASE, QM+'validatesRequirement', REQUIREMENT),
    ])
    request = discover.calls[0]
    assert request.headers['Content-Type'] == 'text/turtle'
    assert request.headers['Accept'].startswith('text/turtle')
    assert request.headers['Configuration-Context'] == 'http://jazz.example.com:9443/gc/configuration/1'
    assert f'<{REQUIREMENT}>'.encode() in request.body


@httpretty.activate
def test_ldm_falls_back_to_form_fields(ldm_client, counting_responses):
    discover = counting_responses(
        (415, {'Content-Type': 'text/plain'}, 'unsupported media type'),
        (400, {'Content-Type': 'text/plain'}, 'objectResources not supported'),
        (200, {'Content-Type': 'text/turtle'}, LINKS_TTL),
    )
    httpretty.register_uri(httpretty.POST, f'{LDM}/discover-links', body=discover)

    links = ldm_client.get_incoming_links([REQUIREMENT], [CM+'implementsRequirement'])

    assert len(links) == 2
    assert len(discover.calls) == 3
    assert discover.calls[1].parsed_body == {'objectResources': [REQUIREMENT], 'predicateFilters': [CM+'implementsRequirement']}
    assert discover.calls[2].parsed_body == {'objectConceptResources': [REQUIREMENT], 'predicateFilters': [CM+'implementsRequirement']}


@httpretty.activate
def test_ldm_every_attempt_fails(ldm_client):
    httpretty.register_uri(httpretty.POST, f'{LDM}/discover-links', status=500, body='down')
    with pytest.raises(HttpError) as exc_info:
        ldm_client.get_incoming_links([REQUIREMENT])
    assert exc_info.value.status == 500


@httpretty.activate
def test_incoming_links_via_lqe(lqe_client, counting_responses):
    sparql = counting_responses((200, {'Content-Type': 'application/sparql-results+json'}, json.dumps(SPARQL_JSON)))
    httpretty.register_uri(httpretty.POST, f'{LQE}/sparql', body=sparql)

    links = lqe_client.get_incoming_links([REQUIREMENT])

    assert lqe_client.is_lqe
    assert links == [LinkTriple(WORKITEM, CM+'implementsRequirement', REQUIREMENT)]
    request = sparql.calls[0]
    assert request.headers['Content-Type'] == 'application/sparql-query'
    assert request.headers['Accept'] == 'application/sparql-results+json'
    assert request.headers['X-Jazz-CSRF-Prevent'] == '1'
    assert request.body.decode('utf-8') == build_incoming_links_sparql([REQUIREMENT])


@httpretty.activate
def test_lqe_retries_form_encoded(lqe_client, counting_responses):
    sparql = counting_responses(
        (400, {'Content-Type': 'text/plain'}, 'The request does not contain a query string'),
        (200, {'Content-Type': 'application/json'}, json.dumps(SPARQL_JSON)),
    )
    httpretty.register_uri(httpretty.POST, f'{LQE}/sparql', body=sparql)

    links = lqe_client.get_incoming_links([REQUIREMENT])

    assert len(links) == 1
    assert len(sparql.calls) == 2
    form = urllib.parse.parse_qs(sparql.calls[1].body.decode('utf-8'))
    assert form['query'] == [build_incoming_links_sparql([REQUIREMENT])]


@httpretty.activate
def test_lqe_turtle_response(lqe_client):
    httpretty.register_uri(httpretty.POST, f'{LQE}/sparql', body=LINKS_TTL, content_type='text/turtle')
    assert len(lqe_client.get_incoming_links([REQUIREMENT])) == 2


@pytest.mark.parametrize('body', [json.dumps(SPARQL_JSON), LINKS_TTL])
@httpretty.activate
def test_lqe_sniffs_untyped_response(lqe_client, body):
    httpretty.register_uri(httpretty.POST, f'{LQE}/sparql', body=body, content_type='text/plain')
    assert len(lqe_client.get_incoming_links([REQUIREMENT])) >= 1


@httpretty.activate
def test_lqe_unexpected_response(lqe_client):
    httpretty.register_uri(httpretty.POST, f'{LQE}/sparql', body='Down for maintenance', content_type='text/html')
    with pytest.raises(FormatError) as exc_info:
        lqe_client.get_incoming_links([REQUIREMENT])
    assert exc_info.value.content_type.startswith('text/html')


@httpretty.activate
def test_lqe_unauthorized(lqe_client):
    httpretty.register_uri(httpretty.POST, f'{LQE}/sparql', status=401, body='Unauthorized',
                           adding_headers={'WWW-Authenticate': 'OAuth realm="lqe"'})
    with pytest.raises(UnauthorizedError) as exc_info:
        lqe_client.get_incoming_links([REQUIREMENT])
    assert 'OAuth Authorization' in str(exc_info.value)
    assert exc_info.value.status == 401


@httpretty.activate
def test_lqe_server_error(lqe_client):
    httpretty.register_uri(httpretty.POST, f'{LQE}/sparql', status=503, body='try later')
    with pytest.raises(HttpError):
        lqe_client.get_incoming_links([REQUIREMENT])


@pytest.mark.parametrize(
    ('targets', 'link_types'),
    [
        ([], None),
        (REQUIREMENT, None),
        ([''], None),
        ([REQUIREMENT], CM+'implementsRequirement'),
        ([REQUIREMENT], [None]),
    ]
)
def test_incoming_links_argument_checks(ldm_client, targets, link_types):
    with pytest.raises(ValueError):
        ldm_client.get_incoming_links(targets, link_types)


def test_base_url_required(transport):
    with pytest.raises(ValueError):
        LDMClient('', transport=transport)


def test_invert(ldm_client):
    triples = [
        LinkTriple(WORKITEM, CM+'implementsRequirement', REQUIREMENT),
        {'sourceURL': TESTCASE, 'linkType': QM+'validatesRequirement', 'targetURL': REQUIREMENT},
        {'source_url': WORKITEM, 'link_type': CM+'tracksRequirement', 'target_url': REQUIREMENT},
    ]
    assert ldm_client.invert(triples) == [
        InvertedLinkTriple(REQUIREMENT, RM+'implementedBy', WORKITEM),
        InvertedLinkTriple(REQUIREMENT, RM+'validatedBy', TESTCASE),
        InvertedLinkTriple(REQUIREMENT, RM+'trackedBy', WORKITEM),
    ]


def test_invert_reverse_lookup(ldm_client):
    # validatedBy is only ever a value in the table
    assert RM+'validatedBy' not in INVERSE_LINK_TYPES
    assert ldm_client.inverse_link_type(RM+'validatedBy') == QM+'validatesRequirement'


def test_ambiguous_inverse_warns_once(ldm_client, caplog):
    caplog.set_level(logging.WARNING, logger='oslcclient.ldm')
    for _ in range(3):
        ldm_client.inverse_link_type(QM+'relatedChangeRequest')
    warnings = [r for r in caplog.records if 'Multiple inverse link type mappings' in r.getMessage()]
    assert len(warnings) == 1


def test_unknown_link_type_is_kept(ldm_client, caplog):
    caplog.set_level(logging.WARNING, logger='oslcclient.ldm')
    unknown = 'http://example.com/ns#dependsOn'
    inverted = ldm_client.invert([(WORKITEM, unknown, REQUIREMENT), (TESTCASE, unknown, REQUIREMENT)])
    assert [t.inverse_link_type for t in inverted] == [unknown, unknown]
    warnings = [r for r in caplog.records if 'No inverse link type mapping' in r.getMessage()]
    assert len(warnings) == 1


@pytest.mark.parametrize(
    'triples',
    [
        'not a list',
        [(WORKITEM, None, REQUIREMENT)],
        [{'sourceURL': WORKITEM, 'targetURL': REQUIREMENT}],
    ]
)
def test_invert_argument_checks(ldm_client, triples):
    with pytest.raises(ValueError):
        ldm_client.invert(triples)


@httpretty.activate
def test_lqe_results_mentioning_unauthorized(lqe_client):
    source = 'http://jazz.example.com:9443/rm/resources/unauthorized-access-req'
    results = {'results': {'bindings': [
        {'s': {'value': source}, 'p': {'value': RM+'satisfies'}, 'o': {'value': REQUIREMENT}},
    ]}}
    httpretty.register_uri(httpretty.POST, f'{LQE}/sparql', body=json.dumps(results), content_type='application/sparql-results+json')

    links = lqe_client.get_incoming_links([REQUIREMENT])

    assert links == [LinkTriple(source, RM+'satisfies', REQUIREMENT)]


@httpretty.activate
def test_lqe_unauthorized_page(lqe_client):
    httpretty.register_uri(httpretty.POST, f'{LQE}/sparql', body='<html>You are unauthorized to use LQE</html>', content_type='text/html')
    with pytest.raises(UnauthorizedError) as exc_info:
        lqe_client.get_incoming_links([REQUIREMENT])
    assert exc_info.value.status == 200


def test_one_to_one_inverses_round_trip(ldm_client):
    pairs = [(k, v) for k, v in INVERSE_LINK_TYPES.items() if INVERSE_LINK_TYPES.get(v) == k]
    assert (CM+'implementsRequirement', RM+'implementedBy') in pairs
    assert (RM+'decomposes', RM+'decomposedBy') in pairs
    for link_type, inverse in pairs:
        assert ldm_client.inverse_link_type(link_type) == inverse
        assert ldm_client.inverse_link_type(inverse) == link_type
