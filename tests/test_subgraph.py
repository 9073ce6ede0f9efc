"""Tests for the domain indexer client and lookup endpoint."""

import pytest
import requests
from fastapi.testclient import TestClient

from api import app
from api.dependencies import get_subgraph
from subgraph import SubgraphClient, SubgraphError, create_client
from tests.conftest import SELLER, TOKEN_CONTRACT, CHAIN_ID

OTHER_CHAIN = "eip155:1"

class FakeResponse:
    def __init__(self, body, status_code=200):
        self.body = body
        self.status_code = status_code

    def json(self):
        if isinstance(self.body, Exception):
            raise self.body
        return self.body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error", response=self)

class FakeSession:
    """Stands in for requests.Session, answering every POST with one response."""

    def __init__(self, response=None, error=None):
        self.headers = {}
        self.response = response
        self.error = error
        self.requests = []

    def post(self, url, json=None, timeout=None):
        self.requests.append({'url': url, 'json': json, 'timeout': timeout})
        if self.error:
            raise self.error
        return self.response

def names_body(*items):
    return {'data': {'names': {'items': list(items)}}}

def name_item(name, *tokens):
    return {
        'name': name,
        'tokens': [
            {
                'tokenId': token_id,
                'tokenAddress': TOKEN_CONTRACT.upper().replace('0X', '0x'),
                'networkId': network,
                'ownerAddress': f"{network}:{SELLER}"
            }
            for token_id, network in tokens
        ]
    }

def client_with(session):
    client = SubgraphClient("https://indexer.example/", api_key="key", timeout=3)
    session.headers.update(client.session.headers)
    client.session = session
    return client

def test_owned_domains_filtered_by_chain():
    session = FakeSession(FakeResponse(names_body(
        name_item("alpha.eth", ("1", CHAIN_ID), ("2", OTHER_CHAIN)),
        name_item("beta.eth", ("3", CHAIN_ID)),
    )))
    client = client_with(session)

    domains = client.fetch_owned_domains(SELLER.upper().replace('0X', '0x'), CHAIN_ID)

    assert domains == [
        {'token_id': '1', 'token_contract': TOKEN_CONTRACT, 'chain_id': CHAIN_ID, 'name': 'alpha.eth'},
        {'token_id': '3', 'token_contract': TOKEN_CONTRACT, 'chain_id': CHAIN_ID, 'name': 'beta.eth'},
    ]
    request = session.requests[0]
    assert request['url'] == "https://indexer.example/graphql"
    assert request['json']['variables'] == {'ownedBy': [f"{CHAIN_ID}:{SELLER}"], 'take': 50}
    assert request['timeout'] == 3
    assert session.headers['Api-Key'] == "key"

@pytest.mark.parametrize("session", [
    FakeSession(error=requests.exceptions.ConnectionError("refused")),
    FakeSession(error=requests.exceptions.Timeout("slow")),
    FakeSession(FakeResponse({'message': 'down'}, status_code=502)),
    FakeSession(FakeResponse(ValueError("not json"))),
    FakeSession(FakeResponse({'errors': [{'message': 'bad query'}]})),
    FakeSession(FakeResponse({'data': {'names': None}})),
])
def test_indexer_failures_raise_subgraph_error(session):
    with pytest.raises(SubgraphError):
        client_with(session).fetch_owned_domains(SELLER, CHAIN_ID)

def test_client_disabled_without_url(settings):
    settings['subgraph_api_url'] = ''
    assert create_client(settings) is None

    settings['subgraph_api_url'] = 'https://indexer.example'
    assert isinstance(create_client(settings), SubgraphClient)

@pytest.fixture
def indexer():
    """Lookup endpoint wired to a fake indexer."""
    session = FakeSession(FakeResponse(names_body(name_item("alpha.eth", ("7", CHAIN_ID)))))
    fake = client_with(session)
    app.dependency_overrides[get_subgraph] = lambda: fake
    yield session
    app.dependency_overrides.clear()

def test_domains_endpoint(store, indexer):
    response = TestClient(app).get("/subgraph/domains", params={'owner': SELLER, 'chain_id': CHAIN_ID})
    assert response.status_code == 200, response.text
    assert response.json() == {'domains': [
        {'token_id': '7', 'token_contract': TOKEN_CONTRACT, 'chain_id': CHAIN_ID, 'name': 'alpha.eth'}
    ]}

@pytest.mark.parametrize("params, field", [
    ({'chain_id': CHAIN_ID}, 'owner'),
    ({'owner': SELLER}, 'chain_id'),
    ({'owner': '0x1234', 'chain_id': CHAIN_ID}, 'owner'),
    ({'owner': SELLER, 'chain_id': '97476'}, 'chain_id'),
])
def test_domains_endpoint_rejects_bad_input(store, indexer, params, field):
    response = TestClient(app).get("/subgraph/domains", params=params)
    assert response.status_code == 400
    error = response.json()['error']
    assert error['kind'] == 'validation'
    assert [d['field'] for d in error['details']] == [field]
    assert indexer.requests == []

def test_domains_endpoint_indexer_failure(store, indexer):
    indexer.error = requests.exceptions.ConnectionError("refused")
    response = TestClient(app).get("/subgraph/domains", params={'owner': SELLER, 'chain_id': CHAIN_ID})
    assert response.status_code == 500
    assert response.json()['error'] == {'kind': 'internal', 'message': 'Failed to fetch domains'}

def test_domains_endpoint_unconfigured(store):
    app.dependency_overrides[get_subgraph] = lambda: None
    try:
        response = TestClient(app).get("/subgraph/domains", params={'owner': SELLER, 'chain_id': CHAIN_ID})
    finally:
        app.dependency_overrides.clear()
    assert response.status_code == 503
    assert response.json()['error']['kind'] == 'unavailable'
