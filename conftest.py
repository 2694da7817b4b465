import json

import pytest

from api_client import RemoteDataClient
from app import create_app
from config import TestingConfig
from query_cache import QueryCache

BASE_URL = TestingConfig.API_BASE_URL


class FakeResponse:
    def __init__(self, status_code=200, data=None):
        self.status_code = status_code
        self._data = data
        self.content = b'' if data is None else json.dumps(data).encode()
        self.text = self.content.decode()
        self.reason = 'OK' if status_code < 400 else 'Error'

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._data is None:
            raise ValueError('No JSON body')
        return self._data


class FakeBackend:
    """Stands in for requests.Session; routes are (method, path) pairs."""

    def __init__(self):
        self.routes = {}
        self.calls = []
        self.headers = {}

    def on(self, method, path, data=None, status=200):
        self.routes[(method, path)] = (status, data)

    def request(self, method, url, params=None, json=None, timeout=None):
        path = url[len(BASE_URL):] if url.startswith(BASE_URL) else url
        self.calls.append((method, path, params, json))
        if (method, path) not in self.routes:
            return FakeResponse(404, {'message': f'No route for {method} {path}'})
        status, data = self.routes[(method, path)]
        if isinstance(data, Exception):
            raise data
        if callable(data):
            data = data(params=params, json=json)
        return FakeResponse(status, data)

    def count(self, method, path):
        return len([c for c in self.calls if c[0] == method and c[1] == path])

    def last(self, method, path):
        matching = [c for c in self.calls if c[0] == method and c[1] == path]
        return matching[-1] if matching else None


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def client(backend, clock):
    return RemoteDataClient(BASE_URL, session=backend, cache=QueryCache(stale_time=300, clock=clock))


@pytest.fixture
def flask_app(backend):
    return create_app(TestingConfig, session=backend)


@pytest.fixture
def web(flask_app):
    return flask_app.test_client()


@pytest.fixture
def two_cases():
    return [
        {
            'id': 1, 'accountNumber': 'ACC-001', 'caseName': 'Smith Ltd', 'debtorName': 'John Smith',
            'organisationId': 1, 'organisationName': 'Acme Lending', 'status': 'active',
            'stage': 'pre-legal', 'originalAmount': '100.00', 'costsAdded': '10.00',
            'payments': [{'amount': '20.00'}],
        },
        {
            'id': 2, 'accountNumber': 'ACC-002', 'caseName': 'Jones Builders', 'debtorName': 'Amy Jones',
            'organisationId': 2, 'organisationName': 'Bridge Finance', 'status': 'closed',
            'stage': 'judgment', 'originalAmount': '200.00', 'interestAdded': '5.00',
            'totalPayments': '205.00', 'outstandingAmount': '0.00',
        },
    ]
