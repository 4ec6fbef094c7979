import json

import pytest
from httpx import ASGITransport, AsyncClient

from threaded_correlation_id.app import create_app
from threaded_correlation_id.client import create_client
from threaded_correlation_id.config import AppSettings
from threaded_correlation_id.context import get_correlation_id

pytestmark = pytest.mark.asyncio

settings = AppSettings(downstream_base_url='http://downstream', fan_out_timeout_seconds=5)


@pytest.fixture()
def app(executor, downstream):
    with create_client(base_url=settings.downstream_base_url, transport=downstream) as client:
        yield create_app(settings=settings, client=client, executor=executor)


@pytest.fixture()
def failing_app(executor, failing_downstream):
    with create_client(base_url=settings.downstream_base_url, transport=failing_downstream) as client:
        yield create_app(settings=settings, client=client, executor=executor)


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url='http://test')


async def test_info_returns_request_id(app):
    async with _client(app) as client:
        response = await client.get('/api/info', headers={'X-Request-ID': 'abc123'})

    assert response.status_code == 200
    assert response.json() == {'requestId': 'abc123'}
    assert response.headers['X-Request-ID'] == 'abc123'


async def test_async_fan_out_propagates_request_id(app, seen_headers):
    async with _client(app) as client:
        response = await client.get('/api/info/async', headers={'X-Request-ID': 'test-trace-123'})

    assert response.status_code == 200
    assert response.json() == {'call1': 'test-trace-123', 'call2': 'test-trace-123'}
    assert [headers['x-request-id'] for headers in seen_headers] == ['test-trace-123', 'test-trace-123']
    assert [headers['x-session-id'] for headers in seen_headers] == ['test-trace-123', 'test-trace-123']
    assert get_correlation_id() is None


async def test_async_fan_out_with_generated_request_id(app):
    async with _client(app) as client:
        response = await client.get('/api/info/async')

    request_id = response.headers['X-Request-ID']
    assert response.json() == {'call1': request_id, 'call2': request_id}


async def test_async_fan_out_reports_downstream_failures(failing_app):
    async with _client(failing_app) as client:
        response = await client.get('/api/info/async', headers={'X-Request-ID': 'test-trace-123'})

    assert response.status_code == 200
    body = response.json()
    assert set(body) == {'call1', 'call2'}
    assert all(value.startswith('Failed to fetch data:') for value in body.values())


async def test_restclient_returns_downstream_body(app, seen_headers):
    async with _client(app) as client:
        response = await client.get('/api/info/restclient', headers={'X-Request-ID': 'abc123'})

    assert response.status_code == 200
    assert json.loads(response.json()['response']) == {'requestId': 'abc123'}
    assert seen_headers[0]['x-request-id'] == 'abc123'


async def test_restclient_reports_downstream_failure(failing_app):
    async with _client(failing_app) as client:
        response = await client.get('/api/info/restclient')

    assert response.status_code == 200
    assert response.json()['response'].startswith('Failed to fetch data:')
