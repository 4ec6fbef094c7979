from logging.config import dictConfig

import httpx
import pytest
from fastapi import FastAPI, Request
from starlette.middleware import Middleware

from threaded_correlation_id import context
from threaded_correlation_id.config import ExecutorConfiguration
from threaded_correlation_id.context import HOST_ID_KEY, get_correlation_id, get_value
from threaded_correlation_id.executor import create_executor
from threaded_correlation_id.middleware import CorrelationIdMiddleware, is_valid_uuid4


@pytest.fixture(autouse=True, scope='session')
def _configure_logging():
    LOGGING = {
        'version': 1,
        'disable_existing_loggers': False,
        'filters': {
            'correlation_id': {'()': 'threaded_correlation_id.CorrelationIdFilter'},
        },
        'formatters': {
            'full': {
                'class': 'logging.Formatter',
                'datefmt': '%H:%M:%S',
                'format': '[%(correlation_id)s] [%(threadName)s] %(message)s',
            },
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'filters': ['correlation_id'],
                'formatter': 'full',
            },
        },
        'loggers': {
            # project logger
            'threaded_correlation_id': {
                'handlers': ['console'],
                'level': 'DEBUG',
                'propagate': True,
            },
        },
    }
    dictConfig(LOGGING)


@pytest.fixture(autouse=True)
def _clear_correlation_context():
    context.clear()
    yield
    context.clear()


TRANSFORMER_VALUE = 'some-id'


def _add_routes(app: FastAPI) -> FastAPI:
    @app.get('/test')
    async def test_view(request: Request) -> dict:
        return {
            'requestId': get_correlation_id(),
            'requestHeader': request.headers.get('X-Request-ID'),
            'hostId': get_value(HOST_ID_KEY),
            'hostHeader': request.headers.get('X-Host-ID'),
        }

    @app.get('/sync')
    def sync_view() -> dict:
        return {'requestId': get_correlation_id()}

    @app.get('/error')
    async def error_view() -> dict:
        raise RuntimeError('boom')

    return app


default_app = _add_routes(FastAPI(middleware=[Middleware(CorrelationIdMiddleware)]))
update_request_header_app = _add_routes(
    FastAPI(middleware=[Middleware(CorrelationIdMiddleware, update_request_header=True)])
)
validator_app = _add_routes(FastAPI(middleware=[Middleware(CorrelationIdMiddleware, validator=is_valid_uuid4)]))
no_transformer_app = _add_routes(FastAPI(middleware=[Middleware(CorrelationIdMiddleware, transformer=None)]))
transformer_app = _add_routes(FastAPI(middleware=[Middleware(CorrelationIdMiddleware, transformer=lambda a: a * 2)]))
generator_app = _add_routes(FastAPI(middleware=[Middleware(CorrelationIdMiddleware, generator=lambda: TRANSFORMER_VALUE)]))
host_id_app = _add_routes(FastAPI(middleware=[Middleware(CorrelationIdMiddleware, host_id='web-1')]))
no_host_id_app = _add_routes(FastAPI(middleware=[Middleware(CorrelationIdMiddleware, host_id='')]))


@pytest.fixture()
def single_worker_config() -> ExecutorConfiguration:
    return ExecutorConfiguration(pool_name_prefix='test-', core_pool_size=1, max_pool_size=1, queue_capacity=10)


@pytest.fixture(params=[False, True], ids=['bounded-pool', 'thread-per-task'])
def executor(request):
    config = ExecutorConfiguration(
        use_one_per_task_model=request.param, pool_name_prefix='test-', core_pool_size=2, max_pool_size=4
    )
    executor = create_executor(config)
    yield executor
    executor.shutdown(grace_timeout=5)


@pytest.fixture()
def seen_headers():
    """Request headers received by the downstream mock, in arrival order."""
    return []


@pytest.fixture()
def downstream(seen_headers) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        seen_headers.append(dict(request.headers))
        return httpx.Response(200, json={'requestId': request.headers.get('X-Request-ID')})

    return httpx.MockTransport(handler)


@pytest.fixture()
def failing_downstream() -> httpx.MockTransport:
    return httpx.MockTransport(lambda request: httpx.Response(500, text='unavailable'))
