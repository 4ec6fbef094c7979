"""
Demo service showing correlation IDs surviving thread hops.

Install the `server` extra, then run with
`uvicorn threaded_correlation_id.app:create_app --factory --port 8080`.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

import httpx
from fastapi import FastAPI
from starlette.concurrency import run_in_threadpool
from starlette.middleware import Middleware

from threaded_correlation_id.client import create_client, log_request, log_response
from threaded_correlation_id.config import AppSettings, ExecutorConfiguration
from threaded_correlation_id.context import get_correlation_id
from threaded_correlation_id.executor import ContextPropagatingExecutor, create_executor
from threaded_correlation_id.fanout import failure_message, fetch_all
from threaded_correlation_id.middleware import CorrelationIdMiddleware

logger = logging.getLogger('threaded_correlation_id')

INFO_PATH = '/api/info'


def create_app(
    settings: Optional[AppSettings] = None,
    executor_config: Optional[ExecutorConfiguration] = None,
    client: Optional[httpx.Client] = None,
    executor: Optional[ContextPropagatingExecutor] = None,
) -> FastAPI:
    """
    Build the demo application.

    A client or executor passed in is used as is and left open on shutdown;
    the ones created here are closed with the application.
    """
    settings = settings or AppSettings()
    owns_client = client is None
    owns_executor = executor is None
    client = client or create_client(
        base_url=settings.downstream_base_url,
        event_hooks={'request': [log_request], 'response': [log_response]},
    )
    executor = executor or create_executor(executor_config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        if owns_executor:
            await run_in_threadpool(executor.shutdown)
        if owns_client:
            client.close()

    app = FastAPI(
        lifespan=lifespan,
        middleware=[Middleware(CorrelationIdMiddleware, header_name=settings.request_header_name)],
    )
    app.state.settings = settings
    app.state.client = client
    app.state.executor = executor

    @app.get(INFO_PATH)
    def info() -> Dict[str, Optional[str]]:
        logger.info('In the info endpoint')
        return {'requestId': get_correlation_id()}

    @app.get(INFO_PATH + '/restclient')
    def info_restclient() -> Dict[str, str]:
        try:
            response = client.get(INFO_PATH)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error('Outbound call failed', exc_info=exc)
            return {'response': failure_message(exc)}
        return {'response': response.text}

    @app.get(INFO_PATH + '/async')
    def info_async() -> Dict[str, Optional[str]]:
        logger.info('Starting async calls from request thread')
        return fetch_all(
            executor,
            client,
            {'call1': INFO_PATH, 'call2': INFO_PATH},
            timeout=settings.fan_out_timeout_seconds,
        )

    return app
