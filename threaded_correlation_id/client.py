import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Union
from uuid import uuid4

import httpx

from threaded_correlation_id.context import REQUEST_ID_KEY, get_value

logger = logging.getLogger('threaded_correlation_id')

HEADER_REQUEST_ID = 'X-Request-ID'
HEADER_SESSION_ID = 'X-Session-ID'

DEFAULT_TIMEOUT = httpx.Timeout(10.0)
DEFAULT_HEADERS = {
    'Content-Type': 'application/json',
    'User-Agent': 'threaded-correlation-id/1.0',
}


def short_id_generator() -> str:
    return uuid4().hex[:10]


@dataclass
class CorrelationHeaderInjector:
    """
    httpx request hook that stamps correlation headers on outgoing requests.

    A request ID already set on the request wins. Otherwise the ID from the
    current correlation context is used, and if there is none (e.g. a call
    from a background job) a new one is generated. The session header
    falls back to the request ID.
    """

    header_name: str = HEADER_REQUEST_ID
    session_header_name: str = HEADER_SESSION_ID
    context_key: str = REQUEST_ID_KEY
    generator: Callable[[], str] = field(default=short_id_generator)

    def __call__(self, request: httpx.Request) -> None:
        request_id = request.headers.get(self.header_name)
        if not request_id:
            request_id = get_value(self.context_key) or self.generator()
            request.headers[self.header_name] = request_id

        if not request.headers.get(self.session_header_name):
            request.headers[self.session_header_name] = request_id


def log_request(request: httpx.Request) -> None:
    logger.info('Making request to: %s %s', request.method, request.url)


def log_response(response: httpx.Response) -> None:
    logger.info('Response status: %s', response.status_code)


def create_client(
    base_url: Union[str, httpx.URL] = '',
    headers: Optional[Mapping[str, str]] = None,
    timeout: Union[float, httpx.Timeout] = DEFAULT_TIMEOUT,
    event_hooks: Optional[Mapping[str, List[Callable[..., Any]]]] = None,
    retries: int = 0,
    transport: Optional[httpx.BaseTransport] = None,
    injector: Optional[CorrelationHeaderInjector] = None,
    **kwargs: Any,
) -> httpx.Client:
    """
    Build an `httpx.Client` that propagates correlation headers.

    The header injector always runs before any other request hook, so hooks
    added by callers already see the stamped headers. `retries` applies to
    failed connection attempts only; it is ignored when a custom transport
    is given.
    """
    hooks: Dict[str, List[Callable[..., Any]]] = {
        'request': [injector or CorrelationHeaderInjector()],
        'response': [],
    }
    for name, callbacks in (event_hooks or {}).items():
        hooks.setdefault(name, []).extend(callbacks)

    if transport is None:
        transport = httpx.HTTPTransport(retries=retries)

    return httpx.Client(
        base_url=base_url,
        headers={**DEFAULT_HEADERS, **(headers or {})},
        timeout=timeout,
        event_hooks=hooks,
        transport=transport,
        **kwargs,
    )
