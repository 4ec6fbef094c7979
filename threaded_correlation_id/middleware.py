import logging
import os
import socket
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Optional
from uuid import UUID, uuid4

from starlette.datastructures import MutableHeaders

from threaded_correlation_id.context import HOST_ID_KEY, REQUEST_ID_KEY, correlation_context, set_value, snapshot
from threaded_correlation_id.extensions.sentry import get_sentry_extension

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger('threaded_correlation_id')


def is_valid_uuid4(uuid_: str) -> bool:
    """
    Check whether a string is a valid v4 uuid.
    """
    try:
        return UUID(uuid_).version == 4
    except ValueError:
        return False


def default_host_id() -> str:
    """
    Name of the host serving requests, lowercased.

    Read from the `HOSTNAME` environment variable, falling back to the
    system hostname. Empty when neither is available.
    """
    host = os.environ.get('HOSTNAME')
    if not host:
        try:
            host = socket.gethostname()
        except OSError:
            return ''
    return host.lower()


FAILED_VALIDATION_MESSAGE = 'Generated new request ID (%s), since request header value failed validation'


@dataclass
class CorrelationIdMiddleware:
    app: 'ASGIApp'
    header_name: str = 'X-Request-ID'
    update_request_header: bool = True

    # Key the ID is stored under in the correlation context
    context_key: str = REQUEST_ID_KEY

    # ID-generating callable
    generator: Callable[[], str] = field(default=lambda: uuid4().hex)

    # ID validator. Header values are used verbatim unless one is set
    validator: Optional[Callable[[str], bool]] = None

    # ID transformer - can be used to clean/mutate IDs
    transformer: Optional[Callable[[str], str]] = field(default=lambda a: a)

    # Identifies this host to handlers and logs. Left out when empty
    host_id: str = field(default_factory=default_host_id)
    host_id_header_name: str = 'X-Host-ID'

    async def __call__(self, scope: 'Scope', receive: 'Receive', send: 'Send') -> None:
        """
        Load request ID from headers if present. Generate one otherwise.

        The ID lives in the correlation context until the request is done,
        and is removed again on every exit path, errors included.
        """
        if scope['type'] not in ('http', 'websocket'):
            await self.app(scope, receive, send)
            return

        # Try to load request ID from the request headers
        headers = MutableHeaders(scope=scope)
        header_value = headers.get(self.header_name.lower())

        logger.info(
            'Request: Method=%s, URI=%s, Headers=%s',
            scope.get('method', scope['type'].upper()),
            scope['path'],
            ','.join(f'{key}={value}' for key, value in headers.items()),
        )

        validation_failed = False
        if not header_value:
            # Generate request ID if none was found
            id_value = self.generator()
        elif self.validator and not self.validator(header_value):
            # Also generate a request ID if one was found, but it was deemed invalid
            validation_failed = True
            id_value = self.generator()
        else:
            # Otherwise, use the found request ID
            id_value = header_value

        # Clean/change the ID if needed
        if self.transformer:
            id_value = self.transformer(id_value)

        if validation_failed is True:
            logger.warning(FAILED_VALIDATION_MESSAGE, id_value)

        # Update the request headers if needed
        if id_value != header_value and self.update_request_header is True:
            headers[self.header_name] = id_value
        if self.host_id:
            headers[self.host_id_header_name] = self.host_id

        # Token for the pre-request context, put back once the request is done
        token = correlation_context.set(correlation_context.get())
        set_value(self.context_key, id_value)
        if self.host_id:
            set_value(HOST_ID_KEY, self.host_id)
        self.sentry_extension(snapshot().values)

        async def handle_outgoing_request(message: 'Message') -> None:
            if message['type'] == 'http.response.start':
                response_headers = MutableHeaders(scope=message)
                response_headers.append(self.header_name, id_value)

            await send(message)

        try:
            await self.app(scope, receive, handle_outgoing_request)
        finally:
            correlation_context.reset(token)

    def __post_init__(self) -> None:
        """
        Load extensions on initialization.

        If Sentry is installed, propagate correlation IDs to Sentry events.
        """
        self.sentry_extension = get_sentry_extension()
