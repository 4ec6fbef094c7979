from logging import Filter
from typing import TYPE_CHECKING, Optional

from threaded_correlation_id.context import REQUEST_ID_KEY, get_value

if TYPE_CHECKING:
    from logging import LogRecord


def _trim_string(string: Optional[str], string_length: Optional[int]) -> Optional[str]:
    return string[:string_length] if string_length is not None and string else string


class CorrelationIdFilter(Filter):
    """Logging filter to attach the correlation ID to log records"""

    def __init__(
        self,
        name: str = '',
        uuid_length: Optional[int] = None,
        default_value: Optional[str] = None,
        context_key: str = REQUEST_ID_KEY,
    ):
        super().__init__(name=name)
        self.uuid_length = uuid_length
        self.default_value = default_value
        self.context_key = context_key

    def filter(self, record: 'LogRecord') -> bool:
        """
        Attach a correlation ID to the log record.

        The ID is read from the correlation context of the thread doing the
        logging. Work submitted through a context-propagating executor carries
        the submitter's ID, so records logged by pool workers can be matched
        to the request that caused them.
        """
        cid = get_value(self.context_key, self.default_value)
        record.correlation_id = _trim_string(cid, self.uuid_length)
        return True
