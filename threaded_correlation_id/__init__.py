from threaded_correlation_id.client import CorrelationHeaderInjector, create_client
from threaded_correlation_id.config import ExecutorConfiguration
from threaded_correlation_id.context import CorrelationSnapshot, get_correlation_id, set_correlation_id
from threaded_correlation_id.decorators import decorate_task
from threaded_correlation_id.executor import TaskRejectedError, create_executor
from threaded_correlation_id.fanout import fan_out
from threaded_correlation_id.log_filters import CorrelationIdFilter
from threaded_correlation_id.middleware import CorrelationIdMiddleware

__all__ = (
    'CorrelationHeaderInjector',
    'CorrelationIdFilter',
    'CorrelationIdMiddleware',
    'CorrelationSnapshot',
    'ExecutorConfiguration',
    'TaskRejectedError',
    'create_client',
    'create_executor',
    'decorate_task',
    'fan_out',
    'get_correlation_id',
    'set_correlation_id',
)
