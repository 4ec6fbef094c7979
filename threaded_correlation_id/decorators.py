import functools
import logging
from typing import Any, Callable, Optional, TypeVar

from threaded_correlation_id import context
from threaded_correlation_id.context import CorrelationSnapshot

logger = logging.getLogger('threaded_correlation_id')

T = TypeVar('T')


def decorate_task(fn: Callable[..., T], snapshot: Optional[CorrelationSnapshot] = None) -> Callable[..., T]:
    """
    Wrap a unit of work so it runs with the submitting thread's context.

    The snapshot is taken here, on the submitting thread, unless one is
    passed in. When the returned callable runs, the snapshot is installed
    before `fn` is called and the context is cleared afterwards, whether or
    not `fn` raised. Pooled workers carry no request of their own, so the
    task must never see what the worker had before, or leave anything behind.
    """
    captured = context.snapshot() if snapshot is None else snapshot

    @functools.wraps(fn)
    def run_with_context(*args: Any, **kwargs: Any) -> T:
        context.restore(captured)
        logger.debug('Installed correlation context %s', captured.as_dict())
        try:
            return fn(*args, **kwargs)
        finally:
            context.clear()

    return run_with_context
