import itertools
import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, TypeVar

from threaded_correlation_id.config import ExecutorConfiguration
from threaded_correlation_id.context import CorrelationSnapshot
from threaded_correlation_id.decorators import decorate_task

logger = logging.getLogger('threaded_correlation_id')

T = TypeVar('T')


class TaskRejectedError(RuntimeError):
    """Raised when an executor cannot accept another task."""


class ContextPropagatingExecutor(ABC):
    """
    Runs tasks on other threads with the submitter's correlation context.

    Every task is wrapped by `decorate_task`, either with the snapshot
    passed as `correlation_context`, or with a snapshot of the submitting
    thread's context taken at submission time. `correlation_context` is
    therefore the one keyword argument that is never forwarded to `fn`.
    """

    def __init__(self, config: ExecutorConfiguration) -> None:
        self.config = config
        self._lock = threading.Lock()
        self._pending: Set[Future] = set()
        self._is_shutdown = False

    def submit(
        self,
        fn: Callable[..., T],
        *args: Any,
        correlation_context: Optional[CorrelationSnapshot] = None,
        **kwargs: Any,
    ) -> 'Future[T]':
        task = decorate_task(fn, correlation_context)
        # Filled in once dispatched. The worker only reads it under the lock,
        # which is held until then.
        dispatched: List[Future] = []

        def run(*args: Any, **kwargs: Any) -> T:
            try:
                return task(*args, **kwargs)
            finally:
                # Runs before the future is resolved, so a caller woken by
                # result() never sees the task as still pending
                with self._lock:
                    self._pending.difference_update(dispatched)

        with self._lock:
            if self._is_shutdown:
                raise TaskRejectedError('Cannot submit new tasks after shutdown')
            future = self._dispatch(run, args, kwargs)
            dispatched.append(future)
            self._pending.add(future)
        future.add_done_callback(self._forget_cancelled)
        return future

    def shutdown(self, grace_timeout: Optional[float] = None) -> None:
        """
        Stop accepting tasks and wait for pending ones to finish.

        Tasks still queued when the grace period runs out are cancelled.
        Running tasks are abandoned, not interrupted, since a thread blocked
        on I/O cannot be stopped from the outside.
        """
        timeout = self.config.termination_timeout if grace_timeout is None else grace_timeout
        with self._lock:
            if self._is_shutdown:
                return
            self._is_shutdown = True
            pending = set(self._pending)

        logger.info('Shutting down executor, waiting up to %ss for %s pending tasks', timeout, len(pending))
        _, not_done = wait(pending, timeout=timeout)
        abandoned = [future for future in not_done if not future.cancel()]
        if abandoned:
            logger.warning('Abandoned %s tasks still running after %ss', len(abandoned), timeout)
        self._close()

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def _forget_cancelled(self, future: Future) -> None:
        # Cancelled tasks never run, so nothing else removes them
        if future.cancelled():
            with self._lock:
                self._pending.discard(future)

    @abstractmethod
    def _dispatch(self, task: Callable[..., Any], args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> Future:
        """Hand a decorated task to the underlying threads."""

    def _close(self) -> None:
        pass

    def __enter__(self) -> 'ContextPropagatingExecutor':
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.shutdown()


class ThreadPerTaskExecutor(ContextPropagatingExecutor):
    """Starts a new thread for every task. Nothing is queued or bounded."""

    def __init__(self, config: ExecutorConfiguration) -> None:
        super().__init__(config)
        self.thread_name_prefix = 'virtual-' + config.pool_name_prefix
        self._counter = itertools.count()

    def _dispatch(self, task: Callable[..., Any], args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> Future:
        future: Future = Future()

        def run() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                result = task(*args, **kwargs)
            except BaseException as exc:
                future.set_exception(exc)
            else:
                future.set_result(result)

        thread = threading.Thread(target=run, name=f'{self.thread_name_prefix}{next(self._counter)}', daemon=True)
        thread.start()
        return future


class BoundedPoolExecutor(ContextPropagatingExecutor):
    """
    A reusable pool of at most `max_pool_size` threads.

    At most `max_pool_size + queue_capacity` tasks are admitted at a time,
    either running or waiting for a worker. Anything beyond that is
    rejected with `TaskRejectedError`.

    `ThreadPoolExecutor` starts workers on demand and cannot keep a
    separate core size, so `core_pool_size` does not change how the pool
    grows: it goes straight up to `max_pool_size` under load.
    """

    def __init__(self, config: ExecutorConfiguration) -> None:
        super().__init__(config)
        self.thread_name_prefix = 'regular-' + config.pool_name_prefix
        self.capacity = config.max_pool_size + config.queue_capacity
        self._slots = threading.BoundedSemaphore(self.capacity)
        self._pool = ThreadPoolExecutor(max_workers=config.max_pool_size, thread_name_prefix=self.thread_name_prefix)

    def _dispatch(self, task: Callable[..., Any], args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> Future:
        if not self._slots.acquire(blocking=False):
            raise TaskRejectedError(f'Executor saturated: {self.capacity} tasks already running or queued')

        def run(*args: Any, **kwargs: Any) -> Any:
            try:
                return task(*args, **kwargs)
            finally:
                # Free the slot before the future resolves, so the next
                # submit from a waiting caller finds it available
                self._slots.release()

        try:
            future = self._pool.submit(run, *args, **kwargs)
        except RuntimeError:
            self._slots.release()
            raise
        future.add_done_callback(self._release_cancelled_slot)
        return future

    def _release_cancelled_slot(self, future: Future) -> None:
        if future.cancelled():
            self._slots.release()

    def _close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)


def create_executor(config: Optional[ExecutorConfiguration] = None) -> ContextPropagatingExecutor:
    """
    Build the executor selected by the configuration.

    The choice is made once; there is no switching models at runtime.
    """
    config = config or ExecutorConfiguration()
    if config.use_one_per_task_model:
        logger.info('Using thread-per-task executor with name prefix: %s', config.pool_name_prefix)
        return ThreadPerTaskExecutor(config)

    logger.info('Using bounded pool executor with name prefix: %s', config.pool_name_prefix)
    executor = BoundedPoolExecutor(config)
    logger.info(
        'Bounded pool executor initialized with %s core threads, %s max threads and a queue of %s',
        config.core_pool_size,
        config.max_pool_size,
        config.queue_capacity,
    )
    return executor
