import functools
import logging
import threading
from concurrent.futures import CancelledError, Future, wait
from typing import Callable, Dict, Mapping, Optional

import httpx

from threaded_correlation_id.context import get_correlation_id
from threaded_correlation_id.executor import ContextPropagatingExecutor, TaskRejectedError

logger = logging.getLogger('threaded_correlation_id')

FAILED_FETCH_MESSAGE = 'Failed to fetch data: %s'


def failure_message(reason: object) -> str:
    return FAILED_FETCH_MESSAGE % reason


def fan_out(
    executor: ContextPropagatingExecutor,
    work: Mapping[str, Callable[[], Optional[str]]],
    timeout: Optional[float] = None,
) -> Dict[str, Optional[str]]:
    """
    Run independent work items concurrently and collect every outcome.

    Blocks until all items are done or `timeout` seconds have passed. A
    failing item never affects its siblings: its error is reported in its
    own slot, as is a timeout for items still unresolved at the deadline.
    Results keep the order of `work`.
    """
    results: Dict[str, Optional[str]] = {}
    futures: Dict[str, Future] = {}
    for name, fn in work.items():
        try:
            futures[name] = executor.submit(fn)
        except TaskRejectedError as exc:
            logger.error('Could not submit %s: %s', name, exc)
            results[name] = failure_message(exc)

    done, not_done = wait(futures.values(), timeout=timeout)
    if not_done:
        logger.warning('%s of %s calls still pending after %ss', len(not_done), len(futures), timeout)

    for name in work:
        future = futures.get(name)
        if future is None:
            continue
        if future not in done:
            results[name] = failure_message(f'timed out after {timeout}s')
            continue
        try:
            results[name] = future.result()
        except (Exception, CancelledError) as exc:
            logger.error('Error waiting for %s', name, exc_info=exc)
            results[name] = failure_message(exc)

    logger.info('All async calls completed')
    return {name: results[name] for name in work}


def fetch_data(client: httpx.Client, url: str, call_id: str) -> Optional[str]:
    """
    GET `url` and return the correlation ID seen by the calling thread.

    Errors are returned as a `Failed to fetch data: ...` string rather
    than raised.
    """
    logger.info('Executing async call: %s on thread: %s', call_id, threading.current_thread().name)
    request_id = get_correlation_id()
    logger.info('Async task executing with requestId: %s', request_id)
    try:
        response = client.get(url)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.error('Failed async call: %s', call_id, exc_info=exc)
        return failure_message(exc)

    logger.info('Completed async call: %s', call_id)
    return request_id


def fetch_all(
    executor: ContextPropagatingExecutor,
    client: httpx.Client,
    urls: Mapping[str, str],
    timeout: Optional[float] = None,
) -> Dict[str, Optional[str]]:
    """Fetch every URL concurrently. Results are keyed like `urls`."""
    work = {call_id: functools.partial(fetch_data, client, url, call_id) for call_id, url in urls.items()}
    return fan_out(executor, work, timeout=timeout)
