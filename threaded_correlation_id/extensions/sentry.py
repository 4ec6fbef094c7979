from typing import Callable, Mapping

from threaded_correlation_id.context import REQUEST_ID_KEY


def get_sentry_extension() -> Callable[[Mapping[str, str]], None]:
    """
    Return set_correlation_tags, if the Sentry-sdk is installed.
    """
    try:
        import sentry_sdk  # noqa: F401, TC002

        from threaded_correlation_id.extensions.sentry import set_correlation_tags

        return set_correlation_tags
    except ImportError:  # pragma: no cover
        return lambda values: None


def set_correlation_tags(values: Mapping[str, str]) -> None:
    """
    Tag the current Sentry isolation scope with the correlation values.

    The request ID is also set as the transaction ID, which is displayed
    in a Sentry event's detail view and makes it easier to correlate logs
    to specific events.
    """
    import sentry_sdk

    scope = sentry_sdk.get_isolation_scope()
    for key, value in values.items():
        scope.set_tag(key, value)

    request_id = values.get(REQUEST_ID_KEY)
    if request_id:
        scope.set_tag('transaction_id', request_id)
