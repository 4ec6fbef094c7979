from contextvars import ContextVar
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional

REQUEST_ID_KEY = 'requestId'
HOST_ID_KEY = 'hostId'

_EMPTY: Mapping[str, str] = MappingProxyType({})

# Holds a read-only mapping. Writers always swap in a new mapping, so a
# mapping obtained from this variable is never mutated afterwards.
correlation_context: ContextVar[Mapping[str, str]] = ContextVar('correlation_context', default=_EMPTY)


@dataclass(frozen=True)
class CorrelationSnapshot:
    """
    Immutable copy of the correlation context, taken when work is handed
    to another thread.
    """

    values: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, 'values', MappingProxyType(dict(self.values)))

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.values.get(key, default)

    def as_dict(self) -> Dict[str, str]:
        return dict(self.values)

    def __contains__(self, key: object) -> bool:
        return key in self.values

    def __iter__(self) -> Iterator[str]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)


def get_value(key: str, default: Optional[str] = None) -> Optional[str]:
    return correlation_context.get().get(key, default)


def set_value(key: str, value: str) -> None:
    """
    Set a value in the current context.

    The existing mapping is copied rather than updated, so snapshots taken
    earlier (and contexts copied from this one) keep their view.
    """
    values = dict(correlation_context.get())
    values[key] = value
    correlation_context.set(MappingProxyType(values))


def remove_value(key: str) -> None:
    current = correlation_context.get()
    if key not in current:
        return
    values = dict(current)
    del values[key]
    correlation_context.set(MappingProxyType(values))


def snapshot() -> CorrelationSnapshot:
    return CorrelationSnapshot(correlation_context.get())


def restore(snapshot_: CorrelationSnapshot) -> None:
    """
    Install a snapshot as the current context.

    Whatever was set before is replaced, not merged, since worker threads
    are reused across unrelated tasks.
    """
    correlation_context.set(snapshot_.values)


def clear() -> None:
    correlation_context.set(_EMPTY)


def get_correlation_id(default: Optional[str] = None) -> Optional[str]:
    return get_value(REQUEST_ID_KEY, default)


def set_correlation_id(value: str) -> None:
    set_value(REQUEST_ID_KEY, value)
