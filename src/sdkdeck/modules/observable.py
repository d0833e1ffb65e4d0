"""Observable state containers used to publish core state to the presentation layer.

Each container has a single writer (the component that owns it) and any number
of readers.  Readers get a read-only view via ``observable()`` and register
callbacks with ``subscribe``, which returns an id for ``unsubscribe``.
"""

import uuid
from typing import Callable, Dict, Generic, TypeVar

from ..utils.logger import get_module_logger

T = TypeVar("T")

logger = get_module_logger("observable")


class Event(Generic[T]):
    """Typed notification without a current value."""

    def __init__(self, name: str = "event"):
        self.name = name
        self._subscribers: Dict[str, Callable[[T], None]] = {}

    def subscribe(self, callback: Callable[[T], None]) -> str:
        sub_id = str(uuid.uuid4())
        self._subscribers[sub_id] = callback
        return sub_id

    def unsubscribe(self, sub_id: str) -> None:
        self._subscribers.pop(sub_id, None)

    def emit(self, payload: T) -> None:
        """Deliver ``payload`` to every subscriber in subscription order.

        Subscriber errors propagate to the emitter; a failing observer is a
        programming error, not something to hide.
        """
        for callback in list(self._subscribers.values()):
            callback(payload)

    def __len__(self) -> int:
        return len(self._subscribers)


class Value(Generic[T]):
    """A value holder that notifies subscribers when the value changes."""

    def __init__(self, initial: T, name: str = "value"):
        self.name = name
        self._value = initial
        self._changed: Event[T] = Event(name)

    def get(self) -> T:
        return self._value

    def set(self, value: T) -> bool:
        """Replace the value; returns True when subscribers were notified."""
        if value == self._value:
            return False
        self._value = value
        logger.debug(f"{self.name} -> {value!r}")
        self._changed.emit(value)
        return True

    def subscribe(self, callback: Callable[[T], None]) -> str:
        return self._changed.subscribe(callback)

    def unsubscribe(self, sub_id: str) -> None:
        self._changed.unsubscribe(sub_id)

    def observable(self) -> "ObservableValue[T]":
        return ObservableValue(self)

    def __repr__(self) -> str:
        return f"Value({self.name}={self._value!r})"


class State(Value[bool]):
    """Boolean Value."""

    def __init__(self, initial: bool = False, name: str = "state"):
        super().__init__(bool(initial), name)

    def is_set(self) -> bool:
        return self._value

    def toggle(self) -> None:
        self.set(not self._value)


class ObservableValue(Generic[T]):
    """Read-only view of a Value, handed out to readers."""

    def __init__(self, value: Value[T]):
        self._value = value

    def get(self) -> T:
        return self._value.get()

    def subscribe(self, callback: Callable[[T], None]) -> str:
        return self._value.subscribe(callback)

    def unsubscribe(self, sub_id: str) -> None:
        self._value.unsubscribe(sub_id)

    @property
    def name(self) -> str:
        return self._value.name
