"""
Observable values for TangibleCameraInput.

A Property holds one value and calls its linked listeners whenever the value
changes. Listeners receive (new_value, old_value). All writes happen on the
event loop thread; properties are not thread-safe.
"""

from typing import Callable, Generic, Optional, TypeVar

from .logger import get_logger

logger = get_logger("Observable")

T = TypeVar("T")
Listener = Callable[[T, Optional[T]], None]


class Property(Generic[T]):
    """
    Single observable value.

    Attributes:
        name: Label used in log messages.
    """

    # Notify listeners even when the new value equals the old one
    notify_unchanged: bool = False

    def __init__(self, initial: T, name: str = ""):
        self.name = name
        self._value = initial
        self._listeners: list[Listener] = []

    @property
    def value(self) -> T:
        """Current value."""
        return self._value

    @value.setter
    def value(self, new_value: T) -> None:
        self.set(new_value)

    def set(self, new_value: T) -> None:
        """Store a new value and notify listeners if it changed."""
        old_value = self._value
        self._value = new_value

        if not self.notify_unchanged and self._values_equal(new_value, old_value):
            return

        for listener in list(self._listeners):
            try:
                listener(new_value, old_value)
            except Exception:
                logger.exception(f"Listener {listener!r} of property '{self.name}' failed")

    def link(self, listener: Listener, immediate: bool = True) -> Listener:
        """
        Register a listener.

        Args:
            listener: Called with (new_value, old_value).
            immediate: Call the listener right away with the current value.

        Returns:
            The listener, for later unlink().
        """
        self._listeners.append(listener)
        if immediate:
            listener(self._value, None)
        return listener

    def unlink(self, listener: Listener) -> None:
        """Remove a listener registered with link()."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    def unlink_all(self) -> None:
        self._listeners.clear()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def read_only(self) -> "ReadOnlyProperty[T]":
        """Get a view that can be observed but not written."""
        return ReadOnlyProperty(self)

    @staticmethod
    def _values_equal(a: object, b: object) -> bool:
        if a is b:
            return True
        try:
            return bool(a == b)
        except (TypeError, ValueError):
            # Values without a scalar equality (e.g. numpy arrays)
            return False

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, value={self._value!r})"


class ReadOnlyProperty(Generic[T]):
    """Observe-only view of a Property."""

    def __init__(self, source: Property[T]):
        self._source = source

    @property
    def value(self) -> T:
        return self._source.value

    @property
    def name(self) -> str:
        return self._source.name

    def link(self, listener: Listener, immediate: bool = True) -> Listener:
        return self._source.link(listener, immediate=immediate)

    def unlink(self, listener: Listener) -> None:
        self._source.unlink(listener)

    def __repr__(self) -> str:
        return f"ReadOnlyProperty({self._source!r})"


class NumberProperty(Property[float]):
    """
    Numeric property with an inclusive value range.

    Values written outside the range are clamped.
    """

    def __init__(self, initial: float, value_range: tuple[float, float], name: str = ""):
        low, high = value_range
        if low > high:
            raise ValueError(f"Invalid range {value_range}: min is greater than max")
        self.range = (float(low), float(high))
        super().__init__(self._clamp(initial), name=name)

    def set(self, new_value: float) -> None:
        super().set(self._clamp(new_value))

    def _clamp(self, value: float) -> float:
        low, high = self.range
        return min(max(float(value), low), high)


class ResultSlot(Property):
    """
    Holds the most recent detection result, or None.

    Single writer (the detector adapter), any number of readers. Every
    publication notifies listeners, even when the value repeats, so
    consumers see exactly one update per detector callback.
    """

    notify_unchanged = True

    def __init__(self, name: str = "results"):
        super().__init__(None, name=name)
        self.publish_count = 0

    def set(self, new_value) -> None:
        self.publish_count += 1
        super().set(new_value)
