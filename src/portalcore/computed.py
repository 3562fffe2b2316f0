"""Selectors and computed properties — derived state with change detection.

A Selector wraps a function of the whole state. After every state change the
store re-runs it and, if the result differs from the cached one, hands the
new value to the listeners.

A ComputedProperty is a Selector with declared dependency fields: it is only
re-run when one of those fields changed, so an expensive derivation is not
evaluated for unrelated updates.
"""

from __future__ import annotations

from typing import Any, Callable, Generic, Iterable, Mapping, TypeVar

T = TypeVar("T")

MISSING = object()

StateFn = Callable[[Mapping[str, Any]], T]


def has_changed(old: object, new: object) -> bool:
    return old is not new and old != new


def field_changed(key: str, previous: Mapping[str, Any], current: Mapping[str, Any]) -> bool:
    return has_changed(previous.get(key, MISSING), current.get(key, MISSING))


class Selector(Generic[T]):
    """A memoized derivation of the state."""

    __slots__ = ("_fn", "_last_value", "_listeners")

    def __init__(self, fn: StateFn[T], state: Mapping[str, Any]) -> None:
        self._fn = fn
        self._last_value: T = fn(state)
        self._listeners: list[Callable[[T], None]] = []

    @property
    def last_value(self) -> T:
        return self._last_value

    def add_listener(self, listener: Callable[[T], None]) -> None:
        self._listeners.append(listener)

    def evaluate(self, state: Mapping[str, Any]) -> T:
        """Run the function without touching the cache."""
        return self._fn(state)

    def _run(self, state: Mapping[str, Any]) -> None:
        value = self._fn(state)
        if has_changed(self._last_value, value):
            self._last_value = value
            for listener in list(self._listeners):
                listener(value)

    def __repr__(self) -> str:
        return f"Selector({getattr(self._fn, '__name__', self._fn)!r}, cached={self._last_value!r})"


class ComputedProperty(Selector[T]):
    """A Selector that only recomputes when a declared dependency changed."""

    __slots__ = ("name", "dependencies")

    def __init__(
        self,
        name: str,
        fn: StateFn[T],
        dependencies: Iterable[str],
        state: Mapping[str, Any],
    ) -> None:
        super().__init__(fn, state)
        self.name = name
        self.dependencies = tuple(dependencies)

    def _run_if_changed(self, state: Mapping[str, Any], previous: Mapping[str, Any]) -> None:
        if any(field_changed(dep, previous, state) for dep in self.dependencies):
            self._run(state)

    def __repr__(self) -> str:
        return f"ComputedProperty({self.name!r}, deps={list(self.dependencies)}, cached={self._last_value!r})"
