"""ReactiveStore — a flat state mapping with subscriptions, derivations and undo.

State changes go through set_state() or dispatch(). Every change replaces the
state dict with a new shallow-merged one, so change detection can compare the
previous and next mapping field by field. After each change three passes run
in order: listeners, selectors, computed properties.

batch()/transaction() suppress notification until the outermost scope exits,
then run a single pass against the state seen before the first change.

Everything here is synchronous. The store is not thread-safe.
"""

from __future__ import annotations

import inspect
import itertools
from contextlib import contextmanager
from types import MappingProxyType
from typing import Any, Callable, Iterable, Iterator, Mapping

from portalcore.action import Action, Middleware, Reducer, compose
from portalcore.computed import MISSING, ComputedProperty, Selector, field_changed
from portalcore.history import DEFAULT_MAX_SIZE, History, HistoryEntry

StateListener = Callable[[Mapping[str, Any], Mapping[str, Any]], None]
Unsubscribe = Callable[[], None]

WILDCARD = "*"


class StoreDestroyedError(RuntimeError):
    """Raised when a destroyed store is used."""


def _keys(current: Mapping[str, Any], previous: Mapping[str, Any]) -> Iterable[str]:
    return dict.fromkeys(itertools.chain(current, previous))


class ReactiveStore:
    """Single state object with an action pipeline and bounded history."""

    def __init__(self, initial: Mapping[str, Any] | None = None, *, max_history: int = DEFAULT_MAX_SIZE) -> None:
        self._state: dict[str, Any] = dict(initial) if initial else {}
        self._global_listeners: list[StateListener] = []
        self._field_listeners: dict[str, list[StateListener]] = {}
        self._selectors: dict[int, Selector] = {}
        self._computed: dict[str, ComputedProperty] = {}
        self._reducers: dict[str, Reducer] = {}
        self._middleware: list[Middleware] = []
        self._history = History(max_history)
        self._history.record(self._state)
        self._ids = itertools.count(1)

        self._time_travel = False
        self._current_action: Action | None = None
        # Batch depth counter. When > 0, notification is deferred.
        self._batch_depth = 0
        self._batch_previous: dict[str, Any] | None = None
        self._destroyed = False

    # --- Reading ---

    def get_state(self, key: str | None = None, default: Any = None) -> Any:
        """Whole-state copy, or one field (default if absent)."""
        if key is None:
            return dict(self._state)
        return self._state.get(key, default)

    def _view(self) -> Mapping[str, Any]:
        return MappingProxyType(self._state)

    # --- Writing ---

    def set_state(self, patch_or_key: Mapping[str, Any] | str, value: Any = MISSING) -> None:
        """Shallow-merge a patch (or one key/value) into the state and notify."""
        self._ensure_alive()
        if isinstance(patch_or_key, Mapping):
            if value is not MISSING:
                raise TypeError("set_state() takes a mapping or a key and a value, not both")
            patch = patch_or_key
        else:
            if value is MISSING:
                raise TypeError(f"set_state({patch_or_key!r}) is missing a value")
            patch = {patch_or_key: value}

        previous = self._state
        self._state = {**previous, **patch}

        action, self._current_action = self._current_action, None
        if not self._time_travel:
            self._history.record(self._state, action)

        self._notify(previous)

    def dispatch(self, action: Action | str, payload: Any = None) -> None:
        """Run an action through the middleware chain down to its reducer.

        Accepts an Action or a type string plus payload. Types without a
        reducer pass through the middleware and then do nothing.
        """
        self._ensure_alive()
        if isinstance(action, str):
            action = Action(action, payload)
        chain = compose(self, self._middleware, self._apply)
        chain(action.stamped())

    def _apply(self, action: Action) -> None:
        reducer = self._reducers.get(action.type)
        if reducer is None:
            return
        patch = reducer(self._view(), action)
        if patch is None:
            return
        self._current_action = action
        try:
            self.set_state(patch)
        finally:
            self._current_action = None

    def add_reducer(self, action_type: str, reducer: Reducer) -> None:
        self._ensure_alive()
        self._reducers[action_type] = reducer

    def add_middleware(self, middleware: Middleware) -> None:
        self._ensure_alive()
        self._middleware.append(middleware)

    use = add_middleware

    def reset(self, patch: Mapping[str, Any] | None = None) -> None:
        """Fill in fields missing from the current state. Existing values win.

        Runs the usual notification pass: field and wildcard subscribers, then
        selectors, then computed properties whose dependencies were filled in.
        """
        self._ensure_alive()
        previous = self._state
        self._state = {**(patch or {}), **previous}
        self._notify(previous)

    def remove_state(self, key: str) -> None:
        """Drop a field. No notification, no history entry."""
        self._ensure_alive()
        self._state = {k: v for k, v in self._state.items() if k != key}

    # --- Subscriptions ---

    def subscribe(self, key_or_listener: str | StateListener, listener: Callable | None = None) -> Unsubscribe:
        """Subscribe to every change, to one field, or to any field with "*".

        subscribe(fn)            -> fn(state, previous_state)
        subscribe("theme", fn)   -> fn(new, old, "theme") when theme changed
        subscribe("*", fn)       -> fn(new, old, key) for each changed key
        """
        self._ensure_alive()
        if listener is None:
            if not callable(key_or_listener):
                raise TypeError("subscribe() needs a listener")
            return self._add_listener(self._global_listeners, key_or_listener)

        key = key_or_listener
        if key == WILDCARD:
            def wildcard(state, previous):
                for k in _keys(state, previous):
                    if field_changed(k, previous, state):
                        listener(state.get(k), previous.get(k), k)

            return self._add_listener(self._global_listeners, wildcard)

        def keyed(state, previous):
            if field_changed(key, previous, state):
                listener(state.get(key), previous.get(key), key)

        return self._add_listener(self._field_listeners.setdefault(key, []), keyed)

    def subscribe_to_property(self, key: str, listener: Callable[[Any, Any], None]) -> Unsubscribe:
        """listener(new, old) whenever key changes."""
        self._ensure_alive()

        def on_change(state, previous):
            if field_changed(key, previous, state):
                listener(state.get(key), previous.get(key))

        return self._add_listener(self._field_listeners.setdefault(key, []), on_change)

    @staticmethod
    def _add_listener(listeners: list[StateListener], listener: StateListener) -> Unsubscribe:
        listeners.append(listener)

        def _unsubscribe() -> None:
            try:
                listeners.remove(listener)
            except ValueError:
                pass  # already removed

        return _unsubscribe

    # --- Derived state ---

    def create_selector(self, selector: Callable[[Mapping[str, Any]], Any], listener: Callable[[Any], None]) -> Unsubscribe:
        """Call listener now with selector(state), then whenever the result changes.

        A result counts as changed on value inequality (``is not`` and ``!=``), so
        a freshly built list equal to the last one does not fire.
        """
        self._ensure_alive()
        sel = Selector(selector, self._view())
        sel.add_listener(listener)
        selector_id = next(self._ids)
        self._selectors[selector_id] = sel
        listener(sel.last_value)

        def _remove() -> None:
            self._selectors.pop(selector_id, None)

        return _remove

    def create_computed(
        self,
        name: str,
        selector: Callable[[Mapping[str, Any]], Any],
        dependencies: Iterable[str],
        listener: Callable[[Any], None] | None = None,
    ) -> Unsubscribe:
        """Register a named derivation recomputed only when a dependency field changes.

        Registering a name again replaces the previous property.
        """
        self._ensure_alive()
        prop = ComputedProperty(name, selector, dependencies, self._view())
        if listener is not None:
            prop.add_listener(listener)
        self._computed[name] = prop
        if listener is not None:
            listener(prop.last_value)

        def _remove() -> None:
            if self._computed.get(name) is prop:
                del self._computed[name]

        return _remove

    def get_computed(self, name: str) -> Any:
        """Evaluate a computed property against the current state. None if unknown."""
        prop = self._computed.get(name)
        if prop is None:
            return None
        return prop.evaluate(self._view())

    # --- Notification ---

    def _notify(self, previous: dict[str, Any]) -> None:
        self._notify_listeners(previous)
        self._notify_selectors()
        self._notify_computed(previous)

    def _notify_listeners(self, previous: dict[str, Any]) -> None:
        if self._batch_depth > 0:
            if self._batch_previous is None:
                self._batch_previous = previous
            return
        state = self._view()
        prev = MappingProxyType(previous)
        for listener in list(self._global_listeners):
            listener(state, prev)
        for key in _keys(self._state, previous):
            if key in self._field_listeners and field_changed(key, previous, self._state):
                for listener in list(self._field_listeners[key]):
                    listener(state, prev)

    def _notify_selectors(self) -> None:
        if self._batch_depth > 0:
            return
        state = self._view()
        for sel in list(self._selectors.values()):
            sel._run(state)

    def _notify_computed(self, previous: dict[str, Any]) -> None:
        if self._batch_depth > 0:
            return
        state = self._view()
        for prop in list(self._computed.values()):
            prop._run_if_changed(state, previous)

    # --- Batching ---

    @contextmanager
    def transaction(self) -> Iterator[ReactiveStore]:
        """Defer notification until the outermost transaction exits.

        Usage:
            with store.transaction():
                store.set_state({"count": 1})
                store.set_state({"count": 2})
            # listeners run once here, seeing count 0 -> 2

        Synchronous code only: changes made after an await inside the block
        may land after the scope has already exited.
        """
        self._ensure_alive()
        self._batch_depth += 1
        try:
            yield self
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._batch_previous is not None:
                previous, self._batch_previous = self._batch_previous, None
                self._notify(previous)

    def batch(self, fn: Callable[[], Any]) -> Any:
        """Run fn with notification deferred to a single pass. Returns fn's result."""
        if inspect.iscoroutinefunction(fn):
            raise TypeError("batch() runs synchronously; pass a plain function, not a coroutine function")
        with self.transaction():
            return fn()

    # --- History ---

    def undo(self) -> bool:
        """Restore the previous snapshot. False when there is nothing to undo."""
        self._ensure_alive()
        entry = self._history.step_back()
        if entry is None:
            return False
        self._travel_to(entry)
        return True

    def redo(self) -> bool:
        """Re-apply the most recently undone snapshot."""
        self._ensure_alive()
        entry = self._history.step_forward()
        if entry is None:
            return False
        self._travel_to(entry)
        return True

    def _travel_to(self, entry: HistoryEntry) -> None:
        previous = self._state
        self._time_travel = True
        try:
            self._state = dict(entry.state)
            self._notify(previous)
        finally:
            self._time_travel = False

    def get_history(self) -> list[HistoryEntry]:
        return self._history.entries()

    def clear_history(self) -> None:
        """Keep only the current state as history; drop redo."""
        self._history.reset(self._state)

    # --- Lifecycle ---

    def get_debug_info(self) -> dict[str, Any]:
        return {
            "state": dict(self._state),
            "listener_count": len(self._global_listeners)
            + sum(len(ls) for ls in self._field_listeners.values()),
            "selector_count": len(self._selectors),
            "computed_count": len(self._computed),
            "reducer_count": len(self._reducers),
            "middleware_count": len(self._middleware),
            "history_size": len(self._history),
            "redo_stack_size": self._history.redo_size,
            "reducers": list(self._reducers),
            "computed": list(self._computed),
        }

    def destroy(self) -> None:
        """Drop all listeners, derivations, reducers, middleware, history and state. Terminal."""
        self._global_listeners.clear()
        self._field_listeners.clear()
        self._selectors.clear()
        self._computed.clear()
        self._reducers.clear()
        self._middleware.clear()
        self._history.reset()
        self._state = {}
        self._destroyed = True

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def _ensure_alive(self) -> None:
        if self._destroyed:
            raise StoreDestroyedError("store has been destroyed")

    def __repr__(self) -> str:
        return f"ReactiveStore({len(self._state)} fields, history={len(self._history)})"


def create_store(
    initial: Mapping[str, Any] | None = None,
    *,
    max_history: int = DEFAULT_MAX_SIZE,
    middleware: Iterable[Middleware] = (),
) -> ReactiveStore:
    """Build a store with middleware already installed, in the given order."""
    store = ReactiveStore(initial, max_history=max_history)
    for mw in middleware:
        store.add_middleware(mw)
    return store
