"""Tests for dispatch, reducers and the middleware chain."""

import pytest

from portalcore import Action, ActionMeta, ReactiveStore


def _recorder(name, log):
    def middleware(store):
        def wrap(next_):
            def handle(action):
                log.append(f"{name}:before")
                next_(action)
                log.append(f"{name}:after")
            return handle
        return wrap
    return middleware


class TestDispatch:
    def test_reducer_applies_patch(self):
        s = ReactiveStore({"theme": "light"})
        s.add_reducer("SET_THEME", lambda state, action: {"theme": action.payload or "light"})
        s.dispatch(Action("SET_THEME", "dark"))
        assert s.get_state("theme") == "dark"

    def test_type_and_payload_shorthand(self):
        s = ReactiveStore({"section": None})
        s.add_reducer("SET_CURRENT_SECTION", lambda state, action: {"section": action.payload})
        s.dispatch("SET_CURRENT_SECTION", "work")
        assert s.get_state("section") == "work"

    def test_reducer_sees_current_state(self):
        s = ReactiveStore({"navOpen": False})
        s.add_reducer("TOGGLE_NAV", lambda state, action: {"navOpen": not state["navOpen"]})
        s.dispatch("TOGGLE_NAV")
        s.dispatch("TOGGLE_NAV")
        s.dispatch("TOGGLE_NAV")
        assert s.get_state("navOpen") is True

    def test_unknown_type_is_noop(self):
        s = ReactiveStore({"a": 1})
        log = []
        s.subscribe(lambda state, previous: log.append(1))
        s.dispatch("UNKNOWN")
        assert s.get_state() == {"a": 1}
        assert log == []
        assert len(s.get_history()) == 1

    def test_reducer_returning_none_is_noop(self):
        s = ReactiveStore({"a": 1})
        s.add_reducer("NOTHING", lambda state, action: None)
        s.dispatch("NOTHING")
        assert len(s.get_history()) == 1

    def test_last_reducer_wins(self):
        s = ReactiveStore({"a": 0})
        s.add_reducer("SET", lambda state, action: {"a": 1})
        s.add_reducer("SET", lambda state, action: {"a": 2})
        s.dispatch("SET")
        assert s.get_state("a") == 2

    def test_reducer_exception_propagates_without_middleware(self):
        s = ReactiveStore({"a": 0})

        def bad(state, action):
            raise ValueError("bad payload")

        s.add_reducer("BAD", bad)
        with pytest.raises(ValueError, match="bad payload"):
            s.dispatch("BAD")

    def test_field_listener_through_dispatch(self):
        s = ReactiveStore({"online": True})
        s.add_reducer(
            "NETWORK_STATUS_CHANGED",
            lambda state, action: {"online": action.payload["online"]},
        )
        log = []
        s.subscribe_to_property("online", lambda new, old: log.append((new, old)))
        s.dispatch("NETWORK_STATUS_CHANGED", {"online": False})
        assert log == [(False, True)]


class TestActionMeta:
    def test_meta_stamped(self):
        s = ReactiveStore()
        seen = []
        s.add_reducer("X", lambda state, action: seen.append(action))
        s.dispatch("X")
        meta = seen[0].meta
        assert meta.source == "dispatch"
        assert isinstance(meta.timestamp, float)

    def test_caller_meta_wins(self):
        s = ReactiveStore()
        seen = []
        s.add_reducer("X", lambda state, action: seen.append(action))
        s.dispatch(Action("X", meta=ActionMeta(timestamp=1.0, source="nav")))
        assert seen[0].meta == ActionMeta(timestamp=1.0, source="nav")

    def test_partial_meta_filled(self):
        stamped = Action("X", meta=ActionMeta(source="intro")).stamped()
        assert stamped.meta.source == "intro"
        assert stamped.meta.timestamp is not None

    def test_action_recorded_in_history(self):
        s = ReactiveStore({"a": 0})
        s.add_reducer("SET_A", lambda state, action: {"a": action.payload})
        s.dispatch("SET_A", 5)
        s.set_state({"a": 6})
        history = s.get_history()
        assert history[0].action is None
        assert history[1].action.type == "SET_A"
        assert history[2].action is None


class TestMiddleware:
    def test_runs_in_registration_order(self):
        s = ReactiveStore({"a": 0})
        log = []
        s.add_middleware(_recorder("first", log))
        s.add_middleware(_recorder("second", log))
        s.add_reducer("SET", lambda state, action: log.append("reducer") or {"a": 1})
        s.dispatch("SET")
        assert log == [
            "first:before",
            "second:before",
            "reducer",
            "second:after",
            "first:after",
        ]

    def test_runs_for_unknown_types(self):
        s = ReactiveStore()
        log = []
        s.use(_recorder("mw", log))
        s.dispatch("UNKNOWN")
        assert log == ["mw:before", "mw:after"]

    def test_can_short_circuit(self):
        s = ReactiveStore({"a": 0})

        def block(store):
            def wrap(next_):
                def handle(action):
                    if action.type != "BLOCKED":
                        next_(action)
                return handle
            return wrap

        s.add_middleware(block)
        s.add_reducer("BLOCKED", lambda state, action: {"a": 1})
        s.dispatch("BLOCKED")
        assert s.get_state("a") == 0

    def test_can_rewrite_action(self):
        s = ReactiveStore({"theme": "light"})

        def force_dark(store):
            def wrap(next_):
                def handle(action):
                    if action.type == "SET_THEME":
                        action = Action(action.type, "dark", action.meta)
                    next_(action)
                return handle
            return wrap

        s.add_middleware(force_dark)
        s.add_reducer("SET_THEME", lambda state, action: {"theme": action.payload})
        s.dispatch("SET_THEME", "light")
        assert s.get_state("theme") == "dark"

    def test_receives_store(self):
        s = ReactiveStore({"a": 0})
        seen = []

        def capture(store):
            def wrap(next_):
                def handle(action):
                    seen.append(store.get_state("a"))
                    next_(action)
                    seen.append(store.get_state("a"))
                return handle
            return wrap

        s.add_middleware(capture)
        s.add_reducer("INC", lambda state, action: {"a": state["a"] + 1})
        s.dispatch("INC")
        assert seen == [0, 1]
