"""Actions and the middleware pipeline.

An Action names a state transition by type; the reducer registered for that
type turns it into a state patch. Middleware wraps the path from dispatch()
to the reducer and may observe, rewrite or swallow actions on the way.

Middleware has the curried shape store -> next -> action:

    def audit(store):
        def wrap(next_):
            def handle(action):
                log.append(action.type)
                next_(action)
            return handle
        return wrap
"""

from __future__ import annotations

import functools
import time
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping

if TYPE_CHECKING:
    from portalcore.store import ReactiveStore

Handler = Callable[["Action"], None]
Middleware = Callable[["ReactiveStore"], Callable[[Handler], Handler]]
Reducer = Callable[[Mapping[str, Any], "Action"], "Mapping[str, Any] | None"]


@dataclass(frozen=True)
class ActionMeta:
    timestamp: float | None = None
    source: str | None = None


@dataclass(frozen=True)
class Action:
    type: str
    payload: Any = None
    meta: ActionMeta | None = None

    def stamped(self, source: str = "dispatch") -> Action:
        """Copy with timestamp and source filled in. Values already set win."""
        meta = self.meta or ActionMeta()
        return replace(
            self,
            meta=ActionMeta(
                timestamp=meta.timestamp if meta.timestamp is not None else time.time(),
                source=meta.source if meta.source is not None else source,
            ),
        )


def compose(store: ReactiveStore, middleware: Iterable[Middleware], terminal: Handler) -> Handler:
    """Wrap terminal in middleware, right to left. The first middleware runs first."""
    return functools.reduce(
        lambda next_, mw: mw(store)(next_),
        reversed(list(middleware)),
        terminal,
    )
