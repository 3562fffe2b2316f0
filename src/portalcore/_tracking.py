"""Resolution tracking — which services are being built on this call path.

Uses contextvars to carry the ordered chain of in-flight resolutions through
recursive resolution. Each resolution runs in its own asyncio task, and tasks
copy the context they were created in, so a factory that calls
``container.resolve()`` itself still sees the chain of its callers.

Each entry pairs the service name with the task building it. A task spawned
by a factory inherits the path and may outlive that resolution, so entries
whose task is done no longer count as in flight.

The path is per call chain, not per container: two independent resolutions of
the same service do not see each other as cycles.
"""

from __future__ import annotations

import asyncio
import contextvars

# (name, task) for each resolution on this call path, outermost first.
resolution_path: contextvars.ContextVar[tuple[tuple[str, asyncio.Future], ...]] = contextvars.ContextVar(
    "resolution_path", default=()
)


def current_path() -> tuple[str, ...]:
    """Names still being resolved on this call path."""
    return tuple(name for name, task in resolution_path.get() if not task.done())


def enter(name: str, task: asyncio.Future) -> contextvars.Token:
    """Push name onto the path. Pair with leave(token)."""
    return resolution_path.set(resolution_path.get() + ((name, task),))


def leave(token: contextvars.Token) -> None:
    resolution_path.reset(token)
