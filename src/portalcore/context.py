"""AppContext — one container and one store, constructed and torn down together.

Replaces process-wide singletons: the application builds an AppContext at
startup and passes it (or its members) to whatever needs them. Tests build
their own.

Usage:
    async with AppContext(initial_state={"theme": "light"}) as ctx:
        ctx.container.register("api", make_api)
        ctx.container.register("nav", make_nav, dependencies=["api"])
        await ctx.start(["api", "nav"])
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping

from portalcore.container import ServiceContainer
from portalcore.store import ReactiveStore

logger = logging.getLogger("portalcore.context")


class AppContext:
    def __init__(
        self,
        container: ServiceContainer | None = None,
        store: ReactiveStore | None = None,
        *,
        initial_state: Mapping[str, Any] | None = None,
    ) -> None:
        if store is not None and initial_state is not None:
            raise ValueError("pass either store or initial_state, not both")
        self.container = container if container is not None else ServiceContainer()
        self.store = store if store is not None else ReactiveStore(initial_state)
        self.services: dict[str, Any] = {}
        self._closed = False

    async def start(self, order: Iterable[str]) -> dict[str, Any]:
        """Resolve services one after another in the given order.

        Stops at the first failure and re-raises it; services resolved so far
        stay in self.services.
        """
        for name in order:
            self.services[name] = await self.container.resolve(name)
            logger.debug("Started %s", name)
        return dict(self.services)

    def reload(self, setup_fn: Callable[[ServiceContainer], None]) -> bool:
        """Rebuild the container registrations. The store survives.

        A HotReloadContainer reloads safely (failures are logged); a plain
        container lets setup_fn errors propagate.
        """
        self.services.clear()
        reconcile = getattr(self.container, "reconcile", None)
        if reconcile is not None:
            return reconcile(setup_fn)
        self.container.clear()
        setup_fn(self.container)
        return True

    def close(self) -> None:
        """Clear the container and destroy the store. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        self.services.clear()
        self.container.clear()
        self.store.destroy()
        logger.debug("Application context closed")

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aenter__(self) -> AppContext:
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()
