"""ServiceContainer — named async factories with singleton caching.

Services are registered by name with a factory and a list of dependency names.
resolve() builds the dependencies concurrently, calls the factory with them as
positional arguments and caches the result for singletons.

Concurrent resolve() calls for the same name share one asyncio task, so a
factory runs at most once per in-flight resolution. Cycles are detected from
the resolution path (see _tracking), and from what each in-flight resolution
is waiting on when two top-level calls meet halfway round a cycle. Either way
the error surfaces before any factory in the cycle runs.

Not thread-safe: use from a single event loop.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from portalcore import _tracking

logger = logging.getLogger("portalcore.container")

_UNSET = object()

Factory = Callable[..., Any]


class ContainerError(Exception):
    """Base class for container failures."""


class ServiceNotRegisteredError(ContainerError, LookupError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Service {name} not registered")
        self.name = name


class CircularDependencyError(ContainerError):
    def __init__(self, name: str, path: tuple[str, ...] = ()) -> None:
        chain = " -> ".join(path + (name,))
        super().__init__(f"Circular dependency detected for service {name} ({chain})")
        self.name = name
        self.path = path


@dataclass(eq=False)
class ServiceDefinition:
    name: str
    factory: Factory
    singleton: bool = True
    dependencies: tuple[str, ...] = ()
    instance: Any = field(default=_UNSET, repr=False)

    @property
    def has_instance(self) -> bool:
        return self.instance is not _UNSET


class ServiceContainer:
    """Registry of named service factories."""

    def __init__(self) -> None:
        self._services: dict[str, ServiceDefinition] = {}
        self._pending: dict[str, asyncio.Task] = {}
        self._resolving: set[str] = set()
        # name -> names its in-flight resolution is currently awaiting
        self._waits: dict[str, list[str]] = {}

    def register(
        self,
        name: str,
        factory: Factory,
        *,
        singleton: bool = True,
        dependencies: Iterable[str] = (),
    ) -> None:
        """Register or overwrite a service. Dependencies may name services registered later."""
        definition = ServiceDefinition(
            name=name,
            factory=factory,
            singleton=singleton,
            dependencies=tuple(dependencies),
        )
        self._services[name] = definition
        logger.debug(
            "Registered %s (singleton=%s, dependencies=%s)", name, singleton, list(definition.dependencies)
        )

    async def resolve(self, name: str) -> Any:
        """Return the instance for name, building it and its dependencies if needed."""
        definition = self._services.get(name)
        if definition is None:
            raise ServiceNotRegisteredError(name)

        if definition.singleton and definition.has_instance:
            return definition.instance

        path = _tracking.current_path()
        if name in path:
            raise CircularDependencyError(name, path)

        parent = path[-1] if path else None
        # Joining a resolution that is itself waiting on us would never settle.
        if parent is not None and self._waits_on(name, parent):
            raise CircularDependencyError(name, path)

        task = self._pending.get(name)
        if task is None:
            # Stored before the first await so concurrent callers share it.
            task = asyncio.ensure_future(self._create(definition))
            self._pending[name] = task
            self._resolving.add(name)

        if parent is None:
            return await asyncio.shield(task)

        self._waits.setdefault(parent, []).append(name)
        try:
            return await asyncio.shield(task)
        finally:
            edges = self._waits.get(parent)
            if edges is not None and name in edges:
                edges.remove(name)
                if not edges:
                    del self._waits[parent]

    def _waits_on(self, start: str, target: str) -> bool:
        """Is the resolution of start (transitively) awaiting target?"""
        seen: set[str] = set()
        stack = [start]
        while stack:
            current = stack.pop()
            if current == target:
                return True
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self._waits.get(current, ()))
        return False

    async def _create(self, definition: ServiceDefinition) -> Any:
        name = definition.name
        token = _tracking.enter(name, asyncio.current_task())
        try:
            deps = await asyncio.gather(*(self.resolve(dep) for dep in definition.dependencies))
            instance = definition.factory(*deps)
            if inspect.isawaitable(instance):
                instance = await instance
            # A clear() or re-register while we were building drops the result.
            if definition.singleton and self._services.get(name) is definition:
                definition.instance = instance
            logger.debug("Resolved %s", name)
            return instance
        finally:
            _tracking.leave(token)
            if self._pending.get(name) is asyncio.current_task():
                del self._pending[name]
                self._resolving.discard(name)

    def clear(self) -> None:
        """Drop every registration, cached instance and in-flight bookkeeping."""
        count = len(self._services)
        self._services.clear()
        self._pending.clear()
        self._resolving.clear()
        self._waits.clear()
        logger.debug("Cleared %d services", count)

    def is_registered(self, name: str) -> bool:
        return name in self._services

    has = is_registered

    def __contains__(self, name: object) -> bool:
        return name in self._services

    def get_registered_services(self) -> list[str]:
        return list(self._services)

    def get_status(self) -> dict[str, Any]:
        return {
            "registered_services": list(self._services),
            "registration_count": len(self._services),
            "instance_count": sum(
                1 for d in self._services.values() if d.singleton and d.has_instance
            ),
            "resolving": sorted(self._resolving),
        }

    def __repr__(self) -> str:
        return f"ServiceContainer({len(self._services)} services, {len(self._pending)} pending)"
