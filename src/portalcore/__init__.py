"""portalcore: async service container and reactive state store."""

from importlib.metadata import version as _version

__version__ = _version("portalcore")

from portalcore.action import Action, ActionMeta
from portalcore.computed import ComputedProperty, Selector
from portalcore.container import (
    CircularDependencyError,
    ContainerError,
    ServiceContainer,
    ServiceNotRegisteredError,
)
from portalcore.context import AppContext
from portalcore.history import HistoryEntry
from portalcore.middleware import error_handling_middleware, logging_middleware
from portalcore.store import ReactiveStore, StoreDestroyedError, create_store
# hot_reload is opt-in, import it explicitly

__all__ = [
    "Action",
    "ActionMeta",
    "AppContext",
    "CircularDependencyError",
    "ComputedProperty",
    "ContainerError",
    "HistoryEntry",
    "ReactiveStore",
    "Selector",
    "ServiceContainer",
    "ServiceNotRegisteredError",
    "StoreDestroyedError",
    "create_store",
    "error_handling_middleware",
    "logging_middleware",
]
