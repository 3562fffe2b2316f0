"""Hot-reload-aware container. Opt-in — import only if you need hot-reload support."""

import logging

from portalcore.container import ServiceContainer

logger = logging.getLogger("portalcore.hot_reload")


class HotReloadContainer(ServiceContainer):
    """Container that can be torn down and re-registered wholesale.

    Same API as ServiceContainer. Adds reconcile():
    - Exception safety: registration failures are caught and logged
    - Logging: reloads are clearly logged
    - Degraded operation: if registration fails, the container is left empty
      and resolve() reports services as not registered
    """

    def reconcile(self, setup_fn) -> bool:
        """Clear everything, then run setup_fn(container) to register services again.

        Returns True when setup_fn completed.
        """
        old_services = set(self.get_registered_services())
        self.clear()

        try:
            setup_fn(self)
        except Exception:
            logger.exception("Failed to register services during reload")
            # Partial registrations are dropped so nothing half-wired resolves.
            self.clear()
            return False

        new_services = set(self.get_registered_services())
        logger.info(
            "Reloaded: %d services (%d added, %d removed)",
            len(new_services),
            len(new_services - old_services),
            len(old_services - new_services),
        )
        return True
