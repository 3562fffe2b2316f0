"""Built-in middleware.

logging_middleware traces each action and the state around it at DEBUG.
error_handling_middleware turns failures further down the chain (later
middleware, the reducer, or a listener fired by the resulting change) into
state: ``lastError`` holds the message and ``errorCount`` counts failures.
It does not re-raise.

Install error_handling_middleware after logging_middleware so the trace
still brackets actions that fail.
"""

from __future__ import annotations

import logging

logger = logging.getLogger("portalcore.middleware")


def logging_middleware(store):
    def wrap(next_):
        def handle(action):
            if not logger.isEnabledFor(logging.DEBUG):
                next_(action)
                return
            logger.debug("Action: %s payload=%r", action.type, action.payload)
            logger.debug("Previous state: %r", store.get_state())
            next_(action)
            logger.debug("Next state: %r", store.get_state())

        return handle

    return wrap


def error_handling_middleware(store):
    def wrap(next_):
        def handle(action):
            try:
                next_(action)
            except Exception as exc:
                logger.exception("State update failed for action %s", action.type)
                store.set_state({
                    "lastError": str(exc) or type(exc).__name__,
                    "errorCount": (store.get_state("errorCount") or 0) + 1,
                })

        return handle

    return wrap
