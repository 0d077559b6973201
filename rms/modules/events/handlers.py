"""EventHandlerRegistry — maps outbox event types to handler callables."""

import logging
from collections import defaultdict
from collections.abc import Callable

logger = logging.getLogger(__name__)

EventHandler = Callable[[dict], object]


class EventHandlerRegistry:
    """Process-wide registry of outbox event handlers.

    Handlers are plain callables taking the event payload dict. Several
    handlers may listen to the same event type; they run in registration
    order.
    """

    _handlers: dict[str, list[EventHandler]] = defaultdict(list)

    @classmethod
    def register(cls, event_type: str, handler: EventHandler) -> None:
        if handler in cls._handlers[event_type]:
            return
        cls._handlers[event_type].append(handler)
        logger.info("Registered handler %s for event type %s", handler.__name__, event_type)

    @classmethod
    def handles(cls, event_type: str) -> Callable[[EventHandler], EventHandler]:
        """Decorator form of ``register``."""

        def _decorator(handler: EventHandler) -> EventHandler:
            cls.register(event_type, handler)
            return handler

        return _decorator

    @classmethod
    def get_handlers(cls, event_type: str) -> list[EventHandler]:
        return list(cls._handlers.get(event_type, []))

    @classmethod
    def dispatch(cls, event_type: str, payload: dict) -> list[dict]:
        """Run every handler for ``event_type``.

        Returns one result dict per handler. A failing handler is logged and
        reported as ``status="error"``; the remaining handlers still run.
        """
        results = []
        for handler in cls.get_handlers(event_type):
            try:
                handler(payload)
                results.append({"handler": handler.__name__, "status": "ok"})
            except Exception as exc:
                logger.exception(
                    "Handler %s failed for event type %s", handler.__name__, event_type
                )
                results.append({
                    "handler": handler.__name__,
                    "status": "error",
                    "error": str(exc),
                })
        if not results:
            logger.debug("No handlers registered for event type %s", event_type)
        return results

    @classmethod
    def clear(cls) -> None:
        """Remove all registered handlers. Used by tests."""
        cls._handlers.clear()
