"""In-process event channel.

Components publish lifecycle notifications here; UIs, status endpoints and
tests subscribe. A misbehaving subscriber is logged and never affects the
publisher.
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

EventHandler = Callable[[dict[str, Any]], None | Awaitable[None]]


class Events:
    """Event names published on the bus."""

    REQUEST_QUEUED = "request:queued"
    REQUEST_STREAMING_CHUNK = "request:streaming-chunk"
    REQUEST_COMPLETED = "request:completed"
    REQUEST_FAILED = "request:failed"

    PROVIDER_REGISTERED = "provider:registered"
    PROVIDER_UNREGISTERED = "provider:unregistered"
    PROVIDER_CONFIGURED = "provider:configured"
    PROVIDER_INITIALIZED = "provider:initialized"
    PROVIDER_ERROR = "provider:error"
    PROVIDER_STATUS_CHANGED = "provider:status-changed"
    PROVIDER_DEFAULT_CHANGED = "provider:default-changed"

    MODEL_SELECTED = "model:selected"
    MODELS_UPDATED = "models:updated"

    CONVERSATION_CLEARED = "conversation:cleared"


class EventBus:
    """Publish/subscribe channel with sync and async handlers."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._pending: set[asyncio.Task[None]] = set()

    def subscribe(self, event: str, handler: EventHandler) -> Callable[[], None]:
        """Register handler for event; returns a callable that unsubscribes it."""
        self._handlers[event].append(handler)
        return lambda: self.unsubscribe(event, handler)

    def unsubscribe(self, event: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def handler_count(self, event: str) -> int:
        return len(self._handlers.get(event, ()))

    def publish(self, event: str, payload: dict[str, Any] | None = None) -> None:
        """Deliver payload to every handler of event.

        Coroutine handlers are scheduled on the running loop; their failures
        are logged when they complete.
        """
        data = payload or {}
        for handler in list(self._handlers.get(event, ())):
            try:
                result = handler(data)
            except Exception:
                logger.exception(f"Event handler failed for '{event}'")
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(lambda t, name=event: self._on_handler_done(t, name))

    def _on_handler_done(self, task: "asyncio.Task[None]", event: str) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Async event handler failed for '{event}': {error}", exc_info=error)

    async def drain(self) -> None:
        """Wait for scheduled async handlers to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
