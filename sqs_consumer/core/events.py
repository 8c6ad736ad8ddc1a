from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]

STOPPED = "stopped"
EMPTY = "empty"
RESPONSE_PROCESSED = "response_processed"
MESSAGE_RECEIVED = "message_received"
MESSAGE_PROCESSED = "message_processed"
ERROR = "error"
TIMEOUT_ERROR = "timeout_error"
PROCESSING_ERROR = "processing_error"

EVENTS = (
    STOPPED,
    EMPTY,
    RESPONSE_PROCESSED,
    MESSAGE_RECEIVED,
    MESSAGE_PROCESSED,
    ERROR,
    TIMEOUT_ERROR,
    PROCESSING_ERROR,
)


class EventSink:
    """
    Synchronous publish/subscribe channel for consumer notifications.

    Listeners are called in subscription order on the event loop thread.
    A listener that raises is logged and skipped; it never reaches the
    poll loop.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, event: str, listener: Listener) -> Listener:
        self._listeners.setdefault(event, []).append(listener)
        return listener

    def once(self, event: str, listener: Listener) -> Listener:
        def _once(*args: Any) -> Any:
            self.off(event, _once)
            return listener(*args)

        _once.listener = listener  # type: ignore[attr-defined]
        return self.on(event, _once)

    def off(self, event: str, listener: Listener) -> None:
        """Remove one registration of ``listener``, including one added with ``once``."""
        listeners = self._listeners.get(event, [])
        for registered in listeners:
            if registered == listener or getattr(registered, "listener", None) == listener:
                listeners.remove(registered)
                return

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def emit(self, event: str, *args: Any) -> bool:
        """Call every listener of ``event``; returns False when nobody listens."""
        listeners = list(self._listeners.get(event, []))
        for listener in listeners:
            try:
                listener(*args)
            except Exception:
                logger.exception(f"Listener for '{event}' event failed")
        return bool(listeners)


def attach_logging(sink: EventSink, log: logging.Logger | None = None) -> None:
    """Log every consumer event; used by the CLI worker."""
    log = log or logging.getLogger("sqs_consumer.events")

    sink.on(STOPPED, lambda: log.info("Consumer stopped"))
    sink.on(EMPTY, lambda: log.debug("Empty poll, no messages received"))
    sink.on(RESPONSE_PROCESSED, lambda: log.debug("Batch processed"))
    sink.on(
        MESSAGE_RECEIVED,
        lambda msg: log.debug(f"Received message {msg.message_id}", extra={"message_id": msg.message_id}),
    )
    sink.on(
        MESSAGE_PROCESSED,
        lambda msg: log.info(f"Processed message {msg.message_id}", extra={"message_id": msg.message_id}),
    )

    def _on_error(err: BaseException, msg: Any = None) -> None:
        extra = {"message_id": msg.message_id} if msg is not None else {}
        log.error(f"Consumer error: {err}", extra=extra)

    def _on_message_failure(err: BaseException, msg: Any) -> None:
        log.warning(f"Message {msg.message_id} failed: {err}", extra={"message_id": msg.message_id})

    sink.on(ERROR, _on_error)
    sink.on(TIMEOUT_ERROR, _on_message_failure)
    sink.on(PROCESSING_ERROR, _on_message_failure)
