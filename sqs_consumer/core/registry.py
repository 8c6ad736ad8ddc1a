from __future__ import annotations

import importlib
import logging
from collections.abc import Callable
from typing import Any

from sqs_consumer.core.models import SqsMessage

logger = logging.getLogger(__name__)

Handler = Callable[[SqsMessage], Any]


# Registry mapping handler names to message handlers
_REGISTRY: dict[str, Handler] = {}


def register_handler(name: str, handler: Handler) -> Handler:
    """
    Register a message handler under a short name.

    Args:
        name: Name used on the command line (e.g., "echo")
        handler: Coroutine function or plain callable taking one SqsMessage
    """
    if not callable(handler):
        raise ValueError(f"Handler '{name}' is not callable")
    _REGISTRY[name] = handler
    return handler


def get_handler(name: str) -> Handler:
    """
    Resolve a handler by registered name or by import path.

    Args:
        name: Registered name, or "package.module:attribute"

    Returns:
        The handler callable

    Raises:
        ValueError: If the name is not registered and cannot be imported
    """
    if name in _REGISTRY:
        return _REGISTRY[name]

    if ":" in name:
        module_name, _, attr_path = name.partition(":")
        try:
            obj: Any = importlib.import_module(module_name)
        except ImportError as e:
            raise ValueError(f"Cannot import handler module '{module_name}': {e}") from e

        for attr in attr_path.split("."):
            try:
                obj = getattr(obj, attr)
            except AttributeError as e:
                raise ValueError(f"Module '{module_name}' has no attribute '{attr_path}'") from e

        if not callable(obj):
            raise ValueError(f"Handler '{name}' is not callable")
        logger.debug(f"Loaded handler {name}")
        return obj

    available = ", ".join(sorted(_REGISTRY)) or "none"
    raise ValueError(
        f"No handler registered for '{name}'. Available: {available}. "
        "Use 'package.module:function' to load one by import path."
    )


async def _log_body(message: SqsMessage) -> None:
    logger.info(f"Message {message.message_id}: {message.body}", extra={"message_id": message.message_id})


register_handler("log", _log_body)
