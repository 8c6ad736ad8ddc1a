"""
Race a message handler against its processing budget.

The handler runs as its own task. When the budget runs out first the task is
abandoned, not cancelled: SQS has no way to take back work already started,
so the handler is left to finish on its own and whatever it produces is
dropped. Until then it keeps holding whatever resources it holds; a plain
(sync) handler keeps its executor thread. The consumer runs plain handlers
on a pool separate from the one queue calls use.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from concurrent.futures import Executor
from typing import Any, Optional

from sqs_consumer.core.models import MessageState, SqsMessage
from sqs_consumer.errors import ConsumerError, processing_error, timeout_error

logger = logging.getLogger(__name__)


async def invoke_handler(
    handler: Callable[[SqsMessage], Any],
    message: SqsMessage,
    executor: Optional[Executor] = None,
) -> Any:
    """Await coroutine handlers; run plain callables in ``executor`` (the loop default when None)."""
    if inspect.iscoroutinefunction(handler) or inspect.iscoroutinefunction(getattr(handler, "__call__", None)):
        return await handler(message)

    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(executor, handler, message)
    if inspect.isawaitable(result):
        return await result
    return result


async def run_with_timeout(
    handler: Callable[[SqsMessage], Any],
    message: SqsMessage,
    timeout_ms: Optional[int] = None,
    executor: Optional[Executor] = None,
) -> Any:
    """
    Run ``handler(message)`` and return its result.

    Raises:
        ConsumerError: TIMEOUT when ``timeout_ms`` elapses first, PROCESSING
            when the handler raises (a ConsumerError from the handler keeps
            its own kind). The message is marked FAILED either way.
    """
    try:
        if not timeout_ms:
            return await invoke_handler(handler, message, executor)

        task = asyncio.ensure_future(invoke_handler(handler, message, executor))
        done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
        if task in done:
            return task.result()

        task.add_done_callback(_discard_late_result)
        message.mark(MessageState.FAILED)
        raise timeout_error(timeout_ms)
    except ConsumerError:
        message.mark(MessageState.FAILED)
        raise
    except Exception as e:
        message.mark(MessageState.FAILED)
        raise processing_error(e) from e


def _discard_late_result(task: "asyncio.Future[Any]") -> None:
    if task.cancelled():
        return
    exc = task.exception()  # retrieve so asyncio doesn't warn about it
    if exc is not None:
        logger.debug(f"Abandoned handler failed after its timeout: {exc}")
