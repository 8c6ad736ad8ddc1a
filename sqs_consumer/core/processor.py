from __future__ import annotations

import logging
from concurrent.futures import Executor
from typing import Optional

from sqs_consumer.config import ConsumerConfig
from sqs_consumer.core import events
from sqs_consumer.core.events import EventSink
from sqs_consumer.core.models import MessageState, SqsMessage
from sqs_consumer.core.timeout_guard import run_with_timeout
from sqs_consumer.core.visibility import VisibilityExtender
from sqs_consumer.errors import ConsumerError, ErrorKind
from sqs_consumer.io.sqs import QueueClient, run_queue_call

logger = logging.getLogger(__name__)

_FAILURE_EVENTS = {
    ErrorKind.TRANSPORT: events.ERROR,
    ErrorKind.TIMEOUT: events.TIMEOUT_ERROR,
    ErrorKind.PROCESSING: events.PROCESSING_ERROR,
}


class MessageProcessor:
    """
    Takes one message from receipt to a terminal state.

    Flow:
    1. Emit ``message_received``
    2. Run the handler under the timeout guard, with the visibility
       extender running alongside when enabled
    3. Success: delete the message, emit ``message_processed``
    4. Failure: emit the event matching the error kind, then optionally
       release the message (visibility 0) for immediate redelivery

    Nothing raised here reaches the poll loop; every failure becomes an event.
    A processor is built per poll cycle so configuration changes made
    mid-cycle only apply to the next one.
    """

    def __init__(
        self,
        cfg: ConsumerConfig,
        queue: QueueClient,
        sink: EventSink,
        queue_visibility_timeout: Optional[int] = None,
        handler_executor: Optional[Executor] = None,
    ):
        self.cfg = cfg
        self.queue = queue
        self.sink = sink
        self.queue_visibility_timeout = queue_visibility_timeout
        self.handler_executor = handler_executor

    async def process(self, message: SqsMessage) -> None:
        self.sink.emit(events.MESSAGE_RECEIVED, message)

        try:
            await self._execute_handler(message)
            await run_queue_call(self.queue.delete, self.cfg.queue_url, message.receipt_handle, region=self.cfg.region)
        except ConsumerError as err:
            message.mark(MessageState.FAILED)
            self.sink.emit(_FAILURE_EVENTS[err.kind], err, message)
            if self.cfg.terminate_visibility_timeout:
                await self._release(message)
            return

        message.mark(MessageState.SUCCEEDED)
        logger.debug(f"Deleted message {message.message_id}")
        self.sink.emit(events.MESSAGE_PROCESSED, message)

    async def _execute_handler(self, message: SqsMessage) -> None:
        message.mark(MessageState.HANDLING)
        message.visibility_timeout = self.queue_visibility_timeout

        extender: Optional[VisibilityExtender] = None
        if self.cfg.extend_visibility_timeout:
            extender = VisibilityExtender(self.queue, self.cfg.queue_url, message)
            extender.start()

        try:
            await run_with_timeout(
                self.cfg.handler,
                message,
                self.cfg.handle_message_timeout_ms,
                self.handler_executor,
            )
        finally:
            if extender is not None:
                await extender.stop()

    async def _release(self, message: SqsMessage) -> None:
        """Zero the visibility timeout so the message is redelivered right away."""
        try:
            await run_queue_call(
                self.queue.change_visibility,
                self.cfg.queue_url,
                message.receipt_handle,
                0,
                region=self.cfg.region,
            )
        except ConsumerError as err:
            # the message will come back once its visibility runs out anyway
            self.sink.emit(events.ERROR, err, message)
