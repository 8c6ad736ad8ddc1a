from __future__ import annotations

import asyncio
import logging
from typing import Optional

from sqs_consumer.core.models import SqsMessage
from sqs_consumer.errors import ConsumerError
from sqs_consumer.io.sqs import SQS_MAX_VISIBILITY, QueueClient, run_queue_call

logger = logging.getLogger(__name__)

# Next extension is scheduled at this fraction of the new timeout, so it lands
# well before the previous one would have run out.
EXTENSION_DELAY_RATIO = 0.45


class VisibilityExtender:
    """
    Keeps an in-flight message hidden while its handler is still running.

    Each round doubles ``message.visibility_timeout``, pushes it to SQS and
    sleeps for 45% of the new value. The first round runs as soon as the
    extender starts. Rounds stop for good once the message reaches a
    terminal state. Failed extensions are logged only.
    """

    def __init__(self, queue: QueueClient, queue_url: str, message: SqsMessage):
        self.queue = queue
        self.queue_url = queue_url
        self.message = message
        self.rounds = 0
        self._task: Optional[asyncio.Task] = None
        self._finished = asyncio.Event()
        self._warned_over_max = False

    def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.ensure_future(self._extend_loop())
        logger.debug(f"Started visibility extender for message {self.message.message_id}")

    async def stop(self) -> None:
        """Stop extending; waits for an extension call already on the wire."""
        self._finished.set()
        if self._task is not None:
            await self._task
        logger.debug(
            f"Stopped visibility extender for message {self.message.message_id} after {self.rounds} round(s)"
        )

    async def _extend_loop(self) -> None:
        while not self._done():
            # a queue visibility of 0 would never grow and spin this loop
            timeout = max(self.message.visibility_timeout or 0, 1) * 2
            self.message.visibility_timeout = timeout
            self.rounds += 1

            if timeout > SQS_MAX_VISIBILITY and not self._warned_over_max:
                self._warned_over_max = True
                logger.warning(
                    f"Visibility timeout for message {self.message.message_id} grew to {timeout}s, "
                    f"above the SQS maximum of {SQS_MAX_VISIBILITY}s; further extensions will be rejected"
                )

            try:
                await run_queue_call(
                    self.queue.change_visibility,
                    self.queue_url,
                    self.message.receipt_handle,
                    timeout,
                )
                logger.debug(f"Extended visibility timeout for message {self.message.message_id} to {timeout}s")
            except ConsumerError as e:
                logger.warning(f"Failed to extend visibility for message {self.message.message_id}: {e}")

            if self._done():
                break
            try:
                await asyncio.wait_for(self._finished.wait(), timeout=timeout * EXTENSION_DELAY_RATIO)
            except asyncio.TimeoutError:
                pass

    def _done(self) -> bool:
        return self._finished.is_set() or self.message.finished_processing
