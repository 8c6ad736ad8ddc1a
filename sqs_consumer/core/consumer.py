from __future__ import annotations

import asyncio
import logging
import signal
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import replace
from enum import Enum
from typing import Any, Callable, List, Optional

from sqs_consumer.config import ConsumerConfig
from sqs_consumer.core import events
from sqs_consumer.core.events import EventSink, Listener
from sqs_consumer.core.models import SqsMessage
from sqs_consumer.core.processor import MessageProcessor
from sqs_consumer.errors import ConsumerError, ErrorKind
from sqs_consumer.io.sqs import QueueClient, SQSClient, run_queue_call

# Use "sqs_consumer" namespace so logs follow the package log level
logger = logging.getLogger("sqs_consumer.core.consumer")


class RunState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class Consumer:
    """
    Long-polling SQS consumer.

    Flow of one poll cycle:
    1. Stop requested? emit ``stopped`` and leave the loop
    2. Receive up to ``batch_size`` messages (long poll)
    3. Fetch and cache the queue's visibility timeout
    4. Process every message of the batch concurrently (bounded by
       ``concurrency_limit`` when set) and wait for all of them to settle,
       then emit ``response_processed``; or emit ``empty``
    5. Pause ``polling_wait_time_ms`` and start over

    A failed receive emits ``error``; authentication failures pause for
    ``authentication_error_timeout_ms`` before the next cycle, anything
    else is retried straight away. The loop never ends on its own: only
    ``stop()`` ends it, and only at a cycle boundary.
    """

    def __init__(
        self,
        cfg: ConsumerConfig,
        sqs: Optional[QueueClient] = None,
        sink: Optional[EventSink] = None,
        handler_executor: Optional[Executor] = None,
    ):
        """
        Initialize consumer.

        Args:
            cfg: Consumer configuration
            sqs: Queue client (default: boto3-backed SQSClient for cfg.region)
            sink: Event sink to publish on (default: a new one)
            handler_executor: Where plain (sync) handlers run. Default: a thread
                pool owned by the consumer, created on start and shut down when
                the loop exits. Queue calls never run here, so handlers that
                hang past their timeout cannot block receives or deletes.
        """
        self.cfg = cfg
        self.sqs: QueueClient = sqs or SQSClient(cfg.region, wait_seconds=cfg.wait_time_seconds)
        self.sink = sink or EventSink()

        # queue-level VisibilityTimeout, refreshed every cycle
        self.visibility_timeout: Optional[int] = None

        self._state = RunState.STOPPED
        self._task: Optional[asyncio.Task] = None
        self._wakeup: Optional[asyncio.Event] = None
        self._slots: Optional[asyncio.Semaphore] = self._make_slots(cfg.concurrency_limit)
        self._handler_executor = handler_executor
        self._owns_handler_executor = handler_executor is None

    @classmethod
    def create(
        cls,
        queue_url: str,
        handler: Callable[[SqsMessage], Any],
        sqs: Optional[QueueClient] = None,
        **options: Any,
    ) -> "Consumer":
        """Build a consumer from keyword options (see ConsumerConfig for names)."""
        return cls(ConsumerConfig(queue_url=queue_url, handler=handler, **options), sqs=sqs)

    # ---- events ----

    def on(self, event: str, listener: Listener) -> Listener:
        return self.sink.on(event, listener)

    def once(self, event: str, listener: Listener) -> Listener:
        return self.sink.once(event, listener)

    def off(self, event: str, listener: Listener) -> None:
        self.sink.off(event, listener)

    # ---- lifecycle ----

    @property
    def is_running(self) -> bool:
        return self._state is RunState.RUNNING

    def start(self) -> None:
        """Start polling in a background task. Must be called with a running event loop."""
        if self._state is RunState.RUNNING:
            return

        if self._task is not None and not self._task.done():
            # stopped but the last cycle hasn't reached its boundary yet: keep that loop going
            self._state = RunState.RUNNING
            self._wakeup.clear()
            return

        loop = asyncio.get_running_loop()
        logger.info(f"Starting consumer for {self.cfg.queue_url}")
        self._state = RunState.RUNNING
        self._wakeup = asyncio.Event()
        if self._owns_handler_executor and self._handler_executor is None:
            self._handler_executor = ThreadPoolExecutor(thread_name_prefix="sqs-handler")
        self._task = loop.create_task(self._poll_loop(), name="sqs-consumer-poll")

    def stop(self) -> None:
        """Ask the loop to stop; the cycle in progress completes first."""
        if self._state is RunState.STOPPED:
            return
        logger.info("Stopping consumer")
        self._state = RunState.STOPPED
        if self._wakeup is not None:
            self._wakeup.set()

    async def run(self) -> None:
        """Start (if needed) and wait until the consumer has stopped."""
        self.start()
        await self.wait_stopped()

    async def wait_stopped(self) -> None:
        if self._task is not None:
            await self._task

    def install_signal_handlers(self) -> None:
        """Stop gracefully on SIGTERM/SIGINT (the message in flight is allowed to finish)."""
        loop = asyncio.get_running_loop()

        def _handler(signum: int) -> None:
            logger.info(
                f"Received signal {signal.Signals(signum).name}, stopping after the current poll cycle. "
                "Messages not yet received stay in the queue."
            )
            self.stop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, _handler, sig)
        logger.info("Signal handlers installed for graceful shutdown (SIGTERM, SIGINT)")

    # ---- configuration ----

    def set_batch_size(self, batch_size: int) -> None:
        self.cfg = replace(self.cfg, batch_size=batch_size)

    def set_concurrency_limit(self, concurrency_limit: Optional[int]) -> None:
        self.cfg = replace(self.cfg, concurrency_limit=concurrency_limit)
        self._slots = self._make_slots(concurrency_limit)

    def set_polling_wait_time_ms(self, polling_wait_time_ms: int) -> None:
        self.cfg = replace(self.cfg, polling_wait_time_ms=polling_wait_time_ms)

    # ---- internals ----

    async def _poll_loop(self) -> None:
        while True:
            if self._state is RunState.STOPPED:
                self._release_handler_executor()
                self.sink.emit(events.STOPPED)
                logger.debug("Poll loop exited")
                return

            cfg = self.cfg
            delay_ms = cfg.polling_wait_time_ms

            try:
                messages = await self._receive(cfg)
            except ConsumerError as err:
                self.sink.emit(events.ERROR, err)
                if err.is_authentication_error:
                    logger.warning(
                        f"There was an authentication error. Pausing {cfg.authentication_error_timeout_ms}ms "
                        "before retrying."
                    )
                    delay_ms = max(delay_ms, cfg.authentication_error_timeout_ms)
            else:
                try:
                    await self._handle_batch(cfg, messages)
                except Exception as e:
                    # processors report their own failures; reaching here is a bug, keep polling anyway
                    logger.error(f"Unexpected failure while handling batch: {e}", exc_info=True)
                    self.sink.emit(events.ERROR, ConsumerError(f"Unexpected batch failure: {e}", ErrorKind.PROCESSING))
                if not messages:
                    delay_ms += cfg.empty_batch_delay_ms

            await self._pause(delay_ms)

    async def _receive(self, cfg: ConsumerConfig) -> List[SqsMessage]:
        logger.debug("Polling for messages")
        messages = await run_queue_call(
            self.sqs.receive_batch,
            cfg.queue_url,
            cfg.attribute_names,
            cfg.message_attribute_names,
            cfg.batch_size,
            cfg.wait_time_seconds,
            self.visibility_timeout,
            region=cfg.region,
        )
        self.visibility_timeout = await run_queue_call(
            self.sqs.get_visibility_timeout,
            cfg.queue_url,
            region=cfg.region,
        )
        return messages

    async def _handle_batch(self, cfg: ConsumerConfig, messages: List[SqsMessage]) -> None:
        if not messages:
            self.sink.emit(events.EMPTY)
            return

        logger.debug(f"Received {len(messages)} message(s)")
        processor = MessageProcessor(cfg, self.sqs, self.sink, self.visibility_timeout, self._handler_executor)
        slots = self._slots
        await asyncio.gather(*(self._dispatch(processor, slots, msg) for msg in messages))
        self.sink.emit(events.RESPONSE_PROCESSED)

    @staticmethod
    async def _dispatch(
        processor: MessageProcessor,
        slots: Optional[asyncio.Semaphore],
        message: SqsMessage,
    ) -> None:
        if slots is None:
            await processor.process(message)
            return
        async with slots:
            await processor.process(message)

    async def _pause(self, delay_ms: int) -> None:
        """Sleep between cycles; a stop request cuts the pause short."""
        if delay_ms <= 0 or self._wakeup is None:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=delay_ms / 1000)
        except asyncio.TimeoutError:
            pass

    def _release_handler_executor(self) -> None:
        if self._owns_handler_executor and self._handler_executor is not None:
            # abandoned handlers keep their threads until they return
            self._handler_executor.shutdown(wait=False)
            self._handler_executor = None

    @staticmethod
    def _make_slots(limit: Optional[int]) -> Optional[asyncio.Semaphore]:
        return asyncio.Semaphore(limit) if limit else None
