import asyncio
import threading
import time
from functools import partial

import pytest

from sqs_consumer.core.events import EVENTS
from sqs_consumer.core.models import SqsMessage


def make_message(n: int) -> SqsMessage:
    return SqsMessage(message_id=f"msg-{n}", receipt_handle=f"receipt-{n}", body=f"body {n}")


class FakeQueue:
    """In-memory QueueClient. Receives pop ``batches`` in order, then return empty lists."""

    def __init__(self, batches=None, visibility_timeout=30, journal=None):
        self.batches = list(batches or [])
        self.visibility_timeout = visibility_timeout
        self.journal = journal if journal is not None else []
        self.receive_times = []
        self.receive_params = []
        self.deleted = []
        self.visibility_changes = []
        self.delete_error = None
        self.change_visibility_error = None
        self._lock = threading.Lock()

    def receive_batch(self, queue_url, attribute_names, message_attribute_names, max_messages, wait_seconds,
                      visibility_timeout=None):
        with self._lock:
            self.receive_times.append(time.monotonic())
            self.receive_params.append({
                "queue_url": queue_url,
                "attribute_names": attribute_names,
                "message_attribute_names": message_attribute_names,
                "max_messages": max_messages,
                "wait_seconds": wait_seconds,
                "visibility_timeout": visibility_timeout,
            })
            item = self.batches.pop(0) if self.batches else []
        if isinstance(item, BaseException):
            raise item
        return item

    def get_visibility_timeout(self, queue_url):
        return self.visibility_timeout

    def delete(self, queue_url, receipt_handle):
        if self.delete_error is not None:
            raise self.delete_error
        with self._lock:
            self.deleted.append(receipt_handle)
            self.journal.append(("delete", receipt_handle))

    def change_visibility(self, queue_url, receipt_handle, timeout_seconds):
        with self._lock:
            self.visibility_changes.append((receipt_handle, timeout_seconds))
            self.journal.append(("change_visibility", receipt_handle, timeout_seconds))
        if self.change_visibility_error is not None:
            raise self.change_visibility_error


class EventRecorder:
    """Records every consumer event as (name, args) in emission order."""

    def __init__(self, sink, journal=None):
        self.events = journal if journal is not None else []
        for name in EVENTS:
            sink.on(name, partial(self._record, name))

    def _record(self, name, *args):
        self.events.append((name, args))

    def names(self):
        return [e[0] for e in self.events if isinstance(e[0], str) and e[0] in EVENTS]

    def of(self, name):
        return [args for ev, args in self.events if ev == name]


def run_consumer(consumer, timeout=5.0):
    """Start the consumer and wait until it stops (tests stop it from an event listener)."""

    async def _main():
        consumer.start()
        await asyncio.wait_for(consumer.wait_stopped(), timeout)

    asyncio.run(_main())


@pytest.fixture
def fake_queue():
    return FakeQueue()
