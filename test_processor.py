"""
Tests for MessageProcessor: delete on success, failure classification,
visibility release.
"""

import asyncio

from conftest import EventRecorder, FakeQueue, make_message
from sqs_consumer.config import ConsumerConfig
from sqs_consumer.core.events import EventSink
from sqs_consumer.core.models import MessageState
from sqs_consumer.core.processor import MessageProcessor
from sqs_consumer.errors import ConsumerError, ErrorKind

QUEUE_URL = "https://sqs.eu-west-1.amazonaws.com/123456789012/test-queue"


def process(queue, handler, message, queue_visibility_timeout=30, **options):
    sink = EventSink()
    recorder = EventRecorder(sink)
    cfg = ConsumerConfig(queue_url=QUEUE_URL, handler=handler, **options)
    processor = MessageProcessor(cfg, queue, sink, queue_visibility_timeout)
    asyncio.run(processor.process(message))
    return recorder


def test_success_deletes_and_marks_succeeded():
    queue = FakeQueue()
    message = make_message(1)

    async def handler(msg):
        return "done"

    recorder = process(queue, handler, message)

    assert recorder.names() == ["message_received", "message_processed"]
    assert queue.deleted == ["receipt-1"]
    assert message.state is MessageState.SUCCEEDED
    assert message.finished_processing is True


def test_sync_handler_runs_in_executor():
    queue = FakeQueue()
    seen = []

    def handler(msg):
        seen.append(msg.body)

    recorder = process(queue, handler, make_message(7))

    assert seen == ["body 7"]
    assert recorder.names() == ["message_received", "message_processed"]


def test_handler_failure_emits_processing_error():
    queue = FakeQueue()
    message = make_message(1)

    async def handler(msg):
        raise KeyError("order_id")

    recorder = process(queue, handler, message)

    (err, msg), = recorder.of("processing_error")
    assert err.kind is ErrorKind.PROCESSING
    assert str(err).startswith("Unexpected message handler failure:")
    assert isinstance(err.__cause__, KeyError)
    assert msg is message
    assert message.state is MessageState.FAILED
    assert queue.deleted == []


def test_delete_failure_is_reported_as_error_with_message():
    queue = FakeQueue()
    queue.delete_error = ConsumerError("SQS delete message failed: gone", ErrorKind.TRANSPORT, code="ReceiptHandleIsInvalid")
    message = make_message(1)

    async def handler(msg):
        return None

    recorder = process(queue, handler, message)

    assert recorder.of("error") == [(queue.delete_error, message)]
    assert recorder.of("message_processed") == []
    assert message.state is MessageState.FAILED


def test_transport_error_raised_by_handler_keeps_its_kind():
    queue = FakeQueue()
    transport = ConsumerError("downstream queue unavailable", ErrorKind.TRANSPORT, status_code=503)

    async def handler(msg):
        raise transport

    recorder = process(queue, handler, make_message(1))

    assert [args[0] for args in recorder.of("error")] == [transport]
    assert recorder.of("processing_error") == []


def test_release_failure_is_emitted_and_swallowed():
    queue = FakeQueue()
    queue.change_visibility_error = ConsumerError("SQS change message visibility failed", ErrorKind.TRANSPORT)
    message = make_message(1)

    async def handler(msg):
        raise RuntimeError("boom")

    recorder = process(queue, handler, message, terminate_visibility_timeout=True)

    assert recorder.names() == ["message_received", "processing_error", "error"]
    assert recorder.of("error") == [(queue.change_visibility_error, message)]
    assert queue.visibility_changes == [("receipt-1", 0)]


def test_timeout_releases_message_when_enabled():
    queue = FakeQueue()

    async def handler(msg):
        await asyncio.sleep(1)

    recorder = process(queue, handler, make_message(1), handle_message_timeout_ms=30, terminate_visibility_timeout=True)

    assert recorder.names() == ["message_received", "timeout_error"]
    assert queue.visibility_changes == [("receipt-1", 0)]


def test_extend_visibility_pushes_doubled_timeout_while_handling():
    queue = FakeQueue()
    message = make_message(1)

    async def handler(msg):
        await asyncio.sleep(0.05)

    process(queue, handler, message, queue_visibility_timeout=30, extend_visibility_timeout=True)

    assert queue.visibility_changes == [("receipt-1", 60)]
    assert message.visibility_timeout == 60
    assert queue.deleted == ["receipt-1"]


def test_no_extension_when_disabled():
    queue = FakeQueue()

    async def handler(msg):
        await asyncio.sleep(0.02)

    process(queue, handler, make_message(1))

    assert queue.visibility_changes == []
