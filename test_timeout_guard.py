"""
Tests for the handler-vs-deadline race.
"""

import asyncio

import pytest

from conftest import make_message
from sqs_consumer.core.models import MessageState
from sqs_consumer.core.timeout_guard import run_with_timeout
from sqs_consumer.errors import ConsumerError, ErrorKind


def test_no_budget_awaits_handler_directly():
    async def handler(msg):
        await asyncio.sleep(0.01)
        return msg.body.upper()

    result = asyncio.run(run_with_timeout(handler, make_message(1), None))

    assert result == "BODY 1"


def test_fast_handler_wins_the_race():
    message = make_message(1)

    async def handler(msg):
        return 42

    assert asyncio.run(run_with_timeout(handler, message, 500)) == 42
    assert message.state is MessageState.RECEIVED


def test_timeout_marks_message_and_embeds_budget():
    message = make_message(1)

    async def handler(msg):
        await asyncio.sleep(1)

    with pytest.raises(ConsumerError) as excinfo:
        asyncio.run(run_with_timeout(handler, message, 25))

    assert excinfo.value.kind is ErrorKind.TIMEOUT
    assert str(excinfo.value) == "Message handler timed out after 25ms: Operation timed out."
    assert message.finished_processing is True


def test_timed_out_handler_is_not_cancelled():
    message = make_message(1)
    finished = []

    async def handler(msg):
        await asyncio.sleep(0.1)
        finished.append(msg.message_id)

    async def _main():
        with pytest.raises(ConsumerError):
            await run_with_timeout(handler, message, 20)
        await asyncio.sleep(0.2)

    asyncio.run(_main())

    assert finished == ["msg-1"]


def test_late_failure_of_abandoned_handler_is_discarded():
    async def handler(msg):
        await asyncio.sleep(0.05)
        raise RuntimeError("too late")

    async def _main():
        with pytest.raises(ConsumerError) as excinfo:
            await run_with_timeout(handler, make_message(1), 10)
        await asyncio.sleep(0.1)
        return excinfo.value

    err = asyncio.run(_main())
    assert err.kind is ErrorKind.TIMEOUT


def test_handler_exception_becomes_processing_error():
    message = make_message(1)

    async def handler(msg):
        raise ValueError("boom")

    with pytest.raises(ConsumerError) as excinfo:
        asyncio.run(run_with_timeout(handler, message, 1000))

    assert excinfo.value.kind is ErrorKind.PROCESSING
    assert str(excinfo.value) == "Unexpected message handler failure: boom"
    assert message.state is MessageState.FAILED
