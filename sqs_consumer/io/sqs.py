from __future__ import annotations
import asyncio
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from sqs_consumer.core.models import SqsMessage
from sqs_consumer.errors import ConsumerError, transport_error

SQS_MAX_VISIBILITY = 43_200  # 12h hard SQS limit


class QueueClient(Protocol):
    """
    Queue operations the consumer depends on.

    Implementations are synchronous; the consumer runs them in the event
    loop's executor. Every failure must surface as a TRANSPORT ConsumerError.
    """

    def receive_batch(
        self,
        queue_url: str,
        attribute_names: Sequence[str],
        message_attribute_names: Sequence[str],
        max_messages: int,
        wait_seconds: int,
        visibility_timeout: Optional[int] = None,
    ) -> List[SqsMessage]: ...

    def get_visibility_timeout(self, queue_url: str) -> int: ...

    def delete(self, queue_url: str, receipt_handle: str) -> None: ...

    def change_visibility(self, queue_url: str, receipt_handle: str, timeout_seconds: int) -> None: ...


class SQSClient:
    """AWS SQS client used by the consumer loop."""

    def __init__(self, region: str, client: Any = None, wait_seconds: int = 20):
        """
        Initialize SQS client.

        Args:
            region: AWS region (e.g., "eu-west-1")
            client: Pre-built boto3 SQS client (tests pass a stubbed one)
            wait_seconds: Longest long-poll this client will issue; the read
                timeout is kept above it so botocore doesn't cut the poll short
        """
        self.region = region
        self.client = client or boto3.client(
            "sqs",
            region_name=region,
            config=Config(
                retries={"max_attempts": 6, "mode": "standard"},
                read_timeout=max(wait_seconds, 20) + 50,
                connect_timeout=3,
            ),
        )

    def receive_batch(
        self,
        queue_url: str,
        attribute_names: Sequence[str],
        message_attribute_names: Sequence[str],
        max_messages: int,
        wait_seconds: int,
        visibility_timeout: Optional[int] = None,
    ) -> List[SqsMessage]:
        """
        Long-poll and return up to max_messages messages (possibly none).

        Args:
            queue_url: SQS queue URL
            attribute_names: System attributes to return (e.g. ["All"])
            message_attribute_names: Message attributes to return
            max_messages: 1-10
            wait_seconds: Long polling wait time (0-20 seconds)
            visibility_timeout: Optional per-receive visibility timeout override
        """
        params: Dict[str, Any] = {
            "QueueUrl": queue_url,
            "MaxNumberOfMessages": max_messages,
            "WaitTimeSeconds": wait_seconds,
        }
        if attribute_names:
            params["AttributeNames"] = list(attribute_names)
        if message_attribute_names:
            params["MessageAttributeNames"] = list(message_attribute_names)
        if visibility_timeout is not None:
            params["VisibilityTimeout"] = visibility_timeout

        try:
            response = self.client.receive_message(**params)
        except (ClientError, BotoCoreError) as e:
            raise transport_error(e, f"SQS receive message failed: {e}", self.region) from e

        return [SqsMessage.from_boto(m) for m in response.get("Messages", [])]

    def get_visibility_timeout(self, queue_url: str) -> int:
        """Return the queue's configured VisibilityTimeout in seconds."""
        try:
            response = self.client.get_queue_attributes(
                QueueUrl=queue_url,
                AttributeNames=["VisibilityTimeout"],
            )
        except (ClientError, BotoCoreError) as e:
            raise transport_error(e, f"SQS get queue attributes failed: {e}", self.region) from e

        return int(response.get("Attributes", {}).get("VisibilityTimeout", 30))

    def delete(self, queue_url: str, receipt_handle: str) -> None:
        """
        Delete a message from the queue.

        Args:
            queue_url: SQS queue URL
            receipt_handle: Receipt handle from received message
        """
        try:
            self.client.delete_message(
                QueueUrl=queue_url,
                ReceiptHandle=receipt_handle,
            )
        except (ClientError, BotoCoreError) as e:
            raise transport_error(e, f"SQS delete message failed: {e}", self.region) from e

    def change_visibility(
        self,
        queue_url: str,
        receipt_handle: str,
        timeout_seconds: int,
    ) -> None:
        """
        Change the visibility timeout of a message.

        Used both to extend long-running work and, with 0, to release a
        failed message for immediate redelivery.

        Args:
            queue_url: SQS queue URL
            receipt_handle: Receipt handle from received message
            timeout_seconds: New visibility timeout in seconds (0-43200)
        """
        try:
            self.client.change_message_visibility(
                QueueUrl=queue_url,
                ReceiptHandle=receipt_handle,
                VisibilityTimeout=timeout_seconds,
            )
        except (ClientError, BotoCoreError) as e:
            raise transport_error(e, f"SQS change message visibility failed: {e}", self.region) from e

    def get_queue_stats(self, queue_url: str) -> dict:
        """Approximate queue counts plus the visibility timeout, for the stats command."""
        try:
            response = self.client.get_queue_attributes(
                QueueUrl=queue_url,
                AttributeNames=["All"],
            )
        except (ClientError, BotoCoreError) as e:
            raise transport_error(e, f"SQS get queue attributes failed: {e}", self.region) from e

        attrs = response.get("Attributes", {})

        return {
            "approximate_messages": int(attrs.get("ApproximateNumberOfMessages", 0)),
            "approximate_messages_not_visible": int(attrs.get("ApproximateNumberOfMessagesNotVisible", 0)),
            "approximate_messages_delayed": int(attrs.get("ApproximateNumberOfMessagesDelayed", 0)),
            "visibility_timeout": int(attrs.get("VisibilityTimeout", 0)),
            "created_timestamp": int(attrs.get("CreatedTimestamp", 0)),
            "last_modified_timestamp": int(attrs.get("LastModifiedTimestamp", 0)),
        }


async def run_queue_call(fn: Callable[..., Any], *args: Any, region: Optional[str] = None) -> Any:
    """
    Run a blocking queue client call in the event loop's default executor.

    Anything other than a ConsumerError escaping the client is wrapped as a
    TRANSPORT error so callers only ever classify by ``err.kind``.
    """
    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(None, fn, *args)
    except ConsumerError:
        raise
    except Exception as e:
        name = getattr(fn, "__name__", "call")
        raise transport_error(e, f"SQS {name} failed: {e}", region) from e
