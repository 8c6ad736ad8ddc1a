"""Long-polling AWS SQS consumer with handler timeouts and visibility management."""

__version__ = "0.1.0"

from sqs_consumer.config import ConsumerConfig  # noqa: E402
from sqs_consumer.core.consumer import Consumer, RunState  # noqa: E402
from sqs_consumer.core.events import EventSink  # noqa: E402
from sqs_consumer.core.models import MessageState, SqsMessage  # noqa: E402
from sqs_consumer.errors import ConsumerError, ErrorKind  # noqa: E402

__all__ = [
    "Consumer",
    "ConsumerConfig",
    "ConsumerError",
    "ErrorKind",
    "EventSink",
    "MessageState",
    "RunState",
    "SqsMessage",
    "__version__",
]
