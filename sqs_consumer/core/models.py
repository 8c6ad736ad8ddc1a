from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class MessageState(str, Enum):
    RECEIVED = "received"
    HANDLING = "handling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (MessageState.SUCCEEDED, MessageState.FAILED)


@dataclass
class SqsMessage:
    message_id: str
    receipt_handle: str
    body: str
    attributes: Dict[str, str] = field(default_factory=dict)
    message_attributes: Dict[str, Any] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)  # boto3 message dict as received

    # processing metadata, owned by the MessageProcessor handling this message
    state: MessageState = MessageState.RECEIVED
    visibility_timeout: Optional[int] = None  # seconds; doubled by each extension round

    @classmethod
    def from_boto(cls, msg: Dict[str, Any]) -> "SqsMessage":
        return cls(
            message_id=msg.get("MessageId", ""),
            receipt_handle=msg["ReceiptHandle"],
            body=msg.get("Body", ""),
            attributes=dict(msg.get("Attributes", {})),
            message_attributes=dict(msg.get("MessageAttributes", {})),
            raw=msg,
        )

    @property
    def finished_processing(self) -> bool:
        return self.state.is_terminal

    def mark(self, state: MessageState) -> None:
        """Move to ``state``; terminal states are never left."""
        if self.state.is_terminal:
            return
        self.state = state
