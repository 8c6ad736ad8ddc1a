from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Tuple

MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 10  # SQS ReceiveMessage hard limit


def _default_region() -> str:
    return os.environ.get("AWS_REGION", "eu-west-1")


@dataclass(frozen=True)
class ConsumerConfig:
    queue_url: str
    handler: Callable[..., Any]

    attribute_names: Tuple[str, ...] = ()
    message_attribute_names: Tuple[str, ...] = ()

    batch_size: int = 1                          # messages per receive (1-10)
    concurrency_limit: Optional[int] = None      # None: whole batch at once
    wait_time_seconds: int = 20                  # long-poll wait
    handle_message_timeout_ms: Optional[int] = None
    authentication_error_timeout_ms: int = 10_000
    polling_wait_time_ms: int = 0                # pause between poll cycles
    empty_batch_delay_ms: int = 0                # extra pause after an empty poll

    terminate_visibility_timeout: bool = False   # release message right after a failure
    extend_visibility_timeout: bool = False      # keep pushing visibility while handling

    region: str = field(default_factory=_default_region)

    def __post_init__(self) -> None:
        if not self.queue_url:
            raise ValueError("Missing SQS consumer option [queue_url].")
        if self.handler is None:
            raise ValueError("Missing SQS consumer option [handler].")
        if not callable(self.handler):
            raise ValueError("SQS consumer option [handler] must be callable.")

        # callers may pass lists
        object.__setattr__(self, "attribute_names", tuple(self.attribute_names or ()))
        object.__setattr__(self, "message_attribute_names", tuple(self.message_attribute_names or ()))

        validate_batch_size(self.batch_size)
        validate_concurrency_limit(self.concurrency_limit)
        validate_non_negative("wait_time_seconds", self.wait_time_seconds)
        validate_non_negative("authentication_error_timeout_ms", self.authentication_error_timeout_ms)
        validate_non_negative("polling_wait_time_ms", self.polling_wait_time_ms)
        validate_non_negative("empty_batch_delay_ms", self.empty_batch_delay_ms)
        if self.handle_message_timeout_ms is not None and self.handle_message_timeout_ms <= 0:
            raise ValueError("SQS handle_message_timeout_ms option must be a positive number of milliseconds.")


def validate_batch_size(batch_size: int) -> None:
    if not isinstance(batch_size, int) or not MIN_BATCH_SIZE <= batch_size <= MAX_BATCH_SIZE:
        raise ValueError(f"SQS batch_size option must be between {MIN_BATCH_SIZE} and {MAX_BATCH_SIZE}.")


def validate_concurrency_limit(limit: Optional[int]) -> None:
    if limit is not None and (not isinstance(limit, int) or limit < 1):
        raise ValueError("SQS concurrency_limit option must be a positive integer or None.")


def validate_non_negative(name: str, value: int) -> None:
    if value < 0:
        raise ValueError(f"SQS {name} option must be >= 0 (got {value}).")
