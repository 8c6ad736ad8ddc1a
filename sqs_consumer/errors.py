from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from botocore.exceptions import CredentialRetrievalError, NoCredentialsError, PartialCredentialsError


class ErrorKind(str, Enum):
    TRANSPORT = "transport"    # the queue client call failed
    TIMEOUT = "timeout"        # handler exceeded its budget
    PROCESSING = "processing"  # handler raised for any other reason


class ConsumerError(Exception):
    """
    Single error type for every failure the consumer reports.

    The failure class is carried by ``kind`` and set where the error is
    built; callers branch on ``err.kind`` rather than on subclasses.
    Transport errors also carry the botocore metadata of the failed call.
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        retryable: Optional[bool] = None,
        region: Optional[str] = None,
        hostname: Optional[str] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.code = code
        self.status_code = status_code
        self.retryable = retryable
        self.region = region
        self.hostname = hostname

    @property
    def message(self) -> str:
        return str(self)

    @property
    def is_authentication_error(self) -> bool:
        """Credentials are missing or rejected; polling again right away won't help."""
        return self.kind is ErrorKind.TRANSPORT and (
            self.status_code == 403 or self.code == "CredentialsError"
        )

    def __repr__(self) -> str:
        return f"ConsumerError(kind={self.kind.value!r}, message={str(self)!r}, code={self.code!r})"


def transport_error(exc: BaseException, message: str, region: Optional[str] = None) -> ConsumerError:
    """Build a TRANSPORT error from a botocore ClientError/BotoCoreError."""
    code: Optional[str] = None
    status_code: Optional[int] = None
    retryable: Optional[bool] = None
    hostname: Optional[str] = None

    response: dict[str, Any] = getattr(exc, "response", None) or {}
    if response:
        code = response.get("Error", {}).get("Code")
        meta = response.get("ResponseMetadata", {})
        status_code = meta.get("HTTPStatusCode")
        retryable = status_code is not None and (status_code >= 500 or status_code == 429)
        hostname = meta.get("HTTPHeaders", {}).get("host")
    elif _is_credentials_failure(exc):
        # NoCredentialsError, PartialCredentialsError, ... never reach the wire
        code = "CredentialsError"
        retryable = False

    return ConsumerError(
        message,
        ErrorKind.TRANSPORT,
        code=code,
        status_code=status_code,
        retryable=retryable,
        region=region,
        hostname=hostname,
    )


def timeout_error(timeout_ms: int) -> ConsumerError:
    return ConsumerError(
        f"Message handler timed out after {timeout_ms}ms: Operation timed out.",
        ErrorKind.TIMEOUT,
    )


def processing_error(exc: BaseException) -> ConsumerError:
    return ConsumerError(f"Unexpected message handler failure: {exc}", ErrorKind.PROCESSING)


def _is_credentials_failure(exc: BaseException) -> bool:
    return isinstance(exc, (NoCredentialsError, PartialCredentialsError, CredentialRetrievalError))
