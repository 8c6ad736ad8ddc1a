import json
import logging
import os
import sys
import time
from typing import Any, Dict

# JSON lines on stdout, ready for CloudWatch / any log shipper.
# Third-party loggers (botocore, urllib3) default to WARNING; the
# "sqs_consumer" namespace defaults to INFO.

_RESERVED = (
    "args", "msg", "levelname", "levelno", "name", "pathname", "filename",
    "module", "exc_info", "exc_text", "stack_info", "lineno",
    "funcName", "created", "msecs", "relativeCreated", "thread",
    "threadName", "processName", "process", "taskName",
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": time.time(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        for k, v in record.__dict__.items():
            if k in _RESERVED or k.startswith("_"):
                continue
            payload.setdefault(k, v)

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(verbose: bool = False) -> None:
    """
    Setup logging with JSON formatting.

    Args:
        verbose: If True, sets sqs_consumer logger to DEBUG and root logger to INFO.
                 If False, uses environment variables or defaults (WARNING for root, INFO for sqs_consumer).
    """
    if verbose:
        root_level = "INFO"
        app_level = "DEBUG"
    else:
        root_level = os.environ.get("SQS_CONSUMER_ROOT_LOG_LEVEL", "WARNING").upper()
        app_level = os.environ.get("SQS_CONSUMER_LOG_LEVEL", "INFO").upper()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    # Handler should not filter - let loggers control what gets through
    handler.setLevel(logging.DEBUG)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(root_level)
    root.addHandler(handler)

    app_logger = logging.getLogger("sqs_consumer")
    app_logger.setLevel(app_level)
    app_logger.propagate = True  # still go to root handler

    # botocore retries are noisy at DEBUG even in verbose mode
    logging.getLogger("botocore").setLevel(os.environ.get("SQS_CONSUMER_BOTOCORE_LOG_LEVEL", "WARNING").upper())
