"""
SQS Consumer worker CLI - Poll a queue and process its messages.

Usage:
  sqs-consumer worker --queue-url https://sqs... --handler mypkg.handlers:handle

Environment variables:
  SQS_CONSUMER_QUEUE_URL (queue URL, if --queue-url is not given)
  SQS_CONSUMER_HANDLER (handler name or module:function)
  SQS_CONSUMER_REGION / AWS_REGION (AWS region)
"""

import asyncio
import logging
import os
import sys

import click
from dotenv import load_dotenv

# Use "sqs_consumer" namespace so logs appear at INFO level
logger = logging.getLogger("sqs_consumer.cli.worker")

# Load environment variables from .env file if present
load_dotenv()


@click.command()
@click.option('--queue-url', type=str, help='SQS queue URL (default: from SQS_CONSUMER_QUEUE_URL env)')
@click.option('--handler', 'handler_name', type=str, help='Registered handler name or module:function')
@click.option('--batch-size', type=click.IntRange(1, 10), default=1, help='Messages per receive (1-10)')
@click.option('--concurrency', type=click.IntRange(min=1), help='Max messages handled at once (default: whole batch)')
@click.option('--wait-time', type=click.IntRange(0, 20), default=20, help='SQS long-poll wait time (seconds)')
@click.option('--handler-timeout', type=click.IntRange(min=1), help='Per-message handler budget (ms)')
@click.option('--auth-error-timeout', type=click.IntRange(min=0), default=10000, help='Pause after an authentication error (ms)')
@click.option('--polling-wait', type=click.IntRange(min=0), default=0, help='Pause between poll cycles (ms)')
@click.option('--empty-delay', type=click.IntRange(min=0), default=0, help='Extra pause after an empty poll (ms)')
@click.option('--terminate-visibility', is_flag=True, help='Release failed messages for immediate redelivery')
@click.option('--extend-visibility', is_flag=True, help='Keep extending visibility while a handler runs')
@click.option('--attribute', 'attributes', multiple=True, help='System attribute to receive (repeatable, e.g. All)')
@click.option('--message-attribute', 'message_attributes', multiple=True, help='Message attribute to receive (repeatable)')
@click.option('--region', type=str, help='AWS region (default: from SQS_CONSUMER_REGION / AWS_REGION env or eu-west-1)')
@click.pass_context
def worker(
    ctx,
    queue_url,
    handler_name,
    batch_size,
    concurrency,
    wait_time,
    handler_timeout,
    auth_error_timeout,
    polling_wait,
    empty_delay,
    terminate_visibility,
    extend_visibility,
    attributes,
    message_attributes,
    region,
):
    """Run a consumer until SIGTERM/SIGINT.

    Each received message is passed to the handler; it is deleted when the
    handler returns and left (or released) when it fails.
    """

    # Setup logging FIRST: root=WARNING, sqs_consumer namespace=INFO
    from sqs_consumer.logging_setup import setup_logging
    setup_logging(bool((ctx.find_root().obj or {}).get('verbose')))

    from sqs_consumer.config import ConsumerConfig
    from sqs_consumer.core.consumer import Consumer
    from sqs_consumer.core.events import attach_logging
    from sqs_consumer.core.registry import get_handler

    queue_url = queue_url or os.environ.get('SQS_CONSUMER_QUEUE_URL')
    if not queue_url:
        logger.error("Missing queue URL. Provide --queue-url or set SQS_CONSUMER_QUEUE_URL environment variable")
        sys.exit(1)

    handler_name = handler_name or os.environ.get('SQS_CONSUMER_HANDLER')
    if not handler_name:
        logger.error("Missing handler. Provide --handler or set SQS_CONSUMER_HANDLER environment variable")
        sys.exit(1)

    try:
        handler = get_handler(handler_name)
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    region = region or os.environ.get('SQS_CONSUMER_REGION') or os.environ.get('AWS_REGION', 'eu-west-1')

    cfg = ConsumerConfig(
        queue_url=queue_url,
        handler=handler,
        attribute_names=attributes,
        message_attribute_names=message_attributes,
        batch_size=batch_size,
        concurrency_limit=concurrency,
        wait_time_seconds=wait_time,
        handle_message_timeout_ms=handler_timeout,
        authentication_error_timeout_ms=auth_error_timeout,
        polling_wait_time_ms=polling_wait,
        empty_batch_delay_ms=empty_delay,
        terminate_visibility_timeout=terminate_visibility,
        extend_visibility_timeout=extend_visibility,
        region=region,
    )

    logger.info("Starting SQS consumer", extra={"queue_url": queue_url, "handler": handler_name, "region": region, "batch_size": batch_size})

    consumer = Consumer(cfg)
    attach_logging(consumer.sink)

    async def _run() -> None:
        consumer.install_signal_handlers()
        await consumer.run()

    try:
        asyncio.run(_run())
        logger.info("Consumer shutdown complete")
    except KeyboardInterrupt:
        logger.info("Consumer interrupted by user")
    except Exception as e:
        logger.error(f"Consumer failed: {e}", exc_info=True)
        raise
