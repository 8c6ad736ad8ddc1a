"""
Command line entry point for sqs-consumer.

  sqs-consumer worker --queue-url URL --handler mypkg.handlers:handle
  sqs-consumer queue stats --queue-url URL
"""

import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler

from sqs_consumer import __version__
from sqs_consumer.errors import ConsumerError

console = Console(stderr=True)

ENV_HELP = """\b
Environment:
  SQS_CONSUMER_QUEUE_URL    queue to consume when --queue-url is omitted
  SQS_CONSUMER_HANDLER      handler when --handler is omitted
  SQS_CONSUMER_REGION       AWS region (falls back to AWS_REGION)
  SQS_CONSUMER_LOG_LEVEL    level of the sqs_consumer loggers in the worker
A .env file in the working directory is read on start.
"""


def setup_logging(verbose: bool = False) -> None:
    """Human-readable logs for interactive commands; the worker switches to JSON."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
    )
    # botocore is chatty at DEBUG; keep it quiet unless asked for
    logging.getLogger("botocore").setLevel(logging.DEBUG if verbose else logging.WARNING)


@click.group(epilog=ENV_HELP, context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="sqs-consumer")
@click.option('-v', '--verbose', is_flag=True, help='Debug logging, including botocore')
@click.pass_context
def cli(ctx, verbose):
    """Long-poll an SQS queue and hand each message to a Python handler.

    Messages are deleted once their handler returns; failures are logged
    and the message is left for SQS to redeliver.
    """
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    setup_logging(verbose)


from sqs_consumer.cli.worker import worker  # noqa: E402
from sqs_consumer.cli.queue import queue  # noqa: E402

cli.add_command(worker)
cli.add_command(queue)


def main():
    """Console script entry point."""
    try:
        cli(obj={}, standalone_mode=False)
    except click.exceptions.Abort:
        console.print("[yellow]Aborted[/yellow]")
        sys.exit(130)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except ConsumerError as e:
        console.print(f"[red]SQS error ({e.kind.value}):[/red] {e}")
        if e.is_authentication_error:
            console.print("[yellow]Check your AWS credentials / profile.[/yellow]")
        sys.exit(1)
    except ValueError as e:
        # ConsumerConfig validation
        console.print(f"[red]Invalid option:[/red] {e}")
        sys.exit(2)


if __name__ == '__main__':
    main()
