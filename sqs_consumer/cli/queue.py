"""
SQS Consumer queue CLI - Inspect the consumed queue.

Usage:
  sqs-consumer queue stats --queue-url <url>
"""

import os
import sys
from datetime import datetime

import click
from rich.console import Console
from rich.table import Table

console = Console()


def get_sqs_client(region=None):
    """Get SQS client from environment."""
    from sqs_consumer.io.sqs import SQSClient

    region = region or os.environ.get('SQS_CONSUMER_REGION') or os.environ.get('AWS_REGION', 'eu-west-1')
    return SQSClient(region)


@click.group()
def queue():
    """Inspect queues (stats)."""
    pass


@queue.command()
@click.option('--queue-url', help='SQS queue URL (default: from SQS_CONSUMER_QUEUE_URL env)')
@click.option('--region', help='AWS region (default: from SQS_CONSUMER_REGION / AWS_REGION env or eu-west-1)')
def stats(queue_url, region):
    """Show queue statistics."""
    from sqs_consumer.errors import ConsumerError

    queue_url = queue_url or os.environ.get('SQS_CONSUMER_QUEUE_URL')
    if not queue_url:
        console.print("[red]Error:[/red] Must specify --queue-url or set SQS_CONSUMER_QUEUE_URL")
        sys.exit(1)

    sqs = get_sqs_client(region)

    try:
        stats_data = sqs.get_queue_stats(queue_url)
    except ConsumerError as e:
        console.print(f"[red]Error:[/red] {e}")
        if e.is_authentication_error:
            console.print("[yellow]Check your AWS credentials / profile.[/yellow]")
        sys.exit(1)

    table = Table(title=f"Queue Stats: {queue_url}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Messages Available", str(stats_data['approximate_messages']))
    table.add_row("Messages In Flight", str(stats_data['approximate_messages_not_visible']))
    table.add_row("Messages Delayed", str(stats_data['approximate_messages_delayed']))
    table.add_row("Visibility Timeout", f"{stats_data['visibility_timeout']}s")

    # Convert timestamps
    created = datetime.fromtimestamp(stats_data['created_timestamp'])
    modified = datetime.fromtimestamp(stats_data['last_modified_timestamp'])

    table.add_row("Created", created.strftime('%Y-%m-%d %H:%M:%S'))
    table.add_row("Last Modified", modified.strftime('%Y-%m-%d %H:%M:%S'))

    console.print(table)
