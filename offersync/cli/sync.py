# offersync/cli/sync.py
import asyncio
import json

import click

from offersync.core.config import get_settings
from offersync.core.enums import SyncJobType
from offersync.core.exceptions import BaseServiceError
from offersync.core.logging_config import configure_logging
from offersync.scheduler import build_orchestrator, build_webhook_processor

STRATEGY_CHOICES = [job_type.slug for job_type in SyncJobType]


def _echo_result(result) -> None:
    click.echo(json.dumps(result.model_dump(mode="json"), indent=2))


@click.group()
@click.option('--log-level', default=None, help='Override LOG_LEVEL for this run')
def cli(log_level):
    """Operator commands for marketplace sync"""
    configure_logging(log_level)


@cli.command()
@click.option('--strategy', type=click.Choice(STRATEGY_CHOICES), required=True)
@click.option('--batch-size', type=click.IntRange(min=1), default=None, help='Items to process (default SYNC_BATCH_SIZE)')
def run(strategy, batch_size):
    """Run one sync strategy as a tracked job"""
    orchestrator = build_orchestrator(get_settings())
    try:
        result = asyncio.run(orchestrator.run_sync(strategy, batch_size))
    except BaseServiceError as e:
        raise click.ClickException(str(e))
    _echo_result(result)


@cli.command()
@click.argument('product_id', type=int)
def product(product_id):
    """Push a single product to the marketplace"""
    orchestrator = build_orchestrator(get_settings())
    try:
        result = asyncio.run(orchestrator.sync_product(product_id))
    except BaseServiceError as e:
        raise click.ClickException(str(e))
    _echo_result(result)


@cli.command('retry-event')
@click.argument('event_id', type=int)
def retry_event(event_id):
    """Replay a failed webhook event"""
    processor = build_webhook_processor(get_settings())
    try:
        result = asyncio.run(processor.retry_event(event_id))
    except BaseServiceError as e:
        raise click.ClickException(str(e))
    _echo_result(result)
    if not result.processed:
        raise SystemExit(1)


@cli.command('abandon-stale')
def abandon_stale():
    """Mark RUNNING jobs past SYNC_JOB_TIMEOUT_SECONDS as FAILED"""
    orchestrator = build_orchestrator(get_settings())
    job_ids = asyncio.run(orchestrator.abandon_stale_jobs())
    if job_ids:
        click.echo(f"Marked {len(job_ids)} job(s) FAILED: {', '.join(str(i) for i in job_ids)}")
    else:
        click.echo("No stale jobs")


if __name__ == "__main__":
    cli()
