#!/usr/bin/env python
"""
Management Script

CLI commands for the database and for running syncs in the foreground.

Usage:
    # Apply migrations
    python manage.py db upgrade

    # Run a full sync and wait for every submitted job
    python manage.py full-run --mode tokens_only

    # Run a metadata-only sync
    python manage.py metadata-run

    # Show the current load counters
    python manage.py load-status
"""
import asyncio
import os
import sys
import time

# Add the backend directory to the path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from flask.cli import with_appcontext
import click

from catalog_mirror import create_app
from catalog_mirror.extensions import db
from catalog_mirror.services.runtime import get_sync_runtime
from catalog_mirror.services.sync.enumeration import RunMode
from catalog_mirror.services.sync.exceptions import SyncFailureError

# Create app instance
app = create_app()


def _run_in_foreground(coro_factory):
    """Run a sync coroutine, then wait for the jobs and tasks it left behind."""
    runtime = get_sync_runtime()
    try:
        summary = asyncio.run(coro_factory(runtime.service))
    except SyncFailureError as e:
        click.echo(click.style(f'✗ Sync failed: {e}', fg='red'))
        sys.exit(1)

    while runtime.job_queue.pending_job_count or runtime.task_manager.pending_task_count:
        runtime.job_queue.wait_completion()
        time.sleep(0.1)
    click.echo(click.style('✓ Sync finished', fg='green'))
    click.echo(f"Summary: {summary['summary']}")


@app.cli.command('db-status')
@with_appcontext
def db_status():
    """Show database connection status and row counts."""
    from catalog_mirror.models import App, Package, PackageApp

    try:
        db.session.execute(db.text('SELECT 1')).fetchone()
        click.echo(click.style('✓ Database connection OK', fg='green'))

        click.echo(f'  apps: {App.query.count()}')
        click.echo(f'  packages: {Package.query.count()}')
        click.echo(f'  package contents: {PackageApp.query.count()}')
    except Exception as e:
        click.echo(click.style(f'✗ Database error: {e}', fg='red'))


@app.cli.command('full-run')
@click.option('--mode', default=RunMode.FULL_NORMAL.value,
              type=click.Choice([m.value for m in RunMode]), help='Run mode')
@with_appcontext
def full_run(mode):
    """Run a full sync in the foreground."""
    run_mode = RunMode(mode)
    _run_in_foreground(lambda service: service.run_full_sync(run_mode))


@app.cli.command('metadata-run')
@with_appcontext
def metadata_run():
    """Run a metadata-only sync in the foreground."""
    _run_in_foreground(lambda service: service.run_metadata_sync())


@app.cli.command('load-status')
@with_appcontext
def load_status():
    """Show the backpressure counters."""
    status = get_sync_runtime().service.get_status()
    for key, value in status['load'].items():
        click.echo(f'  {key}: {value}')
    click.echo(f"busy: {status['busy']}")


if __name__ == '__main__':
    import subprocess

    if len(sys.argv) > 1 and sys.argv[1] == 'db':
        # Use flask db commands
        os.environ['FLASK_APP'] = 'manage.py'
        subprocess.run(['flask'] + sys.argv[1:])
    else:
        app.cli()
