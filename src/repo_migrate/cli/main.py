"""Main CLI entry point for Repository Migration Tool."""

import asyncio
import os
import signal
import sys
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
)
from rich.table import Table

from .. import __version__
from ..config.config import Config
from ..config.credentials import CredentialStore
from ..exceptions import ConfigError, SourceListError
from ..migration.engine import MigrationEngine
from ..migration.report import MigrationReport
from ..models.repository import MigrationTask, TaskStatus
from ..utils.logging import setup_logging

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG_ERROR = 2

console = Console()

STATUS_STYLES = {
    TaskStatus.SUCCEEDED: 'green',
    TaskStatus.FAILED: 'red',
}


@click.group()
@click.version_option(version=__version__, prog_name='repo-migrate')
@click.option(
    '--config',
    '-c',
    type=click.Path(exists=True, dir_okay=False),
    help='Path to configuration file',
)
@click.option(
    '--verbose',
    '-v',
    is_flag=True,
    help='Enable verbose logging',
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], verbose: bool) -> None:
    """Repository Migration Tool - Mirror GitHub repositories into Azure DevOps."""
    ctx.ensure_object(dict)

    if config:
        ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose

    # Setup basic logging first (will be enhanced later with config)
    setup_logging('DEBUG' if verbose else 'INFO')


@cli.command()
@click.option(
    '--output',
    '-o',
    default='config.yaml',
    help='Output configuration file path',
)
def init(output: str) -> None:
    """Initialize a new configuration file."""
    console.print(
        Panel.fit(
            '[bold green]Repository Migration Tool[/bold green]\n'
            'Initializing configuration...',
            border_style='green',
        )
    )

    try:
        Config.create_template(output)
    except OSError as e:
        console.print(f'[red]✗[/red] Failed to create configuration: {e}')
        sys.exit(EXIT_FAILED)

    console.print(f'[green]✓[/green] Configuration template created at: {output}')
    console.print(
        f'[yellow]Please edit {output} and export SOURCE_TOKEN and DEST_TOKEN[/yellow]'
    )


@cli.command()
@click.option('--source-org', help='GitHub organization to migrate from')
@click.option('--dest-org', help='Azure DevOps organization (name or URL)')
@click.option('--dest-project', help='Azure DevOps project receiving the repositories')
@click.option(
    '--repos',
    help='Comma-separated repositories (owner/name, or name with --source-org)',
)
@click.option(
    '--concurrency',
    type=click.IntRange(min=1),
    help='Number of repositories migrated in parallel',
)
@click.option(
    '--max-attempts',
    type=click.IntRange(min=1),
    help='Attempts per repository for transient failures',
)
@click.option('--keep-clones', is_flag=True, help='Keep mirror clones after pushing')
@click.option(
    '--retention-dir',
    type=click.Path(file_okay=False),
    help='Directory for kept clones',
)
@click.option(
    '--temp-dir',
    type=click.Path(file_okay=False),
    help='Parent directory for temporary workspaces',
)
@click.option(
    '--report-file',
    type=click.Path(dir_okay=False),
    help='Write the migration report as JSON to this file',
)
@click.option(
    '--dry-run',
    is_flag=True,
    help='Perform a dry run without making changes',
)
@click.pass_context
def migrate(
    ctx: click.Context,
    source_org: Optional[str],
    dest_org: Optional[str],
    dest_project: Optional[str],
    repos: Optional[str],
    concurrency: Optional[int],
    max_attempts: Optional[int],
    keep_clones: bool,
    retention_dir: Optional[str],
    temp_dir: Optional[str],
    report_file: Optional[str],
    dry_run: bool,
) -> None:
    """Mirror repositories from the source to the destination host."""
    console.print(
        Panel.fit(
            '[bold blue]Repository Migration Tool[/bold blue]\n'
            'Starting migration process...',
            border_style='blue',
        )
    )

    overrides = {
        'source': {'org': source_org},
        'destination': {'org': dest_org, 'project': dest_project},
        'migration': {
            'repos': repos.split(',') if repos is not None else None,
            'concurrency': concurrency,
            'max_attempts': max_attempts,
            'dry_run': True if dry_run else None,
        },
        'git': {
            'keep_clones': True if keep_clones else None,
            'retention_dir': retention_dir,
            'temp_dir': os.path.abspath(temp_dir) if temp_dir else None,
        },
    }
    config, credentials = _load_or_exit(ctx, overrides)

    if config.migration.dry_run:
        console.print(
            '[yellow]Running in dry-run mode - no changes will be made[/yellow]'
        )

    try:
        report = asyncio.run(_run_migration(config, credentials))
    except ConfigError as e:
        console.print(f'[red]✗[/red] Configuration error: {escape(str(e))}')
        sys.exit(EXIT_CONFIG_ERROR)
    except SourceListError as e:
        console.print(f'[red]✗[/red] {escape(credentials.redact(str(e)))}')
        sys.exit(EXIT_FAILED)

    _display_migration_summary(report)

    if report_file:
        report.write_json(report_file)
        console.print(f'[blue]Report written to[/blue] {report_file}')

    sys.exit(EXIT_OK if report.all_succeeded else EXIT_FAILED)


@cli.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Validate configuration, credentials and connectivity."""
    console.print(
        Panel.fit(
            '[bold cyan]Repository Migration Tool[/bold cyan]\n'
            'Validating configuration...',
            border_style='cyan',
        )
    )

    config, credentials = _load_or_exit(ctx)
    console.print('[green]✓[/green] Configuration validation completed')

    engine = MigrationEngine(config, credentials)
    try:
        results = asyncio.run(engine.test_connectivity())
    finally:
        engine.close()

    table = Table(title='Connectivity')
    table.add_column('Check', style='cyan')
    table.add_column('Result')
    for name, ok in results.items():
        table.add_row(name, '[green]✓[/green]' if ok else '[red]✗[/red]')
    console.print(table)

    if not all(results.values()):
        console.print('[red]✗[/red] Connectivity validation failed')
        sys.exit(EXIT_FAILED)
    console.print('[green]✓[/green] Connectivity validation passed')


def _load_or_exit(ctx: click.Context, overrides: Optional[Dict[str, Any]] = None):
    """Load configuration and credentials, exiting with code 2 if either is missing."""
    try:
        config = Config.load(ctx.obj.get('config_path'), overrides)
        credentials = CredentialStore.resolve(
            config.source.token, config.destination.token
        )
    except ConfigError as e:
        console.print(f'[red]✗[/red] Configuration error: {escape(str(e))}')
        sys.exit(EXIT_CONFIG_ERROR)

    _setup_logging_with_config(ctx, config, credentials)
    return config, credentials


def _setup_logging_with_config(
    ctx: click.Context, config: Config, credentials: CredentialStore
) -> None:
    """Setup logging with configuration, scrubbing both tokens from every record."""
    verbose = ctx.obj.get('verbose', False)

    # Use config logging settings, but allow verbose flag to override level
    log_level = 'DEBUG' if verbose else config.logging.level
    setup_logging(
        level=log_level,
        log_file=config.logging.file,
        log_format=config.logging.format,
        redactor=credentials.redact,
    )


async def _run_migration(
    config: Config, credentials: CredentialStore
) -> MigrationReport:
    """Run the migration with a progress bar; Ctrl-C cancels the batch."""
    engine = MigrationEngine(config, credentials)
    loop = asyncio.get_running_loop()

    try:
        loop.add_signal_handler(signal.SIGINT, engine.cancel)
        handler_installed = True
    except (NotImplementedError, RuntimeError, ValueError):
        handler_installed = False

    try:
        identifiers = await engine.list_repositories()
        label = '[yellow]Dry run' if config.migration.dry_run else '[blue]Migrating'

        with Progress(
            SpinnerColumn(),
            TextColumn('[progress.description]{task.description}'),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
        ) as progress:
            progress_task = progress.add_task(label, total=len(identifiers))

            def on_task_complete(task: MigrationTask) -> None:
                style = STATUS_STYLES.get(task.status, 'yellow')
                progress.update(
                    progress_task,
                    advance=1,
                    description=f'{label}[/] [{style}]{task.identifier}[/{style}]',
                )

            engine.set_progress_callback(on_task_complete)
            report = await engine.migrate(identifiers)
            progress.update(progress_task, description=f'{label}[/] done')

        return report

    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)
        engine.close()


def _display_migration_summary(report: MigrationReport) -> None:
    """Display migration summary results."""
    table = Table(title='Migration Summary')
    table.add_column('Repository', style='cyan')
    table.add_column('Status')
    table.add_column('Attempts', justify='right')
    table.add_column('Stage', style='magenta')
    table.add_column('Error', style='red')

    for task in report.tasks:
        style = STATUS_STYLES.get(task.status, 'yellow')
        failed = task.status == TaskStatus.FAILED
        table.add_row(
            task.identifier.full_name,
            f'[{style}]{task.status.value}[/{style}]',
            str(task.attempts),
            (task.error_stage or '') if failed else '',
            escape(task.last_error or '') if failed else '',
        )

    console.print(table)
    console.print(
        f'[green]{report.succeeded} succeeded[/green], '
        f'[red]{report.failed} failed[/red], '
        f'[yellow]{report.skipped} skipped[/yellow]'
    )

    if report.duration is not None:
        console.print(f'[blue]Migration Duration:[/blue] {report.duration:.1f}s')


def main() -> None:
    """Main entry point for the CLI application."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print('\n[red]Migration interrupted by user[/red]')
        sys.exit(EXIT_FAILED)


if __name__ == '__main__':
    main()
