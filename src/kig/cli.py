#!/usr/bin/env python3
"""
kig CLI - cozy SQL poller command-line interface.

This module provides the `kig` command-line interface for kig projects.
"""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import click

from kig import Coordinator
from kig.core.factory import PollerFactory
from kig.core.statement import Statement
from kig.core.workspace import Workspace
from kig.messages import ErrorFormatter, get_logger, set_level
from kig.utility.exceptions import ConfigError, KigError


def _load_workspace(config: Optional[str]) -> Workspace:
    if config:
        return Workspace.from_path(Path(config))
    return Workspace.find()


def _fail(error: Exception, verbose: bool) -> None:
    message, suggestion = ErrorFormatter.format_error(error)
    click.echo(f"Error: {message}", err=True)
    if suggestion:
        click.echo(f"Hint: {suggestion}", err=True)
    if verbose:
        click.echo(ErrorFormatter.format_with_stack_trace(error), err=True)
    sys.exit(1)


@click.group()
@click.version_option(package_name="kig")
def kig():
    """
    kig - a cozy SQL poller

    Runs SQL statements on a schedule, emits every row as a record, and
    remembers how far each poller got.
    """
    pass


@kig.command()
@click.argument("project_name")
@click.option(
    "--pollers-dir",
    "-d",
    default="pollers",
    help="Name of the pollers directory (default: pollers)",
)
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Overwrite existing project directory if it exists",
)
def init(project_name: str, pollers_dir: str, force: bool):
    """Initialize a new kig project in a new directory.

    PROJECT_NAME: Name of the project and directory to create
    """
    logger = get_logger("kig.cli.init")

    current_dir = Path.cwd()
    project_dir = current_dir / project_name

    if project_dir.exists() and not force:
        click.echo(
            f"Project directory '{project_name}' already exists in {current_dir}"
        )
        click.echo("Use --force to overwrite it")
        sys.exit(1)

    project_dir.mkdir(exist_ok=True)
    click.echo(f"Created project directory: {project_dir}")

    kig_content = f"""name: "{project_name}"
pollers_dir: "{pollers_dir}"

connections:
  local:
    type: sqlite
    path: data/{project_name}.db

# Project-level defaults
options:
  fetch_size: 10000
  lowercase_column_names: false
"""

    kig_file = project_dir / "kig.yml"
    kig_file.write_text(kig_content)
    click.echo(f"Created kig.yml for project '{project_name}'")

    pollers_path = project_dir / pollers_dir
    pollers_path.mkdir(exist_ok=True)
    click.echo(f"Created pollers directory: {pollers_path}")

    sql_path = project_dir / "sql"
    sql_path.mkdir(exist_ok=True)

    sql_file = sql_path / "new_rows.sql"
    sql_file.write_text(
        "SELECT id, name, updated_at\n"
        "FROM example\n"
        "WHERE id > :last_max_id\n"
        "ORDER BY id\n"
    )
    click.echo(f"Created example statement: {sql_file}")

    poller_content = """connection: local
statement: sql/new_rows.sql
parameters:
  # Seed for the first run; later runs use the largest id seen so far
  last_max_id: 0
schedule: "*/5 * * * *"
tags: [example]
"""

    poller_file = pollers_path / "new_rows.yml"
    poller_file.write_text(poller_content)
    click.echo(f"Created example poller: {poller_file}")

    click.echo("\nkig project initialized successfully!")
    click.echo("\nNext steps:")
    click.echo(f"  1. cd {project_name}")
    click.echo("  2. Point the 'local' connection in kig.yml at your database")
    click.echo(f"  3. Edit {sql_file.relative_to(project_dir)} for your table")
    click.echo("  4. Run: kig check, then kig run")

    logger.info(f"Initialized kig project '{project_name}' in {project_dir}")


@kig.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    help="Path to kig.yml (default: search from the current directory up)",
)
@click.option(
    "--poller",
    "-p",
    multiple=True,
    help=(
        "Run specific poller(s) by name. Can be specified multiple times or "
        "comma-separated. Example: --poller new_orders --poller customers"
    ),
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False),
    help="Append records as JSON lines to this file (default: stdout)",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose logging",
)
def run(config: Optional[str], poller: tuple, output: Optional[str], verbose: bool):
    """Run the pollers of the current kig project.

    Pollers without a schedule run once. Scheduled pollers run until
    interrupted with Ctrl+C (or SIGTERM).
    """
    logger = get_logger("kig.cli.run")

    if verbose:
        set_level("DEBUG")

    poller_filter = []
    for poller_str in poller:
        poller_filter.extend(p.strip() for p in poller_str.split(",") if p.strip())

    try:
        workspace = _load_workspace(config)
        coordinator = Coordinator(
            config_path=str(workspace.kig_yml),
            poller_filter=poller_filter or None,
            output=output,
        )
        asyncio.run(coordinator.run())
    except KigError as e:
        logger.error(f"Run failed: {e}")
        _fail(e, verbose)
    except Exception as e:
        logger.error(f"Error running pollers: {e}")
        _fail(e, verbose)

    if coordinator.failed:
        sys.exit(1)


@kig.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    help="Path to kig.yml (default: search from the current directory up)",
)
@click.option(
    "--connections",
    "test_connections",
    is_flag=True,
    help="Also open every poller's connection and run its test query",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose logging",
)
def check(config: Optional[str], test_connections: bool, verbose: bool):
    """Validate the project configuration and list its pollers."""
    logger = get_logger("kig.cli.check")

    if verbose:
        set_level("DEBUG")

    try:
        workspace = _load_workspace(config)
        workspace_config = workspace.prepare()
    except ConfigError as e:
        _fail(e, verbose)

    click.echo("Project configuration is valid")
    click.echo(f"Project: {workspace.name}")
    click.echo(f"Pollers directory: {workspace.pollers_dir}")
    click.echo(f"Number of pollers: {len(workspace_config.pollers)}")

    factory = PollerFactory(
        connections=workspace_config.connections,
        options=workspace_config.options,
        base_dir=workspace.root,
    )

    problems = 0
    for name, poller_config in workspace_config.pollers.items():
        click.echo(f"\n   {name}")
        try:
            statement = Statement.load(poller_config.statement, workspace.root)
            connection = factory.create_connection(name, poller_config)
        except ConfigError as e:
            problems += 1
            click.echo(f"      Invalid: {e}")
            continue

        click.echo(f"      Connection: {connection.describe()}")
        if statement.source:
            click.echo(f"      Statement: {statement.source}")
        placeholders = statement.parameter_names
        click.echo(
            f"      Parameters: {', '.join(placeholders) if placeholders else 'none'}"
        )

        schedule = poller_config.schedule_spec
        if schedule is None:
            click.echo("      Schedule: none (runs once)")
        else:
            click.echo(
                f"      Schedule: {schedule.expression} "
                f"(next run {schedule.next_fire():%Y-%m-%d %H:%M:%S})"
            )

        if test_connections:
            try:
                rows = asyncio.run(_test_connection(connection))
            except Exception as e:
                problems += 1
                click.echo(f"      Connection failed: {e}")
            else:
                click.echo(f"      Connection successful ({len(rows)} test rows)")

    logger.info("Project check completed")
    if problems:
        click.echo(f"\n{problems} problem{'s' if problems != 1 else ''} found")
        sys.exit(1)


async def _test_connection(connection):
    """Open a connection, run its test query, and close it again."""
    await connection.open()
    try:
        return await connection.test()
    finally:
        await connection.close()


if __name__ == "__main__":
    kig()
