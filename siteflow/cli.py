"""Command-line interface for siteflow.

This module defines the CLI commands using Click framework.
Running ``siteflow`` without a command starts the develop pipeline.

Commands:
- build: Clean the release directory, optimize images and package the release.
- develop: Run every task once, serve a live-reload preview and keep watching.
- deploy: Build, then publish the release to the hosting branch.
- run: Run one or more tasks by name.
- tasks: List the registered task names.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import click

from . import __version__
from .config import load_config
from .context import BuildContext
from .errors import ConfigError, TaskError
from .logging_setup import setup_logging
from .orchestrator import Orchestrator


def _create_orchestrator(project_root: Path, **server_overrides) -> Orchestrator:
    try:
        config = load_config(project_root)
        if server_overrides:
            config = config.with_overrides("server", **server_overrides)
    except ConfigError as exc:
        click.echo(click.style("Invalid configuration:", fg="red", bold=True), err=True)
        click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)
        raise SystemExit(1) from None
    return Orchestrator(BuildContext(config))


def _report_failure(exc: TaskError) -> None:
    click.echo(click.style("Task failed:", fg="red", bold=True), err=True)
    if exc.task:
        click.echo(click.style(f"  Task: {exc.task}", fg="yellow"), err=True)
    click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)


def _run_tasks(orchestrator: Orchestrator, *names: str) -> None:
    try:
        asyncio.run(orchestrator.run(*names))
    except TaskError as exc:
        _report_failure(exc)
        raise SystemExit(1) from None


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="siteflow")
@click.option(
    "--project",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Project root (defaults to the current directory)",
)
@click.option("-v", "--verbose", is_flag=True, help="Show debug output")
@click.pass_context
def cli(ctx: click.Context, project: Path | None, verbose: bool):
    """siteflow static site build pipeline."""
    setup_logging(verbose)
    ctx.obj = {"project_root": (project or Path.cwd()).resolve()}
    if ctx.invoked_subcommand is None:
        ctx.invoke(develop)


@cli.command()
@click.pass_obj
def build(obj: dict):
    """Clean the release directory, optimize images and package the release."""
    orchestrator = _create_orchestrator(obj["project_root"])
    _run_tasks(orchestrator, "build")
    click.echo(f"Release written to {orchestrator.context.config.package.dest}")


@cli.command()
@click.option(
    "--port",
    type=int,
    required=False,
    help="Port for the preview server (overrides siteflow.yaml)",
)
@click.option(
    "--ws-port",
    type=int,
    required=False,
    help="Port for the live reload websocket server (overrides siteflow.yaml ws_port)",
)
@click.pass_obj
def develop(obj: dict, port: int | None = None, ws_port: int | None = None):
    """Run every task once, serve a live-reload preview and keep watching."""
    orchestrator = _create_orchestrator(obj["project_root"], port=port, ws_port=ws_port)
    try:
        asyncio.run(orchestrator.run_develop())
    except TaskError as exc:
        _report_failure(exc)
        raise SystemExit(1) from None
    except KeyboardInterrupt:
        click.echo("Stopped.")


@cli.command()
@click.pass_obj
def deploy(obj: dict):
    """Build, then publish the release to the hosting branch."""
    orchestrator = _create_orchestrator(obj["project_root"])
    _run_tasks(orchestrator, "deploy")
    publish = orchestrator.context.config.publish
    click.echo(f"Published {publish.source} to {publish.remote} ({publish.branch})")


@cli.command()
@click.argument("names", nargs=-1, required=True)
@click.pass_obj
def run(obj: dict, names: tuple[str, ...]):
    """Run one or more tasks by name, in order."""
    orchestrator = _create_orchestrator(obj["project_root"])
    unknown = [name for name in names if name not in orchestrator.registry]
    if unknown:
        available = ", ".join(orchestrator.registry.names())
        raise click.UsageError(
            f"Unknown task: {', '.join(unknown)}. Available tasks: {available}"
        )
    _run_tasks(orchestrator, *names)


@cli.command()
@click.pass_obj
def tasks(obj: dict):
    """List the registered task names."""
    orchestrator = _create_orchestrator(obj["project_root"])
    for name in orchestrator.registry.names():
        task = orchestrator.registry.get(name)
        detail = f" -> {task.output}" if task.output else ""
        click.echo(f"{name}{detail}")


def main():
    """Entry point for the CLI application."""
    cli()
