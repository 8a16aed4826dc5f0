# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Main CLI entry point for riffbox.

Dumb trigger: reads script files, checks or executes them against a runtime,
renders outcomes. No sandbox logic lives here.
"""

import asyncio
import importlib
import logging
from pathlib import Path
from typing import Any, Callable, List, Optional

import typer

from riffbox import __version__
from riffbox.config import load_config
from riffbox.context import RuntimeContext
from riffbox.errors import ConfigError, ErrorKind, SandboxError
from riffbox.event_client import EventClient
from riffbox.recording import RecordingRuntime
from riffbox.sandbox import SandboxExecutor, classify, render_outcomes
from riffbox.schemas import ExecutionOptions


app = typer.Typer(
    name="riffbox",
    help="Validate and run model-generated live-coding scripts in a sandbox",
    no_args_is_help=True,
)


def _read_sources(files: List[str]) -> List[str]:
    sources = []
    for name in files:
        path = Path(name).expanduser()
        if not path.is_file():
            typer.echo(f"Error: script not found: {path}", err=True)
            raise typer.Exit(1)
        sources.append(path.read_text())
    return sources


def _resolve_runtime(target: Optional[str]) -> Callable[[], Any]:
    """Resolve a ``module:factory`` target to a runtime loader.

    Without a target, scripts run against an inert RecordingRuntime.
    """
    if not target:
        return RecordingRuntime
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"runtime must look like 'module:factory', got: {target}")
    module = importlib.import_module(module_name)
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise ValueError(f"runtime factory not found or not callable: {target}")
    return factory


@app.command()
def check(
    files: List[str] = typer.Argument(..., help="Script files to classify"),
):
    """Classify scripts without running them."""
    rejected = 0
    for name, source in zip(files, _read_sources(files)):
        verdict = classify(source)
        status = "ok" if verdict.is_acceptable else "REJECTED"
        typer.echo(f"{name}: {status}")
        for finding in verdict.findings:
            where = f"line {finding.line}: " if finding.line else ""
            typer.echo(f"  [{finding.severity.value}] {where}{finding.message}")
        if not verdict.is_acceptable:
            rejected += 1
    if rejected:
        raise typer.Exit(1)


@app.command()
def run(
    files: List[str] = typer.Argument(..., help="Script files to execute in order"),
    timeout_ms: Optional[int] = typer.Option(None, "--timeout-ms", "-t", help="Per-script timeout"),
    no_validate: bool = typer.Option(False, "--no-validate", help="Skip the pattern classifier; the compile policy still applies"),
    no_track: bool = typer.Option(False, "--no-track", help="Do not register declarations"),
    runtime: Optional[str] = typer.Option(
        None, "--runtime", "-r", help="Runtime factory as module:callable (default: dry run)"
    ),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to config file"),
    no_events: bool = typer.Option(False, "--no-events", help="Do not write the event log"),
    format: str = typer.Option("table", "--format", "-f", help="Output format: table, json"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Execute scripts as a sequence, stopping at the first failure."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG)

    sources = _read_sources(files)
    try:
        config = load_config(config_path)
        loader = _resolve_runtime(runtime)
    except (ConfigError, FileNotFoundError, ValueError, ImportError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    context = RuntimeContext(loader, default_tempo=config.default_tempo_bpm)
    event_client = None if no_events else EventClient.from_config(config)
    executor = SandboxExecutor(context, config=config, event_client=event_client)
    options = ExecutionOptions(
        timeout_ms=timeout_ms if timeout_ms is not None else config.default_timeout_ms,
        validate=not no_validate,
        track=not no_track,
    )

    async def session():
        await context.initialize()
        return await executor.execute_sequence(sources, options)

    try:
        outcomes = asyncio.run(session())
    except SandboxError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(1)

    render_outcomes(outcomes, format_type=format, labels=files, snapshot=context.registry.snapshot())

    skipped = len(sources) - len(outcomes)
    if skipped and format != "json":
        typer.echo(f"{skipped} script(s) not run", err=True)

    failed = [o for o in outcomes if not o.succeeded]
    if failed:
        kind = failed[-1].failure.kind if failed[-1].failure else None
        raise typer.Exit(2 if kind is ErrorKind.INVALID_SOURCE else 1)


@app.command()
def version():
    """Show version information."""
    typer.echo(f"riffbox version {__version__}")


from riffbox.commands import config

app.add_typer(config.app, name="config")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
