"""CLI commands for brainvault."""

from __future__ import annotations

import asyncio
from datetime import date
from pathlib import Path

import typer

from brainvault import __version__
from brainvault.config.loader import load_config
from brainvault.config.schema import Config
from brainvault.logging import setup_logging
from brainvault.memory.archival import ArchivalRollup, RollupLimits
from brainvault.memory.daily import DailyConsolidator
from brainvault.memory.events import EventLogReader, EventLogWriter
from brainvault.memory.sleep import SleepConsolidationResult, SleepConsolidator, window_status
from brainvault.memory.working import MicroConsolidationResult, MicroConsolidator

app = typer.Typer(
    name="brainvault",
    help="Consolidate agent activity into daily, weekly and monthly memory.",
    no_args_is_help=True,
)

_CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to config.json")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"brainvault v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(None, "--version", "-v", callback=_version_callback, is_eager=True),
) -> None:
    """brainvault - hierarchical agent memory."""


def _load(config_path: Path | None) -> Config:
    config = load_config(config_path)
    setup_logging(json_output=config.logging.json_output, level=config.logging.level, vault=config.paths.vault)
    return config


def _build_consolidator(config: Config) -> SleepConsolidator:
    paths = config.paths
    daily = DailyConsolidator(paths, EventLogReader(paths), config=config.consolidation)
    rollup = ArchivalRollup(paths, limits=RollupLimits.from_config(config.consolidation))
    return SleepConsolidator(daily, rollup, window_days=config.consolidation.window_days)


def _build_micro_consolidator(config: Config) -> MicroConsolidator:
    paths = config.paths
    return MicroConsolidator(
        paths,
        EventLogReader(paths),
        event_logger=EventLogWriter(paths),
        config=config.consolidation,
    )


def _print_working_result(result: MicroConsolidationResult) -> None:
    memory = result.working_memory
    typer.echo("Working memory consolidated.")
    typer.echo(f"Events processed: {result.events_processed}")
    typer.echo(f"Entries processed: {result.entries_processed}")
    typer.echo(f"Session: {memory.session_id}")
    typer.echo(f"Active files: {len(memory.active_files)}")
    typer.echo(f"Decisions: {len(memory.decisions)}")
    typer.echo(f"Duration: {result.duration_ms:.0f}ms")


def _print_result(result: SleepConsolidationResult) -> None:
    typer.echo(f"Dailies generated: {result.dailies_generated}")
    typer.echo(f"Weeklies generated: {result.weeklies_generated}")
    typer.echo(f"Monthlies generated: {result.monthlies_generated}")
    if result.errors:
        typer.echo(f"Errors ({len(result.errors)}):")
        for error in result.errors:
            typer.echo(f"  - {error}")


@app.command()
def consolidate(
    scope: str = typer.Option("full", "--scope", "-s", help="working | daily | full"),
    day: str | None = typer.Option(None, "--date", "-d", help="Day for --scope daily (YYYY-MM-DD, UTC)"),
    session: str | None = typer.Option(None, "--session", help="Session id for --scope working"),
    config_path: Path | None = _CONFIG_OPTION,
) -> None:
    """Run working, daily or full (backfill + rollup) consolidation."""
    if scope not in {"working", "daily", "full"}:
        typer.echo(f"Error: unknown scope '{scope}' (expected working, daily or full)", err=True)
        raise typer.Exit(1)
    if scope == "working":
        micro = _build_micro_consolidator(_load(config_path))
        _print_working_result(asyncio.run(micro.consolidate(session)))
        return
    target: date | None = None
    if day:
        try:
            target = date.fromisoformat(day)
        except ValueError:
            typer.echo(f"Error: invalid date '{day}'", err=True)
            raise typer.Exit(1)
    consolidator = _build_consolidator(_load(config_path))
    result = asyncio.run(consolidator.consolidate(scope, target))  # type: ignore[arg-type]
    _print_result(result)


@app.command()
def auto(config_path: Path | None = _CONFIG_OPTION) -> None:
    """Consolidate yesterday if it has no daily summary yet."""
    consolidator = _build_consolidator(_load(config_path))
    result = asyncio.run(consolidator.auto_consolidate())
    if result is None:
        typer.echo("Yesterday is already consolidated.")
        return
    _print_result(result)


@app.command()
def status(config_path: Path | None = _CONFIG_OPTION) -> None:
    """Show which days, weeks and months in the window are consolidated."""
    config = _load(config_path)
    consolidator = _build_consolidator(config)

    async def _collect() -> tuple[list[str], list[str], list[str]]:
        today = consolidator.today()
        days, weeks, months = window_status(today, config.consolidation.window_days)
        missing_days = [d.isoformat() for d in days if not await consolidator.daily.has_daily_summary(d)]
        week_rows = [
            f"{w.period}: {'archived' if await consolidator.rollup.has_weekly_archive(w.year, w.week) else 'pending'}"
            for w in weeks
        ]
        month_rows = [
            f"{m.period}: {'archived' if await consolidator.rollup.has_monthly_archive(m.year, m.month) else 'pending'}"
            for m in months
        ]
        return missing_days, week_rows, month_rows

    missing_days, week_rows, month_rows = asyncio.run(_collect())
    typer.echo(f"Vault: {config.paths.vault}")
    typer.echo(f"Missing daily summaries: {len(missing_days)}")
    for key in missing_days:
        typer.echo(f"  - {key}")
    typer.echo("Weeks:")
    for row in week_rows:
        typer.echo(f"  - {row}")
    typer.echo("Months:")
    for row in month_rows:
        typer.echo(f"  - {row}")


if __name__ == "__main__":
    app()
