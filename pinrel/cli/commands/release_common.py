from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import replace
from pathlib import Path
from typing import NoReturn

import typer

from pinrel.core.config import Config
from pinrel.core.errors import ErrorCode
from pinrel.output.console import ConsoleProtocol, RichConsole, Style
from pinrel.platform.files import atomic_write_json
from pinrel.services.release.model import PackageState, PublishRecord
from pinrel.services.release.pipeline import ReleaseOutcome


def exit_release(err: str, *, code: ErrorCode) -> NoReturn:
    typer.echo(f"error: {err}", err=True)
    raise typer.Exit(code=int(code))


def apply_overrides(
    config: Config,
    *,
    source: Path | None,
    mode: str | None,
    suffix: str | None,
    dist_tag: str | None,
    dry_run: bool,
) -> Config:
    """CLI flags win over environment and file settings."""
    if source is not None:
        config = replace(config, source_root=source.expanduser().resolve())
    if mode is not None:
        config = replace(config, registry=replace(config.registry, mode=mode))
    if suffix is not None:
        config = replace(config, suffix=suffix.strip())
    if dist_tag is not None:
        config = replace(config, dist_tag=dist_tag)
    if dry_run:
        config = replace(config, dry_run=True)
    return config


def print_states(
    *,
    states: Mapping[str, PackageState],
    records: Sequence[PublishRecord],
    console: ConsoleProtocol,
) -> None:
    published = {r.name: r for r in records}
    rows: list[list[str]] = []
    for name, state in states.items():
        record = published.get(name)
        rows.append(
            [
                name,
                record.version if record else "-",
                state,
                record.registry if record else "-",
            ]
        )
    console.table("Packages", ["package", "version", "state", "registry"], rows)


def print_outcome(outcome: ReleaseOutcome, *, console: ConsoleProtocol) -> None:
    console.newline()
    print_states(states=outcome.states, records=outcome.records, console=console)
    console.table(
        "Pins",
        ["dependency", "version"],
        [[name, version] for name, version in outcome.pins.items()],
    )

    for check in outcome.skipped:
        console.print(f"{check} check skipped (dry run)", Style.DIM)

    unconfirmed = [r.spec for r in outcome.records if not r.confirmed_visible]
    if unconfirmed and not outcome.run.dry_run:
        console.warning(f"visibility not confirmed: {', '.join(unconfirmed)}")

    consumer = outcome.consumer
    prefix = "[dry-run] would publish" if outcome.run.dry_run else "Released"
    console.success(f"{prefix} {consumer.spec} (dist-tag {outcome.run.dist_tag})")


def write_summary(path: Path, outcome: ReleaseOutcome, *, console: ConsoleProtocol) -> None:
    try:
        atomic_write_json(path, outcome.to_dict())
    except OSError as e:
        exit_release(f"failed to write summary: {e}", code=ErrorCode.IO_ERROR)
    console.print(f"summary: {path}", Style.DIM)


def save_run_log(console: ConsoleProtocol, *, path: Path) -> None:
    """Save the recorded console output; a failure here never changes the exit code."""
    if not isinstance(console, RichConsole):
        return
    try:
        saved = console.save_log(path)
    except OSError as e:
        typer.echo(f"warning: failed to write log {path}: {e}", err=True)
        return
    if saved:
        typer.echo(f"log: {path}", err=True)
