from __future__ import annotations

from pathlib import Path
from typing import NoReturn

import typer

from pinrel.cli.commands.release_common import (
    apply_overrides,
    print_outcome,
    print_states,
    save_run_log,
    write_summary,
)
from pinrel.cli.context import build_context
from pinrel.core.result import Err
from pinrel.output.console import ConsoleProtocol, Style
from pinrel.output.errors import print_release_error, release_error_code
from pinrel.platform.http import RealHttpClient
from pinrel.services.release.errors import ReleaseError
from pinrel.services.release.pipeline import ReleasePipeline
from pinrel.services.release.service import ReleasePreview, prepare_release, preview_release


def _fail(
    error: ReleaseError,
    *,
    console: ConsoleProtocol,
    log_path: Path | None = None,
) -> NoReturn:
    print_release_error(error, console)
    if log_path is not None:
        save_run_log(console, path=log_path)
    raise typer.Exit(code=int(release_error_code(error.kind)))


def release(
    config: Path | None = typer.Option(None, "--config", help="Path to pinrel.toml"),
    source: Path | None = typer.Option(None, "--source", help="Package source tree root"),
    mode: str | None = typer.Option(None, "--mode", help="self-hosted or enterprise"),
    suffix: str | None = typer.Option(None, "--suffix", help="Prerelease suffix for this run"),
    dist_tag: str | None = typer.Option(None, "--dist-tag", help="Dist-tag for every publish"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print actions without mutating"),
    summary_out: Path | None = typer.Option(
        None, "--summary-out", help="Write consumer version and pin map as JSON"
    ),
    log_file: bool = typer.Option(
        True, "--log-file/--no-log-file", help="Save the run output next to the run state"
    ),
) -> None:
    """Build, version, publish and pin the whole package set."""
    ctx = build_context(config_path=config, record=log_file)
    cfg = apply_overrides(
        ctx.config,
        source=source,
        mode=mode,
        suffix=suffix,
        dist_tag=dist_tag,
        dry_run=dry_run,
    )
    console = ctx.console

    prepared = prepare_release(cfg, console=console, http=RealHttpClient())
    if isinstance(prepared, Err):
        _fail(prepared.error, console=console)
    release_ctx = prepared.value
    run = release_ctx.run
    log_path = cfg.resolved_state_dir / f"pinrel-release.{run.suffix}.log" if log_file else None

    console.header(f"Release {run.suffix} (dist-tag {run.dist_tag})")
    endpoints = release_ctx.endpoints
    console.print(f"mode: {endpoints.mode}", Style.DIM)
    console.print(f"install: {endpoints.install.url}", Style.DIM)
    console.print(f"publish: {endpoints.publish.url}", Style.DIM)
    if run.dry_run:
        console.warning("dry run: nothing will be written or published")

    pipeline = ReleasePipeline(release_ctx)
    result = pipeline.run()
    if isinstance(result, Err):
        console.newline()
        print_states(states=pipeline.states, records=pipeline.records, console=console)
        _fail(result.error, console=console, log_path=log_path)

    outcome = result.value
    print_outcome(outcome, console=console)
    if summary_out is not None:
        write_summary(summary_out, outcome, console=console)
    if log_path is not None:
        save_run_log(console, path=log_path)


def _print_preview(preview: ReleasePreview, *, console: ConsoleProtocol) -> None:
    endpoints = preview.endpoints
    console.header(f"Release plan ({preview.run.suffix})")
    console.print(f"mode: {endpoints.mode}")
    console.print(f"install: {endpoints.install.url}")
    console.print(f"publish: {endpoints.publish.url}")
    if endpoints.shared_backend:
        console.print("install and publish share one backend", Style.DIM)
    console.print(f"dist-tag: {preview.run.dist_tag}")

    rows = [
        [
            str(i),
            package.name,
            package.ref.role,
            package.manifest.version,
            preview.versions[package.name],
        ]
        for i, package in enumerate(preview.packages, start=1)
    ]
    console.table("Order", ["#", "package", "role", "current", "release"], rows)


def plan(
    config: Path | None = typer.Option(None, "--config", help="Path to pinrel.toml"),
    source: Path | None = typer.Option(None, "--source", help="Package source tree root"),
    mode: str | None = typer.Option(None, "--mode", help="self-hosted or enterprise"),
    suffix: str | None = typer.Option(None, "--suffix", help="Prerelease suffix for this run"),
    dist_tag: str | None = typer.Option(None, "--dist-tag", help="Dist-tag for every publish"),
) -> None:
    """Show endpoints, release order and versions without touching anything."""
    ctx = build_context(config_path=config)
    cfg = apply_overrides(
        ctx.config,
        source=source,
        mode=mode,
        suffix=suffix,
        dist_tag=dist_tag,
        dry_run=False,
    )

    preview = preview_release(cfg)
    if isinstance(preview, Err):
        _fail(preview.error, console=ctx.console)
    _print_preview(preview.value, console=ctx.console)
