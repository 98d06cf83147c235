from __future__ import annotations

import tempfile
from dataclasses import replace
from pathlib import Path

import typer

from pinrel.cli.context import build_context
from pinrel.core.errors import ErrorCode
from pinrel.core.result import Err
from pinrel.output.console import Style
from pinrel.output.errors import print_release_error, release_error_code
from pinrel.platform.http import RealHttpClient
from pinrel.services.release.service import verify_package


def verify(
    spec: str = typer.Argument(..., help="Package version to check, e.g. @scope/name@1.2.3"),
    config: Path | None = typer.Option(None, "--config", help="Path to pinrel.toml"),
    mode: str | None = typer.Option(None, "--mode", help="self-hosted or enterprise"),
) -> None:
    """Compare a published archive with each registry's advertised integrity."""
    ctx = build_context(config_path=config)
    cfg = ctx.config
    if mode is not None:
        cfg = replace(cfg, registry=replace(cfg.registry, mode=mode))
    console = ctx.console

    with tempfile.TemporaryDirectory(prefix="pinrel-verify-") as tmp:
        result = verify_package(
            spec,
            config=cfg,
            console=console,
            http=RealHttpClient(),
            work_dir=Path(tmp),
        )
        if isinstance(result, Err):
            print_release_error(result.error, console)
            raise typer.Exit(code=int(release_error_code(result.error.kind)))
        report = result.value

    console.table(
        f"Integrity of {spec}",
        ["registry", "status", "sha512"],
        [[r.registry, r.status, r.actual or r.expected or "-"] for r in report],
    )
    for entry in report:
        if entry.detail:
            console.print(f"{entry.registry}: {entry.detail}", Style.DIM)

    if any(r.status == "mismatch" for r in report):
        console.error(f"{spec}: archive does not match advertised integrity")
        raise typer.Exit(code=int(ErrorCode.NETWORK_ERROR))
    if not any(r.status == "match" for r in report):
        if any(r.status == "error" for r in report):
            console.error(f"{spec}: could not download the archive")
            raise typer.Exit(code=int(ErrorCode.NETWORK_ERROR))
        console.error(f"{spec}: not found on any registry")
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))
    console.success(f"{spec}: integrity verified")
