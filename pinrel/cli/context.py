from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import typer

from pinrel.core.config import Config, apply_env, load_config_or_default
from pinrel.core.errors import ErrorCode
from pinrel.core.result import Err
from pinrel.output.console import ConsoleProtocol, RichConsole


@dataclass(frozen=True, slots=True)
class CLIContext:
    config: Config
    console: ConsoleProtocol


def build_context(*, config_path: Path | None = None, record: bool = False) -> CLIContext:
    """Load `pinrel.toml` (or defaults), overlay PINREL_* variables, make a console."""
    config_result = load_config_or_default(config_path)
    if isinstance(config_result, Err):
        typer.echo(f"error: {config_result.error.message}", err=True)
        raise typer.Exit(code=int(ErrorCode.ENV_ERROR))

    env_result = apply_env(config_result.value, os.environ)
    if isinstance(env_result, Err):
        typer.echo(f"error: {env_result.error.message}", err=True)
        raise typer.Exit(code=int(ErrorCode.ENV_ERROR))

    return CLIContext(
        config=env_result.value,
        console=RichConsole(record=record),
    )
