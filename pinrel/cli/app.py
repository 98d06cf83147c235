from __future__ import annotations

import typer

from pinrel import __version__
from pinrel.cli.commands.release_cmd import plan, release
from pinrel.cli.commands.verify_cmd import verify


app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="Release a mutually pinned npm package set to a self-hosted or enterprise registry.",
)


# Commands
app.command()(release)
app.command()(plan)
app.command()(verify)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit(code=0)


@app.callback()
def _main(  # pyright: ignore[reportUnusedFunction]
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    del version


def main() -> None:
    app()
