"""
``gridkernel`` developer CLI.

Commands::

    gridkernel config show [--format table|json|env]
    gridkernel context inspect --header X-Correlation-Id=abc --header baggage=k=v [--full]
    gridkernel --version
"""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

console = Console()

app = typer.Typer(
    name="gridkernel",
    help="grid-kernel: context, lifecycle and health primitives for grid nodes.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
config_app = typer.Typer(no_args_is_help=True, help="Inspect kernel configuration.")
context_app = typer.Typer(no_args_is_help=True, help="Inspect grid context mapping.")
app.add_typer(config_app, name="config")
app.add_typer(context_app, name="context")


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        from gridkernel import __version__

        try:
            v = pkg_version("grid-kernel")
        except PackageNotFoundError:
            v = __version__
        typer.echo(f"grid-kernel {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """grid-kernel CLI: inspect settings and grid context propagation."""


# ── config ───────────────────────────────────────────────────────────────


@config_app.command("show")
def show_config(
    format: str = typer.Option("table", "--format", "-f", help="Output format: table, json, env"),
) -> None:
    """Show the effective kernel settings."""
    from gridkernel.core.settings import get_settings

    settings = get_settings()

    if format == "json":
        console.print_json(settings.model_dump_json())
        return

    if format == "env":
        for key, value in sorted(settings.model_dump().items()):
            console.print(f"GRID_{key.upper()}={value}", markup=False, highlight=False)
        return

    if format != "table":
        console.print(f"[red]Unknown format:[/red] {format}")
        raise typer.Exit(2)

    table = Table(title="Kernel settings")
    table.add_column("Setting")
    table.add_column("Value")
    for key, value in sorted(settings.model_dump().items()):
        table.add_row(key, str(value))
    console.print(table)


# ── context ──────────────────────────────────────────────────────────────


def _parse_headers(pairs: list[str]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name.strip():
            raise typer.BadParameter(f"expected NAME=VALUE, got {pair!r}", param_hint="--header")
        headers[name.strip()] = value.strip()
    return headers


@context_app.command("inspect")
def inspect_context(
    header: list[str] = typer.Option(
        [], "--header", "-H", help="Inbound HTTP header as NAME=VALUE (repeatable)"
    ),
    full: bool = typer.Option(False, "--full", help="Include sensitive baggage keys"),
) -> None:
    """Map inbound headers to a grid context and print its JSON envelope."""
    from gridkernel.context.mappers import HttpContextMapper
    from gridkernel.context.propagation import serialize

    context = HttpContextMapper().map(_parse_headers(header))
    console.print_json(serialize(context, include_full_metadata=full))


if __name__ == "__main__":
    app()
