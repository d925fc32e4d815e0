"""CLI interface for tooldecoder.

Typer-based command-line interface with Rich output formatting.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from tooldecoder import __version__
from tooldecoder.config import (
    CONFIG_FILE,
    ToolDecoderConfig,
    default_config,
    load_config,
    save_config,
)
from tooldecoder.convert import output_path_for, save_document
from tooldecoder.exceptions import ToolDecoderError
from tooldecoder.ingest.detect import FileFormat
from tooldecoder.pipeline import ConversionPipeline

__all__ = ["app"]

app = typer.Typer(
    name="tooldecoder",
    help="Tool database converter — turns CAM tool libraries into a target tool database.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()

# extension, application, parser
_FORMATS: list[tuple[str, str, FileFormat]] = [
    (".vtdb", "Aspire 12 (Vectric, SQLite)", FileFormat.ASPIRE_RELATIONAL),
    (".tool", "Aspire 9 (Vectric, binary)", FileFormat.ASPIRE_BINARY),
    (".tdb", "CarveCo", FileFormat.CARVECO),
    (".tl", "ESTLcam", FileFormat.ESTLCAM),
]


def _fail(message: str, error: Exception) -> typer.Exit:
    console.print(f"[red]{message}:[/red] {error}")
    return typer.Exit(code=1)


def _load_config_or_default(path: Path | None) -> ToolDecoderConfig:
    """Explicit --config must exist; the working-directory file is optional."""
    if path is not None:
        return load_config(path)
    local = Path(CONFIG_FILE)
    if local.is_file():
        return load_config(local)
    return default_config()


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Convert CAM tool libraries into a target tool database."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.command()
def version() -> None:
    """Show tooldecoder version."""
    console.print(f"tooldecoder {__version__}")


@app.command()
def formats() -> None:
    """List the supported tool library formats."""
    table = Table(title="Supported formats")
    table.add_column("Extension", style="bold")
    table.add_column("Application")
    table.add_column("Parser", style="dim")
    for ext, application, fmt in _FORMATS:
        table.add_row(ext, application, fmt.value)
    console.print(table)


@app.command()
def init(
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite an existing config file"),
    ] = False,
) -> None:
    """Write a default tooldecoder.toml in the current directory."""
    path = Path(CONFIG_FILE)
    if path.exists() and not force:
        console.print(
            f"[yellow]{path} already exists.[/yellow] Use [bold]--force[/bold] to overwrite."
        )
        raise typer.Exit(code=1)

    try:
        save_config(default_config(), path)
    except ToolDecoderError as e:
        raise _fail("Failed to write config", e) from e

    console.print(f"[green]Wrote default config[/green] to {path}")


@app.command()
def inspect(
    file: Annotated[Path, typer.Argument(help="Tool library to inspect")],
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Config file"),
    ] = None,
) -> None:
    """Show the detected format and every tool found in a library."""
    try:
        config = _load_config_or_default(config_path)
        parsed = ConversionPipeline(config).inspect(file)
    except ToolDecoderError as e:
        raise _fail(f"Error reading {file.name}", e) from e

    console.print(f"[bold]{file.name}[/bold]: {parsed.info.format_name}")

    table = Table(show_lines=False)
    table.add_column("Name")
    table.add_column("Source type", style="dim")
    table.add_column("Type")
    table.add_column("Diameter", justify="right")
    table.add_column("Category")
    table.add_column("Operation", style="dim")
    table.add_column("Units")
    for tool in parsed.tools:
        table.add_row(
            tool.name,
            tool.source_type,
            tool.tool_type.value if tool.tool_type else "[red]incompatible[/red]",
            f"{tool.diameter:g}",
            tool.category,
            tool.operation,
            "mm" if tool.metric_tool else "in",
        )
    console.print(table)

    stats = parsed.stats
    console.print(
        f"{stats.total} tools: [green]{stats.compatible} compatible[/green], "
        f"[yellow]{stats.incompatible} incompatible[/yellow]"
    )


@app.command()
def convert(
    file: Annotated[Path, typer.Argument(help="Tool library to convert")],
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Output file (default: <file>.tools)"),
    ] = None,
    ramp_angle: Annotated[
        float | None,
        typer.Option("--ramp-angle", help="Ramp angle in degrees"),
    ] = None,
    ramp_rate: Annotated[
        float | None,
        typer.Option("--ramp-rate", help="Ramp rate (default: 0.8 x feed rate)"),
    ] = None,
    vendor: Annotated[
        str | None,
        typer.Option("--vendor", help="Vendor name for every tool"),
    ] = None,
    tool_spec_url: Annotated[
        str | None,
        typer.Option("--tool-spec-url", help="Tool specification URL"),
    ] = None,
    tip_length: Annotated[
        float | None,
        typer.Option("--tip-length", help="Tip length"),
    ] = None,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Config file"),
    ] = None,
) -> None:
    """Convert a tool library into a target tool database."""
    logger = logging.getLogger(__name__)

    try:
        config = _load_config_or_default(config_path)
    except ToolDecoderError as e:
        raise _fail("Invalid config", e) from e

    overrides = {
        "ramp_angle": ramp_angle,
        "ramp_rate": ramp_rate,
        "vendor": vendor,
        "tool_spec_url": tool_spec_url,
        "tip_length": tip_length,
    }
    defaults = replace(config.defaults, **{k: v for k, v in overrides.items() if v is not None})
    target = output or output_path_for(file, config.output.extension)

    try:
        result = ConversionPipeline(config).convert(file, defaults)
        save_document(result.document, target, indent=config.output.indent)
    except ToolDecoderError as e:
        logger.error("Failed to convert %s: %s", file, e)
        raise _fail(f"Error converting {file.name}", e) from e

    stats = result.stats
    console.print(f"[green]Converted {file.name}[/green] → {target}")
    console.print(
        f"  {stats.total} tools: {stats.compatible} converted, "
        f"{stats.incompatible} skipped as incompatible"
    )
