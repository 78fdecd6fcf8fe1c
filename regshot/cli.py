"""CLI entry point for regshot."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from regshot.capture.screenshot_tool import ScreenshotTool
from regshot.compare.diff_image import read_diff_provenance, save_diff_image
from regshot.compare.gmsd import compare_images_gmsd
from regshot.compare.pixel import compare_images
from regshot.models.config import RegshotConfig
from regshot.png.image import PNGDecodeError, PNGImage
from regshot.reporter.json_report import generate_json_report
from regshot.screenshots.approval import approve_screenshots
from regshot.screenshots.filesystem import ScreenshotFileSystem
from regshot.screenshots.grouping import count_by_category, sort_screenshots

console = Console()

DEFAULT_CONFIG = "regshot.json"

CATEGORY_STYLES = {
    "new": "yellow",
    "deleted": "red",
    "changed": "magenta",
    "passed": "green",
}


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def load_config(config: str) -> RegshotConfig:
    """Load the config or exit with a readable message."""
    try:
        return RegshotConfig.load(config)
    except FileNotFoundError:
        console.print(f"[red]Config file not found: {config}[/red]")
        console.print("Run 'regshot init' to create a default config.")
        sys.exit(1)
    except (ValidationError, ValueError) as e:
        console.print(f"[red]Invalid config {config}:[/red] {e}")
        sys.exit(1)


def _file_system(cfg: RegshotConfig, config_path: str) -> ScreenshotFileSystem:
    # Relative output directories are relative to the config file.
    return ScreenshotFileSystem(cfg.resolve_output_dir(Path(config_path).resolve().parent))


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Visual regression screenshots: capture, compare, review, approve."""
    setup_logging(verbose)


@cli.command()
@click.option("--output-dir", "-o", default="./screenshots", help="Screenshot output directory")
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
def init(output_dir: str, config: str) -> None:
    """Create a default configuration file."""
    config_path = Path(config)
    if config_path.exists():
        if not click.confirm(f"{config} already exists. Overwrite?"):
            return

    cfg = RegshotConfig(output_dir=output_dir)
    cfg.save(config_path)
    console.print(f"[green]Created {config_path}[/green]")
    console.print("\nAdd capture targets to the 'targets' list, then run:")
    console.print("  [blue]regshot capture[/blue]")


@cli.command()
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
def capture(config: str) -> None:
    """Capture all targets and compare them with the expected screenshots."""
    cfg = load_config(config)
    if not cfg.targets:
        console.print("[yellow]No capture targets configured[/yellow]")
        return

    async def run():
        async with ScreenshotTool(cfg, _file_system(cfg, config)) as tool:
            return await tool.capture_all()

    results = asyncio.run(run())

    table = Table(title="Capture Results")
    table.add_column("Screenshot", style="bold")
    table.add_column("Status")
    table.add_column("Retries")
    for result in results:
        if result.skipped:
            status = "[dim]skipped[/dim]"
        elif result.error:
            status = f"[red]error: {result.error}[/red]"
        elif result.is_new:
            status = "[yellow]new[/yellow]"
        elif result.different_sizes:
            status = "[red]size changed[/red]"
        elif result.passed:
            status = "[green]passed[/green]"
        else:
            status = "[magenta]changed[/magenta]"
        table.add_row(result.name, status, str(result.retries_used))
    console.print(table)

    failed = [r for r in results if r.failed]
    if failed:
        console.print(f"[red]Total failures: {len(failed)}[/red]")
        sys.exit(1)


@cli.command()
@click.option("--json", "json_path", default=None, help="Also write a JSON report to this path")
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
def status(json_path: str | None, config: str) -> None:
    """Show new, deleted, changed and passed screenshots."""
    cfg = load_config(config)
    file_system = _file_system(cfg, config)
    screenshots = sort_screenshots(file_system.group())
    counts = count_by_category(screenshots)

    table = Table(title="Screenshot Status")
    table.add_column("Category", style="bold")
    table.add_column("Count")
    for category, count in counts.items():
        style = CATEGORY_STYLES[category]
        table.add_row(f"[{style}]{category.capitalize()}[/{style}]", str(count))
    console.print(table)

    for screenshot in screenshots:
        if screenshot.category != "passed":
            style = CATEGORY_STYLES[screenshot.category]
            console.print(f"  [{style}]{screenshot.category:<8}[/{style}] {screenshot.name}")

    if json_path:
        generate_json_report(screenshots, Path(json_path), file_system.output_dir)
        console.print(f"  JSON report: [blue]{json_path}[/blue]")


@cli.command()
@click.option("--filter", "-f", "filters", multiple=True, help="Only approve screenshots whose name contains this text")
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
def approve(filters: tuple[str, ...], config: str) -> None:
    """Approve screenshots: make the actual captures the new baseline."""
    cfg = load_config(config)
    approved = approve_screenshots(_file_system(cfg, config), cfg, filters)

    if not approved:
        console.print("[yellow]No screenshots matched the provided filter(s)[/yellow]" if filters
                      else "[yellow]Nothing to approve[/yellow]")
        return

    suffix = " (filtered)" if filters else ""
    console.print(f"[green]{len(approved)} screenshot(s) approved{suffix}[/green]")


@cli.command()
@click.argument("image1", type=click.Path(exists=True, dir_okay=False))
@click.argument("image2", type=click.Path(exists=True, dir_okay=False))
@click.option("--algorithm", "-a", type=click.Choice(["pixel", "gmsd"]), default=None,
              help="Comparison algorithm (default: from config, else pixel)")
@click.option("--diff-output", "-d", default=None, help="Write the diff image to this path")
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
def compare(image1: str, image2: str, algorithm: str | None, diff_output: str | None, config: str) -> None:
    """Compare two PNG images."""
    cfg = load_config(config) if Path(config).exists() else RegshotConfig()
    algorithm = algorithm or cfg.algorithm
    with_diff = diff_output is not None

    if algorithm == "gmsd":
        result = compare_images_gmsd(image1, image2, with_diff, cfg.gmsd)
        summary = f"GMSD: {result.gmsd:.6f} (threshold {cfg.gmsd.threshold})"
    else:
        try:
            result = compare_images(image1, image2, with_diff, cfg.diff)
        except PNGDecodeError as e:
            console.print(f"[red]{e}[/red]")
            sys.exit(1)
        if result.different_sizes:
            summary = "Images have different dimensions"
        else:
            summary = (f"Pixel diff: {result.num_diff_pixels}/{result.total_pixels} "
                       f"({result.percent_difference:.4f}%)")

    if result.error:
        console.print(f"[red]Comparison error: {result.error}[/red]")
        sys.exit(1)

    if with_diff and result.diff_buffer:
        save_diff_image(result, diff_output)
        console.print(f"  Diff image: [blue]{diff_output}[/blue]")

    verdict = "[green]PASSED[/green]" if result.passed else "[red]FAILED[/red]"
    console.print(f"{verdict} {summary}")
    if not result.passed:
        sys.exit(1)


@cli.group()
def metadata() -> None:
    """Read and edit PNG text metadata."""
    pass


def _load_png(path: str) -> PNGImage:
    try:
        return PNGImage.load(path)
    except PNGDecodeError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)


@metadata.command("show")
@click.argument("image", type=click.Path(exists=True, dir_okay=False))
@click.option("--diff-only", is_flag=True, help="Only show diff provenance entries")
def metadata_show(image: str, diff_only: bool) -> None:
    """List the tEXt entries of a PNG."""
    png = _load_png(image)
    entries = read_diff_provenance(png) if diff_only else png.metadata
    if not entries:
        console.print("[yellow]No metadata[/yellow]")
        return

    table = Table(title=f"{image} ({png.width}x{png.height})")
    table.add_column("Key", style="bold")
    table.add_column("Value")
    for key, value in entries.items():
        table.add_row(key, value)
    console.print(table)


@metadata.command("set")
@click.argument("image", type=click.Path(exists=True, dir_okay=False))
@click.argument("key")
@click.argument("value")
def metadata_set(image: str, key: str, value: str) -> None:
    """Set one tEXt entry."""
    png = _load_png(image)
    png.set_metadata(key, value)
    try:
        png.save()
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    console.print(f"[green]Set[/green] {key}")


@metadata.command("remove")
@click.argument("image", type=click.Path(exists=True, dir_okay=False))
@click.argument("key")
def metadata_remove(image: str, key: str) -> None:
    """Remove one tEXt entry."""
    png = _load_png(image)
    png.remove_metadata(key)
    png.save()
    console.print(f"[green]Removed[/green] {key}")


@metadata.command("clear")
@click.argument("image", type=click.Path(exists=True, dir_okay=False))
def metadata_clear(image: str) -> None:
    """Remove every tEXt entry."""
    png = _load_png(image)
    png.clear_metadata()
    png.save()
    console.print("[green]All metadata cleared[/green]")


if __name__ == "__main__":
    cli()
