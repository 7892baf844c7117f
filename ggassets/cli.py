"""Command-line interface for inspecting game files and driving the asset cache."""

import json
import logging
import sys
from pathlib import Path
from typing import NoReturn

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .cache import AssetCache, AssetError
from .config import AssetSettings
from .formats.errors import EntryNotFound, FormatError
from .formats.grp import GrpArchive
from .formats.ne import INTEGER_ID_FLAG, NEContainer, ResourceDescriptor, ResourceType

logger = logging.getLogger(__name__)

_RESOURCE_EXTENSIONS = {ResourceType.BITMAP: ".bmp", ResourceType.RCDATA: ".dat"}


def _fail(message: str) -> NoReturn:
    Console(stderr=True).print(f"[bold red]Error:[/bold red] {escape(message)}")
    sys.exit(1)


def _parse_type(value: str) -> int:
    """Resource type from a name such as "bitmap" or a number such as 0x800a."""
    try:
        return int(value, 0)
    except ValueError:
        pass
    try:
        return ResourceType[value.upper()]
    except KeyError:
        _fail(f"Unknown resource type: {value}")


def _open_cache(settings: AssetSettings) -> AssetCache:
    try:
        return AssetCache.from_settings(settings)
    except OSError as e:
        _fail(f"Cannot use cache directory {settings.cache_dir}: {e}")


@click.group()
@click.option(
    "--game-path",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Game installation directory (default: GGASSETS_GAME_PATH or .)",
)
@click.option(
    "--cache-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Disk cache directory (default: GGASSETS_CACHE_DIR or the user cache dir)",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, game_path: Path | None, cache_dir: Path | None, verbose: bool) -> None:
    """Extract and cache assets from legacy NE and GRP game files."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )

    overrides: dict[str, Path] = {}
    if game_path is not None:
        overrides["game_path"] = game_path
    if cache_dir is not None:
        overrides["cache_dir"] = cache_dir
    ctx.obj = AssetSettings(**overrides)


@cli.command()
@click.argument("container", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--type", "-t", "type_name", default=None, help="Only list this resource type")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def resources(container: Path, type_name: str | None, output_json: bool) -> None:
    """List the resources of an NE container."""
    try:
        with NEContainer(container) as ne:
            if type_name is None:
                entries = ne.list_resources()
            else:
                entries = ne.list_resources_by_type(_parse_type(type_name))
    except (FormatError, OSError) as e:
        _fail(str(e))

    if output_json:
        click.echo(json.dumps([res.to_dict(encode_json=True) for res in entries], indent=2))
        return

    console = Console()
    table = Table(show_header=True, box=None, padding=(0, 2, 0, 0))
    table.add_column("Type", style="cyan")
    table.add_column("ID", style="white", justify="right")
    table.add_column("Offset", style="dim", justify="right")
    table.add_column("Size", style="yellow", justify="right")
    for res in entries:
        table.add_row(res.type_name, str(res.id), f"{res.offset:#x}", str(res.size))
    console.print(table)
    console.print(f"[dim]{len(entries)} resources[/dim]")


def _resource_filename(res: ResourceDescriptor) -> str:
    number = res.id & ~INTEGER_ID_FLAG
    return f"{res.type_name}_{number}{_RESOURCE_EXTENSIONS.get(res.type_id, '.bin')}"


@cli.command("extract-ne")
@click.argument("container", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("output_dir", type=click.Path(file_okay=False, path_type=Path))
@click.option("--type", "-t", "type_name", default=None, help="Only extract this resource type")
@click.option("--id", "-i", "res_id", type=int, default=None, help="Only extract this id")
def extract_ne(
    container: Path, output_dir: Path, type_name: str | None, res_id: int | None
) -> None:
    """Extract resources into OUTPUT_DIR. Bitmaps are written as complete .bmp files."""
    type_id = _parse_type(type_name) if type_name is not None else None
    if res_id is not None and type_id is None:
        _fail("--id needs --type")

    written = 0
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        with NEContainer(container) as ne:
            if res_id is not None:
                selected = [ne.find_resource(type_id, res_id)]
            elif type_id is not None:
                selected = ne.list_resources_by_type(type_id)
            else:
                selected = ne.list_resources()

            for res in selected:
                path = output_dir / _resource_filename(res)
                try:
                    if res.type_id == ResourceType.BITMAP:
                        ne.extract_bitmap(res.id, path)
                    else:
                        path.write_bytes(ne.extract_descriptor(res))
                except FormatError as e:
                    logger.warning("Skipping %s %d: %s", res.type_name, res.id, e)
                    continue
                written += 1
    except (EntryNotFound, FormatError, OSError) as e:
        _fail(str(e))
    click.echo(f"Extracted {written} resources to {output_dir}")


@cli.command()
@click.argument("archive", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def files(archive: Path, output_json: bool) -> None:
    """List the entries of a GRP archive."""
    try:
        with GrpArchive(archive) as grp:
            entries = grp.entries()
    except (FormatError, OSError) as e:
        _fail(str(e))

    if output_json:
        click.echo(json.dumps([entry.to_dict(encode_json=True) for entry in entries], indent=2))
        return

    console = Console()
    table = Table(show_header=True, box=None, padding=(0, 2, 0, 0))
    table.add_column("Name", style="white")
    table.add_column("Offset", style="dim", justify="right")
    table.add_column("Size", style="yellow", justify="right")
    table.add_column("Packed", style="green", justify="right")
    for entry in entries:
        packed = str(entry.compressed_size) if entry.is_compressed else ""
        table.add_row(entry.name, f"{entry.offset:#x}", str(entry.size), packed)
    console.print(table)
    console.print(f"[dim]{len(entries)} files[/dim]")


@cli.command("extract-grp")
@click.argument("archive", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("output_dir", type=click.Path(file_okay=False, path_type=Path))
@click.argument("names", nargs=-1)
@click.option("--rgba", is_flag=True, help="Decode entries as sprites and write RGBA pixels")
def extract_grp(archive: Path, output_dir: Path, names: tuple[str, ...], rgba: bool) -> None:
    """Extract entries (all, or the NAMES given) into OUTPUT_DIR, decompressed."""
    written = 0
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        with GrpArchive(archive) as grp:
            for name in names or grp.list_files():
                filename = Path(name).name
                try:
                    if rgba:
                        data = grp.extract_sprite(name).to_rgba()
                        filename += ".rgba"
                    else:
                        data = grp.extract(name)
                except FormatError as e:
                    logger.warning("Skipping %s: %s", name, e)
                    continue
                (output_dir / filename).write_bytes(data)
                written += 1
    except (EntryNotFound, FormatError, OSError) as e:
        _fail(str(e))
    click.echo(f"Extracted {written} files to {output_dir}")


@cli.command()
@click.argument("asset_id")
@click.option("--output", "-o", "output_path", type=click.Path(path_type=Path), default=None)
@click.pass_obj
def get(settings: AssetSettings, asset_id: str, output_path: Path | None) -> None:
    """Load an asset by "source:kind:id" through the cache."""
    with _open_cache(settings) as cache:
        try:
            handle = cache.get(asset_id)
        except AssetError as e:
            _fail(str(e))
        if output_path is None:
            output_path = Path(handle.asset_id.cache_filename).with_suffix(handle.extension)
        output_path.write_bytes(handle.data)
    click.echo(f"Wrote {output_path} ({handle.size} bytes)")


@cli.command()
@click.argument("pattern")
@click.pass_obj
def preload(settings: AssetSettings, pattern: str) -> None:
    """Load every indexed asset whose id matches a glob pattern."""
    with _open_cache(settings) as cache:
        loaded = cache.preload(pattern)
    click.echo(f"Preloaded {loaded} assets")


@cli.command()
@click.option("--deep", is_flag=True, help="Check every cache file against its checksum")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def index(settings: AssetSettings, deep: bool, output_json: bool) -> None:
    """Show the disk cache index."""
    with _open_cache(settings) as cache:
        records = cache.records()
        stale = set(cache.stale_records()) if deep else set()

    if output_json:
        data = [
            record.to_dict(encode_json=True) | ({"stale": record.id in stale} if deep else {})
            for record in records
        ]
        click.echo(json.dumps(data, indent=2))
    else:
        console = Console()
        table = Table(show_header=True, box=None, padding=(0, 2, 0, 0))
        table.add_column("ID", style="white")
        table.add_column("Kind", style="cyan")
        table.add_column("CRC32", style="yellow")
        if deep:
            table.add_column("Status")
        for record in records:
            row = [record.id, str(record.kind), f"{record.crc32:08x}"]
            if deep:
                row.append("[red]stale[/red]" if record.id in stale else "[green]ok[/green]")
            table.add_row(*row)
        console.print(table)
        console.print(f"[dim]{len(records)} records in {settings.cache_dir}[/dim]")

    if stale:
        sys.exit(1)


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
