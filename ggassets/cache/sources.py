"""Locating, opening and reading the game files that back asset identifiers."""

import logging
from dataclasses import dataclass
from enum import StrEnum, auto
from pathlib import Path

from ..formats.errors import EntryNotFound
from ..formats.grp import GrpArchive
from ..formats.ne import RT_AUDIO, NEContainer, ResourceDescriptor, ResourceType, bitmap_file_header
from ..formats.sprite import Palette
from .identifier import AssetId, AssetKind

logger = logging.getLogger(__name__)


class SourceKind(StrEnum):
    CONTAINER = auto()
    ARCHIVE = auto()


SOURCE_KINDS: dict[AssetKind, SourceKind] = {
    AssetKind.BITMAP: SourceKind.CONTAINER,
    AssetKind.SPRITE: SourceKind.ARCHIVE,
    AssetKind.SOUND: SourceKind.CONTAINER,
    AssetKind.MUSIC: SourceKind.CONTAINER,
    AssetKind.DATA: SourceKind.CONTAINER,
}

# Resource types tried in order for container-backed kinds
RESOURCE_TYPES: dict[AssetKind, tuple[int, ...]] = {
    AssetKind.BITMAP: (ResourceType.BITMAP,),
    AssetKind.SOUND: (ResourceType.RCDATA, RT_AUDIO),
    AssetKind.MUSIC: (ResourceType.RCDATA,),
    AssetKind.DATA: (ResourceType.RCDATA,),
}


@dataclass(frozen=True, slots=True)
class ContainerSource:
    name: str
    container: NEContainer

    def close(self) -> None:
        self.container.close()


@dataclass(frozen=True, slots=True)
class ArchiveSource:
    name: str
    archive: GrpArchive

    def close(self) -> None:
        self.archive.close()


Source = ContainerSource | ArchiveSource


@dataclass(frozen=True, slots=True)
class Extracted:
    """Bytes pulled out of a source plus where they came from."""

    data: bytes
    path: Path
    offset: int


def find_file(directory: Path, filename: str) -> Path | None:
    """Find filename in directory, ignoring case."""
    candidate = directory / filename
    if candidate.is_file():
        return candidate
    if not directory.is_dir():
        return None

    wanted = filename.lower()
    for entry in directory.iterdir():
        if entry.name.lower() == wanted and entry.is_file():
            return entry
    return None


class SourceLocator:
    """Maps source names to files under the game directory."""

    def __init__(
        self,
        game_path: str | Path,
        container_dirs: list[str],
        archive_dirs: list[str],
        container_extensions: list[str],
        archive_extension: str,
    ) -> None:
        self.game_path = Path(game_path)
        self.container_dirs = container_dirs
        self.archive_dirs = archive_dirs
        self.container_extensions = container_extensions
        self.archive_extension = archive_extension

    def _search(self, dirs: list[str], names: list[str]) -> Path | None:
        for directory in dirs:
            for name in names:
                found = find_file(self.game_path / directory, name)
                if found is not None:
                    return found
        return None

    def _candidates(self, name: str, extensions: list[str]) -> list[str]:
        if Path(name).suffix.lower() in (ext.lower() for ext in extensions):
            return [name]
        return [name + ext for ext in extensions]

    def find_container(self, name: str) -> Path | None:
        return self._search(self.container_dirs, self._candidates(name, self.container_extensions))

    def find_archive(self, name: str) -> Path | None:
        return self._search(self.archive_dirs, self._candidates(name, [self.archive_extension]))

    def find(self, name: str, kind: SourceKind) -> Path | None:
        if kind == SourceKind.ARCHIVE:
            return self.find_archive(name)
        return self.find_container(name)


def open_source(name: str, kind: SourceKind, path: Path, palette: Palette) -> Source:
    """Open the file at path as the given source kind."""
    if kind == SourceKind.ARCHIVE:
        return ArchiveSource(name, GrpArchive(path, palette=palette))
    return ContainerSource(name, NEContainer(path))


# Directory of each category below <extracted root>/<game id>
EXTRACTED_DIRS: dict[str, str] = {
    "sprites": "sprites",
    "wav": "audio/wav",
    "midi": "audio/midi",
    "puzzles": "puzzles",
    "rooms": "rooms",
    "video": "video",
}

# Extension tried when a name is given without one
EXTRACTED_EXTENSIONS: dict[str, str] = {"sprites": ".bmp", "wav": ".wav", "midi": ".mid"}


def extracted_dir(root: Path, game_id: str, category: str) -> Path:
    return root / game_id / EXTRACTED_DIRS.get(category, category)


def find_extracted(root: Path, game_id: str, category: str, name: str) -> Path | None:
    """Find a pre-extracted file by name, with or without its extension."""
    directory = extracted_dir(root, game_id, category)
    candidate = directory / name
    if candidate.is_file():
        return candidate

    extension = EXTRACTED_EXTENSIONS.get(category)
    if extension is not None:
        candidate = directory / (name + extension)
        if candidate.is_file():
            return candidate

    # Sprites are also matched by stem, whatever their extension
    if category == "sprites" and directory.is_dir():
        for entry in sorted(directory.iterdir()):
            if entry.stem == name and entry.is_file():
                return entry
    return None


def list_extracted(root: Path, game_id: str, category: str) -> list[str]:
    directory = extracted_dir(root, game_id, category)
    if not directory.is_dir():
        return []
    return sorted(entry.name for entry in directory.iterdir() if entry.is_file())


def _find_resource(container: NEContainer, asset_id: AssetId) -> ResourceDescriptor:
    types = RESOURCE_TYPES[asset_id.kind]
    for type_id in types[:-1]:
        try:
            return container.find_resource(type_id, asset_id.number)
        except EntryNotFound:
            logger.debug("%s not found as type %#x, trying next type", asset_id, type_id)
    return container.find_resource(types[-1], asset_id.number)


def extract_asset(source: Source, asset_id: AssetId) -> Extracted:
    """Read the bytes an identifier refers to from an opened source."""
    if isinstance(source, ArchiveSource):
        name = str(asset_id.number)
        entry = source.archive.get_entry(name)
        if entry is None:
            raise EntryNotFound(f"File not found: {name} in {source.archive.path}")
        return Extracted(source.archive.extract(name), source.archive.path, entry.offset)

    if isinstance(source, ContainerSource):
        res = _find_resource(source.container, asset_id)
        data = source.container.extract_descriptor(res)
        if asset_id.kind == AssetKind.BITMAP:
            data = bitmap_file_header(data) + data
        return Extracted(data, source.container.path, res.offset)

    raise TypeError(f"Unsupported source {source!r}")
