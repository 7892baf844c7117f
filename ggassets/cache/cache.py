"""Thread-safe asset cache backed by an on-disk blob store.

Lookups go memory, then disk (cache_dir/<id>.cache), then the game's source
files. Every asset extracted from a source is written to disk and recorded in
cache_index.dat with its CRC32 so later runs can skip the source files.
"""

import fnmatch
import logging
import re
import threading
import time
from collections import Counter
from collections.abc import Iterator, Sequence
from concurrent.futures import Future
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Self

from ..config import (
    DEFAULT_ARCHIVE_DIRS,
    DEFAULT_ARCHIVE_EXTENSION,
    DEFAULT_CONTAINER_DIRS,
    DEFAULT_CONTAINER_EXTENSIONS,
    DEFAULT_PALETTE_FILE,
    AssetSettings,
)
from ..formats.crc import crc32
from ..formats.errors import EntryNotFound, FormatError, SourceClosed
from ..formats.ne import ResourceDescriptor
from ..formats.sprite import (
    DecodedSprite,
    Palette,
    decode_sprite,
    grayscale_palette,
    load_bmp_palette,
    normalize_palette,
    read_raw_graphics,
)
from .errors import DecodeFailed, InvalidIdentifier, SourceNotFound
from .identifier import (
    AssetId,
    AssetKind,
    cache_filename,
    check_path_component,
    parse_asset_id,
)
from .index import INDEX_FILENAME, CacheRecord, read_index, write_index
from .sources import (
    SOURCE_KINDS,
    ArchiveSource,
    ContainerSource,
    Extracted,
    Source,
    SourceKind,
    SourceLocator,
    extract_asset,
    find_extracted,
    list_extracted,
    open_source,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True, eq=False)
class AssetHandle:
    """A resident asset. Shared by every caller that asked for the same id."""

    asset_id: AssetId
    data: bytes
    sprite: DecodedSprite | None = None
    ref_count: int = 1

    @property
    def extension(self) -> str:
        return self.asset_id.kind.extension

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True, slots=True)
class ExtractedAsset:
    """A pre-extracted BMP, WAV or MIDI file read from disk."""

    game_id: str
    category: str
    name: str
    path: Path
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True, slots=True)
class CacheStats:
    textures_loaded: int = 0
    textures_cached: int = 0
    sounds_loaded: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    memory_used: int = 0


def _as_id(asset_id: str | AssetId) -> AssetId:
    return asset_id if isinstance(asset_id, AssetId) else parse_asset_id(asset_id)


@contextmanager
def _source_errors(context: object) -> Iterator[None]:
    """Translate parser and I/O failures into AssetError subclasses."""
    try:
        yield
    except EntryNotFound as e:
        raise SourceNotFound(f"{context}: {e}") from e
    except FileNotFoundError as e:
        raise SourceNotFound(f"{context}: {e}") from e
    except FormatError as e:
        raise DecodeFailed(f"{context}: {e}") from e
    except OSError as e:
        raise DecodeFailed(f"{context}: {e}") from e


class AssetCache:
    """Resolves "source:kind:id" identifiers to asset bytes.

    One coarse lock guards the resident handles, the index records, the open
    sources and the counters. Extraction and decoding run outside it; a second
    request for an id that is already being loaded waits on the first
    request's future instead of decoding again.
    """

    def __init__(
        self,
        game_path: str | Path,
        cache_dir: str | Path,
        *,
        container_dirs: Sequence[str] | None = None,
        archive_dirs: Sequence[str] | None = None,
        container_extensions: Sequence[str] | None = None,
        archive_extension: str = DEFAULT_ARCHIVE_EXTENSION,
        palette: Sequence[Sequence[int]] | None = None,
        palette_file: str | None = DEFAULT_PALETTE_FILE,
        extracted_path: str | Path | None = None,
    ) -> None:
        self.game_path = Path(game_path)
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)

        self._locator = SourceLocator(
            self.game_path,
            list(container_dirs if container_dirs is not None else DEFAULT_CONTAINER_DIRS),
            list(archive_dirs if archive_dirs is not None else DEFAULT_ARCHIVE_DIRS),
            list(
                container_extensions
                if container_extensions is not None
                else DEFAULT_CONTAINER_EXTENSIONS
            ),
            archive_extension,
        )

        self._lock = threading.Lock()
        self._handles: dict[AssetId, AssetHandle] = {}
        self._inflight: dict[AssetId, Future[AssetHandle]] = {}
        self._records: dict[str, CacheRecord] = {}
        self._sources: dict[tuple[str, SourceKind], Source] = {}
        self._opening: dict[tuple[str, SourceKind], Future[Source]] = {}
        self._extracted: dict[tuple[str, str, str], ExtractedAsset] = {}
        self._counters: Counter[str] = Counter()
        self._palette = self._initial_palette(palette, palette_file)
        self._extracted_base = Path(extracted_path) if extracted_path is not None else None

        self.load_cache_index()

    @classmethod
    def from_settings(cls, settings: AssetSettings | None = None) -> Self:
        settings = settings or AssetSettings()
        return cls(
            settings.game_path,
            settings.cache_dir,
            container_dirs=settings.container_dirs,
            archive_dirs=settings.archive_dirs,
            container_extensions=settings.container_extensions,
            archive_extension=settings.archive_extension,
            palette_file=settings.palette_file,
            extracted_path=settings.extracted_path,
        )

    def _initial_palette(
        self, palette: Sequence[Sequence[int]] | None, palette_file: str | None
    ) -> Palette:
        if palette is not None:
            return normalize_palette(palette)
        if palette_file:
            path = self.game_path / palette_file
            if path.is_file():
                try:
                    loaded = load_bmp_palette(path)
                except (OSError, FormatError) as e:
                    logger.warning("Could not read palette from %s: %s", path, e)
                else:
                    logger.info("Loaded palette from %s", path)
                    return loaded
        return grayscale_palette()

    @property
    def index_path(self) -> Path:
        return self.cache_dir / INDEX_FILENAME

    @property
    def palette(self) -> Palette:
        return self._palette

    def set_palette(self, palette: Sequence[Sequence[int]]) -> None:
        """Replace the palette used for sprites decoded from now on."""
        normalized = normalize_palette(palette)
        with self._lock:
            self._palette = normalized
            for source in self._sources.values():
                if isinstance(source, ArchiveSource):
                    source.archive.set_palette(normalized)

    # Lookup

    def get(self, asset_id: str | AssetId) -> AssetHandle:
        """Return the handle for asset_id, loading it on first use.

        Each successful call takes a reference; pair it with release().
        """
        key = _as_id(asset_id)

        with self._lock:
            handle = self._handles.get(key)
            if handle is not None:
                handle.ref_count += 1
                self._counters["cache_hits"] += 1
                return handle

            pending = self._inflight.get(key)
            owner = pending is None
            if pending is None:
                pending = Future()
                self._inflight[key] = pending
                self._counters["cache_misses"] += 1

        if not owner:
            handle = pending.result()
            with self._lock:
                handle.ref_count += 1
                self._counters["cache_hits"] += 1
            return handle

        try:
            handle = self._load(key)
        except BaseException as e:
            with self._lock:
                del self._inflight[key]
            pending.set_exception(e)
            raise

        with self._lock:
            self._handles[key] = handle
            del self._inflight[key]
            if key.kind.is_texture:
                self._counters["textures_loaded"] += 1
            elif key.kind.is_audio:
                self._counters["sounds_loaded"] += 1
        pending.set_result(handle)
        logger.debug("Loaded %s (%d bytes)", key, handle.size)
        return handle

    def get_data(self, asset_id: str | AssetId) -> bytes:
        return self.get(asset_id).data

    def get_sprite(self, asset_id: str | AssetId) -> DecodedSprite:
        key = _as_id(asset_id)
        if key.kind != AssetKind.SPRITE:
            raise InvalidIdentifier(f"{key} is not a sprite")
        sprite = self.get(key).sprite
        assert sprite is not None
        return sprite

    def release(self, asset_id: str | AssetId) -> None:
        """Drop one reference. Handles stay resident until clear_cache()."""
        key = _as_id(asset_id)
        with self._lock:
            handle = self._handles.get(key)
            if handle is not None and handle.ref_count > 0:
                handle.ref_count -= 1

    def _load(self, key: AssetId) -> AssetHandle:
        data = self.load_from_cache(key)
        if data is not None:
            logger.debug("Disk cache hit for %s", key)
            return AssetHandle(key, data, self._decode(key, data))

        extracted = self._extract(key)
        # Decode before persisting so corrupt sprites never reach the disk cache
        sprite = self._decode(key, extracted.data)
        self._persist(key, extracted)
        return AssetHandle(key, extracted.data, sprite)

    def _decode(self, key: AssetId, data: bytes) -> DecodedSprite | None:
        if key.kind != AssetKind.SPRITE:
            return None
        try:
            return decode_sprite(data, self._palette)
        except FormatError as e:
            raise DecodeFailed(f"{key}: {e}") from e

    def _extract(self, key: AssetId) -> Extracted:
        kind = SOURCE_KINDS[key.kind]
        source = self._source(key.source, kind)
        try:
            with _source_errors(key):
                return extract_asset(source, key)
        except DecodeFailed as e:
            if not isinstance(e.__cause__, SourceClosed):
                raise
            logger.debug("%s was closed while reading %s, reopening", source.name, key)
            with self._lock:
                cache_key = (key.source.lower(), kind)
                if self._sources.get(cache_key) is source:
                    del self._sources[cache_key]
        source = self._source(key.source, kind)
        with _source_errors(key):
            return extract_asset(source, key)

    def _persist(self, key: AssetId, extracted: Extracted) -> None:
        try:
            self.save_to_cache(
                key,
                extracted.data,
                source_path=str(extracted.path),
                source_offset=extracted.offset,
            )
        except OSError as e:
            logger.warning("Could not write %s to the disk cache: %s", key, e)

    # Sources

    def _source(self, name: str, kind: SourceKind) -> Source:
        cache_key = (name.lower(), kind)
        with self._lock:
            source = self._sources.get(cache_key)
            if source is not None:
                return source

            pending = self._opening.get(cache_key)
            owner = pending is None
            if pending is None:
                pending = Future()
                self._opening[cache_key] = pending

        if not owner:
            return pending.result()

        try:
            source = self._open_source(name, kind)
        except BaseException as e:
            with self._lock:
                del self._opening[cache_key]
            pending.set_exception(e)
            raise

        with self._lock:
            if isinstance(source, ArchiveSource):
                source.archive.set_palette(self._palette)
            self._sources[cache_key] = source
            del self._opening[cache_key]
        pending.set_result(source)
        return source

    def _open_source(self, name: str, kind: SourceKind) -> Source:
        path = self._locator.find(name, kind)
        if path is None:
            raise SourceNotFound(f"No {kind} named {name!r} under {self.game_path}")
        with _source_errors(path):
            source = open_source(name, kind, path, self._palette)
        logger.info("Opened %s %s", kind, path)
        return source

    def _container(self, name: str) -> ContainerSource:
        source = self._source(name, SourceKind.CONTAINER)
        assert isinstance(source, ContainerSource)
        return source

    def _archive(self, name: str) -> ArchiveSource:
        source = self._source(name, SourceKind.ARCHIVE)
        assert isinstance(source, ArchiveSource)
        return source

    def list_container_resources(self, source: str) -> list[ResourceDescriptor]:
        return self._container(source).container.list_resources()

    def list_archive_files(self, source: str) -> list[str]:
        return self._archive(source).archive.list_files()

    def get_raw_resource(self, source: str, type_id: int, res_id: int) -> bytes:
        """Read a container resource by type and id, bypassing the cache."""
        container = self._container(source).container
        with _source_errors(f"{source}:{type_id:#x}:{res_id}"):
            return container.extract_resource(type_id, res_id)

    # Pre-extracted files

    @property
    def extracted_base_path(self) -> Path:
        """Root of the pre-extracted asset trees. The game directory unless set."""
        return self._extracted_base if self._extracted_base is not None else self.game_path

    def set_extracted_base_path(self, path: str | Path | None) -> None:
        self._extracted_base = Path(path) if path is not None else None

    def load_extracted(self, game_id: str, category: str, name: str) -> ExtractedAsset:
        """Load <root>/<game_id>/<category dir>/<name>, keeping it resident."""
        check_path_component(game_id, "game id")
        check_path_component(category, "category")
        check_path_component(name, "asset name")
        key = (game_id, category, name)

        with self._lock:
            asset = self._extracted.get(key)
            if asset is not None:
                self._counters["cache_hits"] += 1
                return asset
            self._counters["cache_misses"] += 1

        root = self.extracted_base_path
        path = find_extracted(root, game_id, category, name)
        if path is None:
            raise SourceNotFound(
                f"Extracted {category} {name!r} for {game_id} not found under {root}"
            )
        with _source_errors(path):
            data = path.read_bytes()
        if category == "sprites" and data[:2] != b"BM":
            raise DecodeFailed(f"{path}: not a BMP file")

        asset = ExtractedAsset(game_id, category, name, path, data)
        with self._lock:
            existing = self._extracted.get(key)
            if existing is not None:
                return existing
            self._extracted[key] = asset
            if category == "sprites":
                self._counters["textures_loaded"] += 1
            elif category == "wav":
                self._counters["sounds_loaded"] += 1
        logger.debug("Loaded extracted %s (%d bytes)", path, asset.size)
        return asset

    def load_extracted_texture(self, game_id: str, name: str) -> ExtractedAsset:
        return self.load_extracted(game_id, "sprites", name)

    def load_extracted_sound(self, game_id: str, name: str) -> ExtractedAsset:
        return self.load_extracted(game_id, "wav", name)

    def load_extracted_music(self, game_id: str, name: str) -> ExtractedAsset:
        return self.load_extracted(game_id, "midi", name)

    def list_extracted_assets(self, game_id: str, category: str) -> list[str]:
        """Sorted file names in one category of an extracted game tree."""
        check_path_component(game_id, "game id")
        check_path_component(category, "category")
        return list_extracted(self.extracted_base_path, game_id, category)

    def get_raw_graphics(self, source: str, offset: int, width: int, height: int) -> bytes:
        """Read an uncompressed width x height block of palette indices from a DAT file."""
        check_path_component(source)
        path = self._locator.find_container(source)
        if path is None:
            raise SourceNotFound(f"No container named {source!r} under {self.game_path}")
        with _source_errors(f"{source}@{offset:#x}"):
            return read_raw_graphics(path, offset, width, height)

    # Disk store

    def cache_file_path(self, asset_id: str | AssetId) -> Path:
        return self.cache_dir / cache_filename(str(_as_id(asset_id)))

    def save_to_cache(
        self,
        asset_id: str | AssetId,
        data: bytes,
        *,
        source_path: str = "",
        source_offset: int = 0,
    ) -> CacheRecord:
        """Write data to the disk store and record its checksum."""
        key = _as_id(asset_id)
        self.cache_file_path(key).write_bytes(data)
        record = CacheRecord(
            id=str(key),
            kind=key.kind,
            crc32=crc32(data),
            timestamp=int(time.time()),
            source_path=source_path,
            source_offset=source_offset,
        )
        with self._lock:
            self._records[record.id] = record
        return record

    def load_from_cache(self, asset_id: str | AssetId) -> bytes | None:
        """Bytes previously saved for asset_id, or None. Empty files count as absent."""
        return self._read_cache_file(self.cache_file_path(asset_id))

    def _read_cache_file(self, path: Path) -> bytes | None:
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return None
        return data or None

    def load_cache_index(self) -> int:
        """Merge records from cache_index.dat. Returns the number read."""
        if not self.index_path.is_file():
            return 0
        records = read_index(self.index_path)
        with self._lock:
            self._records.update(records)
        logger.debug("Read %d cache records from %s", len(records), self.index_path)
        return len(records)

    def save_cache_index(self) -> None:
        with self._lock:
            records = list(self._records.values())
        write_index(self.index_path, records)
        logger.debug("Wrote %d cache records to %s", len(records), self.index_path)

    def records(self) -> list[CacheRecord]:
        with self._lock:
            return sorted(self._records.values(), key=lambda r: r.id)

    def record(self, asset_id: str | AssetId) -> CacheRecord | None:
        with self._lock:
            return self._records.get(str(_as_id(asset_id)))

    def stale_records(self) -> list[str]:
        """Ids whose cache file is missing or no longer matches its checksum."""
        stale = []
        for record in self.records():
            data = self._read_cache_file(self.cache_dir / cache_filename(record.id))
            if data is None:
                logger.warning("Cache file missing for %s", record.id)
                stale.append(record.id)
            elif crc32(data) != record.crc32:
                logger.warning("Checksum mismatch for %s", record.id)
                stale.append(record.id)
        return stale

    def validate_cache(self, deep: bool = False) -> bool:
        """True when the index exists and, if deep, every record checks out."""
        if not self.index_path.is_file():
            return False
        if not deep:
            return True
        return not self.stale_records()

    # Lifecycle

    def preload(self, pattern: str) -> int:
        """Load every indexed id matching a glob pattern. Returns the number loaded."""
        regex = re.compile(fnmatch.translate(pattern))
        with self._lock:
            ids = sorted(rid for rid in self._records if regex.match(rid))

        loaded = 0
        for rid in ids:
            try:
                self.get(rid)
            except (InvalidIdentifier, SourceNotFound, DecodeFailed) as e:
                logger.warning("Preload of %s failed: %s", rid, e)
            else:
                loaded += 1
        logger.info("Preloaded %d of %d assets matching %r", loaded, len(ids), pattern)
        return loaded

    def clear_cache(self) -> None:
        """Drop resident handles, close sources and reset counters.

        The disk store and its index are kept.
        """
        with self._lock:
            self._handles.clear()
            self._extracted.clear()
            sources = list(self._sources.values())
            self._sources.clear()
            self._counters.clear()
        for source in sources:
            source.close()

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                textures_loaded=self._counters["textures_loaded"],
                textures_cached=len(self._records),
                sounds_loaded=self._counters["sounds_loaded"],
                cache_hits=self._counters["cache_hits"],
                cache_misses=self._counters["cache_misses"],
                memory_used=sum(h.size for h in self._handles.values())
                + sum(a.size for a in self._extracted.values()),
            )

    def close(self) -> None:
        """Flush the index and close every open source file."""
        self.save_cache_index()
        with self._lock:
            sources = list(self._sources.values())
            self._sources.clear()
        for source in sources:
            source.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()
