"""Reader for RGrp (.GRP) archives.

Header (32 bytes):
  char magic[4]   "RGrp"
  u32  padding
  u32  index1
  u32  offset1    alternate location of the file table
  char magic2[4]  "RGrp"
  u32  padding2
  u32  index2
  u32  offset2

File table: u32 count, then count 26-byte entries
  char name[13]   NUL padded 8.3 name
  u8   flags      compression bits
  u32  offset
  u32  size       uncompressed size
  u32  compressed_size
"""

import logging
import struct
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Self

from dataclasses_json import DataClassJsonMixin

from .compression import Compression, decompress
from .errors import BadMagic, EntryNotFound, FormatError, SourceClosed, TruncatedData
from .sprite import DecodedSprite, Palette, decode_sprite, grayscale_palette, normalize_palette

logger = logging.getLogger(__name__)

GRP_MAGIC = b"RGrp"

_HEADER_FMT = "<4sIII4sIII"
_ENTRY_FMT = "<13sBIII"
HEADER_SIZE = struct.calcsize(_HEADER_FMT)  # 32 bytes
ENTRY_SIZE = struct.calcsize(_ENTRY_FMT)  # 26 bytes
MAX_FILE_COUNT = 10000


@dataclass(frozen=True, slots=True)
class GrpHeader:
    magic: bytes
    index1: int
    offset1: int
    magic2: bytes
    index2: int
    offset2: int


@dataclass(frozen=True)
class ArchiveEntry(DataClassJsonMixin):
    name: str
    offset: int
    size: int
    compressed_size: int
    flags: int

    @property
    def is_compressed(self) -> bool:
        return bool(self.flags & (Compression.RLE | Compression.LZ))


def parse_grp_header(data: bytes) -> GrpHeader:
    """Parse the 32-byte archive header."""
    if len(data) < HEADER_SIZE:
        raise TruncatedData(f"GRP header too short: {len(data)} bytes, need {HEADER_SIZE}")
    magic, _pad, index1, offset1, magic2, _pad2, index2, offset2 = struct.unpack_from(
        _HEADER_FMT, data, 0
    )
    if magic != GRP_MAGIC:
        raise BadMagic(f"Invalid GRP magic (not RGrp): {magic!r}")
    return GrpHeader(
        magic=magic,
        index1=index1,
        offset1=offset1,
        magic2=magic2,
        index2=index2,
        offset2=offset2,
    )


def parse_entry(data: bytes) -> ArchiveEntry:
    raw_name, flags, offset, size, compressed_size = struct.unpack(_ENTRY_FMT, data)
    name = raw_name.split(b"\x00", 1)[0].decode("latin-1")
    return ArchiveEntry(
        name=name,
        offset=offset,
        size=size,
        compressed_size=compressed_size,
        flags=flags,
    )


class GrpArchive:
    """Random access reader for a GRP archive.

    Entries are parsed once when the archive is opened and looked up by
    lower-cased name.
    """

    def __init__(self, path: str | Path, palette: Sequence[Sequence[int]] | None = None) -> None:
        self.path = Path(path)
        self._entries: list[ArchiveEntry] = []
        self._entry_map: dict[str, ArchiveEntry] = {}
        self._palette: Palette = (
            normalize_palette(palette) if palette is not None else grayscale_palette()
        )
        self._lock = threading.Lock()
        self._file: BinaryIO | None = self.path.open("rb")
        try:
            self._parse()
        except BaseException:
            self.close()
            raise

    @classmethod
    def open(cls, path: str | Path) -> Self:
        return cls(path)

    def _read_count(self, offset: int) -> int | None:
        assert self._file is not None
        self._file.seek(offset)
        data = self._file.read(4)
        if len(data) < 4:
            return None
        (count,) = struct.unpack("<I", data)
        if count > MAX_FILE_COUNT:
            return None
        return count

    def _parse(self) -> None:
        assert self._file is not None
        self.header = parse_grp_header(self._file.read(HEADER_SIZE))

        # Two table layouts exist: count right after the header, or at offset1
        count = self._read_count(HEADER_SIZE)
        if count is None:
            logger.debug(
                "No file table after header in %s, trying offset %#x",
                self.path,
                self.header.offset1,
            )
            count = self._read_count(self.header.offset1)
            if count is None:
                raise FormatError(f"Invalid file count in GRP archive {self.path}")

        for _ in range(count):
            data = self._file.read(ENTRY_SIZE)
            if len(data) < ENTRY_SIZE:
                logger.debug("File table truncated in %s", self.path)
                break
            entry = parse_entry(data)
            self._entries.append(entry)
            self._entry_map[entry.name.lower()] = entry

        logger.debug("Parsed %d entries from %s", len(self._entries), self.path)

    @property
    def palette(self) -> Palette:
        return self._palette

    def set_palette(self, palette: Sequence[Sequence[int]]) -> None:
        """Set the palette inherited by sprites without an embedded one."""
        self._palette = normalize_palette(palette)

    def list_files(self) -> list[str]:
        return [entry.name for entry in self._entries]

    def entries(self) -> list[ArchiveEntry]:
        return list(self._entries)

    def get_entry(self, name: str) -> ArchiveEntry | None:
        return self._entry_map.get(name.lower())

    def extract(self, name: str) -> bytes:
        """Read an entry and undo its compression."""
        entry = self.get_entry(name)
        if entry is None:
            raise EntryNotFound(f"File not found: {name} in {self.path}")
        read_size = entry.compressed_size if entry.is_compressed else entry.size
        if read_size == 0:
            read_size = entry.size

        with self._lock:
            if self._file is None:
                raise SourceClosed(f"{self.path} is closed")
            self._file.seek(entry.offset)
            data = self._file.read(read_size)

        if len(data) < read_size:
            raise TruncatedData(
                f"Entry {entry.name} needs {read_size} bytes, got {len(data)} from {self.path}"
            )

        if entry.is_compressed:
            return decompress(data, entry.size, entry.flags)
        return data

    def extract_sprite(self, name: str) -> DecodedSprite:
        return decode_sprite(self.extract(name), self._palette)

    def close(self) -> None:
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()
