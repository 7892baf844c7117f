"""Resource extraction from 16-bit New Executable (NE) containers.

The games ship their bitmaps, sounds and data blobs as resources inside NE
DLLs with .DAT/.RSC extensions. Only the resource table is interpreted; the
code segments are never touched.

Layout:
  DOS header (64 bytes)   'MZ' magic, u32 NE header offset at 0x3C
  NE header (64 bytes)    'NE' magic, u16 resource table offset at +0x24
                          (relative to the NE header), u16 alignment shift
                          at +0x32
  Resource table          u16 alignment shift, then type entries until a
                          zero type id
"""

import logging
import struct
import threading
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import BinaryIO, Self

from dataclasses_json import DataClassJsonMixin

from .errors import BadMagic, EntryNotFound, SourceClosed, TruncatedData
from .reader import ByteReader

logger = logging.getLogger(__name__)

DOS_MAGIC = 0x5A4D  # 'MZ'
NE_MAGIC = 0x454E  # 'NE'

DOS_HEADER_SIZE = 0x40
NE_HEADER_SIZE = 0x40
NE_OFFSET_FIELD = 0x3C

# struct formats (little-endian)
_TYPE_INFO_FMT = "<HHI"
_NAME_INFO_FMT = "<HHHHI"
TYPE_INFO_SIZE = struct.calcsize(_TYPE_INFO_FMT)  # 8 bytes
NAME_INFO_SIZE = struct.calcsize(_NAME_INFO_FMT)  # 12 bytes

BITMAP_FILE_HEADER_SIZE = 14
BITMAP_INFO_HEADER_SIZE = 40

INTEGER_ID_FLAG = 0x8000


class ResourceType(IntEnum):
    """Standard resource type ids (high bit marks an integer type)."""

    CURSOR = 0x8001
    BITMAP = 0x8002
    ICON = 0x8003
    MENU = 0x8004
    DIALOG = 0x8005
    STRING = 0x8006
    FONTDIR = 0x8007
    FONT = 0x8008
    ACCELERATOR = 0x8009
    RCDATA = 0x800A
    GROUP_CURSOR = 0x800C
    GROUP_ICON = 0x800E


# Custom type used by the games for embedded WAV data (CUSTOM_32519)
RT_AUDIO = 0xFF07


def resource_type_name(type_id: int) -> str:
    """Human readable name for a resource type id."""
    try:
        return ResourceType(type_id).name
    except ValueError:
        pass
    if type_id & INTEGER_ID_FLAG:
        return f"CUSTOM_{type_id & 0x7FFF}"
    return "UNKNOWN"


@dataclass(frozen=True)
class ResourceDescriptor(DataClassJsonMixin):
    """One entry of an NE resource table.

    offset and size are already scaled by the table's alignment shift.
    """

    type_id: int
    id: int
    offset: int
    size: int
    flags: int
    type_name: str


def bitmap_file_header(dib: bytes) -> bytes:
    """Build the 14-byte BITMAPFILEHEADER that resource bitmaps lack.

    Bitmap resources start directly with a BITMAPINFOHEADER; prefixing this
    header turns them into standalone .bmp files.
    """
    if len(dib) < BITMAP_INFO_HEADER_SIZE:
        raise TruncatedData(f"Bitmap data too small ({len(dib)} bytes)")

    reader = ByteReader(dib)
    header_size = reader.u32()
    reader.seek(14)
    bit_count = reader.u16()
    reader.seek(32)
    color_count = reader.u32()

    palette_size = 0
    if bit_count <= 8:
        if color_count == 0:
            color_count = 1 << bit_count
        palette_size = color_count * 4

    file_size = BITMAP_FILE_HEADER_SIZE + len(dib)
    data_offset = BITMAP_FILE_HEADER_SIZE + header_size + palette_size
    return struct.pack("<2sIHHI", b"BM", file_size & 0xFFFFFFFF, 0, 0, data_offset & 0xFFFFFFFF)


class NEContainer:
    """Reader for the resource table of an NE container.

    The file stays open for the lifetime of the object; use close() or a
    with block to release it.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.alignment_shift = 0
        self._resources: list[ResourceDescriptor] = []
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

    def _read(self, size: int) -> bytes:
        assert self._file is not None
        return self._file.read(size)

    def _parse(self) -> None:
        assert self._file is not None

        dos_header = self._read(DOS_HEADER_SIZE)
        if len(dos_header) < DOS_HEADER_SIZE:
            raise TruncatedData(f"DOS header truncated in {self.path}")
        reader = ByteReader(dos_header)
        if reader.u16() != DOS_MAGIC:
            raise BadMagic(f"Invalid DOS header (not MZ) in {self.path}")
        reader.seek(NE_OFFSET_FIELD)
        ne_offset = reader.u32()

        self._file.seek(ne_offset)
        ne_header = self._read(NE_HEADER_SIZE)
        if len(ne_header) < NE_HEADER_SIZE:
            raise TruncatedData(f"NE header truncated at offset {ne_offset:#x} in {self.path}")
        reader = ByteReader(ne_header)
        if reader.u16() != NE_MAGIC:
            raise BadMagic(f"Invalid NE header (not NE executable) in {self.path}")
        reader.seek(0x24)
        table_offset = ne_offset + reader.u16()
        reader.seek(0x32)
        self.alignment_shift = reader.u16()

        self._file.seek(table_offset)
        shift_bytes = self._read(2)
        if len(shift_bytes) < 2:
            logger.debug("Resource table missing in %s", self.path)
            return
        (table_shift,) = struct.unpack("<H", shift_bytes)
        if table_shift > 0:
            self.alignment_shift = table_shift

        self._resources = self._parse_types()
        logger.debug("Parsed %d resources from %s", len(self._resources), self.path)

    def _parse_types(self) -> list[ResourceDescriptor]:
        shift = self.alignment_shift
        resources: list[ResourceDescriptor] = []

        while True:
            type_info = self._read(TYPE_INFO_SIZE)
            if len(type_info) < TYPE_INFO_SIZE:
                logger.debug("Resource table truncated in %s", self.path)
                return resources

            type_id, count, _reserved = struct.unpack(_TYPE_INFO_FMT, type_info)
            if type_id == 0:
                return resources

            type_name = resource_type_name(type_id)
            for _ in range(count):
                name_info = self._read(NAME_INFO_SIZE)
                if len(name_info) < NAME_INFO_SIZE:
                    logger.debug("Resource entries truncated in %s", self.path)
                    return resources

                offset, length, flags, res_id, _reserved = struct.unpack(_NAME_INFO_FMT, name_info)
                resources.append(
                    ResourceDescriptor(
                        type_id=type_id,
                        id=res_id,
                        offset=offset << shift,
                        size=length << shift,
                        flags=flags,
                        type_name=type_name,
                    )
                )

    def list_resources(self) -> list[ResourceDescriptor]:
        return list(self._resources)

    def list_resources_by_type(self, type_id: int) -> list[ResourceDescriptor]:
        return [res for res in self._resources if res.type_id == type_id]

    def find_resource(self, type_id: int, res_id: int) -> ResourceDescriptor:
        """Look up a resource, accepting either the stored or integer-flagged id."""
        for candidate in (res_id, res_id | INTEGER_ID_FLAG):
            for res in self._resources:
                if res.type_id == type_id and res.id == candidate:
                    return res
        raise EntryNotFound(
            f"Resource not found: type {resource_type_name(type_id)} id {res_id} in {self.path}"
        )

    def extract_resource(self, type_id: int, res_id: int) -> bytes:
        return self.extract_descriptor(self.find_resource(type_id, res_id))

    def extract_descriptor(self, res: ResourceDescriptor) -> bytes:
        return self.extract_resource_by_offset(res.offset, res.size)

    def extract_resource_by_offset(self, offset: int, size: int) -> bytes:
        """Read exactly size bytes starting at offset."""
        with self._lock:
            if self._file is None:
                raise SourceClosed(f"{self.path} is closed")
            self._file.seek(offset)
            data = self._file.read(size)

        if len(data) != size:
            raise TruncatedData(
                f"Resource at {offset:#x} needs {size} bytes, got {len(data)} from {self.path}"
            )
        return data

    def extract_bitmap_file(self, res_id: int) -> bytes:
        """Return a bitmap resource as a complete .bmp file."""
        dib = self.extract_resource(ResourceType.BITMAP, res_id)
        return bitmap_file_header(dib) + dib

    def extract_bitmap(self, res_id: int, output_path: str | Path) -> Path:
        """Write a bitmap resource to output_path as a standalone .bmp file."""
        data = self.extract_bitmap_file(res_id)
        output_path = Path(output_path)
        output_path.write_bytes(data)
        return output_path

    def close(self) -> None:
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()
