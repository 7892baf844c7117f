"""Cache index records and the binary cache_index.dat codec.

File layout (little-endian):
  u32 record_count
  repeated:
    u32 id_len
    id_len bytes  identifier string
    u32 kind      AssetKind ordinal
    u32 crc32
    u64 timestamp unix seconds
"""

import logging
import struct
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from dataclasses_json import DataClassJsonMixin

from ..formats.errors import TruncatedData
from ..formats.reader import ByteReader
from .identifier import AssetKind

logger = logging.getLogger(__name__)

INDEX_FILENAME = "cache_index.dat"


@dataclass(frozen=True)
class CacheRecord(DataClassJsonMixin):
    """Provenance and integrity data for one disk-cached asset.

    source_path and source_offset are only known for records written in this
    process; the index file does not store them.
    """

    id: str
    kind: AssetKind
    crc32: int
    timestamp: int
    source_path: str = ""
    source_offset: int = 0


def encode_index(records: Iterable[CacheRecord]) -> bytes:
    records = list(records)
    out = bytearray(struct.pack("<I", len(records)))
    for record in records:
        encoded_id = record.id.encode("utf-8")
        out += struct.pack("<I", len(encoded_id))
        out += encoded_id
        out += struct.pack("<IIQ", record.kind.ordinal, record.crc32, record.timestamp)
    return bytes(out)


def decode_index(data: bytes) -> dict[str, CacheRecord]:
    """Decode an index file. A truncated tail keeps the records read so far."""
    reader = ByteReader(data)
    records: dict[str, CacheRecord] = {}

    try:
        count = reader.u32()
        for _ in range(count):
            asset_id = reader.raw(reader.u32()).decode("utf-8")
            kind_ordinal = reader.u32()
            crc = reader.u32()
            timestamp = reader.u64()
            try:
                kind = AssetKind.from_ordinal(kind_ordinal)
            except ValueError:
                logger.warning("Skipping %s with unknown kind %d", asset_id, kind_ordinal)
                continue
            records[asset_id] = CacheRecord(id=asset_id, kind=kind, crc32=crc, timestamp=timestamp)
    except (TruncatedData, UnicodeDecodeError) as e:
        logger.warning("Cache index truncated after %d records: %s", len(records), e)

    return records


def read_index(path: str | Path) -> dict[str, CacheRecord]:
    return decode_index(Path(path).read_bytes())


def write_index(path: str | Path, records: Iterable[CacheRecord]) -> None:
    Path(path).write_bytes(encode_index(records))
