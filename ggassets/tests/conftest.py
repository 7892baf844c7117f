"""Unit tests configuration file."""

import struct
from collections import defaultdict
from pathlib import Path

import pytest

RT_BITMAP = 0x8002
RT_RCDATA = 0x800A
RT_AUDIO = 0xFF07


def pytest_configure(config):
    """Disable verbose output when running tests."""
    terminal = config.pluginmanager.getplugin("terminal")
    if terminal:
        terminal.TerminalReporter.showfspath = False


def build_ne(resources, shift=0, data_offset=0x1000):
    """Assemble an NE container holding (type_id, res_id, payload) resources."""
    dos = bytearray(0x40)
    dos[0:2] = b"MZ"
    struct.pack_into("<I", dos, 0x3C, 0x40)

    ne = bytearray(0x40)
    ne[0:2] = b"NE"
    struct.pack_into("<H", ne, 0x24, 0x40)  # resource table at 0x80
    struct.pack_into("<H", ne, 0x32, shift)

    grouped = defaultdict(list)
    for type_id, res_id, payload in resources:
        grouped[type_id].append((res_id, payload))

    align = 1 << shift
    placed = []
    offset = data_offset
    table = bytearray(struct.pack("<H", shift))
    for type_id, entries in grouped.items():
        table += struct.pack("<HHI", type_id, len(entries), 0)
        for res_id, payload in entries:
            offset = (offset + align - 1) // align * align
            length = (len(payload) + align - 1) // align
            table += struct.pack("<HHHHI", offset >> shift, length, 0x30, res_id, 0)
            placed.append((offset, payload))
            offset += len(payload)
    table += struct.pack("<HHI", 0, 0, 0)

    image = bytearray(dos + ne + table)
    for at, payload in placed:
        if len(image) < at:
            image += bytes(at - len(image))
        image[at : at + len(payload)] = payload
    return bytes(image)


def build_grp(files, table_at_offset1=False):
    """Assemble a GRP archive.

    files holds (name, payload) pairs or (name, payload, flags, size) for
    compressed entries, where size is the decompressed length.
    """
    table_offset = 64 if table_at_offset1 else 32
    header = struct.pack("<4sIII4sIII", b"RGrp", 0, 1, table_offset, b"RGrp", 0, 0, 0)

    entries = [f if len(f) == 4 else (f[0], f[1], 0, len(f[1])) for f in files]
    data_offset = table_offset + 4 + len(entries) * 26

    table = bytearray(struct.pack("<I", len(entries)))
    blob = bytearray()
    for name, payload, flags, size in entries:
        compressed_size = len(payload) if flags else 0
        offset = data_offset + len(blob)
        table += struct.pack(
            "<13sBIII", name.encode("latin-1"), flags, offset, size, compressed_size
        )
        blob += payload

    if table_at_offset1:
        # An implausible count right after the header forces the offset1 table
        filler = struct.pack("<I", 0xFFFFFFFF) + bytes(table_offset - 36)
        return header + filler + bytes(table) + bytes(blob)
    return header + bytes(table) + bytes(blob)


def build_sprite(width, height, pixels, palette_offset=0, hotspot=(0, 0), flags=0):
    return struct.pack("<HHhhHH", width, height, hotspot[0], hotspot[1], flags, palette_offset) + (
        bytes(pixels)
    )


def build_dib(width=2, height=2, bit_count=8, colors_used=0):
    """A BITMAPINFOHEADER plus colour table and pixel rows, as stored in resources."""
    header = struct.pack(
        "<IiiHHIIiiII", 40, width, height, 1, bit_count, 0, 0, 0, 0, colors_used, 0
    )
    palette_entries = colors_used or (1 << bit_count if bit_count <= 8 else 0)
    row = (width * bit_count + 31) // 32 * 4
    return header + bytes(palette_entries * 4) + bytes(row * height)


def build_palette_bmp(colors):
    """A 256-colour BMP file whose colour table holds the given (r, g, b) colours."""
    table = bytearray(1024)
    for i, (r, g, b) in enumerate(colors):
        table[i * 4 : i * 4 + 4] = bytes((b, g, r, 0))
    dib = struct.pack("<IiiHHIIiiII", 40, 1, 1, 1, 8, 0, 4, 0, 0, 256, 0)
    body = dib + bytes(table) + bytes(4)
    return struct.pack("<2sIHHI", b"BM", 14 + len(body), 0, 0, 14 + 40 + 1024) + body


@pytest.fixture
def make_ne(tmp_path):
    def _make(resources, name="test.dat", shift=0):
        path = tmp_path / name
        path.write_bytes(build_ne(resources, shift=shift))
        return path

    return _make


@pytest.fixture
def make_grp(tmp_path):
    def _make(files, name="test.grp", table_at_offset1=False):
        path = tmp_path / name
        path.write_bytes(build_grp(files, table_at_offset1=table_at_offset1))
        return path

    return _make


# Payloads of the sample game installation
BITMAP_DIB = build_dib(width=4, height=2)
LEVEL_DATA = b"level data \x00\x01\x02"
AUDIO_DATA = b"RIFF\x10\x00\x00\x00WAVEfmt "
SPRITE_OK = build_sprite(2, 2, [1, 2, 3, 4], hotspot=(1, -1))
SPRITE_BAD = build_sprite(5000, 1, [])
# 3x1 sprite stored RLE compressed: header bytes as 12 literals, then a run of 3
SPRITE_PACKED = bytes([11]) + build_sprite(3, 1, []) + bytes([0x82, 9])


@pytest.fixture
def game_dir(tmp_path):
    """A minimal game installation: one NE container and one GRP archive."""
    root = tmp_path / "game"
    (root / "SSGWINCD").mkdir(parents=True)
    (root / "ASSETS").mkdir()

    (root / "SSGWINCD" / "GIZMO256.DAT").write_bytes(
        build_ne(
            [
                (RT_BITMAP, 100, BITMAP_DIB),
                (RT_RCDATA, 7, LEVEL_DATA),
                (RT_AUDIO, 3, AUDIO_DATA),
            ]
        )
    )
    (root / "ASSETS" / "SPRITES.GRP").write_bytes(
        build_grp(
            [
                ("1", SPRITE_OK),
                ("2", SPRITE_BAD),
                ("3", SPRITE_PACKED, 0x01, len(build_sprite(3, 1, [9, 9, 9]))),
            ]
        )
    )
    return root


@pytest.fixture
def cache_dir(tmp_path) -> Path:
    return tmp_path / "cache"


@pytest.fixture
def samples():
    """Payloads stored in the game_dir installation, by asset id."""
    return {
        "gizmo256:bitmap:100": BITMAP_DIB,
        "gizmo256:data:7": LEVEL_DATA,
        "gizmo256:sound:3": AUDIO_DATA,
        "sprites:sprite:1": SPRITE_OK,
        "sprites:sprite:3": build_sprite(3, 1, [9, 9, 9]),
    }


@pytest.fixture
def ne_bytes():
    return build_ne


@pytest.fixture
def grp_bytes():
    return build_grp


@pytest.fixture
def sprite_bytes():
    return build_sprite


@pytest.fixture
def dib_bytes():
    return build_dib


@pytest.fixture
def palette_bmp():
    return build_palette_bmp
