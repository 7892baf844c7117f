"""Sprite payload decoding and palette helpers."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from .errors import InvalidDimensions, TruncatedData
from .reader import ByteReader

logger = logging.getLogger(__name__)

SPRITE_HEADER_SIZE = 12
MAX_SPRITE_DIMENSION = 4096
PALETTE_SIZE = 256

# Offset of the colour table in a BMP with a 40-byte info header
BMP_PALETTE_OFFSET = 54

Color = tuple[int, int, int, int]
Palette = tuple[Color, ...]


@dataclass(frozen=True, slots=True)
class SpriteHeader:
    width: int
    height: int
    hotspot_x: int
    hotspot_y: int
    flags: int
    palette_offset: int


@dataclass(frozen=True, slots=True)
class DecodedSprite:
    """A palette-indexed image decoded from an archive entry."""

    width: int
    height: int
    hotspot_x: int
    hotspot_y: int
    flags: int
    pixels: bytes
    palette: Palette
    has_palette: bool

    def to_rgba(self) -> bytes:
        """Expand palette indices to packed RGBA pixels."""
        lut = [bytes(color) for color in self.palette]
        return b"".join(lut[index] for index in self.pixels)


def grayscale_palette() -> Palette:
    """The fallback palette: a 256 step opaque grayscale ramp."""
    return tuple((i, i, i, 255) for i in range(PALETTE_SIZE))


def normalize_palette(palette: Sequence[Sequence[int]]) -> Palette:
    """Coerce a palette to exactly 256 RGBA entries.

    Short palettes are padded with opaque black, RGB entries get alpha 255.
    """
    colors: list[Color] = []
    for entry in list(palette)[:PALETTE_SIZE]:
        if len(entry) == 3:
            r, g, b = entry
            a = 255
        elif len(entry) == 4:
            r, g, b, a = entry
        else:
            raise ValueError(f"Palette entries must have 3 or 4 components, got {len(entry)}")
        colors.append((r & 0xFF, g & 0xFF, b & 0xFF, a & 0xFF))

    colors.extend([(0, 0, 0, 255)] * (PALETTE_SIZE - len(colors)))
    return tuple(colors)


def load_bmp_palette(path: str | Path) -> Palette:
    """Read the 256-colour BGRA table from a BMP file such as AUTO256.BMP."""
    data = Path(path).read_bytes()
    reader = ByteReader(data, BMP_PALETTE_OFFSET)
    table = reader.raw(PALETTE_SIZE * 4)
    return tuple(
        (table[i * 4 + 2], table[i * 4 + 1], table[i * 4], 255) for i in range(PALETTE_SIZE)
    )


def parse_sprite_header(data: bytes) -> SpriteHeader:
    reader = ByteReader(data)
    try:
        return SpriteHeader(
            width=reader.u16(),
            height=reader.u16(),
            hotspot_x=reader.i16(),
            hotspot_y=reader.i16(),
            flags=reader.u16(),
            palette_offset=reader.u16(),
        )
    except TruncatedData as e:
        raise TruncatedData(f"Sprite data too small ({len(data)} bytes)") from e


def _read_vga_palette(data: bytes, offset: int) -> Palette:
    # 6-bit VGA components, scaled to 8 bits
    count = min(PALETTE_SIZE * 3, len(data) - offset) // 3
    colors: list[Color] = [(0, 0, 0, 0)] * PALETTE_SIZE
    for i in range(count):
        r, g, b = data[offset + i * 3 : offset + i * 3 + 3]
        colors[i] = ((r << 2) & 0xFF, (g << 2) & 0xFF, (b << 2) & 0xFF, 255)
    return tuple(colors)


def _decode_pixel_runs(data: bytes, start: int, pixel_count: int) -> bytes:
    pixels = bytearray(pixel_count)
    src = start
    dst = 0

    while src < len(data) and dst < pixel_count:
        cmd = data[src]
        src += 1

        if cmd == 0:
            if src >= len(data):
                continue
            count = data[src]
            src += 1
            if count == 0:
                break
            # Transparent pixels keep index 0
            dst += count
        elif cmd < 128:
            count = min(cmd, len(data) - src, pixel_count - dst)
            pixels[dst : dst + count] = data[src : src + count]
            src += count
            dst += count
        else:
            if src >= len(data):
                continue
            value = data[src]
            src += 1
            count = min(cmd - 128, pixel_count - dst)
            pixels[dst : dst + count] = bytes([value]) * count
            dst += count

    return bytes(pixels)


def decode_sprite(data: bytes, default_palette: Palette | None = None) -> DecodedSprite:
    """Decode a sprite payload extracted from a GRP archive.

    The header is followed either by width * height raw palette indices or,
    when fewer bytes are present, by a run-length stream:
        0, n      skip n transparent pixels (0, 0 ends the image)
        1..127    copy that many literal bytes
        128+      repeat the next byte (cmd - 128) times
    """
    header = parse_sprite_header(data)

    if not (0 < header.width <= MAX_SPRITE_DIMENSION and 0 < header.height <= MAX_SPRITE_DIMENSION):
        raise InvalidDimensions(f"Invalid sprite dimensions {header.width}x{header.height}")

    if 0 < header.palette_offset < len(data):
        palette = _read_vga_palette(data, header.palette_offset)
        has_palette = True
    else:
        palette = default_palette if default_palette is not None else grayscale_palette()
        has_palette = False

    pixel_count = header.width * header.height
    if SPRITE_HEADER_SIZE + pixel_count <= len(data):
        pixels = data[SPRITE_HEADER_SIZE : SPRITE_HEADER_SIZE + pixel_count]
    else:
        logger.debug(
            "Sprite %dx%d has %d payload bytes, decoding as runs",
            header.width,
            header.height,
            len(data) - SPRITE_HEADER_SIZE,
        )
        pixels = _decode_pixel_runs(data, SPRITE_HEADER_SIZE, pixel_count)

    return DecodedSprite(
        width=header.width,
        height=header.height,
        hotspot_x=header.hotspot_x,
        hotspot_y=header.hotspot_y,
        flags=header.flags,
        pixels=bytes(pixels),
        palette=palette,
        has_palette=has_palette,
    )


def decode_escaped_runs(data: bytes, pixel_count: int) -> bytes:
    """Expand the escape-coded pixel stream used by the DAT graphics.

    FF <value> <count> repeats value count times (a count of 0 means 1), any
    other byte is a literal. Output is zero padded to pixel_count.
    """
    pixels = bytearray()
    src = 0

    while len(pixels) < pixel_count and src < len(data):
        if data[src] == 0xFF and src + 2 < len(data):
            value = data[src + 1]
            count = data[src + 2] or 1
            pixels += bytes([value]) * min(count, pixel_count - len(pixels))
            src += 3
        else:
            pixels.append(data[src])
            src += 1

    if len(pixels) < pixel_count:
        pixels += bytes(pixel_count - len(pixels))
    return bytes(pixels)


def read_raw_graphics(path: str | Path, offset: int, width: int, height: int) -> bytes:
    """Read a width x height block of palette indices stored uncompressed at offset.

    Bytes past the end of the file read as index 0.
    """
    if width < 0 or height < 0:
        raise InvalidDimensions(f"Invalid graphics dimensions {width}x{height}")

    size = width * height
    with Path(path).open("rb") as f:
        f.seek(offset)
        data = f.read(size)

    if len(data) < size:
        logger.debug(
            "Graphics at %#x in %s cut short: %d of %d bytes", offset, path, len(data), size
        )
        data += bytes(size - len(data))
    return data
