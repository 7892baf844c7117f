"""Run-length and dictionary decompression for GRP archive entries."""

from enum import IntFlag


class Compression(IntFlag):
    """Compression bits stored in a GRP entry's flags byte."""

    NONE = 0x00
    RLE = 0x01
    LZ = 0x02


def decompress_rle(data: bytes, size: int) -> bytes:
    """Decode the run-length scheme.

    A control byte with the high bit set repeats the following byte
    (control & 0x7F) + 1 times. Otherwise control + 1 literal bytes follow.
    Decoding stops once size bytes are produced or the input runs out.
    """
    output = bytearray()
    i = 0

    while i < len(data) and len(output) < size:
        control = data[i]
        i += 1

        if control & 0x80:
            if i >= len(data):
                break
            count = (control & 0x7F) + 1
            value = data[i]
            i += 1
            output.extend(bytes([value]) * min(count, size - len(output)))
        else:
            count = min(control + 1, size - len(output), len(data) - i)
            output.extend(data[i : i + count])
            i += count

    return bytes(output)


def decompress_lz(data: bytes, size: int) -> bytes:
    """Decode the dictionary scheme.

    Each control byte is a bitmask over up to 8 tokens, least significant bit
    first. A set bit is a literal byte; a clear bit is a little-endian u16
    back-reference holding ((distance - 1) << 4) | (length - 3). References
    that point before the start of the output produce zero bytes.
    """
    output = bytearray()
    i = 0

    while i < len(data) and len(output) < size:
        flags = data[i]
        i += 1

        for bit in range(8):
            if i >= len(data) or len(output) >= size:
                break

            if flags & (1 << bit):
                output.append(data[i])
                i += 1
                continue

            if i + 1 >= len(data):
                break
            ref = data[i] | (data[i + 1] << 8)
            i += 2

            distance = (ref >> 4) + 1
            length = (ref & 0x0F) + 3

            for _ in range(length):
                if len(output) >= size:
                    break
                src = len(output) - distance
                output.append(output[src] if src >= 0 else 0)

    return bytes(output)


def decompress(data: bytes, size: int, flags: int) -> bytes:
    """Decompress data according to an entry's compression flags."""
    if flags & Compression.RLE:
        return decompress_rle(data, size)
    if flags & Compression.LZ:
        return decompress_lz(data, size)
    return data
