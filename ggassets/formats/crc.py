"""CRC-32 (IEEE 802.3, reflected polynomial 0xEDB88320) used for cache integrity."""


def _make_table() -> tuple[int, ...]:
    table = []
    for i in range(256):
        crc = i
        for _ in range(8):
            crc = (crc >> 1) ^ (0xEDB88320 if crc & 1 else 0)
        table.append(crc)
    return tuple(table)


CRC32_TABLE = _make_table()


def crc32(data: bytes, crc: int = 0) -> int:
    """Calculate the CRC-32 of data, optionally continuing from a previous value."""
    crc ^= 0xFFFFFFFF
    for byte in data:
        crc = CRC32_TABLE[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return crc ^ 0xFFFFFFFF
