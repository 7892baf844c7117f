"""Tests for GRP archive parsing and extraction."""

import struct

from pytest import raises

from ggassets.formats.compression import Compression
from ggassets.formats.errors import (
    BadMagic,
    EntryNotFound,
    FormatError,
    SourceClosed,
    TruncatedData,
)
from ggassets.formats.grp import GrpArchive, parse_entry, parse_grp_header


def describe_parse_grp_header():
    def reads_both_table_pointers(expect, grp_bytes):
        header = parse_grp_header(grp_bytes([("a", b"x")], table_at_offset1=True))
        expect(header.magic) == b"RGrp"
        expect(header.offset1) == 64

    def rejects_bad_magic(expect):
        with raises(BadMagic):
            parse_grp_header(b"NOPE" + bytes(28))

    def rejects_short_headers(expect):
        with raises(TruncatedData):
            parse_grp_header(b"RGrp")


def describe_parse_entry():
    def strips_the_name_at_the_first_nul(expect):
        raw = struct.pack("<13sBIII", b"HERO.SPR\x00junk", 2, 100, 50, 20)
        entry = parse_entry(raw)
        expect(entry.name) == "HERO.SPR"
        expect(entry.offset) == 100
        expect(entry.size) == 50
        expect(entry.compressed_size) == 20
        expect(entry.is_compressed) == True


def describe_grp_archive():
    def reads_a_table_after_the_header(expect, make_grp):
        path = make_grp([("1", b"first"), ("2", b"second")])
        with GrpArchive(path) as grp:
            expect(grp.list_files()) == ["1", "2"]
            expect(grp.extract("2")) == b"second"

    def reads_a_table_at_offset1(expect, make_grp):
        path = make_grp([("1", b"first"), ("2", b"second")], table_at_offset1=True)
        with GrpArchive(path) as grp:
            expect(grp.list_files()) == ["1", "2"]
            expect(grp.extract("1")) == b"first"

    def looks_names_up_ignoring_case(expect, make_grp):
        path = make_grp([("Hero.Spr", b"hero")])
        with GrpArchive(path) as grp:
            expect(grp.get_entry("HERO.SPR").name) == "Hero.Spr"
            expect(grp.extract("hero.spr")) == b"hero"
            expect(grp.get_entry("villain.spr")) == None

    def decompresses_rle_entries(expect, make_grp):
        path = make_grp([("packed", bytes([0x83, 0x55]), Compression.RLE, 4)])
        with GrpArchive(path) as grp:
            expect(grp.get_entry("packed").is_compressed) == True
            expect(grp.extract("packed")) == b"\x55" * 4

    def decompresses_lz_entries(expect, make_grp):
        path = make_grp([("packed", bytes([0x03, 0x41, 0x42, 0x11, 0x00]), Compression.LZ, 6)])
        with GrpArchive(path) as grp:
            expect(grp.extract("packed")) == b"ABABAB"

    def raises_for_missing_entries(expect, make_grp):
        path = make_grp([("1", b"x")])
        with GrpArchive(path) as grp:
            with raises(EntryNotFound):
                grp.extract("2")

    def raises_when_entry_data_is_cut_short(expect, make_grp):
        path = make_grp([("1", b"x" * 50)])
        path.write_bytes(path.read_bytes()[:-5])
        with GrpArchive(path) as grp:
            with raises(TruncatedData):
                grp.extract("1")

    def keeps_entries_read_before_a_truncated_table(expect, make_grp):
        path = make_grp([("1", b""), ("2", b"")])
        path.write_bytes(path.read_bytes()[: 32 + 4 + 26 + 10])
        with GrpArchive(path) as grp:
            expect(grp.list_files()) == ["1"]

    def rejects_archives_without_a_usable_count(expect, tmp_path):
        path = tmp_path / "broken.grp"
        header = struct.pack("<4sIII4sIII", b"RGrp", 0, 0, 5000, b"RGrp", 0, 0, 0)
        path.write_bytes(header + struct.pack("<I", 20000))
        with raises(FormatError):
            GrpArchive(path)

    def extracts_sprites_with_its_palette(expect, make_grp, sprite_bytes):
        path = make_grp([("1", sprite_bytes(1, 1, [2]))])
        palette = [(10, 20, 30)] * 256
        with GrpArchive(path, palette=palette) as grp:
            sprite = grp.extract_sprite("1")
            expect(sprite.palette[2]) == (10, 20, 30, 255)

            grp.set_palette([(1, 1, 1, 1)])
            expect(grp.extract_sprite("1").palette[0]) == (1, 1, 1, 1)

    def raises_source_closed_after_close(expect, make_grp):
        path = make_grp([("1", b"x")])
        grp = GrpArchive.open(path)
        grp.close()
        grp.close()
        with raises(SourceClosed):
            grp.extract("1")
        expect(issubclass(SourceClosed, OSError)) == True
