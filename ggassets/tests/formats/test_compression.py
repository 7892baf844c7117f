"""Tests for GRP entry decompression."""

from ggassets.formats.compression import Compression, decompress, decompress_lz, decompress_rle


def describe_decompress_rle():
    def expands_a_run_of_three(expect):
        expect(decompress_rle(bytes([0x82, 0x05]), 3)) == b"\x05\x05\x05"

    def never_reads_past_the_input(expect):
        expect(decompress_rle(bytes([0x02, 0x0A, 0x0B]), 16)) == b"\x0a\x0b"

    def copies_literals(expect):
        expect(decompress_rle(bytes([0x02, 0x41, 0x42, 0x43]), 3)) == b"ABC"

    def mixes_runs_and_literals(expect):
        data = bytes([0x01, 0x10, 0x20, 0x83, 0xFF, 0x00, 0x07])
        expect(decompress_rle(data, 7)) == bytes([0x10, 0x20, 0xFF, 0xFF, 0xFF, 0xFF, 0x07])

    def stops_at_the_expected_size(expect):
        expect(decompress_rle(bytes([0xFF, 0x41]), 5)) == b"AAAAA"

    def stops_when_input_runs_out(expect):
        expect(decompress_rle(bytes([0x05, 0x41, 0x42]), 10)) == b"AB"
        expect(decompress_rle(bytes([0x85]), 10)) == b""


def describe_decompress_lz():
    def copies_literal_tokens(expect):
        expect(decompress_lz(bytes([0x07, 0x41, 0x42, 0x43]), 3)) == b"ABC"

    def repeats_earlier_output(expect):
        # "AB" as literals, then distance 2 length 4
        data = bytes([0x03, 0x41, 0x42, 0x11, 0x00])
        expect(decompress_lz(data, 6)) == b"ABABAB"

    def references_before_the_start_produce_zeros(expect):
        expect(decompress_lz(bytes([0x00, 0x40, 0x00]), 3)) == b"\x00\x00\x00"

    def stops_at_the_expected_size(expect):
        data = bytes([0x01, 0x41, 0x0F, 0x00])
        expect(decompress_lz(data, 4)) == b"AAAA"


def describe_decompress():
    def leaves_uncompressed_data_alone(expect):
        expect(decompress(b"raw", 3, Compression.NONE)) == b"raw"

    def dispatches_on_flags(expect):
        expect(decompress(bytes([0x82, 0x41]), 3, Compression.RLE)) == b"AAA"
        expect(decompress(bytes([0x07, 0x41, 0x42, 0x43]), 3, Compression.LZ)) == b"ABC"

    def prefers_rle_when_both_flags_are_set(expect):
        expect(decompress(bytes([0x82, 0x41]), 3, Compression.RLE | Compression.LZ)) == b"AAA"
