"""Tests for asset identifiers."""

from pytest import raises

from ggassets.cache.errors import InvalidIdentifier
from ggassets.cache.identifier import (
    AssetId,
    AssetKind,
    cache_filename,
    make_asset_id,
    parse_asset_id,
)


def describe_make_asset_id():
    def joins_the_parts(expect):
        expect(make_asset_id("gizmo256", "bitmap", 100)) == "gizmo256:bitmap:100"

    def rejects_unknown_kinds(expect):
        with raises(InvalidIdentifier):
            make_asset_id("gizmo256", "texture", 1)

    def rejects_bad_sources(expect):
        with raises(InvalidIdentifier):
            make_asset_id("", "bitmap", 1)
        with raises(InvalidIdentifier):
            make_asset_id("a:b", "bitmap", 1)
        with raises(InvalidIdentifier):
            make_asset_id("..", "bitmap", 1)
        with raises(InvalidIdentifier):
            make_asset_id("dir/file", "bitmap", 1)

    def rejects_negative_numbers(expect):
        with raises(InvalidIdentifier):
            make_asset_id("gizmo256", "bitmap", -1)


def describe_parse_asset_id():
    def splits_the_parts(expect):
        asset_id = parse_asset_id("sprites:sprite:42")
        expect(asset_id.source) == "sprites"
        expect(asset_id.kind) == AssetKind.SPRITE
        expect(asset_id.number) == 42

    def round_trips_through_str(expect):
        expect(str(AssetId.parse("gizmo256:sound:3"))) == "gizmo256:sound:3"

    def rejects_malformed_identifiers(expect):
        for text in [
            "gizmo256:bitmap",
            "gizmo256:bitmap:1:2",
            ":bitmap:1",
            "gizmo256:bitmap:",
            "gizmo256:bitmap:-1",
            "gizmo256:bitmap:1a",
            "gizmo256:bitmap:١",
            "gizmo256:cursor:1",
            "../../etc:data:1",
            "SSGWINCD/GIZMO256:data:1",
            "..\\x:data:1",
        ]:
            with raises(InvalidIdentifier):
                parse_asset_id(text)


def describe_asset_kind():
    def has_stable_ordinals(expect):
        expect([kind.ordinal for kind in AssetKind]) == [0, 1, 2, 3, 4]
        expect(AssetKind.from_ordinal(2)) == AssetKind.SOUND

    def rejects_unknown_ordinals(expect):
        with raises(ValueError):
            AssetKind.from_ordinal(5)

    def classifies_kinds(expect):
        expect(AssetKind.SPRITE.is_texture) == True
        expect(AssetKind.MUSIC.is_audio) == True
        expect(AssetKind.DATA.is_texture or AssetKind.DATA.is_audio) == False
        expect(AssetKind.BITMAP.extension) == ".bmp"


def describe_cache_filename():
    def replaces_path_unsafe_characters(expect):
        expect(cache_filename("gizmo256:bitmap:100")) == "gizmo256_bitmap_100.cache"
        expect(cache_filename("a/b\\c:data:1")) == "a_b_c_data_1.cache"

    def is_available_on_ids(expect):
        expect(parse_asset_id("sprites:sprite:1").cache_filename) == "sprites_sprite_1.cache"
