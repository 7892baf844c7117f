"""Uniform asset identifiers of the form "source:kind:id"."""

from dataclasses import dataclass
from enum import StrEnum, auto
from typing import Self

from .errors import InvalidIdentifier

_UNSAFE_FILENAME_CHARS = str.maketrans({":": "_", "/": "_", "\\": "_"})


class AssetKind(StrEnum):
    """Closed set of asset kinds. Member order defines the persisted ordinal."""

    BITMAP = auto()
    SPRITE = auto()
    SOUND = auto()
    MUSIC = auto()
    DATA = auto()

    @property
    def ordinal(self) -> int:
        return list(AssetKind).index(self)

    @classmethod
    def from_ordinal(cls, value: int) -> Self:
        try:
            return list(cls)[value]
        except IndexError:
            raise ValueError(f"Unknown asset kind ordinal {value}") from None

    @property
    def extension(self) -> str:
        """File extension hint for consumers of the decoded bytes."""
        return _EXTENSIONS[self]

    @property
    def is_texture(self) -> bool:
        return self in (AssetKind.BITMAP, AssetKind.SPRITE)

    @property
    def is_audio(self) -> bool:
        return self in (AssetKind.SOUND, AssetKind.MUSIC)


_EXTENSIONS = {
    AssetKind.BITMAP: ".bmp",
    AssetKind.SPRITE: ".spr",
    AssetKind.SOUND: ".wav",
    AssetKind.MUSIC: ".mid",
    AssetKind.DATA: ".bin",
}


@dataclass(frozen=True, slots=True)
class AssetId:
    """Immutable (source, kind, number) triple."""

    source: str
    kind: AssetKind
    number: int

    def __str__(self) -> str:
        return f"{self.source}:{self.kind}:{self.number}"

    @classmethod
    def parse(cls, text: str) -> Self:
        return parse_asset_id(text)

    @property
    def cache_filename(self) -> str:
        return cache_filename(str(self))


def _check_kind(kind: str) -> AssetKind:
    try:
        return AssetKind(kind)
    except ValueError:
        raise InvalidIdentifier(f"Unknown asset kind: {kind!r}") from None


def check_path_component(value: str, what: str = "asset source") -> str:
    """Reject names that could resolve outside their directory."""
    if not value or "/" in value or "\\" in value or ".." in value:
        raise InvalidIdentifier(f"Invalid {what}: {value!r}")
    return value


def make_asset_id(source: str, kind: str, number: int) -> str:
    """Build an identifier string, e.g. make_asset_id("gizmo256", "bitmap", 100)."""
    if ":" in source:
        raise InvalidIdentifier(f"Invalid asset source: {source!r}")
    check_path_component(source)
    if number < 0:
        raise InvalidIdentifier(f"Asset id must be non-negative: {number}")
    return str(AssetId(source, _check_kind(kind), number))


def parse_asset_id(text: str) -> AssetId:
    """Parse "source:kind:id" into an AssetId."""
    parts = text.split(":")
    if len(parts) != 3:
        raise InvalidIdentifier(f"Invalid asset ID: {text!r}")

    source, kind, number = parts
    if not source:
        raise InvalidIdentifier(f"Invalid asset ID (empty source): {text!r}")
    check_path_component(source)
    if not number.isascii() or not number.isdigit():
        raise InvalidIdentifier(f"Invalid asset ID (bad number): {text!r}")

    return AssetId(source, _check_kind(kind), int(number))


def cache_filename(asset_id: str) -> str:
    """Filesystem-safe name of the per-asset cache file."""
    return asset_id.translate(_UNSAFE_FILENAME_CHARS) + ".cache"
