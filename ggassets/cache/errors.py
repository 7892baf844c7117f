"""Exceptions raised by the asset cache."""


class AssetError(RuntimeError):
    """Base exception for asset lookups."""


class InvalidIdentifier(AssetError):
    """Raised when an asset identifier string is malformed."""


class SourceNotFound(AssetError):
    """Raised when the source file or the entry inside it does not exist."""


class DecodeFailed(AssetError):
    """Raised when a source exists but its data cannot be read or decoded."""
