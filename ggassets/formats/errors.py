"""Exceptions raised while parsing legacy container and archive formats."""


class FormatError(RuntimeError):
    """Raised when a container or archive cannot be parsed."""


class BadMagic(FormatError):
    """Raised when a header does not carry the expected magic value."""


class TruncatedData(FormatError):
    """Raised when a read runs past the end of the available data."""


class InvalidDimensions(FormatError):
    """Raised when a sprite header declares unusable dimensions."""


class EntryNotFound(RuntimeError):
    """Raised when a resource or archive entry does not exist."""


class SourceClosed(OSError):
    """Raised when reading from a container or archive that has been closed."""
