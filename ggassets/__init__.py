"""ggassets - Asset extraction and caching for legacy NE/GRP game data."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("ggassets")
except PackageNotFoundError:
    __version__ = "(local)"
