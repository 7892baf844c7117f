"""Parsers and codecs for the legacy NE container and GRP archive formats."""

from .compression import Compression as Compression
from .compression import decompress_lz as decompress_lz
from .compression import decompress_rle as decompress_rle
from .crc import crc32 as crc32
from .errors import BadMagic as BadMagic
from .errors import EntryNotFound as EntryNotFound
from .errors import FormatError as FormatError
from .errors import InvalidDimensions as InvalidDimensions
from .errors import SourceClosed as SourceClosed
from .errors import TruncatedData as TruncatedData
from .grp import ArchiveEntry as ArchiveEntry
from .grp import GrpArchive as GrpArchive
from .ne import NEContainer as NEContainer
from .ne import ResourceDescriptor as ResourceDescriptor
from .ne import ResourceType as ResourceType
from .sprite import DecodedSprite as DecodedSprite
from .sprite import decode_escaped_runs as decode_escaped_runs
from .sprite import decode_sprite as decode_sprite
from .sprite import grayscale_palette as grayscale_palette
from .sprite import load_bmp_palette as load_bmp_palette
from .sprite import read_raw_graphics as read_raw_graphics
