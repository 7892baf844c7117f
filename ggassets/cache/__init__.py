"""Asset identifiers, the on-disk cache index and the thread-safe asset cache."""

from .cache import AssetCache as AssetCache
from .cache import AssetHandle as AssetHandle
from .cache import CacheStats as CacheStats
from .cache import ExtractedAsset as ExtractedAsset
from .errors import AssetError as AssetError
from .errors import DecodeFailed as DecodeFailed
from .errors import InvalidIdentifier as InvalidIdentifier
from .errors import SourceNotFound as SourceNotFound
from .identifier import AssetId as AssetId
from .identifier import AssetKind as AssetKind
from .identifier import cache_filename as cache_filename
from .identifier import make_asset_id as make_asset_id
from .identifier import parse_asset_id as parse_asset_id
from .index import CacheRecord as CacheRecord
