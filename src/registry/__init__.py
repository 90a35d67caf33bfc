"""Registry access for the crates.io sparse index."""

from .cache import CachedIndex, IndexCache
from .client import RegistryClient, get_default_client, reset_default_client
from .index import index_path, index_url, name_variants, parse_index_lines

__all__ = [
    "CachedIndex",
    "IndexCache",
    "RegistryClient",
    "get_default_client",
    "reset_default_client",
    "index_path",
    "index_url",
    "name_variants",
    "parse_index_lines",
]
