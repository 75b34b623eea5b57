from .manager import ConnectionManager, build_url
from .metadata import MetadataCache

__all__ = ["ConnectionManager", "MetadataCache", "build_url"]
