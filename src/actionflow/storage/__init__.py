"""Asset storage backends used by executors."""

from .base import (
    AssetNotFoundError,
    AssetStorage,
    InMemoryAssetStorage,
    PayloadTooLargeError,
    StorageError,
)
from .config import FilesystemStorageConfig
from .filesystem import FilesystemAssetStorage
from .models import StoredAsset

__all__ = [
    "AssetNotFoundError",
    "AssetStorage",
    "FilesystemAssetStorage",
    "FilesystemStorageConfig",
    "InMemoryAssetStorage",
    "PayloadTooLargeError",
    "StorageError",
    "StoredAsset",
]
