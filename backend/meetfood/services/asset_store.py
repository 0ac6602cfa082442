"""
Asset store abstraction for media objects.

Provides a key-addressed put/get/delete interface over buckets (profile
photos, videos, cover images). Documents store the reference URL returned by
``put``; the key is recovered from a reference by taking its base filename.
"""
import logging
import shutil
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Optional, Union
from urllib.parse import urlparse

from meetfood.core.config import settings
from meetfood.core.errors import AssetStoreError

logger = logging.getLogger(__name__)


class AssetBucket(str, Enum):
    """Buckets holding each asset class."""

    PROFILE_PHOTO = "profile-photos"
    VIDEO = "videos"
    COVER_IMAGE = "cover-images"


def _url_prefix(bucket: AssetBucket) -> str:
    prefixes = {
        AssetBucket.PROFILE_PHOTO: settings.profile_photo_url_prefix,
        AssetBucket.VIDEO: settings.video_url_prefix,
        AssetBucket.COVER_IMAGE: settings.cover_image_url_prefix,
    }
    return prefixes[bucket].rstrip("/")


def reference_url(bucket: AssetBucket, key: str) -> str:
    """Build the public reference for a stored object (``prefix/key``)."""
    return f"{_url_prefix(bucket)}/{key}"


def asset_key_from_reference(reference: Optional[str]) -> Optional[str]:
    """
    Extract the object key from an asset reference.

    Accepts full URLs or bare keys. Returns None for empty references.
    """
    if not reference:
        return None
    path = urlparse(reference).path or reference
    key = PurePosixPath(path).name
    return key or None


def add_timestamp_to_name(filename: str, now: Optional[datetime] = None) -> str:
    """
    Derive a storage key from an uploaded filename.

    ``clip.mp4`` becomes ``clip-20240115093000123456.mp4`` so re-uploads of the
    same file never overwrite the object a document currently points at.
    """
    now = now or datetime.utcnow()
    original = PurePosixPath(filename or "upload").name
    stem = PurePosixPath(original).stem or "upload"
    suffix = PurePosixPath(original).suffix
    safe_stem = "".join(c if c.isalnum() or c in "-_" else "_" for c in stem)
    return f"{safe_stem}-{now.strftime('%Y%m%d%H%M%S%f')}{suffix}"


class AssetStore(ABC):
    """Abstract base class for asset storage operations."""

    @abstractmethod
    def put(
        self,
        bucket: AssetBucket,
        key: str,
        data: Union[bytes, BinaryIO],
        content_type: Optional[str] = None,
    ) -> str:
        """
        Store an object.

        Args:
            bucket: Target bucket
            key: Object key (a base filename)
            data: Object bytes or a binary stream
            content_type: MIME type of the object

        Returns:
            Reference URL of the stored object

        Raises:
            AssetStoreError: If the object could not be durably written
        """
        pass

    @abstractmethod
    def get(self, bucket: AssetBucket, key: str) -> BinaryIO:
        """
        Open a stored object for reading.

        Raises:
            FileNotFoundError: If the object does not exist
        """
        pass

    @abstractmethod
    def delete(self, bucket: AssetBucket, key: str) -> bool:
        """
        Delete an object.

        Deleting a missing object is a no-op, so repeated deletes are safe.

        Returns:
            True if deleted, False if not found

        Raises:
            AssetStoreError: If the backend failed to delete the object
        """
        pass

    @abstractmethod
    def exists(self, bucket: AssetBucket, key: str) -> bool:
        """Check if an object exists."""
        pass

    def delete_reference(self, bucket: AssetBucket, reference: Optional[str]) -> bool:
        """Delete the object a document reference points at, if any."""
        key = asset_key_from_reference(reference)
        if key is None:
            return False
        return self.delete(bucket, key)

    def reference_exists(self, bucket: AssetBucket, reference: Optional[str]) -> bool:
        key = asset_key_from_reference(reference)
        if key is None:
            return False
        return self.exists(bucket, key)


class LocalAssetStore(AssetStore):
    """
    Local filesystem asset store.

    Stores objects in one directory per bucket:
    storage/
      profile-photos/
        {key}
      videos/
        {key}
      cover-images/
        {key}
    """

    def __init__(self, base_path: str = None):
        self.base_path = Path(base_path or settings.local_storage_path)

        # Create bucket directories if they don't exist
        for bucket in AssetBucket:
            (self.base_path / bucket.value).mkdir(parents=True, exist_ok=True)

    def _object_path(self, bucket: AssetBucket, key: str) -> Path:
        if not key or PurePosixPath(key).name != key or key in (".", ".."):
            raise ValueError(f"Invalid asset key: {key!r}")
        return self.base_path / bucket.value / key

    def put(
        self,
        bucket: AssetBucket,
        key: str,
        data: Union[bytes, BinaryIO],
        content_type: Optional[str] = None,
    ) -> str:
        """Write the object to a temp file, then move it into place."""
        file_path = self._object_path(bucket, key)
        tmp_path = file_path.with_name(f".{key}.part")

        try:
            with open(tmp_path, "wb") as f:
                if isinstance(data, (bytes, bytearray)):
                    f.write(data)
                else:
                    shutil.copyfileobj(data, f)
            tmp_path.replace(file_path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise AssetStoreError(f"Failed to store {bucket.value}/{key}: {e}") from e

        logger.debug(f"Stored asset {bucket.value}/{key} ({content_type or 'unknown type'})")
        return reference_url(bucket, key)

    def get(self, bucket: AssetBucket, key: str) -> BinaryIO:
        file_path = self._object_path(bucket, key)
        if not file_path.exists():
            raise FileNotFoundError(f"Asset not found: {bucket.value}/{key}")
        return open(file_path, "rb")

    def delete(self, bucket: AssetBucket, key: str) -> bool:
        file_path = self._object_path(bucket, key)

        if not file_path.exists():
            return False

        try:
            file_path.unlink()
        except FileNotFoundError:
            # Deleted concurrently
            return False
        except OSError as e:
            raise AssetStoreError(f"Failed to delete {bucket.value}/{key}: {e}") from e

        logger.debug(f"Deleted asset {bucket.value}/{key}")
        return True

    def exists(self, bucket: AssetBucket, key: str) -> bool:
        return self._object_path(bucket, key).is_file()


def get_asset_store() -> AssetStore:
    """
    Factory function to get the asset store selected by configuration.

    Returns:
        AssetStore instance
    """
    if settings.storage_backend == "local":
        return LocalAssetStore()
    else:
        raise ValueError(f"Unknown storage backend: {settings.storage_backend}")


# Global asset store instance
asset_store = get_asset_store()
