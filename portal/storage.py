# portal/storage.py
# Supabase Storage wrapper used as the document blob store
# Uploads, signed download URLs and removals with retry on transient errors
# RELEVANT FILES: config.py, deps.py, utils/documents.py

from typing import Any, Dict, Optional
import logging

from supabase import AsyncClient, acreate_client

from .config import Settings, get_settings
from .deps import create_retry_decorator
from .exceptions import StorageError

logger = logging.getLogger(__name__)

# Global singleton instance
_blob_store: Optional["BlobStore"] = None


class BlobStore:
    """
    Thin async facade over one Supabase Storage bucket.
    Every call is retried on 429/5xx and transport errors, then raises StorageError.
    """

    def __init__(self, client: AsyncClient, settings: Settings):
        self.client = client
        self.bucket = settings.storage_bucket
        self.signed_url_ttl = settings.signed_url_ttl_seconds
        self._with_retry = create_retry_decorator(settings)

    def _bucket(self):
        return self.client.storage.from_(self.bucket)

    async def _call(self, operation: str, key: str, func, *args, **kwargs) -> Any:
        @self._with_retry
        async def attempt():
            return await func(*args, **kwargs)

        try:
            return await attempt()
        except Exception as e:
            logger.error(f"Storage {operation} failed for key {key}: {e}", exc_info=True)
            raise StorageError(f"Storage {operation} failed") from e

    async def upload(self, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        file_options = {"content-type": content_type or "application/octet-stream"}
        await self._call("upload", key, self._bucket().upload, key, data, file_options)
        logger.info(f"Uploaded blob {key} ({len(data)} bytes)")

    async def signed_download_url(self, key: str, download_name: str) -> str:
        """
        Mint a short-lived URL for one object.
        The download option makes storage send Content-Disposition with download_name.
        """
        response: Dict[str, Any] = await self._call(
            "sign",
            key,
            self._bucket().create_signed_url,
            key,
            self.signed_url_ttl,
            {"download": download_name},
        )
        url = response.get("signedURL") or response.get("signedUrl")
        if not url:
            raise StorageError("Storage returned no signed URL")
        return url

    async def remove(self, key: str) -> None:
        await self._call("remove", key, self._bucket().remove, [key])
        logger.info(f"Removed blob {key}")


async def get_blob_store() -> BlobStore:
    """
    Get or create the singleton blob store.
    Supabase URL and secret key are required once documents are touched.
    """
    global _blob_store

    if _blob_store is None:
        settings = get_settings()
        if not settings.supabase_url or not settings.supabase_secret_key:
            raise StorageError("Storage is not configured")

        logger.info("Creating Supabase storage client...")
        client = await acreate_client(settings.supabase_url, settings.supabase_secret_key)
        _blob_store = BlobStore(client, settings)
        logger.info(f"Storage client ready for bucket '{settings.storage_bucket}'")

    return _blob_store
