"""
Storage Service
Supabase Storage uploads for event images
"""

import logging

import httpx
from eventhub.config import settings
from eventhub.errors import ConfigurationError, UpstreamError, UpstreamTimeoutError

logger = logging.getLogger(__name__)


class StorageService:
    """Supabase Storage helper"""

    @staticmethod
    def _ensure_config():
        if not settings.SUPABASE_URL or not settings.SUPABASE_KEY:
            raise ConfigurationError("Supabase Storage is not configured")

    @staticmethod
    def public_url(path: str) -> str:
        base = settings.SUPABASE_URL.rstrip("/")
        return f"{base}/storage/v1/object/public/{settings.STORAGE_BUCKET}/{path}"

    @staticmethod
    async def upload_bytes(path: str, content: bytes, content_type: str) -> str:
        """
        Upload bytes under a bucket path, overwriting what is there

        Returns:
            Public URL of the stored object

        Raises:
            UpstreamTimeoutError: If storage does not answer in time
            UpstreamError: If storage refuses the upload
        """
        StorageService._ensure_config()

        base = settings.SUPABASE_URL.rstrip("/")
        url = f"{base}/storage/v1/object/{settings.STORAGE_BUCKET}/{path}"

        headers = {
            "Authorization": f"Bearer {settings.SUPABASE_KEY}",
            "apikey": settings.SUPABASE_KEY,
            "Content-Type": content_type or "application/octet-stream",
            "x-upsert": "true"
        }

        try:
            async with httpx.AsyncClient(timeout=settings.EXTERNAL_CALL_TIMEOUT_SECONDS) as client:
                resp = await client.post(url, headers=headers, content=content)
        except httpx.TimeoutException as e:
            logger.warning("Storage upload of %s timed out: %s", path, e)
            raise UpstreamTimeoutError("Image storage timed out, please retry") from e
        except httpx.HTTPError as e:
            logger.error("Storage upload of %s failed: %s", path, e)
            raise UpstreamError("Image storage is unavailable") from e

        if resp.status_code not in (200, 201):
            logger.error("Storage upload of %s rejected (%s): %s", path, resp.status_code, resp.text)
            raise UpstreamError(f"Storage upload failed: {resp.text}")

        return StorageService.public_url(path)


# Create singleton instance
storage_service = StorageService()
