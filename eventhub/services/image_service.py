"""
Image Resolver
Turns a client image (URL or base64) into a hosted URL
"""

import base64
import binascii
import logging
from typing import Optional
from uuid import uuid4

from PIL import UnidentifiedImageError

from eventhub.config import settings
from eventhub.errors import RejectedError
from eventhub.services.image_optimizer import image_optimizer
from eventhub.services.storage_service import storage_service

logger = logging.getLogger(__name__)

EXTENSIONS = {"image/png": "png", "image/jpeg": "jpg"}


def decode_base64_image(data: str) -> bytes:
    """Decode a data URL or bare base64 string, rejecting oversize payloads"""
    if data.startswith("data:"):
        _, _, data = data.partition(",")
    try:
        raw = base64.b64decode(data.strip(), validate=True)
    except (binascii.Error, ValueError):
        raise RejectedError("Invalid image data")
    if not raw:
        raise RejectedError("Invalid image data")
    if len(raw) > settings.MAX_UPLOAD_SIZE:
        raise RejectedError(f"Image exceeds {settings.MAX_UPLOAD_SIZE} bytes")
    return raw


class ImageResolver:
    """URL passthrough, or optimise and upload a base64 image"""

    def __init__(self, blob_store=None):
        self._blob_store = blob_store

    @property
    def blob_store(self):
        return self._blob_store or storage_service

    async def resolve(
        self,
        url: Optional[str],
        base64_image: Optional[str],
        owner_id: str,
        event_id: str,
    ) -> Optional[str]:
        if url:
            return url
        if not base64_image:
            return None

        raw = decode_base64_image(base64_image)
        try:
            content, content_type = image_optimizer.optimize(raw)
        except (UnidentifiedImageError, OSError):
            raise RejectedError("Invalid image data")

        path = f"events/{event_id}/{uuid4().hex}.{EXTENSIONS[content_type]}"
        image_url = await self.blob_store.upload_bytes(path, content, content_type)
        logger.info("Uploaded image for event %s by %s", event_id, owner_id)
        return image_url


# Create singleton instance
image_resolver = ImageResolver()
