import asyncio
import logging

import cloudinary
import cloudinary.uploader

from farmlink.config.env import (
    CLOUDINARY_CLOUD_NAME,
    CLOUDINARY_API_KEY,
    CLOUDINARY_API_SECRET,
)

logger = logging.getLogger(__name__)

cloudinary.config(
    cloud_name=CLOUDINARY_CLOUD_NAME,
    api_key=CLOUDINARY_API_KEY,
    api_secret=CLOUDINARY_API_SECRET,
    secure=True,
)


def destroy_image(public_id: str):
    return cloudinary.uploader.destroy(public_id, resource_type="image")


async def destroy_listing_images(images: list[dict]) -> int:
    """
    Best-effort removal of a deleted listing's media.
    Failures are logged and never raised. Returns how many were removed.
    """
    removed = 0
    for image in images or []:
        public_id = image.get("public_id") if isinstance(image, dict) else None
        if not public_id:
            continue
        try:
            await asyncio.to_thread(destroy_image, public_id)
            removed += 1
        except Exception:
            logger.exception("MEDIA_DESTROY_ERROR public_id=%s", public_id)
    return removed
