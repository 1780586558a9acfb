"""
Natours Backend: Image Upload Service
======================================

What:  Validates uploaded images, resizes them to JPEG and stores them.
Why:   Tour covers, galleries and user photos are always served at fixed
       sizes; resizing once at upload keeps pages light.
How:   Content type check → size check → Pillow decode + cover-crop →
       JPEG encode (quality 90) in a worker thread → async write via aiofiles.
Who:   Called by TourService.update_tour and UserService.update_me.

Layout under settings.storage_root (served at /uploads):
    tours/tour-<id>-<ms>-cover.jpeg   2000×1333
    tours/tour-<id>-<ms>-<n>.jpeg     2000×1333, n = 1..3
    users/user-<id>-<ms>.jpeg         500×500

Filenames are built from the owner's id and a timestamp; no part of the
client-supplied filename reaches the file system.
"""

import asyncio
import io
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import aiofiles
from PIL import Image, ImageOps, UnidentifiedImageError

from natours.config import settings
from natours.exceptions import FileStorageError, ValidationError

logger = logging.getLogger(__name__)

TOUR_IMAGE_SIZE = (2000, 1333)
USER_PHOTO_SIZE = (500, 500)
JPEG_QUALITY = 90
MAX_TOUR_IMAGES = 3


@dataclass
class ImageUpload:
    """An uploaded file, already read into memory by the route."""
    filename: str
    content_type: str
    content: bytes


def resize_to_jpeg(content: bytes, size: Tuple[int, int], quality: int = JPEG_QUALITY) -> bytes:
    """
    Decode, orient, cover-crop to exactly `size` and encode as JPEG.

    CPU-bound; call through asyncio.to_thread from async code.

    Raises:
        ValidationError: the bytes are not a decodable image.
    """
    try:
        with Image.open(io.BytesIO(content)) as img:
            img = ImageOps.exif_transpose(img)
            fitted = ImageOps.fit(img, size, method=Image.Resampling.LANCZOS)
            if fitted.mode != "RGB":
                fitted = fitted.convert("RGB")
            out = io.BytesIO()
            fitted.save(out, format="JPEG", quality=quality)
            return out.getvalue()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ValidationError(
            message="Could not process the uploaded image. Please upload a valid image file.",
            field="image",
            context={"error": str(e)},
        )


class ImageService:
    """Resize-and-store pipeline for tour and user images."""

    def __init__(self, storage_root: Optional[str] = None):
        self.storage_root = Path(storage_root or settings.storage_root).resolve()

    def validate_upload(self, upload: ImageUpload) -> None:
        """Reject non-images and oversized files before any decoding."""
        if not (upload.content_type or "").startswith("image"):
            raise ValidationError(
                message="Not an image! Please upload only images.",
                field="image",
                context={"content_type": upload.content_type},
            )
        if len(upload.content) > settings.max_file_size:
            max_mb = settings.max_file_size / (1024 * 1024)
            raise ValidationError(
                message=f"File size exceeds maximum of {max_mb:.0f}MB. Please upload a smaller image.",
                field="image",
                context={"max_size_mb": max_mb, "actual_size": len(upload.content)},
            )

    async def store_jpeg(self, subdir: str, filename: str, data: bytes) -> Path:
        path = self.storage_root / subdir / filename
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(data)
        except OSError as e:
            logger.error("Failed to store image at %s: %s", path, str(e))
            raise FileStorageError(context={"path": str(path), "os_error": str(e)})
        logger.info("Image stored: %s/%s (%d bytes)", subdir, filename, len(data))
        return path

    async def _process(self, upload: ImageUpload, size: Tuple[int, int], subdir: str, filename: str) -> str:
        self.validate_upload(upload)
        data = await asyncio.to_thread(resize_to_jpeg, upload.content, size)
        await self.store_jpeg(subdir, filename, data)
        return filename

    async def save_tour_images(
        self,
        tour_id: str,
        cover: Optional[ImageUpload],
        images: Sequence[ImageUpload],
    ) -> Tuple[Optional[str], List[str]]:
        """
        Store a tour's cover and/or gallery.

        Returns (cover_filename or None, [gallery filenames]). Either part
        may be absent. All or nothing: if any image fails, the files already
        written for this call are removed before the error propagates.
        """
        if len(images) > MAX_TOUR_IMAGES:
            raise ValidationError(
                message=f"A tour can have at most {MAX_TOUR_IMAGES} gallery images.",
                field="images",
            )
        stamp = int(time.time() * 1000)

        written: List[str] = []
        try:
            cover_name = None
            if cover is not None:
                cover_name = await self._process(
                    cover, TOUR_IMAGE_SIZE, "tours", f"tour-{tour_id}-{stamp}-cover.jpeg"
                )
                written.append(cover_name)

            gallery = []
            for i, img in enumerate(images, start=1):
                name = await self._process(
                    img, TOUR_IMAGE_SIZE, "tours", f"tour-{tour_id}-{stamp}-{i}.jpeg"
                )
                written.append(name)
                gallery.append(name)
        except Exception:
            await self.discard("tours", written)
            raise
        return cover_name, gallery

    async def save_user_photo(self, user_id: str, photo: ImageUpload) -> str:
        stamp = int(time.time() * 1000)
        return await self._process(photo, USER_PHOTO_SIZE, "users", f"user-{user_id}-{stamp}.jpeg")

    async def cleanup_file(self, subdir: str, filename: str) -> None:
        """Best-effort removal of a stored image (e.g. after a failed update)."""
        path = self.storage_root / subdir / filename
        try:
            if path.exists():
                os.remove(path)
                logger.info("Cleaned up image: %s/%s", subdir, filename)
        except OSError as e:
            logger.warning("Failed to clean up image %s: %s", path, str(e))

    async def discard(self, subdir: str, filenames: Sequence[str]) -> None:
        for filename in filenames:
            await self.cleanup_file(subdir, filename)


image_service = ImageService()
