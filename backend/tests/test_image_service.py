"""
Natours Backend: Image Service Unit Tests
==========================================

What we test:
    ✅ Non-image content types and oversized files are rejected
    ✅ Resizing produces a JPEG of exactly the target size
    ✅ Undecodable bytes raise ValidationError
    ✅ Tour cover + gallery and user photos land under the right names
"""

import io

import pytest
from PIL import Image

from natours.exceptions import ValidationError
from natours.services.image_service import (
    MAX_TOUR_IMAGES,
    TOUR_IMAGE_SIZE,
    USER_PHOTO_SIZE,
    ImageService,
    ImageUpload,
    resize_to_jpeg,
)


def upload(content: bytes, content_type: str = "image/jpeg", filename: str = "pic.jpg"):
    return ImageUpload(filename=filename, content_type=content_type, content=content)


class TestValidation:

    def setup_method(self):
        self.service = ImageService(storage_root="/tmp/natours-unused")

    def test_rejects_non_image(self):
        with pytest.raises(ValidationError) as exc_info:
            self.service.validate_upload(upload(b"%PDF-1.4", content_type="application/pdf"))
        assert exc_info.value.message == "Not an image! Please upload only images."

    def test_rejects_oversized_file(self):
        from natours.config import settings

        too_big = b"\x00" * (settings.max_file_size + 1)
        with pytest.raises(ValidationError) as exc_info:
            self.service.validate_upload(upload(too_big))
        assert "exceeds maximum" in exc_info.value.message


class TestResize:

    def test_output_is_jpeg_of_target_size(self):
        source = io.BytesIO()
        Image.new("RGBA", (800, 300), (0, 128, 255, 255)).save(source, format="PNG")

        data = resize_to_jpeg(source.getvalue(), USER_PHOTO_SIZE)

        with Image.open(io.BytesIO(data)) as img:
            assert img.format == "JPEG"
            assert img.size == USER_PHOTO_SIZE
            assert img.mode == "RGB"

    def test_undecodable_bytes(self):
        with pytest.raises(ValidationError):
            resize_to_jpeg(b"definitely not an image", USER_PHOTO_SIZE)


class TestStorage:

    @pytest.mark.asyncio
    async def test_save_tour_images(self, temp_storage, sample_jpeg):
        service = ImageService(storage_root=temp_storage)

        cover, gallery = await service.save_tour_images(
            "abc", upload(sample_jpeg), [upload(sample_jpeg), upload(sample_jpeg)]
        )

        assert cover.startswith("tour-abc-") and cover.endswith("-cover.jpeg")
        assert [name.rsplit("-", 1)[1] for name in gallery] == ["1.jpeg", "2.jpeg"]
        with Image.open(service.storage_root / "tours" / cover) as img:
            assert img.size == TOUR_IMAGE_SIZE

    @pytest.mark.asyncio
    async def test_gallery_only(self, temp_storage, sample_jpeg):
        service = ImageService(storage_root=temp_storage)
        cover, gallery = await service.save_tour_images("abc", None, [upload(sample_jpeg)])
        assert cover is None
        assert len(gallery) == 1

    @pytest.mark.asyncio
    async def test_too_many_gallery_images(self, temp_storage, sample_jpeg):
        service = ImageService(storage_root=temp_storage)
        images = [upload(sample_jpeg)] * (MAX_TOUR_IMAGES + 1)
        with pytest.raises(ValidationError):
            await service.save_tour_images("abc", None, images)

    @pytest.mark.asyncio
    async def test_save_user_photo(self, temp_storage, sample_jpeg):
        service = ImageService(storage_root=temp_storage)
        name = await service.save_user_photo("u1", upload(sample_jpeg))
        assert name.startswith("user-u1-") and name.endswith(".jpeg")
        assert (service.storage_root / "users" / name).exists()

    @pytest.mark.asyncio
    async def test_cleanup_file(self, temp_storage, sample_jpeg):
        service = ImageService(storage_root=temp_storage)
        name = await service.save_user_photo("u1", upload(sample_jpeg))
        await service.cleanup_file("users", name)
        assert not (service.storage_root / "users" / name).exists()

    @pytest.mark.asyncio
    async def test_broken_gallery_image_removes_earlier_files(self, temp_storage, sample_jpeg):
        service = ImageService(storage_root=temp_storage)
        images = [upload(sample_jpeg), upload(b"not an image at all")]

        with pytest.raises(ValidationError):
            await service.save_tour_images("abc", upload(sample_jpeg), images)

        assert list((service.storage_root / "tours").glob("tour-abc-*")) == []
