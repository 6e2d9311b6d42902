from __future__ import annotations

import base64
import binascii
import io
import re
from dataclasses import dataclass

from PIL import Image, ImageOps, UnidentifiedImageError

from .pattern_errors import ImagePreparationError

MAX_UPLOAD_BYTES = 10 * 1024 * 1024
MAX_IMAGE_PIXELS = 40_000_000
_DATA_URL_RE = re.compile(
    r"^\s*data:image/(?:png|jpeg|jpg|webp);base64,(?P<data>.+)\s*$",
    flags=re.IGNORECASE | re.DOTALL,
)


@dataclass(frozen=True)
class PreparedImage:
    image_bytes: bytes
    width: int
    height: int
    media_type: str = "image/jpeg"


class PillowImagePrep:
    def __init__(
        self,
        *,
        max_dimension: int = 1024,
        quality: int = 85,
        max_pixels: int = MAX_IMAGE_PIXELS,
    ) -> None:
        self.max_dimension = max_dimension
        self.quality = quality
        self.max_pixels = max_pixels

    def prepare(self, image_bytes: bytes) -> PreparedImage:
        if not image_bytes:
            raise ImagePreparationError("Image payload was empty.")
        if len(image_bytes) > MAX_UPLOAD_BYTES:
            raise ImagePreparationError("Image is too large. Maximum size is 10MB.")

        try:
            with Image.open(io.BytesIO(image_bytes)) as source:
                width, height = source.size
                if width * height > self.max_pixels:
                    raise ImagePreparationError(
                        f"Image is too large to process ({width}x{height} pixels)."
                    )
                image = ImageOps.exif_transpose(source)
                image = image.convert("RGB")
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
            raise ImagePreparationError(f"Unsupported or corrupt image: {exc}") from exc

        image.thumbnail((self.max_dimension, self.max_dimension), Image.Resampling.LANCZOS)
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=self.quality, optimize=True)
        width, height = image.size
        return PreparedImage(
            image_bytes=buffer.getvalue(),
            width=width,
            height=height,
        )


def decode_image_data_url(value: str) -> bytes:
    match = _DATA_URL_RE.match(value)
    encoded = match.group("data") if match else value
    encoded = re.sub(r"\s+", "", encoded)
    try:
        image_bytes = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImagePreparationError("Image payload contains invalid base64 data.") from exc
    if not image_bytes:
        raise ImagePreparationError("Image payload was empty.")
    return image_bytes
