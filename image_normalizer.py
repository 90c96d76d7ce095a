"""
image_normalizer.py — shrink a user photo before it is sent to the relay.

Phone photos are often 4000+ px wide; the model does not need that and the
relay rejects bodies over RELAY_MAX_BODY_BYTES. Every photo is therefore
bounded to MAX_IMAGE_SIZE on its longer side and re-encoded as JPEG.
"""
from __future__ import annotations

import base64
import io
import logging
import os
from dataclasses import dataclass
from typing import BinaryIO, Union

from PIL import Image, ImageOps, UnidentifiedImageError

import config

logger = logging.getLogger(__name__)

ImageSource = Union[bytes, str, os.PathLike, BinaryIO]


class ImageDecodeError(ValueError):
    """The input could not be decoded as an image."""


@dataclass
class NormalizedImage:
    base64: str             # JPEG bytes, base64, no data-URL prefix
    mime_type: str
    data_url: str           # same payload with the data: prefix, for previews
    width: int
    height: int


def target_size(width: int, height: int, max_size: int) -> tuple[int, int]:
    """
    Scale (width, height) so the larger side is at most max_size.
    Never upscales; the larger side lands exactly on max_size when scaled.
    """
    longest = max(width, height)
    if longest <= max_size:
        return width, height
    scale = max_size / longest
    if width >= height:
        return max_size, max(1, round(height * scale))
    return max(1, round(width * scale)), max_size


def _open(source: ImageSource) -> Image.Image:
    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)
    try:
        img = Image.open(source)
        img.load()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
        raise ImageDecodeError(f"Cannot decode image: {exc}") from exc
    return img


def _to_rgb(img: Image.Image) -> Image.Image:
    """JPEG has no alpha: flatten transparent areas onto white."""
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        img = img.convert("RGBA")
        background = Image.new("RGB", img.size, (255, 255, 255))
        background.paste(img, mask=img.getchannel("A"))
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def normalize_image(
    source: ImageSource,
    max_size: int | None = None,
    quality: int | None = None,
) -> NormalizedImage:
    """
    Decode source, bound its dimensions and re-encode as JPEG.
    Raises ImageDecodeError if source is not a readable image.
    """
    max_size = max_size or config.MAX_IMAGE_SIZE
    quality = quality or config.JPEG_QUALITY

    img = _open(source)
    # Phones store portrait shots as rotated landscape + an EXIF flag
    img = ImageOps.exif_transpose(img)

    # Palette images only resample with NEAREST, so go to RGB first
    img = _to_rgb(img)

    src_w, src_h = img.size
    width, height = target_size(src_w, src_h, max_size)
    if (width, height) != (src_w, src_h):
        img = img.resize((width, height), Image.Resampling.LANCZOS)

    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=quality)
    payload = base64.b64encode(buf.getvalue()).decode("ascii")

    logger.debug("Normalized image %dx%d → %dx%d (%d bytes)",
                 src_w, src_h, width, height, len(buf.getvalue()))
    return NormalizedImage(
        base64=payload,
        mime_type="image/jpeg",
        data_url=f"data:image/jpeg;base64,{payload}",
        width=width,
        height=height,
    )
