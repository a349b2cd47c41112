"""
Image Normalizer: raw bytes to catalog WebP

Every closet image is an 800x800 WebP on a uniform light gray background.
Two fit policies are supported:

  contain  scale to fit inside the square, pad with gray, flatten any
           transparency onto the same gray (used after background removal)
  cover    flatten, then scale and center-crop to fill the square (used for
           photos that are already clean product shots)
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger(__name__)

# Output canvas dimensions
CANVAS_SIZE = 800

# WebP quality setting (0-100); images are for web display only
WEBP_QUALITY = 80

# WebP compression method (0-6, higher = slower but better compression)
WEBP_METHOD = 4

BACKGROUND = (240, 240, 240)


class FitPolicy(str, Enum):
    CONTAIN = "contain"
    COVER = "cover"


class ImageDecodeError(ValueError):
    """Raw bytes could not be decoded as an image."""


def open_image(data: bytes) -> Image.Image:
    """Decode *data* fully, raising ImageDecodeError on anything unreadable."""
    try:
        img = Image.open(BytesIO(data))
        img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError,
            ValueError) as exc:
        raise ImageDecodeError(f"Cannot decode image ({len(data)} bytes): {exc}") from exc
    return img


def probe_image(data: bytes) -> tuple[int, int, str]:
    """Return (width, height, format) of encoded image bytes."""
    img = open_image(data)
    return img.width, img.height, (img.format or "unknown").lower()


def _flatten(img: Image.Image, background: tuple[int, int, int]) -> Image.Image:
    """Composite *img* onto an opaque background, dropping alpha."""
    img = img.convert("RGBA")
    canvas = Image.new("RGB", img.size, background)
    canvas.paste(img, mask=img.getchannel("A"))
    return canvas


def normalize_image(
    data: bytes,
    fit: FitPolicy | str = FitPolicy.COVER,
    canvas_size: int = 0,
    background: tuple[int, int, int] | None = None,
    webp_quality: int = 0,
    webp_method: int = 0,
) -> bytes:
    """Convert arbitrary image bytes to the canonical catalog WebP.

    Args:
        data:         Encoded source image (JPEG, PNG, WebP, ...).
        fit:          ``contain`` or ``cover``.
        canvas_size:  Output square size in pixels (default: CANVAS_SIZE).
        background:   RGB padding/flatten color (default: BACKGROUND).
        webp_quality: WebP quality 1-100 (default: WEBP_QUALITY).
        webp_method:  WebP method 0-6 (default: WEBP_METHOD).

    Returns:
        Encoded WebP bytes of a canvas_size x canvas_size image.

    Raises:
        ImageDecodeError: If *data* is not a decodable image.
    """
    cs = canvas_size or CANVAS_SIZE
    bg = tuple(background or BACKGROUND)
    wq = webp_quality or WEBP_QUALITY
    wm = webp_method or WEBP_METHOD
    fit = FitPolicy(fit)

    img = open_image(data)
    img = ImageOps.exif_transpose(img)
    img = img.convert("RGBA")

    logger.debug("Normalizing %dx%d -> %dx%d (%s)", img.width, img.height, cs, cs, fit.value)

    if fit is FitPolicy.CONTAIN:
        img = ImageOps.contain(img, (cs, cs), Image.LANCZOS)
        canvas = Image.new("RGB", (cs, cs), bg)
        offset = ((cs - img.width) // 2, (cs - img.height) // 2)
        canvas.paste(img, offset, mask=img.getchannel("A"))
    else:
        canvas = ImageOps.fit(_flatten(img, bg), (cs, cs), Image.LANCZOS,
                              centering=(0.5, 0.5))

    buf = BytesIO()
    canvas.save(buf, "WEBP", quality=wq, method=wm)
    return buf.getvalue()


def write_image(data: bytes, output_path: str | os.PathLike) -> int:
    """Write encoded bytes, creating parent directories. Returns the size."""
    out_dir = os.path.dirname(os.fspath(output_path))
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    with open(output_path, "wb") as f:
        f.write(data)
    return len(data)


def replace_image(data: bytes, output_path: str | os.PathLike) -> int:
    """Write through a temp file and atomically swap it into place."""
    output_path = os.fspath(output_path)
    root, ext = os.path.splitext(output_path)
    temp_path = f"{root}-temp{ext}"
    try:
        size = write_image(data, temp_path)
        os.replace(temp_path, output_path)
    except OSError:
        if os.path.exists(temp_path):
            os.remove(temp_path)
        raise
    return size
