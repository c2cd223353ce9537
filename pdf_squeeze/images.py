"""
images.py - Wrap a photo or scan into a single-page PDF.

Preset callers upload JPEG/PNG photos and signatures; the compression
engine only understands PDF, so images are normalized first:
- EXIF orientation applied, transparency flattened onto white
- Near-grayscale photos stored as grayscale
- Oversized rasters scaled down to MAX_WIDTH x MAX_HEIGHT
- Optional scan cleaning: Otsu threshold to 1-bit, stored as CCITT G4
"""

import io
import logging
from typing import Tuple

import cv2
import img2pdf
import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from .document import sniff_format
from .errors import DocumentUnreadable

logger = logging.getLogger(__name__)

# A4 at 420 DPI; anything larger only costs bytes the search throws away
MAX_WIDTH = 3508
MAX_HEIGHT = 4961

# Saturation threshold for grayscale conversion
# Only convert to grayscale if mean saturation is below this
GRAYSCALE_SATURATION_THRESHOLD = 10  # Out of 255

JPEG_QUALITY = 92

EXIF_ORIENTATION = 0x0112


def is_grayscale_image(image: np.ndarray) -> bool:
    """
    Check if image is effectively grayscale based on saturation.

    Only returns True if the entire image has very low saturation.
    """
    if len(image.shape) != 3 or image.shape[2] != 3:
        return True  # Already grayscale

    hsv = cv2.cvtColor(image, cv2.COLOR_RGB2HSV)
    mean_saturation = np.mean(hsv[:, :, 1])

    is_gray = mean_saturation < GRAYSCALE_SATURATION_THRESHOLD
    logger.debug(f"Mean saturation: {mean_saturation:.1f}, is_grayscale: {is_gray}")

    return bool(is_gray)


def constrain_to_limits(width: int, height: int) -> Tuple[int, int]:
    """
    Constrain dimensions to MAX_WIDTH x MAX_HEIGHT while preserving aspect ratio.
    """
    if width <= MAX_WIDTH and height <= MAX_HEIGHT:
        return width, height

    scale = min(MAX_WIDTH / width, MAX_HEIGHT / height)
    return max(1, int(width * scale)), max(1, int(height * scale))


def load_image(data: bytes) -> Image.Image:
    """Decode image bytes, applying EXIF orientation."""
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        raise DocumentUnreadable(f"Cannot read image: {e}") from e
    return ImageOps.exif_transpose(img)


def flatten(img: Image.Image) -> Image.Image:
    """Drop transparency (composited onto white) and return an RGB or L image."""
    if img.mode == "P":
        img = img.convert("RGBA" if "transparency" in img.info else "RGB")
    if img.mode in ("RGBA", "LA"):
        background = Image.new("RGB", img.size, (255, 255, 255))
        background.paste(img.convert("RGBA"), mask=img.convert("RGBA").split()[-1])
        return background
    if img.mode not in ("RGB", "L"):
        return img.convert("RGB")
    return img


def binarize(image: np.ndarray) -> Image.Image:
    """
    Threshold to 1-bit using Otsu's method.

    Suits signatures and printed scans: paper goes white, ink black.
    """
    if len(image.shape) == 3:
        gray = cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)
    else:
        gray = image

    # 0=black, 255=white
    _, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    return Image.fromarray(binary).convert("1")


def _can_pass_through(data: bytes, img: Image.Image, clean_scan: bool) -> bool:
    if clean_scan or sniff_format(data) != "jpeg":
        return False
    try:
        orientation = Image.open(io.BytesIO(data)).getexif().get(EXIF_ORIENTATION, 1)
    except OSError:
        return False
    width, height = img.size
    return (
        orientation == 1
        and img.mode in ("RGB", "L")
        and (width, height) == constrain_to_limits(width, height)
    )


def encode_image(data: bytes, clean_scan: bool = False) -> bytes:
    """
    Normalized image bytes ready for img2pdf.

    Untouched JPEGs are returned as-is so wrapping stays lossless.
    """
    img = load_image(data)

    if _can_pass_through(data, img, clean_scan):
        logger.debug("JPEG passes through unchanged")
        return data

    img = flatten(img)
    new_size = constrain_to_limits(*img.size)
    if new_size != img.size:
        logger.debug(f"Constraining {img.size[0]}x{img.size[1]} to {new_size[0]}x{new_size[1]}")
        img = img.resize(new_size, Image.LANCZOS)

    pixels = np.array(img)
    buffer = io.BytesIO()

    if clean_scan:
        bw = binarize(pixels)
        bw.save(buffer, format="TIFF", compression="group4")
        logger.debug(f"Scan cleaned to 1-bit: {buffer.tell():,} bytes (CCITT G4)")
        return buffer.getvalue()

    if img.mode == "RGB" and is_grayscale_image(pixels):
        img = img.convert("L")

    img.save(buffer, format="JPEG", quality=JPEG_QUALITY, optimize=True)
    logger.debug(f"Image re-encoded: {buffer.tell():,} bytes ({img.mode})")
    return buffer.getvalue()


def image_to_pdf(data: bytes, clean_scan: bool = False) -> bytes:
    """
    Wrap an image into a single-page PDF sized to the image.

    Args:
        data: JPEG, PNG or any other image Pillow can decode
        clean_scan: Binarize before wrapping (signatures, text scans)

    Returns:
        PDF bytes

    Raises:
        DocumentUnreadable: The bytes are not a decodable image
    """
    encoded = encode_image(data, clean_scan=clean_scan)
    try:
        pdf_bytes = img2pdf.convert(encoded)
    except (img2pdf.ImageOpenError, ValueError) as e:
        raise DocumentUnreadable(f"Cannot wrap image as PDF: {e}") from e

    logger.info(f"Wrapped image ({len(data):,} bytes) as single-page PDF ({len(pdf_bytes):,} bytes)")
    return pdf_bytes
