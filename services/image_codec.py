# services/image_codec.py
import io
import os
import logging
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from services.errors import ImageCodecError, UnsupportedPayload

logger = logging.getLogger(__name__)

CANONICAL_CONTENT_TYPE = "image/webp"
CANONICAL_EXTENSION = "webp"
DEFAULT_QUALITY = 80

ACCEPTED_FORMATS = {"JPEG", "PNG", "WEBP", "GIF"}

_REJECT_MESSAGE = (
    "Only image uploads are accepted (jpg, jpeg, png, webp, gif). "
    "The payload was not recognized as an image."
)


def _quality() -> int:
    try:
        q = int(os.environ.get("IMAGE_WEBP_QUALITY", DEFAULT_QUALITY))
    except ValueError:
        return DEFAULT_QUALITY
    return min(max(q, 1), 100)


def _decode(data: bytes) -> Image.Image:
    if not data:
        raise UnsupportedPayload("Empty upload. " + _REJECT_MESSAGE)
    try:
        im = Image.open(io.BytesIO(data))
        fmt = im.format
        if fmt not in ACCEPTED_FORMATS:
            raise UnsupportedPayload(f"Unsupported image format {fmt}. " + _REJECT_MESSAGE)
        # first frame only for animations
        im.seek(0)
        im.load()
        return im
    except UnsupportedPayload:
        raise
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, EOFError, ValueError, SyntaxError) as e:
        logger.info("Rejected upload that did not decode as an image: %s", e)
        raise UnsupportedPayload(_REJECT_MESSAGE) from e


def _has_alpha(im: Image.Image) -> bool:
    return im.mode in ("RGBA", "LA", "PA") or "transparency" in im.info


def decode_and_reencode(data: bytes, quality: Optional[int] = None) -> Tuple[bytes, str]:
    """
    Decode an uploaded jpg/png/webp/gif and re-encode it as WebP.
    Returns (webp_bytes, 'image/webp').
    UnsupportedPayload for anything that is not a decodable image,
    ImageCodecError when the encoder itself fails.
    """
    im = _decode(data)
    q = quality if quality is not None else _quality()
    try:
        target_mode = "RGBA" if _has_alpha(im) else "RGB"
        frame = im if im.mode == target_mode else im.convert(target_mode)
        out = io.BytesIO()
        frame.save(out, format="WEBP", quality=q)
    except (OSError, ValueError, KeyError) as e:
        logger.exception("WebP encode failed (source format %s, mode %s)", im.format, im.mode)
        raise ImageCodecError("Image conversion failed") from e
    finally:
        im.close()
    return out.getvalue(), CANONICAL_CONTENT_TYPE
