"""Image decoding with the format guessed from content, not the file name."""

from __future__ import annotations

import io
from pathlib import Path
from typing import Optional

from PIL import Image, UnidentifiedImageError

from .errors import DecodeError, FormatError
from .logging import get_logger

logger = get_logger(__name__)


def read_bytes(path: Path) -> bytes:
    """Read a file, mapping I/O failures to DecodeError."""
    try:
        return Path(path).read_bytes()
    except OSError as exc:
        raise DecodeError(path, f"unreadable file ({exc.strerror or exc})") from exc


def open_image(path: Path) -> Image.Image:
    """
    Decode an image file into pixels.

    Pillow sniffs the container from the leading bytes, so a PNG saved as
    ``photo.jpg`` still decodes. The returned image is fully loaded and
    detached from the file.

    Raises:
        DecodeError: the file cannot be read
        FormatError: the bytes are not a decodable image
    """
    data = read_bytes(path)
    return decode_bytes(data, path)


def decode_bytes(data: bytes, path: Path) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        _check_pixel_limit(img, path)
        img.load()
    except UnidentifiedImageError as exc:
        raise FormatError(path, "not a recognised image format") from exc
    except (OSError, ValueError, SyntaxError, EOFError, Image.DecompressionBombError) as exc:
        raise FormatError(path, f"corrupt image data ({exc})") from exc

    logger.debug(f"Decoded {path}: format={img.format}, mode={img.mode}, size={img.size}")
    return img


def guess_format(path: Path) -> str:
    """
    Pillow format name of the decoded content, e.g. ``PNG``.

    The whole image is decoded, so a file with a valid header but corrupt
    data is rejected here too.
    """
    with open_image(path) as img:
        return img.format or ""


def _check_pixel_limit(img: Image.Image, path: Path) -> None:
    """
    Reject images above ``Image.MAX_IMAGE_PIXELS``.

    Pillow itself only raises above twice the limit and warns below it.
    """
    limit = Image.MAX_IMAGE_PIXELS
    width, height = img.size
    if limit is not None and width * height > limit:
        raise FormatError(path, f"image too large ({width}x{height} pixels, limit {limit})")


def format_from_suffix(path: Path) -> Optional[str]:
    """Pillow format name implied by the file extension, if any."""
    return Image.registered_extensions().get(Path(path).suffix.lower())


def extension_for(format_name: str) -> str:
    """File extension (without dot) for a Pillow format name, e.g. JPEG -> jpeg."""
    Image.init()
    mime = Image.MIME.get(format_name.upper())
    if mime:
        return mime.split('/')[-1]
    return format_name.lower()
