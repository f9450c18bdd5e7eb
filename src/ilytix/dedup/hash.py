"""Perceptual fingerprint computation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Tuple, Union

import imagehash
import numpy as np
from PIL import Image

from ..codec import open_image
from ..errors import DecodeError, FormatError
from ..logging import get_logger

logger = get_logger(__name__)

GRID_SIZE = 16


class Method(str, Enum):
    BLOCKHASH = "blockhash"

    @property
    def shape(self) -> Tuple[int, int]:
        return (GRID_SIZE, GRID_SIZE)

    @property
    def bits(self) -> int:
        return self.shape[0] * self.shape[1]


@dataclass(frozen=True)
class ImageFingerprint:
    """Perceptual fingerprint of one corpus item."""
    id: int
    bits: imagehash.ImageHash
    source_path: Path
    file_size: int


HashResult = Union[ImageFingerprint, DecodeError, FormatError]


def _is_wide(mode: str) -> bool:
    """Single-channel modes with more than 8 bits per sample."""
    return mode in ('I', 'F') or mode.startswith('I;16')


def _luminance(img: Image.Image) -> Image.Image:
    """Single-channel float luminance; transparent areas count as white."""
    if _is_wide(img.mode):
        # convert('L') clips samples above 255; the median split is scale-free
        return Image.fromarray(np.asarray(img, dtype=np.float32))
    if img.mode in ('RGBA', 'LA', 'PA') or (img.mode == 'P' and 'transparency' in img.info):
        rgba = img.convert('RGBA')
        background = Image.new('RGBA', rgba.size, (255, 255, 255, 255))
        img = Image.alpha_composite(background, rgba)
    return img.convert('L').convert('F')


def blockhash(img: Image.Image, grid: int = GRID_SIZE) -> imagehash.ImageHash:
    """
    Block-mean hash of decoded pixels.

    The image is split into a ``grid`` x ``grid`` partition. Each block's
    mean luminance is compared against the median of all block means, giving
    one bit per block in row-major order (``grid**2`` bits in total).

    A BOX resample to ``grid`` x ``grid`` is exactly the area-weighted block
    mean, including blocks that straddle pixel boundaries and images smaller
    than the grid.

    Args:
        img: Decoded image in any Pillow mode
        grid: Blocks per side

    Returns:
        ImageHash wrapping a ``grid`` x ``grid`` boolean array
    """
    means = np.asarray(
        _luminance(img).resize((grid, grid), Image.Resampling.BOX),
        dtype=np.float64,
    )
    median = np.median(means)
    return imagehash.ImageHash(means >= median)


def fingerprint_image(
    img: Image.Image,
    item_id: int,
    source_path: Path,
    file_size: int,
    method: Method = Method.BLOCKHASH,
) -> ImageFingerprint:
    if method is not Method.BLOCKHASH:
        raise ValueError(f"Unsupported hashing method: {method}")
    return ImageFingerprint(
        id=item_id,
        bits=blockhash(img, grid=method.shape[0]),
        source_path=Path(source_path),
        file_size=file_size,
    )


def hash_file(item_id: int, path: Path, method: Method = Method.BLOCKHASH) -> HashResult:
    """
    Decode ``path`` and fingerprint it.

    Unreadable or undecodable files are returned, not raised, so a worker
    pool can hash a whole corpus and leave the classification to the caller.
    """
    path = Path(path)
    try:
        file_size = path.stat().st_size
        img = open_image(path)
    except (DecodeError, FormatError) as exc:
        logger.debug(f"Skipping {path}: {exc.reason}")
        return exc
    except OSError as exc:
        logger.debug(f"Skipping {path}: {exc}")
        return DecodeError(path, f"cannot stat file ({exc.strerror or exc})")

    with img:
        fingerprint = fingerprint_image(img, item_id, path, file_size, method)
    logger.debug(f"Fingerprinted #{item_id} {path}: {fingerprint.bits}")
    return fingerprint
