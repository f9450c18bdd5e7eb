"""Test configuration for pytest."""

import logging
from pathlib import Path
from typing import Callable, Iterable, Optional

import imagehash
import numpy as np
import pytest
from PIL import Image

from ilytix.dedup.hash import ImageFingerprint


@pytest.fixture(autouse=True)
def configure_test_logging(monkeypatch):
    """Configure logging for tests to be minimal."""
    monkeypatch.setenv('ILYTIX_LOG_LEVEL', 'WARNING')
    logging.getLogger().setLevel(logging.WARNING)
    for logger_name in ['ilytix.dedup.model', 'ilytix.codec']:
        logging.getLogger(logger_name).setLevel(logging.ERROR)


def pattern_image(seed: int, size: int = 128) -> Image.Image:
    """
    16x16 random grey blocks scaled up with nearest-neighbour.

    Block means survive any size that is a multiple of 16 exactly, so every
    rendering of the same seed has the same fingerprint, while different
    seeds land around 128 bits apart.
    """
    rng = np.random.default_rng(seed)
    blocks = rng.integers(0, 256, size=(16, 16), dtype=np.uint8)
    return Image.fromarray(blocks).resize((size, size), Image.Resampling.NEAREST).convert('RGB')


@pytest.fixture
def make_pattern() -> Callable[..., Path]:
    def _make(path: Path, seed: int, size: int = 128, fmt: Optional[str] = None, **save_kwargs) -> Path:
        pattern_image(seed, size).save(path, format=fmt, **save_kwargs)
        return path
    return _make


def bits_with_flips(flips: Iterable[int], base: Optional[np.ndarray] = None) -> imagehash.ImageHash:
    """ImageHash equal to ``base`` (all zeros by default) with the given bit positions inverted."""
    arr = np.zeros(256, dtype=bool) if base is None else base.ravel().copy()
    for position in flips:
        arr[position] = not arr[position]
    return imagehash.ImageHash(arr.reshape(16, 16))


@pytest.fixture
def make_fingerprint() -> Callable[..., ImageFingerprint]:
    def _make(item_id: int, flips: Iterable[int] = (), file_size: int = 100,
              base: Optional[np.ndarray] = None) -> ImageFingerprint:
        return ImageFingerprint(
            id=item_id,
            bits=bits_with_flips(flips, base),
            source_path=Path(f"img{item_id}.png"),
            file_size=file_size,
        )
    return _make
