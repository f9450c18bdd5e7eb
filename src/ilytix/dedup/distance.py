"""Distance metrics for perceptual fingerprints."""

import imagehash

from .hash import ImageFingerprint


def hamming_distance(a: imagehash.ImageHash, b: imagehash.ImageHash) -> int:
    """
    Calculate Hamming distance between two perceptual hashes.

    Args:
        a: First hash
        b: Second hash

    Returns:
        Number of differing bits

    Raises:
        TypeError: if the hashes have different shapes
    """
    return int(a - b)


def fingerprint_distance(a: ImageFingerprint, b: ImageFingerprint) -> int:
    return hamming_distance(a.bits, b.bits)


def within(distance: int, thresh: float) -> bool:
    """Threshold rule shared by dedup and retrieval."""
    return distance <= thresh
