"""Perceptual deduplication engine."""

from .model import deduplicate_images, build_corpus, Corpus, DedupResult
from .hash import ImageFingerprint, Method, blockhash, hash_file
from .distance import hamming_distance
from .index import (
    BruteForceIndex,
    IndexKind,
    Match,
    NSWIndex,
    SimilarityIndex,
    build_index,
)
from .cluster import DuplicateResolver, Resolution, Strategy

__all__ = [
    "deduplicate_images",
    "build_corpus",
    "Corpus",
    "DedupResult",
    "ImageFingerprint",
    "Method",
    "blockhash",
    "hash_file",
    "hamming_distance",
    "BruteForceIndex",
    "IndexKind",
    "Match",
    "NSWIndex",
    "SimilarityIndex",
    "build_index",
    "DuplicateResolver",
    "Resolution",
    "Strategy",
]
