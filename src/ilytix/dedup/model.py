"""Public API for image deduplication."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from itertools import repeat
from pathlib import Path
from typing import List, Optional, Sequence

from ..errors import UnreadableImageError
from ..logging import get_logger
from ..reporting import NullReporter, Reporter
from .cluster import DuplicateResolver, Resolution, Strategy
from .hash import ImageFingerprint, Method, hash_file
from .index import IndexKind

logger = get_logger(__name__)


@dataclass(frozen=True)
class Corpus:
    """Loader output split into fingerprints and undecodable files."""
    paths: List[Path]
    fingerprints: List[ImageFingerprint]
    deprecated: List[UnreadableImageError]

    def path_of(self, item_id: int) -> Path:
        return self.paths[item_id]


@dataclass(frozen=True)
class DedupResult:
    corpus: Corpus
    resolution: Resolution

    @property
    def curated_paths(self) -> List[Path]:
        return [self.corpus.path_of(i) for i in sorted(self.resolution.curated)]

    @property
    def duplicate_paths(self) -> List[Path]:
        return [self.corpus.path_of(i) for i in sorted(self.resolution.duplicates)]

    @property
    def deprecated_paths(self) -> List[Path]:
        return [error.path for error in self.corpus.deprecated]


def build_corpus(
    paths: Sequence[Path],
    method: Method = Method.BLOCKHASH,
    workers: int = 4,
    reporter: Optional[Reporter] = None,
) -> Corpus:
    """
    Fingerprint every path; item ids are positions in ``paths``.

    Decoding and hashing run in a thread pool. ``Executor.map`` yields
    results in submission order, so the corpus is assembled in path order no
    matter which worker finishes first. Undecodable files keep their id slot
    (ids may have gaps) and land in ``deprecated``.
    """
    reporter = reporter or NullReporter()
    paths = [Path(p) for p in paths]
    fingerprints: List[ImageFingerprint] = []
    deprecated: List[UnreadableImageError] = []
    logger.info(f"Hashing {len(paths)} files with {method.value} ({method.bits}-bit fingerprints)")

    with ThreadPoolExecutor(max_workers=max(1, workers)) as executor, \
            reporter.progress(len(paths), "Hashing") as bar:
        for result in executor.map(hash_file, range(len(paths)), paths, repeat(method)):
            bar.update(1)
            if isinstance(result, ImageFingerprint):
                fingerprints.append(result)
            else:
                logger.warning(f"Unsupported or deprecated file {result.path}: {result.reason}")
                deprecated.append(result)

    logger.info(f"Hashed {len(paths)} files: {len(fingerprints)} valid, {len(deprecated)} deprecated")
    return Corpus(paths=paths, fingerprints=fingerprints, deprecated=deprecated)


def deduplicate_images(
    paths: Sequence[Path],
    thresh: float = 3.0,
    strategy: Strategy = Strategy.ACCUMULATE,
    index_kind: IndexKind = IndexKind.EXACT,
    method: Method = Method.BLOCKHASH,
    workers: int = 4,
    reporter: Optional[Reporter] = None,
    connectivity: int = 16,
    ef_search: int = 64,
) -> DedupResult:
    """
    Deduplicate images using perceptual hashing.

    Args:
        paths: Candidate files in loader order
        thresh: Maximum Hamming distance for two images to count as duplicates
        strategy: Resolution strategy, see ``DuplicateResolver``
        index_kind: Index backend used by ``Strategy.INDEX``
        method: Fingerprint method
        workers: Hashing threads
        reporter: Progress sink

    Returns:
        DedupResult whose curated, duplicate and deprecated sets partition ``paths``

    Raises:
        InsufficientCorpus: if fewer than two files could be fingerprinted
    """
    corpus = build_corpus(paths, method=method, workers=workers, reporter=reporter)
    resolver = DuplicateResolver(
        thresh=thresh,
        strategy=strategy,
        index_kind=index_kind,
        reporter=reporter,
        connectivity=connectivity,
        ef_search=ef_search,
        method=method,
    )
    resolution = resolver.resolve(corpus.fingerprints)
    return DedupResult(corpus=corpus, resolution=resolution)
