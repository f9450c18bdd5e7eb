"""Image-to-image retrieval over a fingerprinted corpus."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence

from .codec import open_image
from .dedup.distance import within
from .dedup.hash import ImageFingerprint, Method, fingerprint_image
from .dedup.index import IndexKind, Match, SimilarityIndex, build_index, ensure_queryable
from .errors import DecodeError, FormatError, QueryDecodeError
from .logging import get_logger
from .reporting import NullReporter, Reporter

logger = get_logger(__name__)

# id used for the query fingerprint; never registered in the index
QUERY_ID = -1


class Kind(str, Enum):
    IMAGE = "image"


class RetrievalEngine:
    """
    Ranks corpus items by distance to one external query image.

    Usage is strictly build-then-query: ``build`` registers the whole corpus,
    after which ``search`` may be called any number of times.
    """

    def __init__(
        self,
        thresh: float = 3.0,
        index_kind: IndexKind = IndexKind.EXACT,
        method: Method = Method.BLOCKHASH,
        reporter: Optional[Reporter] = None,
        connectivity: int = 16,
        ef_search: int = 64,
    ) -> None:
        if thresh < 0:
            raise ValueError(f"thresh must be non-negative, got {thresh}")
        self.thresh = thresh
        self.index_kind = index_kind
        self.method = method
        self.reporter = reporter or NullReporter()
        self.connectivity = connectivity
        self.ef_search = ef_search
        self._index: Optional[SimilarityIndex] = None

    @property
    def index(self) -> SimilarityIndex:
        if self._index is None:
            raise RuntimeError("RetrievalEngine.build() must be called before querying")
        return self._index

    def build(self, fingerprints: Sequence[ImageFingerprint]) -> SimilarityIndex:
        """
        Register the corpus.

        Raises:
            InsufficientCorpus: if fewer than two fingerprints are given
        """
        index = build_index(
            self.index_kind,
            capacity=len(fingerprints),
            shape=self.method.shape,
            connectivity=self.connectivity,
            ef_search=self.ef_search,
        )
        with self.reporter.progress(len(fingerprints), "Building") as bar:
            for fp in fingerprints:
                index.add(fp.id, fp.bits)
                bar.update(1)

        self.reporter.success("Index")
        self.reporter.success("", "Capacity", str(index.capacity))
        self.reporter.success("", "Size", str(len(index)))
        self.reporter.success("", "Dimensions", str(index.dimensions))
        ensure_queryable(index)

        self._index = index
        return index

    def fingerprint_query(self, path: Path) -> ImageFingerprint:
        """
        Raises:
            QueryDecodeError: if the query image cannot be read or decoded
        """
        path = Path(path)
        try:
            file_size = path.stat().st_size
            img = open_image(path)
        except (DecodeError, FormatError) as exc:
            raise QueryDecodeError(path, exc.reason) from exc
        except OSError as exc:
            raise QueryDecodeError(path, str(exc)) from exc

        with img:
            fingerprint = fingerprint_image(img, QUERY_ID, path, file_size, self.method)
        self.reporter.success("Query", str(path))
        return fingerprint

    def search(self, query: ImageFingerprint) -> List[Match]:
        """Corpus items within ``thresh`` of ``query``, ascending distance then id."""
        index = self.index
        if index.exact:
            matches = index.query(query.bits, index.size)
            matches = [m for m in matches if within(m.distance, self.thresh)]
        else:
            matches = index.radius(query.bits, self.thresh)
        logger.info(f"Query {query.source_path}: {len(matches)} match(es) within {self.thresh}")
        return matches

    def retrieve(self, fingerprints: Sequence[ImageFingerprint], query_path: Path) -> List[Match]:
        """Build over ``fingerprints`` and search for ``query_path`` in one go."""
        self.build(fingerprints)
        return self.search(self.fingerprint_query(query_path))
