"""Nearest-neighbour indexes over perceptual fingerprints.

Every realization answers the same ranked query: up to ``k`` items ordered by
ascending Hamming distance, ties broken by ascending id. ``BruteForceIndex``
is exact; ``NSWIndex`` trades recall for speed on large corpora.
"""

from __future__ import annotations

import heapq
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, NamedTuple, Sequence, Set, Tuple

import imagehash
import numpy as np

from ..errors import DuplicateKeyError, InsufficientCorpus
from ..logging import get_logger
from .distance import within
from .hash import GRID_SIZE

logger = get_logger(__name__)

DEFAULT_SHAPE = (GRID_SIZE, GRID_SIZE)


class IndexKind(str, Enum):
    EXACT = "exact"
    NSW = "nsw"


class Match(NamedTuple):
    id: int
    distance: int


class SimilarityIndex(ABC):
    """Id-keyed store of fingerprints queried by Hamming distance."""

    #: whether ``query`` is guaranteed to return the true nearest neighbours
    exact: bool = True

    def __init__(self, shape: Tuple[int, ...] = DEFAULT_SHAPE) -> None:
        self.shape = tuple(shape)
        self.dimensions = int(np.prod(self.shape))

    @abstractmethod
    def reserve(self, capacity: int) -> None:
        """Pre-size storage for ``capacity`` fingerprints."""

    @abstractmethod
    def add(self, item_id: int, bits: imagehash.ImageHash) -> None:
        """Register ``bits`` under ``item_id``; ids are never overwritten."""

    @abstractmethod
    def contains(self, item_id: int) -> bool:
        ...

    @abstractmethod
    def get(self, item_id: int) -> imagehash.ImageHash:
        ...

    @abstractmethod
    def query(self, bits: imagehash.ImageHash, k: int) -> List[Match]:
        """Up to ``k`` nearest neighbours, ascending distance then id."""

    @property
    @abstractmethod
    def size(self) -> int:
        ...

    @property
    @abstractmethod
    def capacity(self) -> int:
        ...

    def radius(self, bits: imagehash.ImageHash, thresh: float) -> List[Match]:
        """All registered items with ``distance <= thresh``, ranked."""
        return [match for match in self.query(bits, self.size) if within(match.distance, thresh)]

    def __len__(self) -> int:
        return self.size

    def __contains__(self, item_id: object) -> bool:
        return isinstance(item_id, (int, np.integer)) and self.contains(int(item_id))

    def _as_row(self, bits: imagehash.ImageHash) -> np.ndarray:
        row = np.asarray(bits.hash, dtype=bool).ravel()
        if row.size != self.dimensions:
            raise ValueError(f"Fingerprint has {row.size} bits, index expects {self.dimensions}")
        return row


class _ArrayIndex(SimilarityIndex):
    """Shared storage: fingerprints as rows of a preallocated boolean matrix."""

    def __init__(self, shape: Tuple[int, ...] = DEFAULT_SHAPE) -> None:
        super().__init__(shape)
        self._bits = np.zeros((0, self.dimensions), dtype=bool)
        self._ids = np.zeros(0, dtype=np.int64)
        self._positions: Dict[int, int] = {}
        self._size = 0

    @property
    def size(self) -> int:
        return self._size

    @property
    def capacity(self) -> int:
        return int(self._ids.shape[0])

    def reserve(self, capacity: int) -> None:
        if capacity <= self.capacity:
            return
        bits = np.zeros((capacity, self.dimensions), dtype=bool)
        ids = np.zeros(capacity, dtype=np.int64)
        bits[:self._size] = self._bits[:self._size]
        ids[:self._size] = self._ids[:self._size]
        self._bits, self._ids = bits, ids

    def add(self, item_id: int, bits: imagehash.ImageHash) -> None:
        if item_id in self:
            raise DuplicateKeyError(f"Id {item_id} is already registered")
        row = self._as_row(bits)
        if self._size == self.capacity:
            new_capacity = max(1, 2 * self.capacity)
            logger.debug(f"Index full at {self.capacity}, growing to {new_capacity}")
            self.reserve(new_capacity)
        position = self._size
        self._bits[position] = row
        self._ids[position] = item_id
        self._positions[item_id] = position
        self._size += 1
        self._on_added(position)

    def _on_added(self, position: int) -> None:
        pass

    def contains(self, item_id: int) -> bool:
        return item_id in self._positions

    def get(self, item_id: int) -> imagehash.ImageHash:
        position = self._positions[item_id]
        return imagehash.ImageHash(self._bits[position].reshape(self.shape).copy())

    def _distances(self, row: np.ndarray, positions: np.ndarray) -> np.ndarray:
        return np.count_nonzero(self._bits[positions] != row, axis=1)


class BruteForceIndex(_ArrayIndex):
    """
    Exact linear scan.

    Each query compares against every stored row in one vectorized pass.
    Adequate up to roughly 10^5 fingerprints.
    """

    exact = True

    def query(self, bits: imagehash.ImageHash, k: int) -> List[Match]:
        row = self._as_row(bits)
        if k <= 0 or self._size == 0:
            return []
        distances = np.count_nonzero(self._bits[:self._size] != row, axis=1)
        ids = self._ids[:self._size]
        order = np.lexsort((ids, distances))[:k]
        return [Match(int(ids[i]), int(distances[i])) for i in order]


class NSWIndex(_ArrayIndex):
    """
    Approximate navigable small-world graph.

    Every inserted node is linked in both directions to the ``connectivity``
    nearest nodes found by a beam search over the graph built so far. Queries
    run the same beam search with width ``max(ef_search, k)`` from the first
    inserted node.

    Results are correctly ordered and carry true distances, but may miss
    neighbours the beam never reached: recall is below 1.0 in general. It
    grows with ``ef_search``; once the beam is at least the index size every
    reachable node is visited. Radius queries widen the beam until the
    threshold boundary is inside it.
    """

    exact = False

    def __init__(
        self,
        shape: Tuple[int, ...] = DEFAULT_SHAPE,
        connectivity: int = 16,
        ef_search: int = 64,
    ) -> None:
        super().__init__(shape)
        if connectivity < 1:
            raise ValueError(f"connectivity must be positive, got {connectivity}")
        self.connectivity = connectivity
        self.ef_search = ef_search
        self.ef_construction = max(connectivity, ef_search)
        self._neighbors: List[List[int]] = []

    def _on_added(self, position: int) -> None:
        self._neighbors.append([])
        if position == 0:
            return
        row = self._bits[position]
        found = self._search(row, self.ef_construction, limit=position)
        for _, _, other in found[:self.connectivity]:
            self._neighbors[position].append(other)
            self._neighbors[other].append(position)

    def _search(self, row: np.ndarray, ef: int, limit: int) -> List[Tuple[int, int, int]]:
        """Beam search over positions ``< limit``; returns (distance, id, position) ascending."""
        entry = 0
        entry_distance = int(np.count_nonzero(self._bits[entry] != row))
        entry_key = (entry_distance, int(self._ids[entry]), entry)

        visited: Set[int] = {entry}
        candidates = [entry_key]
        # max-heap on (distance, id) via negation
        best = [(-entry_distance, -entry_key[1], entry)]

        while candidates:
            distance, item_id, position = heapq.heappop(candidates)
            worst = (-best[0][0], -best[0][1])
            if len(best) >= ef and (distance, item_id) > worst:
                break

            fresh = [nb for nb in self._neighbors[position] if nb < limit and nb not in visited]
            if not fresh:
                continue
            visited.update(fresh)
            positions = np.asarray(fresh, dtype=np.int64)
            distances = self._distances(row, positions)

            for nb, nb_distance in zip(fresh, distances):
                key = (int(nb_distance), int(self._ids[nb]))
                worst = (-best[0][0], -best[0][1])
                if len(best) < ef or key < worst:
                    heapq.heappush(candidates, (key[0], key[1], nb))
                    heapq.heappush(best, (-key[0], -key[1], nb))
                    if len(best) > ef:
                        heapq.heappop(best)

        return sorted((-d, -i, p) for d, i, p in best)

    def query(self, bits: imagehash.ImageHash, k: int) -> List[Match]:
        row = self._as_row(bits)
        if k <= 0 or self._size == 0:
            return []
        found = self._search(row, max(self.ef_search, k), limit=self._size)
        return [Match(item_id, distance) for distance, item_id, _ in found[:k]]

    def radius(self, bits: imagehash.ImageHash, thresh: float) -> List[Match]:
        row = self._as_row(bits)
        if self._size == 0:
            return []
        ef = self.ef_search
        while True:
            found = self._search(row, ef, limit=self._size)
            boundary_inside = len(found) < ef or not within(found[-1][0], thresh)
            if boundary_inside or ef >= self._size:
                break
            ef *= 2
        return [Match(item_id, distance) for distance, item_id, _ in found if within(distance, thresh)]


def build_index(
    kind: IndexKind = IndexKind.EXACT,
    capacity: int = 0,
    shape: Sequence[int] = DEFAULT_SHAPE,
    connectivity: int = 16,
    ef_search: int = 64,
) -> SimilarityIndex:
    """Create an empty index of the requested kind with ``capacity`` reserved."""
    index: SimilarityIndex
    if kind is IndexKind.EXACT:
        index = BruteForceIndex(tuple(shape))
    elif kind is IndexKind.NSW:
        index = NSWIndex(tuple(shape), connectivity=connectivity, ef_search=ef_search)
    else:
        raise ValueError(f"Unknown index kind: {kind}")
    index.reserve(capacity)
    return index


def ensure_queryable(index: SimilarityIndex) -> None:
    """
    Raises:
        InsufficientCorpus: if fewer than two fingerprints are registered
    """
    if len(index) < 2:
        raise InsufficientCorpus(len(index))
