"""Partitioning of a fingerprinted corpus into curated and duplicate items."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

from ..errors import DuplicateKeyError, InsufficientCorpus
from ..logging import get_logger
from ..reporting import NullReporter, Reporter
from .distance import fingerprint_distance, within
from .hash import ImageFingerprint, Method
from .index import IndexKind, SimilarityIndex, build_index, ensure_queryable

logger = get_logger(__name__)


class Strategy(str, Enum):
    ACCUMULATE = "accumulate"
    INDEX = "index"


@dataclass(frozen=True)
class Resolution:
    """Final classification of every valid corpus item."""
    curated: FrozenSet[int]
    duplicates: FrozenSet[int]
    # duplicate id -> id of the curated item that replaced it
    representative_of: Dict[int, int] = field(default_factory=dict)

    def clusters(self) -> Dict[int, List[int]]:
        """Curated id -> sorted ids of its duplicates (curated singletons map to [])."""
        groups: Dict[int, List[int]] = {curated_id: [] for curated_id in self.curated}
        for dup_id, curated_id in self.representative_of.items():
            groups[curated_id].append(dup_id)
        for members in groups.values():
            members.sort()
        return groups


def priority(fingerprint: ImageFingerprint) -> Tuple[int, int]:
    """
    Sort key for representative selection: larger files first, then the
    item seen first by the loader (lowest id).
    """
    return (-fingerprint.file_size, fingerprint.id)


def _check_unique(fingerprints: Sequence[ImageFingerprint]) -> None:
    seen = set()
    for fp in fingerprints:
        if fp.id in seen:
            raise DuplicateKeyError(f"Id {fp.id} appears twice in the corpus")
        seen.add(fp.id)


class DuplicateResolver:
    """
    Splits fingerprints into curated representatives and duplicates.

    Two items are connected when their Hamming distance is ``<= thresh``.
    Every transitively connected cluster keeps exactly one curated item, the
    largest file (ties: lowest id); all other members are duplicates. The
    partition does not depend on the order of the input sequence.

    ``Strategy.ACCUMULATE`` compares each arriving item against the clusters
    accumulated so far and needs no index. ``Strategy.INDEX`` builds a
    similarity index first and floods clusters through radius queries; with
    an exact index both strategies yield the same partition.
    """

    def __init__(
        self,
        thresh: float = 3.0,
        strategy: Strategy = Strategy.ACCUMULATE,
        index_kind: IndexKind = IndexKind.EXACT,
        reporter: Optional[Reporter] = None,
        connectivity: int = 16,
        ef_search: int = 64,
        method: Method = Method.BLOCKHASH,
    ) -> None:
        if thresh < 0:
            raise ValueError(f"thresh must be non-negative, got {thresh}")
        self.thresh = thresh
        self.strategy = strategy
        self.index_kind = index_kind
        self.reporter = reporter or NullReporter()
        self.connectivity = connectivity
        self.ef_search = ef_search
        self.method = method

    def resolve(self, fingerprints: Sequence[ImageFingerprint]) -> Resolution:
        """
        Classify every fingerprint as curated or duplicate.

        Raises:
            InsufficientCorpus: if fewer than two fingerprints are given
            DuplicateKeyError: if two fingerprints share an id
        """
        _check_unique(fingerprints)
        ordered = sorted(fingerprints, key=priority)

        if self.strategy is Strategy.ACCUMULATE:
            if len(ordered) < 2:
                raise InsufficientCorpus(len(ordered))
            resolution = self._accumulate(ordered)
        elif self.strategy is Strategy.INDEX:
            resolution = self._flood(ordered)
        else:
            raise ValueError(f"Unknown strategy: {self.strategy}")

        logger.info(
            f"Resolved {len(ordered)} fingerprints at thresh={self.thresh}: "
            f"{len(resolution.curated)} curated, {len(resolution.duplicates)} duplicates"
        )
        return resolution

    def _accumulate(self, ordered: Sequence[ImageFingerprint]) -> Resolution:
        # curated id -> every member of its cluster, curated item first
        working: Dict[int, List[ImageFingerprint]] = {}

        with self.reporter.progress(len(ordered), "Deduplicating") as bar:
            for item in ordered:
                bar.update(1)
                matched = [
                    curated_id
                    for curated_id, members in working.items()
                    if any(within(fingerprint_distance(item, member), self.thresh) for member in members)
                ]
                if not matched:
                    working[item.id] = [item]
                    continue

                candidates = [item]
                for curated_id in matched:
                    candidates.extend(working.pop(curated_id))
                winner = min(candidates, key=priority)
                others = [fp for fp in candidates if fp.id != winner.id]
                working[winner.id] = [winner] + others
                logger.debug(
                    f"#{item.id} joined {len(matched)} cluster(s); "
                    f"#{winner.id} curated over {len(others)} duplicate(s)"
                )

        representative_of = {
            member.id: curated_id
            for curated_id, members in working.items()
            for member in members[1:]
        }
        return Resolution(
            curated=frozenset(working),
            duplicates=frozenset(representative_of),
            representative_of=representative_of,
        )

    def _flood(self, ordered: Sequence[ImageFingerprint]) -> Resolution:
        index = self._build(ordered)
        ensure_queryable(index)

        curated: List[int] = []
        representative_of: Dict[int, int] = {}
        reached = set()

        with self.reporter.progress(len(ordered), "Deduplicating") as bar:
            for item in ordered:
                bar.update(1)
                if item.id in reached:
                    continue
                reached.add(item.id)
                curated.append(item.id)

                frontier = [item.id]
                while frontier:
                    current = frontier.pop()
                    for match in index.radius(index.get(current), self.thresh):
                        if match.id in reached:
                            continue
                        reached.add(match.id)
                        representative_of[match.id] = item.id
                        frontier.append(match.id)
                logger.debug(f"#{item.id} curated")

        return Resolution(
            curated=frozenset(curated),
            duplicates=frozenset(representative_of),
            representative_of=representative_of,
        )

    def _build(self, fingerprints: Sequence[ImageFingerprint]) -> SimilarityIndex:
        index = build_index(
            self.index_kind,
            capacity=len(fingerprints),
            shape=self.method.shape,
            connectivity=self.connectivity,
            ef_search=self.ef_search,
        )
        with self.reporter.progress(len(fingerprints), "Building") as bar:
            for fp in sorted(fingerprints, key=lambda fp: fp.id):
                index.add(fp.id, fp.bits)
                bar.update(1)
        return index
