from dataclasses import dataclass

from .dedup.cluster import Strategy
from .dedup.hash import Method
from .dedup.index import IndexKind


@dataclass
class Settings:
    thresh: float = 3.0
    method: Method = Method.BLOCKHASH
    strategy: Strategy = Strategy.ACCUMULATE
    index_kind: IndexKind = IndexKind.EXACT
    workers: int = 4
    include_hidden: bool = False
    # navigable small-world graph parameters (IndexKind.NSW only)
    nsw_connectivity: int = 16
    nsw_ef_search: int = 64

    def validate(self) -> None:
        """Reject values no command can run with."""
        if self.thresh < 0:
            raise ValueError(f"thresh must be non-negative, got {self.thresh}")
        if self.workers < 1:
            raise ValueError(f"workers must be at least 1, got {self.workers}")
        if self.nsw_connectivity < 2:
            raise ValueError(f"nsw_connectivity must be at least 2, got {self.nsw_connectivity}")
        if self.nsw_ef_search < 1:
            raise ValueError(f"nsw_ef_search must be at least 1, got {self.nsw_ef_search}")
