"""Exception hierarchy shared by the ilytix commands."""

from __future__ import annotations

from pathlib import Path


class IlytixError(Exception):
    """Base class for all errors raised by ilytix."""

    exit_code = 1


class SourceError(IlytixError):
    """Raised when the input root is missing or is a symlink."""


class UnreadableImageError(IlytixError):
    """A corpus item that cannot be turned into pixels.

    Instances are also used as plain values: the hashing stage returns them
    instead of raising so the corpus builder can route the item into the
    deprecated bucket.
    """

    def __init__(self, path: Path | str, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"{self.path}: {reason}")


class DecodeError(UnreadableImageError):
    """Raised when a file cannot be read at the I/O level."""


class FormatError(UnreadableImageError):
    """Raised when a file's bytes are not a decodable image."""


class InsufficientCorpus(IlytixError):
    """Raised when fewer than two valid fingerprints are available."""

    def __init__(self, size: int) -> None:
        self.size = size
        super().__init__(f"Too few images to build a similarity index: {size} valid fingerprint(s), need at least 2")


class MissingOutputTarget(IlytixError):
    """Raised when results exist but no output location was given."""

    exit_code = 2


class QueryDecodeError(IlytixError):
    """Raised when the retrieval query image cannot be decoded."""

    def __init__(self, path: Path | str, reason: str) -> None:
        self.path = Path(path)
        super().__init__(f"Cannot decode query image {self.path}: {reason}")


class StagingError(IlytixError):
    """Raised when copying or moving a result file fails."""


class DuplicateKeyError(KeyError):
    """Raised when an id is registered twice in a similarity index."""
