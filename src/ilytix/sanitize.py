"""Integrity checking: per-file classification for the ``check`` command."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from .codec import extension_for, format_from_suffix, guess_format, open_image
from .errors import DecodeError, FormatError, UnreadableImageError
from .logging import get_logger
from .reporting import NullReporter, Reporter
from .staging import make_folders, save, unique_destination

logger = get_logger(__name__)

SAVEOUT_VALID = "Intact"
SAVEOUT_INCORRECT = "Incorrect"
SAVEOUT_RECTIFIED = "Rectified"
SAVEOUT_DEPRECATED = "Deprecated Or Unsupported"

# formats Pillow reports separately that share a file extension
_SUFFIX_ALIASES = {"MPO": "JPEG"}


@dataclass(frozen=True)
class IncorrectSuffix:
    """A decodable image whose extension disagrees with its actual format."""
    path: Path
    actual_format: str
    rectified_name: str


@dataclass
class IntegrityReport:
    intact: List[Path] = field(default_factory=list)
    incorrect: List[IncorrectSuffix] = field(default_factory=list)
    deprecated: List[UnreadableImageError] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.intact) + len(self.incorrect) + len(self.deprecated)

    def is_ok(self) -> bool:
        return not self.incorrect and not self.deprecated


def check_integrity(paths: Sequence[Path], reporter: Optional[Reporter] = None) -> IntegrityReport:
    """Decode every file and sort it into intact, incorrect-suffix or deprecated."""
    reporter = reporter or NullReporter()
    report = IntegrityReport()

    with reporter.progress(len(paths), "Integrity Checking") as bar:
        for path in paths:
            bar.update(1)
            path = Path(path)
            try:
                actual = guess_format(path)
            except (DecodeError, FormatError) as exc:
                logger.debug(f"{path}: {exc.reason}")
                report.deprecated.append(exc)
                continue

            claimed = format_from_suffix(path)
            if actual and claimed != _SUFFIX_ALIASES.get(actual, actual):
                rectified = f"{path.stem}.{extension_for(actual)}"
                logger.debug(f"{path}: suffix says {claimed}, content is {actual}")
                report.incorrect.append(IncorrectSuffix(path, actual, rectified))
            else:
                report.intact.append(path)

    reporter.success("Found", f"x{report.total}")
    reporter.success("", SAVEOUT_VALID, f"x{len(report.intact)}")
    reporter.success("", SAVEOUT_INCORRECT, f"x{len(report.incorrect)}")
    reporter.success("", SAVEOUT_DEPRECATED, f"x{len(report.deprecated)}")
    return report


def stage_integrity(
    report: IntegrityReport,
    output: Path,
    move: bool = False,
    reporter: Optional[Reporter] = None,
) -> Path:
    """
    Write the check results under a fresh ``output`` folder.

    Incorrect files are re-encoded under their rectified name before the
    original is staged; a failed re-encode leaves the original untouched.

    Raises:
        StagingError: on copy/move failure (remaining saves are abandoned)
    """
    reporter = reporter or NullReporter()
    saveout = make_folders(output)

    with reporter.progress(report.total, "Saving(Move)" if move else "Saving(Copy)") as bar:
        if report.intact:
            valid_dir = saveout / SAVEOUT_VALID
            valid_dir.mkdir()
            for path in report.intact:
                save(path, valid_dir, move)
                bar.update(1)

        if report.deprecated:
            deprecated_dir = saveout / SAVEOUT_DEPRECATED
            deprecated_dir.mkdir()
            for error in report.deprecated:
                save(error.path, deprecated_dir, move)
                bar.update(1)

        if report.incorrect:
            incorrect_dir = saveout / SAVEOUT_INCORRECT
            rectified_dir = saveout / SAVEOUT_RECTIFIED
            incorrect_dir.mkdir()
            rectified_dir.mkdir()
            for item in report.incorrect:
                bar.update(1)
                if _rectify(item, rectified_dir):
                    save(item.path, incorrect_dir, move)
                else:
                    reporter.warn("Failed to save", item.rectified_name, str(item.path))

    reporter.success("Results saved at", str(saveout.resolve()))
    return saveout


def _rectify(item: IncorrectSuffix, rectified_dir: Path) -> bool:
    dst = unique_destination(rectified_dir, item.rectified_name)
    try:
        with open_image(item.path) as img:
            img.save(dst, format=item.actual_format)
    except (DecodeError, FormatError, OSError, ValueError, KeyError) as exc:
        logger.warning(f"Cannot re-encode {item.path} as {item.actual_format}: {exc}")
        return False
    return True
