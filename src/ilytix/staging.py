"""Result staging: unique output folders and copy/move of result files."""

from __future__ import annotations

import shutil
from pathlib import Path

from .errors import StagingError
from .logging import get_logger

logger = get_logger(__name__)


def make_folders(target: Path | str) -> Path:
    """
    Create a fresh output directory.

    If ``target`` already exists, ``-1``, ``-2``, ... is appended to its name
    until an unused path is found, so earlier results are never mixed with
    the current run.
    """
    target = Path(target)
    if not target.name:
        raise StagingError(f"Cannot make folders for path without a name: {target}")

    saveout = target
    counter = 1
    while saveout.exists():
        saveout = target.with_name(f"{target.name}-{counter}")
        counter += 1

    try:
        saveout.mkdir(parents=True)
    except OSError as exc:
        raise StagingError(f"Cannot create output directory {saveout}: {exc}") from exc

    logger.debug(f"Created output directory {saveout}")
    return saveout


def unique_destination(dst_dir: Path, filename: str) -> Path:
    """Path for ``filename`` inside ``dst_dir`` that does not exist yet."""
    candidate = dst_dir / filename
    stem, suffix = Path(filename).stem, Path(filename).suffix
    counter = 1
    while candidate.exists():
        candidate = dst_dir / f"{stem}-{counter}{suffix}"
        counter += 1
    return candidate


def save(src: Path, dst_dir: Path, move: bool = False) -> Path:
    """
    Copy (or move) ``src`` into ``dst_dir`` keeping its file name.

    Files coming from different sub-folders of a recursive walk can share a
    name; later ones get a numeric suffix instead of overwriting.

    Raises:
        StagingError: on any file-system failure
    """
    src = Path(src)
    dst = unique_destination(Path(dst_dir), src.name)
    try:
        if move:
            shutil.move(str(src), str(dst))
        else:
            shutil.copy2(src, dst)
    except OSError as exc:
        action = "moving" if move else "copying"
        raise StagingError(f"Error when {action} {src} -> {dst}: {exc}") from exc

    logger.debug(f"{'Moved' if move else 'Copied'} {src} -> {dst}")
    return dst
