"""Input path discovery."""

from __future__ import annotations

import os
from pathlib import Path
from typing import List

from .errors import SourceError
from .logging import get_logger

logger = get_logger(__name__)


def _is_hidden(name: str) -> bool:
    return name.startswith('.')


def load_files(
    source: Path | str,
    recursive: bool = False,
    include_hidden: bool = False,
) -> List[Path]:
    """
    Collect candidate files under ``source`` in a stable order.

    A file source yields itself. A directory yields its regular files,
    sorted by name at every level, descending into subdirectories only when
    ``recursive`` is set. Symlinks and directories are never returned; hidden
    entries (and everything below a hidden directory) are skipped unless
    ``include_hidden`` is set.

    The returned order defines item ids downstream, so it must not depend on
    the file system's listing order.

    Raises:
        SourceError: if ``source`` does not exist or is a symlink
    """
    source = Path(source)
    if source.is_symlink():
        raise SourceError(f"Source is a symlink: {source}")
    if not source.exists():
        raise SourceError(f"Source does not exist: {source}")

    if source.is_file():
        logger.info(f"Source file: {source.resolve()}")
        return [source]

    paths: List[Path] = []
    _walk(source, recursive, include_hidden, paths)
    logger.info(f"Source folder: {source.resolve()} (recursive={recursive}): {len(paths)} files")
    return paths


def _walk(folder: Path, recursive: bool, include_hidden: bool, out: List[Path]) -> None:
    try:
        entries = sorted(os.scandir(folder), key=lambda entry: entry.name)
    except OSError as exc:
        logger.warning(f"Cannot list {folder}: {exc}")
        return

    for entry in entries:
        if not include_hidden and _is_hidden(entry.name):
            continue
        if entry.is_symlink():
            continue
        if entry.is_dir(follow_symlinks=False):
            if recursive:
                _walk(Path(entry.path), recursive, include_hidden, out)
            continue
        if entry.is_file(follow_symlinks=False):
            out.append(Path(entry.path))
