"""User-facing progress and summary output.

Components receive a ``Reporter`` explicitly instead of printing, so library
callers and tests can run silently with ``NullReporter``.
"""

from __future__ import annotations

import sys
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator, Protocol

import typer
from tqdm import tqdm


class Progress(Protocol):
    def update(self, n: int = 1) -> object: ...


class _NoProgress:
    def update(self, n: int = 1) -> None:
        return None


def safe_echo(message: str, err: bool = False) -> None:
    """Echo message with ASCII fallback for consoles without Unicode support."""
    try:
        typer.echo(message, err=err)
    except UnicodeEncodeError:
        fallback_message = (
            message.replace("✔", "[OK]")
            .replace("✘", "[X]")
            .replace("⚠", "[!]")
            .replace("·", "-")
            .replace("›", ">")
            .replace("🎉", "")
        )
        try:
            typer.echo(fallback_message, err=err)
        except UnicodeEncodeError:
            print("Output contains unsupported characters")


class Reporter(ABC):
    @abstractmethod
    def success(self, title: str, key: str = "", value: str = "") -> None:
        """Report a completed step or a summary line."""

    @abstractmethod
    def warn(self, title: str, key: str = "", value: str = "") -> None:
        """Report a recoverable problem."""

    @abstractmethod
    def fail(self, title: str, key: str = "", value: str = "") -> None:
        """Report a fatal problem; the caller decides how to stop."""

    @abstractmethod
    def note(self, message: str) -> None:
        """Free-form message, e.g. the all-clear at the end of a run."""

    @abstractmethod
    @contextmanager
    def progress(self, total: int, label: str) -> Iterator[Progress]:
        """Context manager around a counted phase."""


class NullReporter(Reporter):
    def success(self, title: str, key: str = "", value: str = "") -> None:
        pass

    def warn(self, title: str, key: str = "", value: str = "") -> None:
        pass

    def fail(self, title: str, key: str = "", value: str = "") -> None:
        pass

    def note(self, message: str) -> None:
        pass

    @contextmanager
    def progress(self, total: int, label: str) -> Iterator[Progress]:
        yield _NoProgress()


class ConsoleReporter(Reporter):
    """Prints ``✔  Title · key › value`` lines and tqdm progress bars."""

    def __init__(self, show_progress: bool = True) -> None:
        self.show_progress = show_progress

    @staticmethod
    def _format(mark: str, title: str, key: str, value: str) -> str:
        line = f"{mark}  {title}" if title else "   "
        if key:
            line += f" · {key}"
        if value:
            line += f" › {value}"
        return line

    def success(self, title: str, key: str = "", value: str = "") -> None:
        safe_echo(self._format("✔", title, key, value))

    def warn(self, title: str, key: str = "", value: str = "") -> None:
        safe_echo(self._format("⚠", title, key, value))

    def fail(self, title: str, key: str = "", value: str = "") -> None:
        safe_echo(self._format("✘", title, key, value), err=True)

    def note(self, message: str) -> None:
        safe_echo(message)

    @contextmanager
    def progress(self, total: int, label: str) -> Iterator[Progress]:
        if not self.show_progress:
            yield _NoProgress()
            return
        bar = tqdm(total=total, desc=label, unit="img", file=sys.stderr, leave=False)
        try:
            yield bar
        finally:
            bar.close()
