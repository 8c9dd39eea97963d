"""
Progress reporting for batch runs.

Wraps tqdm so the runner can report per-terrace progress from worker
callbacks, and can be silenced for tests and cron jobs.

Usage:
    from apero_soleil.progress import get_progress_iterator, ProgressReporter

    for terrace in get_progress_iterator(terraces, desc="Resolving heights"):
        resolve(terrace)

    progress = ProgressReporter(total=len(futures), desc="Raytracing")
    for future in as_completed(futures):
        progress.update(1)
    progress.close()
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import TypeVar

from tqdm import tqdm

from .soleil_logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ProgressReporter:
    """
    Progress reporter backed by a tqdm bar, or silent when disabled.

    Args:
        total: Total number of steps.
        desc: Description shown in progress bar.
        disable: If True, disable all progress output.
    """

    def __init__(self, total: int, desc: str = "", disable: bool = False):
        self.total = total
        self.desc = desc
        self.current = 0
        self.disable = disable
        self._closed = False
        self._bar = None

        if disable:
            return
        self._bar = tqdm(total=total, desc=desc)

    def update(self, n: int = 1) -> None:
        """Update progress by n steps."""
        if self._closed:
            return

        self.current += n
        if self._bar is not None:
            self._bar.update(n)

    def set_description(self, desc: str) -> None:
        """Update the progress description."""
        self.desc = desc
        if self._bar is not None:
            self._bar.set_description(desc)

    @property
    def fraction(self) -> float:
        """Completed fraction in [0, 1]."""
        if self.total <= 0:
            return 0.0
        return min(1.0, self.current / self.total)

    def close(self) -> None:
        """Close the progress bar."""
        if self._closed:
            return
        self._closed = True

        if self._bar is not None:
            self._bar.close()
        logger.debug(f"{self.desc or 'progress'}: {self.current}/{self.total}")


class _ProgressIterator(Iterator[T]):
    """Iterator wrapper that reports progress."""

    def __init__(self, iterable: Iterable[T], reporter: ProgressReporter):
        self._iterator = iter(iterable)
        self._reporter = reporter

    def __iter__(self) -> _ProgressIterator[T]:
        return self

    def __next__(self) -> T:
        try:
            item = next(self._iterator)
            self._reporter.update(1)
            return item
        except StopIteration:
            self._reporter.close()
            raise


def get_progress_iterator(
    iterable: Iterable[T],
    desc: str = "",
    total: int | None = None,
    disable: bool = False,
) -> Iterator[T]:
    """
    Wrap an iterable with progress reporting.

    Args:
        iterable: The iterable to wrap.
        desc: Description for the progress bar.
        total: Total number of items (computed from len() if not provided).
        disable: If True, disable progress output entirely.

    Returns:
        Iterator that reports progress as items are consumed.
    """
    if total is None:
        try:
            total = len(iterable)  # type: ignore
        except TypeError:
            total = 0

    reporter = ProgressReporter(total=total, desc=desc, disable=disable)
    return _ProgressIterator(iterable, reporter)
