"""
Copy Progress Accounting

BatchCopier reports progress through a ProgressObserver so the copy loop
does not care whether progress ends up in the log, a metrics sink or
nowhere. Percentages are computed against a row count taken once before
the copy starts; concurrent writers on the source can make that estimate
wrong, in which case a warning is logged and nothing above 100% is emitted.
"""

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple
import logging
import time

logger = logging.getLogger(__name__)

PROGRESS_STEP_PERCENT = 5


@dataclass
class CopyProgress:
    """Running row accounting for one table copy."""

    table: str
    total_rows: int
    processed_rows: int = 0
    start_time: float = field(default_factory=time.monotonic)

    @property
    def percent(self) -> Optional[int]:
        """Integer percentage of the estimate, None when the estimate is zero."""
        if self.total_rows <= 0:
            return None
        return (self.processed_rows * 100) // self.total_rows


@dataclass(frozen=True)
class ProgressEvent:
    """A progress report emitted at a percentage boundary."""

    table: str
    percent: int
    processed_rows: int
    total_rows: int
    elapsed_seconds: float
    rows_per_second: float
    remaining_seconds: float


class ProgressObserver:
    """Receives progress callbacks from BatchCopier. Methods are no-ops by default."""

    def on_start(self, progress: CopyProgress) -> None:
        pass

    def on_progress(self, event: ProgressEvent) -> None:
        pass

    def on_complete(self, progress: CopyProgress, elapsed_seconds: float) -> None:
        pass


class NullProgressObserver(ProgressObserver):
    """Discards all progress reports."""


class LoggingProgressObserver(ProgressObserver):
    """Writes progress reports to the log."""

    def on_start(self, progress: CopyProgress) -> None:
        logger.info(f"Starting transfer of {progress.table} ({progress.total_rows:,} rows total)")

    def on_progress(self, event: ProgressEvent) -> None:
        logger.info(
            f"Progress {event.table}: {event.percent}% "
            f"({event.processed_rows:,}/{event.total_rows:,} rows) - "
            f"{event.rows_per_second:,.0f} rows/sec - "
            f"remaining: {event.remaining_seconds:.0f}s"
        )

    def on_complete(self, progress: CopyProgress, elapsed_seconds: float) -> None:
        logger.info(
            f"Completed transfer of {progress.table}: "
            f"{progress.processed_rows:,} rows in {elapsed_seconds:.2f}s"
        )


class RecordingProgressObserver(ProgressObserver):
    """Keeps every callback in memory, for tests or for forwarding to a metrics sink."""

    def __init__(self):
        self.started: List[CopyProgress] = []
        self.events: List[ProgressEvent] = []
        self.completed: List[Tuple[str, int]] = []

    def on_start(self, progress: CopyProgress) -> None:
        self.started.append(progress)

    def on_progress(self, event: ProgressEvent) -> None:
        self.events.append(event)

    def on_complete(self, progress: CopyProgress, elapsed_seconds: float) -> None:
        self.completed.append((progress.table, progress.processed_rows))

    @property
    def percentages(self) -> List[int]:
        return [event.percent for event in self.events]


class ProgressTracker:
    """
    Counts rows for one table and emits an event on each new 5% boundary.

    Emitted percentages are strictly increasing multiples of
    PROGRESS_STEP_PERCENT and never exceed 100.
    """

    def __init__(
        self,
        table: str,
        total_rows: int,
        observer: ProgressObserver,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._observer = observer
        self._clock = clock
        self.progress = CopyProgress(table=table, total_rows=total_rows, start_time=clock())
        self._last_emitted = 0
        self._overrun_warned = False
        self._observer.on_start(self.progress)

    def advance(self, rows: int = 1) -> None:
        self.progress.processed_rows += rows
        percent = self.progress.percent
        if percent is None:
            return

        if percent > 100:
            if not self._overrun_warned:
                logger.warning(
                    f"{self.progress.table}: copied more rows than the {self.progress.total_rows:,} "
                    f"counted before the copy started; the source is being written to concurrently"
                )
                self._overrun_warned = True
            return

        if percent % PROGRESS_STEP_PERCENT == 0 and percent > self._last_emitted:
            self._last_emitted = percent
            self._observer.on_progress(self._event(percent))

    def finish(self) -> float:
        """Report completion and return elapsed seconds."""
        elapsed = self.elapsed()
        estimate_missed = self.progress.total_rows > 0 and \
            self.progress.processed_rows != self.progress.total_rows
        if estimate_missed and not self._overrun_warned:
            logger.warning(
                f"{self.progress.table}: copied {self.progress.processed_rows:,} rows, "
                f"estimate was {self.progress.total_rows:,}"
            )
        self._observer.on_complete(self.progress, elapsed)
        return elapsed

    def elapsed(self) -> float:
        return max(self._clock() - self.progress.start_time, 0.0)

    def _event(self, percent: int) -> ProgressEvent:
        elapsed = self.elapsed()
        processed = self.progress.processed_rows
        rate = processed / elapsed if elapsed > 0 else 0.0
        remaining_rows = max(self.progress.total_rows - processed, 0)
        remaining = remaining_rows / rate if rate > 0 else 0.0
        return ProgressEvent(
            table=self.progress.table,
            percent=percent,
            processed_rows=processed,
            total_rows=self.progress.total_rows,
            elapsed_seconds=elapsed,
            rows_per_second=rate,
            remaining_seconds=remaining,
        )
