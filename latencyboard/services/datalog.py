import logging
import os
from datetime import date, datetime
from pathlib import Path
from typing import Optional, TextIO

from ..errors import DurableLogError

logger = logging.getLogger(__name__)


def segment_name(day: date) -> str:
    return f"data.{day:%Y-%m-%d}.csv"


def format_record(timestamp: int, name: str, latency_ms: int) -> str:
    return f"{timestamp},{name},{latency_ms}\n"


class DurableLog:
    """Day-partitioned append-only CSV log of raw results.

    Holds at most one open segment. Every record is written and flushed on
    its own, so a crash can only lose the write in flight.
    """

    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir)
        self._fh: Optional[TextIO] = None
        self._path: Optional[Path] = None

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def current_segment_for(self, now: datetime) -> Path:
        return self.base_dir / segment_name(now.date())

    def rotate(self, now: Optional[datetime] = None) -> TextIO:
        target = self.current_segment_for(now or datetime.now())
        if self._fh is not None and self._path == target:
            return self._fh
        try:
            self._close_current()
            self._fh = open(target, "a", encoding="utf-8")
            self._path = target
            self._sync_dir()
        except OSError as e:
            raise DurableLogError(f"rotate to {target}: {e}") from e
        logger.info("rotate to %s", target.name)
        return self._fh

    def append(self, timestamp: int, name: str, latency_ms: int) -> None:
        fh = self._fh if self._fh is not None else self.rotate()
        try:
            fh.write(format_record(timestamp, name, latency_ms))
            fh.flush()
        except OSError as e:
            raise DurableLogError(f"write {self._path}: {e}") from e

    def close(self) -> None:
        try:
            self._close_current()
        except OSError as e:
            raise DurableLogError(f"close {self._path}: {e}") from e

    def _close_current(self) -> None:
        if self._fh is None:
            return
        fh, self._fh, self._path = self._fh, None, None
        try:
            fh.flush()
            os.fsync(fh.fileno())
        finally:
            fh.close()

    def _sync_dir(self) -> None:
        # new directory entries are only durable once the directory is synced
        if not hasattr(os, "O_DIRECTORY"):
            return
        fd = os.open(self.base_dir, os.O_RDONLY | os.O_DIRECTORY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
