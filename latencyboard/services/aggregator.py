import asyncio
import logging
from datetime import datetime
from typing import Callable, Protocol, Sequence

from ..models import Bucket, BenchmarkResult, truncate_to_minute
from .datalog import DurableLog
from .series import Series

logger = logging.getLogger(__name__)


class SnapshotPublisher(Protocol):
    def publish(self, names: Sequence[str], buckets: Sequence[Bucket]) -> None: ...


class Aggregator:
    """Sole consumer of benchmark results and sole writer of the series.

    Every result is persisted before it touches memory. A bucket is published
    once, when its last missing target arrives.
    """

    def __init__(
        self,
        names: Sequence[str],
        series: Series,
        log: DurableLog,
        publisher: SnapshotPublisher,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.names = tuple(names)
        self.series = series
        self.log = log
        self.publisher = publisher
        self._now = now

    def _complete_at(self, key: int) -> bool:
        i = self.series.search(key)
        if i < len(self.series) and self.series[i].key == key:
            return self.series[i].is_complete(self.names)
        return False

    def handle(self, result: BenchmarkResult) -> bool:
        """Persist and merge one result. True if it completed a bucket."""
        self.log.append(int(result.started_at.timestamp()), result.name, result.latency_ms)

        key = truncate_to_minute(result.started_at)
        was_complete = self._complete_at(key)
        i = self.series.insert(key, result.name, result.latency_ms)
        if i is None:
            logger.debug("%s sample for %d is older than the window", result.name, key)
            return False
        if was_complete or not self.series[i].is_complete(self.names):
            return False

        self.log.rotate(self._now())
        self.publisher.publish(self.names, self.series.snapshot())
        return True

    async def run(self, queue: "asyncio.Queue[BenchmarkResult]") -> None:
        try:
            while True:
                result = await queue.get()
                try:
                    self.handle(result)
                finally:
                    queue.task_done()
        finally:
            self.log.close()
