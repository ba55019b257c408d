import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Sequence, Set

from ..models import FAILED_LATENCY, BenchmarkResult
from ..schemas import SiteConfig
from .probe import RetryingProber

logger = logging.getLogger(__name__)

ROUND_PERIOD_S = 60


class ProbeScheduler:
    """Starts one probe task per site every round.

    Rounds are not joined: a site still retrying when the next round starts
    keeps going and reports against its own round start time.
    """

    def __init__(
        self,
        sites: Sequence[SiteConfig],
        prober: RetryingProber,
        queue: "asyncio.Queue[BenchmarkResult]",
        period_s: float = ROUND_PERIOD_S,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.sites = list(sites)
        self.prober = prober
        self.queue = queue
        self.period_s = period_s
        self._now = now
        self._inflight: Set[asyncio.Task] = set()

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    async def _probe_site(self, site: SiteConfig, round_start: datetime) -> None:
        try:
            latency_ms, _ = await self.prober.measure(site)
        except Exception:
            logger.exception("probe task for %s failed", site.name)
            latency_ms = FAILED_LATENCY
        await self.queue.put(BenchmarkResult(site.name, latency_ms, round_start))

    def start_round(self) -> List[asyncio.Task]:
        round_start = self._now()
        tasks = []
        for site in self.sites:
            task = asyncio.create_task(
                self._probe_site(site, round_start), name=f"probe:{site.name}"
            )
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            tasks.append(task)
        return tasks

    async def run(self) -> None:
        while True:
            self.start_round()
            await asyncio.sleep(self.period_s)
