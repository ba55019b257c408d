import asyncio
from datetime import datetime, timedelta

from latencyboard.models import FAILED_LATENCY
from latencyboard.schemas import SiteConfig
from latencyboard.services.scheduler import ProbeScheduler

SITES = [SiteConfig(name=n, url=f"http://{n.lower()}:3128") for n in ("A", "B", "C")]
T0 = datetime(2024, 3, 7, 12, 0, 1)
T1 = T0 + timedelta(minutes=1)


class FakeProber:
    """A answers at once, C crashes, a gated site waits for its event once."""

    def __init__(self, gates=None):
        self.gates = dict(gates or {})

    async def measure(self, site):
        gate = self.gates.pop(site.name, None)
        if gate is not None:
            await gate.wait()
            return 9000, False
        if site.name == "C":
            raise RuntimeError("probe crashed")
        return 120, True


def drain(queue):
    out = []
    while not queue.empty():
        out.append(queue.get_nowait())
    return out


def test_round_emits_one_result_per_site():
    async def scenario():
        queue = asyncio.Queue()
        sched = ProbeScheduler(SITES, FakeProber(), queue, now=lambda: T0)
        await asyncio.gather(*sched.start_round())
        return drain(queue), sched.inflight

    results, inflight = asyncio.run(scenario())
    by_name = {r.name: r for r in results}
    assert len(results) == 3
    assert sorted(by_name) == ["A", "B", "C"]
    assert all(r.started_at == T0 for r in results)
    assert by_name["A"].latency_ms == 120
    assert by_name["C"].latency_ms == FAILED_LATENCY
    assert inflight == 0


def test_slow_site_reports_against_its_own_round():
    starts = iter([T0, T1])

    async def scenario():
        gate = asyncio.Event()
        queue = asyncio.Queue()
        sched = ProbeScheduler(SITES[:2], FakeProber({"B": gate}), queue, now=lambda: next(starts))

        first = sched.start_round()
        await asyncio.sleep(0)
        second = sched.start_round()
        await asyncio.gather(*second)
        fast, inflight = drain(queue), sched.inflight

        gate.set()
        await asyncio.gather(*first)
        return fast, inflight, drain(queue)

    fast, inflight, late = asyncio.run(scenario())
    assert {(r.name, r.started_at) for r in fast} == {("A", T0), ("A", T1), ("B", T1)}
    assert inflight == 1
    assert [(r.name, r.started_at, r.latency_ms) for r in late] == [("B", T0, 9000)]


def test_run_starts_a_round_every_period():
    async def scenario():
        queue = asyncio.Queue()
        sched = ProbeScheduler(SITES[:1], FakeProber(), queue, period_s=0.01, now=lambda: T0)
        task = asyncio.create_task(sched.run())
        while queue.qsize() < 3:
            await asyncio.sleep(0.005)
        task.cancel()
        return drain(queue)

    results = asyncio.run(scenario())
    assert len(results) >= 3
    assert {r.name for r in results} == {"A"}
