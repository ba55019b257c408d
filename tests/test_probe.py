import asyncio

import httpx

from latencyboard.models import FAILED_LATENCY
from latencyboard.services.probe import ProbeOutcome, ProbeRunner, RetryingProber
from latencyboard.schemas import SiteConfig

CHECK_URL = "http://connectivitycheck.gstatic.com/generate_204"
SITE = SiteConfig(name="A", url="http://proxy:3128")


def run_probe(handler, locator="http://proxy:3128"):
    runner = ProbeRunner(CHECK_URL, transport=httpx.MockTransport(handler))
    return asyncio.run(runner.probe(locator))


def test_probe_ok_on_204():
    out = run_probe(lambda request: httpx.Response(204))
    assert out.ok
    assert out.latency_ms >= 0
    assert out.error is None


def test_probe_fails_on_other_status():
    out = run_probe(lambda request: httpx.Response(200))
    assert not out.ok
    assert out.latency_ms >= 0
    assert "200" in out.error


def test_probe_fails_on_transport_error():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    out = run_probe(handler)
    assert not out.ok
    assert "ConnectTimeout" in out.error


def test_probe_rejects_unusable_locator():
    out = asyncio.run(ProbeRunner(CHECK_URL).probe("ss://aes-256-gcm:pw@1.2.3.4:8388"))
    assert out.latency_ms == FAILED_LATENCY
    assert not out.ok
    assert "scheme" in out.error.lower()


class FakeClock:
    def __init__(self, start=1_000_000.0):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class ScriptedRunner:
    """Replays (duration_s, outcome) pairs, advancing the fake clock."""

    def __init__(self, clock, script):
        self.clock = clock
        self.script = list(script)
        self.calls = 0

    async def probe(self, locator):
        duration, outcome = self.script[self.calls]
        self.calls += 1
        self.clock.now += duration
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def measure(script):
    clock = FakeClock()
    runner = ScriptedRunner(clock, script)
    prober = RetryingProber(runner, sleep=clock.sleep, clock=clock)
    return asyncio.run(prober.measure(SITE)), runner, clock


def test_success_first_attempt_returns_immediately():
    (latency, ok), runner, clock = measure([(0.2, ProbeOutcome(180, True))])
    assert (latency, ok) == (180, True)
    assert runner.calls == 1
    assert clock.sleeps == []


def test_failure_sleeps_until_attempt_slot_ends():
    (latency, ok), runner, clock = measure([
        (3, ProbeOutcome(3000, False, "boom")),
        (0.1, ProbeOutcome(90, True)),
    ])
    assert (latency, ok) == (90, True)
    assert clock.sleeps == [12]


def test_slow_attempt_skips_sleep_and_last_attempt_never_sleeps():
    (latency, ok), runner, clock = measure([
        (16, ProbeOutcome(10000, False, "read timeout")),
        (15, ProbeOutcome(10000, False, "read timeout")),
        (1, ProbeOutcome(FAILED_LATENCY, False, "refused")),
    ])
    assert (latency, ok) == (FAILED_LATENCY, False)
    assert runner.calls == 3
    assert clock.sleeps == []


def test_sleep_uses_whole_seconds():
    clock = FakeClock(start=1_000_000.9)
    runner = ScriptedRunner(clock, [
        (0.2, ProbeOutcome(200, False, "x")),
        (0.2, ProbeOutcome(200, False, "x")),
        (0.2, ProbeOutcome(200, False, "x")),
    ])
    prober = RetryingProber(runner, sleep=clock.sleep, clock=clock)
    assert asyncio.run(prober.measure(SITE)) == (200, False)
    # 1_000_000.9 -> 1_000_001.1 crosses a second boundary: 15 - 1
    assert clock.sleeps[0] == 14
    assert len(clock.sleeps) == 2


def test_unexpected_error_still_gets_all_attempts():
    (latency, ok), runner, clock = measure([
        (1, RuntimeError("proxy handshake bug")),
        (2, ProbeOutcome(5000, False, "timeout")),
        (0.1, ProbeOutcome(300, True)),
    ])
    assert (latency, ok) == (300, True)
    assert runner.calls == 3
    assert clock.sleeps == [14, 13]


def test_unexpected_error_on_last_attempt_reports_sentinel():
    (latency, ok), runner, clock = measure([
        (1, ProbeOutcome(900, False, "bad status")),
        (1, ProbeOutcome(900, False, "bad status")),
        (1, KeyError("boom")),
    ])
    assert (latency, ok) == (FAILED_LATENCY, False)
    assert runner.calls == 3
