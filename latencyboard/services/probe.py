import asyncio
import logging
import time
from typing import Awaitable, Callable, NamedTuple, Optional, Tuple

import httpx

from ..models import FAILED_LATENCY
from ..schemas import SiteConfig

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_S = 5.0
RESPONSE_TIMEOUT_S = 10.0
EXPECTED_STATUS = 204

MAX_ATTEMPTS = 3
# each attempt owns a 15 s slot measured from its own start
ATTEMPT_SLOT_S = 15


class ProbeOutcome(NamedTuple):
    latency_ms: int
    ok: bool
    error: Optional[str] = None


class ProbeRunner:
    """One connectivity check through a proxy.

    `locator` is a proxy URL understood by httpx (http://, socks5://...).
    The check URL must answer 204; anything else counts as a failure, but the
    measured round trip is still reported.
    """

    def __init__(self, check_url: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.check_url = check_url
        self._transport = transport
        self._timeout = httpx.Timeout(RESPONSE_TIMEOUT_S, connect=CONNECT_TIMEOUT_S)

    def _client(self, locator: str) -> httpx.AsyncClient:
        if self._transport is not None:
            return httpx.AsyncClient(transport=self._transport, timeout=self._timeout)
        return httpx.AsyncClient(proxy=locator, timeout=self._timeout, trust_env=False)

    async def probe(self, locator: str) -> ProbeOutcome:
        try:
            client = self._client(locator)
        except (ValueError, httpx.InvalidURL) as ex:
            return ProbeOutcome(FAILED_LATENCY, False, str(ex))

        async with client:
            started = time.monotonic()
            try:
                r = await client.get(self.check_url)
            except httpx.HTTPError as ex:
                latency_ms = int((time.monotonic() - started) * 1000)
                return ProbeOutcome(latency_ms, False, f"{type(ex).__name__}: {ex}")
            latency_ms = int((time.monotonic() - started) * 1000)

        if r.status_code != EXPECTED_STATUS:
            return ProbeOutcome(
                latency_ms, False,
                f"return {r.status_code} {r.reason_phrase} but not {EXPECTED_STATUS}",
            )
        return ProbeOutcome(latency_ms, True)


class RetryingProber:
    """Bounded retries paced by a per-attempt deadline.

    A failed attempt is followed by a sleep until `ATTEMPT_SLOT_S` whole
    seconds have passed since that attempt started; slow attempts shorten
    the sleep and attempts that already used the slot skip it.
    """

    def __init__(
        self,
        runner: ProbeRunner,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.runner = runner
        self._sleep = sleep
        self._clock = clock

    def _remaining(self, attempt_start: int) -> int:
        return ATTEMPT_SLOT_S - (int(self._clock()) - attempt_start)

    async def measure(self, site: SiteConfig) -> Tuple[int, bool]:
        logger.info("testing %s", site.name)
        latency_ms = FAILED_LATENCY
        for attempt in range(1, MAX_ATTEMPTS + 1):
            attempt_start = int(self._clock())
            try:
                latency_ms, ok, err = await self.runner.probe(site.url)
            except Exception as ex:
                logger.exception("#%d %s probe raised", attempt, site.name)
                latency_ms, ok, err = FAILED_LATENCY, False, f"{type(ex).__name__}: {ex}"
            if ok:
                logger.info("#%d %s rt: %d ms", attempt, site.name, latency_ms)
                return latency_ms, True

            remain = self._remaining(attempt_start) if attempt < MAX_ATTEMPTS else 0
            logger.warning(
                "#%d %s rt: %d ms, error: %s, sleep %ds",
                attempt, site.name, latency_ms, err, max(remain, 0),
            )
            if remain > 0:
                await self._sleep(remain)
        return latency_ms, False
