import logging
from datetime import date, timedelta
from pathlib import Path
from typing import Optional, Sequence

from .datalog import segment_name
from .series import Series

logger = logging.getLogger(__name__)


def _replay_segment(path: Path, names: frozenset, series: Series) -> int:
    applied = 0
    with open(path, "rb") as f:
        for lineno, raw in enumerate(f, start=1):
            try:
                line = raw.decode("utf-8")
            except UnicodeDecodeError as e:
                # a crash can cut a record in the middle of a multi-byte name
                logger.warning("%s:%d undecodable record: %s", path.name, lineno, e)
                continue
            parts = line.rstrip("\r\n").split(",", 2)
            if len(parts) != 3:
                if line.strip():
                    logger.warning("%s:%d malformed record %r", path.name, lineno, line)
                continue
            ts, name, latency = parts
            try:
                timestamp = int(ts)
                latency_ms = int(latency)
            except ValueError as e:
                logger.warning("%s:%d bad number: %s", path.name, lineno, e)
                continue
            if name not in names:
                logger.debug("%s:%d unknown target %s", path.name, lineno, name)
                continue
            series.insert(timestamp - timestamp % 60, name, latency_ms)
            applied += 1
    return applied


def load_history(
    base_dir: Path,
    names: Sequence[str],
    series: Series,
    today: Optional[date] = None,
) -> int:
    """Refill `series` from the newest segments backwards.

    Stops at the first missing day or once a segment leaves the series full.
    Returns how many records were applied.
    """
    known = frozenset(names)
    day = today or date.today()
    applied = 0
    while not series.full:
        path = Path(base_dir) / segment_name(day)
        if not path.is_file():
            logger.info("file %s not exist", path)
            break
        try:
            applied += _replay_segment(path, known, series)
        except OSError as e:
            logger.warning("read %s error: %s", path, e)
            break
        day -= timedelta(days=1)
    logger.info("loaded %d records into %d buckets", applied, len(series))
    return applied
