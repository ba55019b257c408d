from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Sequence, Tuple

# latency value recorded when no measurement could be taken at all
FAILED_LATENCY = -1


def truncate_to_minute(ts: datetime) -> int:
    """Unix seconds of `ts` with seconds and sub-seconds dropped."""
    unix = int(ts.timestamp())
    return unix - unix % 60


@dataclass(frozen=True)
class BenchmarkResult:
    name: str
    latency_ms: int
    started_at: datetime


@dataclass
class Bucket:
    key: int
    samples: Dict[str, int] = field(default_factory=dict)

    def is_complete(self, names: Sequence[str]) -> bool:
        return all(n in self.samples for n in names)

    def row(self, names: Sequence[str]) -> List[int]:
        # 0 marks "not measured yet" in rendered output
        return [self.samples.get(n, 0) for n in names]


@dataclass(frozen=True)
class Snapshot:
    names: Tuple[str, ...]
    buckets: Tuple[Bucket, ...]
    generated_at: datetime

    def as_dict(self) -> dict:
        return {
            "names": list(self.names),
            "generated_at": self.generated_at.isoformat(timespec="seconds"),
            "rows": [
                {"ts": b.key, "latency_ms": b.row(self.names)}
                for b in self.buckets
            ],
        }
