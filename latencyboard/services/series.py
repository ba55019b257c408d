import copy
from bisect import bisect_left
from typing import Iterator, List, Optional, Tuple

from ..models import Bucket


class Series:
    """Minute buckets, newest first, at most `capacity` of them.

    Keys are strictly descending; order comes from where a bucket is
    inserted, the list is never sorted.
    """

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._buckets: List[Bucket] = []

    def __len__(self) -> int:
        return len(self._buckets)

    def __iter__(self) -> Iterator[Bucket]:
        return iter(self._buckets)

    def __getitem__(self, i: int) -> Bucket:
        return self._buckets[i]

    @property
    def full(self) -> bool:
        return len(self._buckets) >= self.capacity

    def keys(self) -> List[int]:
        return [b.key for b in self._buckets]

    def search(self, key: int) -> int:
        """First index whose bucket key is <= `key`."""
        return bisect_left(self._buckets, -key, key=lambda b: -b.key)

    def insert(self, key: int, name: str, latency_ms: int) -> Optional[int]:
        """Record one sample; return the index of its bucket.

        Returns None when the sample belongs to a bucket older than
        everything the series can hold.
        """
        i = self.search(key)
        if i < len(self._buckets) and self._buckets[i].key == key:
            self._buckets[i].samples[name] = latency_ms
            return i

        self._buckets.insert(i, Bucket(key, {name: latency_ms}))
        if len(self._buckets) > self.capacity:
            del self._buckets[self.capacity:]
            if i >= self.capacity:
                return None
        return i

    def snapshot(self) -> Tuple[Bucket, ...]:
        return tuple(copy.deepcopy(self._buckets))
