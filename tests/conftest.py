from datetime import date, datetime, time

import pytest


class RecordingPublisher:
    def __init__(self):
        self.calls = []

    def publish(self, names, buckets):
        self.calls.append((tuple(names), tuple(buckets)))


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def noon():
    return datetime.combine(date.today(), time(12, 0, 0))
