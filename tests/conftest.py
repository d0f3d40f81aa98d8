"""Shared fixtures: controllable clock, JSON store in tmp_path, wired services."""

from datetime import datetime, timedelta

import pytest

from timebill.services.workflow_service import WorkflowService
from timebill.storage.json_repo import JsonStore


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 3, 10, 9, 0))


@pytest.fixture
def store(tmp_path):
    return JsonStore(tmp_path / "data")


@pytest.fixture
def app(store, clock):
    return WorkflowService(store, clock=clock)


@pytest.fixture
def acme(app):
    return app.add_client("Acme", 50.0)


def at(hour: int, minute: int = 0, day: int = 10) -> datetime:
    return datetime(2025, 3, day, hour, minute)
