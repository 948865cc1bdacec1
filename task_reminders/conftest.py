from datetime import datetime, timedelta
from typing import List, Optional, Sequence

import pytest
import pytz

from task_reminders.core.models import CallResult
from task_reminders.store import InMemoryStore

NOW = datetime(2024, 5, 10, 12, 0, tzinfo=pytz.UTC)


class FrozenClock:
    """Callable clock that tests can move around."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeGateway:
    def __init__(self, failing: Sequence[str] = (), raising: Sequence[str] = ()):
        self.failing = set(failing)
        self.raising = set(raising)
        self.calls: List[str] = []
        self.callback_urls: List[Optional[str]] = []

    def place_call(self, phone: str, callback_url: Optional[str] = None) -> CallResult:
        self.calls.append(phone)
        self.callback_urls.append(callback_url)
        if phone in self.raising:
            raise RuntimeError("connection reset by peer")
        if phone in self.failing:
            return CallResult(success=False, status="failed", error="number unreachable")
        return CallResult(success=True, status="queued", call_sid=f"CA{len(self.calls):04d}")


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture()
def store(clock: FrozenClock) -> InMemoryStore:
    return InMemoryStore(timezone="UTC", clock=clock)


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()
