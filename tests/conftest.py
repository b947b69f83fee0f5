from __future__ import annotations

from datetime import date, datetime, timezone
from typing import List

import pytest

from everon.adapters.store import MemoryRegistrationStore
from everon.services.chat_io import telemetry as tm
from everon.services.chat_io.interfaces import ChatOutputEvent
from everon.services.registration import RegistrationRecord, RegistrationService, hash_code

SECRET = "S"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clean_telemetry():
    tm.reset()
    yield
    tm.reset()


class FixedClock:
    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment

    def set_day(self, day: date) -> None:
        self.moment = datetime(day.year, day.month, day.day, 12, 0, tzinfo=timezone.utc)


class RecordingSender:
    """ChatSender double that keeps every output event."""

    def __init__(self) -> None:
        self.sent: List[ChatOutputEvent] = []
        self.callbacks: List[str] = []

    async def send(self, out: ChatOutputEvent) -> None:
        self.sent.append(out)

    async def answer_callback(self, callback_id: str) -> None:
        self.callbacks.append(callback_id)

    @property
    def messages(self):
        return [m for out in self.sent for m in out.messages]


def record_for(code: str, **kwargs) -> RegistrationRecord:
    return RegistrationRecord(code_hash=hash_code(code, SECRET), **kwargs)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store() -> MemoryRegistrationStore:
    return MemoryRegistrationStore([record_for("ABC123")])


@pytest.fixture
def service(store, clock) -> RegistrationService:
    return RegistrationService(store=store, secret=SECRET, clock=clock)
