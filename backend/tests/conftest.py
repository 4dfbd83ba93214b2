import asyncio
import datetime as dt
import os
import sys
from pathlib import Path
from typing import List, Optional, Set

import pytest
from httpx import AsyncClient, ASGITransport

# Ensure the backend directory is on PYTHONPATH when pytest is run from repo root
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

# Ensure test env
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("ALLOWED_ORIGINS", "*")

from crawlplanner.errors import RoutingFailure  # noqa: E402
from crawlplanner.main import create_app  # noqa: E402
from crawlplanner.schemas import EventConfig, Participant, RouteLeg, RouteStep, TextValue  # noqa: E402
from crawlplanner.store import MemoryStore  # noqa: E402


class StubRouter:
    """Deterministic stand-in for RoutingClient.

    Leg duration depends only on the two addresses. Addresses listed in
    ``fail`` raise RoutingFailure; ``raise_on_calls`` lists call numbers
    (1-based) that raise RuntimeError instead.
    """

    def __init__(self, fail: Optional[Set[str]] = None, raise_on_calls: Optional[Set[int]] = None) -> None:
        self.fail = set(fail or ())
        self.raise_on_calls = set(raise_on_calls or ())
        self.calls: List[tuple] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.provider_calls = 0

    @staticmethod
    def duration(origin: Optional[str], destination: Optional[str]) -> int:
        return 60 + sum(ord(c) for c in f'{origin}->{destination}') % 900

    async def get_route(self, origin, destination, departure):
        self.calls.append((origin, destination, departure))
        self.provider_calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if len(self.calls) in self.raise_on_calls:
                raise RuntimeError('provider exploded')
            if origin in self.fail or destination in self.fail:
                raise RoutingFailure(origin, destination)
            seconds = self.duration(origin, destination)
            return RouteLeg(
                overall_mode='WALKING',
                total_duration=TextValue(text=f'{seconds // 60} mins', value=seconds),
                start_address=origin or '',
                end_address=destination or '',
                departure_time=departure.isoformat(),
                distance=TextValue(text='1.0 km', value=1000),
                steps=[RouteStep(
                    travel_mode='WALKING',
                    instructions=f'Walk to {destination}',
                    distance=TextValue(text='1.0 km', value=1000),
                    duration=TextValue(text=f'{seconds // 60} mins', value=seconds),
                )],
            )
        finally:
            self.in_flight -= 1

    async def aclose(self) -> None:
        return None


def make_participants(total: int, addressed: int) -> List[Participant]:
    people = []
    for i in range(total):
        address = f'{i + 1} Example Street' if i < addressed else None
        people.append(Participant(name=f'Runner {i + 1}', address=address))
    return people


@pytest.fixture
def stub_router():
    return StubRouter()


@pytest.fixture
def event_config():
    return EventConfig(
        start_address='Central Station',
        end_address='Town Square',
        start_datetime=dt.datetime(2026, 11, 7, 18, 0, tzinfo=dt.timezone.utc),
        time_per_stop_minutes=45,
        num_groups=6,
        num_stops=3,
    )


@pytest.fixture
def participants():
    return make_participants(12, 8)


@pytest.fixture
def app(stub_router):
    return create_app(store=MemoryStore(), client=stub_router)


@pytest.fixture
async def client(app):
    # lifespan is not run by ASGITransport; MemoryStore needs no connect()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
