from __future__ import annotations

import asyncio
import datetime as dt
import json
import logging
from typing import Dict, Optional

from ..schemas import Coordinates, RouteLeg
from ..store import KeyValueStore

logger = logging.getLogger(__name__)

GEOCODE_PREFIX = 'geocode:'
ROUTE_PREFIX = 'route:'


def normalize_address(address: Optional[str]) -> str:
    return ' '.join((address or '').split()).casefold()


def minute_bucket(departure: dt.datetime) -> str:
    """UTC timestamp truncated to the minute; naive datetimes count as UTC."""
    if departure.tzinfo is None:
        departure = departure.replace(tzinfo=dt.timezone.utc)
    return departure.astimezone(dt.timezone.utc).strftime('%Y-%m-%dT%H:%M')


def geocode_key(address: Optional[str]) -> str:
    return GEOCODE_PREFIX + normalize_address(address)


def route_key(origin: Optional[str], destination: Optional[str], departure: dt.datetime) -> str:
    return f'{ROUTE_PREFIX}{normalize_address(origin)}|{normalize_address(destination)}|{minute_bucket(departure)}'


class GeoRouteCache:
    """Durable geocode and route cache backed by an injected key-value store.

    Geocodes are kept indefinitely since addresses do not move. Routes are
    keyed by origin, destination and the departure minute, so near-identical
    trial timestamps share one entry.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._lock = asyncio.Lock()
        self.hits = 0
        self.misses = 0

    async def get_coordinates(self, address: str) -> Optional[Coordinates]:
        async with self._lock:
            raw = await self._store.get(geocode_key(address))
        if raw is None:
            self.misses += 1
            return None
        self.hits += 1
        return Coordinates.model_validate_json(raw)

    async def put_coordinates(self, address: str, coords: Coordinates) -> None:
        async with self._lock:
            await self._store.set(geocode_key(address), coords.model_dump_json())

    async def get_route(self, origin: str, destination: str, departure: dt.datetime) -> Optional[RouteLeg]:
        async with self._lock:
            raw = await self._store.get(route_key(origin, destination, departure))
        if raw is None:
            self.misses += 1
            return None
        self.hits += 1
        return RouteLeg.model_validate_json(raw)

    async def put_route(self, origin: str, destination: str, departure: dt.datetime, leg: RouteLeg) -> None:
        if leg.is_fallback:
            return
        async with self._lock:
            await self._store.set(route_key(origin, destination, departure), leg.model_dump_json())

    async def dump(self) -> str:
        entries: Dict[str, object] = {}
        async with self._lock:
            for prefix in (GEOCODE_PREFIX, ROUTE_PREFIX):
                for key in await self._store.keys(prefix):
                    raw = await self._store.get(key)
                    if raw is not None:
                        entries[key] = json.loads(raw)
        return json.dumps(entries, ensure_ascii=False, sort_keys=True)

    async def load(self, text: str) -> int:
        """Merge a ``dump()`` document into the store; returns the entry count."""
        entries = json.loads(text or '{}')
        if not isinstance(entries, dict):
            raise ValueError('cache document must be a JSON object')
        count = 0
        async with self._lock:
            for key, value in entries.items():
                if key.startswith(GEOCODE_PREFIX):
                    payload = Coordinates.model_validate(value).model_dump_json()
                elif key.startswith(ROUTE_PREFIX):
                    payload = RouteLeg.model_validate(value).model_dump_json()
                else:
                    logger.warning('cache.load skipping unknown key=%s', key)
                    continue
                await self._store.set(key, payload)
                count += 1
        return count

    async def clear(self) -> None:
        async with self._lock:
            for prefix in (GEOCODE_PREFIX, ROUTE_PREFIX):
                for key in await self._store.keys(prefix):
                    await self._store.delete(key)
