import asyncio
import datetime as dt
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import httpx
from pydantic import ValidationError

from ..errors import GeocodeFailure, RoutingFailure
from ..schemas import (
    Coordinates,
    RouteLeg,
    RouteStep,
    TextValue,
    TransitDetails,
    TransitLine,
    TransitVehicle,
)
from ..settings import Settings, get_settings
from .cache import GeoRouteCache
from .geocoding import geocode_address

# Routing for one leg of the crawl.
# - Google Directions (transit, honours departure time) when GOOGLE_MAPS_API_KEY is set
# - OSRM otherwise (OSRM_BASE / OSRM_PROFILE), no timetable awareness
# Provider payloads are reduced to RouteLeg at this boundary.

logger = logging.getLogger('routing')
T = TypeVar('T')

_OSRM_MODES = {'foot': 'WALKING', 'walking': 'WALKING', 'bike': 'BICYCLING', 'cycling': 'BICYCLING', 'car': 'DRIVING', 'driving': 'DRIVING'}


def _duration_text(seconds: float) -> str:
    minutes = int(round(float(seconds or 0) / 60.0))
    if minutes >= 60:
        hours, rest = divmod(minutes, 60)
        return f"{hours} hour{'s' if hours != 1 else ''} {rest} mins" if rest else f"{hours} hour{'s' if hours != 1 else ''}"
    return f"{minutes} min{'s' if minutes != 1 else ''}"


def _distance_text(metres: float) -> str:
    metres = float(metres or 0)
    if metres >= 1000:
        return f"{metres / 1000.0:.1f} km"
    return f"{int(round(metres))} m"


def _text_value(raw: Any) -> Optional[TextValue]:
    if not isinstance(raw, dict):
        return None
    return TextValue(text=str(raw.get('text') or ''), value=raw.get('value') or 0)


def _time_text(raw: Any) -> Optional[str]:
    # REST payloads wrap times as {text, value, time_zone}; the JS API uses plain values
    if raw is None:
        return None
    if isinstance(raw, dict):
        return raw.get('text') or (str(raw['value']) if raw.get('value') is not None else None)
    return str(raw)


def _stop_name(raw: Any) -> Optional[str]:
    if isinstance(raw, dict):
        return raw.get('name')
    return raw or None


def _pick(source: Dict[str, Any], *names: str) -> Any:
    for name in names:
        value = source.get(name)
        if value is not None:
            return value
    return None


def _simplify_transit(t: Dict[str, Any]) -> TransitDetails:
    line = t.get('line') or {}
    vehicle_raw = line.get('vehicle') if isinstance(line, dict) else None
    vehicle = None
    if isinstance(vehicle_raw, dict):
        vehicle = TransitVehicle(
            name=vehicle_raw.get('name'),
            type=vehicle_raw.get('type'),
            local_icon=vehicle_raw.get('local_icon') or vehicle_raw.get('icon'),
        )
    num_stops = _pick(t, 'num_stops', 'numStops')
    return TransitDetails(
        departure_stop=_stop_name(_pick(t, 'departure_stop', 'departureStop')),
        arrival_stop=_stop_name(_pick(t, 'arrival_stop', 'arrivalStop')),
        departure_time=_time_text(_pick(t, 'departure_time', 'departureTime')),
        arrival_time=_time_text(_pick(t, 'arrival_time', 'arrivalTime')),
        headsign=t.get('headsign'),
        num_stops=int(num_stops) if num_stops is not None else None,
        line=TransitLine(
            name=line.get('name'),
            short_name=line.get('short_name'),
            color=line.get('color'),
            vehicle=vehicle,
        ) if isinstance(line, dict) else None,
    )


def _simplify_step(s: Dict[str, Any]) -> RouteStep:
    travel_mode = str(_pick(s, 'travel_mode', 'travelMode') or '').upper()
    transit_raw = _pick(s, 'transit', 'transit_details')
    return RouteStep(
        travel_mode=travel_mode,
        instructions=str(_pick(s, 'instructions', 'html_instructions') or ''),
        distance=_text_value(s.get('distance')) or TextValue(),
        duration=_text_value(s.get('duration')) or TextValue(),
        transit=_simplify_transit(transit_raw) if isinstance(transit_raw, dict) and transit_raw else None,
    )


def simplify_route(payload: Optional[Dict[str, Any]]) -> Optional[RouteLeg]:
    """Reduce a Google Directions response (or a single route) to a RouteLeg.

    Accepts both the REST snake_case and the JS camelCase field names.
    Returns None when the payload carries no leg.
    """
    if not payload:
        return None
    routes = payload.get('routes')
    route = (routes[0] if routes else None) if routes is not None else payload
    if not isinstance(route, dict):
        return None
    legs = route.get('legs')
    if not isinstance(legs, list) or not legs:
        return None
    leg = legs[0]
    steps = [_simplify_step(s) for s in (leg.get('steps') or []) if isinstance(s, dict)]
    overall_mode = 'TRANSIT' if any(step.travel_mode == 'TRANSIT' for step in steps) else 'WALKING'
    return RouteLeg(
        overall_mode=overall_mode,
        total_duration=_text_value(leg.get('duration')),
        start_address=str(_pick(leg, 'start_address', 'startAddress') or ''),
        end_address=str(_pick(leg, 'end_address', 'endAddress') or ''),
        departure_time=_time_text(_pick(leg, 'departure_time', 'departureTime')),
        arrival_time=_time_text(_pick(leg, 'arrival_time', 'arrivalTime')),
        distance=_text_value(leg.get('distance')),
        steps=steps,
    )


def simplify_osrm_route(
    payload: Optional[Dict[str, Any]],
    *,
    profile: str,
    origin: str,
    destination: str,
    departure: dt.datetime,
) -> Optional[RouteLeg]:
    routes = (payload or {}).get('routes') or []
    if not routes:
        return None
    route = routes[0]
    mode = _OSRM_MODES.get(profile.lower(), profile.upper())
    duration = float(route.get('duration') or 0.0)
    distance = float(route.get('distance') or 0.0)
    steps = []
    for leg in route.get('legs') or []:
        for s in leg.get('steps') or []:
            maneuver = s.get('maneuver') or {}
            parts = [str(maneuver.get('type') or '').replace('_', ' '), str(maneuver.get('modifier') or '')]
            instruction = ' '.join(p for p in parts if p).strip().capitalize()
            if s.get('name'):
                instruction = f"{instruction} onto {s['name']}" if instruction else str(s['name'])
            steps.append(RouteStep(
                travel_mode=mode,
                instructions=instruction,
                distance=TextValue(text=_distance_text(s.get('distance') or 0), value=s.get('distance') or 0),
                duration=TextValue(text=_duration_text(s.get('duration') or 0), value=s.get('duration') or 0),
            ))
    return RouteLeg(
        overall_mode=mode,
        total_duration=TextValue(text=_duration_text(duration), value=duration),
        start_address=origin,
        end_address=destination,
        departure_time=departure.isoformat(),
        arrival_time=(departure + dt.timedelta(seconds=duration)).isoformat(),
        distance=TextValue(text=_distance_text(distance), value=distance),
        steps=steps,
    )


class RoutingClient:
    """Geocoding + directions with a durable cache in front of the provider.

    Provider calls never overlap: they go through one lock and are spaced by
    ``provider_min_interval_seconds``.
    """

    def __init__(
        self,
        cache: GeoRouteCache,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.cache = cache
        self.settings = settings or get_settings()
        self._http = http_client
        self._owns_http = http_client is None
        self._provider_lock = asyncio.Lock()
        self._next_slot = 0.0
        self.provider_calls = 0

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.settings.http_timeout_seconds)
        return self._http

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    async def _call_provider(self, fn: Callable[[], Awaitable[T]]) -> T:
        loop = asyncio.get_running_loop()
        async with self._provider_lock:
            wait = self._next_slot - loop.time()
            if wait > 0:
                await asyncio.sleep(wait)
            try:
                return await fn()
            finally:
                self.provider_calls += 1
                self._next_slot = loop.time() + max(0.0, self.settings.provider_min_interval_seconds)

    async def geocode(self, address: Optional[str]) -> Coordinates:
        if not (address or '').strip():
            raise GeocodeFailure(address, 'empty address')
        cached = await self.cache.get_coordinates(address)
        if cached is not None:
            return cached
        coords = await self._call_provider(lambda: geocode_address(self._client(), address, self.settings))
        if coords is None:
            raise GeocodeFailure(address)
        await self.cache.put_coordinates(address, coords)
        return coords

    async def get_route(self, origin: Optional[str], destination: Optional[str], departure: dt.datetime) -> RouteLeg:
        cached = await self.cache.get_route(origin or '', destination or '', departure)
        if cached is not None:
            return cached
        origin_loc = await self.geocode(origin)
        dest_loc = await self.geocode(destination)
        leg = await self._call_provider(lambda: self._fetch_route(origin or '', destination or '', origin_loc, dest_loc, departure))
        if leg is None:
            raise RoutingFailure(origin, destination)
        await self.cache.put_route(origin or '', destination or '', departure, leg)
        return leg

    async def _fetch_route(
        self,
        origin: str,
        destination: str,
        origin_loc: Coordinates,
        dest_loc: Coordinates,
        departure: dt.datetime,
    ) -> Optional[RouteLeg]:
        if self.settings.use_google:
            return await self._google_directions(origin_loc, dest_loc, departure)
        return await self._osrm_route(origin, destination, origin_loc, dest_loc, departure)

    async def _google_directions(self, origin: Coordinates, destination: Coordinates, departure: dt.datetime) -> Optional[RouteLeg]:
        when = departure if departure.tzinfo else departure.replace(tzinfo=dt.timezone.utc)
        params = {
            'origin': f'{origin.lat:.6f},{origin.lng:.6f}',
            'destination': f'{destination.lat:.6f},{destination.lng:.6f}',
            'mode': 'transit',
            'departure_time': str(int(when.timestamp())),
            'key': self.settings.google_maps_api_key,
        }
        try:
            r = await self._client().get(self.settings.google_directions_url, params=params)
            if r.status_code != 200:
                logger.warning('google directions http status=%s', r.status_code)
                return None
            data = r.json() or {}
            if data.get('status') != 'OK':
                logger.info('google directions status=%s', data.get('status'))
                return None
            return simplify_route(data)
        except httpx.HTTPError as e:
            logger.warning('google directions error: %s', e)
        except (ValidationError, ValueError, TypeError, AttributeError) as e:
            # unparseable body or fields that do not fit RouteLeg
            logger.warning('google directions malformed payload: %s', e)
        return None

    async def _osrm_route(
        self,
        origin: str,
        destination: str,
        origin_loc: Coordinates,
        dest_loc: Coordinates,
        departure: dt.datetime,
    ) -> Optional[RouteLeg]:
        # OSRM expects lon,lat pairs separated by ';'
        pairs = f"{origin_loc.lng:.6f},{origin_loc.lat:.6f};{dest_loc.lng:.6f},{dest_loc.lat:.6f}"
        url = f"{self.settings.osrm_base.rstrip('/')}/route/v1/{self.settings.osrm_profile}/{pairs}"
        params = {'overview': 'false', 'alternatives': 'false', 'steps': 'true'}
        try:
            r = await self._client().get(url, params=params)
            if r.status_code != 200:
                logger.warning('osrm http status=%s', r.status_code)
                return None
            data = r.json() or {}
            return simplify_osrm_route(
                data,
                profile=self.settings.osrm_profile,
                origin=origin,
                destination=destination,
                departure=departure,
            )
        except httpx.HTTPError as e:
            logger.warning('osrm error: %s', e)
        except (ValidationError, ValueError, TypeError, AttributeError) as e:
            logger.warning('osrm malformed payload: %s', e)
        return None
