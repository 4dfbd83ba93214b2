import datetime as dt

import httpx
import pytest

from crawlplanner.services.cache import GeoRouteCache
from crawlplanner.services.routing import RoutingClient, simplify_osrm_route, simplify_route
from crawlplanner.settings import Settings
from crawlplanner.store import MemoryStore

DEPARTURE = dt.datetime(2026, 11, 7, 18, 0, tzinfo=dt.timezone.utc)


def _google_rest_payload():
    return {
        'status': 'OK',
        'routes': [{
            'legs': [{
                'start_address': '1 Alpha St',
                'end_address': '2 Beta St',
                'departure_time': {'text': '6:02 PM', 'value': 1794160920, 'time_zone': 'Europe/Berlin'},
                'arrival_time': {'text': '6:21 PM', 'value': 1794162060, 'time_zone': 'Europe/Berlin'},
                'duration': {'text': '19 mins', 'value': 1140},
                'distance': {'text': '4.2 km', 'value': 4200},
                'steps': [
                    {
                        'travel_mode': 'WALKING',
                        'html_instructions': 'Walk to Central Station',
                        'duration': {'text': '4 mins', 'value': 240},
                        'distance': {'text': '0.3 km', 'value': 300},
                    },
                    {
                        'travel_mode': 'TRANSIT',
                        'html_instructions': 'Tram towards Harbour',
                        'duration': {'text': '15 mins', 'value': 900},
                        'distance': {'text': '3.9 km', 'value': 3900},
                        'transit_details': {
                            'departure_stop': {'name': 'Central Station'},
                            'arrival_stop': {'name': 'Harbour'},
                            'departure_time': {'text': '6:06 PM', 'value': 1794161160},
                            'arrival_time': {'text': '6:21 PM', 'value': 1794162060},
                            'headsign': 'Harbour',
                            'num_stops': 6,
                            'line': {
                                'name': 'Harbour Line',
                                'short_name': 'M10',
                                'color': '#ff0000',
                                'vehicle': {'name': 'Tram', 'type': 'TRAM', 'icon': '//icons/tram.png'},
                            },
                        },
                    },
                ],
            }],
        }],
    }


def test_google_rest_payload_is_reduced():
    leg = simplify_route(_google_rest_payload())
    assert leg is not None
    assert leg.overall_mode == 'TRANSIT'
    assert leg.total_duration_seconds == 1140
    assert leg.distance.text == '4.2 km'
    assert leg.departure_time == '6:02 PM'
    assert [s.travel_mode for s in leg.steps] == ['WALKING', 'TRANSIT']
    assert leg.steps[0].instructions == 'Walk to Central Station'
    transit = leg.steps[1].transit
    assert transit.departure_stop == 'Central Station'
    assert transit.arrival_stop == 'Harbour'
    assert transit.num_stops == 6
    assert transit.line.short_name == 'M10'
    assert transit.line.vehicle.type == 'TRAM'
    assert transit.line.vehicle.local_icon == '//icons/tram.png'
    assert leg.is_fallback is False


def test_js_shaped_route_is_reduced():
    route = {
        'legs': [{
            'startAddress': '1 Alpha St',
            'endAddress': '2 Beta St',
            'departureTime': '18:00',
            'duration': {'text': '9 mins', 'value': 540},
            'steps': [{
                'travelMode': 'walking',
                'instructions': 'Head north',
                'duration': {'text': '9 mins', 'value': 540},
                'transit': {},
            }],
        }],
    }
    leg = simplify_route(route)
    assert leg.overall_mode == 'WALKING'
    assert leg.start_address == '1 Alpha St'
    assert leg.departure_time == '18:00'
    assert leg.steps[0].travel_mode == 'WALKING'
    assert leg.steps[0].transit is None


def test_empty_payloads_give_none():
    assert simplify_route(None) is None
    assert simplify_route({'routes': []}) is None
    assert simplify_route({'routes': [{'legs': []}]}) is None
    assert simplify_osrm_route({'routes': []}, profile='foot', origin='A', destination='B', departure=DEPARTURE) is None


def test_osrm_payload_is_reduced():
    payload = {
        'routes': [{
            'duration': 3725.0,
            'distance': 1234.0,
            'legs': [{'steps': [
                {'maneuver': {'type': 'depart'}, 'name': 'Main St', 'distance': 1000.0, 'duration': 3000.0},
                {'maneuver': {'type': 'turn', 'modifier': 'left'}, 'name': '', 'distance': 234.0, 'duration': 725.0},
            ]}],
        }],
    }
    leg = simplify_osrm_route(payload, profile='foot', origin='A', destination='B', departure=DEPARTURE)
    assert leg.overall_mode == 'WALKING'
    assert leg.total_duration.text == '1 hour 2 mins'
    assert leg.distance.text == '1.2 km'
    assert leg.arrival_time == (DEPARTURE + dt.timedelta(seconds=3725)).isoformat()
    assert [s.instructions for s in leg.steps] == ['Depart onto Main St', 'Turn left']
    assert leg.steps[1].distance.text == '234 m'


@pytest.mark.asyncio
async def test_google_directions_request_uses_transit_and_departure_time():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path.endswith('/geocode/json'):
            return httpx.Response(200, json={
                'status': 'OK',
                'results': [{'geometry': {'location': {'lat': 52.5, 'lng': 13.4}}}],
            })
        return httpx.Response(200, json=_google_rest_payload())

    settings = Settings(
        ROUTING_PROVIDER='google',
        GOOGLE_MAPS_API_KEY='test-key',
        GOOGLE_GEOCODE_URL='https://maps.test/maps/api/geocode/json',
        GOOGLE_DIRECTIONS_URL='https://maps.test/maps/api/directions/json',
        GEOCODER_DISABLE=False,
    )
    client = RoutingClient(
        GeoRouteCache(MemoryStore()),
        settings,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    leg = await client.get_route('1 Alpha St', '2 Beta St', DEPARTURE)
    assert leg.overall_mode == 'TRANSIT'

    directions = [r for r in seen if r.url.path.endswith('/directions/json')]
    assert len(directions) == 1
    params = directions[0].url.params
    assert params['mode'] == 'transit'
    assert params['departure_time'] == str(int(DEPARTURE.timestamp()))
    assert params['origin'] == '52.500000,13.400000'
    assert params['key'] == 'test-key'
    assert client.provider_calls == 3
