import logging
from typing import Optional

import httpx

from ..schemas import Coordinates
from ..settings import Settings

# Address -> coordinates lookups.
# Google Geocoding when an API key is configured, otherwise Pelias (if a base
# URL is set) followed by Nominatim.

logger = logging.getLogger('geocoding')


async def _google_geocode(client: httpx.AsyncClient, address: str, settings: Settings) -> Optional[Coordinates]:
    params = {'address': address, 'key': settings.google_maps_api_key}
    try:
        r = await client.get(settings.google_geocode_url, params=params)
        if r.status_code != 200:
            logger.warning('google geocode http status=%s', r.status_code)
            return None
        data = r.json() or {}
        if data.get('status') != 'OK':
            logger.info('google geocode status=%s address=%r', data.get('status'), address)
            return None
        results = data.get('results') or []
        loc = ((results[0] if results else {}).get('geometry') or {}).get('location') or {}
        if isinstance(loc.get('lat'), (int, float)) and isinstance(loc.get('lng'), (int, float)):
            return Coordinates(lat=float(loc['lat']), lng=float(loc['lng']))
    except (httpx.HTTPError, ValueError) as e:
        logger.warning('google geocode error: %s', e)
    return None


async def _pelias_geocode(client: httpx.AsyncClient, address: str, settings: Settings) -> Optional[Coordinates]:
    if not settings.pelias_base:
        return None
    url = f"{settings.pelias_base.rstrip('/')}/v1/search"
    params = {'text': address, 'size': 1}
    headers = {'User-Agent': settings.geocoder_user_agent}
    try:
        r = await client.get(url, params=params, headers=headers)
        if r.status_code != 200:
            return None
        feats = (r.json() or {}).get('features') or []
        if feats:
            coords = feats[0].get('geometry', {}).get('coordinates') or []
            if len(coords) == 2:
                lon, lat = coords
                return Coordinates(lat=float(lat), lng=float(lon))
    except (httpx.HTTPError, ValueError) as e:
        logger.warning('pelias geocode error: %s', e)
    return None


async def _nominatim_geocode(client: httpx.AsyncClient, address: str, settings: Settings) -> Optional[Coordinates]:
    params = {'q': address, 'format': 'jsonv2', 'limit': 1}
    headers = {'User-Agent': settings.geocoder_user_agent}
    try:
        r = await client.get(settings.nominatim_url, params=params, headers=headers)
        if r.status_code != 200:
            return None
        ct = r.headers.get('content-type', '')
        arr = r.json() if 'application/json' in ct else []
        if isinstance(arr, list) and arr:
            return Coordinates(lat=float(arr[0].get('lat')), lng=float(arr[0].get('lon')))
    except (httpx.HTTPError, ValueError, TypeError) as e:
        logger.warning('nominatim geocode error: %s', e)
    return None


async def geocode_address(client: httpx.AsyncClient, address: str, settings: Settings) -> Optional[Coordinates]:
    if settings.geocoder_disabled or not (address or '').strip():
        return None
    if settings.use_google:
        return await _google_geocode(client, address, settings)
    latlon = await _pelias_geocode(client, address, settings)
    if latlon:
        return latlon
    return await _nominatim_geocode(client, address, settings)
