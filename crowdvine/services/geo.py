"""Distance calculations and address geocoding.

Geocoding goes through OpenStreetMap Nominatim. Results are cached in
process since addresses repeat heavily (producers, returning members).
"""

import logging
import math
from dataclasses import dataclass
from typing import Any

import httpx

from crowdvine.config import settings

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lon: float


@dataclass
class GeocodeResult:
    lat: float
    lon: float
    display_name: str
    city: str | None = None
    postcode: str | None = None
    country: str | None = None
    country_code: str | None = None


# Cities we deliver to most often, resolved without a network round trip
SWEDISH_CITIES: dict[str, Coordinates] = {
    "stockholm": Coordinates(59.3293, 18.0686),
    "karlstad": Coordinates(59.3793, 13.5036),
    "gothenburg": Coordinates(57.7089, 11.9746),
    "göteborg": Coordinates(57.7089, 11.9746),
    "malmö": Coordinates(55.6050, 13.0038),
    "uppsala": Coordinates(59.8586, 17.6389),
    "västerås": Coordinates(59.6162, 16.5528),
    "örebro": Coordinates(59.2741, 15.2066),
    "linköping": Coordinates(58.4108, 15.6214),
    "helsingborg": Coordinates(56.0465, 12.6945),
    "jönköping": Coordinates(57.7826, 14.1618),
}


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def is_valid_coordinates(lat: Any, lon: Any) -> bool:
    """Check that lat/lon are finite numbers inside their valid ranges."""
    if isinstance(lat, bool) or isinstance(lon, bool):
        return False
    if not isinstance(lat, (int, float)) or not isinstance(lon, (int, float)):
        return False
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return False
    return -90 <= lat <= 90 and -180 <= lon <= 180


def lookup_city(city: str | None, country_code: str | None = "SE") -> Coordinates | None:
    """Resolve a Swedish city from the built-in table."""
    if not city:
        return None
    if country_code and country_code.upper() != "SE":
        return None
    return SWEDISH_CITIES.get(city.strip().lower())


def build_full_address(
    street: str | None = None,
    postcode: str | None = None,
    city: str | None = None,
    country: str | None = None,
) -> str:
    """Join the non-empty address parts with commas."""
    parts = [p.strip() for p in (street, postcode, city, country) if p and p.strip()]
    return ", ".join(parts)


class GeocodingService:
    """Nominatim client with an in-process result cache."""

    def __init__(
        self,
        base_url: str | None = None,
        user_agent: str | None = None,
        country_codes: list[str] | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        geo = settings.config.geocoding
        self.base_url = (base_url or geo.base_url).rstrip("/")
        self.user_agent = user_agent or geo.user_agent
        self.country_codes = country_codes or geo.country_codes
        self.timeout = timeout or geo.timeout_seconds
        self._transport = transport
        self._cache: dict[str, GeocodeResult] = {}

    def clear_cache(self) -> None:
        self._cache.clear()

    async def _search(self, query: str, country_codes: list[str]) -> GeocodeResult | None:
        params = {
            "q": query,
            "format": "json",
            "limit": 1,
            "addressdetails": 1,
            "countrycodes": ",".join(country_codes),
        }
        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent},
        ) as client:
            response = await client.get(f"{self.base_url}/search", params=params)
            response.raise_for_status()
            results = response.json()

        if not results:
            return None

        hit = results[0]
        address = hit.get("address") or {}
        country_code = address.get("country_code")
        return GeocodeResult(
            lat=float(hit["lat"]),
            lon=float(hit["lon"]),
            display_name=hit.get("display_name", query),
            city=address.get("city") or address.get("town") or address.get("village"),
            postcode=address.get("postcode"),
            country=address.get("country"),
            country_code=country_code.upper() if country_code else None,
        )

    async def geocode(self, address: str) -> GeocodeResult | None:
        """Geocode a free-text address.

        Falls back to searching "<first part>, Sweden" when the full
        address fails or finds nothing.
        """
        key = " ".join(address.split()).lower()
        if not key:
            return None
        if key in self._cache:
            return self._cache[key]

        result: GeocodeResult | None = None
        try:
            result = await self._search(address, self.country_codes)
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.warning("Geocoding failed for %r: %s", address, e)

        if result is None:
            fallback = f"{address.split(',')[0].strip()}, Sweden"
            try:
                result = await self._search(fallback, ["se"])
            except (httpx.HTTPError, ValueError, KeyError) as e:
                logger.warning("Fallback geocoding failed for %r: %s", fallback, e)

        if result is not None and not is_valid_coordinates(result.lat, result.lon):
            logger.warning("Geocoder returned invalid coordinates for %r", address)
            result = None

        # Misses and outages are retried on the next lookup
        if result is not None:
            self._cache[key] = result
        return result

    async def geocode_fields(
        self,
        street: str | None,
        postcode: str | None,
        city: str | None,
        country: str | None,
    ) -> GeocodeResult | None:
        if not city or not country:
            raise ValueError("City and country are required for geocoding")
        return await self.geocode(build_full_address(street, postcode, city, country))


_geocoding_service: GeocodingService | None = None


def get_geocoding_service() -> GeocodingService:
    global _geocoding_service
    if _geocoding_service is None:
        _geocoding_service = GeocodingService()
    return _geocoding_service


async def resolve_address_coordinates(
    city: str | None,
    country_code: str | None,
    postcode: str | None = None,
    street: str | None = None,
) -> Coordinates | None:
    """Coordinates for an address: city table first, then the geocoder."""
    known = lookup_city(city, country_code)
    if known is not None:
        return known

    if not settings.config.geocoding.enabled or not city or not country_code:
        return None

    result = await get_geocoding_service().geocode_fields(street, postcode, city, country_code)
    if result is None:
        return None
    return Coordinates(result.lat, result.lon)
