"""Tests for distance maths, address helpers, geocoding and zone matching."""

import math
from types import SimpleNamespace

import httpx
import pytest

from crowdvine.services.geo import (
    GeocodingService,
    build_full_address,
    haversine_km,
    is_valid_coordinates,
    lookup_city,
)
from crowdvine.services.zones import match_zones, zone_contains


def make_zone(name, lat=None, lon=None, radius=None):
    return SimpleNamespace(name=name, center_lat=lat, center_lon=lon, radius_km=radius)


class TestHaversine:
    def test_same_point_is_zero(self):
        assert haversine_km(59.3293, 18.0686, 59.3293, 18.0686) == 0

    def test_stockholm_to_gothenburg(self):
        distance = haversine_km(59.3293, 18.0686, 57.7089, 11.9746)
        assert distance == pytest.approx(398, abs=5)

    def test_symmetric(self):
        a = haversine_km(59.3293, 18.0686, 55.6050, 13.0038)
        b = haversine_km(55.6050, 13.0038, 59.3293, 18.0686)
        assert a == pytest.approx(b)


class TestCoordinates:
    @pytest.mark.parametrize(
        "lat, lon",
        [(0, 0), (90, 180), (-90, -180), (59.3, 18.1)],
    )
    def test_valid(self, lat, lon):
        assert is_valid_coordinates(lat, lon)

    @pytest.mark.parametrize(
        "lat, lon",
        [
            (91, 0),
            (0, 181),
            (None, 18.0),
            ("59.3", 18.0),
            (True, 18.0),
            (math.nan, 18.0),
            (59.3, math.inf),
        ],
    )
    def test_invalid(self, lat, lon):
        assert not is_valid_coordinates(lat, lon)


def test_lookup_city_is_case_insensitive():
    assert lookup_city("  Stockholm ") == lookup_city("stockholm")
    assert lookup_city("GÖTEBORG") is not None


def test_lookup_city_only_for_sweden():
    assert lookup_city("Stockholm", "FR") is None
    assert lookup_city(None) is None
    assert lookup_city("Atlantis") is None


def test_build_full_address_skips_blank_parts():
    assert build_full_address("Storgatan 1", "", "Karlstad", "SE") == "Storgatan 1, Karlstad, SE"
    assert build_full_address(None, None, None, None) == ""


class TestGeocodingService:
    """Nominatim client, exercised through an httpx mock transport."""

    def _service(self, handler):
        return GeocodingService(
            base_url="https://geo.test",
            user_agent="crowdvine-tests",
            country_codes=["se", "no"],
            timeout=1,
            transport=httpx.MockTransport(handler),
        )

    async def test_geocode_parses_first_hit(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                json=[
                    {
                        "lat": "59.3793",
                        "lon": "13.5036",
                        "display_name": "Karlstad, Värmland, Sverige",
                        "address": {"town": "Karlstad", "postcode": "652 25", "country_code": "se"},
                    }
                ],
            )

        result = await self._service(handler).geocode("Storgatan 1, Karlstad")

        assert result.lat == pytest.approx(59.3793)
        assert result.city == "Karlstad"
        assert result.country_code == "SE"
        assert requests[0].url.params["countrycodes"] == "se,no"
        assert requests[0].headers["User-Agent"] == "crowdvine-tests"

    async def test_geocode_falls_back_to_first_part_in_sweden(self):
        queries = []

        def handler(request: httpx.Request) -> httpx.Response:
            queries.append(request.url.params["q"])
            if len(queries) == 1:
                return httpx.Response(200, json=[])
            return httpx.Response(200, json=[{"lat": "59.85", "lon": "17.63"}])

        result = await self._service(handler).geocode("Uppsala, Nowhere Street 9")

        assert queries == ["Uppsala, Nowhere Street 9", "Uppsala, Sweden"]
        assert result.lat == pytest.approx(59.85)

    async def test_geocode_survives_http_errors(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        assert await self._service(handler).geocode("Somewhere") is None

    async def test_invalid_coordinates_are_rejected(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[{"lat": "123", "lon": "18"}])

        assert await self._service(handler).geocode("Bad data") is None

    async def test_results_are_cached(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json=[{"lat": "59.0", "lon": "15.0"}])

        service = self._service(handler)
        await service.geocode("Örebro")
        await service.geocode("  örebro ")
        assert len(calls) == 1

        service.clear_cache()
        await service.geocode("Örebro")
        assert len(calls) == 2

    async def test_outage_is_not_cached(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) <= 2:
                return httpx.Response(503)
            return httpx.Response(200, json=[{"lat": "59.27", "lon": "15.21"}])

        service = self._service(handler)
        assert await service.geocode("Örebro") is None
        assert len(calls) == 2

        result = await service.geocode("Örebro")
        assert len(calls) == 3
        assert result is not None
        assert result.lat == pytest.approx(59.27)

    async def test_empty_answer_is_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json=[])

        service = self._service(handler)
        await service.geocode("Nowhere")
        await service.geocode("Nowhere")
        assert len(calls) == 4

    async def test_geocode_fields_requires_city_and_country(self):
        service = self._service(lambda request: httpx.Response(200, json=[]))
        with pytest.raises(ValueError):
            await service.geocode_fields("Storgatan 1", "12345", None, "SE")


class TestZoneMatching:
    stockholm = make_zone("Stockholm", 59.3293, 18.0686, 60)
    sweden = make_zone("Sweden", 62.0, 15.0, 1000)
    no_geometry = make_zone("Unmapped")

    def test_zone_contains(self):
        assert zone_contains(self.stockholm, 59.33, 18.07)
        assert not zone_contains(self.stockholm, 57.7089, 11.9746)

    def test_zone_without_geometry_matches_nothing(self):
        assert not zone_contains(self.no_geometry, 59.33, 18.07)

    def test_match_zones_nearest_centre_first(self):
        zones = [self.sweden, self.no_geometry, self.stockholm]
        matched = match_zones(zones, 59.33, 18.07)
        assert [z.name for z in matched] == ["Stockholm", "Sweden"]

    def test_match_zones_outside_everything(self):
        assert match_zones([self.stockholm], 48.85, 2.35) == []
