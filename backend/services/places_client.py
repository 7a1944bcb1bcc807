"""
Places client for the ArcGIS Places service: nearby search and place details.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

from shapely.geometry import Point

from domain.errors import LoadFailure
from domain.models import PlaceDetail, PlaceResult, SearchPoint, SocialPlatform
from services.geometry import haversine_m
from services.http_client import request_json
from settings import settings

SOURCE_NAME = "places"
# The service caps a single page at 20 results.
MAX_PAGE_SIZE = 20

# Raised by the parsers when a payload has the wrong shape.
MALFORMED_PAYLOAD_ERRORS = (AttributeError, KeyError, TypeError, ValueError)

# Top-level categories offered by the category selector (id, label).
CATEGORY_OPTIONS = [
    ("4d4b7105d754a06377d81259", "Outdoors and Recreation"),
    ("4bf58dd8d48988d1e2941735", "Beach"),
    ("4d4b7105d754a06374d81259", "Dining and Drinking"),
    ("4d4b7104d754a06370d81259", "Arts and Entertainment"),
    ("4d4b7105d754a06378d81259", "Retail"),
    ("4d4b7105d754a06379d81259", "Travel and Transportation"),
]


def _first_category_label(item: Dict[str, Any]) -> str:
    categories = item.get("categories") or []
    if categories and isinstance(categories[0], dict):
        return str(categories[0].get("label") or "")
    return ""


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_place_result(item: Dict[str, Any], origin: Optional[Point] = None) -> PlaceResult:
    location = item.get("location") or {}
    point = Point(float(location["x"]), float(location["y"]))
    distance = item.get("distance")
    if distance is None:
        distance = haversine_m(origin, point) if origin is not None else 0.0
    icon = item.get("icon") or {}
    return PlaceResult(
        place_id=str(item["placeId"]),
        name=str(item.get("name") or ""),
        category_label=_first_category_label(item),
        location=point,
        distance_meters=float(distance),
        icon_url=_clean(icon.get("url")),
    )


def parse_place_detail(details: Dict[str, Any]) -> PlaceDetail:
    address = details.get("address") or {}
    contact = details.get("contactInfo") or {}
    social = details.get("socialMedia") or {}

    links: Dict[str, str] = {}
    for platform, key in (
        (SocialPlatform.FACEBOOK, "facebookId"),
        (SocialPlatform.X, "twitter"),
        (SocialPlatform.INSTAGRAM, "instagram"),
    ):
        handle = _clean(social.get(key))
        if handle:
            links[platform.value] = handle

    return PlaceDetail(
        place_id=str(details.get("placeId") or ""),
        name=str(details.get("name") or ""),
        category_label=_first_category_label(details),
        address=_clean(address.get("streetAddress")),
        phone=_clean(contact.get("telephone")),
        email=_clean(contact.get("email")),
        social_links=links,
    )


class PlacesClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        default_radius_m: Optional[float] = None,
        icon_format: str = "png",
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or settings.PLACES_BASE_URL).rstrip("/")
        self.default_radius_m = default_radius_m or settings.SEARCH_RADIUS_METERS
        self.icon_format = icon_format
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    def query_nearby_sync(
        self,
        point: SearchPoint,
        radius_meters: Optional[float] = None,
        category_id: Optional[str] = None,
        page_size: int = MAX_PAGE_SIZE,
    ) -> List[PlaceResult]:
        radius = radius_meters or self.default_radius_m
        params: Dict[str, Any] = {
            "x": str(point.longitude),
            "y": str(point.latitude),
            "radius": str(radius),
            "icon": self.icon_format,
            "pageSize": str(min(page_size, MAX_PAGE_SIZE)),
            "f": "json",
        }
        if category_id:
            params["categoryIds"] = category_id

        data = request_json(
            "GET",
            f"{self.base_url}/places/near-point",
            source=SOURCE_NAME,
            params=params,
            timeout=self.timeout,
        )
        origin = point.to_point()
        try:
            results = [parse_place_result(item, origin) for item in data.get("results") or []]
        except MALFORMED_PAYLOAD_ERRORS as exc:
            raise LoadFailure(SOURCE_NAME, f"malformed place result: {exc}") from exc

        self.logger.debug(
            "PlacesClient.query_nearby: lat=%.3f lon=%.3f radius_m=%.1f category=%s got %d results",
            point.latitude,
            point.longitude,
            radius,
            category_id,
            len(results),
        )
        return results

    def fetch_details_sync(self, place_id: str, fields: Sequence[str] = ("all",)) -> PlaceDetail:
        if not place_id:
            raise LoadFailure(SOURCE_NAME, "place id is required")
        data = request_json(
            "GET",
            f"{self.base_url}/places/{quote(place_id, safe='')}",
            source=SOURCE_NAME,
            params={"requestedFields": ",".join(fields), "f": "json"},
            timeout=self.timeout,
        )
        details = data.get("placeDetails")
        if not isinstance(details, dict):
            raise LoadFailure(SOURCE_NAME, f"no details returned for {place_id}")
        try:
            detail = parse_place_detail(details)
        except MALFORMED_PAYLOAD_ERRORS as exc:
            raise LoadFailure(SOURCE_NAME, f"malformed details for {place_id}: {exc}") from exc
        if not detail.place_id:
            detail = replace(detail, place_id=place_id)
        return detail

    async def query_nearby(
        self,
        point: SearchPoint,
        radius_meters: Optional[float] = None,
        category_id: Optional[str] = None,
    ) -> List[PlaceResult]:
        return await asyncio.to_thread(self.query_nearby_sync, point, radius_meters, category_id)

    async def fetch_details(self, place_id: str, fields: Sequence[str] = ("all",)) -> PlaceDetail:
        return await asyncio.to_thread(self.fetch_details_sync, place_id, fields)


_default_places_client: Optional[PlacesClient] = None


def get_default_places_client() -> PlacesClient:
    global _default_places_client
    if _default_places_client is None:
        _default_places_client = PlacesClient()
    return _default_places_client
