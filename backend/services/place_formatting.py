"""
Display formatting for place results, place details and map graphics.

Rules:
- Result subtitle is "<category> - <km> km", km rounded half-up to one
  decimal with a trailing ".0" dropped (432 m -> "0.4", 1000 m -> "1").
- Detail entries always come in the order Address, Phone, Email, Facebook,
  X, Instagram; missing values are skipped, never shown empty.
- Social entries show a profile URL built from the handle, not the handle.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, List, Optional, Tuple

from domain.models import (
    AttributeEntry,
    DetailPanel,
    Graphic,
    PlaceDetail,
    PlaceResult,
    ResultEntry,
    SocialPlatform,
)

CITY_FILL_SYMBOL = {
    "type": "simple-fill",
    "color": [0, 120, 255, 0.5],
    "outline": {"color": [0, 0, 0, 0.6], "width": 1},
}

SEARCH_AREA_SYMBOL = {
    "type": "simple-fill",
    "style": "solid",
    "color": [3, 140, 255, 0.1],
    "outline": {"width": 1, "color": [3, 140, 255]},
}

PLACE_MARKER_SIZE = 15

SOCIAL_PROFILE_DOMAINS = {
    SocialPlatform.FACEBOOK.value: "www.facebook.com",
    SocialPlatform.X.value: "www.x.com",
    SocialPlatform.INSTAGRAM.value: "www.instagram.com",
}


def format_distance_km(distance_meters: float) -> str:
    km = (Decimal(str(distance_meters)) / Decimal(1000)).quantize(
        Decimal("0.1"), rounding=ROUND_HALF_UP
    )
    text = format(km, "f")
    if text.endswith(".0"):
        text = text[:-2]
    if text == "-0":
        text = "0"
    return text


def format_result(result: PlaceResult) -> ResultEntry:
    return ResultEntry(
        place_id=result.place_id,
        label=result.name,
        description=f"{result.category_label} - {format_distance_km(result.distance_meters)} km",
    )


def social_profile_url(platform: str, handle: Optional[str]) -> Optional[str]:
    if not handle:
        return None
    domain = SOCIAL_PROFILE_DOMAINS.get(platform)
    if domain is None:
        return None
    return f"{domain}/{handle}"


# (heading, icon, value getter) in display order
_DETAIL_FIELDS: List[Tuple[str, str, Callable[[PlaceDetail], Optional[str]]]] = [
    ("Address", "map-pin", lambda d: d.address),
    ("Phone", "mobile", lambda d: d.phone),
    ("Email", "email-address", lambda d: d.email),
    (
        "Facebook",
        "speech-bubble-social",
        lambda d: social_profile_url("facebook", d.social_links.get("facebook")),
    ),
    ("X", "speech-bubbles", lambda d: social_profile_url("x", d.social_links.get("x"))),
    (
        "Instagram",
        "camera",
        lambda d: social_profile_url("instagram", d.social_links.get("instagram")),
    ),
]


def detail_entries(detail: PlaceDetail) -> List[AttributeEntry]:
    entries: List[AttributeEntry] = []
    for heading, icon, getter in _DETAIL_FIELDS:
        value = getter(detail)
        if value:
            entries.append(AttributeEntry(heading=heading, icon=icon, value=value))
    return entries


def build_detail_panel(detail: PlaceDetail) -> DetailPanel:
    return DetailPanel(
        place_id=detail.place_id,
        heading=detail.name,
        description=detail.category_label,
        entries=detail_entries(detail),
    )


def place_marker(result: PlaceResult) -> Graphic:
    """Picture marker for a result; falls back to a plain marker without an icon."""
    if result.icon_url:
        symbol = {
            "type": "picture-marker",
            "url": result.icon_url,
            "width": PLACE_MARKER_SIZE,
            "height": PLACE_MARKER_SIZE,
        }
    else:
        symbol = {"type": "simple-marker", "size": PLACE_MARKER_SIZE}
    return Graphic(
        geometry=result.location,
        symbol=symbol,
        attributes={"place_id": result.place_id, "name": result.name},
    )
