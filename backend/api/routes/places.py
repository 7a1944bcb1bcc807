"""
Places API routes: nearby search and place details, formatted for display.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from domain.errors import LoadFailure
from domain.models import SearchPoint
from services.place_formatting import build_detail_panel, format_result
from services.places_client import CATEGORY_OPTIONS, get_default_places_client
from settings import settings

router = APIRouter()
logger = logging.getLogger(__name__)


class CategoryResponse(BaseModel):
    id: str
    label: str


class ResultEntryResponse(BaseModel):
    place_id: str
    label: str
    description: str
    longitude: float
    latitude: float
    icon_url: Optional[str] = None


class NearbyResponse(BaseModel):
    longitude: float
    latitude: float
    radius_m: float
    category: str
    results: List[ResultEntryResponse]


class AttributeEntryResponse(BaseModel):
    heading: str
    icon: str
    value: str


class DetailPanelResponse(BaseModel):
    place_id: str
    heading: str
    description: str
    entries: List[AttributeEntryResponse]


@router.get("/categories", response_model=List[CategoryResponse])
async def list_categories():
    return [CategoryResponse(id=cid, label=label) for cid, label in CATEGORY_OPTIONS]


@router.get("/places/near-point", response_model=NearbyResponse)
async def places_near_point(
    longitude: float = Query(..., ge=-180.0, le=180.0),
    latitude: float = Query(..., ge=-90.0, le=90.0),
    category: Optional[str] = None,
):
    """Nearby places around a (rounded) clicked point, in service order."""
    point = SearchPoint.from_coordinates(longitude, latitude)
    category_id = category or settings.DEFAULT_CATEGORY_ID
    client = get_default_places_client()
    try:
        results = await client.query_nearby(point, settings.SEARCH_RADIUS_METERS, category_id)
    except LoadFailure as exc:
        logger.warning("Nearby search failed: %s", exc)
        raise HTTPException(status_code=502, detail="Places search failed")

    entries = []
    for result in results:
        entry = format_result(result)
        entries.append(
            ResultEntryResponse(
                place_id=entry.place_id,
                label=entry.label,
                description=entry.description,
                longitude=result.location.x,
                latitude=result.location.y,
                icon_url=result.icon_url,
            )
        )
    return NearbyResponse(
        longitude=point.longitude,
        latitude=point.latitude,
        radius_m=settings.SEARCH_RADIUS_METERS,
        category=category_id,
        results=entries,
    )


@router.get("/places/{place_id}", response_model=DetailPanelResponse)
async def place_details(place_id: str):
    client = get_default_places_client()
    try:
        detail = await client.fetch_details(place_id)
    except LoadFailure as exc:
        logger.warning("Details for %s failed: %s", place_id, exc)
        raise HTTPException(status_code=502, detail="Place details unavailable")

    panel = build_detail_panel(detail)
    return DetailPanelResponse(
        place_id=panel.place_id,
        heading=panel.heading,
        description=panel.description,
        entries=[
            AttributeEntryResponse(heading=e.heading, icon=e.icon, value=e.value)
            for e in panel.entries
        ],
    )
