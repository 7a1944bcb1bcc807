"""
Coastal cities API routes.
"""
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from domain.errors import LoadFailure
from services.city_picker import city_options
from services.coastal_cities import build_coastal_cities
from services.feature_source import FeatureSourceClient
from settings import settings

router = APIRouter()
feature_client = FeatureSourceClient()
logger = logging.getLogger(__name__)


class CityOption(BaseModel):
    value: str
    heading: str


class CityFeatureCollection(BaseModel):
    type: str = "FeatureCollection"
    features: List[Dict[str, Any]]


async def _run_pipeline():
    try:
        return await build_coastal_cities(feature_client)
    except LoadFailure as exc:
        logger.warning("Coastal cities pipeline failed: %s", exc)
        raise HTTPException(status_code=502, detail=f"Could not load coastal cities ({exc.source})")


@router.get("", response_model=CityFeatureCollection)
async def get_coastal_cities():
    """Deduplicated coastal city boundaries as GeoJSON."""
    features = await _run_pipeline()
    return CityFeatureCollection(features=[f.to_geojson() for f in features])


@router.get("/options", response_model=List[CityOption])
async def get_city_options():
    """Alphabetical city picker entries."""
    features = await _run_pipeline()
    return [
        CityOption(value=value, heading=heading)
        for value, heading in city_options(features, settings.CITY_NAME_FIELD)
    ]
