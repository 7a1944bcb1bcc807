"""
ArcGIS FeatureServer client: layer metadata and feature queries.

Blocking requests run in worker threads so callers can await many queries
concurrently from one event loop.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from shapely.errors import ShapelyError
from shapely.geometry import shape
from shapely.geometry.base import BaseGeometry

from domain.errors import LoadFailure
from domain.models import FeatureRecord, FeatureSourceHandle, SourceDescriptor
from services.geometry import to_esri_geometry
from services.http_client import request_json

SPATIAL_RELATIONSHIPS = {
    "intersects": "esriSpatialRelIntersects",
    "contains": "esriSpatialRelContains",
    "crosses": "esriSpatialRelCrosses",
    "envelope-intersects": "esriSpatialRelEnvelopeIntersects",
    "overlaps": "esriSpatialRelOverlaps",
    "touches": "esriSpatialRelTouches",
    "within": "esriSpatialRelWithin",
}

# Guards against services that keep reporting exceededTransferLimit.
MAX_PAGES = 100


def combine_where(*clauses: Optional[str]) -> str:
    """AND together the non-empty clauses; '1=1' when there are none."""
    parts = [c.strip() for c in clauses if c and c.strip()]
    if not parts:
        return "1=1"
    if len(parts) == 1:
        return parts[0]
    return " AND ".join(f"({p})" for p in parts)


def _parse_feature(item: Dict[str, Any]) -> FeatureRecord:
    geom_json = item.get("geometry")
    geometry: Optional[BaseGeometry] = shape(geom_json) if geom_json else None
    return FeatureRecord(geometry=geometry, attributes=dict(item.get("properties") or {}))


def _exceeded_transfer_limit(payload: Dict[str, Any]) -> bool:
    if payload.get("exceededTransferLimit"):
        return True
    props = payload.get("properties") or {}
    return bool(props.get("exceededTransferLimit"))


class FeatureSourceClient:
    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    def _layer_url(self, descriptor: SourceDescriptor) -> str:
        return descriptor.url.rstrip("/")

    def load_sync(self, descriptor: SourceDescriptor) -> FeatureSourceHandle:
        data = request_json(
            "GET",
            self._layer_url(descriptor),
            source=descriptor.name,
            params={"f": "json"},
            timeout=self.timeout,
        )
        fields = tuple(f.get("name", "") for f in data.get("fields") or [] if isinstance(f, dict))
        handle = FeatureSourceHandle(
            descriptor=descriptor,
            layer_name=str(data.get("name") or descriptor.name),
            geometry_type=data.get("geometryType"),
            max_record_count=int(data.get("maxRecordCount") or 1000),
            fields=fields,
        )
        self.logger.debug(
            "Loaded layer %s (%s, %d fields)", handle.layer_name, handle.geometry_type, len(fields)
        )
        return handle

    def query_features_sync(
        self,
        handle: FeatureSourceHandle,
        where: Optional[str] = None,
        geometry: Optional[BaseGeometry] = None,
        spatial_relationship: str = "intersects",
        out_fields: Sequence[str] = ("*",),
        return_geometry: bool = True,
    ) -> List[FeatureRecord]:
        descriptor = handle.descriptor
        params: Dict[str, Any] = {
            "f": "geojson",
            "where": combine_where(descriptor.where, where),
            "outFields": ",".join(out_fields) or "*",
            "returnGeometry": "true" if return_geometry else "false",
            "outSR": "4326",
        }
        if geometry is not None:
            if spatial_relationship not in SPATIAL_RELATIONSHIPS:
                raise ValueError(f"unsupported spatial relationship: {spatial_relationship}")
            geometry_type, geometry_json = to_esri_geometry(geometry)
            params.update(
                {
                    "geometry": json.dumps(geometry_json),
                    "geometryType": geometry_type,
                    "inSR": "4326",
                    "spatialRel": SPATIAL_RELATIONSHIPS[spatial_relationship],
                }
            )

        url = f"{self._layer_url(descriptor)}/query"
        features: List[FeatureRecord] = []
        offset = 0
        for _ in range(MAX_PAGES):
            page_params = dict(params)
            if offset:
                page_params["resultOffset"] = str(offset)
            payload = request_json(
                "POST", url, source=descriptor.name, data=page_params, timeout=self.timeout
            )
            raw = payload.get("features")
            if raw is None:
                raise LoadFailure(descriptor.name, "query response has no features member")
            try:
                page = [_parse_feature(item) for item in raw]
            except (TypeError, ValueError, AttributeError, ShapelyError) as exc:
                raise LoadFailure(descriptor.name, f"malformed feature geometry: {exc}") from exc
            features.extend(page)
            if not page or not _exceeded_transfer_limit(payload):
                break
            offset += len(page)
        else:
            self.logger.warning(
                "Stopped paging %s after %d pages (%d features)", descriptor.name, MAX_PAGES, len(features)
            )

        self.logger.debug(
            "FeatureSourceClient.query_features: source=%s spatial=%s got %d features",
            descriptor.name,
            geometry.geom_type if geometry is not None else None,
            len(features),
        )
        return features

    async def load(self, descriptor: SourceDescriptor) -> FeatureSourceHandle:
        return await asyncio.to_thread(self.load_sync, descriptor)

    async def load_many(self, descriptors: Iterable[SourceDescriptor]) -> List[FeatureSourceHandle]:
        return list(await asyncio.gather(*(self.load(d) for d in descriptors)))

    async def query_features(
        self,
        handle: FeatureSourceHandle,
        where: Optional[str] = None,
        geometry: Optional[BaseGeometry] = None,
        spatial_relationship: str = "intersects",
        out_fields: Sequence[str] = ("*",),
        return_geometry: bool = True,
    ) -> List[FeatureRecord]:
        return await asyncio.to_thread(
            self.query_features_sync,
            handle,
            where,
            geometry,
            spatial_relationship,
            out_fields,
            return_geometry,
        )
