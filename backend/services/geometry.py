"""
Geometry helpers: geodesic search circles and shapely -> Esri JSON conversion.
"""
from __future__ import annotations

import math
from typing import Any, Dict, List, Tuple

from shapely.geometry import (
    LineString,
    MultiLineString,
    MultiPoint,
    MultiPolygon,
    Point,
    Polygon,
)
from shapely.geometry.base import BaseGeometry
from shapely.geometry.polygon import orient

EARTH_RADIUS_M = 6_371_008.8
WGS84 = {"wkid": 4326}


def destination_point(lon: float, lat: float, bearing_deg: float, distance_m: float) -> Tuple[float, float]:
    """Point reached by travelling distance_m from (lon, lat) along an initial bearing."""
    delta = distance_m / EARTH_RADIUS_M
    theta = math.radians(bearing_deg)
    phi1 = math.radians(lat)
    lam1 = math.radians(lon)

    phi2 = math.asin(
        math.sin(phi1) * math.cos(delta)
        + math.cos(phi1) * math.sin(delta) * math.cos(theta)
    )
    lam2 = lam1 + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(phi1),
        math.cos(delta) - math.sin(phi1) * math.sin(phi2),
    )
    lon2 = (math.degrees(lam2) + 540.0) % 360.0 - 180.0
    return lon2, math.degrees(phi2)


def geodesic_circle(center: Point, radius_m: float, num_points: int = 100) -> Polygon:
    """Approximate a geodesic circle around a lon/lat center as a polygon."""
    if radius_m <= 0:
        raise ValueError("radius_m must be positive")
    if num_points < 3:
        raise ValueError("num_points must be at least 3")
    ring = [
        destination_point(center.x, center.y, 360.0 * i / num_points, radius_m)
        for i in range(num_points)
    ]
    return Polygon(ring)


def haversine_m(a: Point, b: Point) -> float:
    """Great-circle distance in metres between two lon/lat points."""
    lat1, lon1 = math.radians(a.y), math.radians(a.x)
    lat2, lon2 = math.radians(b.y), math.radians(b.x)
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    x = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2.0 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(x)))


def _rings(polygon: Polygon) -> List[List[List[float]]]:
    # Esri wants clockwise exterior rings, counter-clockwise holes.
    oriented = orient(polygon, sign=-1.0)
    rings = [[list(c[:2]) for c in oriented.exterior.coords]]
    rings.extend([list(c[:2]) for c in interior.coords] for interior in oriented.interiors)
    return rings


def to_esri_geometry(geom: BaseGeometry) -> Tuple[str, Dict[str, Any]]:
    """Return (geometryType, geometry JSON) for an ArcGIS REST spatial filter."""
    if geom is None or geom.is_empty:
        raise ValueError("cannot convert an empty geometry")

    if isinstance(geom, Point):
        return "esriGeometryPoint", {"x": geom.x, "y": geom.y, "spatialReference": WGS84}
    if isinstance(geom, MultiPoint):
        return "esriGeometryMultipoint", {
            "points": [[p.x, p.y] for p in geom.geoms],
            "spatialReference": WGS84,
        }
    if isinstance(geom, LineString):
        return "esriGeometryPolyline", {
            "paths": [[list(c[:2]) for c in geom.coords]],
            "spatialReference": WGS84,
        }
    if isinstance(geom, MultiLineString):
        return "esriGeometryPolyline", {
            "paths": [[list(c[:2]) for c in line.coords] for line in geom.geoms],
            "spatialReference": WGS84,
        }
    if isinstance(geom, Polygon):
        return "esriGeometryPolygon", {"rings": _rings(geom), "spatialReference": WGS84}
    if isinstance(geom, MultiPolygon):
        rings: List[List[List[float]]] = []
        for part in geom.geoms:
            rings.extend(_rings(part))
        return "esriGeometryPolygon", {"rings": rings, "spatialReference": WGS84}

    # Anything else (collections, curves) is sent as its envelope.
    minx, miny, maxx, maxy = geom.bounds
    return "esriGeometryEnvelope", {
        "xmin": minx,
        "ymin": miny,
        "xmax": maxx,
        "ymax": maxy,
        "spatialReference": WGS84,
    }
