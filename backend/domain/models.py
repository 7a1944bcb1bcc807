"""
Core domain models for the coastal places explorer.
These are framework-agnostic and shared by the pipelines, the search
controller and the API layer.
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from shapely.geometry import Point, mapping
from shapely.geometry.base import BaseGeometry


# Attribute carrying the city identity on the California cities layer.
CITY_NAME_FIELD = "CDTFA_CITY"


class SearchState(str, Enum):
    """Lifecycle of the proximity search controller."""
    IDLE = "idle"
    QUERYING = "querying"
    READY = "ready"


class SocialPlatform(str, Enum):
    FACEBOOK = "facebook"
    X = "x"
    INSTAGRAM = "instagram"


@dataclass(frozen=True)
class SourceDescriptor:
    """A remote feature layer: service URL plus optional definition expression."""
    name: str
    url: str
    where: Optional[str] = None


@dataclass(frozen=True)
class FeatureSourceHandle:
    """A loaded feature layer, ready to be queried."""
    descriptor: SourceDescriptor
    layer_name: str = ""
    geometry_type: Optional[str] = None  # e.g. "esriGeometryPoint"
    max_record_count: int = 1000
    fields: Tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return self.descriptor.name


@dataclass(frozen=True)
class FeatureRecord:
    """A geometry plus its attributes, immutable once fetched."""
    geometry: Optional[BaseGeometry]
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.attributes.get(key, default)

    def to_geojson(self) -> Dict[str, Any]:
        return {
            "type": "Feature",
            "geometry": mapping(self.geometry) if self.geometry is not None else None,
            "properties": dict(self.attributes),
        }


@dataclass(frozen=True)
class SeedSet:
    """Named, read-only collection of features that anchor a spatial join."""
    name: str
    features: Tuple[FeatureRecord, ...] = ()

    def __len__(self) -> int:
        return len(self.features)


class DedupIndex:
    """City names already emitted during one pipeline run."""

    def __init__(self) -> None:
        self._seen: set = set()

    def __contains__(self, key: object) -> bool:
        return key in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def add(self, key: Any) -> None:
        self._seen.add(key)


def _round_half_up(value: float, decimals: int = 3) -> float:
    factor = 10 ** decimals
    return math.floor(value * factor + 0.5) / factor


@dataclass(frozen=True)
class SearchPoint:
    """A clicked map location, rounded to ~0.1 km so repeat queries are stable."""
    longitude: float
    latitude: float

    @classmethod
    def from_coordinates(cls, longitude: float, latitude: float) -> "SearchPoint":
        return cls(
            longitude=_round_half_up(float(longitude)),
            latitude=_round_half_up(float(latitude)),
        )

    def to_point(self) -> Point:
        return Point(self.longitude, self.latitude)


@dataclass(frozen=True)
class PlaceResult:
    """One place returned by a nearby search."""
    place_id: str
    name: str
    category_label: str
    location: Point
    distance_meters: float
    icon_url: Optional[str] = None


@dataclass(frozen=True)
class PlaceDetail:
    """
    Full details for a single place.

    Everything except name and category_label is optional. social_links maps
    a SocialPlatform value to the raw handle or id reported by the service.
    """
    place_id: str
    name: str
    category_label: str
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    social_links: Mapping[str, str] = field(default_factory=dict)


@dataclass
class SearchContext:
    """Live state of the proximity search controller."""
    selected_category: str
    last_click_point: Optional[SearchPoint] = None
    active_query_generation: int = 0
    state: SearchState = SearchState.IDLE


# Display records handed to the UI layer

@dataclass(frozen=True)
class Graphic:
    geometry: BaseGeometry
    symbol: Dict[str, Any]
    attributes: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ResultEntry:
    place_id: str
    label: str
    description: str
    selected: bool = False


@dataclass(frozen=True)
class AttributeEntry:
    heading: str
    icon: str
    value: str


@dataclass
class DetailPanel:
    place_id: str
    heading: str
    description: str
    entries: List[AttributeEntry] = field(default_factory=list)
