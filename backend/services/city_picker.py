"""
City picker: alphabetical city options and camera moves to a chosen city.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple

from domain.models import FeatureRecord, Graphic
from services.place_formatting import CITY_FILL_SYMBOL
from services.render_targets import GraphicsLayer, MapView
from settings import settings

CITY_ZOOM = 12
GO_TO_OPTIONS = {"duration": 1000, "easing": "ease-in-out"}


def city_options(
    features: Sequence[FeatureRecord], key_field: Optional[str] = None
) -> List[Tuple[str, str]]:
    """(value, heading) pairs sorted by city name; unnamed features are skipped."""
    key_field = key_field or settings.CITY_NAME_FIELD
    names = {str(f.get(key_field)) for f in features if f.get(key_field)}
    return [(name, name) for name in sorted(names, key=lambda n: (n.casefold(), n))]


def city_graphics(features: Sequence[FeatureRecord]) -> List[Graphic]:
    """Fill graphics for the city layer, carrying the feature attributes."""
    return [
        Graphic(geometry=f.geometry, symbol=CITY_FILL_SYMBOL, attributes=dict(f.attributes))
        for f in features
        if f.geometry is not None
    ]


class CityPicker:
    def __init__(
        self,
        map_view: MapView,
        features: Sequence[FeatureRecord],
        key_field: Optional[str] = None,
        city_layer: Optional[GraphicsLayer] = None,
    ):
        self.map_view = map_view
        self.city_layer = city_layer if city_layer is not None else GraphicsLayer("cityLayer")
        self.city_layer.remove_all()
        self.city_layer.add_many(city_graphics(features))
        self.key_field = key_field or settings.CITY_NAME_FIELD
        self._by_name: Dict[str, FeatureRecord] = {}
        for feature in features:
            name = feature.get(self.key_field)
            if name and name not in self._by_name:
                self._by_name[str(name)] = feature

    @property
    def options(self) -> List[Tuple[str, str]]:
        return city_options(list(self._by_name.values()), self.key_field)

    def select(self, city_name: Optional[str]) -> bool:
        """Move the map to the named city. Returns False if nothing matched."""
        if not city_name:
            return False
        feature = self._by_name.get(city_name)
        if feature is None or feature.geometry is None:
            return False
        self.map_view.go_to(feature.geometry, zoom=CITY_ZOOM, **GO_TO_OPTIONS)
        return True
