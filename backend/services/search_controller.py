"""
Proximity search controller.

Owns the interaction state (last click, selected category, query generation)
and turns map clicks, category changes and result selections into places
queries and render-target updates.

Superseding works by generation stamping: every search trigger bumps
``active_query_generation`` and captures it before awaiting the places
service. A response whose captured generation is no longer current is
dropped without touching any render target. Detail fetches are stamped the
same way against both the search generation and a per-selection counter.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Protocol

from domain.errors import LoadFailure
from domain.models import (
    Graphic,
    PlaceDetail,
    PlaceResult,
    SearchContext,
    SearchPoint,
    SearchState,
)
from services.geometry import geodesic_circle
from services.place_formatting import (
    SEARCH_AREA_SYMBOL,
    build_detail_panel,
    format_result,
    place_marker,
)
from services.render_targets import (
    NO_RESULTS_NOTICE,
    DetailHost,
    GraphicsLayer,
    MapView,
    ResultList,
)
from settings import settings

logger = logging.getLogger(__name__)

SEARCH_CIRCLE_POINTS = 100


def _as_load_failure(exc: Exception) -> LoadFailure:
    if isinstance(exc, LoadFailure):
        return exc
    logger.exception("Unexpected error from places service")
    return LoadFailure("places", f"unexpected error: {exc}")


class PlacesService(Protocol):
    async def query_nearby(
        self,
        point: SearchPoint,
        radius_meters: Optional[float] = None,
        category_id: Optional[str] = None,
    ) -> List[PlaceResult]:
        ...

    async def fetch_details(self, place_id: str, fields=("all",)) -> PlaceDetail:
        ...


class ProximitySearchController:
    def __init__(
        self,
        places: PlacesService,
        map_view: MapView,
        result_list: ResultList,
        detail_host: DetailHost,
        buffer_layer: Optional[GraphicsLayer] = None,
        places_layer: Optional[GraphicsLayer] = None,
        category: Optional[str] = None,
        radius_m: Optional[float] = None,
    ):
        self.places = places
        self.map_view = map_view
        self.result_list = result_list
        self.detail_host = detail_host
        self.buffer_layer = buffer_layer if buffer_layer is not None else GraphicsLayer("bufferLayer")
        self.places_layer = places_layer if places_layer is not None else GraphicsLayer("placesLayer")
        self.radius_m = radius_m or settings.SEARCH_RADIUS_METERS
        self.context = SearchContext(selected_category=category or settings.DEFAULT_CATEGORY_ID)
        self.last_error: Optional[LoadFailure] = None
        self._results: Dict[str, PlaceResult] = {}
        self._detail_generation = 0

    @property
    def state(self) -> SearchState:
        return self.context.state

    @property
    def results(self) -> List[PlaceResult]:
        return list(self._results.values())

    async def on_map_click(self, longitude: float, latitude: float) -> bool:
        self.context.last_click_point = SearchPoint.from_coordinates(longitude, latitude)
        return await self._search()

    async def on_category_change(self, category: str) -> bool:
        self.context.selected_category = category
        if self.context.last_click_point is None:
            return False
        return await self._search()

    def _clear(self) -> None:
        self.places_layer.remove_all()
        self.buffer_layer.remove_all()
        self.result_list.clear()
        self.detail_host.clear()
        self._results = {}

    async def _search(self) -> bool:
        """Query around the stored click point; True if the response was rendered."""
        point = self.context.last_click_point
        category = self.context.selected_category
        self._clear()
        self.context.active_query_generation += 1
        generation = self.context.active_query_generation
        self.context.state = SearchState.QUERYING

        circle = geodesic_circle(point.to_point(), self.radius_m, SEARCH_CIRCLE_POINTS)
        self.buffer_layer.add(Graphic(geometry=circle, symbol=SEARCH_AREA_SYMBOL))

        try:
            results = await self.places.query_nearby(point, self.radius_m, category)
        except Exception as exc:
            failure = _as_load_failure(exc)
            if generation != self.context.active_query_generation:
                logger.debug("Ignoring failure of superseded query %d: %s", generation, failure)
                return False
            logger.warning("Places query at %s failed: %s", point, failure)
            self.last_error = failure
            self.result_list.show_notice(NO_RESULTS_NOTICE)
            self.context.state = SearchState.READY
            return False

        if generation != self.context.active_query_generation:
            logger.debug(
                "Discarding stale places response (generation %d, current %d)",
                generation,
                self.context.active_query_generation,
            )
            return False

        self.last_error = None
        rendered = []
        for result in results:
            if result.place_id in self._results:
                logger.debug("Dropping repeated place %s from response", result.place_id)
                continue
            self._results[result.place_id] = result
            rendered.append(result)
            self.places_layer.add(place_marker(result))
            self.result_list.append(format_result(result))
        if not rendered:
            self.result_list.show_notice(NO_RESULTS_NOTICE)
        self.context.state = SearchState.READY
        logger.info(
            "Rendered %d places near (%.3f, %.3f) for category %s",
            len(rendered),
            point.longitude,
            point.latitude,
            category,
        )
        return True

    async def on_result_select(self, place_id: str) -> bool:
        """Focus a result and show its details; True if the panel was rendered."""
        result = self._results.get(place_id)
        if result is None:
            logger.debug("Selection of unknown place %s ignored", place_id)
            return False

        self.map_view.open_popup(result.name, result.location)
        self.map_view.go_to(result.location)

        search_generation = self.context.active_query_generation
        self._detail_generation += 1
        detail_generation = self._detail_generation

        try:
            detail = await self.places.fetch_details(place_id, ("all",))
        except Exception as exc:
            failure = _as_load_failure(exc)
            logger.warning("Fetching details for %s failed: %s", place_id, failure)
            if detail_generation == self._detail_generation:
                self.last_error = failure
            return False

        if (
            search_generation != self.context.active_query_generation
            or detail_generation != self._detail_generation
        ):
            logger.debug("Discarding stale details for %s", place_id)
            return False

        self.detail_host.show(build_detail_panel(detail))
        self.result_list.select(place_id)
        return True

    def on_detail_dismiss(self) -> None:
        # details still in flight belong to the dismissed selection
        self._detail_generation += 1
        self.map_view.close_popup()
        self.detail_host.clear()
