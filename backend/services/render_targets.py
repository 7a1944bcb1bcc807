"""
Render targets the search controller writes to.

The UI binds to these containers; the controller never looks widgets up by
id. MapView is the camera/callout surface of the external map widget.
"""
from __future__ import annotations

from typing import Any, List, Optional, Protocol

from shapely.geometry.base import BaseGeometry

from domain.models import DetailPanel, Graphic, ResultEntry

PROMPT_NOTICE = "Click on the map to search for nearby places"
NO_RESULTS_NOTICE = "No places found nearby"


class MapView(Protocol):
    def go_to(self, target: BaseGeometry, zoom: Optional[int] = None, **options: Any) -> None:
        ...

    def open_popup(self, title: str, location: BaseGeometry) -> None:
        ...

    def close_popup(self) -> None:
        ...


class GraphicsLayer:
    def __init__(self, layer_id: str):
        self.id = layer_id
        self.graphics: List[Graphic] = []

    def add(self, graphic: Graphic) -> None:
        self.graphics.append(graphic)

    def add_many(self, graphics: List[Graphic]) -> None:
        self.graphics.extend(graphics)

    def remove_all(self) -> None:
        self.graphics.clear()

    def __len__(self) -> int:
        return len(self.graphics)


class ResultList:
    def __init__(self) -> None:
        self.entries: List[ResultEntry] = []
        self.notice: Optional[str] = PROMPT_NOTICE

    def clear(self) -> None:
        self.entries.clear()
        self.notice = None

    def append(self, entry: ResultEntry) -> None:
        self.entries.append(entry)
        self.notice = None

    def show_notice(self, message: str) -> None:
        self.notice = message

    def select(self, place_id: str) -> None:
        """Mark exactly one entry as selected, the first with this place id."""
        found = False
        for entry in self.entries:
            entry.selected = not found and entry.place_id == place_id
            found = found or entry.selected

    @property
    def selected(self) -> Optional[ResultEntry]:
        for entry in self.entries:
            if entry.selected:
                return entry
        return None


class DetailHost:
    """Holds at most one detail panel."""

    def __init__(self) -> None:
        self.panel: Optional[DetailPanel] = None

    def show(self, panel: DetailPanel) -> None:
        self.panel = panel

    def clear(self) -> None:
        self.panel = None
