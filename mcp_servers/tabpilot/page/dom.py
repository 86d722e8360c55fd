"""
DOM capability interface consumed by the page agent.

The agent never talks to a concrete DOM implementation directly; everything it
needs from a live page is described by the ``Element`` and ``Document``
protocols below. ``page/snapshot.py`` provides the HTML-snapshot backend.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True, slots=True)
class Rect:
    """Viewport-relative bounding box (CSS pixels)."""

    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def left(self) -> float:
        return self.x

    @property
    def top(self) -> float:
        return self.y

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def as_list(self) -> list[int]:
        return [round(self.x), round(self.y), round(self.width), round(self.height)]


@dataclass(frozen=True, slots=True)
class Style:
    """Subset of the computed style the agent relies on."""

    display: str = "block"
    visibility: str = "visible"
    opacity: str = "1"
    pointer_events: str = "auto"


@dataclass(slots=True)
class DomEvent:
    type: str
    bubbles: bool = True
    trusted: bool = False
    detail: dict[str, Any] = field(default_factory=dict)
    target: Any = None


@dataclass(frozen=True, slots=True)
class Selection:
    text: str
    anchor: Any = None
    anchor_offset: int = 0
    focus_offset: int = 0
    range_count: int = 1

    @property
    def is_collapsed(self) -> bool:
        return not self.text


class Element(Protocol):
    @property
    def tag_name(self) -> str: ...

    @property
    def class_list(self) -> list[str]: ...

    @property
    def parent(self) -> Element | None: ...

    @property
    def children(self) -> list[Element]: ...

    @property
    def is_content_editable(self) -> bool: ...

    @property
    def disabled(self) -> bool: ...

    @property
    def href(self) -> str: ...

    text_content: str
    value: str

    def get_attribute(self, name: str) -> str | None: ...

    def has_attribute(self, name: str) -> bool: ...

    def set_attribute(self, name: str, value: str) -> None: ...

    def matches(self, selector: str) -> bool: ...

    def closest(self, selector: str) -> Element | None: ...

    def query_selector(self, selector: str) -> Element | None: ...

    def query_selector_all(self, selector: str) -> list[Element]: ...

    def computed_style(self) -> Style: ...

    def bounding_rect(self) -> Rect: ...

    def is_rendered(self) -> bool: ...

    def scroll_into_view(self, *, smooth: bool = True) -> None: ...

    def focus(self) -> None: ...

    def click(self) -> None: ...

    def dispatch_event(self, event: DomEvent) -> bool: ...


class Document(Protocol):
    url: str
    active_element: Element | None
    scroll_x: float
    scroll_y: float

    @property
    def hostname(self) -> str: ...

    @property
    def title(self) -> str: ...

    @property
    def inner_width(self) -> float: ...

    @property
    def inner_height(self) -> float: ...

    @property
    def scroll_height(self) -> float: ...

    @property
    def scroll_width(self) -> float: ...

    def body_text(self) -> str: ...

    def query_selector(self, selector: str) -> Element | None: ...

    def query_selector_all(self, selector: str) -> list[Element]: ...

    def exec_command(self, command: str, value: str | None = None) -> bool: ...

    def scroll_by(self, dx: float, dy: float) -> None: ...

    def scroll_to(self, x: float, y: float) -> None: ...

    def dispatch_event(self, event: DomEvent) -> bool: ...

    def get_selection(self) -> Selection | None: ...
