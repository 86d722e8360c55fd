"""
HTML-snapshot DOM backend (BeautifulSoup).

A ``SnapshotDocument`` parses a page once and exposes it through the
``page.dom`` protocols. There is no layout engine: every rendered element gets
a synthetic box stacked in document order, and callers (tests, loaders) may pin
real geometry with ``set_rect``. Mutations performed by the agent (focus,
clicks, synthetic events, editing commands) are applied to the tree and
recorded in ``events`` so interaction sequences can be inspected afterwards.
"""

from __future__ import annotations

from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup, Tag

from .dom import DomEvent, Rect, Selection, Style

DEFAULT_VIEWPORT = (1280, 800)

# Synthetic layout: one row per rendered element, in document order.
_ROW_HEIGHT = 16
_BOX_HEIGHT = 14
_BOX_WIDTH = 240
_MARGIN = 8

_NON_RENDERED_TAGS = {"head", "title", "meta", "script", "style", "link", "template", "noscript", "base"}
_TEXT_CONTROLS = {"input", "textarea"}


def _parse_inline_style(raw: str | None) -> dict[str, str]:
    out: dict[str, str] = {}
    for decl in (raw or "").split(";"):
        if ":" not in decl:
            continue
        key, _, val = decl.partition(":")
        key = key.strip().lower()
        if key:
            out[key] = val.replace("!important", "").strip().lower()
    return out


class SnapshotElement:
    """Element wrapper with browser-like accessors over a bs4 ``Tag``."""

    def __init__(self, document: SnapshotDocument, tag: Tag) -> None:
        self._doc = document
        self.tag = tag
        self._value: str | None = None
        self._checked: bool | None = None

    def __repr__(self) -> str:
        ident = self.get_attribute("id")
        return f"<SnapshotElement {self.tag_name}{'#' + ident if ident else ''}>"

    # ── attributes ────────────────────────────────────────────────────────

    @property
    def owner_document(self) -> SnapshotDocument:
        return self._doc

    @property
    def tag_name(self) -> str:
        return (self.tag.name or "").lower()

    def get_attribute(self, name: str) -> str | None:
        raw = self.tag.get(name)
        if raw is None:
            return None
        if isinstance(raw, list):
            return " ".join(raw)
        return str(raw)

    def has_attribute(self, name: str) -> bool:
        return self.tag.has_attr(name)

    def set_attribute(self, name: str, value: str) -> None:
        self.tag[name] = value

    @property
    def class_list(self) -> list[str]:
        raw = self.tag.get("class")
        if raw is None:
            return []
        if isinstance(raw, str):
            return raw.split()
        return [c for c in raw if c]

    @property
    def input_type(self) -> str:
        return (self.get_attribute("type") or "text").strip().lower() if self.tag_name == "input" else ""

    @property
    def href(self) -> str:
        raw = self.get_attribute("href")
        if raw is None:
            return ""
        return urljoin(self._doc.url, raw.strip())

    @property
    def is_content_editable(self) -> bool:
        node: SnapshotElement | None = self
        while node is not None:
            raw = node.get_attribute("contenteditable")
            if raw is not None:
                return raw.strip().lower() in {"", "true", "plaintext-only"}
            node = node.parent
        return False

    @property
    def disabled(self) -> bool:
        if self.tag_name not in {"button", "input", "select", "textarea", "option", "fieldset"}:
            return False
        return self.has_attribute("disabled")

    @property
    def checked(self) -> bool:
        if self._checked is None:
            return self.has_attribute("checked")
        return self._checked

    # ── content ───────────────────────────────────────────────────────────

    @property
    def text_content(self) -> str:
        if self.tag_name == "input":
            return ""
        return self.tag.get_text()

    @text_content.setter
    def text_content(self, value: str) -> None:
        self.tag.string = value or ""

    @property
    def value(self) -> str:
        if self._value is not None:
            return self._value
        name = self.tag_name
        if name == "input":
            return self.get_attribute("value") or ""
        if name == "textarea":
            return self.tag.get_text()
        if name == "select":
            chosen = self.tag.find("option", selected=True) or self.tag.find("option")
            if isinstance(chosen, Tag):
                raw = chosen.get("value")
                return str(raw) if raw is not None else chosen.get_text().strip()
        return ""

    @value.setter
    def value(self, value: str) -> None:
        self._value = value or ""

    @property
    def inner_text(self) -> str:
        return " ".join(self.tag.get_text(" ").split())

    # ── tree ──────────────────────────────────────────────────────────────

    @property
    def parent(self) -> SnapshotElement | None:
        parent = self.tag.parent
        if parent is None or not isinstance(parent, Tag) or parent.name == "[document]":
            return None
        return self._doc.wrap(parent)

    @property
    def children(self) -> list[SnapshotElement]:
        return [self._doc.wrap(t) for t in self.tag.find_all(True, recursive=False)]

    def matches(self, selector: str) -> bool:
        return bool(self.tag.css.match(selector))

    def closest(self, selector: str) -> SnapshotElement | None:
        found = self.tag.css.closest(selector)
        return self._doc.wrap(found) if isinstance(found, Tag) else None

    def query_selector(self, selector: str) -> SnapshotElement | None:
        found = self.tag.select_one(selector)
        return self._doc.wrap(found) if isinstance(found, Tag) else None

    def query_selector_all(self, selector: str) -> list[SnapshotElement]:
        return [self._doc.wrap(t) for t in self.tag.select(selector)]

    # ── style and geometry ────────────────────────────────────────────────

    def _inline_style(self) -> dict[str, str]:
        return _parse_inline_style(self.get_attribute("style"))

    def _own_display(self) -> str:
        if self.tag_name in _NON_RENDERED_TAGS or self.has_attribute("hidden"):
            return "none"
        if self.tag_name == "input" and self.input_type == "hidden":
            return "none"
        return self._inline_style().get("display") or "block"

    def _inherited(self, prop: str, default: str) -> str:
        node: SnapshotElement | None = self
        while node is not None:
            val = node._inline_style().get(prop)
            if val:
                return val
            node = node.parent
        return default

    def computed_style(self) -> Style:
        return Style(
            display=self._own_display(),
            visibility=self._inherited("visibility", "visible"),
            opacity=self._inline_style().get("opacity") or "1",
            pointer_events=self._inherited("pointer-events", "auto"),
        )

    def is_rendered(self) -> bool:
        node: SnapshotElement | None = self
        while node is not None:
            if node._own_display() == "none":
                return False
            node = node.parent
        return True

    def bounding_rect(self) -> Rect:
        if not self.is_rendered():
            return Rect()
        page = self._doc.page_rect(self)
        return Rect(page.x - self._doc.scroll_x, page.y - self._doc.scroll_y, page.width, page.height)

    # ── interaction ───────────────────────────────────────────────────────

    def scroll_into_view(self, *, smooth: bool = True) -> None:
        self._doc.scroll_element_into_view(self)

    def focus(self) -> None:
        if self._doc.active_element is not self:
            self._doc.active_element = self
            self._doc.record(DomEvent("focus", bubbles=False, trusted=True, target=self))

    def click(self) -> None:
        if self.disabled:
            return
        if self.tag_name == "input" and self.input_type in {"checkbox", "radio"}:
            self._checked = not self.checked
        self._doc.record(DomEvent("click", trusted=True, target=self))

    def dispatch_event(self, event: DomEvent) -> bool:
        event.target = self
        self._doc.record(event)
        return True


class SnapshotDocument:
    """A parsed page plus the mutable browser state the agent touches."""

    def __init__(
        self,
        html: str,
        *,
        url: str = "about:blank",
        title: str | None = None,
        viewport: tuple[int, int] = DEFAULT_VIEWPORT,
    ) -> None:
        self.soup = BeautifulSoup(html or "", "html.parser")
        self.url = url
        self._title = title
        self._viewport = viewport
        self._wrappers: dict[int, SnapshotElement] = {}
        self._rects: dict[int, Rect] = {}
        self._order: dict[int, int] | None = None
        self._selection: Selection | None = None
        self._select_all = False
        self.events: list[DomEvent] = []
        self.active_element: SnapshotElement | None = None
        self.scroll_x = 0.0
        self.scroll_y = 0.0

    def wrap(self, tag: Tag) -> SnapshotElement:
        """Return the stable wrapper for ``tag`` (same object on every lookup)."""
        key = id(tag)
        el = self._wrappers.get(key)
        if el is None:
            el = SnapshotElement(self, tag)
            self._wrappers[key] = el
        return el

    def record(self, event: DomEvent) -> None:
        self.events.append(event)

    def event_types(self, target: SnapshotElement | None = None) -> list[str]:
        return [e.type for e in self.events if target is None or e.target is target]

    # ── page info ─────────────────────────────────────────────────────────

    @property
    def hostname(self) -> str:
        try:
            return (urlsplit(self.url).hostname or "").lower()
        except ValueError:
            return ""

    @property
    def title(self) -> str:
        if self._title is not None:
            return self._title
        tag = self.soup.find("title")
        return tag.get_text().strip() if isinstance(tag, Tag) else ""

    @property
    def inner_width(self) -> float:
        return float(self._viewport[0])

    @property
    def inner_height(self) -> float:
        return float(self._viewport[1])

    @property
    def scroll_height(self) -> float:
        bottom = 0.0
        for tag in self.soup.find_all(True):
            el = self.wrap(tag)
            if el.is_rendered():
                bottom = max(bottom, self.page_rect(el).bottom)
        return max(self.inner_height, bottom + _MARGIN)

    @property
    def scroll_width(self) -> float:
        right = 0.0
        for key, rect in self._rects.items():
            el = self._wrappers.get(key)
            if el is not None and el.is_rendered():
                right = max(right, rect.right)
        return max(self.inner_width, right + _MARGIN)

    def body_text(self) -> str:
        body = self.soup.body
        return (body or self.soup).get_text()

    # ── queries ───────────────────────────────────────────────────────────

    def query_selector(self, selector: str) -> SnapshotElement | None:
        found = self.soup.select_one(selector)
        return self.wrap(found) if isinstance(found, Tag) else None

    def query_selector_all(self, selector: str) -> list[SnapshotElement]:
        return [self.wrap(t) for t in self.soup.select(selector)]

    def get_element_by_id(self, element_id: str) -> SnapshotElement | None:
        found = self.soup.find(id=element_id)
        return self.wrap(found) if isinstance(found, Tag) else None

    # ── layout ────────────────────────────────────────────────────────────

    def set_rect(self, element: SnapshotElement | str, x: float, y: float, width: float, height: float) -> None:
        """Pin page-coordinate geometry for an element (or the first selector match)."""
        target = self.query_selector(element) if isinstance(element, str) else element
        if target is None:
            raise LookupError(f"No element matches {element!r}")
        self._rects[id(target.tag)] = Rect(float(x), float(y), float(width), float(height))

    def page_rect(self, element: SnapshotElement) -> Rect:
        pinned = self._rects.get(id(element.tag))
        if pinned is not None:
            return pinned
        if self._order is None:
            self._order = {id(t): i for i, t in enumerate(self.soup.find_all(True))}
        index = self._order.get(id(element.tag), len(self._order))
        return Rect(_MARGIN, _MARGIN + index * _ROW_HEIGHT, _BOX_WIDTH, _BOX_HEIGHT)

    def scroll_to(self, x: float, y: float) -> None:
        max_x = max(0.0, self.scroll_width - self.inner_width)
        max_y = max(0.0, self.scroll_height - self.inner_height)
        self.scroll_x = min(max(0.0, float(x)), max_x)
        self.scroll_y = min(max(0.0, float(y)), max_y)

    def scroll_by(self, dx: float, dy: float) -> None:
        self.scroll_to(self.scroll_x + dx, self.scroll_y + dy)

    def scroll_element_into_view(self, element: SnapshotElement) -> None:
        if not element.is_rendered():
            return
        rect = self.page_rect(element)
        self.scroll_to(
            rect.x + rect.width / 2 - self.inner_width / 2,
            rect.y + rect.height / 2 - self.inner_height / 2,
        )

    # ── events, editing and selection ─────────────────────────────────────

    def dispatch_event(self, event: DomEvent) -> bool:
        event.target = self
        self.record(event)
        return True

    def _editable_target(self) -> SnapshotElement | None:
        el = self.active_element
        if el is None or el.disabled:
            return None
        if el.tag_name in _TEXT_CONTROLS or el.is_content_editable:
            return el
        return None

    def _read_editable(self, el: SnapshotElement) -> str:
        return el.value if el.tag_name in _TEXT_CONTROLS else el.text_content

    def _write_editable(self, el: SnapshotElement, text: str) -> None:
        if el.tag_name in _TEXT_CONTROLS:
            el.value = text
        else:
            el.text_content = text

    def exec_command(self, command: str, value: str | None = None) -> bool:
        """Editing commands on the focused element (``insertText``, ``selectAll``, ``delete``)."""
        cmd = (command or "").strip()
        target = self._editable_target()

        if cmd == "selectAll":
            if target is not None:
                self._select_all = True
                self._selection = Selection(self._read_editable(target), anchor=target)
            else:
                self._selection = Selection(self.body_text(), anchor=None)
            return True

        if target is None:
            return False

        if cmd == "delete":
            current = self._read_editable(target)
            self._write_editable(target, "" if self._select_all else current[:-1])
            self._select_all = False
            self._selection = None
            self.record(DomEvent("input", trusted=True, detail={"inputType": "deleteContent"}, target=target))
            return True

        if cmd == "insertText":
            text = value or ""
            self.record(DomEvent("beforeinput", trusted=True, detail={"data": text}, target=target))
            current = "" if self._select_all else self._read_editable(target)
            self._write_editable(target, current + text)
            self._select_all = False
            self._selection = None
            self.record(DomEvent("input", trusted=True, detail={"inputType": "insertText", "data": text}, target=target))
            return True

        return False

    def select_text(self, element: SnapshotElement, start: int = 0, end: int | None = None) -> None:
        """Place the user selection inside ``element``'s text."""
        text = self._read_editable(element) if element.tag_name in _TEXT_CONTROLS else element.text_content
        stop = len(text) if end is None else end
        self._selection = Selection(text[start:stop], anchor=element, anchor_offset=start, focus_offset=stop)

    def get_selection(self) -> Selection | None:
        return self._selection
