"""
Element registries for the two discovery phases.

Ids are opaque strings made of a per-registry counter and a generation token
(``q3-5f2a9c`` / ``el7-5f2a9c``). The generation token is regenerated whenever
the page agent is reset on navigation, so an id handed out for one page load can
never resolve against a later one. Entries hold weak references only; the page
owns element lifetime.
"""

from __future__ import annotations

import itertools
import logging
import secrets
import weakref
from dataclasses import dataclass
from typing import Any

from ..errors import ElementNotFound

logger = logging.getLogger("mcp.tabpilot.page.registry")

QUICK_PREFIX = "q"
DETAILED_PREFIX = "el"


def new_generation() -> str:
    return secrets.token_hex(3)


@dataclass(slots=True)
class ElementRegistration:
    id: str
    element_ref: weakref.ReferenceType
    generation: str

    def resolve(self) -> Any | None:
        return self.element_ref()


class ElementRegistry:
    """One id -> element map, scoped to a single page generation."""

    def __init__(self, prefix: str, generation: str) -> None:
        self.prefix = prefix
        self.generation = generation
        self._counter = itertools.count(1)
        self._entries: dict[str, ElementRegistration] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, element_id: object) -> bool:
        return element_id in self._entries

    def register(self, element: Any) -> str:
        element_id = f"{self.prefix}{next(self._counter)}-{self.generation}"
        self._entries[element_id] = ElementRegistration(element_id, weakref.ref(element), self.generation)
        return element_id

    def get(self, element_id: str) -> Any | None:
        entry = self._entries.get(element_id)
        if entry is None:
            return None
        element = entry.resolve()
        if element is None:
            self._entries.pop(element_id, None)
        return element


class RegistryPair:
    """Quick + detailed registries sharing one generation."""

    def __init__(self) -> None:
        self.generation = ""
        self.quick: ElementRegistry
        self.detailed: ElementRegistry
        self.reset()

    def reset(self) -> None:
        """Discard every registration (navigation/reload edge)."""
        previous = self.generation
        self.generation = new_generation()
        self.quick = ElementRegistry(QUICK_PREFIX, self.generation)
        self.detailed = ElementRegistry(DETAILED_PREFIX, self.generation)
        if previous:
            logger.info("registry_reset previous=%s generation=%s", previous, self.generation)

    def register(self, element: Any) -> str:
        return self.detailed.register(element)

    def register_quick(self, element: Any) -> str:
        return self.quick.register(element)

    def lookup(self, element_id: str) -> Any | None:
        if not isinstance(element_id, str) or not element_id:
            return None
        if element_id.startswith(QUICK_PREFIX):
            return self.quick.get(element_id)
        return self.detailed.get(element_id)

    def require(self, element_id: str) -> Any:
        element = self.lookup(element_id)
        if element is None:
            raise ElementNotFound(str(element_id))
        return element
