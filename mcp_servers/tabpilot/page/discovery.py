"""
Two-phase element discovery.

``discover`` is the cheap pass: platform bypass selectors (compose/publish
hints on known origins), then the (category, action) rule table, then the
universal selector lists, then a bounded viewport scan. Every hit is registered
in the quick registry and returned as a compact record.

``detailed`` expands quick ids, sweeps named focus areas, or falls back to a
semantic sweep over a larger candidate set. Hits are registered in the
detailed registry and carry a position fingerprint plus geometry/state meta.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from . import element_state as es
from .dom import Document, Element
from .patterns import (
    PatternRule,
    find_rule,
    match_bypass_platform,
    parse_intent,
    suggests_compose,
    universal_selectors_for,
)
from .registry import RegistryPair

logger = logging.getLogger("mcp.tabpilot.page.discovery")

DISCOVER_MAX_RESULTS = 5
QUICK_MATCH_LIMIT = 3
VIEWPORT_SCAN_LIMIT = 10
SWEEP_LIMIT = 30
FOCUS_AREA_LIMIT = 5
EXPANDED_CONFIDENCE = 0.8
BYPASS_CONFIDENCE = 0.95

_COUNT_SELECTOR = "button, input, select, textarea, a[href]"
_SCAN_SELECTOR = 'button, input, a[href], [role="button"], textarea'
_SWEEP_SELECTOR = (
    'button, input, select, textarea, a[href], [role="button"], [role="textbox"], '
    '[role="searchbox"], [aria-label], [data-testid], [contenteditable="true"]'
)
FOCUS_AREA_SELECTORS: dict[str, str] = {
    "buttons": 'button, [role="button"], input[type="submit"]',
    "forms": 'input, textarea, select, [contenteditable="true"]',
    "navigation": 'nav a, .nav-item, [role="navigation"] a',
    "search_elements": '[type="search"], [role="searchbox"], [placeholder*="search" i]',
}


@dataclass(slots=True)
class Candidate:
    element: Element
    type: str
    name: str
    confidence: float
    selector: str = ""
    id: str = ""


@dataclass(slots=True)
class PatternHit:
    candidates: list[Candidate] = field(default_factory=list)
    confidence: float = 0.0
    method: str = ""


def detect_page_type(doc: Document) -> str:
    host = doc.hostname
    title = (doc.title or "").lower()
    if "twitter" in host or "x.com" in host:
        return "social_media"
    if "github" in host:
        return "code_repository"
    if "google" in host:
        return "search_engine"
    if doc.query_selector('[contenteditable="true"], textarea[placeholder*="post" i]') is not None:
        return "content_creation"
    if doc.query_selector('[type="password"], [name*="login" i]') is not None:
        return "authentication"
    if doc.query_selector('[type="search"], [role="searchbox"]') is not None:
        return "search_interface"
    if "shop" in title or "store" in title:
        return "ecommerce"
    return "general_website"


def count_viewport_elements(doc: Document) -> dict[str, int]:
    visible = [el for el in doc.query_selector_all(_COUNT_SELECTOR) if es.is_likely_visible(el, doc)]
    return {
        "buttons": sum(1 for el in visible if el.tag_name == "button" or el.get_attribute("role") == "button"),
        "inputs": sum(1 for el in visible if el.tag_name == "input"),
        "links": sum(1 for el in visible if el.tag_name == "a"),
        "textareas": sum(1 for el in visible if el.tag_name == "textarea"),
        "selects": sum(1 for el in visible if el.tag_name == "select"),
    }


def score_intent_match(quick_matches: list[dict[str, Any]]) -> str:
    if not quick_matches:
        return "none"
    avg = sum(m["conf"] for m in quick_matches) / len(quick_matches)
    if avg >= 80:
        return "high"
    if avg >= 60:
        return "medium"
    if avg >= 40:
        return "low"
    return "none"


def suggest_phase2_areas(quick_matches: list[dict[str, Any]], intent_hint: str) -> list[str]:
    types = {m["type"] for m in quick_matches}
    suggestions: list[str] = []
    if "button" in types:
        suggestions.append("buttons")
    if "input" in types or "textarea" in types:
        suggestions.append("forms")
    if "link" in types:
        suggestions.append("navigation")
    if "search" in (intent_hint or "").lower() and "forms" not in suggestions:
        suggestions.append("search_elements")
    return suggestions[:3]


def estimate_phase2_tokens(quick_matches: list[dict[str, Any]]) -> int:
    return 50 + len(quick_matches) * 15 + 20


def dedupe(candidates: list[Candidate]) -> list[Candidate]:
    seen: set[tuple[str, str]] = set()
    out: list[Candidate] = []
    for c in candidates:
        key = (c.name, c.type)
        if key in seen:
            continue
        seen.add(key)
        out.append(c)
    return out


class DiscoveryEngine:
    def __init__(self, doc: Document, registries: RegistryPair, *, detailed_max: int = 7) -> None:
        self.doc = doc
        self.registries = registries
        self.detailed_max = max(1, int(detailed_max))

    # ── compact records ───────────────────────────────────────────────────

    def quick_record(self, candidate: Candidate) -> dict[str, Any]:
        el = candidate.element
        state = es.element_state(el, self.doc)
        return {
            "id": self.registries.register_quick(el),
            "type": candidate.type or "element",
            "name": (candidate.name or "unnamed")[:20],
            "conf": round(candidate.confidence * 100),
            "selector": candidate.selector or "unknown",
            "state": "disabled" if state["disabled"] else "enabled",
            "clickable": state["clickable"],
            "ready": state["interaction_ready"],
        }

    def detailed_record(self, candidate: Candidate) -> dict[str, Any]:
        el = candidate.element
        meta = es.element_meta(el, self.doc)
        meta["state"] = es.element_state(el, self.doc)
        return {
            "id": candidate.id,
            "type": candidate.type,
            "fp": es.fingerprint(el),
            "name": (candidate.name or "unnamed")[:30],
            "conf": round(candidate.confidence * 100),
            "meta": meta,
        }

    def _candidate(self, el: Element, confidence: float, *, type_: str | None = None, selector: str = "") -> Candidate:
        return Candidate(
            element=el,
            type=type_ or es.infer_element_type(el),
            name=es.get_element_name(el),
            confidence=confidence,
            selector=selector,
        )

    # ── discover phase ────────────────────────────────────────────────────

    def _bypass_hits(self, intent_hint: str) -> PatternHit:
        platform = match_bypass_platform(self.doc.hostname)
        if platform is None or not suggests_compose(intent_hint):
            return PatternHit()
        found: list[Candidate] = []
        for role, type_ in (("textarea", "textarea"), ("submit", "button")):
            selector = platform.selectors_by_role.get(role)
            if not selector:
                continue
            el = self.doc.query_selector(selector)
            if el is not None and es.is_likely_visible(el, self.doc):
                found.append(self._candidate(el, BYPASS_CONFIDENCE, type_=type_, selector=selector))
        return PatternHit(found, BYPASS_CONFIDENCE if found else 0.0, "anti_detection_bypass")

    def find_pattern_elements(self, rule: PatternRule) -> list[Candidate]:
        """First visible match per role; an element already claimed by an earlier role is skipped."""
        found: list[Candidate] = []
        claimed: list[Element] = []
        for role, selectors in rule.selectors_by_role.items():
            for selector in selectors:
                el = next(
                    (
                        e
                        for e in self.doc.query_selector_all(selector)
                        if not any(e is c for c in claimed) and es.is_likely_visible(e, self.doc)
                    ),
                    None,
                )
                if el is not None:
                    claimed.append(el)
                    found.append(self._candidate(el, es.pattern_confidence(el, rule.confidence), type_=role, selector=selector))
                    break
        return found

    def _rule_hits(self, intent_hint: str) -> PatternHit:
        category, action = parse_intent(intent_hint)
        rule = find_rule(category, action)
        if rule is None:
            return PatternHit()
        found = self.find_pattern_elements(rule)
        return PatternHit(found, rule.confidence if found else 0.0, "enhanced_patterns")

    def _universal_hits(self, intent_hint: str) -> PatternHit:
        found: list[Candidate] = []
        seen: set[int] = set()
        for selector in universal_selectors_for(intent_hint):
            for el in self.doc.query_selector_all(selector):
                if id(el) in seen or not es.is_likely_visible(el, self.doc):
                    continue
                seen.add(id(el))
                confidence = 0.5 + es.hint_confidence(el, intent_hint) * 0.3
                found.append(self._candidate(el, confidence, selector=selector))
                if len(found) >= QUICK_MATCH_LIMIT:
                    break
            if len(found) >= QUICK_MATCH_LIMIT:
                break
        best = max((c.confidence for c in found), default=0.0)
        return PatternHit(found, best, "universal_patterns")

    def _viewport_scan(self, intent_hint: str, limit: int) -> list[Candidate]:
        visible = [el for el in self.doc.query_selector_all(_SCAN_SELECTOR) if es.is_likely_visible(el, self.doc)]
        scored = [self._candidate(el, es.hint_confidence(el, intent_hint)) for el in visible[:VIEWPORT_SCAN_LIMIT]]
        scored = [c for c in scored if c.confidence > 0.3]
        scored.sort(key=lambda c: c.confidence, reverse=True)
        return scored[:limit]

    def discover(self, intent_hint: str, max_results: int = DISCOVER_MAX_RESULTS) -> dict[str, Any]:
        started = time.perf_counter()
        hint = intent_hint or ""
        max_results = max(1, min(int(max_results or DISCOVER_MAX_RESULTS), DISCOVER_MAX_RESULTS))
        limit = min(QUICK_MATCH_LIMIT, max_results)

        candidates: list[Candidate] = []
        method = "viewport_scan"
        for stage, gate in ((self._bypass_hits, 0.9), (self._rule_hits, 0.7), (self._universal_hits, 0.7)):
            hit = stage(hint)
            if hit.candidates and hit.confidence > gate:
                candidates = hit.candidates[:limit]
                method = hit.method
                break
        if not candidates:
            candidates = self._viewport_scan(hint, limit)

        quick_matches = [self.quick_record(c) for c in candidates]
        platform = match_bypass_platform(self.doc.hostname)
        logger.debug("discover hint=%r method=%s matches=%d", hint, method, len(quick_matches))
        return {
            "summary": {
                "page_type": detect_page_type(self.doc),
                "intent_match": score_intent_match(quick_matches),
                "element_count": count_viewport_elements(self.doc),
                "viewport_elements": len(quick_matches),
                "suggested_phase2": suggest_phase2_areas(quick_matches, hint),
                "anti_detection_platform": self.doc.hostname if platform is not None else None,
            },
            "quick_matches": quick_matches,
            "elements": quick_matches,
            "token_estimate": estimate_phase2_tokens(quick_matches),
            "method": method,
            "execution_time": round((time.perf_counter() - started) * 1000),
            "intent_hint": hint,
        }

    # ── detailed phase ────────────────────────────────────────────────────

    def _expand(self, element_ids: list[str]) -> tuple[list[Candidate], list[str]]:
        found: list[Candidate] = []
        missing: list[str] = []
        for quick_id in element_ids:
            el = self.registries.quick.get(quick_id) if isinstance(quick_id, str) else None
            if el is None:
                missing.append(str(quick_id))
                continue
            c = self._candidate(el, EXPANDED_CONFIDENCE)
            c.id = self.registries.register(el)
            found.append(c)
        return found, missing

    def _focus_areas(self, focus_areas: list[str], intent_hint: str) -> list[Candidate]:
        found: list[Candidate] = []
        for area in focus_areas:
            selector = FOCUS_AREA_SELECTORS.get(area)
            if not selector:
                continue
            for el in self.doc.query_selector_all(selector)[:FOCUS_AREA_LIMIT]:
                if not es.is_likely_visible(el, self.doc):
                    continue
                c = self._candidate(el, es.hint_confidence(el, intent_hint))
                c.id = self.registries.register(el)
                found.append(c)
        return found

    def _sweep(self, intent_hint: str, max_results: int) -> list[Candidate]:
        visible = [el for el in self.doc.query_selector_all(_SWEEP_SELECTOR) if es.is_likely_visible(el, self.doc)]
        scored: list[Candidate] = []
        for el in visible[:SWEEP_LIMIT]:
            c = self._candidate(el, es.hint_confidence(el, intent_hint), selector=es.generate_selector(el))
            if c.confidence > 0.2:
                scored.append(c)
        scored.sort(key=lambda c: c.confidence, reverse=True)
        scored = scored[:max_results]
        for c in scored:
            c.id = self.registries.register(c.element)
        return scored

    def detailed(
        self,
        intent_hint: str,
        *,
        focus_areas: list[str] | None = None,
        element_ids: list[str] | None = None,
        max_results: int | None = None,
    ) -> dict[str, Any]:
        started = time.perf_counter()
        hint = intent_hint or ""
        cap = self.detailed_max if max_results is None else max(1, min(int(max_results), self.detailed_max))

        candidates: list[Candidate] = []
        missing: list[str] = []
        method = "detailed_analysis"
        if element_ids:
            candidates, missing = self._expand(list(element_ids))
            method = "expanded_matches"
        if focus_areas:
            candidates += self._focus_areas(list(focus_areas), hint)
            if candidates:
                method = "focus_area_analysis"
        if not candidates:
            candidates = self._sweep(hint, cap)
            method = "full_enhanced_analysis"

        records = [self.detailed_record(c) for c in dedupe(candidates)[:cap]]
        result: dict[str, Any] = {
            "elements": records,
            "interaction_ready": all(r["conf"] > 50 for r in records),
            "method": method,
            "execution_time": round((time.perf_counter() - started) * 1000),
            "intent_hint": hint,
        }
        if missing:
            result["missing_ids"] = missing
        return result
