from __future__ import annotations

from typing import Any

from .dom import Document, Element

_DISABLED_CLASSES = {"disabled", "btn-disabled", "button-disabled", "inactive"}
_CLICKABLE_TAGS = {"button", "a", "input"}
_CLICKABLE_TYPES = {"button", "submit", "reset"}
_CLICKABLE_ROLES = {"button", "link", "menuitem", "tab"}
_CLICKABLE_CLASSES = {"btn", "button", "clickable", "link"}
_FOCUSABLE_TAGS = {"input", "textarea", "select", "button", "a"}
_FOCUSABLE_ROLES = {"textbox", "searchbox", "button", "link"}
_PRIMARY_CLASSES = ("btn", "button", "link", "input", "search", "submit", "primary", "secondary")
_CONTEXT_SELECTOR = "nav, main, header, footer, form, section, article"


def is_text_control(el: Element) -> bool:
    return el.tag_name in {"input", "textarea"}


def get_element_value(el: Element) -> str:
    if is_text_control(el):
        return el.value or ""
    if el.is_content_editable:
        return el.text_content or ""
    return ""


def get_element_name(el: Element) -> str:
    """aria-label, title, text, placeholder, then the tag name."""
    for attr in ("aria-label", "title"):
        raw = el.get_attribute(attr)
        if raw:
            return raw
    text = (el.text_content or "").strip()[:50]
    if text:
        return text
    return el.get_attribute("placeholder") or el.tag_name


def infer_element_type(el: Element) -> str:
    tag = el.tag_name
    if tag == "input" and (el.get_attribute("type") or "").lower() == "search":
        return "search_input"
    if tag == "input":
        return "input"
    if tag == "textarea":
        return "textarea"
    if tag == "button" or el.get_attribute("role") == "button":
        return "button"
    if tag == "a":
        return "link"
    return "element"


def is_likely_visible(el: Element, doc: Document) -> bool:
    rect = el.bounding_rect()
    style = el.computed_style()
    return (
        rect.top < doc.inner_height
        and rect.bottom > 0
        and rect.left < doc.inner_width
        and rect.right > 0
        and style.visibility != "hidden"
        and style.opacity != "0"
        and style.display != "none"
    )


def is_disabled(el: Element) -> bool:
    if el.disabled or el.has_attribute("disabled"):
        return True
    if el.get_attribute("aria-disabled") == "true":
        return True
    if _DISABLED_CLASSES.intersection(el.class_list):
        return True
    if el.closest("fieldset[disabled]") is not None:
        return True
    return el.computed_style().pointer_events == "none"


def is_clickable(el: Element) -> bool:
    if el.tag_name in _CLICKABLE_TAGS:
        return True
    if (el.get_attribute("type") or "").lower() in _CLICKABLE_TYPES:
        return True
    if el.get_attribute("role") in _CLICKABLE_ROLES:
        return True
    if el.get_attribute("onclick"):
        return True
    return bool(_CLICKABLE_CLASSES.intersection(el.class_list))


def is_focusable(el: Element) -> bool:
    if el.tag_name in _FOCUSABLE_TAGS:
        return True
    tabindex = el.get_attribute("tabindex")
    if tabindex and tabindex != "-1":
        return True
    if el.is_content_editable:
        return True
    return el.get_attribute("role") in _FOCUSABLE_ROLES


def has_text(el: Element) -> bool:
    text = el.text_content or el.value or el.get_attribute("aria-label") or ""
    return bool(text.strip())


def is_empty(el: Element) -> bool:
    if is_text_control(el):
        return not (el.value or "").strip()
    if el.is_content_editable:
        return not (el.text_content or "").strip()
    return False


def element_state(el: Element, doc: Document) -> dict[str, bool]:
    state = {
        "disabled": is_disabled(el),
        "visible": is_likely_visible(el, doc),
        "clickable": is_clickable(el),
        "focusable": is_focusable(el),
        "hasText": has_text(el),
        "isEmpty": is_empty(el),
    }
    state["interaction_ready"] = state["visible"] and not state["disabled"] and (state["clickable"] or state["focusable"])
    return state


def generate_selector(el: Element) -> str:
    ident = el.get_attribute("id")
    if ident:
        return f"#{ident}"
    testid = el.get_attribute("data-testid")
    if testid:
        return f'[data-testid="{testid}"]'
    classes = el.class_list
    return el.tag_name + ("." + ".".join(classes) if classes else "")


def _primary_class(el: Element) -> str | None:
    classes = el.class_list
    for cls in classes:
        if cls in _PRIMARY_CLASSES:
            return cls
    return classes[0] if classes else None


def _context_tag(el: Element) -> str:
    ctx = el.closest(_CONTEXT_SELECTOR)
    if ctx is None:
        ctx = el.parent
    return ctx.tag_name if ctx is not None else "body"


def _sibling_ordinal(el: Element) -> int:
    parent = el.parent
    if parent is None:
        return 1
    same = [c for c in parent.children if c.tag_name == el.tag_name]
    for i, sibling in enumerate(same, start=1):
        if sibling is el:
            return i
    return 1


def fingerprint(el: Element) -> str:
    """``tag[.primaryClass]@contextTag.ordinalAmongSiblings``."""
    primary = _primary_class(el)
    return f"{el.tag_name}{'.' + primary if primary else ''}@{_context_tag(el)}.{_sibling_ordinal(el)}"


def element_meta(el: Element, doc: Document) -> dict[str, Any]:
    return {
        "rect": el.bounding_rect().as_list(),
        "visible": is_likely_visible(el, doc),
        "form_context": "form" if el.closest("form") is not None else None,
    }


def hint_confidence(el: Element, intent_hint: str | None) -> float:
    """Viewport-scan score: name/hint overlap plus attribute bonuses."""
    confidence = 0.5
    hint = (intent_hint or "").lower()
    if hint and hint in get_element_name(el).lower():
        confidence += 0.3
    if el.get_attribute("data-testid"):
        confidence += 0.2
    if el.get_attribute("aria-label"):
        confidence += 0.1
    return min(confidence, 1.0)


def pattern_confidence(el: Element, rule_confidence: float) -> float:
    """Rule confidence plus small bonuses for a test id and a real box."""
    confidence = rule_confidence
    if el.get_attribute("data-testid"):
        confidence += 0.03
    if not el.bounding_rect().is_empty:
        confidence += 0.02
    return min(confidence, 1.0)
