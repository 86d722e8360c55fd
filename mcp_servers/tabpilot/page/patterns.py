"""
Selector pattern tables and intent parsing.

``PATTERN_RULES`` is keyed by the two-level (category, action) taxonomy that
``parse_intent`` produces. ``BYPASS_PLATFORMS`` lists origins whose editors
filter synthetic input and need a direct insertion sequence.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType


@dataclass(frozen=True, slots=True)
class PatternRule:
    category: str
    action: str
    selectors_by_role: Mapping[str, tuple[str, ...]]
    confidence: float


@dataclass(frozen=True, slots=True)
class PlatformBypassConfig:
    origin: str
    selectors_by_role: Mapping[str, str]
    bypass_method: str

    @property
    def textarea_selector(self) -> str:
        return self.selectors_by_role.get("textarea", "")

    @property
    def submit_selector(self) -> str:
        return self.selectors_by_role.get("submit", "")


def _rule(category: str, action: str, confidence: float, **roles: list[str]) -> PatternRule:
    return PatternRule(
        category=category,
        action=action,
        selectors_by_role=MappingProxyType({role: tuple(sels) for role, sels in roles.items()}),
        confidence=confidence,
    )


PATTERN_RULES: Mapping[tuple[str, str], PatternRule] = MappingProxyType(
    {
        ("auth", "login"): _rule(
            "auth",
            "login",
            0.9,
            input=["[type='email']", "[name*='username' i]", "[placeholder*='email' i]", "[name*='login' i]"],
            password=["[type='password']", "[name*='password' i]"],
            submit=["[type='submit']", "button[form]", ".login-btn", "[aria-label*='login' i]"],
        ),
        ("auth", "signup"): _rule(
            "auth",
            "signup",
            0.85,
            input=["[name*='register' i]", "[placeholder*='signup' i]", "[name*='email' i]"],
            submit=["[href*='signup']", ".signup-btn", "[aria-label*='register' i]"],
        ),
        ("content", "post_create"): _rule(
            "content",
            "post_create",
            0.95,
            textarea=[
                "[data-testid='tweetTextarea_0']",
                "[aria-label='Post text']",
                "[contenteditable='true']",
                "textarea[placeholder*='post' i]",
                "[data-text='true']",
            ],
            submit=[
                "[data-testid='tweetButtonInline']",
                "[data-testid='tweetButton']",
                ".post-btn",
                ".publish-btn",
                "[aria-label*='post' i]",
            ],
        ),
        ("content", "comment"): _rule(
            "content",
            "comment",
            0.8,
            textarea=["textarea[placeholder*='comment' i]", "[role='textbox']", "[placeholder*='reply' i]"],
            submit=[".comment-btn", "[aria-label*='comment' i]", "[aria-label*='reply' i]"],
        ),
        ("search", "global"): _rule(
            "search",
            "global",
            0.85,
            input=[
                "[data-testid='SearchBox_Search_Input']",
                "[type='search']",
                "[role='searchbox']",
                "[placeholder*='search' i]",
                "[name*='search' i]",
            ],
            submit=["[aria-label*='search' i]", ".search-btn", "button[type='submit']"],
        ),
        ("nav", "menu"): _rule(
            "nav",
            "menu",
            0.8,
            toggle=["[aria-label*='menu' i]", ".menu-btn", ".hamburger", "[data-toggle='menu']"],
            items=["nav a", ".nav-item", "[role='menuitem']"],
        ),
        ("form", "submit"): _rule(
            "form",
            "submit",
            0.85,
            button=["[type='submit']", "button[form]", ".submit-btn", "[aria-label*='submit' i]"],
        ),
        ("form", "reset"): _rule(
            "form",
            "reset",
            0.8,
            button=["[type='reset']", ".reset-btn", "[aria-label*='reset' i]"],
        ),
    }
)

_TWITTER_SELECTORS = {
    "textarea": "[data-testid='tweetTextarea_0']",
    "submit": "[data-testid='tweetButtonInline'], [data-testid='tweetButton']",
}

BYPASS_PLATFORMS: Mapping[str, PlatformBypassConfig] = MappingProxyType(
    {
        "twitter.com": PlatformBypassConfig("twitter.com", MappingProxyType(_TWITTER_SELECTORS), "twitter_direct"),
        "x.com": PlatformBypassConfig("x.com", MappingProxyType(_TWITTER_SELECTORS), "twitter_direct"),
        "linkedin.com": PlatformBypassConfig(
            "linkedin.com",
            MappingProxyType(
                {
                    "textarea": "[contenteditable='true'][role='textbox']",
                    "submit": "[data-control-name='share.post']",
                }
            ),
            "linkedin_direct",
        ),
        "facebook.com": PlatformBypassConfig(
            "facebook.com",
            MappingProxyType(
                {
                    "textarea": "[contenteditable='true'][data-text='true']",
                    "submit": "[data-testid='react-composer-post-button']",
                }
            ),
            "facebook_direct",
        ),
    }
)

# Universal fallbacks when no (category, action) rule exists, checked in order.
UNIVERSAL_SELECTORS: tuple[tuple[tuple[str, ...], tuple[str, ...]], ...] = (
    (
        ("tweet", "post", "compose", "create", "write"),
        (
            "[data-testid='tweetTextarea_0']",
            "[contenteditable='true']",
            "textarea[placeholder*='tweet' i]",
            "textarea[placeholder*='post' i]",
            "textarea[placeholder*='what' i]",
            "[data-text='true']",
            "[role='textbox']",
            "textarea:not([style*='display: none'])",
        ),
    ),
    (
        ("login", "sign in"),
        (
            "[type='email']",
            "[name*='username' i]",
            "[placeholder*='email' i]",
            "[placeholder*='username' i]",
            "input[name*='login' i]",
        ),
    ),
    (
        ("signup", "register"),
        (
            "[href*='signup']",
            ".signup-btn",
            "[aria-label*='register' i]",
            "button[data-testid*='signup' i]",
            "a[href*='register']",
        ),
    ),
    (
        ("search", "find"),
        (
            "[data-testid='SearchBox_Search_Input']",
            "[type='search']",
            "[role='searchbox']",
            "[placeholder*='search' i]",
            "[data-testid*='search' i]",
            "input[name*='search' i]",
        ),
    ),
)

UNIVERSAL_GENERIC_SELECTORS: tuple[str, ...] = (
    "button:not([disabled])",
    "[contenteditable='true']",
    "textarea",
    "[type='submit']",
    "[role='button']",
    "input[type='text']",
)

# Ordered keyword table; first hit wins.
COMPOSE_KEYWORDS: tuple[str, ...] = ("tweet", "post", "compose", "create", "write", "publish")

_INTENT_KEYWORDS: tuple[tuple[tuple[str, ...], tuple[str, str]], ...] = (
    (("login", "sign in", "log in"), ("auth", "login")),
    (("signup", "sign up", "register", "create account"), ("auth", "signup")),
    (COMPOSE_KEYWORDS, ("content", "post_create")),
    (("comment", "reply"), ("content", "comment")),
    (("search", "find", "look for"), ("search", "global")),
    (("menu", "navigation", "nav"), ("nav", "menu")),
    (("submit", "send", "save"), ("form", "submit")),
    (("reset", "clear", "cancel"), ("form", "reset")),
    (("button", "click"), ("form", "submit")),
    (("input", "field", "text"), ("content", "post_create")),
)

DEFAULT_INTENT: tuple[str, str] = ("content", "post_create")


def parse_intent(hint: str | None) -> tuple[str, str]:
    """Map free text onto (category, action). Never fails."""
    text = (hint or "").lower()
    for keywords, intent in _INTENT_KEYWORDS:
        if any(k in text for k in keywords):
            return intent
    return DEFAULT_INTENT


def suggests_compose(hint: str | None) -> bool:
    """True when the hint names a publish/compose action (not just the default intent)."""
    text = (hint or "").lower()
    return parse_intent(text) == ("content", "post_create") and any(k in text for k in COMPOSE_KEYWORDS)


def find_rule(category: str, action: str) -> PatternRule | None:
    return PATTERN_RULES.get((category, action))


def universal_selectors_for(hint: str | None) -> tuple[str, ...]:
    text = (hint or "").lower()
    for keywords, selectors in UNIVERSAL_SELECTORS:
        if any(k in text for k in keywords):
            return selectors
    return UNIVERSAL_GENERIC_SELECTORS


def match_bypass_platform(hostname: str | None) -> PlatformBypassConfig | None:
    """Exact origin first, then subdomain suffix."""
    host = (hostname or "").strip().lower().rstrip(".")
    if not host:
        return None
    exact = BYPASS_PLATFORMS.get(host)
    if exact is not None:
        return exact
    for domain, config in BYPASS_PLATFORMS.items():
        if host.endswith("." + domain):
            return config
    return None
