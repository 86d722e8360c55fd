from __future__ import annotations

import pytest


@pytest.mark.parametrize(
    ("hint", "expected"),
    [
        ("login to my account", ("auth", "login")),
        ("Sign In", ("auth", "login")),
        ("create account", ("auth", "signup")),
        ("post a tweet", ("content", "post_create")),
        ("reply to comment", ("content", "comment")),
        ("find the docs", ("search", "global")),
        ("open navigation", ("nav", "menu")),
        ("save settings", ("form", "submit")),
        ("cancel", ("form", "reset")),
        ("click the button", ("form", "submit")),
        ("text field", ("content", "post_create")),
        ("", ("content", "post_create")),
        (None, ("content", "post_create")),
    ],
)
def test_parse_intent(hint: str | None, expected: tuple[str, str]) -> None:
    from mcp_servers.tabpilot.page.patterns import parse_intent

    assert parse_intent(hint) == expected


def test_every_parsed_intent_has_a_rule() -> None:
    from mcp_servers.tabpilot.page.patterns import _INTENT_KEYWORDS, find_rule

    for _keywords, (category, action) in _INTENT_KEYWORDS:
        rule = find_rule(category, action)
        assert rule is not None
        assert 0 < rule.confidence <= 1
        assert rule.selectors_by_role


def test_rules_are_read_only() -> None:
    from mcp_servers.tabpilot.page.patterns import PATTERN_RULES

    with pytest.raises(TypeError):
        PATTERN_RULES[("auth", "login")] = None  # type: ignore[index]


def test_bypass_platform_matching() -> None:
    from mcp_servers.tabpilot.page.patterns import match_bypass_platform

    assert match_bypass_platform("x.com").bypass_method == "twitter_direct"  # type: ignore[union-attr]
    assert match_bypass_platform("mobile.twitter.com").bypass_method == "twitter_direct"  # type: ignore[union-attr]
    assert match_bypass_platform("www.linkedin.com").bypass_method == "linkedin_direct"  # type: ignore[union-attr]
    assert match_bypass_platform("FACEBOOK.COM.").bypass_method == "facebook_direct"  # type: ignore[union-attr]
    assert match_bypass_platform("notx.com") is None
    assert match_bypass_platform("example.com") is None
    assert match_bypass_platform("") is None


def test_universal_selectors_fall_back_to_generic() -> None:
    from mcp_servers.tabpilot.page.patterns import UNIVERSAL_GENERIC_SELECTORS, universal_selectors_for

    assert "[type='search']" in universal_selectors_for("search products")
    assert "[type='email']" in universal_selectors_for("login")
    assert universal_selectors_for("something else") == UNIVERSAL_GENERIC_SELECTORS


@pytest.mark.parametrize(
    ("hint", "expected"),
    [
        ("post a tweet", True),
        ("compose a message", True),
        ("publish an update", True),
        ("create account", False),
        ("text field", False),
        ("", False),
        (None, False),
    ],
)
def test_suggests_compose(hint: str | None, expected: bool) -> None:
    from mcp_servers.tabpilot.page.patterns import suggests_compose

    assert suggests_compose(hint) is expected
