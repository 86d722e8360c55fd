from __future__ import annotations

LOGIN_PAGE = """
<html><head><title>Sign in</title></head>
<body>
<form id="login">
  <input type="email" name="email" aria-label="Email">
  <input type="password" name="password" aria-label="Password">
  <button type="submit">Log in</button>
</form>
</body></html>
"""

COMPOSER_PAGE = """
<html><head><title>Home / X</title></head>
<body>
<div data-testid="tweetTextarea_0" contenteditable="true" role="textbox"></div>
<button data-testid="tweetButtonInline">Post</button>
</body></html>
"""


def _engine(html: str, url: str = "https://example.com/login"):  # type: ignore[no-untyped-def]
    from mcp_servers.tabpilot.page.discovery import DiscoveryEngine
    from mcp_servers.tabpilot.page.registry import RegistryPair
    from mcp_servers.tabpilot.page.snapshot import SnapshotDocument

    doc = SnapshotDocument(html, url=url)
    regs = RegistryPair()
    return doc, regs, DiscoveryEngine(doc, regs)


def test_discover_uses_rule_table_for_login() -> None:
    doc, regs, engine = _engine(LOGIN_PAGE)
    result = engine.discover("login")

    assert result["method"] == "enhanced_patterns"
    assert [el["type"] for el in result["elements"]] == ["input", "password", "submit"]
    assert [el["name"] for el in result["elements"]] == ["Email", "Password", "Log in"]
    assert all(el["id"].startswith("q") for el in result["elements"])
    assert all(el["conf"] == 92 for el in result["elements"])
    assert all(el["ready"] for el in result["elements"])
    assert result["quick_matches"] == result["elements"]

    summary = result["summary"]
    assert summary["page_type"] == "authentication"
    assert summary["intent_match"] == "high"
    assert summary["element_count"]["inputs"] == 2
    assert summary["element_count"]["buttons"] == 1
    assert summary["anti_detection_platform"] is None
    assert "forms" in summary["suggested_phase2"]

    # Discovery only fills the quick registry.
    assert len(regs.quick) == 3
    assert len(regs.detailed) == 0
    assert regs.lookup(result["elements"][0]["id"]) is doc.query_selector("[type='email']")


def test_discover_prefers_bypass_selectors_on_known_platform() -> None:
    _doc, _regs, engine = _engine(COMPOSER_PAGE, url="https://x.com/home")
    result = engine.discover("post a tweet")

    assert result["method"] == "anti_detection_bypass"
    assert [el["type"] for el in result["elements"]] == ["textarea", "button"]
    assert all(el["conf"] == 95 for el in result["elements"])
    assert result["summary"]["anti_detection_platform"] == "x.com"
    assert result["summary"]["page_type"] == "social_media"


def test_compose_wording_also_selects_bypass() -> None:
    for hint in ("compose a message", "publish an update", "write something"):
        _doc, _regs, engine = _engine(COMPOSER_PAGE, url="https://x.com/home")
        result = engine.discover(hint)
        assert result["method"] == "anti_detection_bypass", hint


def test_non_compose_hint_skips_bypass_on_known_platform() -> None:
    _doc, _regs, engine = _engine(COMPOSER_PAGE, url="https://x.com/home")
    result = engine.discover("zzz")

    assert result["method"] != "anti_detection_bypass"


def test_one_element_is_claimed_by_one_role_only() -> None:
    html = '<html><body><div contenteditable aria-label="Post text"></div></body></html>'
    _doc, regs, engine = _engine(html, url="https://example.com/feed")
    result = engine.discover("post")

    assert result["method"] == "enhanced_patterns"
    assert len(result["elements"]) == 1
    assert result["elements"][0]["type"] == "textarea"
    assert result["elements"][0]["conf"] == 97
    assert len(regs.quick) == 1


def test_discover_skips_hidden_elements() -> None:
    html = '<html><body><button style="display:none">Hidden</button><div hidden><input type="text"></div></body></html>'
    _doc, regs, engine = _engine(html)
    result = engine.discover("zzz")

    assert result["elements"] == []
    assert result["method"] == "viewport_scan"
    assert result["summary"]["intent_match"] == "none"
    assert len(regs.quick) == 0


def test_discover_caps_results() -> None:
    buttons = "".join(f'<button data-testid="b{i}">Button {i}</button>' for i in range(12))
    _doc, _regs, engine = _engine(f"<html><body>{buttons}</body></html>")
    result = engine.discover("zzz", max_results=50)

    assert 0 < len(result["elements"]) <= 3


def test_detailed_expands_quick_ids() -> None:
    _doc, regs, engine = _engine(LOGIN_PAGE)
    quick = engine.discover("login")["elements"]

    result = engine.detailed("login", element_ids=[quick[0]["id"], quick[1]["id"]])

    assert result["method"] == "expanded_matches"
    assert [el["fp"] for el in result["elements"]] == ["input@form.1", "input@form.2"]
    assert all(el["id"].startswith("el") for el in result["elements"])
    assert all(el["conf"] == 80 for el in result["elements"])
    meta = result["elements"][0]["meta"]
    assert meta["form_context"] == "form"
    assert meta["visible"] is True
    assert meta["state"]["interaction_ready"] is True
    assert len(meta["rect"]) == 4
    assert "missing_ids" not in result
    assert len(regs.detailed) == 2


def test_detailed_reports_missing_ids_and_sweeps() -> None:
    _doc, _regs, engine = _engine(LOGIN_PAGE)
    result = engine.detailed("login", element_ids=["q99-dead00"])

    assert result["missing_ids"] == ["q99-dead00"]
    assert result["method"] == "full_enhanced_analysis"
    assert result["elements"]


def test_detailed_focus_area() -> None:
    _doc, _regs, engine = _engine(LOGIN_PAGE)
    result = engine.detailed("login", focus_areas=["buttons"])

    assert result["method"] == "focus_area_analysis"
    assert [el["name"] for el in result["elements"]] == ["Log in"]


def test_detailed_respects_cap() -> None:
    from mcp_servers.tabpilot.page.discovery import DiscoveryEngine
    from mcp_servers.tabpilot.page.registry import RegistryPair
    from mcp_servers.tabpilot.page.snapshot import SnapshotDocument

    buttons = "".join(f'<button aria-label="Action {i}">Action {i}</button>' for i in range(20))
    doc = SnapshotDocument(f"<html><body>{buttons}</body></html>", url="https://example.com/")
    engine = DiscoveryEngine(doc, RegistryPair(), detailed_max=4)

    assert len(engine.detailed("action")["elements"]) == 4
    assert len(engine.detailed("action", max_results=2)["elements"]) == 2
    assert len(engine.detailed("action", max_results=50)["elements"]) == 4
