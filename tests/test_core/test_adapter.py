"""
PlaywrightDomAdapter のユニットテスト

Playwright の Page / Locator を unittest.mock で模擬し、
存在・可視判定、属性取得、スクロール、ページクローズ時の動作を検証する。
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, call

import pytest
from playwright.async_api import Error as PlaywrightError

from patterniq.core.adapter import DomAdapter, ElementState, PlaywrightDomAdapter
from patterniq.core.resolver import ResolvedLocator
from patterniq.errors import PageClosedError


# ---------------------------------------------------------------------------
# ヘルパー: モック Page / Locator の生成
# ---------------------------------------------------------------------------

def _make_mock_locator(*, count: int = 1, visible: bool = True, attribute=None) -> MagicMock:
    locator = MagicMock()
    locator.count = AsyncMock(return_value=count)
    locator.first.is_visible = AsyncMock(return_value=visible)
    locator.first.get_attribute = AsyncMock(return_value=attribute)
    return locator


def _make_mock_page(locator: MagicMock = None, *, closed: bool = False) -> MagicMock:
    page = MagicMock()
    page.is_closed = MagicMock(return_value=closed)
    page.locator = MagicMock(return_value=locator if locator is not None else _make_mock_locator())
    page.mouse.wheel = AsyncMock()
    page.wait_for_timeout = AsyncMock()
    page.wait_for_load_state = AsyncMock()
    return page


# ---------------------------------------------------------------------------
# exists_and_visible
# ---------------------------------------------------------------------------

class TestExistsAndVisible:

    def test_visible_element(self):
        page = _make_mock_page(_make_mock_locator(count=2, visible=True))
        adapter = PlaywrightDomAdapter(page)

        state = asyncio.run(adapter.exists_and_visible("form#login >> button"))

        assert state == ElementState(exists=True, visible=True)
        page.locator.assert_called_once_with("form#login >> button")

    def test_hidden_element(self):
        adapter = PlaywrightDomAdapter(_make_mock_page(_make_mock_locator(visible=False)))

        state = asyncio.run(adapter.exists_and_visible("button"))

        assert state == ElementState(exists=True, visible=False)

    def test_no_element_skips_visibility_check(self):
        locator = _make_mock_locator(count=0)
        adapter = PlaywrightDomAdapter(_make_mock_page(locator))

        state = asyncio.run(adapter.exists_and_visible("button"))

        assert state == ElementState(exists=False, visible=False)
        locator.first.is_visible.assert_not_called()

    def test_invalid_selector_is_not_found(self):
        locator = _make_mock_locator()
        locator.count = AsyncMock(side_effect=PlaywrightError("Unexpected token \"'\" while parsing selector"))
        adapter = PlaywrightDomAdapter(_make_mock_page(locator))

        state = asyncio.run(adapter.exists_and_visible("//input[@name='it's']"))

        assert state == ElementState(exists=False, visible=False)

    def test_closed_page_raises(self):
        adapter = PlaywrightDomAdapter(_make_mock_page(closed=True))

        with pytest.raises(PageClosedError):
            asyncio.run(adapter.exists_and_visible("button"))


# ---------------------------------------------------------------------------
# extract_attribute
# ---------------------------------------------------------------------------

class TestExtractAttribute:

    def test_returns_attribute_of_first_match(self):
        locator = _make_mock_locator(attribute="user-email")
        adapter = PlaywrightDomAdapter(_make_mock_page(locator))

        value = asyncio.run(adapter.extract_attribute("//label[text()='Email']", "for"))

        assert value == "user-email"
        locator.first.get_attribute.assert_awaited_once_with("for")

    def test_no_element_returns_none(self):
        adapter = PlaywrightDomAdapter(_make_mock_page(_make_mock_locator(count=0)))

        assert asyncio.run(adapter.extract_attribute("label", "for")) is None


# ---------------------------------------------------------------------------
# scroll / current_page_ready
# ---------------------------------------------------------------------------

class TestScroll:

    def test_default_scroll_uses_mouse_wheel(self):
        page = _make_mock_page()
        adapter = PlaywrightDomAdapter(page, wheel_steps=3, wheel_delta_y=400, wheel_pause_ms=500)

        asyncio.run(adapter.scroll(None))

        assert page.mouse.wheel.await_args_list == [call(0, 400)] * 3
        assert page.wait_for_timeout.await_args_list == [call(500)] * 3

    def test_scroll_target_visible_elements_only(self):
        visible = MagicMock()
        visible.is_visible = AsyncMock(return_value=True)
        visible.scroll_into_view_if_needed = AsyncMock()
        hidden = MagicMock()
        hidden.is_visible = AsyncMock(return_value=False)
        hidden.scroll_into_view_if_needed = AsyncMock()

        locator = _make_mock_locator(count=2)
        locator.nth = MagicMock(side_effect=[hidden, visible])
        page = _make_mock_page(locator)
        adapter = PlaywrightDomAdapter(page, wheel_steps=1)

        asyncio.run(adapter.scroll("div.scrollable"))

        page.locator.assert_called_once_with("div.scrollable")
        visible.scroll_into_view_if_needed.assert_awaited_once()
        hidden.scroll_into_view_if_needed.assert_not_awaited()
        assert page.mouse.wheel.await_count == 1

    def test_page_ready_waits_for_load(self):
        page = _make_mock_page()
        asyncio.run(PlaywrightDomAdapter(page).current_page_ready())

        page.wait_for_load_state.assert_awaited_once_with("load")

    def test_closed_page_scroll_raises(self):
        with pytest.raises(PageClosedError):
            asyncio.run(PlaywrightDomAdapter(_make_mock_page(closed=True)).scroll(None))


def test_satisfies_protocol():
    assert isinstance(PlaywrightDomAdapter(_make_mock_page()), DomAdapter)


def test_locator_from_resolved_result():
    page = _make_mock_page()
    resolved = ResolvedLocator("form#login >> button:has-text('Submit')", "button", "Submit")

    locator = PlaywrightDomAdapter(page).locator(resolved)

    assert locator is page.locator.return_value
    page.locator.assert_called_once_with("form#login >> button:has-text('Submit')")
