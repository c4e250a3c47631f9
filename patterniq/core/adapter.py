"""
DOM アダプタ — 解決エンジンとブラウザ自動化ドライバの境界

解決エンジンが必要とする最小限の DOM 操作をプロトコルとして定義し、
Playwright（async API）による実装を提供する。

主な機能:
  - exists_and_visible(): セレクタチェーンの存在・可視状態を問い合わせる
  - extract_attribute(): 最初にマッチした要素の属性値を取得する
  - scroll(): 遅延読み込み対策のスクロール（対象指定またはページ全体）
  - current_page_ready(): ページの読み込み完了を待機する

セレクタチェーンは " >> " 区切りの Playwright セレクタ文字列として渡される。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

from playwright.async_api import Error as PlaywrightError

from ..errors import PageClosedError

if TYPE_CHECKING:
    from playwright.async_api import Locator, Page

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# 要素状態
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ElementState:
    """セレクタチェーンの問い合わせ結果。

    Attributes:
        exists: 1 件以上の要素がマッチしたか
        visible: 最初にマッチした要素が可視か
    """

    exists: bool
    visible: bool


NOT_FOUND = ElementState(exists=False, visible=False)


# ---------------------------------------------------------------------------
# DomAdapter プロトコル
# ---------------------------------------------------------------------------

@runtime_checkable
class DomAdapter(Protocol):
    """解決エンジンが使用する DOM 操作のインターフェース。

    実装は任意の例外を送出してよい。解決エンジンはアダプタの例外を
    リトライせず、その解決呼び出しを失敗として終了する。
    """

    async def exists_and_visible(self, chain: str) -> ElementState:
        """セレクタチェーンの存在・可視状態を返す。"""
        ...

    async def extract_attribute(self, chain: str, name: str) -> Optional[str]:
        """最初にマッチした要素の属性値を返す（要素・属性がなければ None）。"""
        ...

    async def scroll(self, target: Optional[str] = None) -> None:
        """target にマッチする要素、または target 省略時はページ全体をスクロールする。"""
        ...

    async def current_page_ready(self) -> None:
        """ページの読み込み完了を待機する。"""
        ...


# ---------------------------------------------------------------------------
# Playwright 実装
# ---------------------------------------------------------------------------

class PlaywrightDomAdapter:
    """Playwright の Page を使用する DomAdapter 実装。

    構文的に不正なセレクタ（テンプレート展開の結果として発生しうる）は
    例外にせず「要素なし」として扱い、次の候補の試行を継続できるようにする。
    ページが閉じられている場合は PageClosedError を送出する。
    """

    def __init__(
        self,
        page: Page,
        wheel_steps: int = 10,
        wheel_delta_y: int = 400,
        wheel_pause_ms: int = 500,
        load_state: str = "load",
    ) -> None:
        """PlaywrightDomAdapter を初期化する。

        Args:
            page: Playwright の Page オブジェクト
            wheel_steps: 1 回のスクロールで行うマウスホイール操作の回数
            wheel_delta_y: 1 回のホイール操作の縦方向スクロール量（px）
            wheel_pause_ms: ホイール操作間の待機時間（ミリ秒）
            load_state: current_page_ready() で待機する読み込み状態
        """
        self._page = page
        self._wheel_steps = wheel_steps
        self._wheel_delta_y = wheel_delta_y
        self._wheel_pause_ms = wheel_pause_ms
        self._load_state = load_state

    @property
    def page(self) -> Page:
        return self._page

    # -------------------------------------------------------------------
    # DomAdapter 実装
    # -------------------------------------------------------------------

    async def exists_and_visible(self, chain: str) -> ElementState:
        self._ensure_open()
        locator = self._page.locator(chain)
        try:
            count = await locator.count()
            if count == 0:
                return NOT_FOUND
            visible = await locator.first.is_visible()
        except PlaywrightError as exc:
            self._ensure_open()
            logger.debug("セレクタの評価に失敗しました（要素なしとして扱います）: %s (%s)", chain, exc)
            return NOT_FOUND
        return ElementState(exists=True, visible=visible)

    async def extract_attribute(self, chain: str, name: str) -> Optional[str]:
        self._ensure_open()
        locator = self._page.locator(chain)
        try:
            if await locator.count() == 0:
                return None
            return await locator.first.get_attribute(name)
        except PlaywrightError as exc:
            self._ensure_open()
            logger.debug("属性 '%s' の取得に失敗しました: %s (%s)", name, chain, exc)
            return None

    async def scroll(self, target: Optional[str] = None) -> None:
        self._ensure_open()
        if target:
            locator = self._page.locator(target)
            try:
                count = await locator.count()
                for i in range(count):
                    element = locator.nth(i)
                    if await element.is_visible():
                        await element.scroll_into_view_if_needed()
                        await self._wheel()
            except PlaywrightError as exc:
                self._ensure_open()
                logger.warning("スクロール対象の操作に失敗しました: %s (%s)", target, exc)
            return

        await self._wheel()

    async def current_page_ready(self) -> None:
        self._ensure_open()
        await self._page.wait_for_load_state(self._load_state)

    # -------------------------------------------------------------------
    # 呼び出し元向けユーティリティ
    # -------------------------------------------------------------------

    def locator(self, chain) -> Locator:
        """解決済みのチェーン（文字列または ResolvedLocator）から Playwright Locator を生成する。"""
        return self._page.locator(str(chain))

    # -------------------------------------------------------------------
    # 内部メソッド
    # -------------------------------------------------------------------

    async def _wheel(self) -> None:
        """マウスホイールで段階的にスクロールする（遅延読み込みの発火用）。"""
        for _ in range(self._wheel_steps):
            await self._page.mouse.wheel(0, self._wheel_delta_y)
            await self._page.wait_for_timeout(self._wheel_pause_ms)

    def _ensure_open(self) -> None:
        if self._page.is_closed():
            raise PageClosedError("ページは既に閉じられています")
