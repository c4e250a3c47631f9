"""
ロケータルーター — セレクタ文字列の振り分け

ステップ定義から渡されるセレクタ文字列を判定し、
生のセレクタとしてそのまま使うか、パターンリゾルバで解決するかを振り分ける。

判定順:
  1. xpath= / css= プレフィックス → 表記を正規化した生セレクタ
  2. chain= プレフィックス        → プレフィックスを除去した生セレクタ
  3. loc.* 形式                   → リソースロケータ（JSON ファイル・登録済みロケータ）
  4. XPath / CSS / チェーンに見える文字列 → そのまま
  5. スクリーンコード "-no-check-" → 解決をスキップ
  6. パターン解決が無効          → そのまま
  7. それ以外                    → パターンリゾルバで解決

スクリーンコードは 引数 → ページ URL のマッピング → リゾルバの既定値/設定 の順に決定する。
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from ..config import PatternIqConfig
from ..dsl.locators import LocatorCatalog, is_resource_locator
from .adapter import DomAdapter, PlaywrightDomAdapter
from .resolver import PatternResolver, ResolutionFailure, ResolutionResult

if TYPE_CHECKING:
    from playwright.async_api import Locator, Page

logger = logging.getLogger(__name__)

NO_CHECK = "-no-check-"

_RAW_PREFIX_PATTERN = re.compile(r"^(?P<engine>xpath|css)\s?=\\?")
_CHAIN_PREFIX_PATTERN = re.compile(r"^chain\s?=")


# ---------------------------------------------------------------------------
# 振り分け結果
# ---------------------------------------------------------------------------

class RouteKind(str, enum.Enum):
    RAW = "raw"
    RESOURCE = "resource"
    PATTERN = "pattern"
    SKIPPED = "skipped"
    DISABLED = "disabled"


@dataclass(frozen=True)
class Route:
    """振り分け結果。

    Attributes:
        kind: 振り分け種別
        selector: 使用するセレクタ（SKIPPED、または解決失敗時は None）
        result: パターン解決の結果（kind が PATTERN の場合のみ）
    """

    kind: RouteKind
    selector: Optional[str] = None
    result: Optional[ResolutionResult] = None


# ---------------------------------------------------------------------------
# LocatorRouter 本体
# ---------------------------------------------------------------------------

class LocatorRouter:
    """セレクタ文字列を生セレクタ・リソースロケータ・パターン解決に振り分ける。"""

    def __init__(
        self,
        resolver: PatternResolver,
        config: Optional[PatternIqConfig] = None,
        catalog: Optional[LocatorCatalog] = None,
    ) -> None:
        self._resolver = resolver
        self._config = config if config is not None else resolver.config
        self._catalog = catalog if catalog is not None else LocatorCatalog(self._config.locator_dir)

    @property
    def resolver(self) -> PatternResolver:
        return self._resolver

    @property
    def catalog(self) -> LocatorCatalog:
        return self._catalog

    # -------------------------------------------------------------------
    # パブリック API
    # -------------------------------------------------------------------

    async def route(
        self,
        adapter: DomAdapter,
        category: str,
        selector: str,
        screen_code: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        page_url: Optional[str] = None,
    ) -> Route:
        """セレクタを振り分け、必要に応じてパターン解決を行う。

        Args:
            adapter: ページに紐づく DOM アダプタ
            category: 要素カテゴリ
            selector: セレクタ文字列またはフィールド識別子
            screen_code: スクリーンコードの上書き（"-no-check-" で解決をスキップ）
            timeout_ms: 解決タイムアウト（ミリ秒）
            page_url: 現在のページ URL（pageMapping による自動判定用）

        Returns:
            振り分け結果

        Raises:
            LocatorNotFoundError: loc.* 形式のロケータが見つからない場合
        """
        raw = direct_selector(selector)
        if raw is not None:
            logger.debug("生セレクタとして扱います: %s", raw)
            return Route(kind=RouteKind.RAW, selector=raw)

        if is_resource_locator(selector):
            locator = self._catalog.resolve(selector, self._resolver.repository.store)
            return Route(kind=RouteKind.RESOURCE, selector=locator)

        if screen_code and screen_code.strip().lower() == NO_CHECK:
            logger.info("'%s' が指定されたため解決をスキップします: %s", NO_CHECK, selector)
            return Route(kind=RouteKind.SKIPPED)

        if not self._config.enable:
            logger.debug("パターン解決が無効です。セレクタをそのまま使用します: %s", selector)
            return Route(kind=RouteKind.DISABLED, selector=selector)

        if not screen_code and page_url:
            screen_code = self.screen_for_url(page_url)

        result = await self._resolver.resolve(adapter, category, selector, screen_code, timeout_ms)
        return Route(
            kind=RouteKind.PATTERN,
            selector=result.locator if result.ok else None,
            result=result,
        )

    async def locate(
        self,
        page: Page,
        category: str,
        selector: str,
        screen_code: Optional[str] = None,
        timeout_ms: Optional[int] = None,
    ) -> Optional[Locator]:
        """Playwright の Page 上でセレクタを Locator に変換する。

        "-no-check-" の場合は None を返す。

        Raises:
            LocatorResolutionError: パターン解決に失敗した場合
        """
        adapter = PlaywrightDomAdapter(page)
        route = await self.route(
            adapter, category, selector, screen_code, timeout_ms, page_url=page.url,
        )
        if route.kind is RouteKind.SKIPPED:
            return None
        if isinstance(route.result, ResolutionFailure):
            route.result.raise_error()
        return page.locator(route.selector)

    def screen_for_url(self, url: str) -> Optional[str]:
        """pageMapping のキーが URL に含まれる最初のスクリーンコードを返す。"""
        for url_part, code in self._config.page_mapping.items():
            if url_part in url:
                logger.info("URL '%s' からスクリーンコード '%s' を判定しました", url, code)
                return code
        return None


# ---------------------------------------------------------------------------
# ヘルパー関数
# ---------------------------------------------------------------------------

def direct_selector(selector: str) -> Optional[str]:
    """パターン解決を経由しない生セレクタであれば、そのセレクタを返す。

    Returns:
        生セレクタ（Playwright にそのまま渡せる形式）。フィールド識別子・loc.* 形式と判定した場合は None
    """
    stripped = selector.strip()

    match = _RAW_PREFIX_PATTERN.match(stripped)
    if match:
        body = stripped[match.end():].replace("\\/", "/")
        return f"{match.group('engine')}={body}"

    if _CHAIN_PREFIX_PATTERN.match(stripped):
        return _CHAIN_PREFIX_PATTERN.sub("", stripped, count=1)

    if is_resource_locator(stripped):
        return None

    if stripped.startswith("("):
        return "xpath=" + stripped
    is_css = ">" in stripped or stripped.startswith(".") or "#" in stripped
    if stripped.startswith("//") or is_css:
        return stripped
    return None
