"""
テスト共通フィクスチャ

全テストモジュールで共有するフィクスチャと、DOM を模擬する FakeDomAdapter を提供する。
FakeDomAdapter はチェーンロケータ文字列の集合でページ状態を表現し、
全ての呼び出しを順番どおりに記録する。
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import pytest

from patterniq.config import PatternIqConfig
from patterniq.core.adapter import ElementState
from patterniq.core.resolver import PatternResolver
from patterniq.dsl.patterns import PatternRepository
from patterniq.dsl.variables import VariableStore


# ---------------------------------------------------------------------------
# DOM アダプタのテスト用実装
# ---------------------------------------------------------------------------

class FakeDomAdapter:
    """チェーン文字列の集合で DOM を模擬する DomAdapter。

    Args:
        visible: 可視要素にマッチするチェーン
        present: 存在するが非表示の要素にマッチするチェーン
        attributes: (チェーン, 属性名) → 属性値
        reveal_after: チェーン → 可視になるまでに必要なスクロール回数
        fail_on: 指定した操作名で RuntimeError を送出する
    """

    def __init__(
        self,
        visible=(),
        present=(),
        attributes: Optional[dict] = None,
        reveal_after: Optional[dict] = None,
        fail_on: Optional[str] = None,
    ) -> None:
        self.visible = set(visible)
        self.present = set(present) | self.visible
        self.attributes = dict(attributes or {})
        self.reveal_after = dict(reveal_after or {})
        self.fail_on = fail_on
        self.calls: list[tuple] = []
        self.checked: list[str] = []
        self.scrolls: list[Optional[str]] = []
        self.ready_calls = 0

    async def exists_and_visible(self, chain: str) -> ElementState:
        self.calls.append(("exists_and_visible", chain))
        self.checked.append(chain)
        self._maybe_fail("exists_and_visible")
        needed = self.reveal_after.get(chain)
        if needed is not None and len(self.scrolls) >= needed:
            return ElementState(exists=True, visible=True)
        return ElementState(exists=chain in self.present, visible=chain in self.visible)

    async def extract_attribute(self, chain: str, name: str) -> Optional[str]:
        self.calls.append(("extract_attribute", chain, name))
        self._maybe_fail("extract_attribute")
        return self.attributes.get((chain, name))

    async def scroll(self, target: Optional[str] = None) -> None:
        self.calls.append(("scroll", target))
        self._maybe_fail("scroll")
        self.scrolls.append(target)

    async def current_page_ready(self) -> None:
        self.calls.append(("current_page_ready",))
        self._maybe_fail("current_page_ready")
        self.ready_calls += 1

    def _maybe_fail(self, operation: str) -> None:
        if self.fail_on == operation:
            raise RuntimeError(f"{operation}: Target page, context or browser has been closed")


# ---------------------------------------------------------------------------
# パターン定義
# ---------------------------------------------------------------------------

LOGIN_PAGE = {
    "screenCode": "loginPage",
    "fields": {
        "input": (
            "//input[@placeholder='#{loc.auto.fieldName}'];"
            "input[name='#{loc.auto.fieldName.toLowerCase}']"
        ),
        "button": "button:has-text('#{loc.auto.fieldName}')",
        "link": ["//a[text()='#{loc.auto.fieldName}']", "a[title='#{loc.auto.fieldName}']"],
    },
    "sections": {
        "Login Form": "form#login",
        "Product": "//div[@class='card'][.//h3[text()='#{loc.auto.section.value}']]",
    },
    "locations": {
        "Main Content": "main",
    },
    "scroll": "div.scrollable",
}

FORM_PAGE = {
    "screenCode": "formPage",
    "fields": {
        "label": "//label[text()='#{loc.auto.fieldName}'];label:has-text('#{loc.auto.fieldName}')",
        "input": "//input[@id='#{loc.auto.forId}'];//input[@name='#{loc.auto.fieldName.toLowerCase}']",
        "select": "//select[@id='#{loc.auto.forId}']",
        "button": "//button[text()='#{loc.auto.fieldName}']",
    },
}


# ---------------------------------------------------------------------------
# pytest フィクスチャ
# ---------------------------------------------------------------------------

@pytest.fixture
def make_adapter():
    """FakeDomAdapter のクラスを提供する。"""
    return FakeDomAdapter


@pytest.fixture
def store() -> VariableStore:
    """環境変数を差し替えた空の VariableStore。"""
    return VariableStore(environ={"PIQ_USER": "env-user"})


@pytest.fixture
def repository(store: VariableStore) -> PatternRepository:
    """loginPage / formPage を読み込んだ PatternRepository。"""
    repo = PatternRepository(store)
    repo.load([LOGIN_PAGE, FORM_PAGE])
    return repo


@pytest.fixture
def config() -> PatternIqConfig:
    """リトライ間隔 0 の設定（テストを待機させない）。"""
    return PatternIqConfig(
        default_screen_code="loginPage",
        retry_timeout_ms=5_000,
        retry_interval_ms=0,
    )


@pytest.fixture
def resolver(repository: PatternRepository, config: PatternIqConfig) -> PatternResolver:
    return PatternResolver(repository, config)


@pytest.fixture
def pattern_dir(tmp_path: Path) -> Path:
    """パターンファイルを 2 件配置したディレクトリ。"""
    directory = tmp_path / "patterns"
    directory.mkdir()
    (directory / "loginPage.pattern.yaml").write_text(
        "screenCode: loginPage\n"
        "fields:\n"
        "  button:\n"
        "    - \"//button[text()='#{loc.auto.fieldName}']\"\n"
        "    - \"button:has-text('#{loc.auto.fieldName}')\"\n"
        "  input: \"input[name='#{loc.auto.fieldName.toLowerCase}']\"\n"
        "sections:\n"
        "  Login Form: form#login\n",
        encoding="utf-8",
    )
    (directory / "homePage.pattern.yml").write_text(
        "fields:\n"
        "  link: \"//nav//a[text()='#{loc.auto.fieldName}']\"\n"
        "scroll: main\n",
        encoding="utf-8",
    )
    return directory
