"""
パターンリゾルバ — フィールド識別子を検証済みのチェーンロケータに解決

フィールド識別子・要素カテゴリ・画面ごとのパターン定義から
セレクタ候補を生成し、DOM アダプタで可視性を確認して
最初に可視となった候補のチェーンロケータを返す。

主な機能:
  - 候補フォールバック: テンプレートを記述順に試行し、最初の可視候補で即座に終了
  - チェーン構築: ロケーション・セクションは最初のマッチ（nth=0）に固定し、その内側でフィールドを評価
  - ラベル解決: 入力系カテゴリでは label の for 属性を loc.auto.forId にバインド
  - スクロールリトライ: 可視候補がない場合にスクロールして再試行
    （最大 10 回。設定値が 10 を超えても 10 回で打ち切る。タイムアウトでも打ち切る）
  - 解決失敗は例外ではなく ResolutionFailure として返す

解決処理は明示的な状態遷移として実装する:
  READY → PARSE → BIND → SELECT_SCREEN → SCOPE → LABEL → CANDIDATES
        → (SCROLL → LABEL → CANDIDATES)* → RESOLVED / FAILED

loc.auto.* は呼び出しごとの VariableScope にのみ書き込まれ、
終了状態に関わらず呼び出し終了時に破棄される。
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, NoReturn, Optional, TypeVar, Union

from ..config import PatternIqConfig
from ..dsl.identifier import FieldIdentifier, parse
from ..dsl.patterns import PatternRepository
from ..dsl.variables import (
    AUTO_FIELD_INSTANCE,
    AUTO_FIELD_NAME,
    AUTO_FIELD_NAME_LOWER,
    AUTO_FOR_ID,
    AUTO_LOCATION_NAME,
    AUTO_LOCATION_VALUE,
    AUTO_SECTION_NAME,
    AUTO_SECTION_VALUE,
    VariableScope,
)
from ..errors import LocatorResolutionError, ScreenCodeNotConfiguredError

if TYPE_CHECKING:
    from .adapter import DomAdapter

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# 定数
# ---------------------------------------------------------------------------

CHAIN_SEPARATOR = " >> "

# ラベル解決を行う入力系カテゴリ
FORM_FIELD_CATEGORIES = frozenset({"input", "select", "textarea"})

LABEL_CATEGORY = "label"

# スクロール回数の上限。設定値がこれを超える場合もこの回数で打ち切る
MAX_SCROLL_ITERATIONS = 10

# ロケーション・セクションは最初のマッチ 1 件に固定してから内側を評価する
FIRST_MATCH = "nth=0"


# ---------------------------------------------------------------------------
# 解決結果
# ---------------------------------------------------------------------------

class FailureReason(str, enum.Enum):
    """解決失敗の理由。"""

    NO_TEMPLATES_REGISTERED = "NoTemplatesRegistered"
    TIMEOUT = "Timeout"
    SCROLL_LIMIT = "ScrollLimit"
    ADAPTER_ERROR = "AdapterError"


@dataclass(frozen=True)
class ResolvedLocator:
    """解決に成功したチェーンロケータ。

    Attributes:
        locator: " >> " 区切りのチェーンロケータ
        category: 要素カテゴリ
        identifier: 解決対象のフィールド識別子（呼び出し時の文字列）
        screen_code: 使用したスクリーンコード
        candidate_index: 採用したテンプレートのインデックス（0始まり）
        attempts: 候補リストを評価した回数（スクロール前の初回を含む）
    """

    locator: str
    category: str
    identifier: str
    screen_code: Optional[str] = None
    candidate_index: Optional[int] = None
    attempts: int = 1

    ok = True

    def __str__(self) -> str:
        return self.locator


@dataclass(frozen=True)
class ResolutionFailure:
    """解決に失敗した結果。例外ではなく戻り値として扱う。

    Attributes:
        category: 要素カテゴリ
        identifier: 解決対象のフィールド識別子
        reason: 失敗理由
        screen_code: 使用したスクリーンコード
        candidates: 試行したチェーンロケータ（初回試行順、重複なし）
        message: 補足メッセージ
        attempts: 候補リストを評価した回数
    """

    category: str
    identifier: str
    reason: FailureReason
    screen_code: Optional[str] = None
    candidates: tuple[str, ...] = ()
    message: str = ""
    attempts: int = 0

    ok = False

    def describe(self) -> str:
        """全候補を含むエラーメッセージを生成する。"""
        lines = [
            f"ロケータの解決に失敗しました（{self.reason.value}）: "
            f"category={self.category} identifier={self.identifier!r} "
            f"screen={self.screen_code}",
        ]
        if self.message:
            lines.append(f"  {self.message}")
        if self.candidates:
            lines.append(f"試行した候補（{len(self.candidates)} 件、評価 {self.attempts} 回）:")
            lines.extend(f"  [{i}] {c}" for i, c in enumerate(self.candidates))
        return "\n".join(lines)

    def raise_error(self) -> NoReturn:
        """ハードエラーとして LocatorResolutionError を送出する。"""
        raise LocatorResolutionError(self.describe(), self)


ResolutionResult = Union[ResolvedLocator, ResolutionFailure]


# ---------------------------------------------------------------------------
# 状態定義
# ---------------------------------------------------------------------------

class ResolutionState(enum.Enum):
    READY = "ready"
    PARSE = "parse"
    BIND = "bind"
    SELECT_SCREEN = "select_screen"
    SCOPE = "scope"
    LABEL = "label"
    CANDIDATES = "candidates"
    SCROLL = "scroll"
    RESOLVED = "resolved"
    FAILED = "failed"


_TERMINAL_STATES = frozenset({ResolutionState.RESOLVED, ResolutionState.FAILED})


class _AdapterFailure(Exception):
    """DOM アダプタ呼び出しで発生した例外のラッパー（内部用）。"""

    def __init__(self, operation: str, cause: BaseException) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation}: {type(cause).__name__}: {cause}")


# ---------------------------------------------------------------------------
# PatternResolver 本体
# ---------------------------------------------------------------------------

class PatternResolver:
    """フィールド識別子をチェーンロケータに解決する。

    リポジトリと設定は読み取り専用として扱うため、1 つのインスタンスを
    複数ページの並行する resolve 呼び出しで共有できる。

    使用例::

        resolver = PatternResolver(repository, config)
        result = await resolver.resolve(adapter, "input", "{Login Form} Username")
        if result.ok:
            await page.locator(result.locator).fill("user")
    """

    def __init__(
        self,
        repository: PatternRepository,
        config: Optional[PatternIqConfig] = None,
    ) -> None:
        """PatternResolver を初期化する。

        Args:
            repository: 読み込み済みのパターンリポジトリ
            config: 設定（省略時はデフォルト値）
        """
        self._repository = repository
        self._config = config if config is not None else PatternIqConfig()
        self._default_screen: Optional[str] = None

    @property
    def repository(self) -> PatternRepository:
        return self._repository

    @property
    def config(self) -> PatternIqConfig:
        return self._config

    @property
    def default_screen_code(self) -> Optional[str]:
        return self._default_screen

    def set_default_screen(self, screen_code: Optional[str]) -> None:
        """以降の resolve で使用する既定のスクリーンコードを設定する（None で解除）。"""
        self._default_screen = screen_code.strip() if screen_code else None
        logger.info("既定のスクリーンコードを設定しました: %s", self._default_screen)

    def select_screen(self, screen_code: Optional[str] = None) -> str:
        """引数 → 既定値 → 設定の順に有効なスクリーンコードを決定する。

        Raises:
            ScreenCodeNotConfiguredError: いずれからも決まらない場合
        """
        for candidate in (screen_code, self._default_screen, self._config.default_screen_code):
            if candidate and candidate.strip():
                return candidate.strip()
        raise ScreenCodeNotConfiguredError(
            "スクリーンコードが指定されていません。引数・set_default_screen()・"
            "設定（patternIq.config）のいずれかで指定してください"
        )

    # -------------------------------------------------------------------
    # パブリック API
    # -------------------------------------------------------------------

    async def resolve(
        self,
        adapter: DomAdapter,
        category: str,
        identifier: str,
        screen_code: Optional[str] = None,
        timeout_ms: Optional[int] = None,
    ) -> ResolutionResult:
        """フィールド識別子をチェーンロケータに解決する。

        Args:
            adapter: ページに紐づく DOM アダプタ
            category: 要素カテゴリ（button, input, link ...）
            identifier: フィールド識別子（例: "{{Header}} {Login Form} Submit[2]"）
            screen_code: スクリーンコードの上書き
            timeout_ms: 解決全体のタイムアウト（ミリ秒、省略時は設定値）

        Returns:
            ResolvedLocator（成功）または ResolutionFailure（失敗）

        Raises:
            ScreenCodeNotConfiguredError: スクリーンコードが決まらない場合
        """
        with self._repository.store.scoped() as scope:
            run = _ResolutionRun(
                resolver=self,
                adapter=adapter,
                scope=scope,
                category=category.strip(),
                raw_identifier=identifier,
                screen_override=screen_code,
                timeout_ms=self._config.retry_timeout_ms if timeout_ms is None else timeout_ms,
            )
            return await run.execute()

    async def resolve_or_raise(
        self,
        adapter: DomAdapter,
        category: str,
        identifier: str,
        screen_code: Optional[str] = None,
        timeout_ms: Optional[int] = None,
    ) -> ResolvedLocator:
        """resolve() の失敗を LocatorResolutionError として送出する版。"""
        result = await self.resolve(adapter, category, identifier, screen_code, timeout_ms)
        if isinstance(result, ResolutionFailure):
            result.raise_error()
        return result


# ---------------------------------------------------------------------------
# 1 回の解決呼び出しの状態遷移
# ---------------------------------------------------------------------------

@dataclass
class _ResolutionRun:
    """1 回の resolve 呼び出しの状態を保持し、状態遷移を実行する。"""

    resolver: PatternResolver
    adapter: DomAdapter
    scope: VariableScope
    category: str
    raw_identifier: str
    screen_override: Optional[str]
    timeout_ms: int

    state: ResolutionState = ResolutionState.READY
    identifier: Optional[FieldIdentifier] = None
    screen_code: Optional[str] = None
    location_segment: Optional[str] = None
    section_segment: Optional[str] = None
    tried: list[str] = field(default_factory=list)
    attempts: int = 0
    scrolls: int = 0
    deadline: float = 0.0
    result: Optional[ResolutionResult] = None

    async def execute(self) -> ResolutionResult:
        handlers = {
            ResolutionState.READY: self._ready,
            ResolutionState.PARSE: self._parse,
            ResolutionState.BIND: self._bind,
            ResolutionState.SELECT_SCREEN: self._select_screen,
            ResolutionState.SCOPE: self._resolve_scope,
            ResolutionState.LABEL: self._resolve_label,
            ResolutionState.CANDIDATES: self._try_candidates,
            ResolutionState.SCROLL: self._scroll_and_wait,
        }
        self.deadline = time.monotonic() + self.timeout_ms / 1000

        while self.state not in _TERMINAL_STATES:
            logger.debug("resolve 状態: %s（%s / %r）", self.state.value, self.category, self.raw_identifier)
            try:
                self.state = await handlers[self.state]()
            except _AdapterFailure as exc:
                logger.warning("DOM アダプタでエラーが発生しました: %s", exc)
                self.state = self._fail(FailureReason.ADAPTER_ERROR, str(exc))

        return self.result

    # ----- 各状態のハンドラ -----

    async def _ready(self) -> ResolutionState:
        await self._call("current_page_ready", self.adapter.current_page_ready())
        return ResolutionState.PARSE

    async def _parse(self) -> ResolutionState:
        self.identifier = parse(self.raw_identifier)
        return ResolutionState.BIND

    async def _bind(self) -> ResolutionState:
        ident = self.identifier
        self.scope.set(AUTO_FIELD_NAME, ident.field_name)
        self.scope.set(AUTO_FIELD_NAME_LOWER, ident.field_name.lower())
        self.scope.set(AUTO_FIELD_INSTANCE, ident.instance)
        self.scope.set(AUTO_FOR_ID, "")
        self.scope.set(AUTO_LOCATION_NAME, ident.location_name)
        self.scope.set(AUTO_LOCATION_VALUE, ident.location_value)
        self.scope.set(AUTO_SECTION_NAME, ident.section_name)
        self.scope.set(AUTO_SECTION_VALUE, ident.section_value)
        return ResolutionState.SELECT_SCREEN

    async def _select_screen(self) -> ResolutionState:
        self.screen_code = self.resolver.select_screen(self.screen_override)
        repository = self.resolver.repository
        if not repository.templates(self.screen_code, self.category):
            if self.screen_code not in repository:
                message = f"スクリーンコード '{self.screen_code}' のパターン定義が読み込まれていません"
            else:
                message = f"カテゴリ '{self.category}' のテンプレートが登録されていません"
            return self._fail(FailureReason.NO_TEMPLATES_REGISTERED, message)
        return ResolutionState.SCOPE

    async def _resolve_scope(self) -> ResolutionState:
        ident = self.identifier
        if ident.has_location:
            self.location_segment = self._single_template("locations", ident.location_name)
        if ident.has_section:
            self.section_segment = self._single_template("sections", ident.section_name)
        return ResolutionState.LABEL

    async def _resolve_label(self) -> ResolutionState:
        if self.category not in FORM_FIELD_CATEGORIES or self.scope.get(AUTO_FOR_ID):
            return ResolutionState.CANDIDATES

        repository = self.resolver.repository
        for template in repository.templates(self.screen_code, LABEL_CATEGORY):
            chain = self._chain(self.scope.substitute(template))
            state = await self._call("exists_and_visible", self.adapter.exists_and_visible(chain))
            if not state.exists:
                continue
            for_id = await self._call("extract_attribute", self.adapter.extract_attribute(chain, "for"))
            if for_id:
                self.scope.set(AUTO_FOR_ID, for_id)
                logger.debug("ラベルを解決しました: %s → forId=%s", chain, for_id)
                break
        return ResolutionState.CANDIDATES

    async def _try_candidates(self) -> ResolutionState:
        self.attempts += 1
        templates = self.resolver.repository.templates(self.screen_code, self.category)
        for index, template in enumerate(templates):
            chain = self._chain(self.scope.substitute(template))
            if chain not in self.tried:
                self.tried.append(chain)
            state = await self._call("exists_and_visible", self.adapter.exists_and_visible(chain))
            logger.debug(
                "候補 %d: %s（exists=%s, visible=%s）", index, chain, state.exists, state.visible,
            )
            if state.visible:
                logger.info(
                    "ロケータを解決しました: %s %r → %s", self.category, self.raw_identifier, chain,
                )
                self.result = ResolvedLocator(
                    locator=chain,
                    category=self.category,
                    identifier=self.raw_identifier,
                    screen_code=self.screen_code,
                    candidate_index=index,
                    attempts=self.attempts,
                )
                return ResolutionState.RESOLVED
        return ResolutionState.SCROLL

    async def _scroll_and_wait(self) -> ResolutionState:
        max_scrolls = min(self.resolver.config.max_scroll_iterations, MAX_SCROLL_ITERATIONS)
        if self.scrolls >= max_scrolls:
            return self._fail(
                FailureReason.SCROLL_LIMIT, f"スクロール上限（{max_scrolls} 回）に達しました",
            )
        if self._remaining() <= 0:
            return self._fail(FailureReason.TIMEOUT, f"タイムアウト（{self.timeout_ms}ms）しました")

        targets = [
            self.scope.substitute(t)
            for t in self.resolver.repository.scroll_targets(self.screen_code)
        ]
        if targets:
            for target in targets:
                await self._call("scroll", self.adapter.scroll(target))
        else:
            await self._call("scroll", self.adapter.scroll(None))
        self.scrolls += 1

        interval = self.resolver.config.retry_interval_ms / 1000
        await asyncio.sleep(max(0.0, min(interval, self._remaining())))
        if self._remaining() <= 0:
            return self._fail(FailureReason.TIMEOUT, f"タイムアウト（{self.timeout_ms}ms）しました")
        return ResolutionState.LABEL

    # ----- ヘルパー -----

    def _single_template(self, category: str, name: str) -> Optional[str]:
        """sections / locations のテンプレートを展開する。未登録なら None。"""
        repository = self.resolver.repository
        if not repository.has(self.screen_code, category, name):
            logger.warning(
                "%s '%s' はスクリーン '%s' に登録されていません。スコープなしで解決します",
                category, name, self.screen_code,
            )
            return None
        return self.scope.substitute(repository.lookup(self.screen_code, category, name))

    def _chain(self, candidate: str) -> str:
        segments: list[Optional[str]] = []
        for scope_segment in (self.location_segment, self.section_segment):
            if scope_segment and scope_segment.strip():
                segments.extend([scope_segment, FIRST_MATCH])
        segments.append(candidate)
        instance = self.identifier.instance
        if instance > 1:
            segments.append(f"nth={instance - 1}")
        return build_chain(*segments)

    def _remaining(self) -> float:
        return self.deadline - time.monotonic()

    def _fail(self, reason: FailureReason, message: str) -> ResolutionState:
        self.result = ResolutionFailure(
            category=self.category,
            identifier=self.raw_identifier,
            reason=reason,
            screen_code=self.screen_code,
            candidates=tuple(self.tried),
            message=message,
            attempts=self.attempts,
        )
        logger.warning("%s", self.result.describe())
        return ResolutionState.FAILED

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        """DOM アダプタを呼び出す。例外は _AdapterFailure に変換する。"""
        try:
            return await awaitable
        except Exception as exc:  # noqa: BLE001
            raise _AdapterFailure(operation, exc) from exc


# ---------------------------------------------------------------------------
# ヘルパー関数
# ---------------------------------------------------------------------------

def build_chain(*segments: Optional[str]) -> str:
    """セグメントを " >> " で連結する。空のセグメントは省略する。

    "(" で始まるセグメント（括弧付き XPath）は Playwright が XPath と
    判定しないため "xpath=" を付与する。
    """
    parts: list[str] = []
    for segment in segments:
        if not segment or not segment.strip():
            continue
        segment = segment.strip()
        if segment.startswith("("):
            segment = "xpath=" + segment
        parts.append(segment)
    return CHAIN_SEPARATOR.join(parts)
