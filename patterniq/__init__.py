"""
patterniq — フィールド識別子によるロケータ解決エンジン

"{{Main Content}} {Login Form} Username[1]" のような人間可読な識別子と
画面ごとのセレクタテンプレートから、検証済みのチェーンロケータを生成する。

主要エクスポート:
  - parse: フィールド識別子のパース
  - VariableStore: #{key} プレースホルダの置換
  - PatternRepository: 画面ごとのパターン定義
  - PatternResolver: 識別子 → チェーンロケータの解決
  - LocatorRouter: セレクタ文字列の振り分け
  - LocatorCatalog: loc.* 形式のリソースロケータ
  - bootstrap: 設定からエンジン一式を構築
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import PatternIqConfig, load_config
from .core import (
    FailureReason,
    LocatorRouter,
    PatternResolver,
    PlaywrightDomAdapter,
    ResolutionFailure,
    ResolvedLocator,
)
from .dsl.identifier import FieldIdentifier, parse, parse_identifier
from .dsl.locators import LocatorCatalog
from .dsl.patterns import PatternRepository
from .dsl.variables import VariableStore
from .errors import (
    LocatorNotFoundError,
    LocatorResolutionError,
    PageClosedError,
    PatternIqError,
    PatternLoadError,
    ScreenCodeNotConfiguredError,
)

__all__ = [
    "FailureReason",
    "FieldIdentifier",
    "LocatorCatalog",
    "LocatorNotFoundError",
    "LocatorResolutionError",
    "LocatorRouter",
    "PageClosedError",
    "PatternIqConfig",
    "PatternIqEngine",
    "PatternIqError",
    "PatternLoadError",
    "PatternRepository",
    "PatternResolver",
    "PlaywrightDomAdapter",
    "ResolutionFailure",
    "ResolvedLocator",
    "ScreenCodeNotConfiguredError",
    "VariableStore",
    "bootstrap",
    "load_config",
    "parse",
    "parse_identifier",
]

logger = logging.getLogger(__name__)


@dataclass
class PatternIqEngine:
    """bootstrap() で構築したエンジン一式。"""

    config: PatternIqConfig
    store: VariableStore
    repository: PatternRepository
    resolver: PatternResolver
    catalog: LocatorCatalog
    router: LocatorRouter


def bootstrap(
    config: Optional[PatternIqConfig] = None,
    pattern_dir: Optional[Path] = None,
) -> PatternIqEngine:
    """設定から変数ストア・パターンリポジトリ・リゾルバを構築する。

    設定値は config.patternIq.*、静的変数は var.static.* として変数ストアに展開し、
    パターンディレクトリが存在すればパターンファイルを読み込む。
    loc.json.* のロケータファイルは config.locator_dir から参照時に読み込む。

    Args:
        config: 設定（省略時は load_config() で読み込む）
        pattern_dir: パターンディレクトリ（省略時は config.pattern_dir）

    Returns:
        構築したエンジン一式
    """
    if config is None:
        config = load_config()

    store = VariableStore()
    for key, value in config.to_variables().items():
        store.set(key, value)

    repository = PatternRepository(store)
    directory = Path(pattern_dir) if pattern_dir is not None else Path(config.pattern_dir)
    if directory.is_dir():
        repository.load_dir(directory)
    else:
        logger.warning("パターンディレクトリが見つかりません: %s", directory)

    resolver = PatternResolver(repository, config)
    catalog = LocatorCatalog(config.locator_dir)
    router = LocatorRouter(resolver, config, catalog)
    return PatternIqEngine(
        config=config,
        store=store,
        repository=repository,
        resolver=resolver,
        catalog=catalog,
        router=router,
    )
