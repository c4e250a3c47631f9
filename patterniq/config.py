"""
設定 — 設定ファイル・環境変数・CLI 引数からの設定読み込み

パターン解決エンジンの動作を制御する設定を読み込む。
CLI 引数 > 環境変数 > 設定ファイル > デフォルト値 の優先順位で適用される。

設定ファイル（patterniq.yaml）:
  patternIq:
    enable: true
    config: loginPage            # 既定のスクリーンコード
    retryTimeout: 30000
    retryInterval: 2000
    maxScrollIterations: 10
    patternDir: patterns
    locatorDir: locators         # loc.json.* が参照する JSON ファイルのディレクトリ
    pageMapping:
      /login: loginPage          # URL に含まれる文字列 → スクリーンコード
  vars:
    testUser: test.user@example.com

環境変数一覧:
  PATTERNIQ_ENABLE         : パターン解決の有効/無効（true/false, デフォルト: true）
  PATTERNIQ_CONFIG         : 既定のスクリーンコード
  PATTERNIQ_RETRY_TIMEOUT  : 解決タイムアウト（ミリ秒, デフォルト: 30000）
  PATTERNIQ_RETRY_INTERVAL : リトライ間隔（ミリ秒, デフォルト: 2000）
  PATTERNIQ_PATTERN_DIR    : パターンファイルのディレクトリ（デフォルト: patterns）
  PATTERNIQ_LOCATOR_DIR    : loc.json.* のロケータファイルのディレクトリ（デフォルト: locators）
"""

from __future__ import annotations

import dataclasses
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# 定数
# ---------------------------------------------------------------------------

DEFAULT_CONFIG_FILE = "patterniq.yaml"
CONFIG_SECTION = "patternIq"
CONFIG_PREFIX = "config.patternIq"
STATIC_VARS_PREFIX = "var.static"

_ENV_ENABLE = "PATTERNIQ_ENABLE"
_ENV_CONFIG = "PATTERNIQ_CONFIG"
_ENV_RETRY_TIMEOUT = "PATTERNIQ_RETRY_TIMEOUT"
_ENV_RETRY_INTERVAL = "PATTERNIQ_RETRY_INTERVAL"
_ENV_PATTERN_DIR = "PATTERNIQ_PATTERN_DIR"
_ENV_LOCATOR_DIR = "PATTERNIQ_LOCATOR_DIR"


# ---------------------------------------------------------------------------
# 設定データクラス
# ---------------------------------------------------------------------------

@dataclass
class PatternIqConfig:
    """パターン解決エンジンの設定。

    Attributes:
        enable: パターン解決を有効にするか（False の場合、識別子はそのまま返す）
        default_screen_code: 引数・既定値がない場合に使用するスクリーンコード
        retry_timeout_ms: 1 回の解決全体のタイムアウト（ミリ秒）
        retry_interval_ms: スクロール後の待機間隔（ミリ秒）
        max_scroll_iterations: 1 回の解決で行うスクロールの上限回数（10 を超える値は 10 として扱う）
        page_mapping: URL に含まれる文字列 → スクリーンコード
        pattern_dir: パターンファイルのディレクトリ
        locator_dir: loc.json.* が参照する JSON ロケータファイルのディレクトリ
        static_vars: var.static.* として変数ストアに展開する静的変数
    """

    enable: bool = True
    default_screen_code: Optional[str] = None
    retry_timeout_ms: int = 30_000
    retry_interval_ms: int = 2_000
    max_scroll_iterations: int = 10
    page_mapping: dict[str, str] = field(default_factory=dict)
    pattern_dir: str = "patterns"
    locator_dir: str = "locators"
    static_vars: dict[str, Any] = field(default_factory=dict)

    def to_variables(self) -> dict[str, str]:
        """変数ストアに展開する config.patternIq.* / var.static.* を返す。"""
        variables = {
            f"{CONFIG_PREFIX}.enable": "true" if self.enable else "false",
            f"{CONFIG_PREFIX}.retryTimeout": str(self.retry_timeout_ms),
            f"{CONFIG_PREFIX}.retryInterval": str(self.retry_interval_ms),
            f"{CONFIG_PREFIX}.maxScrollIterations": str(self.max_scroll_iterations),
            f"{CONFIG_PREFIX}.patternDir": self.pattern_dir,
            f"{CONFIG_PREFIX}.locatorDir": self.locator_dir,
        }
        if self.default_screen_code:
            variables[f"{CONFIG_PREFIX}.config"] = self.default_screen_code
        for url_part, code in self.page_mapping.items():
            variables[f"{CONFIG_PREFIX}.pageMapping.{url_part}"] = code
        for name, value in self.static_vars.items():
            variables[f"{STATIC_VARS_PREFIX}.{name}"] = "" if value is None else str(value)
        return variables


# ---------------------------------------------------------------------------
# 設定ファイルからの読み込み
# ---------------------------------------------------------------------------

def load_config_file(path: Path) -> PatternIqConfig:
    """設定ファイル（YAML）から PatternIqConfig を生成する。

    Args:
        path: 設定ファイルのパス

    Returns:
        設定ファイルの内容を反映した設定

    Raises:
        FileNotFoundError: ファイルが存在しない場合
        ValueError: YAML 構文エラー、またはトップレベルがマッピングでない場合
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"設定ファイルが見つかりません: {path}")

    yaml = YAML(typ="safe")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.load(f)
    except YAMLError as e:
        raise ValueError(f"設定ファイルの YAML 構文エラー: {e}") from e

    if data is None:
        return PatternIqConfig()
    if not isinstance(data, Mapping):
        raise ValueError(f"設定ファイルのトップレベルはマッピングである必要があります: {path}")

    config = PatternIqConfig()
    section = data.get(CONFIG_SECTION) or {}
    if not isinstance(section, Mapping):
        raise ValueError(f"'{CONFIG_SECTION}' はマッピングである必要があります: {path}")

    if "enable" in section:
        config.enable = _parse_bool(section["enable"])
    if section.get("config"):
        config.default_screen_code = str(section["config"]).strip()
    if "retryTimeout" in section:
        config.retry_timeout_ms = _parse_int(
            section["retryTimeout"], "retryTimeout", config.retry_timeout_ms,
        )
    if "retryInterval" in section:
        config.retry_interval_ms = _parse_int(
            section["retryInterval"], "retryInterval", config.retry_interval_ms,
        )
    if "maxScrollIterations" in section:
        config.max_scroll_iterations = _parse_int(
            section["maxScrollIterations"], "maxScrollIterations", config.max_scroll_iterations,
        )
    if section.get("patternDir"):
        config.pattern_dir = str(section["patternDir"])
    if section.get("locatorDir"):
        config.locator_dir = str(section["locatorDir"])
    mapping = section.get("pageMapping") or {}
    if isinstance(mapping, Mapping):
        config.page_mapping = {str(k): str(v) for k, v in mapping.items()}
    else:
        logger.warning("pageMapping はマッピングである必要があります。無視します: %r", mapping)

    static_vars = data.get("vars") or {}
    if isinstance(static_vars, Mapping):
        config.static_vars = dict(static_vars)

    return config


# ---------------------------------------------------------------------------
# 環境変数からの読み込み
# ---------------------------------------------------------------------------

def apply_env(
    config: PatternIqConfig, environ: Optional[Mapping[str, str]] = None
) -> PatternIqConfig:
    """環境変数の値を設定に上書き適用する。

    Args:
        config: ベースとなる設定
        environ: 環境変数辞書（省略時は os.environ）

    Returns:
        環境変数が適用された設定
    """
    env = os.environ if environ is None else environ

    if _ENV_ENABLE in env:
        config.enable = _parse_bool(env[_ENV_ENABLE])

    if env.get(_ENV_CONFIG):
        config.default_screen_code = env[_ENV_CONFIG].strip()

    if _ENV_RETRY_TIMEOUT in env:
        config.retry_timeout_ms = _parse_int(
            env[_ENV_RETRY_TIMEOUT], _ENV_RETRY_TIMEOUT, config.retry_timeout_ms,
        )

    if _ENV_RETRY_INTERVAL in env:
        config.retry_interval_ms = _parse_int(
            env[_ENV_RETRY_INTERVAL], _ENV_RETRY_INTERVAL, config.retry_interval_ms,
        )

    if env.get(_ENV_PATTERN_DIR):
        config.pattern_dir = env[_ENV_PATTERN_DIR]

    if env.get(_ENV_LOCATOR_DIR):
        config.locator_dir = env[_ENV_LOCATOR_DIR]

    return config


def load_config(
    path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None
) -> PatternIqConfig:
    """設定ファイルと環境変数から設定を読み込む。

    path を省略した場合、カレントディレクトリの patterniq.yaml があれば読み込む。

    Args:
        path: 設定ファイルのパス
        environ: 環境変数辞書（省略時は os.environ）

    Returns:
        読み込んだ設定
    """
    if path is None and Path(DEFAULT_CONFIG_FILE).exists():
        path = Path(DEFAULT_CONFIG_FILE)

    config = load_config_file(path) if path is not None else PatternIqConfig()
    config = apply_env(config, environ)
    logger.info("設定を読み込みました: %s", config)
    return config


def apply_overrides(config: PatternIqConfig, **overrides: Any) -> PatternIqConfig:
    """CLI 引数などの上書き値を適用した新しい設定を返す。None の値は無視する。"""
    values = {key: value for key, value in overrides.items() if value is not None}
    return dataclasses.replace(config, **values)


# ---------------------------------------------------------------------------
# ヘルパー関数
# ---------------------------------------------------------------------------

def _parse_bool(value: Any) -> bool:
    """"true", "1", "yes" → True、それ以外 → False"""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


def _parse_int(value: Any, name: str, default: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        logger.warning("%s の値が不正です: %s", name, value)
        return default
    if parsed < 0:
        logger.warning("%s に負の値は指定できません: %s", name, value)
        return default
    return parsed
