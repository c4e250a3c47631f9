"""
変数ストア — #{key} プレースホルダの単一パス置換

ドット区切りのキーと文字列値を保持するプロセス共通の名前空間と、
テンプレート内の #{key} を値に置換する置換エンジンを提供する。

キーの階層:
  - pattern.<screenCode>.<category>.<name> → パターン定義（起動時に展開）
  - config.* / var.static.*                 → 設定・静的変数（起動時に設定）
  - env.*                                    → ストアを経由せず環境変数を直接参照
  - loc.auto.*                               → 解決呼び出しごとの一時変数（VariableScope のみ）

置換は左から右への単一パスで行い、置換後の値に含まれる #{...} は再展開しない。
未定義キーはキー名そのもの（return_empty_if_missing=True の場合は空文字列）になる。
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from typing import Any, Optional

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# プレースホルダパターン・キー定数
# ---------------------------------------------------------------------------

# #{key} にマッチする正規表現（#{} は対象外）
_PLACEHOLDER_PATTERN = re.compile(r"#\{([^{}]+)\}")

ENV_PREFIX = "env."
AUTO_PREFIX = "loc.auto."

# 解決呼び出しごとにバインドされる一時変数
AUTO_FIELD_NAME = "loc.auto.fieldName"
AUTO_FIELD_NAME_LOWER = "loc.auto.fieldName.toLowerCase"
AUTO_FIELD_INSTANCE = "loc.auto.fieldInstance"
AUTO_FOR_ID = "loc.auto.forId"
AUTO_LOCATION_NAME = "loc.auto.location.name"
AUTO_LOCATION_VALUE = "loc.auto.location.value"
AUTO_SECTION_NAME = "loc.auto.section.name"
AUTO_SECTION_VALUE = "loc.auto.section.value"

AUTO_KEYS = (
    AUTO_FIELD_NAME,
    AUTO_FIELD_NAME_LOWER,
    AUTO_FIELD_INSTANCE,
    AUTO_FOR_ID,
    AUTO_LOCATION_NAME,
    AUTO_LOCATION_VALUE,
    AUTO_SECTION_NAME,
    AUTO_SECTION_VALUE,
)


# ---------------------------------------------------------------------------
# VariableStore 本体
# ---------------------------------------------------------------------------

class VariableStore:
    """プロセス共通の変数ストア。

    起動時にパターン定義・設定・静的変数で初期化され、以後は読み取り専用として扱う。
    解決呼び出し中の一時変数は scoped() が返す VariableScope に書き込み、
    共有ストア自体は変更しない。

    使用例::

        store = VariableStore()
        store.set("config.baseUrl", "https://example.com")
        store.substitute("#{config.baseUrl}/login")
    """

    def __init__(
        self,
        values: Optional[Mapping[str, str]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        """変数ストアを初期化する。

        Args:
            values: 初期値
            environ: env.* の参照先（省略時は os.environ。テスタビリティのため差し替え可能）
        """
        self._values: dict[str, str] = dict(values or {})
        self._environ: Mapping[str, str] = os.environ if environ is None else environ

    # ----- 参照・更新 -----

    def get(self, key: str, return_empty_if_missing: bool = False) -> str:
        """キーに対応する値を返す。

        env.* はストアを経由せず環境変数を参照する。

        Args:
            key: ドット区切りのキー
            return_empty_if_missing: True の場合、未定義キーで空文字列を返す

        Returns:
            値。未定義の場合はキー名そのもの（または空文字列）
        """
        if key.startswith(ENV_PREFIX):
            value = self._environ.get(key[len(ENV_PREFIX):])
        else:
            value = self._values.get(key)
        if value is None:
            return "" if return_empty_if_missing else key
        return value

    def set(self, key: str, value: Any) -> None:
        self._values[key] = "" if value is None else str(value)

    def set_many(self, values: Mapping[str, Any], prefix: str = "") -> None:
        """ネストした辞書をドット区切りのキーに展開して設定する。

        Args:
            values: 設定する辞書（ネスト可）
            prefix: 全キーに付与するプレフィックス（例: "config"）
        """
        for key, value in flatten(values, prefix).items():
            self.set(key, value)

    def has(self, key: str) -> bool:
        if key.startswith(ENV_PREFIX):
            return key[len(ENV_PREFIX):] in self._environ
        return key in self._values

    def delete(self, key: str) -> None:
        self._values.pop(key, None)

    def delete_prefix(self, prefix: str) -> int:
        """指定プレフィックスで始まるキーを全て削除し、削除件数を返す。"""
        doomed = [key for key in self._values if key.startswith(prefix)]
        for key in doomed:
            del self._values[key]
        return len(doomed)

    def keys(self, prefix: str = "") -> list[str]:
        return sorted(key for key in self._values if key.startswith(prefix))

    # ----- 置換 -----

    def substitute(self, template: str) -> str:
        """テンプレート内の #{key} を単一パスで置換する。

        Args:
            template: 置換対象のテンプレート

        Returns:
            置換後の文字列
        """
        return substitute(template, self.get)

    def scoped(self) -> VariableScope:
        """このストアを親とする呼び出しスコープを生成する。"""
        return VariableScope(self)


# ---------------------------------------------------------------------------
# 呼び出しスコープ
# ---------------------------------------------------------------------------

class VariableScope:
    """共有ストアの上に重ねる呼び出し単位の変数スコープ。

    loc.auto.* などの一時変数はこのスコープにのみ書き込まれ、
    参照時はスコープ → 共有ストアの順で探索する。
    with ブロックを抜けると成功・失敗にかかわらず一時変数は全て破棄される。
    """

    def __init__(self, parent: VariableStore) -> None:
        self._parent = parent
        self._local: dict[str, str] = {}

    def __enter__(self) -> VariableScope:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.clear()

    def get(self, key: str, return_empty_if_missing: bool = False) -> str:
        if key in self._local:
            return self._local[key]
        return self._parent.get(key, return_empty_if_missing)

    def set(self, key: str, value: Any) -> None:
        self._local[key] = "" if value is None else str(value)

    def substitute(self, template: str) -> str:
        return substitute(template, self.get)

    def clear(self) -> None:
        if self._local:
            logger.debug("スコープ変数をリセットしました: %d 件", len(self._local))
        self._local.clear()

    @property
    def local_keys(self) -> list[str]:
        """スコープに書き込まれたキーの一覧（テスト・デバッグ用）。"""
        return sorted(self._local)


# ---------------------------------------------------------------------------
# ヘルパー関数
# ---------------------------------------------------------------------------

def substitute(template: str, lookup) -> str:
    """#{key} を lookup(key) の結果で置換する。置換結果は再走査しない。"""
    return _PLACEHOLDER_PATTERN.sub(lambda m: lookup(m.group(1)), template)


def flatten(values: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    """ネストした辞書をドット区切りのキーを持つ平坦な辞書に変換する。

    Args:
        values: 変換対象の辞書
        prefix: キーの先頭に付与するプレフィックス

    Returns:
        平坦化された辞書
    """
    flat: dict[str, Any] = {}
    for key, value in values.items():
        full_key = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            flat.update(flatten(value, full_key))
        elif isinstance(value, (list, tuple)):
            flat[full_key] = ";".join(str(item) for item in value)
        else:
            flat[full_key] = value
    return flat
