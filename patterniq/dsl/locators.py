"""
リソースロケータ — loc.* 形式で参照する名前付きロケータ

パターン解決を使わず、ファイルやコードで管理された名前付きロケータを
"loc.<種別>.<ページ>.<フィールド>" 形式で参照する。

参照形式:
  - loc.json.<file>.<page>.<field>  → <locator_dir>/<file>.json の [page][field]
  - loc.ts.<file>.<page>.<field>    → register() で登録したロケータ
  - loc.<file>.<page>.<field>       → register() で登録したロケータ

取得したロケータ文字列は変数ストアで #{key} を置換してから返す。
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional, Union

from ..errors import LocatorNotFoundError
from .variables import VariableStore

logger = logging.getLogger(__name__)

RESOURCE_PREFIX = "loc."
JSON_PREFIX = "loc.json."
REGISTERED_PREFIX = "loc.ts."

_EXPECTED_FORMAT = "loc.(json|ts).<file>.<page>.<field> または loc.<file>.<page>.<field>"


def is_resource_locator(selector: str) -> bool:
    """selector が loc.* 形式のリソースロケータかどうかを判定する。"""
    return selector.strip().startswith(RESOURCE_PREFIX)


class LocatorCatalog:
    """loc.* 形式のリソースロケータを解決する。

    JSON ファイルは初回参照時に読み込み、以後はキャッシュを使用する。

    Args:
        locator_dir: loc.json.* が参照する JSON ファイルのディレクトリ
    """

    def __init__(self, locator_dir: Union[str, Path] = "locators") -> None:
        self._locator_dir = Path(locator_dir)
        self._json_cache: dict[str, Mapping[str, Any]] = {}
        self._registered: dict[str, dict[str, dict[str, str]]] = {}

    @property
    def locator_dir(self) -> Path:
        return self._locator_dir

    # ----- 登録 -----

    def register(self, file_name: str, pages: Mapping[str, Mapping[str, str]]) -> None:
        """ページ → フィールド → ロケータ の辞書を file_name として登録する。

        同じ file_name のページは上書きする。
        """
        target = self._registered.setdefault(file_name, {})
        for page_name, fields in pages.items():
            target[str(page_name)] = {str(k): str(v) for k, v in fields.items()}
        logger.debug("リソースロケータを登録しました: %s（%d ページ）", file_name, len(pages))

    # ----- 解決 -----

    def resolve(self, selector: str, store: Optional[VariableStore] = None) -> str:
        """loc.* 形式のロケータを解決し、変数置換済みのセレクタ文字列を返す。

        Args:
            selector: loc.* 形式のロケータ
            store: #{key} 置換に使う変数ストア（省略時は置換しない）

        Returns:
            セレクタ文字列

        Raises:
            LocatorNotFoundError: 形式が不正、またはファイル・ページ・フィールドが見つからない場合
        """
        selector = selector.strip()
        if selector.startswith(JSON_PREFIX):
            file_name, page_name, field_name = self._split(selector, JSON_PREFIX)
            pages = self._load_json(file_name)
            source = f"{file_name}.json"
        else:
            prefix = REGISTERED_PREFIX if selector.startswith(REGISTERED_PREFIX) else RESOURCE_PREFIX
            file_name, page_name, field_name = self._split(selector, prefix)
            if file_name not in self._registered:
                raise LocatorNotFoundError(f"ロケータ '{file_name}' は登録されていません: {selector}")
            pages = self._registered[file_name]
            source = file_name

        page = pages.get(page_name)
        if not isinstance(page, Mapping):
            raise LocatorNotFoundError(f"ページ '{page_name}' が {source} に見つかりません")
        value = page.get(field_name)
        if not value:
            raise LocatorNotFoundError(
                f"フィールド '{field_name}' が {source}[{page_name}] に見つかりません"
            )

        locator = store.substitute(str(value)) if store is not None else str(value)
        logger.info("リソースロケータを解決しました: %s → %s", selector, locator)
        return locator

    # ----- 内部メソッド -----

    @staticmethod
    def _split(selector: str, prefix: str) -> tuple[str, str, str]:
        parts = selector[len(prefix):].split(".", 2)
        if len(parts) != 3 or not all(part.strip() for part in parts):
            raise LocatorNotFoundError(
                f"ロケータの形式が不正です: {selector!r}（期待する形式: {_EXPECTED_FORMAT}）"
            )
        return parts[0], parts[1], parts[2]

    def _load_json(self, file_name: str) -> Mapping[str, Any]:
        if file_name in self._json_cache:
            return self._json_cache[file_name]

        path = self._locator_dir / f"{file_name}.json"
        if not path.exists():
            raise LocatorNotFoundError(f"ロケータファイルが見つかりません: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise LocatorNotFoundError(f"ロケータファイルの JSON 構文エラー: {path}: {e}") from e
        if not isinstance(data, Mapping):
            raise LocatorNotFoundError(
                f"ロケータファイルのトップレベルはオブジェクトである必要があります: {path}"
            )

        self._json_cache[file_name] = data
        return data
