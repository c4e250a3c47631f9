"""
パターンリポジトリ — 画面ごとのパターン定義の読み込みと参照

*.pattern.yaml を ruamel.yaml で読み込み、PatternDefinition で検証した上で
変数ストアの pattern.<screenCode>.* 名前空間に展開する。

主な機能:
  - load(): PatternDefinition / 辞書のリストを読み込む
  - load_dir(): ディレクトリ内のパターンファイルを名前順に読み込む
  - lookup(): (スクリーンコード, カテゴリ, 名前) でテンプレートを参照
  - validate_file(): パターンファイルの検証結果を返す（CLI の validate 用）

同じスクリーンコードが複数回読み込まれた場合は後勝ちとする（マージしない）。
読み込みに失敗した定義は警告を記録してスキップし、残りの読み込みを継続する。
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from ..errors import PatternLoadError
from .schema import PatternDefinition, split_templates
from .variables import VariableStore

logger = logging.getLogger(__name__)

PATTERN_PREFIX = "pattern"

# パターンファイルの拡張子
_PATTERN_SUFFIXES = (".pattern.yaml", ".pattern.yml")


# ---------------------------------------------------------------------------
# 読み込み警告
# ---------------------------------------------------------------------------

@dataclass
class PatternLoadWarning:
    """読み込み時にスキップされた定義の情報。

    Attributes:
        message: 警告メッセージ
        source: 読み込み元（ファイルパス、または "<definitions>[i]"）
        line: YAML ファイル内の行番号（取得可能な場合）
    """

    message: str
    source: str = ""
    line: Optional[int] = None


# ---------------------------------------------------------------------------
# PatternRepository 本体
# ---------------------------------------------------------------------------

class PatternRepository:
    """画面ごとのパターン定義を保持するリポジトリ。

    読み込みは起動時に一度だけ行い、以後は読み取り専用として
    並行する解決呼び出しから参照される。

    使用例::

        repository = PatternRepository(store)
        repository.load_dir(Path("patterns"))
        repository.lookup("loginPage", "fields", "button")
    """

    def __init__(self, store: Optional[VariableStore] = None) -> None:
        self._store = store if store is not None else VariableStore()
        self._definitions: dict[str, PatternDefinition] = {}
        self._warnings: list[PatternLoadWarning] = []
        self._yaml = YAML()
        self._yaml.preserve_quotes = True

    @property
    def store(self) -> VariableStore:
        return self._store

    @property
    def warnings(self) -> list[PatternLoadWarning]:
        """これまでの読み込みで記録された警告のコピー。"""
        return list(self._warnings)

    # ----- 読み込み -----

    def load(
        self, definitions: Iterable[Union[PatternDefinition, Mapping[str, Any]]]
    ) -> list[PatternDefinition]:
        """パターン定義のリストを読み込む。

        辞書が渡された場合は PatternDefinition として検証する。
        検証に失敗した定義は警告を記録してスキップする。

        Args:
            definitions: PatternDefinition または辞書のリスト

        Returns:
            読み込みに成功した定義のリスト（読み込み順）
        """
        loaded: list[PatternDefinition] = []
        for index, item in enumerate(definitions):
            source = f"<definitions>[{index}]"
            try:
                definition = (
                    item if isinstance(item, PatternDefinition)
                    else PatternDefinition.model_validate(dict(item))
                )
            except (PydanticValidationError, TypeError, ValueError) as exc:
                self._record_warning(f"パターン定義の検証に失敗しました: {exc}", source)
                continue
            self._register(definition, source)
            loaded.append(definition)
        return loaded

    def load_file(self, path: Path) -> Optional[PatternDefinition]:
        """パターンファイルを 1 件読み込む。失敗時は警告を記録して None を返す。"""
        try:
            definition = self.read_file(path)
        except PatternLoadError as exc:
            self._record_warning(str(exc), exc.source, exc.line)
            return None
        self._register(definition, str(path))
        return definition

    def load_dir(self, directory: Path) -> list[PatternDefinition]:
        """ディレクトリ内の *.pattern.yaml / *.pattern.yml を名前順に読み込む。

        Args:
            directory: パターンファイルを格納したディレクトリ

        Returns:
            読み込みに成功した定義のリスト

        Raises:
            FileNotFoundError: ディレクトリが存在しない場合
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise FileNotFoundError(f"パターンディレクトリが見つかりません: {directory}")

        loaded: list[PatternDefinition] = []
        for path in discover_pattern_files(directory):
            definition = self.load_file(path)
            if definition is not None:
                loaded.append(definition)

        logger.info(
            "パターンファイルを読み込みました: %d 件（%s）",
            len(loaded), directory,
        )
        return loaded

    def read_file(self, path: Path) -> PatternDefinition:
        """パターンファイルを読み込んで検証する。リポジトリには登録しない。

        screenCode が省略されている場合はファイル名（.pattern より前）を使用する。

        Args:
            path: パターンファイルのパス

        Returns:
            検証済みの PatternDefinition

        Raises:
            PatternLoadError: ファイルが存在しない・YAML 構文エラー・スキーマ違反の場合
        """
        path = Path(path)
        if not path.exists():
            raise PatternLoadError(f"パターンファイルが見つかりません: {path}", str(path))

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = self._yaml.load(f)
        except YAMLError as e:
            line = None
            if getattr(e, "problem_mark", None) is not None:
                line = e.problem_mark.line + 1
            raise PatternLoadError(f"YAML 構文エラー: {e}", str(path), line) from e

        if data is None:
            raise PatternLoadError(f"パターンファイルが空です: {path}", str(path))
        if not isinstance(data, Mapping):
            raise PatternLoadError(
                f"パターンファイルのトップレベルはマッピングである必要があります: {path}",
                str(path),
            )

        plain = _to_plain_dict(data)
        plain.setdefault("screenCode", screen_code_from_path(path))

        try:
            return PatternDefinition.model_validate(plain)
        except PydanticValidationError as e:
            raise PatternLoadError(f"スキーマ検証エラー: {e}", str(path)) from e

    def validate_file(self, path: Path) -> list[PatternLoadWarning]:
        """パターンファイルを検証し、問題点のリストを返す（問題がなければ空リスト）。"""
        try:
            self.read_file(path)
        except PatternLoadError as exc:
            return [PatternLoadWarning(message=str(exc), source=exc.source, line=exc.line)]
        return []

    # ----- 参照 -----

    def lookup(self, screen_code: str, category: str, name: Optional[str] = None) -> str:
        """展開済みのテンプレートを変数ストアから参照する。

        未登録の場合は変数ストアの規約どおりキー名そのものを返す。

        Args:
            screen_code: スクリーンコード
            category: fields / sections / locations / scroll
            name: カテゴリ内の名前（scroll の場合は不要）
        """
        return self._store.get(pattern_key(screen_code, category, name))

    def has(self, screen_code: str, category: str, name: Optional[str] = None) -> bool:
        return self._store.has(pattern_key(screen_code, category, name))

    def templates(self, screen_code: str, category: str) -> list[str]:
        """fields.<category> のテンプレートを優先順位順に返す（未登録なら空リスト）。"""
        if not self.has(screen_code, "fields", category):
            return []
        return split_templates(self.lookup(screen_code, "fields", category))

    def scroll_targets(self, screen_code: str) -> list[str]:
        if not self.has(screen_code, "scroll"):
            return []
        return split_templates(self.lookup(screen_code, "scroll"))

    def get(self, screen_code: str) -> Optional[PatternDefinition]:
        return self._definitions.get(screen_code)

    def loaded_codes(self) -> list[str]:
        """読み込み済みのスクリーンコード（読み込み順）。"""
        return list(self._definitions)

    def __contains__(self, screen_code: object) -> bool:
        return screen_code in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)

    # ----- 内部メソッド -----

    def _register(self, definition: PatternDefinition, source: str) -> None:
        """定義を変数ストアに展開する。同じスクリーンコードは置き換える。"""
        code = definition.screen_code
        namespace = f"{PATTERN_PREFIX}.{code}"

        if code in self._definitions:
            # 後勝ち: 以前の定義のキーを全て削除してから展開する
            removed = self._store.delete_prefix(namespace + ".")
            del self._definitions[code]
            logger.warning(
                "スクリーンコード '%s' が重複しています。%s の定義で置き換えます（削除 %d キー）",
                code, source, removed,
            )

        for key, value in definition.flatten().items():
            self._store.set(f"{namespace}.{key}", value)
        self._definitions[code] = definition
        logger.debug("パターン定義を登録しました: %s（%s）", code, source)

    def _record_warning(self, message: str, source: str, line: Optional[int] = None) -> None:
        self._warnings.append(PatternLoadWarning(message=message, source=source, line=line))
        logger.warning("パターン定義をスキップしました（%s）: %s", source, message)


# ---------------------------------------------------------------------------
# ヘルパー関数
# ---------------------------------------------------------------------------

def pattern_key(screen_code: str, category: str, name: Optional[str] = None) -> str:
    """pattern.<screenCode>.<category>[.<name>] 形式のキーを生成する。"""
    key = f"{PATTERN_PREFIX}.{screen_code}.{category}"
    if name:
        key = f"{key}.{name}"
    return key


def discover_pattern_files(directory: Path) -> list[Path]:
    """ディレクトリ内のパターンファイルを名前順に列挙する。"""
    return sorted(
        path for path in Path(directory).iterdir()
        if path.is_file() and path.name.endswith(_PATTERN_SUFFIXES)
    )


def screen_code_from_path(path: Path) -> str:
    """loginPage.pattern.yaml → loginPage"""
    name = Path(path).name
    for suffix in _PATTERN_SUFFIXES:
        if name.endswith(suffix):
            return name[: -len(suffix)]
    return Path(path).stem


def _to_plain_dict(data: Any) -> Any:
    """ruamel.yaml の CommentedMap/CommentedSeq を通常の dict/list に再帰変換する。"""
    if isinstance(data, Mapping):
        return {str(key): _to_plain_dict(value) for key, value in data.items()}
    if isinstance(data, list):
        return [_to_plain_dict(item) for item in data]
    return data
