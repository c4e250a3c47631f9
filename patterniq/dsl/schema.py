"""
パターン定義スキーマ — 画面ごとのセレクタテンプレート

1 画面（スクリーンコード）分のセレクタテンプレートを表す Pydantic v2 モデルを定義する。

構成:
  - fields: 要素カテゴリ（button, input, link ...）→ ";" 区切りのテンプレートリスト
            （記述順がフォールバックの優先順位。先頭が最も具体的）
  - sections: セクション名 → 単一テンプレート
  - locations: ロケーション名 → 単一テンプレート
  - scroll: 遅延読み込み対策のスクロール対象テンプレートリスト（省略可）

YAML 上は fields / scroll の値に ";" 区切り文字列とリストのどちらも記述できる。
"""

from __future__ import annotations

import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# 定数
# ---------------------------------------------------------------------------

TEMPLATE_SEPARATOR = ";"

# スクリーンコードはキーの 1 セグメントになるため "." を含められない
_SCREEN_CODE_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


# ---------------------------------------------------------------------------
# PatternDefinition 本体
# ---------------------------------------------------------------------------

class PatternDefinition(BaseModel):
    """1 画面分のパターン定義。読み込み後は変更されない。"""

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    screen_code: str = Field(..., alias="screenCode", description="名前空間となるスクリーンコード")
    field_templates: dict[str, str] = Field(
        default_factory=dict,
        alias="fields",
        description="要素カテゴリ → ';' 区切りのテンプレートリスト",
    )
    sections: dict[str, str] = Field(default_factory=dict, description="セクション名 → テンプレート")
    locations: dict[str, str] = Field(default_factory=dict, description="ロケーション名 → テンプレート")
    scroll: Optional[str] = Field(default=None, description="';' 区切りのスクロール対象テンプレート")

    # ----- バリデータ -----

    @field_validator("screen_code")
    @classmethod
    def _check_screen_code(cls, value: str) -> str:
        value = value.strip()
        if not _SCREEN_CODE_PATTERN.match(value):
            raise ValueError(
                f"スクリーンコードには英数字・'_'・'-' のみ使用できます: {value!r}"
            )
        return value

    @field_validator("field_templates", mode="before")
    @classmethod
    def _join_field_lists(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(k): join_templates(v) for k, v in value.items()}
        return value

    @field_validator("scroll", mode="before")
    @classmethod
    def _join_scroll_list(cls, value: Any) -> Any:
        if value is None:
            return None
        return join_templates(value)

    # ----- 参照 -----

    def templates(self, category: str) -> list[str]:
        """カテゴリのテンプレートリストを優先順位順に返す（未登録なら空リスト）。"""
        return split_templates(self.field_templates.get(category, ""))

    def scroll_targets(self) -> list[str]:
        return split_templates(self.scroll or "")

    def flatten(self) -> dict[str, str]:
        """スクリーンコードを除いたドット区切りキーの辞書に展開する。

        例: fields.button, sections.Login Form, locations.Header, scroll
        """
        flat: dict[str, str] = {}
        for category, value in self.field_templates.items():
            flat[f"fields.{category}"] = value
        for name, value in self.sections.items():
            flat[f"sections.{name}"] = value
        for name, value in self.locations.items():
            flat[f"locations.{name}"] = value
        if self.scroll:
            flat["scroll"] = self.scroll
        return flat


# ---------------------------------------------------------------------------
# ヘルパー関数
# ---------------------------------------------------------------------------

def join_templates(value: Any) -> str:
    """リスト形式のテンプレートを ';' 区切り文字列に変換する。"""
    if isinstance(value, (list, tuple)):
        return TEMPLATE_SEPARATOR.join(str(item).strip() for item in value)
    return str(value)


def split_templates(value: str) -> list[str]:
    """';' 区切りのテンプレート文字列を分割する。空要素は除外する。"""
    return [part.strip() for part in value.split(TEMPLATE_SEPARATOR) if part.strip()]
