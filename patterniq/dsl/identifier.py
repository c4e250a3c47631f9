"""
フィールド識別子パーサー — "{{Location}} {Section} Field[N]" の分解

テスト作成者が記述する人間可読なフィールド識別子を、
ロケーション・セクション・フィールド名・インスタンス番号に分解する。

構文:
  - {{name}} / {{name::value}}  → ロケーション（省略可）
  - {name} / {name::value}      → セクション（省略可）
  - フィールド名                 → 必須
  - [N]                          → インスタンス番号（N >= 1、省略時 1）

エスケープ:
  - /{{ → リテラルの "{{"
  - /{  → リテラルの "{"
  - /[  → リテラルの "["

末尾の [N] は常にインスタンス番号として先に切り出す（"a/[2]" はフィールド "a/"、
インスタンス 2）。末尾にリテラルの "[N]" を置く場合は "Row /[1][1]" のように
インスタンス番号を明示する。

パースは失敗しない。構造として解釈できない入力は Unparsed として返し、
文字列全体をフィールド名（インスタンス 1）として扱う。
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Union


# ---------------------------------------------------------------------------
# 識別子パターン
# ---------------------------------------------------------------------------

_IDENTIFIER_PATTERN = re.compile(
    r"^(?:\{\{(?P<location>[^{}]+?)\}\}\s*)?"
    r"(?:\{(?P<section>[^{}]+?)\}\s*)?"
    r"(?P<field>.+)$",
    re.DOTALL,
)

# 末尾のインスタンス番号。エスケープ処理より先に切り出す
_INSTANCE_SUFFIX = re.compile(r"\[(?P<instance>[1-9][0-9]*)\]$")

# name::value の区切り
_VALUE_SEPARATOR = "::"

# エスケープ表記とプレースホルダ（私用領域の文字で一時的に置換する）
_ESCAPES = (
    ("/{{", "\ue000", "{{"),
    ("/{", "\ue001", "{"),
    ("/[", "\ue002", "["),
)

# フィールド名に残っていたら構造として不正とみなす開き括弧（閉じ括弧はリテラル扱い）
_STRUCTURAL_CHARS = frozenset("{[")


# ---------------------------------------------------------------------------
# パース結果
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FieldIdentifier:
    """分解済みのフィールド識別子。

    解決呼び出しごとに生成され、以後は変更されない。

    Attributes:
        field_name: フィールド名（必須）
        instance: 同一テンプレートにマッチする要素のうち何番目か（1始まり）
        location_name: ロケーション名
        location_value: ロケーション値（{{name::value}} の value）
        section_name: セクション名
        section_value: セクション値（{name::value} の value）
    """

    field_name: str
    instance: int = 1
    location_name: Optional[str] = None
    location_value: Optional[str] = None
    section_name: Optional[str] = None
    section_value: Optional[str] = None

    @property
    def has_location(self) -> bool:
        return bool(self.location_name)

    @property
    def has_section(self) -> bool:
        return bool(self.section_name)

    def describe(self) -> str:
        """識別子を正規化したテキスト表現に戻す（ログ・エラーメッセージ用）。"""
        parts: list[str] = []
        if self.location_name:
            parts.append("{{" + _join_name_value(self.location_name, self.location_value) + "}}")
        if self.section_name:
            parts.append("{" + _join_name_value(self.section_name, self.section_value) + "}")
        field_text = self.field_name
        if self.instance != 1:
            field_text += f"[{self.instance}]"
        parts.append(field_text)
        return " ".join(parts)


@dataclass(frozen=True)
class Structured:
    """構造として解釈できた識別子。"""

    identifier: FieldIdentifier


@dataclass(frozen=True)
class Unparsed:
    """構造として解釈できなかった識別子。

    raw 全体（エスケープ解除・前後空白除去済み）をフィールド名として扱う。
    """

    raw: str

    def to_identifier(self) -> FieldIdentifier:
        return FieldIdentifier(field_name=_unescape(_escape(self.raw)).strip())


ParseResult = Union[Structured, Unparsed]


# ---------------------------------------------------------------------------
# パブリック API
# ---------------------------------------------------------------------------

def parse_identifier(raw: str) -> ParseResult:
    """フィールド識別子を Structured / Unparsed のいずれかに分類して返す。

    Args:
        raw: テスト作成者が記述したフィールド識別子

    Returns:
        Structured（分解成功）または Unparsed（文字列全体をフィールド名として扱う）
    """
    text = raw.strip()
    instance = 1
    suffix = _INSTANCE_SUFFIX.search(text)
    if suffix is not None:
        instance = int(suffix.group("instance"))
        text = text[: suffix.start()]

    match = _IDENTIFIER_PATTERN.match(_escape(text))
    if match is None:
        return Unparsed(raw=raw.strip())

    field = match.group("field").strip()
    if not field or _STRUCTURAL_CHARS.intersection(field):
        return Unparsed(raw=raw.strip())

    location_name, location_value = _split_name_value(match.group("location"))
    section_name, section_value = _split_name_value(match.group("section"))

    # {{ }} や { ::x } のように名前が空のものは構造として扱わない
    if match.group("location") is not None and not location_name:
        return Unparsed(raw=raw.strip())
    if match.group("section") is not None and not section_name:
        return Unparsed(raw=raw.strip())

    return Structured(FieldIdentifier(
        field_name=_unescape(field),
        instance=instance,
        location_name=location_name,
        location_value=location_value,
        section_name=section_name,
        section_value=section_value,
    ))


def parse(raw: str) -> FieldIdentifier:
    """フィールド識別子を FieldIdentifier に変換する。失敗しない。

    Args:
        raw: テスト作成者が記述したフィールド識別子

    Returns:
        FieldIdentifier（Unparsed の場合は文字列全体がフィールド名）
    """
    result = parse_identifier(raw)
    if isinstance(result, Structured):
        return result.identifier
    return result.to_identifier()


# ---------------------------------------------------------------------------
# ヘルパー関数
# ---------------------------------------------------------------------------

def _split_name_value(group: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    """"name::value" を (name, value) に分割する。value が空なら None。"""
    if group is None:
        return None, None
    name, sep, value = _unescape(group).partition(_VALUE_SEPARATOR)
    name = name.strip()
    value = value.strip() if sep else ""
    return (name or None), (value or None)


def _join_name_value(name: str, value: Optional[str]) -> str:
    if value:
        return f"{name}{_VALUE_SEPARATOR}{value}"
    return name


def _escape(text: str) -> str:
    for escaped, placeholder, _ in _ESCAPES:
        text = text.replace(escaped, placeholder)
    return text


def _unescape(text: str) -> str:
    for _, placeholder, literal in _ESCAPES:
        text = text.replace(placeholder, literal)
    return text
