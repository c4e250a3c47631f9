"""
フィールド識別子パーサーのユニットテスト

"{{Location}} {Section} Field[N]" 形式の分解、
構造として解釈できない入力のフォールバック、エスケープ表記を検証する。
"""

from __future__ import annotations

import pytest
from hypothesis import assume, given
from hypothesis import strategies as st

from patterniq.dsl.identifier import (
    FieldIdentifier,
    Structured,
    Unparsed,
    parse,
    parse_identifier,
)


# ---------------------------------------------------------------------------
# Hypothesis ストラテジー
# ---------------------------------------------------------------------------

def _name_strategy():
    """波括弧・角括弧・制御文字を含まず、前後に空白のない名前。"""
    return st.text(
        alphabet=st.characters(
            blacklist_categories=("Cc", "Cs"),
            blacklist_characters="{}[]\ue000\ue001\ue002",
        ),
        min_size=1,
        max_size=20,
    ).filter(lambda s: s.strip() == s and s != "")


def _scope_name_strategy():
    """ロケーション・セクション名（"::" を含まない）。"""
    return _name_strategy().filter(lambda s: "::" not in s)


def _field_name_strategy():
    """フィールド名（末尾が "/" のものも含む）。"""
    return _name_strategy()


# ---------------------------------------------------------------------------
# 基本構文
# ---------------------------------------------------------------------------

class TestParseStructure:
    """構造化された識別子の分解テスト。"""

    def test_field_only(self):
        """フィールド名のみの場合、インスタンスは 1 になること。"""
        ident = parse("Username")
        assert ident == FieldIdentifier(field_name="Username", instance=1)

    def test_field_with_instance(self):
        ident = parse("Submit[2]")
        assert ident.field_name == "Submit"
        assert ident.instance == 2

    def test_section_and_instance(self):
        ident = parse("{Login Form} Submit[2]")
        assert ident.section_name == "Login Form"
        assert ident.section_value is None
        assert ident.field_name == "Submit"
        assert ident.instance == 2

    def test_location_section_field(self):
        ident = parse("{{Main Content}} {Login Form} Username[1]")
        assert ident.location_name == "Main Content"
        assert ident.section_name == "Login Form"
        assert ident.field_name == "Username"
        assert ident.instance == 1

    def test_location_only(self):
        ident = parse("{{Header}} Logo")
        assert ident.location_name == "Header"
        assert ident.section_name is None
        assert ident.has_location
        assert not ident.has_section

    def test_name_value_pairs(self):
        """name::value の value が分離され、前後の空白が除去されること。"""
        ident = parse("{{top_menu:: Home}} {form:: login} Button")
        assert ident.location_name == "top_menu"
        assert ident.location_value == "Home"
        assert ident.section_name == "form"
        assert ident.section_value == "login"
        assert ident.field_name == "Button"

    def test_whitespace_is_trimmed(self):
        ident = parse("  { Login Form }   Password  ")
        assert ident.section_name == "Login Form"
        assert ident.field_name == "Password"

    def test_field_with_spaces(self):
        assert parse("Forgot Password").field_name == "Forgot Password"

    def test_structured_variant(self):
        result = parse_identifier("{Login Form} Submit")
        assert isinstance(result, Structured)
        assert result.identifier.section_name == "Login Form"


# ---------------------------------------------------------------------------
# フォールバック
# ---------------------------------------------------------------------------

class TestParseFallback:
    """構造として解釈できない入力は文字列全体がフィールド名になること。"""

    @pytest.mark.parametrize("raw", [
        "{Login Form Submit",
        "{{Header} Logo",
        "Submit[0]",
        "Submit[x]",
        "Submit[2",
        "{} Submit",
        "{{}} Submit",
        "{Login Form}",
    ])
    def test_malformed_is_unparsed(self, raw: str):
        result = parse_identifier(raw)
        assert isinstance(result, Unparsed)
        ident = parse(raw)
        assert ident.field_name == raw.strip()
        assert ident.instance == 1
        assert ident.location_name is None
        assert ident.section_name is None

    def test_empty_string(self):
        ident = parse("")
        assert ident.field_name == ""
        assert ident.instance == 1

    def test_parse_never_raises_on_brackets(self):
        ident = parse("]][[{{}}{")
        assert ident.instance == 1


# ---------------------------------------------------------------------------
# エスケープ
# ---------------------------------------------------------------------------

class TestEscapes:
    """/{{ /{ /[ エスケープのテスト。"""

    def test_escaped_bracket_in_field(self):
        ident = parse("Item /[A]")
        assert ident.field_name == "Item [A]"
        assert ident.instance == 1

    def test_escaped_brace_in_field(self):
        ident = parse("{Login Form} Value /{x}")
        assert ident.section_name == "Login Form"
        assert ident.field_name == "Value {x}"

    def test_escaped_double_brace(self):
        assert parse("/{{literal}}").field_name == "{{literal}}"

    def test_escape_with_instance(self):
        ident = parse("Row /[1][3]")
        assert ident.field_name == "Row [1]"
        assert ident.instance == 3

    def test_trailing_slash_before_instance(self):
        """フィールド名末尾の "/" と [N] はエスケープではなくインスタンス番号として扱うこと。"""
        ident = parse("{{L}} {S} a/[2]")
        assert ident.location_name == "L"
        assert ident.section_name == "S"
        assert ident.field_name == "a/"
        assert ident.instance == 2

    def test_trailing_slash_without_instance(self):
        ident = parse("Path a/b/")
        assert ident.field_name == "Path a/b/"
        assert ident.instance == 1

    def test_literal_trailing_bracket_with_explicit_instance(self):
        ident = parse("Row /[1][1]")
        assert ident.field_name == "Row [1]"
        assert ident.instance == 1


# ---------------------------------------------------------------------------
# describe()
# ---------------------------------------------------------------------------

class TestDescribe:

    def test_describe_canonical_form(self):
        ident = parse("{{ Header }}   {form::login}  Submit[2]")
        assert ident.describe() == "{{Header}} {form::login} Submit[2]"

    def test_describe_default_instance_omitted(self):
        assert parse("Username[1]").describe() == "Username"


# ---------------------------------------------------------------------------
# プロパティテスト
# ---------------------------------------------------------------------------

class TestParseProperties:

    @given(
        location=_scope_name_strategy(),
        section=_scope_name_strategy(),
        field=_field_name_strategy(),
        instance=st.integers(min_value=1, max_value=999),
    )
    def test_round_trip(self, location: str, section: str, field: str, instance: int):
        """{{L}} {S} F[N] を分解すると L, S, F, N が復元されること。"""
        assume("/{" not in field and "/[" not in field)
        assume("/{" not in location and "/{" not in section)
        assume("/[" not in location and "/[" not in section)
        raw = f"{{{{{location}}}}} {{{section}}} {field}[{instance}]"
        ident = parse(raw)
        assert ident.location_name == location
        assert ident.section_name == section
        assert ident.field_name == field
        assert ident.instance == instance

    @given(field=_field_name_strategy())
    def test_default_instance(self, field: str):
        """インスタンス指定のないフィールド名はインスタンス 1 になること。"""
        assume("/{" not in field and "/[" not in field)
        ident = parse(field)
        assert ident.field_name == field
        assert ident.instance == 1
