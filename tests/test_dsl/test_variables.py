"""
VariableStore / VariableScope のユニットテスト

#{key} の単一パス置換、未定義キーの扱い、env.* の直接参照、
呼び出しスコープによる loc.auto.* の隔離を検証する。
"""

from __future__ import annotations

import re

import pytest
from hypothesis import assume, given
from hypothesis import strategies as st

from patterniq.dsl.variables import (
    AUTO_FIELD_NAME,
    VariableStore,
    flatten,
    substitute,
)


# ---------------------------------------------------------------------------
# get / set
# ---------------------------------------------------------------------------

class TestGetSet:

    def test_get_existing_key(self, store: VariableStore):
        store.set("config.baseUrl", "https://example.com")
        assert store.get("config.baseUrl") == "https://example.com"

    def test_missing_key_returns_key_name(self, store: VariableStore):
        """未定義キーはエラーにならず、キー名そのものを返すこと。"""
        assert store.get("loc.auto.forId") == "loc.auto.forId"

    def test_missing_key_returns_empty_when_requested(self, store: VariableStore):
        assert store.get("loc.auto.forId", return_empty_if_missing=True) == ""

    def test_set_none_is_empty_string(self, store: VariableStore):
        store.set("var.static.blank", None)
        assert store.get("var.static.blank") == ""

    def test_set_converts_to_string(self, store: VariableStore):
        store.set("config.patternIq.retryTimeout", 30000)
        assert store.get("config.patternIq.retryTimeout") == "30000"

    def test_env_prefix_reads_environment(self, store: VariableStore):
        assert store.get("env.PIQ_USER") == "env-user"
        assert store.has("env.PIQ_USER")

    def test_env_prefix_ignores_store_values(self, store: VariableStore):
        store.set("env.PIQ_USER", "shadow")
        assert store.get("env.PIQ_USER") == "env-user"

    def test_missing_env_returns_key(self, store: VariableStore):
        assert store.get("env.PIQ_MISSING") == "env.PIQ_MISSING"

    def test_delete_prefix(self, store: VariableStore):
        store.set("pattern.a.fields.button", "x")
        store.set("pattern.a.scroll", "y")
        store.set("pattern.ab.scroll", "z")
        assert store.delete_prefix("pattern.a.") == 2
        assert store.keys("pattern.") == ["pattern.ab.scroll"]

    def test_set_many_flattens(self, store: VariableStore):
        store.set_many({"patternIq": {"enable": True, "pageMapping": {"/login": "loginPage"}}}, "config")
        assert store.get("config.patternIq.enable") == "True"
        assert store.get("config.patternIq.pageMapping./login") == "loginPage"


# ---------------------------------------------------------------------------
# substitute
# ---------------------------------------------------------------------------

class TestSubstitute:

    def test_single_placeholder(self, store: VariableStore):
        store.set("var.static.user", "alice")
        assert store.substitute("//input[@value='#{var.static.user}']") == "//input[@value='alice']"

    def test_multiple_placeholders(self, store: VariableStore):
        store.set("a", "1")
        store.set("b", "2")
        assert store.substitute("#{a}-#{b}-#{a}") == "1-2-1"

    def test_missing_placeholder_becomes_key(self, store: VariableStore):
        assert store.substitute("x=#{nope.key}") == "x=nope.key"

    def test_empty_placeholder_untouched(self, store: VariableStore):
        assert store.substitute("a#{}b") == "a#{}b"

    def test_env_placeholder(self, store: VariableStore):
        assert store.substitute("#{env.PIQ_USER}@example.com") == "env-user@example.com"

    def test_single_pass_only(self, store: VariableStore):
        """置換後の値に含まれる #{...} は再展開されないこと。"""
        store.set("outer", "#{inner}")
        store.set("inner", "deep")
        assert store.substitute("#{outer}") == "#{inner}"

    def test_self_reference_does_not_loop(self, store: VariableStore):
        store.set("loop", "#{loop}")
        assert store.substitute("#{loop}") == "#{loop}"

    @given(
        template=st.text(
            alphabet=st.sampled_from(list("ab #{}.xyz")), max_size=40,
        ),
    )
    def test_idempotent_without_nested_placeholders(self, template: str):
        """置換結果にプレースホルダが残らない場合、再度置換しても変化しないこと。"""
        values = {"a": "1", "x.y": "value", "b": ""}

        def lookup(key: str) -> str:
            return values.get(key, key)

        once = substitute(template, lookup)
        assume(re.search(r"#\{[^{}]+\}", once) is None)
        assert substitute(once, lookup) == once


# ---------------------------------------------------------------------------
# VariableScope
# ---------------------------------------------------------------------------

class TestVariableScope:

    def test_scope_reads_through_to_store(self, store: VariableStore):
        store.set("pattern.p.fields.button", "button")
        with store.scoped() as scope:
            assert scope.get("pattern.p.fields.button") == "button"

    def test_scope_writes_do_not_touch_store(self, store: VariableStore):
        with store.scoped() as scope:
            scope.set(AUTO_FIELD_NAME, "Username")
            assert scope.substitute("#{loc.auto.fieldName}") == "Username"
            assert store.get(AUTO_FIELD_NAME) == AUTO_FIELD_NAME
        assert store.get(AUTO_FIELD_NAME) == AUTO_FIELD_NAME

    def test_scope_cleared_on_exit(self, store: VariableStore):
        with store.scoped() as scope:
            scope.set(AUTO_FIELD_NAME, "Username")
        assert scope.local_keys == []
        assert scope.get(AUTO_FIELD_NAME) == AUTO_FIELD_NAME

    def test_scope_cleared_on_exception(self, store: VariableStore):
        with pytest.raises(RuntimeError):
            with store.scoped() as scope:
                scope.set(AUTO_FIELD_NAME, "Username")
                raise RuntimeError("boom")
        assert scope.local_keys == []

    def test_scopes_are_isolated(self, store: VariableStore):
        first = store.scoped()
        second = store.scoped()
        first.set(AUTO_FIELD_NAME, "A")
        second.set(AUTO_FIELD_NAME, "B")
        assert first.substitute("#{loc.auto.fieldName}") == "A"
        assert second.substitute("#{loc.auto.fieldName}") == "B"


# ---------------------------------------------------------------------------
# flatten
# ---------------------------------------------------------------------------

def test_flatten_nested_and_lists():
    flat = flatten({"fields": {"input": ["a", "b"]}, "scroll": "main"}, "pattern.p")
    assert flat == {"pattern.p.fields.input": "a;b", "pattern.p.scroll": "main"}
