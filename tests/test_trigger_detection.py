from __future__ import annotations

import pytest

from notescope.app.autocomplete import (
    Position,
    TriggerKind,
    detect_trigger,
    query_is_valid,
)
from notescope.app.config import Settings


def _detect(text: str):
    return detect_trigger(text, Position(0, len(text)))


def test_block_trigger_wins_over_content_prefix():
    event = _detect("see @@@ foo")
    assert event.kind is TriggerKind.BLOCK
    assert event.query == "foo"
    assert event.span_text == "@@@ foo"
    assert event.start == Position(0, 4)


def test_heading_trigger():
    event = _detect("@@# Weekly review")
    assert event.kind is TriggerKind.HEADING
    assert event.query == "Weekly review"
    assert event.start == Position(0, 0)


def test_content_trigger_allows_internal_whitespace():
    event = _detect("intro @@hello big world")
    assert event.kind is TriggerKind.CONTENT
    assert event.query == "hello big world"
    assert event.span_text == "@@hello big world"
    assert event.start == Position(0, 6)


@pytest.mark.parametrize("text", ["@@@foo", "@@#foo", "see @@@foo"])
def test_block_and_heading_require_whitespace(text):
    assert _detect(text) is None


def test_heading_literal_never_reads_as_content():
    assert _detect("@@#") is None


@pytest.mark.parametrize("text", ["plain text", "mail me@example.com", "@@", "@@ foo @ bar", ""])
def test_no_trigger(text):
    assert _detect(text) is None


def test_only_text_before_cursor_matters():
    line = "@@hello world and more"
    event = detect_trigger(line[:13], Position(3, 13))
    assert event.query == "hello world"
    assert event.start == Position(3, 0)
    assert event.cursor == Position(3, 13)


def test_query_threshold_for_cjk():
    settings = Settings(min_chinese_length=3, min_english_length=3)
    assert query_is_valid("搜索", settings) is False
    assert query_is_valid("搜索引", settings) is True


def test_query_threshold_for_latin():
    settings = Settings(min_chinese_length=3, min_english_length=3)
    assert query_is_valid("ab", settings) is False
    assert query_is_valid("a b 1 2", settings) is False
    assert query_is_valid("abc", settings) is True


def test_either_threshold_suffices():
    settings = Settings(min_chinese_length=2, min_english_length=4)
    assert query_is_valid("中文 ab", settings) is True
    assert query_is_valid("中 abcd", settings) is True
    assert query_is_valid("中 abc", settings) is False
