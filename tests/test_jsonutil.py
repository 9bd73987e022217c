"""Tests for JSON extraction from model replies."""
from __future__ import annotations

import time

from bothive.core.jsonutil import extract_first_json


def test_array_inside_prose_and_fences() -> None:
    reply = 'Sure! Here is the plan:\n```json\n[{"description": "a"}, {"description": "b"}]\n```\nGood luck.'

    assert extract_first_json(reply, kind="array") == [{"description": "a"}, {"description": "b"}]


def test_brackets_inside_strings_are_ignored() -> None:
    reply = 'Result: {"text": "use [brackets] and } braces", "n": 1} trailing'

    assert extract_first_json(reply, kind="object") == {"text": "use [brackets] and } braces", "n": 1}


def test_skips_unparseable_candidates() -> None:
    reply = "[not json] then [1, 2, 3]"

    assert extract_first_json(reply, kind="array") == [1, 2, 3]


def test_kind_filters_the_opener() -> None:
    reply = '[1] {"a": 2}'

    assert extract_first_json(reply, kind="object") == {"a": 2}
    assert extract_first_json(reply, kind="any") == [1]


def test_default_when_nothing_matches() -> None:
    assert extract_first_json("no json here", default=[]) == []
    assert extract_first_json(None, default="x") == "x"
    assert extract_first_json('{"open": ', kind="object") is None


def test_nested_candidate_after_broken_outer() -> None:
    assert extract_first_json('[oops {"a": [1, 2]} ]', kind="array") == [1, 2]
    assert extract_first_json('[ {"a": 1} }', kind="object") == {"a": 1}
    assert extract_first_json('[[1, 2]', kind="array") == [1, 2]


def test_long_unbalanced_input_is_linear() -> None:
    started = time.perf_counter()

    assert extract_first_json("[" * 20000, kind="array") is None
    assert extract_first_json("{" * 20000 + "[1]", kind="any") == [1]
    assert extract_first_json("[x]" * 20000, kind="array", default=[]) == []

    assert time.perf_counter() - started < 1.0
