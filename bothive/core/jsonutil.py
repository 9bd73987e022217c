"""Extract the first balanced JSON value embedded in free text.

LLM replies wrap JSON in prose or markdown fences. Rather than running
``json.loads`` on a greedy regex match, scan for the first balanced
``[...]``/``{...}`` span (string literals and escapes respected) that parses.
"""
from __future__ import annotations

import json
from typing import Any, Iterator, List, Literal, Tuple

JsonKind = Literal["array", "object", "any"]

_OPENERS = {"array": "[", "object": "{", "any": "[{"}
_CLOSER = {"[": "]", "{": "}"}


def _balanced_spans(text: str, openers: str) -> Iterator[Tuple[int, int]]:
    """Yield ``(start, end)`` of balanced spans in one left-to-right pass.

    Spans are held back until their outermost bracket closes, a mismatched
    closer resets the scan, or the text ends. An enclosing span is therefore
    offered before the spans nested inside it, and earlier spans before later
    ones. Quotes only open string literals inside a span.
    """
    stack: List[Tuple[int, str]] = []
    closed: List[Tuple[int, int]] = []
    in_string = False
    escaped = False
    for index, char in enumerate(text):
        if not stack:
            if char in openers:
                stack.append((index, _CLOSER[char]))
            continue
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in _CLOSER:
            stack.append((index, _CLOSER[char]))
        elif char in "]}":
            if char != stack[-1][1]:
                stack.clear()
            else:
                start, _ = stack.pop()
                if text[start] in openers:
                    closed.append((start, index + 1))
                if stack:
                    continue
            yield from sorted(closed)
            closed.clear()
    yield from sorted(closed)


def extract_first_json(text: Any, kind: JsonKind = "any", default: Any = None) -> Any:
    """Return the first parseable JSON array/object found in ``text``.

    Candidates that are unbalanced or fail to parse are skipped. ``default``
    is returned when nothing matches, including when ``text`` is not a string.
    """
    if not isinstance(text, str):
        return default

    for start, end in _balanced_spans(text, _OPENERS[kind]):
        try:
            return json.loads(text[start:end])
        except (json.JSONDecodeError, RecursionError):
            continue
    return default
