"""Tests for the HiveLang compiler."""
from __future__ import annotations

import json

from bothive.hivelang.compiler import HiveCompiler, compile_source, parse_instruction

RESEARCHER = """
// a comment before anything
bot "Researcher"
  description "Looks things up"
  on input
    say "Working on it"
    call web.search latest AI news
    remember topic
  end
end
"""


def test_compiles_bot_with_input_handler() -> None:
    result = compile_source(RESEARCHER)

    assert result.success
    assert result.error is None
    assert len(result.blocks) == 1
    block = result.blocks[0]
    assert block.type == "bot"
    assert block.name == "Researcher"
    assert block.description == "Looks things up"
    assert [i.type for i in block.events["input"]] == ["say", "call", "raw"]
    assert block.events["input"][0].args == '"Working on it"'
    assert block.events["input"][1].args == "web.search latest AI news"
    assert block.events["input"][2].raw == "remember topic"


def test_multiple_blocks_and_events() -> None:
    source = """
bot "A"
  on input
    say "a"
  end
  on PULSE
    say "tick"
  end
end
agent Scout
  on input
  end
end
"""
    result = compile_source(source)

    assert result.success
    assert [(b.type, b.name) for b in result.blocks] == [("bot", "A"), ("agent", "Scout")]
    assert set(result.blocks[0].events) == {"input", "PULSE"}
    assert result.blocks[1].events == {"input": []}


def test_top_level_noise_is_ignored() -> None:
    result = compile_source('hello world\nimport something\n\nbot "X"\nend\n')

    assert result.success
    assert [b.name for b in result.blocks] == ["X"]


def test_empty_source_compiles_to_nothing() -> None:
    result = compile_source("")

    assert result.success
    assert result.blocks == []


def test_invalid_header_reports_line_and_no_blocks() -> None:
    result = compile_source('bot "Good"\nend\n\nbot ""\nend\n')

    assert not result.success
    assert result.blocks == []
    assert result.error == "Line 4: Invalid block definition"


def test_end_inside_event_closes_the_event_only() -> None:
    source = 'bot "A"\n  on input\n    say "x"\n  end\n  description "later"\nend\n'
    block = compile_source(source).blocks[0]

    assert block.description == "later"
    assert len(block.events["input"]) == 1


def test_block_without_end_is_kept() -> None:
    result = compile_source('bot "Open"\n  on input\n    say "hi"\n')

    assert result.success
    assert result.blocks[0].events["input"][0].args == '"hi"'


def test_comments_are_skipped_inside_handlers() -> None:
    block = compile_source('bot "A"\n on input\n  // call nothing\n  say "x"\n end\nend').blocks[0]

    assert [i.type for i in block.events["input"]] == ["say"]


def test_compiler_instance_is_reusable() -> None:
    compiler = HiveCompiler()

    assert not compiler.compile('bot ""').success
    assert compiler.compile('bot "B"\nend').success


def test_parse_instruction_keeps_unknown_lines_raw() -> None:
    assert parse_instruction("say hi").type == "say"
    assert parse_instruction("call x").args == "x"
    raw = parse_instruction("if input contains 'x'")
    assert raw.type == "raw"
    assert raw.args is None


def test_to_json_serializes_blocks() -> None:
    data = json.loads(compile_source(RESEARCHER).to_json())

    assert data[0]["name"] == "Researcher"
    assert data[0]["events"]["input"][1] == {
        "type": "call",
        "command": "call",
        "raw": "call web.search latest AI news",
        "args": "web.search latest AI news",
    }
