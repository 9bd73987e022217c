"""
HiveLang compiler.

The grammar is line-oriented: a block opens with ``bot "Name"`` or
``agent "Name"`` and closes with ``end``; inside it ``description "..."``
documents the block and ``on <event>`` ... ``end`` collects instructions.
There is no expression parser and no control flow. Lines the compiler does
not model (``if``, ``remember``, ...) are kept as ``raw`` instructions so
newer scripts still compile, and an ``end`` inside an event handler always
closes the handler.

Example::

    bot "Researcher"
      description "Looks things up"
      on input
        say "Working on it"
        call web.search latest AI news
      end
    end
"""
from __future__ import annotations

import logging
import re
from typing import List, Optional

from bothive.core.models import Block, CompilationResult, Instruction
from bothive.errors import HiveSyntaxError

logger = logging.getLogger(__name__)

_HEADER_RE = re.compile(r'^(bot|agent)\s+"?([^"]+)"?')
_BLOCK_KEYWORDS = ("bot ", "agent ")


def _is_skippable(line: str) -> bool:
    return not line or line.startswith("//")


def parse_instruction(line: str) -> Instruction:
    """Classify one handler line; arguments are left as raw text."""
    if line.startswith("say "):
        return Instruction(type="say", command="say", args=line[4:], raw=line)
    if line.startswith("call "):
        return Instruction(type="call", command="call", args=line[5:], raw=line)
    return Instruction(type="raw", command="raw", raw=line)


class HiveCompiler:
    """Turns HiveLang source text into a list of Blocks."""

    def __init__(self) -> None:
        self._lines: List[str] = []
        self._current = 0

    def compile(self, source: str) -> CompilationResult:
        self._lines = source.split("\n") if source else []
        self._current = 0
        blocks: List[Block] = []

        try:
            while self._current < len(self._lines):
                line = self._lines[self._current].strip()
                if not _is_skippable(line) and line.startswith(_BLOCK_KEYWORDS):
                    blocks.append(self._parse_block())
                else:
                    self._current += 1
        except HiveSyntaxError as exc:
            logger.debug("Compilation failed at line %d: %s", self._current + 1, exc.message)
            return CompilationResult(
                success=False,
                blocks=[],
                error=f"Line {self._current + 1}: {exc.message}",
            )

        return CompilationResult(success=True, blocks=blocks)

    def _parse_block(self) -> Block:
        header = self._lines[self._current].strip()
        match = _HEADER_RE.match(header)
        if not match or not match.group(2).strip():
            raise HiveSyntaxError("Invalid block definition", self._current + 1)

        block = Block(type=match.group(1), name=match.group(2).strip())
        self._current += 1
        event: Optional[str] = None

        while self._current < len(self._lines):
            line = self._lines[self._current].strip()
            self._current += 1

            if _is_skippable(line):
                continue

            if line == "end":
                if event is None:
                    return block
                event = None
                continue

            if event is not None:
                block.events[event].append(parse_instruction(line))
            elif line.startswith("description "):
                block.description = line[len("description "):].replace('"', "").strip()
            elif line.startswith("on "):
                event = line[len("on "):].strip()
                block.events[event] = []

        logger.debug("Block %r reached end of source without 'end'", block.name)
        return block


def compile_source(source: str) -> CompilationResult:
    """Compile HiveLang source with a fresh compiler."""
    return HiveCompiler().compile(source)
