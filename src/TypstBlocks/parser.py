from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from .model import Block

logger = logging.getLogger(__name__)

MAX_NESTING = 16


class ScanState(str, Enum):
    """How a recognizer consumed its lines; reported in debug logs."""

    IDLE = "idle"
    IN_CODE_FENCE = "in_code_fence"
    SKIPPING_UNTIL_MARKER = "skipping_until_marker"
    ACCUMULATING_PARAGRAPH = "accumulating_paragraph"


@dataclass(frozen=True)
class Match:
    block: Block | None
    next_index: int
    state: ScanState = ScanState.IDLE


Recognizer = Callable[[Sequence[str], int, "ParseContext"], Optional[Match]]


@dataclass(frozen=True)
class Registry:
    """Recognizers in the order they are tried; the first match wins."""

    recognizers: Tuple[Tuple[str, Recognizer], ...]

    def names(self) -> List[str]:
        return [name for name, _ in self.recognizers]


@dataclass(frozen=True)
class ParseContext:
    registry: Registry
    depth: int = 0

    def match(self, lines: Sequence[str], index: int, exclude: str | None = None) -> Match | None:
        for name, recognizer in self.registry.recognizers:
            if name == exclude:
                continue
            result = recognizer(lines, index, self)
            if result is None:
                continue
            if result.next_index <= index:
                logger.warning("Recognizer %s did not advance at line %d", name, index + 1)
                return Match(result.block, index + 1, result.state)
            logger.debug("Line %d: %s (%s)", index + 1, name, result.state.value)
            return result
        return None

    def claims(self, lines: Sequence[str], index: int, exclude: str) -> bool:
        """True if any recognizer other than ``exclude`` would start a block here."""
        return self.match(lines, index, exclude=exclude) is not None

    def parse_inner(self, text: str) -> List[Block]:
        if self.depth >= MAX_NESTING:
            logger.warning("Container nesting deeper than %d levels ignored", MAX_NESTING)
            return []
        return parse_lines(text, self.registry, depth=self.depth + 1)


def parse_lines(text: str, registry: Registry, depth: int = 0) -> List[Block]:
    """Run the registry over ``text`` line by line."""
    context = ParseContext(registry=registry, depth=depth)
    lines = text.split("\n")
    blocks: List[Block] = []
    i = 0
    while i < len(lines):
        if not lines[i].strip():
            i += 1
            continue
        result = context.match(lines, i)
        if result is None:
            logger.warning("Unrecognized line %d skipped: %.80s", i + 1, lines[i].strip())
            i += 1
            continue
        if result.block is not None:
            blocks.append(result.block)
        i = result.next_index
    return blocks
