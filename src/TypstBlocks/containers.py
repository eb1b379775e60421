"""Blocks that hold other blocks: covers and composite rows.

Both recurse through the parser and serializer they are handed, so nested
containers work without this module knowing about every block type.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, List, Sequence

from . import markers
from .markup import find_closing
from .model import Block, CompositeRow, Cover
from .parser import Match, ParseContext, ScanState

logger = logging.getLogger(__name__)

PAGEBREAK = "#pagebreak()"
MAX_ROW_LINES = 400

SPACE_JUSTIFY = ("space-between", "space-around", "space-evenly")
_GRID_ALIGN = {"flex-start": "left", "flex-end": "right", "center": "center"}
_GRID_JUSTIFY = {value: key for key, value in _GRID_ALIGN.items()}
_VERTICAL = {"top": "top", "middle": "horizon", "bottom": "bottom"}

_SPACER_START = "#box(width: 100%)["
_GRID_START_RE = re.compile(r"^#align\(\s*(left|center|right)\s*\)\s*\[\s*#grid\(")
_ROW_OPENER_RE = re.compile(
    r"#box\(width: 100%\)\[(?:#box\(\)\[|#h\(|\])|#align\(\s*(?:left|center|right)\s*\)\s*\[\s*#grid\("
)
_GUTTER_RE = re.compile(r"column-gutter\s*:\s*([^,)]+)")
_SLOT_BOX = "#box()["

SerializeChildren = Callable[[List[Block], object], str]


# ---------------------------------------------------------------------------
# Cover


def serialize_cover(block: Cover, state, serialize_children: SerializeChildren) -> str:
    payload = {"fixedOnePage": bool(block.cover_fixed_one_page)}
    body = serialize_children(block.children, state.for_cover())
    parts = [markers.encode(markers.COVER_BEGIN, payload)]
    if body.strip():
        parts.append(body)
    parts.append(markers.COVER_END_MARKER)
    if block.cover_fixed_one_page:
        parts.append(PAGEBREAK)
    return "\n\n".join(parts)


def recognize_cover(lines: Sequence[str], index: int, ctx: ParseContext) -> Match | None:
    line = lines[index].strip()
    if not markers.has_token(markers.COVER_BEGIN, line):
        return None
    payload = markers.decode(markers.COVER_BEGIN, line)
    fixed = isinstance(payload, dict) and payload.get("fixedOnePage") is True

    depth = 1
    end = len(lines)
    for j in range(index + 1, len(lines)):
        current = lines[j].strip()
        if markers.has_token(markers.COVER_BEGIN, current):
            depth += 1
        elif current == markers.COVER_END_MARKER:
            depth -= 1
            if depth == 0:
                end = j
                break
    else:
        logger.warning("Cover starting at line %d is never closed", index + 1)

    children = ctx.parse_inner("\n".join(lines[index + 1 : end]))
    next_index = min(end + 1, len(lines))
    k = next_index
    while k < len(lines) and not lines[k].strip():
        k += 1
    if k < len(lines) and lines[k].strip() == PAGEBREAK:
        fixed = True
        next_index = k + 1
    return Match(Cover(children=children, cover_fixed_one_page=fixed), next_index, ScanState.SKIPPING_UNTIL_MARKER)


# ---------------------------------------------------------------------------
# Composite row


def serialize_composite_row(block: CompositeRow, state, serialize_children: SerializeChildren) -> str:
    # Children share the caller's state so figure and table numbers keep counting.
    slots = [serialize_children([child], state) for child in block.children]
    # The marker keeps each slot too, for children whose brackets do not balance.
    marker = markers.encode(
        markers.COMPOSITE_ROW,
        {
            "justify": block.composite_justify,
            "gap": block.composite_gap,
            "verticalAlign": block.composite_vertical_align,
            "slots": slots,
        },
    )
    justify = block.composite_justify

    if justify in SPACE_JUSTIFY or not slots:
        inner = " #h(1fr) ".join(f"{_SLOT_BOX}{slot}]" for slot in slots)
        if slots and justify == "space-around":
            inner = f"#h(0.5fr) {inner} #h(0.5fr)"
        elif slots and justify == "space-evenly":
            inner = f"#h(1fr) {inner} #h(1fr)"
        return f"{_SPACER_START}{inner}]{marker}"

    columns = ", ".join("auto" for _ in slots)
    vertical = _VERTICAL.get(block.composite_vertical_align, "top")
    gap = block.composite_gap or "8pt"
    cells = ", ".join(f"[{slot}]" for slot in slots)
    grid = f"#grid(columns: ({columns}), column-gutter: {gap}, align: {vertical}, {cells})"
    return f"#align({_GRID_ALIGN.get(justify, 'center')})[{grid}]{marker}"


def _bracket_slots(text: str) -> List[str]:
    """Top-level ``[...]`` arguments of a call's argument list."""
    slots: List[str] = []
    depth = 0
    in_string = False
    i = 0
    while i < len(text):
        ch = text[i]
        if in_string:
            if ch == "\\":
                i += 2
                continue
            if ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif ch == "[" and depth == 0:
            end = find_closing(text, i)
            if end == -1:
                break
            slots.append(text[i + 1 : end])
            i = end + 1
            continue
        i += 1
    return slots


def _box_slots(text: str) -> List[str]:
    slots: List[str] = []
    i = 0
    while True:
        start = text.find(_SLOT_BOX, i)
        if start == -1:
            return slots
        opening = start + len(_SLOT_BOX) - 1
        end = find_closing(text, opening)
        if end == -1:
            return slots
        slots.append(text[opening + 1 : end])
        i = end + 1


def _row_end(lines: Sequence[str], index: int) -> int | None:
    """Line closing the row opened on ``lines[index]``: the one whose marker balances the openers."""
    open_rows = 0
    for j in range(index, min(len(lines), index + MAX_ROW_LINES + 1)):
        line = lines[j]
        open_rows += len(_ROW_OPENER_RE.findall(line))
        open_rows -= markers.count_tokens(markers.COMPOSITE_ROW, line)
        if open_rows <= 0:
            return j if markers.trailing_token(markers.COMPOSITE_ROW, line) else None
    return None


def _stored_slots(payload: dict) -> List[str] | None:
    slots = payload.get("slots")
    if isinstance(slots, list) and all(isinstance(slot, str) for slot in slots):
        return slots
    return None


def recognize_composite_row(lines: Sequence[str], index: int, ctx: ParseContext) -> Match | None:
    line = lines[index].strip()
    grid_match = _GRID_START_RE.match(line)
    if line.startswith(_SPACER_START):
        opening = len(_SPACER_START) - 1
    elif grid_match:
        opening = line.index("[")
    else:
        return None

    last = _row_end(lines, index)
    if last is None:
        return None
    text = "\n".join(lines[index : last + 1]).strip()
    token = markers.trailing_token(markers.COMPOSITE_ROW, text)
    payload = markers.decode_payload(token.group(1))
    if not isinstance(payload, dict):
        logger.warning("Composite row marker on line %d could not be decoded", last + 1)
        payload = {}
    visible = text[: token.start()].rstrip()
    body = visible[opening + 1 : -1].strip() if visible.endswith("]") else ""

    if grid_match:
        call = body.find("#grid(")
        close = find_closing(body, call + 5, "(", ")") if call != -1 else -1
        args = body[call + 6 : close] if close != -1 else ""
        slots = _bracket_slots(args)
        justify = _GRID_JUSTIFY[grid_match.group(1)]
        gutter = _GUTTER_RE.search(args)
        gap = gutter.group(1).strip() if gutter else "8pt"
    else:
        slots = _box_slots(body)
        justify = "space-between"
        gap = "8pt"
    stored = _stored_slots(payload)
    if stored is not None:
        slots = stored

    children: List[Block] = []
    for slot in slots:
        children.extend(ctx.parse_inner(slot))

    block = CompositeRow(
        children=children,
        composite_justify=_payload_str(payload, "justify", justify),
        composite_gap=_payload_str(payload, "gap", gap),
        composite_vertical_align=_payload_str(payload, "verticalAlign", "top"),
    )
    state = ScanState.SKIPPING_UNTIL_MARKER if last > index else ScanState.IDLE
    return Match(block, last + 1, state)


def _payload_str(payload: dict, key: str, default: str) -> str:
    value = payload.get(key)
    return value if isinstance(value, str) else default
