"""JSON shapes of the structured payloads carried in marker tokens."""

from __future__ import annotations

import json
import logging
from typing import Any, List

from .model import (
    ChartPayload,
    MathBlock,
    MathLine,
    TableCell,
    TablePayload,
    TableSelection,
)

logger = logging.getLogger(__name__)

CHART_TYPES = ("scatter", "bar", "pie", "hbar")
DATA_SOURCES = ("manual", "table")
TABLE_STYLES = ("normal", "three-line")


def _as_str(value: Any, default: str = "") -> str:
    return value if isinstance(value, str) else default


def _as_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return default


def _as_span(value: Any) -> int | None:
    span = _as_int(value, 0)
    return span if span >= 1 else None


def _load(data: Any) -> Any:
    if isinstance(data, str):
        try:
            return json.loads(data)
        except ValueError:
            return None
    return data


# ---------------------------------------------------------------------------
# Tables


def default_table_payload() -> TablePayload:
    return TablePayload()


def table_to_dict(payload: TablePayload) -> dict:
    cells: List[List[dict]] = []
    for row in payload.cells:
        out_row = []
        for cell in row:
            item: dict[str, Any] = {"content": cell.content}
            if cell.rowspan:
                item["rowspan"] = cell.rowspan
            if cell.colspan:
                item["colspan"] = cell.colspan
            if cell.hidden:
                item["hidden"] = True
            out_row.append(item)
        cells.append(out_row)
    return {
        "caption": payload.caption,
        "style": payload.style,
        "rows": payload.rows,
        "cols": payload.cols,
        "cells": cells,
    }


def _coerce_cell(raw: Any) -> TableCell:
    if isinstance(raw, dict):
        return TableCell(
            content=_as_str(raw.get("content")),
            rowspan=_as_span(raw.get("rowspan")),
            colspan=_as_span(raw.get("colspan")),
            hidden=raw.get("hidden") is True,
        )
    if raw is None:
        return TableCell()
    return TableCell(content=str(raw))


def coerce_table_payload(data: Any) -> TablePayload:
    """Build a well-formed table from decoded JSON, falling back to an empty 2x2."""
    data = _load(data)
    if not isinstance(data, dict):
        return default_table_payload()

    raw_cells = data.get("cells")
    legacy_rows = data.get("rows")
    if not isinstance(raw_cells, list) and isinstance(legacy_rows, list):
        # Older payloads stored plain strings as {"rows": [[...], ...]}.
        raw_cells = legacy_rows
    if not isinstance(raw_cells, list):
        raw_cells = []
    cells = [[_coerce_cell(c) for c in row] if isinstance(row, list) else [] for row in raw_cells]

    widest = max((len(row) for row in cells), default=0)
    rows = _as_int(data.get("rows"), len(cells) or 2)
    cols = _as_int(data.get("cols"), widest or 2)
    style = _as_str(data.get("style"), "normal")
    payload = TablePayload(
        caption=_as_str(data.get("caption")),
        style=style if style in TABLE_STYLES else "normal",
        rows=rows,
        cols=cols,
        cells=cells,
    )
    return infer_missing_spans(payload)


def _is_covered(cells: List[List[TableCell]], row: int, col: int) -> bool:
    for r in range(row + 1):
        for c in range(col + 1):
            if r == row and c == col:
                continue
            cell = cells[r][c]
            if cell.hidden:
                continue
            if r + (cell.rowspan or 1) > row and c + (cell.colspan or 1) > col:
                return True
    return False


def infer_missing_spans(payload: TablePayload) -> TablePayload:
    """Give every uncovered hidden cell a master cell.

    The nearest visible cell to the left grows its colspan; only when there is
    none does the nearest visible cell above grow its rowspan.
    """
    cells = payload.cells
    for r in range(payload.rows):
        for c in range(payload.cols):
            if not cells[r][c].hidden or _is_covered(cells, r, c):
                continue
            left = next((lc for lc in range(c - 1, -1, -1) if not cells[r][lc].hidden), None)
            if left is not None:
                master = cells[r][left]
                master.colspan = max(master.colspan or 1, c - left + 1)
                continue
            above = next((ur for ur in range(r - 1, -1, -1) if not cells[ur][c].hidden), None)
            if above is not None:
                master = cells[above][c]
                master.rowspan = max(master.rowspan or 1, r - above + 1)
            else:
                logger.debug("Hidden cell (%d, %d) has no master cell", r, c)
    return payload


# ---------------------------------------------------------------------------
# Charts


def chart_to_dict(payload: ChartPayload) -> dict:
    data: dict[str, Any] = {
        "chartType": payload.chart_type,
        "title": payload.title,
        "xLabel": payload.x_label,
        "yLabel": payload.y_label,
        "legend": payload.legend,
        "dataSource": payload.data_source,
        "manualText": payload.manual_text,
    }
    if payload.table_selection is not None:
        sel = payload.table_selection
        data["tableSelection"] = {
            "blockId": sel.block_id,
            "r1": sel.r1,
            "c1": sel.c1,
            "r2": sel.r2,
            "c2": sel.c2,
        }
    if payload.image_url is not None:
        data["imageUrl"] = payload.image_url
    return data


def coerce_chart_payload(data: Any) -> ChartPayload:
    data = _load(data)
    if not isinstance(data, dict):
        return ChartPayload()
    chart_type = _as_str(data.get("chartType"), "scatter")
    data_source = _as_str(data.get("dataSource"), "manual")
    selection = None
    raw_selection = data.get("tableSelection")
    if isinstance(raw_selection, dict):
        selection = TableSelection(
            block_id=_as_str(raw_selection.get("blockId")),
            r1=_as_int(raw_selection.get("r1"), 0),
            c1=_as_int(raw_selection.get("c1"), 0),
            r2=_as_int(raw_selection.get("r2"), 0),
            c2=_as_int(raw_selection.get("c2"), 0),
        )
    image_url = data.get("imageUrl")
    return ChartPayload(
        chart_type=chart_type if chart_type in CHART_TYPES else "scatter",
        title=_as_str(data.get("title")),
        x_label=_as_str(data.get("xLabel")),
        y_label=_as_str(data.get("yLabel")),
        legend=data.get("legend") is not False,
        data_source=data_source if data_source in DATA_SOURCES else "manual",
        manual_text=_as_str(data.get("manualText")),
        table_selection=selection,
        image_url=image_url if isinstance(image_url, str) else None,
    )


# ---------------------------------------------------------------------------
# Math


def math_to_dict(block: MathBlock) -> dict:
    data: dict[str, Any] = {
        "format": block.math_format,
        "latex": block.math_latex,
        "typst": block.math_typst or block.content,
    }
    if block.math_lines is not None:
        data["lines"] = [{"latex": line.latex, "typst": line.typst} for line in block.math_lines]
    if block.math_brace is not None:
        data["brace"] = block.math_brace
    return data


def coerce_math_lines(raw: Any) -> List[MathLine] | None:
    if not isinstance(raw, list):
        return None
    return [
        MathLine(latex=_as_str(item.get("latex")), typst=_as_str(item.get("typst")))
        for item in raw
        if isinstance(item, dict)
    ]
