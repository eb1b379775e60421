from TypstBlocks.payloads import (
    chart_to_dict,
    coerce_chart_payload,
    coerce_table_payload,
    infer_missing_spans,
    table_to_dict,
)
from TypstBlocks.model import ChartPayload, TableCell, TablePayload, TableSelection


def test_hidden_cell_extends_left_neighbour():
    payload = TablePayload(
        cells=[[TableCell(content="a"), TableCell(hidden=True)], [TableCell(), TableCell()]],
    )
    infer_missing_spans(payload)
    assert payload.cells[0][0].colspan == 2
    assert payload.cells[0][0].rowspan is None


def test_hidden_cell_in_first_column_extends_cell_above():
    payload = TablePayload(
        cells=[[TableCell(content="a"), TableCell()], [TableCell(hidden=True), TableCell()]],
    )
    infer_missing_spans(payload)
    assert payload.cells[0][0].rowspan == 2
    assert payload.cells[0][0].colspan is None


def test_covered_cells_are_left_alone():
    payload = TablePayload(
        cells=[[TableCell(content="a", colspan=2), TableCell(hidden=True)], [TableCell(), TableCell()]],
    )
    infer_missing_spans(payload)
    assert payload.cells[0][0].colspan == 2


def test_legacy_rows_payload():
    payload = coerce_table_payload({"rows": [["a", "b", "c"], ["d"]]})
    assert payload.rows == 2
    assert payload.cols == 3
    assert payload.cells[0][2].content == "c"
    assert payload.cells[1][1].content == ""


def test_table_payload_from_json_string_and_garbage():
    payload = coerce_table_payload('{"caption": "T", "style": "three-line", "rows": 1, "cols": 1}')
    assert payload.caption == "T"
    assert payload.style == "three-line"
    assert coerce_table_payload("not json") == TablePayload()
    assert coerce_table_payload({"style": "fancy"}).style == "normal"


def test_table_dict_roundtrip():
    payload = TablePayload(
        caption="x",
        rows=1,
        cols=2,
        cells=[[TableCell(content="a", colspan=2), TableCell(hidden=True)]],
    )
    assert coerce_table_payload(table_to_dict(payload)) == payload


def test_chart_defaults_and_selection():
    assert coerce_chart_payload(None) == ChartPayload()
    chart = coerce_chart_payload({"chartType": "donut", "legend": False})
    assert chart.chart_type == "scatter"
    assert chart.legend is False
    payload = ChartPayload(
        chart_type="pie",
        data_source="table",
        table_selection=TableSelection(block_id="t1", r1=0, c1=0, r2=2, c2=1),
    )
    assert coerce_chart_payload(chart_to_dict(payload)) == payload
