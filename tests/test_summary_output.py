from datetime import date, datetime

import orjson

from simem.extractor.output import default_output_path, write_records_jsonl
from simem.extractor.summary import summarize_records, variable_display_name
from simem.utils.schemas import DateRange
from tests.conftest import make_records


def test_summary_of_price_records():
    records = [
        {"FechaHora": "2024-01-02T05:00:00", "CodigoVariable": "PB_Nal", "Valor": "200.5"},
        {"FechaHora": "2024-01-01T00:00:00", "CodigoVariable": "PB_Int", "Valor": 100},
        {"FechaHora": "2024-01-01T01:00:00", "CodigoVariable": "PB_Nal", "Valor": "n/a"},
    ]

    summary = summarize_records(records)

    assert summary.total_records == 3
    assert summary.first_timestamp == datetime(2024, 1, 1, 0, 0)
    assert summary.last_timestamp == datetime(2024, 1, 2, 5, 0)
    assert summary.variables == ["PB_Nal", "PB_Int"]
    assert summary.min_value == 100.0
    assert summary.max_value == 200.5
    assert summary.avg_value == 150.25


def test_summary_of_nothing():
    summary = summarize_records([])

    assert summary.total_records == 0
    assert summary.first_timestamp is None
    assert summary.variables == []
    assert summary.avg_value == 0.0


def test_summary_skips_missing_fields():
    summary = summarize_records([{"other": 1}, {"Valor": None, "FechaHora": 12}])

    assert summary.total_records == 2
    assert summary.first_timestamp is None
    assert summary.max_value == 0.0


def test_variable_display_name():
    assert variable_display_name("PB_Nal") == "Precio Bolsa Nacional"
    assert variable_display_name("XYZ") == "XYZ"


def test_default_output_path_names_range(tmp_path):
    date_range = DateRange(start=date(2024, 1, 1), end=date(2024, 1, 31))

    path = default_output_path(date_range, str(tmp_path))

    assert path == tmp_path / "records_2024-01-01_2024-01-31.jsonl"


def test_write_records_jsonl(tmp_path):
    records = make_records("2024-01-01", 3)
    path = tmp_path / "nested" / "out.jsonl"

    written = write_records_jsonl(records, path)

    lines = path.read_bytes().splitlines()
    assert written == 3
    assert [orjson.loads(line) for line in lines] == records
