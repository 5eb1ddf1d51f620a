from __future__ import annotations

from pathlib import Path

import pytest

from spec_interpreter.dsl.models import StepKeyword
from spec_interpreter.errors import ParsingError
from spec_interpreter.parsing.discovery import discover_units
from spec_interpreter.parsing.loader import JsonFeatureParser, parse_feature_file, read_csv_rows, read_data_records
from spec_interpreter.models import DataRecord
from tests.support.builders import scenario_json, write_spec


def test_parse_feature_file(tmp_path: Path) -> None:
    path = write_spec(
        tmp_path / "f.feature",
        "F",
        scenario_json("s", 'Given x is "1"', tags=["@smoke"]),
        tags=['@Import("common.meta")'],
    )
    spec = parse_feature_file(path, JsonFeatureParser())
    assert spec.feature_file == path
    assert spec.feature.tags[0].import_path == "common.meta"
    sc = spec.scenarios[0]
    assert sc.tags[0].name == "smoke"
    assert sc.steps[0].keyword is StepKeyword.GIVEN
    assert sc.steps[0].status.keyword.value == "Pending"


def test_invalid_ast_is_a_parsing_error() -> None:
    with pytest.raises(ParsingError):
        JsonFeatureParser().parse('{"scenarios": []}')


def test_read_csv_rows_skips_blank_lines(tmp_path: Path) -> None:
    path = tmp_path / "d.csv"
    path.write_text("a,b\n\n1,2\n", encoding="utf-8")
    assert read_csv_rows(path) == [["a", "b"], ["1", "2"]]


def test_read_data_records(tmp_path: Path) -> None:
    path = tmp_path / "AboutMe.csv"
    path.write_text('my age,my name\n18,"Gwen, Jr"\n21,Bob\n', encoding="utf-8")
    records = read_data_records(path)
    assert [r.record_no for r in records] == [1, 2]
    assert records[0].data == [("my age", "18"), ("my name", "Gwen, Jr")]
    assert records[1].data_file == str(path)


def test_discover_units_pairs_features_with_ancestor_meta(tmp_path: Path) -> None:
    root_meta = write_spec(tmp_path / "root.meta", "Root")
    sub_meta = write_spec(tmp_path / "sub" / "sub.meta", "Sub")
    top = write_spec(tmp_path / "top.feature", "Top")
    nested = write_spec(tmp_path / "sub" / "nested.feature", "Nested")
    write_spec(tmp_path / "node_modules" / "x" / "ignored.feature", "Ignored")

    units = discover_units([tmp_path], ignore_globs=["**/node_modules/**"])
    by_file = {u.feature_file: u.meta_files for u in units}
    assert set(by_file) == {top, nested}
    assert [p.resolve() for p in by_file[top]] == [root_meta.resolve()]
    assert [p.resolve() for p in by_file[nested]] == [root_meta.resolve(), sub_meta.resolve()]


def test_discover_units_with_explicit_meta_and_data(tmp_path: Path) -> None:
    feature = write_spec(tmp_path / "f.feature", "F")
    write_spec(tmp_path / "ignored.meta", "Ignored")
    explicit = tmp_path / "explicit.meta"
    records = [DataRecord(data_file="d.csv", record_no=n, data=[("a", str(n))]) for n in (1, 2)]
    units = discover_units([feature], ignore_globs=[], meta_files=[explicit], data_records=records)
    assert [(u.feature_file, u.meta_files, u.data_record.record_no) for u in units] == [
        (feature, [explicit], 1),
        (feature, [explicit], 2),
    ]
    assert units[1].label.endswith("[d.csv[2]]")


def test_discover_units_ignores_non_feature_files(tmp_path: Path) -> None:
    meta = write_spec(tmp_path / "a.meta", "A")
    assert discover_units([meta], ignore_globs=[]) == []
