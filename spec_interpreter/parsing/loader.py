from __future__ import annotations

import csv
from pathlib import Path
from typing import List, Protocol

from pydantic import ValidationError

from ..dsl.models import FeatureSpec
from ..errors import ParsingError
from ..models import DataRecord


class FeatureParser(Protocol):
    """Turns the text of a feature or meta file into a :class:`FeatureSpec`."""

    def parse(self, text: str) -> FeatureSpec: ...


class JsonFeatureParser:
    """Reads features that an upstream Gherkin parser has already dumped as JSON ASTs."""

    def parse(self, text: str) -> FeatureSpec:
        try:
            return FeatureSpec.model_validate_json(text)
        except ValidationError as e:
            raise ParsingError(f"Invalid feature AST: {e}") from e


def parse_feature_file(path: Path, parser: FeatureParser) -> FeatureSpec:
    spec = parser.parse(path.read_text(encoding="utf-8"))
    return spec.model_copy(update={"feature_file": path})


def read_csv_rows(path: Path) -> List[List[str]]:
    with path.open(newline="", encoding="utf-8") as f:
        return [row for row in csv.reader(f) if row]


def read_data_records(path: Path) -> List[DataRecord]:
    """Reads a CSV data file (first row holds the column names) into data records numbered from 1."""
    rows = read_csv_rows(path)
    if not rows:
        return []
    header, records = rows[0], rows[1:]
    return [
        DataRecord(data_file=str(path), record_no=idx, data=list(zip(header, row)))
        for idx, row in enumerate(records, start=1)
    ]
