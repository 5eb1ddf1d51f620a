"""Structural normalisation of parsed features.

Turns a parsed :class:`FeatureSpec` into one that can be evaluated directly:
meta scenarios become StepDefs, backgrounds are pushed down into each
scenario, outlines are expanded per examples row (including rows loaded from
``@Examples("file.csv")`` tags) and an optional data record is bound through a
leading synthetic scenario.

Normalisation never evaluates anything; the only side effects are the file
reads needed to resolve imports and CSV examples.
"""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..errors import (
    AmbiguousCaseError,
    MissingImportFileError,
    RecursiveImportError,
    UnsupportedDataFileError,
    UnsupportedImportError,
)
from ..models import DataRecord
from ..parsing.loader import read_csv_rows
from .models import STEP_DEF_TAG, Background, Examples, Feature, FeatureSpec, Scenario, Step, StepKeyword, Tag


logger = logging.getLogger(__name__)

PLACEHOLDER = re.compile(r"<(.+?)>")

CsvReader = Callable[[Path], List[List[str]]]


def is_meta_file(spec_file: Optional[Path], meta_extension: str = ".meta") -> bool:
    return spec_file is not None and spec_file.name.endswith(meta_extension)


def normalise(
    spec: FeatureSpec,
    spec_file: Optional[Path] = None,
    data_record: Optional[DataRecord] = None,
    meta_extension: str = ".meta",
    data_extension: str = ".csv",
    read_csv: CsvReader = read_csv_rows,
) -> FeatureSpec:
    meta = is_meta_file(spec_file, meta_extension)
    scenarios = [_as_step_def(s, spec_file) for s in spec.scenarios] if meta else list(spec.scenarios)
    check_duplicate_step_defs(scenarios, spec_file)
    background = None if meta else spec.background

    normalised: List[Scenario] = []
    for scenario in scenarios:
        if scenario.is_step_def:
            normalised.append(scenario.model_copy(update={"background": None}))
        elif scenario.is_outline:
            outline = scenario.model_copy(
                update={"examples": list(scenario.examples) + csv_examples(scenario, data_extension, read_csv)}
            )
            normalised.append(expand_scenario_outline(outline, background))
        else:
            normalised.append(scenario.model_copy(update={"background": background}))

    feature = spec.feature
    if data_record is not None:
        feature = feature.model_copy(update={"name": _data_feature_name(feature, data_record)})
        normalised.insert(0, data_binder(data_record))

    return FeatureSpec(
        feature=feature,
        background=None,
        scenarios=normalised,
        feature_file=spec_file if spec_file is not None else spec.feature_file,
        meta_specs=list(spec.meta_specs),
    )


def _as_step_def(scenario: Scenario, meta_file: Optional[Path]) -> Scenario:
    tags = list(scenario.tags)
    if not scenario.is_step_def:
        tags.insert(0, Tag(name=STEP_DEF_TAG))
    return scenario.model_copy(update={"tags": tags, "background": None, "meta_file": meta_file})


def check_duplicate_step_defs(scenarios: List[Scenario], spec_file: Optional[Path] = None) -> None:
    """Rejects StepDefs that would match the same expressions."""
    groups: Dict[str, List[Scenario]] = {}
    for scenario in scenarios:
        if scenario.is_step_def:
            groups.setdefault(PLACEHOLDER.sub("<?>", scenario.name), []).append(scenario)
    for key, stepdefs in groups.items():
        if len(stepdefs) > 1:
            where = f" in {spec_file}" if spec_file else ""
            raise AmbiguousCaseError(
                f"{len(stepdefs)} StepDefs detected matching the same expression{where}: {key}"
            )


def meta_imports(spec: FeatureSpec, spec_file: Optional[Path], meta_extension: str = ".meta") -> List[Path]:
    """Returns the meta files named by ``@Import("path")`` feature tags."""
    paths: List[Path] = []
    for tag in spec.feature.tags:
        filepath = tag.import_path
        if filepath is None:
            continue
        path = Path(filepath)
        if not path.name.endswith(meta_extension):
            raise UnsupportedImportError(tag, spec_file)
        if not path.exists():
            raise MissingImportFileError(tag, spec_file)
        if spec_file is not None and path.resolve() == spec_file.resolve():
            raise RecursiveImportError(tag, spec_file)
        paths.append(path)
    return paths


def csv_examples(outline: Scenario, data_extension: str = ".csv", read_csv: CsvReader = read_csv_rows) -> List[Examples]:
    """Loads an Examples block for every ``@Examples("file.csv")`` tag on an outline."""
    examples: List[Examples] = []
    for tag in outline.tags:
        filepath = tag.examples_path
        if filepath is None:
            continue
        path = Path(filepath)
        if not path.name.endswith(data_extension):
            raise UnsupportedDataFileError(tag)
        if not path.exists():
            raise MissingImportFileError(tag)
        rows = read_csv(path)
        table = [(idx + 1, row) for idx, row in enumerate(rows)]
        examples.append(Examples(name=f"Data file: {filepath}", table=table))
    return examples


def expand_scenario_outline(outline: Scenario, background: Optional[Background]) -> Scenario:
    """Generates one scenario per examples row, in block then row order.

    The outline itself keeps its unsubstituted steps and no background; each
    Examples block carries the scenarios generated from it.
    """
    examples: List[Examples] = []
    for exs_no, exs in enumerate(outline.examples, start=1):
        scenarios: List[Scenario] = []
        if exs.table:
            header = exs.table[0][1]
            for row_no, (_, cells) in enumerate(exs.table[1:], start=1):
                values = dict(zip(header, cells))
                scenarios.append(
                    Scenario(
                        tags=list(outline.tags),
                        name=f"{_substitute(outline.name, values)} -- Example {exs_no}.{row_no} {exs.name}",
                        description=[_substitute(line, values) for line in outline.description],
                        background=background,
                        steps=[_substitute_step(step, values) for step in outline.steps],
                        meta_file=outline.meta_file,
                    )
                )
        logger.debug("Expanded %d scenario(s) from examples %d of outline: %s", len(scenarios), exs_no, outline.name)
        examples.append(exs.model_copy(update={"scenarios": scenarios}))
    return outline.model_copy(update={"background": None, "examples": examples})


def data_binder(record: DataRecord) -> Scenario:
    """Synthesises the scenario that binds each column of a data record as an attribute."""
    steps = [
        Step(keyword=StepKeyword.GIVEN if idx == 0 else StepKeyword.AND, expression=f'{name} is "{value}"')
        for idx, (name, value) in enumerate(record.data)
    ]
    tag = Tag(name=f'Data(file="{record.data_file}", record={record.record_no})')
    return Scenario(tags=[tag], name="Bind data attributes", steps=steps)


def _data_feature_name(feature: Feature, record: DataRecord) -> str:
    if not record.data:
        return f"{feature.name}, [{record.record_no}]"
    name, value = record.data[0]
    more = ".." if len(record.data) > 1 else ""
    return f"{feature.name}, [{record.record_no}] {name}={value}{more}"


def _substitute(text: str, values: Dict[str, str]) -> str:
    return PLACEHOLDER.sub(lambda m: values.get(m.group(1), m.group(0)), text)


def _substitute_step(step: Step, values: Dict[str, str]) -> Step:
    update = {"expression": _substitute(step.expression, values)}
    if step.doc_string is not None:
        update["doc_string"] = _substitute(step.doc_string, values)
    if step.data_table is not None:
        update["data_table"] = [[_substitute(cell, values) for cell in row] for row in step.data_table]
    return step.model_copy(update=update)
