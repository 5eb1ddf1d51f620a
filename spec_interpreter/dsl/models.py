from __future__ import annotations

import re
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..errors import InvalidTagError, TagSyntaxError
from .status import PENDING, EvalStatus, fold


IMPORT_TAG = re.compile(r'^Import\("(.*?)"\)$')
EXAMPLES_TAG = re.compile(r'^Examples\("(.*?)"\)$')
DATA_TAG = re.compile(r'^Data\(file="(.*?)", record=(\d+)\)$')

# (recognised prefix, strict syntax, usage hint)
_TAG_SYNTAX = [
    (re.compile(r"^[Ii]mport\("), IMPORT_TAG, '@Import("filepath")'),
    (re.compile(r"^[Ee]xamples\("), EXAMPLES_TAG, '@Examples("csv-filepath")'),
    (re.compile(r"^Data\("), DATA_TAG, '@Data(file="filepath", record=n)'),
]

STEP_DEF_TAG = "StepDef"


class StepKeyword(str, Enum):
    GIVEN = "Given"
    WHEN = "When"
    THEN = "Then"
    AND = "And"
    BUT = "But"

    @classmethod
    def literals(cls) -> List[str]:
        return [k.value for k in cls]


class _Node(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


class Tag(_Node):
    name: str

    @model_validator(mode="before")
    @classmethod
    def _from_string(cls, data):
        return {"name": data} if isinstance(data, str) else data

    @field_validator("name")
    @classmethod
    def _check_syntax(cls, value: str) -> str:
        name = value.strip()
        if name.startswith("@"):
            name = name[1:]
        if not name or ("(" not in name and re.search(r"\s", name)):
            raise InvalidTagError(value)
        for prefix, syntax, usage in _TAG_SYNTAX:
            if prefix.match(name) and not syntax.match(name):
                raise TagSyntaxError(f"Invalid tag syntax: @{name} - correct syntax is {usage}")
        return name

    @classmethod
    def of(cls, value: str) -> "Tag":
        return cls(name=value)

    @property
    def import_path(self) -> Optional[str]:
        m = IMPORT_TAG.match(self.name)
        return m.group(1) if m else None

    @property
    def examples_path(self) -> Optional[str]:
        m = EXAMPLES_TAG.match(self.name)
        return m.group(1) if m else None

    def __str__(self) -> str:
        return f"@{self.name}"


class Position(_Node):
    line: int = 0
    column: int = 0


class Step(_Node):
    keyword: StepKeyword
    expression: str
    pos: Position = Field(default_factory=Position)
    status: EvalStatus = PENDING
    attachments: List[Tuple[str, Path]] = Field(default_factory=list)
    stepdef: Optional["Scenario"] = None
    data_table: Optional[List[List[str]]] = None
    doc_string: Optional[str] = None

    def with_status(self, status: EvalStatus, attachments: Optional[List[Tuple[str, Path]]] = None) -> "Step":
        update = {"status": status}
        if attachments is not None:
            update["attachments"] = attachments
        return self.model_copy(update=update)

    def __str__(self) -> str:
        return f"{self.keyword.value} {self.expression}"


class Background(_Node):
    name: str = ""
    description: List[str] = Field(default_factory=list)
    steps: List[Step] = Field(default_factory=list)

    @property
    def status(self) -> EvalStatus:
        return fold(s.status for s in self.steps)


class Examples(_Node):
    name: str = ""
    description: List[str] = Field(default_factory=list)
    # (source line number, cells); the first row is the header
    table: List[Tuple[int, List[str]]] = Field(default_factory=list)
    scenarios: List["Scenario"] = Field(default_factory=list)


class Scenario(_Node):
    tags: List[Tag] = Field(default_factory=list)
    name: str
    description: List[str] = Field(default_factory=list)
    background: Optional[Background] = None
    steps: List[Step] = Field(default_factory=list)
    is_outline: bool = False
    examples: List[Examples] = Field(default_factory=list)
    meta_file: Optional[Path] = None

    @property
    def is_step_def(self) -> bool:
        return any(t.name == STEP_DEF_TAG for t in self.tags)

    @property
    def all_steps(self) -> List[Step]:
        bg = self.background.steps if self.background else []
        return list(bg) + list(self.steps)

    @property
    def status(self) -> EvalStatus:
        if self.is_outline:
            return fold(s.status for exs in self.examples for s in exs.scenarios)
        return fold(s.status for s in self.all_steps)

    def __str__(self) -> str:
        return self.name


class Feature(_Node):
    name: str
    description: List[str] = Field(default_factory=list)
    tags: List[Tag] = Field(default_factory=list)


class FeatureSpec(_Node):
    feature: Feature
    background: Optional[Background] = None
    scenarios: List[Scenario] = Field(default_factory=list)
    feature_file: Optional[Path] = None
    meta_specs: List["FeatureSpec"] = Field(default_factory=list)

    @property
    def status(self) -> EvalStatus:
        return fold(s.status for s in self.scenarios)

    def evaluable_scenarios(self) -> Iterator[Scenario]:
        """Yield scenarios with every outline replaced by its generated scenarios."""
        for scenario in self.scenarios:
            if scenario.is_outline:
                for exs in scenario.examples:
                    yield from exs.scenarios
            else:
                yield scenario

    def __str__(self) -> str:
        return self.feature.name


Step.model_rebuild()
Examples.model_rebuild()
FeatureSpec.model_rebuild()
