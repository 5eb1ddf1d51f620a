from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

from .dsl.models import FeatureSpec
from .dsl.status import EvalStatus, fold


class DataRecord(BaseModel):
    data_file: str
    record_no: int
    data: List[Tuple[str, str]] = Field(default_factory=list)

    def __str__(self) -> str:
        return f"{self.data_file}[{self.record_no}]"


class FeatureUnit(BaseModel):
    feature_file: Path
    meta_files: List[Path] = Field(default_factory=list)
    data_record: Optional[DataRecord] = None

    @property
    def label(self) -> str:
        suffix = f" [{self.data_record}]" if self.data_record else ""
        return f"{self.feature_file}{suffix}"


class FeatureResult(BaseModel):
    spec: FeatureSpec
    meta_results: List["FeatureResult"] = Field(default_factory=list)
    started: datetime
    finished: datetime

    @property
    def status(self) -> EvalStatus:
        return self.spec.status

    @property
    def elapsed_seconds(self) -> float:
        return (self.finished - self.started).total_seconds()

    @property
    def exit_code(self) -> int:
        return self.status.exit_code

    def __str__(self) -> str:
        file = f" [file: {self.spec.feature_file}]" if self.spec.feature_file else ""
        return f"{self.status} {self.spec.feature.name}{file}"


def run_status(results: List[FeatureResult]) -> EvalStatus:
    return fold(r.status for r in results)


FeatureResult.model_rebuild()
