from __future__ import annotations

from enum import Enum
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, field_serializer


class StatusKeyword(str, Enum):
    PASSED = "Passed"
    FAILED = "Failed"
    SKIPPED = "Skipped"
    PENDING = "Pending"
    LOADED = "Loaded"


_EXIT_CODES = {
    StatusKeyword.PASSED: 0,
    StatusKeyword.FAILED: 1,
    StatusKeyword.SKIPPED: 0,
    StatusKeyword.PENDING: 1,
    StatusKeyword.LOADED: 0,
}


class EvalStatus(BaseModel):
    """Evaluation status of a step, scenario or feature.

    Only ``PASSED`` and ``FAILED`` carry a duration (in nanoseconds) and only
    ``FAILED`` carries an error.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    keyword: StatusKeyword
    nanos: int = 0
    error: Optional[BaseException] = None

    @classmethod
    def passed(cls, nanos: int) -> "EvalStatus":
        return cls(keyword=StatusKeyword.PASSED, nanos=nanos)

    @classmethod
    def failed(cls, nanos: int, error: BaseException) -> "EvalStatus":
        return cls(keyword=StatusKeyword.FAILED, nanos=nanos, error=error)

    @field_serializer("error")
    def _serialize_error(self, error: Optional[BaseException]) -> Optional[str]:
        return str(error) if error is not None else None

    @property
    def exit_code(self) -> int:
        return _EXIT_CODES[self.keyword]

    @property
    def is_failed(self) -> bool:
        return self.keyword is StatusKeyword.FAILED

    def __str__(self) -> str:
        if self.nanos > 0:
            return f"[{format_duration(self.nanos)}] {self.keyword.value}"
        return self.keyword.value


SKIPPED = EvalStatus(keyword=StatusKeyword.SKIPPED)
PENDING = EvalStatus(keyword=StatusKeyword.PENDING)
LOADED = EvalStatus(keyword=StatusKeyword.LOADED)


def fold(statuses: Iterable[EvalStatus]) -> EvalStatus:
    """Reduce an ordered list of child statuses into one parent status.

    The first failure wins but the duration is summed over all children.
    Loaded children only count when every child is loaded. Otherwise the last
    remaining child decides, falling back to pending for anything that is not
    passed or skipped.
    """
    statuses = list(statuses)
    if not statuses:
        return SKIPPED
    nanos = sum(s.nanos for s in statuses)
    failed = next((s for s in statuses if s.keyword is StatusKeyword.FAILED), None)
    if failed is not None:
        return EvalStatus.failed(nanos, failed.error)
    if all(s.keyword is StatusKeyword.LOADED for s in statuses):
        return LOADED
    remaining = [s for s in statuses if s.keyword is not StatusKeyword.LOADED]
    if not remaining:
        return PENDING
    last = remaining[-1]
    if last.keyword is StatusKeyword.PASSED:
        return EvalStatus.passed(nanos)
    if last.keyword is StatusKeyword.SKIPPED:
        return SKIPPED
    return PENDING


def counts_by_status(statuses: Iterable[EvalStatus]) -> Dict[StatusKeyword, int]:
    counts: Dict[StatusKeyword, int] = {}
    for status in statuses:
        counts[status.keyword] = counts.get(status.keyword, 0) + 1
    return counts


def format_duration(nanos: int) -> str:
    millis = nanos // 1_000_000
    if millis < 1000:
        return f"{millis}ms" if millis else f"{nanos // 1000}us"
    secs, ms = divmod(millis, 1000)
    mins, secs = divmod(secs, 60)
    hours, mins = divmod(mins, 60)
    parts: List[str] = []
    if hours:
        parts.append(f"{hours}h")
    if mins:
        parts.append(f"{mins}m")
    parts.append(f"{secs}s")
    if ms:
        parts.append(f"{ms}ms")
    return " ".join(parts)
