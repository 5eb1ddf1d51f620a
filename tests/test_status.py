from __future__ import annotations

import pytest

from spec_interpreter.dsl.status import (
    LOADED,
    PENDING,
    SKIPPED,
    EvalStatus,
    StatusKeyword,
    counts_by_status,
    fold,
    format_duration,
)


def passed(nanos: int = 10) -> EvalStatus:
    return EvalStatus.passed(nanos)


def failed(nanos: int = 10, msg: str = "boom") -> EvalStatus:
    return EvalStatus.failed(nanos, RuntimeError(msg))


def test_fold_of_nothing_is_skipped() -> None:
    assert fold([]).keyword is StatusKeyword.SKIPPED


def test_fold_of_passed_sums_durations() -> None:
    status = fold([passed(1), passed(2), passed(3)])
    assert status.keyword is StatusKeyword.PASSED
    assert status.nanos == 6


def test_any_failure_fails_and_keeps_first_error() -> None:
    first = failed(5, "first")
    status = fold([passed(1), first, passed(2), failed(7, "second"), SKIPPED])
    assert status.is_failed
    assert status.error is first.error
    assert status.nanos == 15


def test_all_loaded_is_loaded() -> None:
    assert fold([LOADED, LOADED]).keyword is StatusKeyword.LOADED


def test_loaded_is_ignored_when_mixed() -> None:
    assert fold([LOADED, passed()]).keyword is StatusKeyword.PASSED
    assert fold([passed(), LOADED]).keyword is StatusKeyword.PASSED
    assert fold([LOADED, SKIPPED]).keyword is StatusKeyword.SKIPPED


def test_last_non_loaded_status_decides() -> None:
    assert fold([passed(), SKIPPED]).keyword is StatusKeyword.SKIPPED
    assert fold([SKIPPED, passed()]).keyword is StatusKeyword.PASSED
    assert fold([passed(), PENDING]).keyword is StatusKeyword.PENDING


def test_fold_accepts_generators() -> None:
    assert fold(s for s in [passed(), passed()]).keyword is StatusKeyword.PASSED


@pytest.mark.parametrize(
    "status, code",
    [
        (passed(), 0),
        (failed(), 1),
        (SKIPPED, 0),
        (PENDING, 1),
        (LOADED, 0),
    ],
)
def test_exit_codes(status: EvalStatus, code: int) -> None:
    assert status.exit_code == code


def test_status_string_includes_duration_when_timed() -> None:
    assert str(SKIPPED) == "Skipped"
    assert str(EvalStatus.passed(1_500_000)) == "[1ms] Passed"


def test_format_duration() -> None:
    assert format_duration(2_000) == "2us"
    assert format_duration(250_000_000) == "250ms"
    assert format_duration(61_500_000_000) == "1m 1s 500ms"
    assert format_duration(3_600_000_000_000) == "1h 0s"


def test_counts_by_status() -> None:
    counts = counts_by_status([passed(), passed(), SKIPPED, failed()])
    assert counts == {StatusKeyword.PASSED: 2, StatusKeyword.SKIPPED: 1, StatusKeyword.FAILED: 1}


def test_failed_error_serialises_as_text() -> None:
    assert failed(msg="kaput").model_dump()["error"] == "kaput"
