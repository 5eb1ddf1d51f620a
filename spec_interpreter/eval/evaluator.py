from __future__ import annotations

import logging
from typing import Callable, List

from ..dsl.models import Background, Scenario, Step
from ..dsl.status import SKIPPED, fold


logger = logging.getLogger(__name__)


def _skip_steps(steps: List[Step]) -> List[Step]:
    return [s.with_status(SKIPPED) for s in steps]


def _skip_background(background: Background | None) -> Background | None:
    if background is None:
        return None
    return background.model_copy(update={"steps": _skip_steps(background.steps)})


def skip_scenario(scenario: Scenario) -> Scenario:
    """Marks a scenario (its background, steps and generated examples) as skipped."""
    examples = [
        exs.model_copy(update={"scenarios": [skip_scenario(s) for s in exs.scenarios]})
        for exs in scenario.examples
    ]
    return scenario.model_copy(
        update={
            "background": _skip_background(scenario.background),
            "steps": _skip_steps(scenario.steps),
            "examples": examples,
        }
    )


def evaluate_scenarios(
    scenarios: List[Scenario],
    evaluate: Callable[[Scenario], Scenario],
    failfast: bool,
    exit_on_fail: bool,
) -> List[Scenario]:
    """Evaluates scenarios strictly in order under the fail-fast policy.

    Once the statuses evaluated so far fold to failed:

    * with ``exit_on_fail`` evaluation stops and the remaining scenarios are
      left out of the result;
    * with ``failfast`` alone the remaining scenarios are returned skipped;
    * otherwise evaluation carries on as normal.
    """
    results: List[Scenario] = []
    for idx, scenario in enumerate(scenarios):
        if fold(s.status for s in results).is_failed:
            if exit_on_fail:
                logger.info("Exiting feature on failure; %d scenario(s) not evaluated", len(scenarios) - idx)
                break
            if failfast:
                logger.info("Skipping Scenario (failfast): %s", scenario.name)
                results.append(skip_scenario(scenario))
                continue
        results.append(evaluate(scenario))
    return results
