from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from ..dsl.models import Background, Scenario, Step
from ..dsl.status import LOADED, SKIPPED, EvalStatus, fold
from ..errors import (
    FATAL_ERRORS,
    RecursiveStepDefError,
    StepEvaluationError,
    UnboundAttributeError,
    UndefinedStepError,
)
from .context import EnvContext
from .stepdefs import Params


logger = logging.getLogger(__name__)

Groups = Dict[str, str]
Matcher = Callable[[str], Optional[Groups]]
Handler = Callable[[Step, EnvContext, Groups], None]


def pattern(regex: str) -> Matcher:
    """Builds a matcher that fully matches a step expression and returns its named groups."""
    compiled = re.compile(regex)

    def _match(expression: str) -> Optional[Groups]:
        m = compiled.fullmatch(expression)
        return m.groupdict() if m else None

    return _match


@dataclass(frozen=True)
class StepRule:
    name: str
    matcher: Matcher
    handler: Handler
    # run the whole handler through EnvContext.perform (suppressed in dry run)
    perform: bool = False


def compare(expected: str, actual: str, operator: str, negate: bool) -> bool:
    if operator == "be":
        result = actual == expected
    elif operator == "contain":
        result = expected in actual
    elif operator == "start with":
        result = actual.startswith(expected)
    elif operator == "end with":
        result = actual.endswith(expected)
    elif operator == "match regex":
        result = re.fullmatch(expected, actual) is not None
    else:
        raise ValueError(f"Unsupported comparison operator: {operator}")
    return not result if negate else result


def _value(step: Step, value: str) -> str:
    return step.doc_string if step.doc_string is not None else value


def _bind_setting(step: Step, env: EnvContext, m: Groups) -> None:
    env.settings.add(m["name"], _value(step, m["value"]))


def _bind_attribute(step: Step, env: EnvContext, m: Groups) -> None:
    env.feature_scope.set(m["attribute"], _value(step, m["value"]))


def _wait(step: Step, env: EnvContext, m: Groups) -> None:
    env.perform(lambda: time.sleep(int(m["duration"])))


def _capture(step: Step, env: EnvContext, m: Groups) -> None:
    source = m["source"]
    attribute = m.get("attribute") or source
    value = env.get_bound_reference_value(source)
    env.feature_scope.set(attribute, value)
    env.add_attachment(attribute, "txt", value)


def _compare(step: Step, env: EnvContext, m: Groups) -> None:
    attribute = m["attribute"]
    expected = _value(step, m["expected"])
    operator = m["operator"]
    negate = bool(m["negation"])
    actual = env.get_bound_reference_value(attribute)

    def check() -> None:
        if not compare(expected, actual, operator, negate):
            raise AssertionError(
                f"Expected {attribute} to {'not ' if negate else ''}{operator} '{expected}' but got '{actual}'"
            )

    env.perform(check)


def _absent(step: Step, env: EnvContext, m: Groups) -> None:
    attribute = m["attribute"]

    def check() -> None:
        try:
            env.get_bound_reference_value(attribute)
        except UnboundAttributeError:
            return
        raise AssertionError(f"Expected {attribute} to be absent")

    env.perform(check)


DEFAULT_RULES: List[StepRule] = [
    StepRule("bind setting", pattern(r'my (?P<name>.+?) (?:property|setting) (?:is|will be) "(?P<value>.*?)"'), _bind_setting),
    StepRule("bind attribute", pattern(r'(?P<attribute>.+?) (?:is|will be) "(?P<value>.*?)"'), _bind_attribute),
    StepRule("wait", pattern(r"I wait (?P<duration>[0-9]+?) seconds?"), _wait),
    StepRule("capture as", pattern(r"I capture (?P<source>.+?) as (?P<attribute>.+?)"), _capture),
    StepRule("capture", pattern(r"I capture (?P<source>.+?)"), _capture),
    StepRule(
        "compare",
        pattern(
            r'(?P<attribute>.+?) should(?P<negation> not)? '
            r'(?P<operator>be|contain|start with|end with|match regex) "(?P<expected>.*?)"'
        ),
        _compare,
    ),
    StepRule("absent", pattern(r"(?P<attribute>.+?) should be absent"), _absent),
]


class EvalEngine:
    """Evaluates scenarios and steps against an :class:`EnvContext`.

    A step is first resolved against the StepDefs registered in the context.
    Anything else goes to the ordered rule table where the first matching rule
    wins. Rules added through :meth:`step` take priority over the defaults.
    """

    def __init__(self, rules: Optional[List[StepRule]] = None):
        self.rules: List[StepRule] = list(DEFAULT_RULES if rules is None else rules)

    def add_rule(self, rule: StepRule) -> None:
        self.rules.insert(0, rule)

    def step(self, regex: str, perform: bool = True) -> Callable[[Handler], Handler]:
        """Decorator registering a handler for steps fully matching ``regex``."""

        def _register(handler: Handler) -> Handler:
            self.add_rule(StepRule(handler.__name__, pattern(regex), handler, perform=perform))
            return handler

        return _register

    # -- scenarios --------------------------------------------------------

    def evaluate_scenario(self, scenario: Scenario, env: EnvContext) -> Scenario:
        if scenario.is_step_def:
            logger.info("Loading StepDef: %s", scenario.name)
            env.add_step_def(scenario)
            return scenario.model_copy(
                update={"background": None, "steps": [s.with_status(LOADED) for s in scenario.steps]}
            )
        logger.info("Evaluating Scenario: %s", scenario.name)
        if scenario.is_outline:
            examples = [
                exs.model_copy(update={"scenarios": [self.evaluate_scenario(s, env) for s in exs.scenarios]})
                for exs in scenario.examples
            ]
            result = scenario.model_copy(update={"examples": examples})
        else:
            background = self.evaluate_background(scenario.background, env) if scenario.background else None
            if background is not None and background.status.is_failed:
                steps = [s.with_status(SKIPPED) for s in scenario.steps]
            else:
                steps = self.evaluate_steps(scenario.steps, env)
            result = scenario.model_copy(update={"background": background, "steps": steps})
        _log_status("Scenario", result.name, result.status)
        return result

    def evaluate_background(self, background: Background, env: EnvContext) -> Background:
        logger.info("Evaluating Background: %s", background.name)
        result = background.model_copy(update={"steps": self.evaluate_steps(background.steps, env)})
        _log_status("Background", result.name, result.status)
        return result

    def evaluate_steps(self, steps: List[Step], env: EnvContext) -> List[Step]:
        """Evaluates steps in order; once one fails the rest are skipped."""
        evaluated: List[Step] = []
        for step in steps:
            if fold(s.status for s in evaluated).is_failed:
                evaluated.append(step.with_status(SKIPPED))
            else:
                evaluated.append(self.evaluate_step(step, env))
        return evaluated

    # -- steps ------------------------------------------------------------

    def evaluate_step(self, step: Step, env: EnvContext) -> Step:
        start = time.perf_counter_ns()
        mark = env.attachment_count
        resolved = step
        logger.info("Evaluating Step: %s", step)
        try:
            resolved = env.resolve(step)
            match = env.get_step_def(resolved.expression)
            if match is not None:
                stepdef, params = match
                result = self.evaluate_step_def(stepdef, resolved, params, env)
            else:
                self._evaluate_with_table(resolved, env)
                result = resolved.with_status(EvalStatus.passed(time.perf_counter_ns() - start))
        except FATAL_ERRORS:
            raise
        except RecursionError:
            raise
        except Exception as e:
            failure = StepEvaluationError(resolved, e)
            result = resolved.with_status(EvalStatus.failed(time.perf_counter_ns() - start, failure))
        if result.status.is_failed and result.stepdef is None:
            env.fail(result.status)
        attachments = env.attachments_since(mark)
        if attachments:
            result = result.model_copy(update={"attachments": list(result.attachments) + attachments})
        _log_status("Step", str(result), result.status)
        return result

    def evaluate_step_def(self, stepdef: Scenario, step: Step, params: Params, env: EnvContext) -> Step:
        logger.debug("Evaluating StepDef: %s %s", stepdef.name, params)
        env.enter_step_def(stepdef, step, params)
        try:
            background = self.evaluate_background(stepdef.background, env) if stepdef.background else None
            if background is not None and background.status.is_failed:
                steps = [s.with_status(SKIPPED) for s in stepdef.steps]
            else:
                steps = self.evaluate_steps(stepdef.steps, env)
        except RecursionError:
            raise RecursiveStepDefError(stepdef, step) from None
        finally:
            env.exit_step_def()
        evaluated = stepdef.model_copy(update={"background": background, "steps": steps})
        return step.model_copy(update={"status": evaluated.status, "stepdef": evaluated})

    def evaluate(self, step: Step, env: EnvContext) -> None:
        """Dispatches a literal step to the first matching rule."""
        for rule in self.rules:
            groups = rule.matcher(step.expression)
            if groups is None:
                continue
            logger.debug("Step '%s' matched rule: %s", step.expression, rule.name)
            if rule.perform:
                env.perform(lambda: rule.handler(step, env, groups))
            else:
                rule.handler(step, env, groups)
            return
        raise UndefinedStepError(step)

    def _evaluate_with_table(self, step: Step, env: EnvContext) -> None:
        if step.data_table is None:
            self.evaluate(step, env)
            return
        objects = env.feature_scope.objects
        objects.bind("table", step.data_table)
        try:
            self.evaluate(step, env)
        finally:
            objects.clear("table")


def _log_status(node: str, name: str, status: EvalStatus) -> None:
    if status.is_failed:
        logger.error("%s %s: %s", status, node, name)
    else:
        logger.info("%s %s: %s", status, node, name)
