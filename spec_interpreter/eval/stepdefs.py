from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Tuple

from ..dsl.models import Scenario, StepKeyword
from ..errors import AmbiguousCaseError, InvalidStepDefError


logger = logging.getLogger(__name__)

PLACEHOLDER = re.compile(r"<.+?>")

Params = List[Tuple[str, str]]


def placeholders(name: str) -> List[str]:
    """Returns the ``<placeholder>`` tokens of a StepDef name in declared order."""
    tokens = PLACEHOLDER.findall(name)
    duplicates = sorted({t for t in tokens if tokens.count(t) > 1})
    if duplicates:
        raise AmbiguousCaseError(
            f"Ambiguous StepDef '{name}': duplicate parameter names {', '.join(duplicates)}"
        )
    return tokens


def substitute(template: str, params: Params) -> str:
    """Replaces each placeholder of ``template`` with its bound value."""
    fragments = PLACEHOLDER.split(template)
    values = dict(params)
    tokens = PLACEHOLDER.findall(template)
    out = [fragments[0]]
    for token, fragment in zip(tokens, fragments[1:]):
        out.append(values[token])
        out.append(fragment)
    return "".join(out)


def match_template(template: str, expression: str) -> Optional[Params]:
    """Matches an expression against a parameterized StepDef name.

    Literal fragments are split off the expression left to right and the spans
    in between become the parameter values. The match only stands if putting
    the values back into the template reproduces the expression exactly.
    """
    tokens = placeholders(template)
    if not tokens:
        return None
    fragments = PLACEHOLDER.split(template)
    if not all(f in expression for f in fragments):
        return None
    head, tail = fragments[0], fragments[-1]
    if len(head) + len(tail) > len(expression):
        return None
    if not expression.startswith(head) or not expression.endswith(tail):
        return None
    rest = expression[len(head):len(expression) - len(tail)]
    values: List[str] = []
    for fragment in fragments[1:-1]:
        if not fragment:
            values.append("")
            continue
        idx = rest.find(fragment)
        if idx < 0:
            return None
        values.append(rest[:idx])
        rest = rest[idx + len(fragment):]
    values.append(rest)
    params = list(zip(tokens, values))
    if substitute(template, params) != expression:
        return None
    return params


class StepDefRegistry:
    """StepDefs keyed by their literal name."""

    def __init__(self) -> None:
        self._stepdefs: Dict[str, Scenario] = {}

    def __len__(self) -> int:
        return len(self._stepdefs)

    def __contains__(self, name: str) -> bool:
        return name in self._stepdefs

    @property
    def names(self) -> List[str]:
        return list(self._stepdefs)

    def add(self, stepdef: Scenario) -> None:
        first = stepdef.name.split(" ", 1)[0]
        if first in StepKeyword.literals():
            raise InvalidStepDefError(stepdef, f"name must not start with a step keyword ({first})")
        placeholders(stepdef.name)
        existing = self._stepdefs.get(stepdef.name)
        if existing is not None:
            logger.debug("Replacing StepDef: %s", stepdef.name)
            tags = [t for t in existing.tags if t not in stepdef.tags] + list(stepdef.tags)
            stepdef = stepdef.model_copy(update={"tags": tags})
        self._stepdefs[stepdef.name] = stepdef

    def get(self, expression: str) -> Optional[Tuple[Scenario, Params]]:
        """Resolves an expression to a StepDef and its parameter bindings.

        Exact names win. Otherwise every parameterized StepDef is tried and
        more than one match raises :class:`AmbiguousCaseError`.
        """
        stepdef = self._stepdefs.get(expression)
        if stepdef is not None:
            return stepdef, []
        matches: List[Tuple[Scenario, Params]] = []
        for name, candidate in self._stepdefs.items():
            params = match_template(name, expression)
            if params is not None:
                matches.append((candidate, params))
        if not matches:
            return None
        if len(matches) > 1:
            names = ", ".join(s.name for s, _ in matches)
            raise AmbiguousCaseError(f"{len(matches)} StepDefs matched '{expression}': {names}")
        return matches[0]

    def clear(self) -> None:
        self._stepdefs = {}
