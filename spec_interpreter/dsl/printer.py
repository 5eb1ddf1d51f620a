from __future__ import annotations

from typing import List, Optional

from .models import Background, FeatureSpec, Scenario, Step
from .status import StatusKeyword


def _status_suffix(status_keyword: StatusKeyword, show_status: bool) -> str:
    return f"  # {status_keyword.value}" if show_status else ""


def _step_lines(step: Step, indent: str, show_status: bool) -> List[str]:
    lines = [f"{indent}{step.keyword.value} {step.expression}{_status_suffix(step.status.keyword, show_status)}"]
    if step.doc_string is not None:
        lines.append(f'{indent}  """')
        lines.extend(f"{indent}  {line}" for line in step.doc_string.splitlines())
        lines.append(f'{indent}  """')
    if step.data_table:
        for row in step.data_table:
            lines.append(f"{indent}  | " + " | ".join(row) + " |")
    return lines


def _background_lines(background: Optional[Background], indent: str, show_status: bool) -> List[str]:
    if background is None:
        return []
    lines = [f"{indent}Background: {background.name}"]
    for step in background.steps:
        lines.extend(_step_lines(step, indent + "  ", show_status))
    return lines


def _scenario_lines(scenario: Scenario, indent: str, show_status: bool) -> List[str]:
    lines: List[str] = []
    if scenario.tags:
        lines.append(indent + " ".join(str(t) for t in scenario.tags))
    prefix = "Scenario Outline" if scenario.is_outline else "Scenario"
    lines.append(f"{indent}{prefix}: {scenario.name}{_status_suffix(scenario.status.keyword, show_status)}")
    lines.extend(f"{indent}  {line}" for line in scenario.description)
    lines.extend(_background_lines(scenario.background, indent + "  ", show_status))
    for step in scenario.steps:
        lines.extend(_step_lines(step, indent + "  ", show_status))
    for exs in scenario.examples:
        lines.append(f"{indent}  Examples: {exs.name}")
        for _, cells in exs.table:
            lines.append(f"{indent}    | " + " | ".join(cells) + " |")
        for generated in exs.scenarios:
            lines.extend(_scenario_lines(generated, indent + "    ", show_status))
    return lines


def pretty_print(spec: FeatureSpec, show_status: bool = True) -> str:
    """Renders a feature spec back into Gherkin-like text."""
    lines: List[str] = []
    if spec.feature.tags:
        lines.append(" ".join(str(t) for t in spec.feature.tags))
    lines.append(f"Feature: {spec.feature.name}{_status_suffix(spec.status.keyword, show_status)}")
    lines.extend("  " + line for line in spec.feature.description)
    lines.extend(_background_lines(spec.background, "  ", show_status))
    for scenario in spec.scenarios:
        lines.append("")
        lines.extend(_scenario_lines(scenario, "  ", show_status))
    return "\n".join(lines) + "\n"
