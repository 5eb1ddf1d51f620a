from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from spec_interpreter.dsl.models import Feature, FeatureSpec, Scenario, Step, StepKeyword, Tag


def step(text: str, **kwargs: Any) -> Step:
    keyword, expression = text.split(" ", 1)
    return Step(keyword=StepKeyword(keyword), expression=expression, **kwargs)


def scenario(name: str, *steps: str, tags: Optional[List[str]] = None, **kwargs: Any) -> Scenario:
    return Scenario(
        name=name,
        tags=[Tag.of(t) for t in tags or []],
        steps=[step(s) for s in steps],
        **kwargs,
    )


def stepdef(name: str, *steps: str) -> Scenario:
    return scenario(name, *steps, tags=["@StepDef"])


def feature(name: str, *scenarios: Scenario, tags: Optional[List[str]] = None, **kwargs: Any) -> FeatureSpec:
    return FeatureSpec(
        feature=Feature(name=name, tags=[Tag.of(t) for t in tags or []]),
        scenarios=list(scenarios),
        **kwargs,
    )


def step_json(text: str) -> Dict[str, Any]:
    keyword, expression = text.split(" ", 1)
    return {"keyword": keyword, "expression": expression}


def scenario_json(name: str, *steps: str, tags: Optional[List[str]] = None) -> Dict[str, Any]:
    return {"name": name, "tags": tags or [], "steps": [step_json(s) for s in steps]}


def write_spec(path: Path, name: str, *scenarios: Dict[str, Any], tags: Optional[List[str]] = None) -> Path:
    """Writes a feature or meta file as the JSON AST the interpreter reads."""
    doc = {"feature": {"name": name, "tags": tags or []}, "scenarios": list(scenarios)}
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(doc), encoding="utf-8")
    return path
