from __future__ import annotations

import re
from typing import List, Optional, Tuple

from ..errors import InvalidTagError
from .models import FeatureSpec, Scenario, Tag

TagFilter = Tuple[Tag, bool]

_FILTER = re.compile(r"^(~?)@(\w+)$")


def parse_tag_filters(value: str) -> List[TagFilter]:
    """Parses ``@include`` and ``~@exclude`` tags from a comma separated list."""
    filters: List[TagFilter] = []
    for raw in value.split(","):
        raw = raw.strip()
        if not raw:
            continue
        m = _FILTER.match(raw)
        if not m:
            raise InvalidTagError(f"{raw} (tags must start with @ or ~@)")
        filters.append((Tag(name=m.group(2)), not m.group(1)))
    return filters


def _selected(scenario: Scenario, inherited: List[Tag], filters: List[TagFilter]) -> bool:
    tags = set(t.name for t in inherited) | set(t.name for t in scenario.tags)
    includes = [t.name for t, include in filters if include]
    excludes = [t.name for t, include in filters if not include]
    if any(name in tags for name in excludes):
        return False
    return not includes or any(name in tags for name in includes)


def filter_spec(spec: FeatureSpec, filters: List[TagFilter]) -> Optional[FeatureSpec]:
    """Keeps only the scenarios selected by the filters; StepDefs are always kept.

    Returns ``None`` when the feature has scenarios but none are selected.
    """
    if not filters:
        return spec
    kept = [s for s in spec.scenarios if s.is_step_def or _selected(s, spec.feature.tags, filters)]
    executable = [s for s in kept if not s.is_step_def]
    if spec.scenarios and not executable and any(not s.is_step_def for s in spec.scenarios):
        return None
    return spec.model_copy(update={"scenarios": kept})
