from __future__ import annotations

import pytest

from spec_interpreter.dsl.models import Tag
from spec_interpreter.errors import AmbiguousCaseError, InvalidStepDefError
from spec_interpreter.eval.stepdefs import StepDefRegistry, match_template, placeholders, substitute
from tests.support.builders import stepdef


@pytest.mark.parametrize(
    "template, expression, params",
    [
        ("z = <x> + 1", "z = 2 + 1", [("<x>", "2")]),
        ("z = 1 + <y>", "z = 1 + 3", [("<y>", "3")]),
        ("z = <x> + <y>", "z = 2 + 3", [("<x>", "2"), ("<y>", "3")]),
        ("<x> + <y> = z", "4 + 5 = z", [("<x>", "4"), ("<y>", "5")]),
        ("I search for <term>", "I search for the quick brown fox", [("<term>", "the quick brown fox")]),
        ('<a> is "<b>"', 'x is "y"', [("<a>", "x"), ("<b>", "y")]),
    ],
)
def test_match_template_binds_placeholders(template: str, expression: str, params) -> None:
    assert match_template(template, expression) == params


@pytest.mark.parametrize(
    "template, expression",
    [
        ("z = <x> + 1", "z = 2 + 2"),
        ("z = <x> + 1", "y = 2 + 1"),
        ("I search for <term>", "I search"),
        ("a literal name", "a literal name"),
    ],
)
def test_match_template_rejects(template: str, expression: str) -> None:
    assert match_template(template, expression) is None


def test_substitute_reproduces_expression() -> None:
    template = "z = <x> + <y>"
    params = match_template(template, "z = 10 + 20")
    assert params is not None
    assert substitute(template, params) == "z = 10 + 20"


def test_duplicate_placeholders_are_ambiguous() -> None:
    with pytest.raises(AmbiguousCaseError, match="duplicate parameter names <x>"):
        placeholders("z = <x> + <x>")


def test_registry_prefers_exact_name() -> None:
    registry = StepDefRegistry()
    registry.add(stepdef("z = <x> + 1"))
    registry.add(stepdef("z = 2 + 1"))
    found = registry.get("z = 2 + 1")
    assert found is not None
    sd, params = found
    assert sd.name == "z = 2 + 1"
    assert params == []


def test_registry_matches_parameterized_name() -> None:
    registry = StepDefRegistry()
    registry.add(stepdef("I search for <term>", 'Given the term is "$<term>"'))
    found = registry.get("I search for python")
    assert found is not None
    assert found[0].name == "I search for <term>"
    assert found[1] == [("<term>", "python")]


def test_registry_without_match_returns_none() -> None:
    registry = StepDefRegistry()
    registry.add(stepdef("z = <x> + 1"))
    assert registry.get("something else") is None


def test_multiple_parameterized_matches_are_ambiguous() -> None:
    registry = StepDefRegistry()
    registry.add(stepdef("z = <x> + 1"))
    registry.add(stepdef("z = 2 + <y>"))
    with pytest.raises(AmbiguousCaseError, match="2 StepDefs matched 'z = 2 \\+ 1'"):
        registry.get("z = 2 + 1")


def test_stepdef_named_after_keyword_is_invalid() -> None:
    registry = StepDefRegistry()
    with pytest.raises(InvalidStepDefError, match="Given I am here"):
        registry.add(stepdef("Given I am here"))
    assert len(registry) == 0


def test_stepdef_with_duplicate_placeholders_is_rejected_on_add() -> None:
    with pytest.raises(AmbiguousCaseError):
        StepDefRegistry().add(stepdef("<x> and <x>"))


def test_readding_replaces_in_place_and_merges_tags() -> None:
    registry = StepDefRegistry()
    registry.add(stepdef("first"))
    registry.add(stepdef("second"))
    replacement = stepdef("first", 'Given x is "1"')
    replacement = replacement.model_copy(update={"tags": list(replacement.tags) + [Tag.of("@Extra")]})
    registry.add(replacement)
    assert registry.names == ["first", "second"]
    found = registry.get("first")
    assert found is not None
    assert [t.name for t in found[0].tags] == ["StepDef", "Extra"]
    assert len(found[0].steps) == 1


def test_clear() -> None:
    registry = StepDefRegistry()
    registry.add(stepdef("first"))
    registry.clear()
    assert "first" not in registry
    assert len(registry) == 0
