from __future__ import annotations

import pytest

from spec_interpreter.config import AppConfig, Settings
from spec_interpreter.errors import MissingPropertyError, RecursiveStepDefError, UnboundAttributeError
from spec_interpreter.eval.context import EnvContext
from tests.support.builders import step, stepdef


@pytest.fixture
def env() -> EnvContext:
    with EnvContext(AppConfig(), Settings({"base.url": "http://localhost"}, use_environ=False)) as ctx:
        yield ctx


def test_bound_reference_falls_back_to_settings(env: EnvContext) -> None:
    assert env.get_bound_reference_value("base.url") == "http://localhost"
    env.feature_scope.set("base.url", "http://example.org")
    assert env.get_bound_reference_value("base.url") == "http://example.org"
    with pytest.raises(UnboundAttributeError):
        env.get_bound_reference_value("nothing")


def test_interpolate_params_and_attributes(env: EnvContext) -> None:
    env.scopes.push_params("StepDef", [("<page>", "home")])
    assert env.interpolate("${base.url}/$<page>") == "http://localhost/home"
    with pytest.raises(UnboundAttributeError):
        env.interpolate("$<missing>")


def test_resolve_keeps_unchanged_steps(env: EnvContext) -> None:
    plain = step('Given x is "1"')
    assert env.resolve(plain) is plain
    resolved = env.resolve(step('Given x is "${base.url}"', doc_string="${base.url}"))
    assert resolved.expression == 'x is "http://localhost"'
    assert resolved.doc_string == "http://localhost"


def test_reentering_step_def_with_same_input_is_recursive(env: EnvContext) -> None:
    sd = stepdef("I loop")
    call = step("Given I loop")
    env.enter_step_def(sd, call, [])
    with pytest.raises(RecursiveStepDefError):
        env.enter_step_def(sd, call, [])
    env.exit_step_def()
    assert env.scopes.params is None


def test_attachments_are_numbered_and_sorted(env: EnvContext) -> None:
    env.add_attachment("Second thing", "txt", "b")
    mark = env.attachment_count
    env.add_attachment("First thing", "json", "{}")
    assert [name for name, _ in env.attachments] == ["Second thing", "First thing"]
    [(name, path)] = env.attachments_since(mark)
    assert name == "First thing"
    assert path.name == "0002-first-thing.json"
    assert path.read_text(encoding="utf-8") == "{}"


def test_reset_clears_state_but_keeps_attachment_numbering(env: EnvContext) -> None:
    env.feature_scope.set("a", "1")
    env.add_step_def(stepdef("I do <it>"))
    env.add_attachment("one", "txt", "1")
    env.reset()
    assert env.json() == {"scopes": []}
    assert len(env.stepdefs) == 0
    assert env.attachments == []
    _, path = env.add_attachment("two", "txt", "2")
    assert path.name.startswith("0002-")


def test_perform_is_suppressed_in_dry_run() -> None:
    with EnvContext(AppConfig(dry_run=True)) as env:
        assert env.perform(lambda: "done") is None
    with EnvContext(AppConfig()) as env:
        assert env.perform(lambda: "done") == "done"


def test_settings() -> None:
    settings = Settings({"a": "1"}, use_environ=False)
    settings.add("a", "2", override=False)
    assert settings.get("a") == "1"
    settings.add("b", "3")
    assert settings.names() == ["a", "b"]
    with pytest.raises(MissingPropertyError):
        settings.get("c")


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SPEC_TEST_VALUE", "from env")
    assert Settings().get("SPEC_TEST_VALUE") == "from env"


def test_app_config_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SPEC_DRY_RUN", "true")
    monkeypatch.setenv("SPEC_MAX_WORKERS", "8")
    config = AppConfig()
    assert config.dry_run is True
    assert config.max_workers == 8
    assert config.feature_failfast is True
