from __future__ import annotations

import json
import logging
import re
import tempfile
import traceback
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ..config import AppConfig, Settings
from ..dsl.models import Scenario, Step
from ..dsl.status import EvalStatus
from ..errors import RecursiveStepDefError, UnboundAttributeError
from .scopes import Predicate, ScopedData, ScopedDataStack
from .stepdefs import Params, StepDefRegistry


logger = logging.getLogger(__name__)

Attachment = Tuple[str, Path]

PARAM_REF = re.compile(r"\$<(.+?)>")
ATTRIBUTE_REF = re.compile(r"\$\{(.+?)\}")


class EnvContext:
    """Everything one feature evaluation owns.

    A context is never shared between concurrently running features: the
    scopes, StepDef registry, loaded meta set and attachment counter all live
    here.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        settings: Optional[Settings] = None,
        scopes: Optional[ScopedDataStack] = None,
    ):
        self.config = config or AppConfig()
        self.settings = settings or Settings()
        self.scopes = scopes or ScopedDataStack()
        self.stepdefs = StepDefRegistry()
        self.loaded_meta: Set[Path] = set()
        # canonical paths of the meta files currently being loaded (outermost first)
        self.import_chain: List[Path] = []
        self._attachments: List[Attachment] = []
        self._attachment_no = 0
        self._attachment_dir: Optional[Path] = None
        self._call_chain: List[Tuple[str, str]] = []

    @property
    def dry_run(self) -> bool:
        return self.config.dry_run

    @property
    def feature_scope(self):
        return self.scopes.feature_scope

    def add_scope(self, name: str) -> ScopedData:
        return self.scopes.add_scope(name)

    def reset(self) -> None:
        """Clears all state so the context can be reused for another feature."""
        logger.debug("Resetting environment context")
        self.scopes.reset()
        self.stepdefs.clear()
        self.loaded_meta = set()
        self.import_chain = []
        self._attachments = []
        self._call_chain = []

    def close(self) -> None:
        """Releases the context. Attachment files outlive it so results can still reference them."""
        logger.debug("Closing environment context")
        self.reset()

    def __enter__(self) -> "EnvContext":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # -- attributes -------------------------------------------------------

    def json(self) -> Dict[str, Any]:
        return self.scopes.json()

    def visible_json(self) -> Dict[str, Any]:
        return self.scopes.visible_json()

    def filter_atts(self, predicate: Predicate) -> ScopedDataStack:
        return self.scopes.filter(predicate)

    def get_bound_reference_value(self, name: str) -> str:
        value = self.scopes.get_opt(name)
        if value is None:
            value = self.settings.get_opt(name)
        if value is None:
            raise UnboundAttributeError(name)
        return value

    def interpolate(self, text: str) -> str:
        """Resolves ``$<param>`` and ``${name}`` references in the given text."""
        text = PARAM_REF.sub(lambda m: self.scopes.get_param(f"<{m.group(1)}>"), text)
        return ATTRIBUTE_REF.sub(lambda m: self.get_bound_reference_value(m.group(1)), text)

    def resolve(self, step: Step) -> Step:
        expression = self.interpolate(step.expression)
        doc_string = self.interpolate(step.doc_string) if step.doc_string is not None else None
        if expression == step.expression and doc_string == step.doc_string:
            return step
        return step.model_copy(update={"expression": expression, "doc_string": doc_string})

    # -- stepdefs ---------------------------------------------------------

    def add_step_def(self, stepdef: Scenario) -> None:
        self.stepdefs.add(stepdef)

    def get_step_def(self, expression: str) -> Optional[Tuple[Scenario, Params]]:
        return self.stepdefs.get(expression)

    def enter_step_def(self, stepdef: Scenario, step: Step, params: Params) -> None:
        """Binds StepDef parameters; fails if the same StepDef is re-entered with the same input."""
        key = (stepdef.name, step.expression)
        if key in self._call_chain:
            raise RecursiveStepDefError(stepdef, step)
        self.scopes.push_params(stepdef.name, params)
        self._call_chain.append(key)

    def exit_step_def(self) -> None:
        self.scopes.pop_params()
        self._call_chain.pop()

    # -- actions ----------------------------------------------------------

    def perform(self, action: Callable[[], Any]) -> Optional[Any]:
        """Performs an external action unless in dry run mode."""
        if self.dry_run:
            return None
        return action()

    # -- attachments ------------------------------------------------------

    @property
    def attachments(self) -> List[Attachment]:
        return sorted(self._attachments, key=lambda a: a[1].name)

    @property
    def attachment_count(self) -> int:
        return len(self._attachments)

    def attachments_since(self, count: int) -> List[Attachment]:
        return self._attachments[count:]

    def add_attachment(self, name: str, extension: str, content: str) -> Attachment:
        if self._attachment_dir is None:
            self._attachment_dir = Path(tempfile.mkdtemp(prefix="spec-interpreter-"))
        self._attachment_no += 1
        slug = re.sub(r"[^\w.-]+", "-", name).strip("-").lower() or "attachment"
        path = self._attachment_dir / f"{self._attachment_no:04d}-{slug}.{extension}"
        path.write_text(content, encoding="utf-8")
        attachment = (name, path)
        self._attachments.append(attachment)
        return attachment

    def fail(self, failure: EvalStatus) -> List[Attachment]:
        """Records a failure: logs the visible environment and attaches diagnostics."""
        error = failure.error
        logger.error(json.dumps(self.visible_json(), indent=2))
        logger.error(str(error))
        details = "".join(traceback.format_exception(type(error), error, error.__traceback__)) if error else ""
        return [
            self.add_attachment("Error details", "txt", details),
            self.add_attachment("Environment (all)", "txt", json.dumps(self.json(), indent=2)),
            self.add_attachment("Environment (visible)", "txt", json.dumps(self.visible_json(), indent=2)),
        ]
