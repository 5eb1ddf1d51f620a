from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .dsl.models import Scenario, Step, Tag


class InterpreterError(Exception):
    """Base class for all errors raised by the interpreter."""


class ParsingError(InterpreterError):
    pass


class AmbiguousCaseError(InterpreterError):
    pass


class UndefinedStepError(InterpreterError):
    def __init__(self, step: "Step"):
        super().__init__(f"Unsupported or undefined step: {step}")
        self.step = step


class UnboundAttributeError(InterpreterError):
    def __init__(self, name: str, scope: Optional[str] = None):
        where = f" in {scope} scope" if scope else ""
        super().__init__(f"Unbound reference{where}: {name}")
        self.name = name
        self.scope = scope


class MissingPropertyError(InterpreterError):
    def __init__(self, name: str):
        super().__init__(f"Property not found: {name}")
        self.name = name


class InvalidTagError(InterpreterError):
    def __init__(self, tag: str):
        super().__init__(f"Invalid tag: {tag}")


class TagSyntaxError(InterpreterError):
    pass


class EvaluationError(InterpreterError):
    pass


class StepEvaluationError(InterpreterError):
    """Wraps the cause of a failed step together with the step itself."""

    def __init__(self, step: "Step", cause: BaseException):
        super().__init__(f"Failed step [at line {step.pos.line}]: {step}: {cause}")
        self.step = step
        self.cause = cause


class RecursiveStepDefError(InterpreterError):
    def __init__(self, stepdef: "Scenario", step: "Step"):
        super().__init__(f"StepDef {stepdef.name} is infinitely recursive at [line {step.pos.line}]: {step}")
        self.stepdef = stepdef
        self.step = step


class InvalidStepDefError(InterpreterError):
    def __init__(self, stepdef: "Scenario", msg: str):
        super().__init__(f"Invalid StepDef: {stepdef.name}: {msg}")
        self.stepdef = stepdef


class MissingImportFileError(InterpreterError):
    def __init__(self, tag: "Tag", spec_file: Optional[Path] = None):
        declared = f" declared in {spec_file}" if spec_file else ""
        super().__init__(f"Missing file detected in {tag}{declared}")


class UnsupportedImportError(InterpreterError):
    def __init__(self, tag: "Tag", spec_file: Optional[Path] = None):
        declared = f" declared in {spec_file}" if spec_file else ""
        super().__init__(f"Unsupported file type detected in {tag}{declared} (only .meta files can be imported)")


class UnsupportedDataFileError(InterpreterError):
    def __init__(self, tag: "Tag", spec_file: Optional[Path] = None):
        declared = f" declared in {spec_file}" if spec_file else ""
        super().__init__(f"Unsupported file type detected in {tag}{declared} (only .csv data files supported)")


class RecursiveImportError(InterpreterError):
    def __init__(self, tag: "Tag", spec_file: Path):
        super().__init__(f"Recursive (cyclic) {tag} detected in {spec_file}")
        self.tag = tag
        self.spec_file = spec_file


# Configuration errors: never captured into a Failed status.
FATAL_ERRORS = (
    AmbiguousCaseError,
    InvalidStepDefError,
    InvalidTagError,
    TagSyntaxError,
    RecursiveStepDefError,
    MissingImportFileError,
    UnsupportedImportError,
    UnsupportedDataFileError,
    RecursiveImportError,
    EvaluationError,
)
