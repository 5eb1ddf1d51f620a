from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from ..config import AppConfig, Settings
from ..dsl.models import FeatureSpec, Tag
from ..dsl.normaliser import is_meta_file, meta_imports, normalise
from ..dsl.printer import pretty_print
from ..dsl.status import StatusKeyword
from ..dsl.tags import TagFilter, filter_spec
from ..errors import EvaluationError, RecursiveImportError
from ..models import DataRecord, FeatureResult, FeatureUnit
from ..parsing.loader import FeatureParser, JsonFeatureParser, parse_feature_file
from .context import EnvContext
from .engine import EvalEngine
from .evaluator import evaluate_scenarios


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, FeatureUnit, Optional[FeatureResult]], None]


class SpecInterpreter:
    """Loads, normalises and evaluates feature units."""

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        engine: Optional[EvalEngine] = None,
        parser: Optional[FeatureParser] = None,
        settings_factory: Callable[[], Settings] = Settings,
    ):
        self.config = config or AppConfig()
        self.engine = engine or EvalEngine()
        self.parser = parser or JsonFeatureParser()
        self.settings_factory = settings_factory

    def new_context(self) -> EnvContext:
        logger.info("Initialising environment context")
        return EnvContext(self.config, self.settings_factory())

    def _is_meta(self, path: Optional[Path]) -> bool:
        return is_meta_file(path, self.config.meta_extension)

    def normalise(self, spec: FeatureSpec, spec_file: Optional[Path], data_record: Optional[DataRecord]) -> FeatureSpec:
        return normalise(
            spec,
            spec_file,
            data_record,
            meta_extension=self.config.meta_extension,
            data_extension=self.config.data_extension,
        )

    # -- features ---------------------------------------------------------

    def interpret_feature(
        self,
        unit: FeatureUnit,
        tag_filters: List[TagFilter],
        env: EnvContext,
        started: Optional[datetime] = None,
    ) -> Optional[FeatureResult]:
        """Interprets one unit; returns ``None`` if it is missing or filtered out."""
        started = started or datetime.now()
        feature_file = unit.feature_file
        if not feature_file.exists():
            logger.warning("Skipped missing feature file: %s", feature_file)
            return None
        spec = parse_feature_file(feature_file, self.parser)
        if self._is_meta(feature_file):
            meta_results = self.load_meta_imports(spec, feature_file, tag_filters, env)
            return self.evaluate_feature(self.normalise(spec, feature_file, unit.data_record), meta_results, env, started)
        filtered = filter_spec(spec, tag_filters)
        if filtered is None:
            logger.info("Feature file skipped (does not satisfy tag filters): %s", feature_file)
            return None
        meta_results = self.load_meta_imports(spec, feature_file, tag_filters, env)
        meta_results += self.load_meta(unit.meta_files, tag_filters, env)
        return self.evaluate_feature(self.normalise(filtered, feature_file, unit.data_record), meta_results, env, started)

    def evaluate_feature(
        self,
        spec: FeatureSpec,
        meta_results: List[FeatureResult],
        env: EnvContext,
        started: datetime,
    ) -> FeatureResult:
        meta = self._is_meta(spec.feature_file)
        spec_type = "meta" if meta else "feature"
        file = f" [file: {spec.feature_file}]" if spec.feature_file else ""
        logger.info("%s %s: %s%s", "Loading" if meta else "Evaluating", spec_type, spec.feature.name, file)

        scenarios = evaluate_scenarios(
            spec.scenarios,
            lambda scenario: self.engine.evaluate_scenario(scenario, env),
            failfast=self.config.feature_failfast,
            exit_on_fail=self.config.feature_failfast_exit,
        )
        result_spec = spec.model_copy(update={"scenarios": scenarios, "meta_specs": [r.spec for r in meta_results]})
        logger.info("%s %s: %s%s", "Loaded" if meta else "Evaluated", spec_type, spec.feature.name, file)
        logger.debug(pretty_print(result_spec))

        result = FeatureResult(spec=result_spec, meta_results=meta_results, started=started, finished=datetime.now())
        if result.status.is_failed:
            logger.error("%s %s: %s", result.status, spec_type, spec.feature.name)
        else:
            logger.info("%s %s: %s", result.status, spec_type, spec.feature.name)
        return result

    # -- meta -------------------------------------------------------------

    def load_meta_imports(
        self, spec: FeatureSpec, spec_file: Path, tag_filters: List[TagFilter], env: EnvContext
    ) -> List[FeatureResult]:
        results: List[FeatureResult] = []
        for meta_file in meta_imports(spec, spec_file, self.config.meta_extension):
            if meta_file.resolve() in env.import_chain:
                raise RecursiveImportError(Tag(name=f'Import("{meta_file}")'), spec_file)
            try:
                result = self.load_meta_file(meta_file, tag_filters, env)
            except RecursionError:
                raise RecursiveImportError(Tag(name=f'Import("{spec_file}")'), meta_file) from None
            if result is not None:
                results.append(result)
        return results

    def load_meta(self, meta_files: List[Path], tag_filters: List[TagFilter], env: EnvContext) -> List[FeatureResult]:
        results: List[FeatureResult] = []
        for meta_file in meta_files:
            result = self.load_meta_file(meta_file, tag_filters, env)
            if result is not None:
                results.append(result)
        return results

    def load_meta_file(self, meta_file: Path, tag_filters: List[TagFilter], env: EnvContext) -> Optional[FeatureResult]:
        canonical = meta_file.resolve()
        if canonical in env.loaded_meta:
            logger.debug("Meta already loaded: %s", meta_file)
            return None
        env.import_chain.append(canonical)
        try:
            result = self.interpret_feature(FeatureUnit(feature_file=meta_file), tag_filters, env)
        finally:
            env.import_chain.pop()
        if result is None:
            return None
        status = result.status
        if status.keyword in (StatusKeyword.PASSED, StatusKeyword.LOADED):
            env.loaded_meta.add(canonical)
        elif status.is_failed:
            raise EvaluationError(f"Failed to load meta: {result.spec}: {status.error}")
        else:
            raise EvaluationError(f"Failed to load meta: {result.spec}")
        return result

    # -- runs -------------------------------------------------------------

    def run(
        self,
        units: List[FeatureUnit],
        tag_filters: Optional[List[TagFilter]] = None,
        parallel: Optional[bool] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> List[FeatureResult]:
        """Interprets units in order, or concurrently with one context per unit.

        Results keep the order of the given units; filtered or missing units
        are left out.
        """
        tag_filters = tag_filters or []
        parallel = self.config.parallel if parallel is None else parallel
        total = len(units)
        results: List[Optional[FeatureResult]] = [None] * total

        def _notify(i: int, unit: FeatureUnit, result: Optional[FeatureResult]) -> None:
            if progress_callback:
                try:
                    progress_callback(i, total, unit, result)
                except Exception:
                    logger.warning("Progress callback failed", exc_info=True)

        if not parallel:
            env = self.new_context()
            try:
                for idx, unit in enumerate(units):
                    try:
                        results[idx] = self.interpret_feature(unit, tag_filters, env)
                    finally:
                        env.reset()
                        env.settings = self.settings_factory()
                    _notify(idx + 1, unit, results[idx])
            finally:
                env.close()
            return [r for r in results if r is not None]

        def do_unit(idx: int, unit: FeatureUnit) -> tuple[int, Optional[FeatureResult]]:
            with self.new_context() as env:
                return idx, self.interpret_feature(unit, tag_filters, env)

        completed = 0
        with ThreadPoolExecutor(max_workers=max(1, self.config.max_workers)) as executor:
            future_to_info = {executor.submit(do_unit, idx, unit): (idx, unit) for idx, unit in enumerate(units)}
            for future in as_completed(future_to_info):
                _, unit = future_to_info[future]
                idx, result = future.result()
                results[idx] = result
                completed += 1
                _notify(completed, unit, result)

        return [r for r in results if r is not None]
