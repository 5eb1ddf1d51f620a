from __future__ import annotations

import os
from typing import Dict, List, Mapping, Optional

from pydantic import Field
from pydantic_settings import BaseSettings

from .errors import MissingPropertyError


class AppConfig(BaseSettings):
    """Interpreter configuration loaded from environment variables."""

    feature_failfast: bool = Field(default=True, description="Skip remaining scenarios after the first failure")
    feature_failfast_exit: bool = Field(
        default=False, description="Stop evaluating a feature (and withhold remaining scenarios) on first failure"
    )
    dry_run: bool = Field(default=False, description="Validate steps without performing their actions")
    parallel: bool = Field(default=False, description="Evaluate feature units concurrently")
    max_workers: int = Field(default=4, description="Max concurrent feature units in parallel mode")

    feature_extension: str = Field(default=".feature")
    meta_extension: str = Field(default=".meta")
    data_extension: str = Field(default=".csv")

    # Discovery
    ignore_globs: List[str] = Field(
        default_factory=lambda: [
            "**/.git/**",
            "**/.venv/**",
            "**/node_modules/**",
            "**/dist/**",
            "**/build/**",
        ]
    )

    class Config:
        env_file = ".env"
        env_prefix = "SPEC_"
        extra = "ignore"


class Settings:
    """User properties consulted when a reference is not bound in any scope.

    Explicitly added properties take precedence over the process environment.
    """

    def __init__(self, properties: Optional[Mapping[str, str]] = None, use_environ: bool = True):
        self._props: Dict[str, str] = dict(properties or {})
        self._use_environ = use_environ

    def get_opt(self, name: str) -> Optional[str]:
        if name in self._props:
            return self._props[name]
        if self._use_environ:
            return os.environ.get(name)
        return None

    def get(self, name: str) -> str:
        value = self.get_opt(name)
        if value is None:
            raise MissingPropertyError(name)
        return value

    def add(self, name: str, value: str, override: bool = True) -> None:
        if override or name not in self._props:
            self._props[name] = value

    def names(self) -> List[str]:
        return sorted(self._props)
