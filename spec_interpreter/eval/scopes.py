"""Scoped attribute storage.

Attributes are bound to named scopes. Binding a name that already exists
appends a new value instead of replacing the old one, so every scope keeps its
full history and the last appended value is the current one.

A :class:`ScopedDataStack` orders scopes from most specific to least specific:
StepDef parameter scopes first, then transient scopes, then the permanent
feature scope.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..errors import UnboundAttributeError


logger = logging.getLogger(__name__)

Binding = Tuple[str, str]
Predicate = Callable[[str, str], bool]


class ScopedData:
    is_feature_scope = False

    def __init__(self, scope: str, on_set: Optional[Callable[["ScopedData", str], None]] = None):
        self.scope = scope
        self._atts: List[Binding] = []
        self._on_set = on_set

    @property
    def atts(self) -> List[Binding]:
        return list(self._atts)

    def is_empty(self) -> bool:
        return not self._atts

    def set(self, name: str, value: str) -> "ScopedData":
        self._atts.append((name, value))
        if self._on_set is not None:
            self._on_set(self, name)
        return self

    def get(self, name: str) -> str:
        value = self.get_opt(name)
        if value is None:
            raise UnboundAttributeError(name, self.scope)
        return value

    def get_opt(self, name: str) -> Optional[str]:
        for n, v in reversed(self._atts):
            if n == name:
                return v
        return None

    def get_all(self, name: str) -> List[str]:
        return [v for n, v in self._atts if n == name]

    def find_entries(self, predicate: Predicate) -> List[Binding]:
        return [(n, v) for n, v in self._atts if predicate(n, v)]

    def filter_atts(self, predicate: Predicate) -> Optional["ScopedData"]:
        matched = self.find_entries(predicate)
        if not matched:
            return None
        result = ScopedData(self.scope)
        result._atts = matched
        return result

    def visible(self) -> Dict[str, str]:
        current: Dict[str, str] = {}
        for n, v in self._atts:
            current[n] = v
        return current

    def clear(self) -> None:
        self._atts = []

    def json(self) -> Dict[str, Any]:
        return {"scope": self.scope, "atts": [{n: v} for n, v in self._atts]}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.scope!r}, {self._atts!r})"


class ObjectCache:
    """Stacks of non string objects keyed by name (most recent on top)."""

    def __init__(self) -> None:
        self._cache: Dict[str, List[Any]] = {}

    def bind(self, name: str, obj: Any) -> None:
        self._cache.setdefault(name, []).append(obj)

    def get(self, name: str) -> Optional[Any]:
        stack = self._cache.get(name)
        return stack[-1] if stack else None

    def clear(self, name: str) -> None:
        stack = self._cache.get(name)
        if not stack:
            return
        stack.pop()
        if not stack:
            del self._cache[name]

    def names(self) -> List[str]:
        return list(self._cache)

    def reset(self) -> None:
        self._cache = {}


class FeatureScope(ScopedData):
    """The permanent, global scope of a feature.

    Holds the object cache and the flash list. While a transient scope is
    active, binding a feature attribute that the transient scope also binds
    (directly or as ``name/...``) records it in the flash list so that the
    new feature value shadows the stale transient one until that scope closes
    or binds the name again.
    """

    is_feature_scope = True

    def __init__(self) -> None:
        super().__init__("feature")
        self.objects = ObjectCache()
        self.current_scope: Optional[ScopedData] = None
        self.flash: List[Binding] = []

    def set(self, name: str, value: str) -> "FeatureScope":
        super().set(name, value)
        cs = self.current_scope
        if cs is not None and cs.find_entries(lambda n, _: n == name or n.startswith(f"{name}/")):
            self.flash.append((name, value))
        return self

    def flash_opt(self, name: str) -> Optional[str]:
        for n, v in reversed(self.flash):
            if n == name:
                return v
        return None

    def unflash(self, scope: ScopedData, name: str) -> None:
        """Drops flashed values that a newer binding in the current scope supersedes."""
        if scope is not self.current_scope:
            return
        self.flash = [(n, v) for n, v in self.flash if n != name and not n.startswith(f"{name}/")]

    def close_current(self) -> None:
        self.current_scope = None
        self.flash = []

    def reset(self) -> None:
        self.clear()
        self.objects.reset()
        self.close_current()


class ScopedDataStack:
    """Ordered lookup context over parameter, transient and feature scopes."""

    def __init__(self) -> None:
        self._feature = FeatureScope()
        self._params: List[ScopedData] = []
        self._scopes: List[ScopedData] = [self._feature]

    @property
    def feature_scope(self) -> FeatureScope:
        return self._feature

    @property
    def scopes(self) -> List[ScopedData]:
        """All scopes, most specific first. The feature scope is always last."""
        return list(reversed(self._params)) + list(self._scopes)

    @property
    def current(self) -> ScopedData:
        return self._scopes[0]

    @property
    def params(self) -> Optional[ScopedData]:
        return self._params[-1] if self._params else None

    def add_scope(self, scope: str) -> ScopedData:
        """Activates a transient scope, reusing the current one if it has the same name."""
        if scope == self.current.scope:
            return self.current
        if scope == self._feature.scope:
            return self._feature
        data = ScopedData(scope, on_set=self._feature.unflash)
        self._scopes.insert(0, data)
        self._feature.close_current()
        self._feature.current_scope = data
        logger.debug("Added %s scope", scope)
        return data

    def push_params(self, name: str, params: List[Binding]) -> ScopedData:
        data = ScopedData(name)
        for n, v in params:
            data.set(n, v)
        self._params.append(data)
        return data

    def pop_params(self) -> ScopedData:
        return self._params.pop()

    def set(self, name: str, value: str) -> ScopedData:
        return self.current.set(name, value)

    def get(self, name: str) -> str:
        value = self.get_opt(name)
        if value is None:
            raise UnboundAttributeError(name)
        return value

    def get_opt(self, name: str) -> Optional[str]:
        for data in self.scopes:
            if data is self._feature.current_scope:
                value = self._feature.flash_opt(name)
                if value is not None:
                    return value
            value = data.get_opt(name)
            if value is not None:
                return value
        return None

    def get_param(self, name: str) -> str:
        params = self.params
        value = params.get_opt(name) if params is not None else None
        if value is None:
            raise UnboundAttributeError(name, params.scope if params is not None else "parameter")
        return value

    def filter(self, predicate: Predicate) -> "ScopedDataStack":
        """Returns a new stack holding only the matching bindings; this stack is left untouched."""
        result = ScopedDataStack()
        result._params = [f for f in (p.filter_atts(predicate) for p in self._params) if f is not None]
        transient = [f for f in (s.filter_atts(predicate) for s in self._scopes[:-1]) if f is not None]
        result._scopes = transient + [result._feature]
        result._feature._atts = self._feature.find_entries(predicate)
        return result

    def reset(self) -> None:
        self._params = []
        self._scopes = [self._feature]
        self._feature.reset()

    def json(self) -> Dict[str, Any]:
        return {"scopes": [s.json() for s in self.scopes if not s.is_empty()]}

    def visible_json(self) -> Dict[str, Any]:
        return {
            "scopes": [
                {"scope": s.scope, "atts": [{n: v} for n, v in s.visible().items()]}
                for s in self.scopes
                if not s.is_empty()
            ]
        }
