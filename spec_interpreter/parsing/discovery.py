from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from pathspec import PathSpec

from ..models import DataRecord, FeatureUnit


def _build_ignore_spec(ignore_globs: List[str]) -> PathSpec:
    return PathSpec.from_lines("gitwildmatch", ignore_globs)


def _walk(root: Path, extension: str, ignore_spec: PathSpec) -> List[Path]:
    found: List[Path] = []
    for path in sorted(root.rglob(f"*{extension}")):
        rel = path.relative_to(root)
        if ignore_spec.match_file(str(rel)):
            continue
        if path.is_file():
            found.append(path)
    return found


def _ancestor_meta(feature_file: Path, root: Path, meta_extension: str) -> List[Path]:
    """Meta files in the feature's directory and every ancestor up to ``root`` (outermost first)."""
    dirs: List[Path] = []
    current = feature_file.parent.resolve()
    top = root.resolve()
    while True:
        dirs.append(current)
        if current == top or current.parent == current:
            break
        current = current.parent
    metas: List[Path] = []
    for d in reversed(dirs):
        metas.extend(sorted(p for p in d.glob(f"*{meta_extension}") if p.is_file()))
    return metas


def discover_units(
    paths: List[Path],
    ignore_globs: List[str],
    feature_extension: str = ".feature",
    meta_extension: str = ".meta",
    meta_files: Optional[List[Path]] = None,
    data_records: Optional[List[DataRecord]] = None,
) -> List[FeatureUnit]:
    """Finds feature files under the given paths and pairs each with its meta files.

    Explicit ``meta_files`` replace the discovered ones. With data records,
    every feature yields one unit per record.
    """
    ignore_spec = _build_ignore_spec(ignore_globs)
    units: List[FeatureUnit] = []
    for root in paths:
        if root.is_file():
            features = [root] if root.name.endswith(feature_extension) else []
            search_root = root.parent
        elif root.is_dir():
            features = _walk(root, feature_extension, ignore_spec)
            search_root = root
        else:
            continue

        for feature in features:
            metas = list(meta_files) if meta_files is not None else _ancestor_meta(feature, search_root, meta_extension)
            if data_records:
                units.extend(
                    FeatureUnit(feature_file=feature, meta_files=metas, data_record=record) for record in data_records
                )
            else:
                units.append(FeatureUnit(feature_file=feature, meta_files=metas))
    return units
