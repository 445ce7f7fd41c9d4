"""Document storage for HabitFocus workspace files.

Workspace files are small JSON or YAML documents whose top level is a
mapping. The format follows the file suffix. Reads of a missing or blank
file give an empty mapping; writes go through a locked temp file that is
renamed over the target, so readers never see a half-written document.
"""

from __future__ import annotations

import fcntl
import json
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

from habitcore.errors import PersistenceError

_YAML_SUFFIXES = {".yaml", ".yml"}


def _is_yaml(path: Path) -> bool:
    return path.suffix.lower() in _YAML_SUFFIXES


def _parse(path: Path, text: str) -> dict[str, Any]:
    if _is_yaml(path):
        data = yaml.safe_load(text)
    else:
        data = json.loads(text)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"expected a mapping at the top level, got {type(data).__name__}")
    return data


def _serialize(path: Path, data: dict[str, Any]) -> str:
    if _is_yaml(path):
        return yaml.dump(data, default_flow_style=False, allow_unicode=True, sort_keys=False)
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def read_document(path: Path) -> dict[str, Any]:
    """Load a JSON/YAML mapping; {} when the file is missing or blank."""
    try:
        if not path.exists():
            return {}
        text = path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        return _parse(path, text)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise PersistenceError(f"Cannot read {path}: {e}") from e


def write_document(path: Path, data: dict[str, Any]) -> None:
    """Replace *path* with *data* atomically (flock'd temp file + rename)."""
    content = _serialize(path, data)
    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp_", suffix=path.suffix)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            try:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise PersistenceError(f"Cannot write {path}: {e}") from e
