from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

from .constants import TMP_SUFFIX


def _write_text_atomic(path: Path, text: str, mode: int = 0o600) -> None:
    """Write *text* to *path* via a same-directory temp file and ``os.replace``.

    Readers see either the previous file or the new one, never a partial
    write. On any failure the temp file is removed and the target is left as
    it was.
    """
    parent = path.parent
    parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(parent), prefix=f".{path.name}.", suffix=TMP_SUFFIX)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp, mode)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def _atomic_write_json(path: Path, data: Any) -> None:
    _write_text_atomic(path, json.dumps(data, indent=2) + "\n")


def _load_json(path: Path) -> Any:
    """Read and parse a JSON file; errors propagate to the caller."""
    with open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _load_data_with_error(
    path: Path,
    default: dict[str, Any],
) -> tuple[dict[str, Any], str | None]:
    """
    Load JSON/YAML and return (data, error_message).

    A missing file is not an error. Parse and IO failures are reported rather
    than raised so callers can fall back to defaults.
    """
    if not path.exists():
        return default, None
    try:
        with open(path, "r", encoding="utf-8") as handle:
            if path.suffix in {".yaml", ".yml"}:
                data = yaml.safe_load(handle)
            else:
                data = json.load(handle)
        if data is None:
            return default, None
        if not isinstance(data, dict):
            return default, f"{path.name}: expected object, got {type(data).__name__}"
        return data, None
    except OSError as exc:
        return default, f"{path.name}: {exc.__class__.__name__}: {exc}"
    except json.JSONDecodeError as exc:
        return default, f"{path.name}: JSONDecodeError: {exc}"
    except yaml.YAMLError as exc:
        return default, f"{path.name}: YAMLError: {exc}"


def _read_int(path: Path, default: int = 0) -> int:
    """Read a file holding a single integer; missing or garbled files give *default*."""
    try:
        raw = path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return default
    try:
        return int(raw)
    except ValueError:
        return default
