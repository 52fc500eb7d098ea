"""Load optional task list configuration from ``<base_dir>/config.yaml``."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from .constants import (
    BASE_DIR_ENV,
    CONFIG_FILE,
    DEFAULT_BASE_DIR_PARTS,
    DEFAULT_CLAIM_MAX_ATTEMPTS,
    DEFAULT_ID_CONFLICT_RETRIES,
    DEFAULT_LIST_ID,
    DEFAULT_LOCK_POLL_INTERVAL,
    DEFAULT_LOCK_TIMEOUT,
    DEFAULT_SUBSCRIBER_BUFFER,
    LIST_ID_ENV,
)
from .io_utils import _load_data_with_error


def resolve_base_dir(base_dir: Optional[Path | str] = None) -> Path:
    """Return the directory holding all task lists.

    Precedence: explicit argument, then ``AGENT_TASKLIST_DIR``, then
    ``~/.claude/tasks`` (the layout the agent runtime reads and writes).
    """
    if base_dir:
        return Path(base_dir).expanduser()
    env_dir = os.environ.get(BASE_DIR_ENV)
    if env_dir:
        return Path(env_dir).expanduser()
    return Path.home().joinpath(*DEFAULT_BASE_DIR_PARTS)


def resolve_list_id(list_id: Optional[str] = None) -> str:
    if list_id:
        return list_id
    return os.environ.get(LIST_ID_ENV) or DEFAULT_LIST_ID


def load_tasklist_config(base_dir: Path) -> tuple[dict[str, Any], str | None]:
    """Load the optional config file.

    Args:
        base_dir: Task list base directory.

    Returns:
        A tuple of `(config, error_message)`. If the file is missing, returns `({}, None)`.
    """
    path = base_dir / CONFIG_FILE
    data, err = _load_data_with_error(path, {})
    if err:
        return {}, err
    return data, None


def _get_float(config: dict[str, Any], key: str, default: Optional[float]) -> Optional[float]:
    raw = config.get(key)
    if raw is None:
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    return value if value >= 0 else default


def _get_int(config: dict[str, Any], key: str, default: int) -> int:
    raw = config.get(key)
    if raw is None or isinstance(raw, bool):
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


@dataclass(frozen=True)
class TaskListSettings:
    """Tunables shared by the stores and the manager."""

    lock_timeout: Optional[float] = DEFAULT_LOCK_TIMEOUT
    lock_poll_interval: float = DEFAULT_LOCK_POLL_INTERVAL
    subscriber_buffer: int = DEFAULT_SUBSCRIBER_BUFFER
    claim_max_attempts: int = DEFAULT_CLAIM_MAX_ATTEMPTS
    id_conflict_retries: int = DEFAULT_ID_CONFLICT_RETRIES

    @classmethod
    def from_mapping(cls, config: dict[str, Any]) -> "TaskListSettings":
        poll = _get_float(config, "lock_poll_interval", DEFAULT_LOCK_POLL_INTERVAL)
        return cls(
            lock_timeout=_get_float(config, "lock_timeout", DEFAULT_LOCK_TIMEOUT),
            lock_poll_interval=poll if poll else DEFAULT_LOCK_POLL_INTERVAL,
            subscriber_buffer=_get_int(config, "subscriber_buffer", DEFAULT_SUBSCRIBER_BUFFER),
            claim_max_attempts=_get_int(config, "claim_max_attempts", DEFAULT_CLAIM_MAX_ATTEMPTS),
            id_conflict_retries=_get_int(config, "id_conflict_retries", DEFAULT_ID_CONFLICT_RETRIES),
        )


def load_settings(base_dir: Optional[Path] = None) -> TaskListSettings:
    """Build settings from ``config.yaml``, falling back to defaults on a bad file."""
    if base_dir is None:
        return TaskListSettings()
    config, err = load_tasklist_config(base_dir)
    if err:
        logger.warning("Ignoring task list config: {}", err)
    return TaskListSettings.from_mapping(config)
