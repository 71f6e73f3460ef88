"""Context directory configuration helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from .errors import InvalidConfigurationError

CONTEXT_DIR_NAME: Final[str] = ".context"
STATE_DIR_NAME: Final[str] = ".prelude"
STATE_FILENAME: Final[str] = "state.json"
HISTORY_DIR_NAME: Final[str] = "history"
CHANGE_LOG_FILENAME: Final[str] = "changes.json"
DEFAULT_CHANGE_LOG_LIMIT: Final[int] = 100


@dataclass(frozen=True, slots=True)
class ContextConfig:
    root_dir: Path
    context_dir_name: str = CONTEXT_DIR_NAME
    change_log_limit: int = DEFAULT_CHANGE_LOG_LIMIT

    def resolve_root(self) -> Path:
        return self.root_dir.expanduser().resolve()

    @property
    def context_dir(self) -> Path:
        return self.resolve_root() / self.context_dir_name

    @property
    def state_dir(self) -> Path:
        return self.context_dir / STATE_DIR_NAME

    @property
    def state_path(self) -> Path:
        return self.state_dir / STATE_FILENAME

    @property
    def history_dir(self) -> Path:
        return self.state_dir / HISTORY_DIR_NAME

    @property
    def change_log_path(self) -> Path:
        return self.state_dir / CHANGE_LOG_FILENAME


def get_context_config(root_dir: Path | None = None) -> ContextConfig:
    env_root = os.getenv("PRELUDE_ROOT")
    root = root_dir or (Path(env_root) if env_root else Path.cwd())
    context_dir_name = os.getenv("PRELUDE_CONTEXT_DIR") or CONTEXT_DIR_NAME
    limit = _int_from_env("PRELUDE_CHANGE_LOG_LIMIT", DEFAULT_CHANGE_LOG_LIMIT)
    if limit <= 0:
        raise InvalidConfigurationError("PRELUDE_CHANGE_LOG_LIMIT must be positive")
    return ContextConfig(root_dir=root, context_dir_name=context_dir_name, change_log_limit=limit)


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise InvalidConfigurationError(f"Invalid integer for {name}: {raw!r}") from exc
