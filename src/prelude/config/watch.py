"""Watch-mode defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from .errors import InvalidConfigurationError

DEFAULT_DEBOUNCE_SECONDS = 1.0

WATCH_PATTERNS: tuple[str, ...] = (
    "pyproject.toml",
    "setup.cfg",
    "setup.py",
    "requirements*.txt",
    "poetry.lock",
    "uv.lock",
    "Pipfile",
    "package.json",
    "tsconfig.json",
    "Cargo.toml",
    "go.mod",
    ".pre-commit-config.yaml",
    "ruff.toml",
    "mypy.ini",
    "src/*",
    "lib/*",
    "app/*",
    "tests/*",
)

IGNORE_PATTERNS: tuple[str, ...] = (
    ".git/*",
    ".context/*",
    ".venv/*",
    "venv/*",
    "node_modules/*",
    "*/__pycache__/*",
    "dist/*",
    "build/*",
    "*.pyc",
)


@dataclass(frozen=True, slots=True)
class WatchConfig:
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    patterns: tuple[str, ...] = WATCH_PATTERNS
    ignore: tuple[str, ...] = field(default=IGNORE_PATTERNS)


def get_watch_config(*, extra_ignore: tuple[str, ...] = ()) -> WatchConfig:
    raw = os.getenv("PRELUDE_DEBOUNCE_MS")
    debounce = DEFAULT_DEBOUNCE_SECONDS
    if raw is not None and raw.strip():
        try:
            debounce = int(raw) / 1000
        except ValueError as exc:
            raise InvalidConfigurationError(
                f"Invalid integer for PRELUDE_DEBOUNCE_MS: {raw!r}"
            ) from exc
        if debounce < 0:
            raise InvalidConfigurationError("PRELUDE_DEBOUNCE_MS must be non-negative")
    return WatchConfig(debounce_seconds=debounce, ignore=(*IGNORE_PATTERNS, *extra_ignore))
