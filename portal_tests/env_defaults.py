"""Read portal test defaults from a `.env.defaults` file.

Lookup order for every setting is: process environment, then the defaults
file, then the built-in value passed by the caller. The defaults file lives
at the repository root unless PORTAL_ENV_DEFAULTS points somewhere else.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Dict


def defaults_path() -> Path:
    override = os.environ.get("PORTAL_ENV_DEFAULTS")
    if override:
        return Path(override)
    return Path(__file__).resolve().parents[1] / ".env.defaults"


@lru_cache(maxsize=4)
def _load_env_defaults(path: Path) -> Dict[str, str]:
    if not path.exists():
        return {}

    defaults: Dict[str, str] = {}
    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        if line.startswith("export "):
            line = line[len("export "):]
        key, value = line.split("=", 1)
        value = value.strip()
        if len(value) >= 2 and value[0] in ('"', "'") and value[-1] == value[0]:
            value = value[1:-1]
        defaults[key.strip()] = value
    return defaults


def get_env_default(key: str) -> str | None:
    return _load_env_defaults(defaults_path()).get(key)


def env_value(key: str, default: str | None = None) -> str | None:
    """Return the environment value, the defaults-file value, or `default`."""
    value = os.environ.get(key)
    if value:
        return value
    file_value = get_env_default(key)
    if file_value:
        return file_value
    return default


def clear_cache() -> None:
    _load_env_defaults.cache_clear()
