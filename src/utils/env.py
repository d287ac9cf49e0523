"""Environment helpers for runtime configuration."""

import os
from functools import lru_cache
from typing import Optional

ENV_PREFIX = "XLIMPORT_"


@lru_cache
def is_dev_mode() -> bool:
    """Return True when the app runs in development mode."""
    value = os.environ.get("XLIMPORT_ENV") or os.environ.get("XLIMPORT_DEV_MODE")
    if not value:
        return False
    normalized = value.strip().lower()
    return normalized in {"dev", "development", "1", "true", "yes"}


def env_value(name: str) -> Optional[str]:
    """Return a stripped XLIMPORT_* variable, or None when unset or blank."""
    value = os.environ.get(f"{ENV_PREFIX}{name}")
    if value is None or not value.strip():
        return None
    return value.strip()


__all__ = ["ENV_PREFIX", "env_value", "is_dev_mode"]
