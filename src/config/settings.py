"""Runtime settings for import runs.

Defaults suit interactive imports; every field can be overridden per run or
from ``XLIMPORT_*`` environment variables via ``ImportSettings.from_env()``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from processing.errors import ImportConfigurationError
from utils.env import ENV_PREFIX, env_value


@dataclass(frozen=True)
class ImportSettings:
    # Rows per committed transaction; None keeps the whole run in one transaction.
    commit_batch_size: Optional[int] = None
    # Emit a progress snapshot every N rows.
    progress_interval: int = 100
    # Rows read ahead so distinct foreign key values can be fetched in one query; 0 disables.
    lookahead_rows: int = 0
    csv_chunk_size: int = 1000
    # Cap on row error descriptors kept on the result; None keeps all.
    max_error_messages: Optional[int] = None

    def __post_init__(self) -> None:
        problems = []
        if self.commit_batch_size is not None and self.commit_batch_size < 1:
            problems.append("commit_batch_size must be positive")
        if self.progress_interval < 1:
            problems.append("progress_interval must be positive")
        if self.lookahead_rows < 0:
            problems.append("lookahead_rows cannot be negative")
        if self.csv_chunk_size < 1:
            problems.append("csv_chunk_size must be positive")
        if self.max_error_messages is not None and self.max_error_messages < 0:
            problems.append("max_error_messages cannot be negative")
        if problems:
            raise ImportConfigurationError("Invalid import settings", problems)

    @classmethod
    def from_env(cls, **overrides) -> "ImportSettings":
        """Build settings from XLIMPORT_* variables, then apply ``overrides``."""
        values = {}
        for env_name, attr in (
            ("BATCH_SIZE", "commit_batch_size"),
            ("PROGRESS_INTERVAL", "progress_interval"),
            ("LOOKAHEAD", "lookahead_rows"),
            ("CSV_CHUNK_SIZE", "csv_chunk_size"),
            ("MAX_ERRORS", "max_error_messages"),
        ):
            raw = env_value(env_name)
            if raw is None:
                continue
            try:
                values[attr] = int(raw)
            except ValueError:
                raise ImportConfigurationError(
                    f"{ENV_PREFIX}{env_name} must be an integer, got {raw!r}"
                ) from None

        settings = cls(**values)
        return replace(settings, **overrides) if overrides else settings


DEFAULT_SETTINGS = ImportSettings()
