"""
Upload configuration.

Immutable dataclass; values can be loaded from WAUPLOADER_* environment
variables with UploadConfig.from_env().
"""
import os
from dataclasses import dataclass, fields
from typing import Mapping, Optional

MB = 1024 * 1024
RESUMABLE_CHUNK_ALIGNMENT = 256 * 1024  # Drive requires chunks in 256 KiB multiples
MAX_ALBUM_BATCH = 50                    # Google Photos batchAddMediaItems limit

ENV_PREFIX = "WAUPLOADER_"


@dataclass(frozen=True)
class UploadConfig:
    """Immutable configuration for a backup run. Durations are in seconds."""
    # Routing
    resumable_threshold: int = 5 * MB
    resumable_chunk_size: int = 8 * MB
    album_batch_size: int = MAX_ALBUM_BATCH
    drive_parent_folder_id: Optional[str] = None

    # Retry
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0

    # Pacing
    rate_floor: float = 1.0
    rate_ceiling: float = 60.0
    rate_initial_delay: float = 1.5
    rate_decay: float = 0.9
    quota_min_wait: float = 10.0
    max_quota_wait: Optional[float] = None  # None = wait for quota forever

    # Persistence
    spreadsheet_id: Optional[str] = None
    progress_sheet_name: str = "upload_progress"
    checkpoint_interval: float = 5.0

    # Sequencing
    skip_failed: bool = False
    request_timeout: float = 300.0

    def __post_init__(self):
        if self.resumable_threshold <= 0:
            raise ValueError("resumable_threshold must be positive")
        if self.resumable_chunk_size <= 0 or self.resumable_chunk_size % RESUMABLE_CHUNK_ALIGNMENT:
            raise ValueError("resumable_chunk_size must be a positive multiple of 256 KiB")
        if not 1 <= self.album_batch_size <= MAX_ALBUM_BATCH:
            raise ValueError(f"album_batch_size must be between 1 and {MAX_ALBUM_BATCH}")
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.rate_floor <= 0 or self.rate_ceiling < self.rate_floor:
            raise ValueError("rate_floor must be positive and not above rate_ceiling")
        if not 0 < self.rate_decay <= 1:
            raise ValueError("rate_decay must be in (0, 1]")
        if self.max_quota_wait is not None and self.max_quota_wait <= 0:
            raise ValueError("max_quota_wait must be positive when set")

    @property
    def initial_delay(self) -> float:
        """Initial pacing delay clamped into [floor, ceiling]."""
        return min(self.rate_ceiling, max(self.rate_floor, self.rate_initial_delay))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "UploadConfig":
        """
        Build configuration from environment variables.

        Each field maps to WAUPLOADER_<FIELD_NAME_UPPER>, e.g.
        WAUPLOADER_MAX_RETRIES=5. Explicit keyword overrides win.
        """
        environ = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            values[f.name] = _coerce(f.name, raw, f.default)
        values.update(overrides)
        return cls(**values)


def _coerce(name: str, raw: str, default):
    raw = raw.strip()
    try:
        if isinstance(default, bool):
            return raw.lower() in {"1", "true", "yes", "on"}
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float) or name == "max_quota_wait":
            return float(raw)
    except ValueError as e:
        raise ValueError(f"Invalid value for {ENV_PREFIX}{name.upper()}: {raw!r}") from e
    return raw
