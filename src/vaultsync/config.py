"""Runtime settings, read from ``VAULTSYNC_*`` environment variables."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field

from .crypto import MAX_ITERATIONS, PBKDF2_ITERATIONS

ENV_PREFIX = "VAULTSYNC_"


def default_data_dir() -> Path:
    if sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", Path.home()))
    else:
        base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))
    return base / "vaultsync"


class Settings(BaseModel):
    data_dir: Path = Field(default_factory=default_data_dir)
    collection: str = Field(default="default", min_length=1, pattern=r"^[A-Za-z0-9_.-]+$")
    remote_url: Optional[str] = None
    remote_token: Optional[str] = None
    timeout: float = Field(default=30.0, gt=0)
    kdf_iterations: int = Field(default=PBKDF2_ITERATIONS, ge=1, le=MAX_ITERATIONS)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> Settings:
        """Build settings from *environ* (defaults to ``os.environ``).

        Unset or empty variables fall back to the field defaults; invalid
        values raise :class:`pydantic.ValidationError`.
        """
        env = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = env.get(ENV_PREFIX + name.upper())
            if raw:
                values[name] = raw
        return cls.model_validate(values)
