"""Web service settings resolved from ``AUDIOCRAFT_*`` environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from .engine import EngineConfig

_ENV_PREFIX = "AUDIOCRAFT_"
_DEFAULT_SECRET = "audiocraft-secret-key-2024"


@dataclass
class ServiceConfig:
    upload_dir: Path = Path("uploads")
    public_dir: Optional[Path] = Path("public")   # served as the frontend when present
    max_upload_bytes: int = 100 * 1024 * 1024
    cleanup_grace_seconds: float = 30.0
    free_tracks: int = 3
    jwt_secret: str = _DEFAULT_SECRET
    token_ttl_seconds: int = 7 * 24 * 3600
    bcrypt_rounds: int = 12
    environment: str = "development"
    charge_simulated: bool = True      # simulated runs still cost a credit
    clamp_settings: bool = True
    engine: EngineConfig = field(default_factory=EngineConfig)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServiceConfig":
        env = os.environ if environ is None else environ

        def _get(name: str) -> Optional[str]:
            value = env.get(_ENV_PREFIX + name)
            return value.strip() if value and value.strip() else None

        config = cls()
        if (value := _get("UPLOAD_DIR")) is not None:
            config.upload_dir = Path(value).expanduser()
        if (value := _get("PUBLIC_DIR")) is not None:
            config.public_dir = Path(value).expanduser()
        if (value := _get("MAX_UPLOAD_MB")) is not None:
            config.max_upload_bytes = int(float(value) * 1024 * 1024)
        if (value := _get("CLEANUP_GRACE")) is not None:
            config.cleanup_grace_seconds = float(value)
        if (value := _get("FREE_TRACKS")) is not None:
            config.free_tracks = int(value)
        if (value := _get("JWT_SECRET")) is not None:
            config.jwt_secret = value
        if (value := _get("ENV")) is not None:
            config.environment = value
        if (value := _get("CHARGE_SIMULATED")) is not None:
            config.charge_simulated = value.lower() not in {"0", "false", "off", "no"}
        if (value := _get("CLAMP_SETTINGS")) is not None:
            config.clamp_settings = value.lower() not in {"0", "false", "off", "no"}
        if (value := _get("FFMPEG")) is not None:
            config.engine.binary = value
        if (value := _get("ENGINE_TIMEOUT")) is not None:
            config.engine.process_timeout = float(value)
        if (value := _get("PROBE_TTL")) is not None:
            config.engine.probe_cache_ttl = float(value)
        return config


__all__ = ["ServiceConfig"]
