# Config dataclass exports.
# Re-export config dataclasses so callers can do:
#   from audiocraft_studio.util.config import EngineConfig, ...

from .engine import EngineConfig
from .logging import LoggingConfig
from .service import ServiceConfig

__all__ = [
    "EngineConfig",
    "LoggingConfig",
    "ServiceConfig",
]
