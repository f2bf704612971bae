"""Core enhancement features."""

from .filter_chain import FilterChain, FilterStage, build_filter_chain
from .pipeline import (
    AudioEnhancer,
    EnhancementOutcome,
    ProcessingError,
    ProcessingJob,
    ProcessingMode,
)
from .settings import EnhancementSettings, normalize_settings

__all__ = [
    "AudioEnhancer",
    "EnhancementOutcome",
    "EnhancementSettings",
    "FilterChain",
    "FilterStage",
    "ProcessingError",
    "ProcessingJob",
    "ProcessingMode",
    "build_filter_chain",
    "normalize_settings",
]
