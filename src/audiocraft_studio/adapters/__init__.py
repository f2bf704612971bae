"""Adapter layer for external dependencies."""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    "CleanupScheduler",
    "EngineError",
    "EngineProbe",
    "EngineTimeoutError",
    "TempFileScope",
    "run_filter_chain",
]

_ATTR_TO_MODULE = {
    "CleanupScheduler": ("audiocraft_studio.adapters.workspace", "CleanupScheduler"),
    "EngineError": ("audiocraft_studio.adapters.ffmpeg", "EngineError"),
    "EngineProbe": ("audiocraft_studio.adapters.ffmpeg", "EngineProbe"),
    "EngineTimeoutError": ("audiocraft_studio.adapters.ffmpeg", "EngineTimeoutError"),
    "TempFileScope": ("audiocraft_studio.adapters.workspace", "TempFileScope"),
    "run_filter_chain": ("audiocraft_studio.adapters.ffmpeg", "run_filter_chain"),
}


def __getattr__(name: str) -> Any:
    try:
        module_name, attr_name = _ATTR_TO_MODULE[name]
    except KeyError as exc:
        raise AttributeError(f"module {__name__} has no attribute {name}") from exc
    module = import_module(module_name)
    return getattr(module, attr_name)
