from __future__ import annotations

# External engine (ffmpeg) settings
from dataclasses import dataclass

from ...constants.enhance_defaults import OUTPUT


@dataclass
class EngineConfig:
    binary: str = "ffmpeg"             # resolved with shutil.which
    probe_timeout: float = 10.0        # seconds for the capability listing
    process_timeout: float = 900.0     # seconds before a running job is killed
    probe_cache_ttl: float = 0.0       # 0 → probe on every request
    required_encoder: str = OUTPUT.codec
    audio_codec: str = OUTPUT.codec
    audio_bitrate: str = OUTPUT.bitrate
    diagnostics_lines: int = 40        # engine output tail kept for errors
