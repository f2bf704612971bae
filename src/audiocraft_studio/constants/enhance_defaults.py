"""Defaults, ranges and fixed stage parameters for the enhancement chain."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SettingDefaults:
    """Values substituted when a client omits a field or sends garbage."""

    pitch_semitones: float = 0.1
    tempo_percent: float = 99.5
    warmth_level: float = 8.0
    reverb_level: float = 8.0


@dataclass(frozen=True)
class SettingRanges:
    """Inclusive ranges applied when clamping is enabled."""

    pitch_semitones: tuple[float, float] = (-12.0, 12.0)
    # atempo refuses rates below 0.5
    tempo_percent: tuple[float, float] = (50.0, 200.0)
    warmth_level: tuple[float, float] = (0.0, 100.0)
    reverb_level: tuple[float, float] = (0.0, 100.0)


@dataclass(frozen=True)
class StageParameters:
    """Fixed parameters of the filter stages that settings do not touch."""

    base_sample_rate: int = 44100
    compressor_ratio: float = 2.0
    compressor_threshold_db: float = -20.0
    echo_in_gain: float = 0.8
    echo_out_gain: float = 0.9
    echo_max_delay_ms: float = 50.0
    echo_max_decay: float = 0.3
    normalize_frame_ms: int = 150
    normalize_gauss_size: int = 15
    eq_frequency_hz: float = 1000.0
    eq_width_hz: float = 200.0
    eq_gain_db: float = 0.5


@dataclass(frozen=True)
class OutputEncoding:
    """High quality output contract. Not exposed to clients."""

    codec: str = "libmp3lame"
    bitrate: str = "320k"
    suffix: str = ".mp3"
    media_type: str = "audio/mpeg"


DEFAULTS = SettingDefaults()
RANGES = SettingRanges()
STAGES = StageParameters()
OUTPUT = OutputEncoding()

__all__ = [
    "DEFAULTS",
    "OUTPUT",
    "OutputEncoding",
    "RANGES",
    "STAGES",
    "SettingDefaults",
    "SettingRanges",
    "StageParameters",
]
