"""Deterministic translation of settings into an ffmpeg ``-af`` filter graph.

Stages are emitted in a fixed order and every stage consumes the output of
the previous one::

    tempo → pitch → warmth → reverb → normalize → eq

The first four are conditional on the settings; ``normalize`` and ``eq`` are
always present so a chain is never a no-op.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterator

from ..constants.enhance_defaults import STAGES
from .settings import EnhancementSettings

STAGE_ORDER = ("tempo", "pitch", "warmth", "reverb", "normalize", "eq")

# format_number keeps six decimals, so this is the smallest non-zero rendering
_SMALLEST_RENDERED = 1e-6


def format_number(value: float) -> str:
    """Render *value* with six decimals and no trailing zeros."""

    text = f"{value:.6f}".rstrip("0").rstrip(".")
    return "0" if text in {"", "-0"} else text


@dataclass(frozen=True)
class FilterStage:
    """One stage of the chain; may expand to several ffmpeg filters."""

    name: str
    filters: tuple[str, ...]
    params: dict[str, float] = field(default_factory=dict, compare=False)

    def render(self) -> str:
        return ",".join(self.filters)


@dataclass(frozen=True)
class FilterChain:
    stages: tuple[FilterStage, ...]

    def __iter__(self) -> Iterator[FilterStage]:
        return iter(self.stages)

    def __len__(self) -> int:
        return len(self.stages)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(stage.name for stage in self.stages)

    def stage(self, name: str) -> FilterStage | None:
        return next((s for s in self.stages if s.name == name), None)

    def directives(self) -> list[str]:
        return [f for stage in self.stages for f in stage.filters]

    def render(self) -> str:
        """Return the comma separated filter graph passed to ``-af``."""
        return ",".join(stage.render() for stage in self.stages)


def pitch_ratio(semitones: float) -> float:
    return 2.0 ** (semitones / 12.0)


def makeup_gain(warmth_level: float) -> float:
    return 1.0 + warmth_level / 200.0


def _tempo_stage(tempo_percent: float) -> FilterStage:
    rate = tempo_percent / 100.0
    return FilterStage("tempo", (f"atempo={format_number(rate)}",), {"rate": rate})


def _pitch_stage(semitones: float) -> FilterStage:
    ratio = pitch_ratio(semitones)
    base = STAGES.base_sample_rate
    shifted = base * ratio
    return FilterStage(
        "pitch",
        (f"asetrate={format_number(shifted)}", f"aresample={base}"),
        {"ratio": ratio, "sample_rate": shifted},
    )


def _warmth_stage(warmth_level: float) -> FilterStage:
    gain = makeup_gain(warmth_level)
    directive = (
        f"acompressor=threshold={format_number(STAGES.compressor_threshold_db)}dB"
        f":ratio={format_number(STAGES.compressor_ratio)}"
        f":makeup={format_number(gain)}"
    )
    return FilterStage("warmth", (directive,), {"makeup": gain})


def _reverb_stage(reverb_level: float) -> FilterStage:
    amount = reverb_level / 100.0
    # aecho needs strictly positive delays and decays
    delay = max(amount * STAGES.echo_max_delay_ms, _SMALLEST_RENDERED)
    decay = max(amount * STAGES.echo_max_decay, _SMALLEST_RENDERED)
    directive = (
        f"aecho={format_number(STAGES.echo_in_gain)}:{format_number(STAGES.echo_out_gain)}"
        f":{format_number(delay)}:{format_number(decay)}"
    )
    return FilterStage("reverb", (directive,), {"delay": delay, "decay": decay})


def _normalize_stage() -> FilterStage:
    directive = f"dynaudnorm=f={STAGES.normalize_frame_ms}:g={STAGES.normalize_gauss_size}"
    return FilterStage("normalize", (directive,))


def _eq_stage() -> FilterStage:
    directive = (
        f"equalizer=f={format_number(STAGES.eq_frequency_hz)}"
        f":width_type=h:width={format_number(STAGES.eq_width_hz)}"
        f":g={format_number(STAGES.eq_gain_db)}"
    )
    return FilterStage("eq", (directive,))


def build_filter_chain(settings: EnhancementSettings) -> FilterChain:
    """Build the filter chain for *settings*. Pure and deterministic."""

    stages: list[FilterStage] = []
    if settings.tempo_percent != 100:
        stages.append(_tempo_stage(settings.tempo_percent))
    if settings.pitch_semitones != 0:
        stages.append(_pitch_stage(settings.pitch_semitones))
    if settings.warmth_level > 0:
        stages.append(_warmth_stage(settings.warmth_level))
    if settings.reverb_level > 0:
        stages.append(_reverb_stage(settings.reverb_level))
    stages.append(_normalize_stage())
    stages.append(_eq_stage())
    return FilterChain(tuple(stages))


def semitones_from_ratio(ratio: float) -> float:
    return 12.0 * math.log2(ratio)


__all__ = [
    "FilterChain",
    "FilterStage",
    "STAGE_ORDER",
    "build_filter_chain",
    "format_number",
    "makeup_gain",
    "pitch_ratio",
    "semitones_from_ratio",
]
