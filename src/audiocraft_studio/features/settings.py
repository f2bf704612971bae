"""Turn whatever the client sent into a fully populated settings record."""

from __future__ import annotations

import json
import logging
import math
from dataclasses import asdict, dataclass
from typing import Any, Mapping

from ..constants.enhance_defaults import DEFAULTS, RANGES

logger = logging.getLogger(__name__)

# Accepted spellings per field, first match wins.
_ALIASES: dict[str, tuple[str, ...]] = {
    "pitch_semitones": ("pitchSemitones", "pitch_semitones", "pitch"),
    "tempo_percent": ("tempoPercent", "tempo_percent", "tempo"),
    "warmth_level": ("warmthLevel", "warmth_level", "warmth"),
    "reverb_level": ("reverbLevel", "reverb_level", "reverb"),
}


@dataclass(frozen=True)
class EnhancementSettings:
    """Typed humanization parameters for a single request."""

    pitch_semitones: float = DEFAULTS.pitch_semitones
    tempo_percent: float = DEFAULTS.tempo_percent
    warmth_level: float = DEFAULTS.warmth_level
    reverb_level: float = DEFAULTS.reverb_level

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


def _coerce_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def parse_settings_blob(raw: Any) -> Mapping[str, Any]:
    if raw is None:
        return {}
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return {}
        try:
            raw = json.loads(text)
        except json.JSONDecodeError:
            logger.debug("Settings blob is not valid JSON; using defaults")
            return {}
    if not isinstance(raw, Mapping):
        logger.debug("Settings blob is %s, not an object; using defaults", type(raw).__name__)
        return {}
    return raw


def normalize_settings(raw: Any = None, *, clamp: bool = True) -> EnhancementSettings:
    """Return an :class:`EnhancementSettings` for *raw* without ever failing.

    *raw* may be ``None``, a JSON document (``str``/``bytes``) or a mapping.
    Each field is coerced to ``float`` independently; a missing or non-numeric
    value falls back to its default. With *clamp* enabled, values outside the
    documented range are pulled back to the nearest bound.
    """

    source = parse_settings_blob(raw)
    values: dict[str, float] = {}
    for field_name, aliases in _ALIASES.items():
        default = getattr(DEFAULTS, field_name)
        supplied = next((source[key] for key in aliases if key in source), None)
        number = _coerce_number(supplied)
        if number is None:
            if supplied is not None:
                logger.debug("Defaulting %s: %r is not numeric", field_name, supplied)
            number = default
        if clamp:
            low, high = getattr(RANGES, field_name)
            bounded = min(max(number, low), high)
            if bounded != number:
                logger.warning("Clamped %s from %s to %s", field_name, number, bounded)
            number = bounded
        values[field_name] = number
    return EnhancementSettings(**values)


__all__ = ["EnhancementSettings", "normalize_settings", "parse_settings_blob"]
