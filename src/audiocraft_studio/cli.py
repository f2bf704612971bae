#!/usr/bin/env python3
# Local front end for the enhancement pipeline:
# settings → filter chain → ffmpeg (or pass-through when ffmpeg is missing)

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import shutil
import sys
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Any, Optional, Sequence

# --- progress bars ---
from tqdm.auto import tqdm
PROGRESS_STREAM = sys.stdout
IS_TTY = PROGRESS_STREAM.isatty()

from .adapters.ffmpeg import EngineProbe
from .adapters.workspace import TempFileScope
from .constants.enhance_defaults import OUTPUT
from .features.pipeline import AudioEnhancer, ProcessingError, ProcessingMode
from .features.settings import parse_settings_blob
from .util.config import EngineConfig, LoggingConfig


logger = logging.getLogger(__name__)


LOG = LoggingConfig()

LOG_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}

_FLAG_TO_KEY = {
    "pitch": "pitchSemitones",
    "tempo": "tempoPercent",
    "warmth": "warmthLevel",
    "reverb": "reverbLevel",
}


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    engine = EngineConfig()
    ap = argparse.ArgumentParser(
        description="Humanize an audio file: micro pitch/tempo shifts, warmth, reverb, normalization, EQ"
    )
    ap.add_argument("audio", help="Path to input audio (wav/mp3/flac)")
    ap.add_argument("-o", "--output", default=None,
                    help=f"Output path (default: <name>_enhanced{OUTPUT.suffix} next to the input)")
    ap.add_argument("--settings", default=None, help="JSON settings object, as sent by the web client")
    ap.add_argument("--pitch", type=float, default=None, help="Pitch shift in semitones")
    ap.add_argument("--tempo", type=float, default=None, help="Tempo in percent (100 = unchanged)")
    ap.add_argument("--warmth", type=float, default=None, help="Harmonic warmth 0-100")
    ap.add_argument("--reverb", type=float, default=None, help="Reverb amount 0-100")
    ap.add_argument("--no-clamp", action="store_true",
                    help="Pass out-of-range settings to ffmpeg instead of clamping them")
    ap.add_argument("--print-chain", action="store_true",
                    help="Print the ffmpeg filter graph and exit without processing")
    ap.add_argument("--ffmpeg", default=engine.binary, help="ffmpeg executable (default: %(default)s)")
    ap.add_argument("--timeout", type=float, default=engine.process_timeout,
                    help="Seconds before the ffmpeg run is aborted (default: %(default)s)")
    ap.add_argument(
        "--log-level",
        choices=tuple(LOG_LEVELS.keys()),
        default=LOG.level,
        help="Logging verbosity (default: %(default)s)",
    )
    return ap.parse_args(argv)


def collect_settings(args: argparse.Namespace) -> dict[str, Any]:
    """Merge ``--settings`` JSON with the individual flags; flags win."""

    raw = dict(parse_settings_blob(args.settings))
    for flag, key in _FLAG_TO_KEY.items():
        value = getattr(args, flag, None)
        if value is not None:
            raw[key] = value
    return raw


def _default_output(audio: Path, mode: ProcessingMode) -> Path:
    suffix = OUTPUT.suffix if mode is ProcessingMode.REAL else audio.suffix
    return audio.with_name(f"{audio.stem}_enhanced{suffix}")


def run_enhancement(args: argparse.Namespace) -> Optional[Path]:
    """Execute the enhancement pipeline using CLI-style arguments."""

    audio = Path(args.audio).expanduser().resolve()
    if not audio.exists():
        raise SystemExit(f"Audio not found: {audio}")

    config = EngineConfig(binary=args.ffmpeg, process_timeout=args.timeout)
    enhancer = AudioEnhancer(EngineProbe(config), config=config, clamp=not args.no_clamp)
    raw_settings = collect_settings(args)

    if args.print_chain:
        _, chain = enhancer.plan(raw_settings)
        print(chain.render())
        return None

    with TemporaryDirectory(prefix="audiocraft_") as tmpdir, TempFileScope(tmpdir) as scope:
        bar = tqdm(
            total=100, desc="[enhance]", unit="%",
            dynamic_ncols=True, mininterval=0.2, leave=True,
            disable=not IS_TTY, file=PROGRESS_STREAM,
            bar_format="{l_bar}{bar}| {n:.0f}/{total:.0f}% [{elapsed}<{remaining}]",
        )

        def _progress(percent: float) -> None:
            bar.update(max(0.0, percent - bar.n))

        try:
            outcome = asyncio.run(enhancer.enhance(audio, raw_settings, scope, on_progress=_progress))
        except ProcessingError as exc:
            raise SystemExit(f"Processing failed: {exc.message}") from exc
        finally:
            bar.close()

        output = Path(args.output).expanduser().resolve() if args.output else _default_output(audio, outcome.mode)
        output.parent.mkdir(parents=True, exist_ok=True)
        if outcome.mode is ProcessingMode.SIMULATED:
            if output == audio:
                logger.warning("ffmpeg unavailable; leaving %s unmodified in place", audio.name)
            else:
                logger.warning("ffmpeg unavailable; copying %s unmodified", audio.name)
                shutil.copyfile(audio, output)
        else:
            shutil.move(str(outcome.output_path), output)

    logger.info("Wrote %s [%s: %s]", output, outcome.mode.value, outcome.chain.render())
    print(f"{output} ({outcome.mode.value})")
    return output


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=LOG_LEVELS.get(args.log_level, logging.INFO),
        format=LOG.format,
        force=True,
    )
    run_enhancement(args)


if __name__ == "__main__":
    # Encourage unbuffered output so bars animate in more shells
    os.environ.setdefault("PYTHONUNBUFFERED", "1")
    main()
