"""Thin wrapper around the ffmpeg executable.

Two entry points: :class:`EngineProbe` answers whether the engine is usable
right now, and :func:`run_filter_chain` renders one job. Both block; callers
on the event loop dispatch them to an executor.
"""

from __future__ import annotations

import logging
import re
import shlex
import shutil
import subprocess
import threading
import time
from collections import deque
from pathlib import Path
from typing import Callable, Optional, Sequence

from ..util.config import EngineConfig
from .read_duration_seconds import read_duration_seconds

logger = logging.getLogger(__name__)

StartHook = Callable[[str], None]
ProgressHook = Callable[[float], None]

_PROGRESS_KEY = re.compile(r"^[a-z][a-z0-9_]*$")
_DURATION = re.compile(r"Duration:\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")


class EngineError(RuntimeError):
    """The engine ran but reported a failure (or could not be launched)."""

    def __init__(self, message: str, diagnostics: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.message = message
        self.diagnostics = list(diagnostics)


class EngineTimeoutError(EngineError):
    """The engine exceeded ``EngineConfig.process_timeout`` and was killed."""


class EngineProbe:
    """Report whether ffmpeg is present and can encode the output codec.

    With ``probe_cache_ttl == 0`` every call re-queries the engine. A positive
    TTL caches positive and negative answers for that many seconds.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or EngineConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._cached: tuple[float, bool] | None = None

    @property
    def config(self) -> EngineConfig:
        return self._config

    def invalidate(self) -> None:
        with self._lock:
            self._cached = None

    def check(self) -> bool:
        ttl = self._config.probe_cache_ttl
        if ttl > 0:
            with self._lock:
                if self._cached is not None and self._clock() - self._cached[0] < ttl:
                    return self._cached[1]
        available = self._query()
        if ttl > 0:
            with self._lock:
                self._cached = (self._clock(), available)
        return available

    def _query(self) -> bool:
        binary = shutil.which(self._config.binary)
        if binary is None:
            logger.warning("Engine %r not found on PATH", self._config.binary)
            return False
        try:
            result = subprocess.run(
                [binary, "-hide_banner", "-encoders"],
                check=True,
                capture_output=True,
                text=True,
                timeout=self._config.probe_timeout,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.warning("Engine capability query failed: %s", exc)
            return False

        encoder = self._config.required_encoder
        if encoder and not re.search(rf"\b{re.escape(encoder)}\b", result.stdout or ""):
            logger.warning("Engine is missing the %s encoder", encoder)
            return False
        return True


def build_command(
    binary: str,
    input_path: str | Path,
    output_path: str | Path,
    filter_graph: str,
    config: EngineConfig,
) -> list[str]:
    return [
        binary,
        "-hide_banner",
        "-nostdin",
        "-y",
        "-i",
        str(input_path),
        "-af",
        filter_graph,
        "-c:a",
        config.audio_codec,
        "-b:a",
        config.audio_bitrate,
        "-progress",
        "pipe:1",
        "-nostats",
        str(output_path),
    ]


def _parse_duration(line: str) -> Optional[float]:
    match = _DURATION.search(line)
    if not match:
        return None
    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def _notify(on_progress: ProgressHook, percent: float) -> None:
    try:
        on_progress(percent)
    except Exception:
        logger.warning("Progress observer failed at %.0f%%", percent, exc_info=True)


def run_filter_chain(
    input_path: str | Path,
    output_path: str | Path,
    filter_graph: str,
    *,
    config: EngineConfig | None = None,
    time_scale: float = 1.0,
    on_start: Optional[StartHook] = None,
    on_progress: Optional[ProgressHook] = None,
) -> Path:
    """Render *input_path* through *filter_graph* into *output_path*.

    ``on_start`` receives the resolved command line; ``on_progress`` receives
    a completion percentage whenever it advances. Neither affects the result.
    *time_scale* converts input duration to expected output duration when the
    chain changes tempo.

    Raises :class:`EngineError` when ffmpeg fails and
    :class:`EngineTimeoutError` when it runs past ``process_timeout``.
    """

    config = config or EngineConfig()
    binary = shutil.which(config.binary)
    if binary is None:
        raise EngineError(f"{config.binary} not found on PATH")

    cmd = build_command(binary, input_path, output_path, filter_graph, config)
    command_line = shlex.join(cmd)
    logger.info("Starting engine: %s", command_line)
    if on_start is not None:
        on_start(command_line)

    total = read_duration_seconds(str(input_path))
    diagnostics: deque[str] = deque(maxlen=config.diagnostics_lines)

    try:
        # stderr is folded into the progress pipe so a single reader drains both
        proc = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except OSError as exc:
        raise EngineError(f"Failed to launch {binary}: {exc}") from exc

    timed_out = threading.Event()

    def _kill() -> None:
        timed_out.set()
        proc.kill()

    timer: threading.Timer | None = None
    if config.process_timeout and config.process_timeout > 0:
        timer = threading.Timer(config.process_timeout, _kill)
        timer.daemon = True
        timer.start()

    reported = -1
    try:
        for raw_line in proc.stdout or ():
            line = raw_line.strip()
            if not line:
                continue
            key, sep, value = line.partition("=")
            if sep and _PROGRESS_KEY.match(key):
                # out_time_ms is microseconds too, despite the name
                if key in {"out_time_us", "out_time_ms"} and total and on_progress is not None:
                    try:
                        elapsed = int(value) / 1_000_000
                    except ValueError:
                        continue
                    percent = min(100.0, 100.0 * elapsed / (total * time_scale))
                    if int(percent) > reported:
                        reported = int(percent)
                        logger.debug("Engine progress %.0f%%", percent)
                        _notify(on_progress, percent)
                continue
            diagnostics.append(line)
            if total is None:
                total = _parse_duration(line)
        returncode = proc.wait()
    except OSError as exc:
        raise EngineError(f"Lost the ffmpeg output stream: {exc}", diagnostics) from exc
    finally:
        if timer is not None:
            timer.cancel()
        if proc.poll() is None:
            # read loop bailed out early; reap the child
            proc.kill()
            proc.wait()
        if proc.stdout is not None:
            proc.stdout.close()

    if timed_out.is_set():
        raise EngineTimeoutError(
            f"ffmpeg timed out after {config.process_timeout:g}s", diagnostics
        )
    if returncode != 0:
        reason = diagnostics[-1] if diagnostics else "no diagnostics"
        raise EngineError(f"ffmpeg exited with status {returncode}: {reason}", diagnostics)

    output = Path(output_path)
    if not output.exists():
        raise EngineError("ffmpeg reported success but wrote no output", diagnostics)
    if on_progress is not None and reported < 100:
        _notify(on_progress, 100.0)
    return output


__all__ = [
    "EngineError",
    "EngineProbe",
    "EngineTimeoutError",
    "build_command",
    "run_filter_chain",
]
