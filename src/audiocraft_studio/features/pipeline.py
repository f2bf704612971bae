"""Enhancement pipeline: normalize → build chain → probe → render or pass through."""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

from ..adapters.ffmpeg import EngineError, EngineProbe, ProgressHook, run_filter_chain
from ..adapters.workspace import TempFileScope
from ..constants.enhance_defaults import OUTPUT
from ..util.config import EngineConfig
from .filter_chain import FilterChain, build_filter_chain
from .settings import EnhancementSettings, normalize_settings

logger = logging.getLogger(__name__)

Invoker = Callable[..., Path]


class ProcessingMode(str, Enum):
    REAL = "real"
    SIMULATED = "simulated"


class ProcessingError(RuntimeError):
    """The engine failed to render a job. No output is produced."""

    def __init__(self, message: str, diagnostics: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.message = message
        self.diagnostics = list(diagnostics)


@dataclass(frozen=True)
class ProcessingJob:
    input_path: Path
    output_path: Path
    chain: FilterChain
    mode: ProcessingMode


@dataclass(frozen=True)
class EnhancementOutcome:
    job: ProcessingJob
    settings: EnhancementSettings

    @property
    def mode(self) -> ProcessingMode:
        return self.job.mode

    @property
    def output_path(self) -> Path:
        return self.job.output_path

    @property
    def chain(self) -> FilterChain:
        return self.job.chain


class AudioEnhancer:
    """Run one enhancement job against the engine, or simulate it.

    The probe and the engine call both block, so they run on the default
    executor; concurrent jobs share nothing but the probe.
    """

    def __init__(
        self,
        probe: EngineProbe | None = None,
        *,
        config: EngineConfig | None = None,
        invoker: Invoker | None = None,
        clamp: bool = True,
        output_suffix: str = OUTPUT.suffix,
    ) -> None:
        self._config = config or (probe.config if probe is not None else EngineConfig())
        self._probe = probe or EngineProbe(self._config)
        self._invoker = invoker or run_filter_chain
        self._clamp = clamp
        self._suffix = output_suffix

    @property
    def probe(self) -> EngineProbe:
        return self._probe

    def plan(self, raw_settings: Any) -> tuple[EnhancementSettings, FilterChain]:
        settings = normalize_settings(raw_settings, clamp=self._clamp)
        return settings, build_filter_chain(settings)

    async def engine_available(self) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._probe.check)

    async def enhance(
        self,
        input_path: str | Path,
        raw_settings: Any,
        scope: TempFileScope,
        *,
        on_progress: Optional[ProgressHook] = None,
    ) -> EnhancementOutcome:
        """Process *input_path* and report which mode produced the result.

        The rendered file is registered on *scope*. On failure the whole
        scope is released at once and :class:`ProcessingError` is raised.
        """

        source = Path(input_path)
        settings, chain = self.plan(raw_settings)
        logger.debug("Settings %s → %s", settings.to_dict(), chain.render())

        if not await self.engine_available():
            logger.warning("Engine unavailable; passing %s through unmodified", source.name)
            job = ProcessingJob(source, source, chain, ProcessingMode.SIMULATED)
            return EnhancementOutcome(job, settings)

        output = scope.new_path(suffix=self._suffix, prefix="enhanced")
        job = ProcessingJob(source, output, chain, ProcessingMode.REAL)
        tempo = chain.stage("tempo")
        time_scale = 1.0 / tempo.params["rate"] if tempo and tempo.params["rate"] > 0 else 1.0

        call = functools.partial(
            self._invoker,
            source,
            output,
            chain.render(),
            config=self._config,
            time_scale=time_scale,
            on_start=lambda command: logger.debug("Engine command: %s", command),
            on_progress=on_progress,
        )
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, call)
        except EngineError as exc:
            scope.release()
            logger.warning("Processing failed for %s: %s", source.name, exc.message)
            for line in exc.diagnostics[-5:]:
                logger.debug("  engine: %s", line)
            raise ProcessingError(exc.message, exc.diagnostics) from exc
        except Exception as exc:
            scope.release()
            logger.exception("Unexpected failure while processing %s", source.name)
            raise ProcessingError(str(exc) or type(exc).__name__) from exc

        logger.info("Enhanced %s with %d stage(s)", source.name, len(chain))
        return EnhancementOutcome(job, settings)


__all__ = [
    "AudioEnhancer",
    "EnhancementOutcome",
    "ProcessingError",
    "ProcessingJob",
    "ProcessingMode",
]
