"""Request-level orchestration around the enhancement pipeline."""

from __future__ import annotations

import logging
import mimetypes
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from fastapi import UploadFile

from ...adapters.workspace import CleanupScheduler, TempFileScope
from ...constants.enhance_defaults import OUTPUT
from ...features.pipeline import AudioEnhancer, EnhancementOutcome, ProcessingMode
from ...util.config import ServiceConfig
from .accounts import Account, AccountRepository, NoCreditsError

LOGGER = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024

__all__ = [
    "EnhanceResult",
    "EnhanceService",
    "UploadTooLargeError",
    "safe_filename",
]


class UploadTooLargeError(ValueError):
    """The upload exceeded ``ServiceConfig.max_upload_bytes``."""


def safe_filename(filename: Optional[str]) -> str:
    """Return a filesystem-safe representation of *filename*."""

    name = Path(filename or "").name
    sanitized = re.sub(r"[^A-Za-z0-9_.-]+", "_", name)
    return sanitized or "upload"


@dataclass(slots=True)
class EnhanceResult:
    outcome: EnhancementOutcome
    scope: TempFileScope
    credits_remaining: Optional[int]
    download_name: str
    media_type: str

    @property
    def mode(self) -> ProcessingMode:
        return self.outcome.mode


class EnhanceService:
    """Business logic facade consumed by the enhance route."""

    def __init__(
        self,
        config: ServiceConfig,
        enhancer: AudioEnhancer,
        accounts: AccountRepository,
        scheduler: CleanupScheduler | None = None,
    ) -> None:
        self._config = config
        self._enhancer = enhancer
        self._accounts = accounts
        self._scheduler = scheduler or CleanupScheduler(config.cleanup_grace_seconds)
        self._config.upload_dir.mkdir(parents=True, exist_ok=True)

    @property
    def enhancer(self) -> AudioEnhancer:
        return self._enhancer

    @property
    def scheduler(self) -> CleanupScheduler:
        return self._scheduler

    def ensure_can_process(self, account: Account) -> None:
        if not account.can_process():
            raise NoCreditsError("No credits remaining")

    async def save_upload(self, upload: UploadFile, scope: TempFileScope) -> Path:
        suffix = Path(safe_filename(upload.filename)).suffix
        target = scope.new_path(suffix=suffix, prefix="upload")
        written = 0
        try:
            with target.open("wb") as handle:
                while chunk := await upload.read(_CHUNK_SIZE):
                    written += len(chunk)
                    if written > self._config.max_upload_bytes:
                        raise UploadTooLargeError(
                            f"Upload exceeds {self._config.max_upload_bytes} bytes"
                        )
                    handle.write(chunk)
        finally:
            await upload.close()
        LOGGER.debug("Stored upload %s (%d bytes)", target.name, written)
        return target

    def _charge(self, account: Account, outcome: EnhancementOutcome) -> Optional[int]:
        if account.has_active_subscription:
            return None
        if outcome.mode is ProcessingMode.SIMULATED and not self._config.charge_simulated:
            return account.free_tracks_left
        remaining = self._accounts.consume_credit(account.id)
        LOGGER.info("Charged account %s; %d credit(s) left", account.id, remaining)
        return remaining

    def _download_name(self, upload_name: str, outcome: EnhancementOutcome) -> tuple[str, str]:
        stem = Path(upload_name).stem or "upload"
        if outcome.mode is ProcessingMode.REAL:
            return f"enhanced_{stem}{OUTPUT.suffix}", OUTPUT.media_type
        media_type = mimetypes.guess_type(upload_name)[0] or "application/octet-stream"
        return f"enhanced_{upload_name}", media_type

    async def process(
        self,
        account: Account,
        upload: UploadFile,
        raw_settings: Any,
    ) -> EnhanceResult:
        """Run one upload through the pipeline and charge for it.

        Credits are checked before any work and spent only after a
        successful (real or simulated) outcome. The returned scope is armed
        on the scheduler; the caller releases it once the file is delivered.
        """

        self.ensure_can_process(account)
        upload_name = safe_filename(upload.filename)
        scope = TempFileScope(self._config.upload_dir)
        try:
            source = await self.save_upload(upload, scope)
            outcome = await self._enhancer.enhance(
                source,
                raw_settings,
                scope,
                on_progress=lambda pct: LOGGER.debug("%s: %.0f%%", upload_name, pct),
            )
            credits = self._charge(account, outcome)
        except BaseException:
            scope.release()
            raise

        self._scheduler.schedule(scope)
        download_name, media_type = self._download_name(upload_name, outcome)
        return EnhanceResult(outcome, scope, credits, download_name, media_type)
