"""Ownership and cleanup of per-job temporary files."""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)


class TempFileScope:
    """Track the temporary files of one job and delete them exactly once.

    Paths are registered as they come into existence (the upload first, the
    rendered output later). :meth:`release` unlinks each registered path a
    single time; later calls are no-ops. Deletion errors are logged and
    swallowed so cleanup never changes the outcome of a request.
    """

    def __init__(self, workdir: str | Path, paths: Iterable[str | Path] = ()) -> None:
        self._workdir = Path(workdir)
        self._paths: list[Path] = []
        self._lock = threading.Lock()
        self._released = False
        for path in paths:
            self.register(path)

    @property
    def workdir(self) -> Path:
        return self._workdir

    @property
    def paths(self) -> tuple[Path, ...]:
        with self._lock:
            return tuple(self._paths)

    @property
    def released(self) -> bool:
        return self._released

    def register(self, path: str | Path) -> Path:
        resolved = Path(path)
        with self._lock:
            if self._released:
                raise RuntimeError("Cannot register files on a released scope")
            if resolved not in self._paths:
                self._paths.append(resolved)
        return resolved

    def new_path(self, suffix: str = "", prefix: str = "job") -> Path:
        """Register and return a fresh, collision-free path in the workdir."""

        self._workdir.mkdir(parents=True, exist_ok=True)
        return self.register(self._workdir / f"{prefix}-{uuid.uuid4().hex}{suffix}")

    def release(self) -> list[Path]:
        with self._lock:
            if self._released:
                return []
            self._released = True
            paths = list(self._paths)

        removed: list[Path] = []
        for path in paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Failed to delete temporary file %s: %s", path, exc)
                continue
            removed.append(path)
        logger.debug("Released %d temporary file(s)", len(removed))
        return removed

    def __enter__(self) -> "TempFileScope":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.release()
        return False


class CleanupScheduler:
    """Release scopes after delivery, with a grace timer as a fallback.

    ``schedule`` arms a timer on the running loop. The response's background
    task calls :meth:`release_now` once the body has been sent; if that never
    happens (client disconnect) the timer releases the scope instead.
    """

    def __init__(self, grace_seconds: float) -> None:
        self._grace = max(0.0, float(grace_seconds))
        self._pending: dict[TempFileScope, asyncio.TimerHandle] = {}

    @property
    def grace_seconds(self) -> float:
        return self._grace

    @property
    def pending(self) -> int:
        return len(self._pending)

    def schedule(self, scope: TempFileScope) -> None:
        if scope in self._pending or scope.released:
            return
        loop = asyncio.get_running_loop()
        self._pending[scope] = loop.call_later(self._grace, self._expire, scope)

    async def release_now(self, scope: TempFileScope) -> None:
        handle = self._pending.pop(scope, None)
        if handle is not None:
            handle.cancel()
        scope.release()

    def _expire(self, scope: TempFileScope) -> None:
        if self._pending.pop(scope, None) is None:
            return
        logger.info("Grace period elapsed; releasing %s", ", ".join(map(str, scope.paths)))
        scope.release()

    def shutdown(self) -> None:
        """Release everything still pending, e.g. when the app stops."""

        pending, self._pending = self._pending, {}
        for scope, handle in pending.items():
            handle.cancel()
            scope.release()


__all__ = ["CleanupScheduler", "TempFileScope"]
