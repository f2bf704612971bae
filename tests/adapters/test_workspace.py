from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import pytest

from audiocraft_studio.adapters.workspace import CleanupScheduler, TempFileScope


def _touch(path: Path) -> Path:
    path.write_bytes(b"x")
    return path


def test_new_path_is_unique_and_registered(tmp_path: Path) -> None:
    scope = TempFileScope(tmp_path / "work")

    first = scope.new_path(suffix=".mp3", prefix="enhanced")
    second = scope.new_path(suffix=".mp3", prefix="enhanced")

    assert first != second
    assert first.parent == tmp_path / "work"
    assert first.name.startswith("enhanced-") and first.suffix == ".mp3"
    assert scope.paths == (first, second)


def test_release_deletes_once(tmp_path: Path) -> None:
    upload = _touch(tmp_path / "upload.wav")
    scope = TempFileScope(tmp_path, [upload, upload])
    output = _touch(scope.new_path(suffix=".mp3"))

    assert scope.release() == [upload, output]
    assert not upload.exists() and not output.exists()
    assert scope.release() == []
    with pytest.raises(RuntimeError):
        scope.register(tmp_path / "late.wav")


def test_release_tolerates_missing_and_failing_files(tmp_path: Path, monkeypatch, caplog) -> None:
    stubborn = _touch(tmp_path / "stubborn.wav")
    scope = TempFileScope(tmp_path, [tmp_path / "never-created.mp3", stubborn])
    original_unlink = Path.unlink

    def failing_unlink(self, missing_ok=False):  # type: ignore[no-untyped-def]
        if self == stubborn:
            raise PermissionError("busy")
        return original_unlink(self, missing_ok=missing_ok)

    monkeypatch.setattr(Path, "unlink", failing_unlink)

    with caplog.at_level(logging.WARNING):
        removed = scope.release()

    assert removed == [tmp_path / "never-created.mp3"]
    assert "Failed to delete temporary file" in caplog.text


def test_scope_context_manager_releases(tmp_path: Path) -> None:
    with TempFileScope(tmp_path) as scope:
        path = _touch(scope.new_path())
    assert not path.exists()


@pytest.mark.asyncio()
async def test_release_now_cancels_grace_timer(tmp_path: Path) -> None:
    scheduler = CleanupScheduler(grace_seconds=60)
    scope = TempFileScope(tmp_path, [_touch(tmp_path / "a.wav")])

    scheduler.schedule(scope)
    assert scheduler.pending == 1

    await scheduler.release_now(scope)

    assert scheduler.pending == 0
    assert scope.released
    assert not (tmp_path / "a.wav").exists()


@pytest.mark.asyncio()
async def test_grace_timer_releases_undelivered_scope(tmp_path: Path) -> None:
    scheduler = CleanupScheduler(grace_seconds=0.01)
    scope = TempFileScope(tmp_path, [_touch(tmp_path / "slow.wav")])

    scheduler.schedule(scope)
    await asyncio.sleep(0.1)

    assert scope.released
    assert scheduler.pending == 0
    assert not (tmp_path / "slow.wav").exists()


@pytest.mark.asyncio()
async def test_shutdown_releases_pending_scopes(tmp_path: Path) -> None:
    scheduler = CleanupScheduler(grace_seconds=60)
    scopes = [TempFileScope(tmp_path, [_touch(tmp_path / f"{i}.wav")]) for i in range(3)]
    for scope in scopes:
        scheduler.schedule(scope)

    scheduler.shutdown()

    assert scheduler.pending == 0
    assert all(scope.released for scope in scopes)


@pytest.mark.asyncio()
async def test_releasing_one_scope_leaves_others(tmp_path: Path) -> None:
    scheduler = CleanupScheduler(grace_seconds=60)
    mine = TempFileScope(tmp_path, [_touch(tmp_path / "mine.wav")])
    theirs = TempFileScope(tmp_path, [_touch(tmp_path / "theirs.wav")])
    scheduler.schedule(mine)
    scheduler.schedule(theirs)

    await scheduler.release_now(mine)

    assert (tmp_path / "theirs.wav").exists()
    assert scheduler.pending == 1
    scheduler.shutdown()
