from __future__ import annotations

import io
from pathlib import Path

import pytest
from starlette.datastructures import UploadFile

from audiocraft_studio.features.pipeline import AudioEnhancer, ProcessingError, ProcessingMode
from audiocraft_studio.adapters.ffmpeg import EngineError
from audiocraft_studio.util.config import EngineConfig, ServiceConfig
from audiocraft_studio.web.services.accounts import Account, AccountRepository, NoCreditsError
from audiocraft_studio.web.services.enhance import EnhanceService, UploadTooLargeError, safe_filename


class StaticProbe:
    def __init__(self, available: bool) -> None:
        self.available = available
        self.config = EngineConfig()

    def check(self) -> bool:
        return self.available


def fake_invoker(input_path, output_path, filter_graph, **kwargs):  # type: ignore[no-untyped-def]
    Path(output_path).write_bytes(b"mp3:" + Path(input_path).read_bytes())
    return Path(output_path)


def failing_invoker(input_path, output_path, filter_graph, **kwargs):  # type: ignore[no-untyped-def]
    raise EngineError("Error while filtering", ["Error while filtering"])


def _upload(data: bytes = b"RIFFdata", name: str = "My Song.wav") -> UploadFile:
    return UploadFile(file=io.BytesIO(data), filename=name)


def _service(tmp_path: Path, *, available: bool = True, invoker=fake_invoker, **overrides):  # type: ignore[no-untyped-def]
    config = ServiceConfig(upload_dir=tmp_path / "uploads", cleanup_grace_seconds=60, **overrides)
    repo = AccountRepository()
    account = repo.insert(
        Account(id="acct-1", email="a@example.com", password_hash="x", free_tracks_left=config.free_tracks)
    )
    enhancer = AudioEnhancer(StaticProbe(available), invoker=invoker)
    return EnhanceService(config, enhancer, repo), repo, account


def test_safe_filename_sanitizes_paths() -> None:
    assert safe_filename("../../bad name.wav") == "bad_name.wav"
    assert safe_filename(None) == "upload"


@pytest.mark.asyncio()
async def test_real_outcome_charges_and_schedules_cleanup(tmp_path: Path) -> None:
    service, repo, account = _service(tmp_path)

    result = await service.process(account, _upload(), "{}")

    assert result.mode is ProcessingMode.REAL
    assert result.credits_remaining == 2
    assert repo.get_by_id(account.id).free_tracks_left == 2
    assert result.download_name == "enhanced_My_Song.mp3"
    assert result.media_type == "audio/mpeg"
    assert result.outcome.output_path.read_bytes() == b"mp3:RIFFdata"
    assert service.scheduler.pending == 1

    await service.scheduler.release_now(result.scope)
    assert list((tmp_path / "uploads").iterdir()) == []


@pytest.mark.asyncio()
async def test_simulated_outcome_still_charges(tmp_path: Path) -> None:
    service, repo, account = _service(tmp_path, available=False)

    result = await service.process(account, _upload(), None)

    assert result.mode is ProcessingMode.SIMULATED
    assert result.outcome.output_path == result.outcome.job.input_path
    assert result.outcome.output_path.read_bytes() == b"RIFFdata"
    assert result.credits_remaining == 2
    assert result.download_name == "enhanced_My_Song.wav"
    assert result.media_type.startswith("audio/")
    service.scheduler.shutdown()


@pytest.mark.asyncio()
async def test_simulated_outcome_can_be_free(tmp_path: Path) -> None:
    service, repo, account = _service(tmp_path, available=False, charge_simulated=False)

    result = await service.process(account, _upload(), None)

    assert result.credits_remaining == 3
    assert repo.get_by_id(account.id).free_tracks_left == 3
    service.scheduler.shutdown()


@pytest.mark.asyncio()
async def test_subscribers_are_not_charged(tmp_path: Path) -> None:
    service, repo, account = _service(tmp_path)
    repo.set_subscription(account.id, "active")
    subscriber = repo.get_by_id(account.id)

    for _ in range(2):
        result = await service.process(subscriber, _upload(), None)
        assert result.credits_remaining is None

    assert repo.get_by_id(account.id).free_tracks_left == 3
    service.scheduler.shutdown()


@pytest.mark.asyncio()
async def test_processing_error_leaves_credits_and_no_files(tmp_path: Path) -> None:
    service, repo, account = _service(tmp_path, invoker=failing_invoker)

    with pytest.raises(ProcessingError, match="Error while filtering"):
        await service.process(account, _upload(), "{}")

    assert repo.get_by_id(account.id).free_tracks_left == 3
    assert list((tmp_path / "uploads").iterdir()) == []
    assert service.scheduler.pending == 0


@pytest.mark.asyncio()
async def test_no_credits_rejected_before_upload(tmp_path: Path) -> None:
    service, _, account = _service(tmp_path, free_tracks=0)

    with pytest.raises(NoCreditsError):
        await service.process(account, _upload(), "{}")

    assert list((tmp_path / "uploads").iterdir()) == []


@pytest.mark.asyncio()
async def test_oversized_upload_is_rejected_and_removed(tmp_path: Path) -> None:
    service, repo, account = _service(tmp_path, max_upload_bytes=4)

    with pytest.raises(UploadTooLargeError):
        await service.process(account, _upload(b"0123456789"), "{}")

    assert list((tmp_path / "uploads").iterdir()) == []
    assert repo.get_by_id(account.id).free_tracks_left == 3


@pytest.mark.asyncio()
async def test_race_on_last_credit_discards_output(tmp_path: Path) -> None:
    service, repo, account = _service(tmp_path, free_tracks=1)
    stale = repo.get_by_id(account.id)
    repo.consume_credit(account.id)

    with pytest.raises(NoCreditsError):
        await service.process(stale, _upload(), "{}")

    assert list((tmp_path / "uploads").iterdir()) == []
