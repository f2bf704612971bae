import types

import numpy as np
import soundfile as sf

from audiocraft_studio.adapters import read_duration_seconds


def test_read_duration_seconds(monkeypatch):
    fake_info = types.SimpleNamespace(frames=88200, samplerate=44100)

    monkeypatch.setattr(read_duration_seconds.sf, "info", lambda path: fake_info)

    assert read_duration_seconds.read_duration_seconds("audio.wav") == 2.0


def test_read_duration_seconds_unreadable_returns_none(monkeypatch):
    def broken_info(path):
        raise RuntimeError("Format not recognised")

    monkeypatch.setattr(read_duration_seconds.sf, "info", broken_info)

    assert read_duration_seconds.read_duration_seconds("audio.xyz") is None


def test_read_duration_seconds_real_file(tmp_path):
    path = tmp_path / "tone.wav"
    sf.write(path, np.zeros(22050, dtype="float32"), 44100)

    assert read_duration_seconds.read_duration_seconds(str(path)) == 0.5
