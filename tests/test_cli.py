from pathlib import Path

import pytest

from audiocraft_studio import cli
from audiocraft_studio.adapters.ffmpeg import EngineError
from audiocraft_studio.features import pipeline


def test_parse_args_round_trip():
    args = cli.parse_args(
        ["song.wav", "-o", "out.mp3", "--pitch", "0.5", "--tempo", "98", "--log-level", "DEBUG"]
    )

    assert args.audio == "song.wav"
    assert args.output == "out.mp3"
    assert args.pitch == 0.5
    assert args.tempo == 98.0
    assert args.warmth is None
    assert args.log_level == "DEBUG"
    assert args.ffmpeg == "ffmpeg"


def test_collect_settings_flags_override_json():
    args = cli.parse_args(["song.wav", "--settings", '{"pitch": 1, "reverb": 20}', "--pitch", "-2"])

    settings = cli.collect_settings(args)

    assert settings == {"pitch": 1, "reverb": 20, "pitchSemitones": -2.0}
    assert pipeline.AudioEnhancer().plan(settings)[0].pitch_semitones == -2.0


def test_main_exits_when_audio_missing(tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        cli.main([str(tmp_path / "missing.wav")])

    assert "Audio not found" in str(excinfo.value)


def test_print_chain_does_not_touch_engine(tmp_path, monkeypatch, capsys):
    audio = tmp_path / "song.wav"
    audio.write_bytes(b"RIFF")

    def boom(self):
        raise AssertionError("probe should not run for --print-chain")

    monkeypatch.setattr(cli.EngineProbe, "check", boom)

    result = cli.main([str(audio), "--print-chain", "--tempo", "100", "--pitch", "0", "--warmth", "0", "--reverb", "0"])

    assert result is None
    assert capsys.readouterr().out.strip() == (
        "dynaudnorm=f=150:g=15,equalizer=f=1000:width_type=h:width=200:g=0.5"
    )


def test_enhance_writes_rendered_output(tmp_path, monkeypatch):
    audio = tmp_path / "song.wav"
    audio.write_bytes(b"RIFF")
    seen = {}

    def fake_run(input_path, output_path, filter_graph, **kwargs):
        seen["graph"] = filter_graph
        kwargs["on_progress"](100.0)
        Path(output_path).write_bytes(b"ID3")
        return Path(output_path)

    monkeypatch.setattr(cli.EngineProbe, "check", lambda self: True)
    monkeypatch.setattr(pipeline, "run_filter_chain", fake_run)

    args = cli.parse_args([str(audio)])
    output = cli.run_enhancement(args)

    assert output == tmp_path.resolve() / "song_enhanced.mp3"
    assert output.read_bytes() == b"ID3"
    assert audio.exists()
    assert seen["graph"].startswith("atempo=0.995")


def test_enhance_copies_original_without_engine(tmp_path, monkeypatch):
    audio = tmp_path / "song.wav"
    audio.write_bytes(b"RIFF")
    monkeypatch.setattr(cli.EngineProbe, "check", lambda self: False)

    output = cli.run_enhancement(cli.parse_args([str(audio)]))

    assert output == tmp_path.resolve() / "song_enhanced.wav"
    assert output.read_bytes() == b"RIFF"
    assert audio.exists()


def test_enhance_failure_exits_and_keeps_input(tmp_path, monkeypatch):
    audio = tmp_path / "song.wav"
    audio.write_bytes(b"RIFF")

    def failing_run(*args, **kwargs):
        raise EngineError("Unknown encoder 'libmp3lame'")

    monkeypatch.setattr(cli.EngineProbe, "check", lambda self: True)
    monkeypatch.setattr(pipeline, "run_filter_chain", failing_run)

    with pytest.raises(SystemExit) as excinfo:
        cli.run_enhancement(cli.parse_args([str(audio), "-o", str(tmp_path / "out.mp3")]))

    assert "Processing failed: Unknown encoder" in str(excinfo.value)
    assert audio.exists()
    assert not (tmp_path / "out.mp3").exists()


def test_enhance_without_engine_onto_input_leaves_file(tmp_path, monkeypatch, capsys):
    audio = tmp_path / "song.wav"
    audio.write_bytes(b"RIFF")
    monkeypatch.setattr(cli.EngineProbe, "check", lambda self: False)

    output = cli.run_enhancement(cli.parse_args([str(audio), "-o", str(audio)]))

    assert output == audio.resolve()
    assert audio.read_bytes() == b"RIFF"
    assert capsys.readouterr().out.strip().endswith("(simulated)")
