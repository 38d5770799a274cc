import pytest

from conftest import RecordingRunner
from slideshow_agent.audio import reconcile_duration
from slideshow_agent.workspace import AssemblyWorkspace


def _narration(workspace, ext="mp3"):
    return workspace.write_bytes("audio", ext, b"narration")


def test_without_target_keeps_native_duration(tmp_path):
    runner = RecordingRunner(durations={"audio_": 7.25})
    workspace = AssemblyWorkspace(tmp_path)
    audio_path = _narration(workspace)

    result = reconcile_duration(runner, workspace, audio_path)

    assert result.action == "unchanged"
    assert result.duration == pytest.approx(7.25)
    assert result.path == audio_path
    assert runner.ffmpeg_calls == []


def test_matching_target_is_a_no_op(tmp_path):
    runner = RecordingRunner(durations={"audio_": 10.0004})
    workspace = AssemblyWorkspace(tmp_path)
    audio_path = _narration(workspace)

    result = reconcile_duration(runner, workspace, audio_path, target_duration=10.0)

    assert result.action == "unchanged"
    assert result.duration == 10.0
    assert runner.ffmpeg_calls == []


def test_longer_audio_is_trimmed_with_stream_copy(tmp_path):
    runner = RecordingRunner(durations={"audio_": 12.0})
    workspace = AssemblyWorkspace(tmp_path)
    audio_path = _narration(workspace)

    result = reconcile_duration(runner, workspace, audio_path, target_duration=10.0)

    assert result.action == "trimmed"
    assert result.duration == 10.0
    assert result.native_duration == 12.0
    assert result.path.name.startswith("audio_trimmed_")
    assert result.path.suffix == ".mp3"
    [command] = runner.ffmpeg_calls
    assert command[command.index("-acodec") + 1] == "copy"
    assert command[command.index("-t") + 1] == "10.000"
    assert not audio_path.exists()


def test_shorter_audio_is_padded_and_measured_again(tmp_path):
    runner = RecordingRunner(durations={"audio_": 4.0, "audio_padded_": 10.0})
    workspace = AssemblyWorkspace(tmp_path)
    audio_path = _narration(workspace)

    result = reconcile_duration(runner, workspace, audio_path, target_duration=10.0)

    assert result.action == "padded"
    assert result.duration == 10.0
    assert result.native_duration == 4.0
    [command] = runner.ffmpeg_calls
    assert command[command.index("-af") + 1] == "apad=pad_dur=6.000"
    assert command[command.index("-t") + 1] == "10.000"
    assert command[command.index("-acodec") + 1] == "libmp3lame"
    assert len(runner.probe_calls) == 2
    assert runner.probe_calls[1][-1] == str(result.path)
    assert not audio_path.exists()


def test_padding_unknown_container_switches_to_aac(tmp_path):
    runner = RecordingRunner(durations={"audio_": 3.0, "audio_padded_": 5.0})
    workspace = AssemblyWorkspace(tmp_path)
    audio_path = _narration(workspace, ext="opus")

    result = reconcile_duration(runner, workspace, audio_path, target_duration=5.0)

    assert result.path.suffix == ".m4a"
    [command] = runner.ffmpeg_calls
    assert command[command.index("-acodec") + 1] == "aac"


def test_padding_mismatch_is_reported(tmp_path, caplog):
    runner = RecordingRunner(durations={"audio_": 4.0, "audio_padded_": 9.5})
    workspace = AssemblyWorkspace(tmp_path)

    result = reconcile_duration(runner, workspace, _narration(workspace), target_duration=10.0)

    assert result.duration == 10.0
    assert "off target" in caplog.text


def test_unreadable_audio_falls_back_to_default_duration(tmp_path, caplog):
    runner = RecordingRunner()
    workspace = AssemblyWorkspace(tmp_path)

    result = reconcile_duration(runner, workspace, _narration(workspace), fallback_duration=10.0)

    assert result.duration == 10.0
    assert "Could not detect duration" in caplog.text


def test_trimming_unknown_container_copies_into_matroska(tmp_path):
    runner = RecordingRunner(durations={"audio_": 12.0})
    workspace = AssemblyWorkspace(tmp_path)
    audio_path = workspace.write_bytes("audio", "octetstream", b"narration")

    result = reconcile_duration(runner, workspace, audio_path, target_duration=10.0)

    assert result.action == "trimmed"
    assert result.path.suffix == ".mka"
    [command] = runner.ffmpeg_calls
    assert command[-2] == str(result.path)
    assert command[command.index("-acodec") + 1] == "copy"
