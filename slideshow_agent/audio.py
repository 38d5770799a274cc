from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Optional

import ffmpeg

from .ffmpeg_runner import FFmpegRunner
from .types import ReconciledAudio
from .workspace import AssemblyWorkspace

logger = logging.getLogger(__name__)

# Encoders used when padding forces a re-encode; unknown containers fall back to AAC/m4a
# for padding and to Matroska for trimming.
AUDIO_ENCODERS = {
    "mp3": "libmp3lame",
    "wav": "pcm_s16le",
    "m4a": "aac",
    "aac": "aac",
    "ogg": "libvorbis",
    "flac": "flac",
}


def format_seconds(value: float) -> str:
    return f"{value:.3f}"


def reconcile_duration(
    runner: FFmpegRunner,
    workspace: AssemblyWorkspace,
    audio_path: Path,
    target_duration: Optional[float] = None,
    fallback_duration: float = 10.0,
    tolerance: float = 0.05,
) -> ReconciledAudio:
    """Make the narration last exactly ``target_duration`` seconds.

    Longer audio is cut with a stream copy, shorter audio gets trailing silence and
    is measured again. Without a target the probed duration is used as is.
    """

    native = runner.probe_duration(audio_path, fallback=fallback_duration)
    logger.info("Audio duration: %.2fs (target: %s)", native, target_duration or "not specified")

    if target_duration is None:
        return ReconciledAudio(path=audio_path, duration=native, native_duration=native, action="unchanged")

    if math.isclose(native, target_duration, abs_tol=1e-3):
        logger.info("Audio duration matches target duration %.2fs", target_duration)
        return ReconciledAudio(path=audio_path, duration=target_duration, native_duration=native, action="unchanged")

    extension = audio_path.suffix.lstrip(".").lower() or "mp3"

    if native > target_duration:
        logger.info("Truncating audio from %.2fs to %.2fs", native, target_duration)
        # Stream copy keeps the codec; Matroska accepts any of them when the extension is not a known container.
        trimmed_path = workspace.path("audio_trimmed", extension if extension in AUDIO_ENCODERS else "mka")
        stream = ffmpeg.input(str(audio_path)).output(
            str(trimmed_path), t=format_seconds(target_duration), acodec="copy"
        )
        runner.run(stream, stage="trim_audio", output=trimmed_path)
        workspace.discard(audio_path)
        return ReconciledAudio(path=trimmed_path, duration=target_duration, native_duration=native, action="trimmed")

    silence = target_duration - native
    logger.info("Extending audio by %.2fs of silence to reach %.2fs", silence, target_duration)
    if extension not in AUDIO_ENCODERS:
        extension = "m4a"
    padded_path = workspace.path("audio_padded", extension)
    stream = ffmpeg.input(str(audio_path)).output(
        str(padded_path),
        af=f"apad=pad_dur={format_seconds(silence)}",
        t=format_seconds(target_duration),
        acodec=AUDIO_ENCODERS[extension],
    )
    runner.run(stream, stage="pad_audio", output=padded_path)
    workspace.discard(audio_path)

    measured = runner.probe_duration(padded_path, fallback=target_duration)
    if abs(measured - target_duration) > tolerance:
        logger.warning(
            "Padded audio measures %.3fs, off target %.3fs by more than %.2fs",
            measured,
            target_duration,
            tolerance,
        )
    else:
        logger.info("Extended audio duration: %.2fs (target: %.2fs)", measured, target_duration)
    return ReconciledAudio(path=padded_path, duration=target_duration, native_duration=native, action="padded")
