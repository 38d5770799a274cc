from __future__ import annotations

import logging
import re
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from pathlib import Path
from typing import List, Sequence

import ffmpeg

from .audio import format_seconds
from .config import VideoConfig
from .errors import InputValidationError, StageExecutionError
from .ffmpeg_runner import FFmpegRunner
from .types import ReconciledAudio, SilentVideoTrack, VideoSegment
from .workspace import AssemblyWorkspace

logger = logging.getLogger(__name__)


def compute_segment_duration(total_duration: float, image_count: int, floor: float = 2.0) -> float:
    """Seconds each image stays on screen; never below ``floor``."""

    if image_count <= 0:
        raise InputValidationError("At least one image is required to compute segment durations.")
    return max(floor, total_duration / image_count)


def _fit_filter(config: VideoConfig) -> str:
    width, height = config.width, config.height
    return (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2,setsar=1"
    )


def build_segments(
    runner: FFmpegRunner,
    workspace: AssemblyWorkspace,
    image_paths: Sequence[Path],
    total_duration: float,
    config: VideoConfig,
) -> List[VideoSegment]:
    """Render every image into a silent clip of identical length, preserving image order.

    The first failing image aborts the whole batch; clips already rendered stay
    registered in ``workspace`` and are removed by its cleanup.
    """

    count = len(image_paths)
    duration = compute_segment_duration(total_duration, count, config.segment_duration_floor)
    if duration * count > total_duration + 1e-6:
        logger.warning(
            "Per-image floor of %.2fs stretches %s images to %.2fs, beyond the %.2fs narration",
            config.segment_duration_floor,
            count,
            duration * count,
            total_duration,
        )
    logger.info("Duration per image: %.2fs", duration)
    video_filter = _fit_filter(config)

    def build_one(index: int, image_path: Path) -> VideoSegment:
        segment_path = workspace.path(f"segment_{index:03d}", "mp4")
        stream = ffmpeg.input(str(image_path), loop=1).output(
            str(segment_path),
            t=format_seconds(duration),
            vf=video_filter,
            vcodec=config.video_codec,
            pix_fmt=config.pixel_format,
            r=config.frame_rate,
            an=None,
        )
        logger.info("Creating segment %s/%s...", index + 1, count)
        runner.run(stream, stage=f"segment {index + 1}/{count}", output=segment_path)
        return VideoSegment(source_image_index=index, path=segment_path, duration=duration)

    if config.max_parallel_segments <= 1 or count == 1:
        return [build_one(index, path) for index, path in enumerate(image_paths)]

    with ThreadPoolExecutor(max_workers=min(config.max_parallel_segments, count)) as executor:
        futures = [executor.submit(build_one, index, path) for index, path in enumerate(image_paths)]
        done, pending = wait(futures, return_when=FIRST_EXCEPTION)
        failed = next((future for future in futures if future in done and future.exception() is not None), None)
        if failed is not None:
            for future in pending:
                future.cancel()
            raise failed.exception()
        return [future.result() for future in futures]


def _concat_entry(path: Path) -> str:
    escaped = str(path).replace("'", "'\\''")
    return f"file '{escaped}'"


def concat_segments(
    runner: FFmpegRunner,
    workspace: AssemblyWorkspace,
    segments: Sequence[VideoSegment],
) -> SilentVideoTrack:
    """Join segments with the concat demuxer (stream copy, no re-encode)."""

    if not segments:
        raise InputValidationError("No video segments to concatenate.")
    ordered = sorted(segments, key=lambda segment: segment.source_image_index)
    list_path = workspace.write_text("concat", "txt", "\n".join(_concat_entry(seg.path) for seg in ordered) + "\n")
    video_only_path = workspace.path("video_only", "mp4")

    logger.info("Concatenating %s video segments...", len(ordered))
    stream = ffmpeg.input(str(list_path), f="concat", safe=0).output(str(video_only_path), c="copy")
    runner.run(stream, stage="concat", output=video_only_path)

    workspace.discard(list_path)
    for segment in ordered:
        workspace.discard(segment.path)

    expected = sum(seg.duration for seg in ordered)
    measured = runner.probe_duration(video_only_path, fallback=expected)
    logger.info("Silent track duration: %.2fs (expected %.2fs)", measured, expected)
    return SilentVideoTrack(path=video_only_path, duration=measured)


def mux_video_with_audio(
    runner: FFmpegRunner,
    workspace: AssemblyWorkspace,
    silent_track: SilentVideoTrack,
    audio: ReconciledAudio,
    output_path: Path,
    config: VideoConfig,
    tolerance: float = 0.05,
) -> Path:
    """Copy the video stream, re-encode the narration and stop at the shorter input."""

    if silent_track.duration < audio.duration - tolerance:
        raise StageExecutionError(
            f"mux: silent video ({silent_track.duration:.2f}s) is shorter than the audio ({audio.duration:.2f}s)",
            stage="mux",
        )
    if silent_track.duration > audio.duration + tolerance:
        logger.warning(
            "Silent video (%.2fs) outlasts the audio (%.2fs); the final video ends with the narration",
            silent_track.duration,
            audio.duration,
        )

    output_path.parent.mkdir(parents=True, exist_ok=True)
    video = ffmpeg.input(str(silent_track.path)).video
    narration = ffmpeg.input(str(audio.path)).audio
    stream = ffmpeg.output(
        video,
        narration,
        str(output_path),
        vcodec="copy",
        acodec=config.audio_codec,
        audio_bitrate=config.audio_bitrate,
        shortest=None,
    )
    logger.info("Combining video with audio (no subtitles)...")
    runner.run(stream, stage="mux", output=output_path)

    workspace.discard(silent_track.path)
    workspace.discard(audio.path)
    return output_path


_OPTION_SPECIALS = re.compile(r"([\\':])")
_GRAPH_SPECIALS = re.compile(r"([\\'\[\],;])")


def escape_filter_value(value: str) -> str:
    """Escape a filter option value for both the option parser and the filtergraph parser."""
    return _GRAPH_SPECIALS.sub(r"\\\1", _OPTION_SPECIALS.sub(r"\\\1", value))


def subtitles_filter(subtitle_name: str) -> str:
    return f"subtitles={escape_filter_value(subtitle_name)}:charenc=UTF-8"


def burn_subtitles(
    runner: FFmpegRunner,
    video_path: Path,
    subtitle_path: Path,
    output_path: Path,
    config: VideoConfig,
) -> Path:
    """Re-encode ``video_path`` with the subtitle document rendered onto its frames.

    The subtitles filter chokes on absolute paths containing a drive separator, so
    ffmpeg runs inside the subtitle's directory and gets the bare file name.
    """

    subtitle_path = Path(subtitle_path).resolve()
    video_path = Path(video_path).resolve()
    output_path = Path(output_path).resolve()
    output_path.parent.mkdir(parents=True, exist_ok=True)

    logger.info("Burning subtitles %s into %s", subtitle_path.name, video_path)
    stream = ffmpeg.input(str(video_path)).output(
        str(output_path),
        vf=subtitles_filter(subtitle_path.name),
        vcodec=config.video_codec,
        preset=config.burn_preset,
        crf=config.burn_crf,
        pix_fmt=config.pixel_format,
        acodec=config.audio_codec,
        audio_bitrate=config.audio_bitrate,
        shortest=None,
    )
    return runner.run(stream, stage="burn_subtitles", output=output_path, cwd=subtitle_path.parent)
