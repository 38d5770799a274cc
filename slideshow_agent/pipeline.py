from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

from .audio import reconcile_duration
from .config import PipelineConfig
from .errors import InputValidationError
from .ffmpeg_runner import FFmpegRunner
from .subtitles import check_language_tags, group_words_into_lines, render_ass_document, write_srt
from .types import (
    AssembledVideo,
    AudioTrack,
    ImageAsset,
    SubtitledVideo,
    SubtitleDocument,
    SubtitleStyle,
    WordTimestamp,
)
from .video import build_segments, burn_subtitles, concat_segments, mux_video_with_audio
from .workspace import AssemblyWorkspace, extension_for_mime

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class VideoAssemblyAgent:
    """Orchestrates the two independent pipelines.

    ``assemble`` turns images and narration into a subtitle-free MP4.
    ``generate_subtitles`` turns word timestamps into an ASS document and
    ``burn_subtitles`` renders that document into a copy of a finished video.
    Every call gets its own workspace; intermediates never outlive the call.
    """

    def __init__(self, config: Optional[PipelineConfig] = None, runner: Optional[FFmpegRunner] = None):
        self.config = config or PipelineConfig()
        self.config.validate()
        self.runner = runner or FFmpegRunner.from_config(self.config.tools)

    def assemble(
        self,
        images: Sequence[ImageAsset],
        audio: Optional[AudioTrack],
        target_duration: Optional[float] = None,
        output_path: Optional[PathLike] = None,
        subtitles: Optional[Sequence[Any]] = None,
    ) -> AssembledVideo:
        if subtitles:
            logger.warning(
                "Ignoring %s subtitles passed to video assembly; use generate_subtitles() and burn_subtitles()",
                len(subtitles),
            )
        self._validate_assembly_inputs(images, audio, target_duration)
        ordered_images = sorted(images, key=lambda image: image.index)
        video_config = self.config.video

        with AssemblyWorkspace(self.config.output_dir) as workspace:
            final_path = Path(output_path).resolve() if output_path else workspace.path("video", "mp4")
            logger.info("Starting assembly run %s with %s images", workspace.run_id, len(ordered_images))

            audio_path = workspace.write_bytes("audio", extension_for_mime(audio.mime_type, "mp3"), audio.data)
            image_paths = [
                workspace.write_bytes(f"image_{position:03d}", extension_for_mime(image.mime_type, "png"), image.data)
                for position, image in enumerate(ordered_images)
            ]

            logger.info("Step 1/4: Reconciling narration duration...")
            reconciled = reconcile_duration(
                self.runner,
                workspace,
                audio_path,
                target_duration=target_duration,
                fallback_duration=self.config.fallback_audio_duration,
                tolerance=self.config.duration_tolerance,
            )

            logger.info("Step 2/4: Rendering %s image segments...", len(image_paths))
            segments = build_segments(self.runner, workspace, image_paths, reconciled.duration, video_config)
            for image_path in image_paths:
                workspace.discard(image_path)

            logger.info("Step 3/4: Concatenating segments...")
            silent_track = concat_segments(self.runner, workspace, segments)

            logger.info("Step 4/4: Muxing narration into the final video...")
            mux_video_with_audio(
                self.runner,
                workspace,
                silent_track,
                reconciled,
                final_path,
                video_config,
                tolerance=self.config.duration_tolerance,
            )
            workspace.keep(final_path)

        overrun = max(0.0, silent_track.duration - reconciled.duration)
        if overrun <= self.config.duration_tolerance:
            overrun = 0.0
        result = AssembledVideo(
            video_path=final_path,
            duration=min(silent_track.duration, reconciled.duration),
            audio_duration=reconciled.duration,
            segment_count=len(segments),
            overrun_seconds=overrun,
        )
        logger.info("Assembly run completed: %s", result)
        return result

    def generate_subtitles(
        self,
        word_timestamps: Sequence[Union[WordTimestamp, Dict[str, Any]]],
        audio_duration: float,
        style: Optional[Union[SubtitleStyle, Dict[str, Any]]] = None,
        output_path: Optional[PathLike] = None,
        narration_language: Optional[str] = None,
        timestamp_language: Optional[str] = None,
    ) -> SubtitleDocument:
        if not word_timestamps:
            raise InputValidationError("Word timestamps are required for subtitle generation.")
        words = [word if isinstance(word, WordTimestamp) else WordTimestamp.from_dict(word) for word in word_timestamps]
        if not isinstance(style, SubtitleStyle):
            style = SubtitleStyle.from_dict(style)
        check_language_tags(narration_language, timestamp_language)

        subs = self.config.subtitles
        lines = group_words_into_lines(
            words,
            audio_duration,
            min_words=subs.min_words_per_line,
            max_words=subs.max_words_per_line,
            max_word_span=subs.max_word_span_seconds,
            clamped_duration=subs.clamped_word_duration,
        )
        document = render_ass_document(
            lines,
            style,
            canvas_width=subs.canvas_width,
            canvas_height=subs.canvas_height,
            margin_v=subs.margin_v,
        )

        with AssemblyWorkspace(self.config.output_dir) as workspace:
            subtitle_path = Path(output_path).resolve() if output_path else workspace.path("subtitles", "ass")
            subtitle_path.parent.mkdir(parents=True, exist_ok=True)
            subtitle_path.write_text(document, encoding="utf-8")
            srt_path = None
            if subs.write_srt:
                srt_path = write_srt(lines, subtitle_path.with_suffix(".srt"))
            workspace.keep(subtitle_path)

        logger.info("Generated subtitle file %s (%s lines)", subtitle_path, len(lines))
        return SubtitleDocument(
            path=subtitle_path,
            line_count=len(lines),
            word_count=sum(len(line.words) for line in lines),
            srt_path=srt_path,
        )

    def burn_subtitles(
        self,
        video_path: PathLike,
        subtitle_path: PathLike,
        output_path: Optional[PathLike] = None,
    ) -> SubtitledVideo:
        video_path = Path(video_path).resolve()
        subtitle_path = Path(subtitle_path).resolve()
        if not video_path.is_file():
            raise InputValidationError(f"Video file not found: {video_path}")
        if not subtitle_path.is_file():
            raise InputValidationError(f"Subtitle file not found: {subtitle_path}")
        if output_path is not None and Path(output_path).resolve() == video_path:
            raise InputValidationError("Burned video must be written next to the original, not over it.")

        with AssemblyWorkspace(self.config.output_dir) as workspace:
            target = Path(output_path).resolve() if output_path else workspace.path("video_with_subs", "mp4")
            burn_subtitles(self.runner, video_path, subtitle_path, target, self.config.video)
            workspace.keep(target)

        logger.info("Subtitles burned successfully: %s", target)
        return SubtitledVideo(video_path=target)

    def _validate_assembly_inputs(
        self,
        images: Sequence[ImageAsset],
        audio: Optional[AudioTrack],
        target_duration: Optional[float],
    ) -> None:
        if not images:
            raise InputValidationError("At least one image is required for video assembly.")
        for position, image in enumerate(images):
            if not image.data:
                raise InputValidationError(f"Image {position} has no data.")
        if audio is None or not audio.data:
            raise InputValidationError("Audio data is required for video assembly.")
        if target_duration is not None and (not math.isfinite(target_duration) or target_duration <= 0):
            raise InputValidationError(f"Target duration must be a positive number of seconds, got {target_duration!r}.")
