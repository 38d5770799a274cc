from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .errors import ConfigurationError


@dataclass
class ToolConfig:
    """Location of the ffmpeg/ffprobe executables and the per-call timeout."""

    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    timeout_seconds: Optional[float] = 600.0  # None waits forever


@dataclass
class VideoConfig:
    """Configuration for slideshow segments, muxing and subtitle burn-in."""

    width: int = 1920
    height: int = 1080
    frame_rate: int = 30
    segment_duration_floor: float = 2.0
    video_codec: str = "libx264"
    pixel_format: str = "yuv420p"
    audio_codec: str = "aac"
    audio_bitrate: str = "192k"
    burn_preset: str = "medium"
    burn_crf: int = 23
    max_parallel_segments: int = 1


@dataclass
class SubtitleConfig:
    """Configuration for grouping word timestamps and rendering the ASS document."""

    max_word_span_seconds: float = 2.5
    clamped_word_duration: float = 0.8
    min_words_per_line: int = 4
    max_words_per_line: int = 6
    # Reference canvas, independent of the actual video resolution.
    canvas_width: int = 1920
    canvas_height: int = 1080
    margin_v: int = 60
    write_srt: bool = False


@dataclass
class TextClientConfig:
    """Configuration for the text generation client."""

    provider: str = "openai"
    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_retries: int = 3
    retry_delay: float = 3.0
    api_base: Optional[str] = None
    api_key_env: Optional[str] = "OPENAI_API_KEY"


@dataclass
class PipelineConfig:
    """Top level configuration for the assembly agent."""

    tools: ToolConfig = field(default_factory=ToolConfig)
    video: VideoConfig = field(default_factory=VideoConfig)
    subtitles: SubtitleConfig = field(default_factory=SubtitleConfig)
    text_client: TextClientConfig = field(default_factory=TextClientConfig)
    output_dir: Path = Path("temp")
    fallback_audio_duration: float = 10.0
    duration_tolerance: float = 0.05

    def validate(self) -> None:
        if self.video.segment_duration_floor <= 0:
            raise ConfigurationError("segment_duration_floor must be positive.")
        if self.video.width <= 0 or self.video.height <= 0 or self.video.frame_rate <= 0:
            raise ConfigurationError("Video resolution and frame rate must be positive.")
        if self.video.max_parallel_segments < 1:
            raise ConfigurationError("max_parallel_segments must be at least 1.")
        subs = self.subtitles
        if subs.min_words_per_line < 1 or subs.min_words_per_line > subs.max_words_per_line:
            raise ConfigurationError(
                f"Invalid line word bounds: min={subs.min_words_per_line}, max={subs.max_words_per_line}"
            )
        if subs.max_word_span_seconds <= 0 or subs.clamped_word_duration <= 0:
            raise ConfigurationError("Word span limits must be positive.")
        if subs.canvas_width <= 0 or subs.canvas_height <= 0:
            raise ConfigurationError("Subtitle canvas size must be positive.")
        if self.tools.timeout_seconds is not None and self.tools.timeout_seconds <= 0:
            raise ConfigurationError("timeout_seconds must be positive or None.")
        if self.fallback_audio_duration <= 0:
            raise ConfigurationError("fallback_audio_duration must be positive.")
