import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import InputValidationError


@dataclass
class ImageAsset:
    """One still image of the slideshow, in display order."""

    data: bytes
    mime_type: str = "image/png"
    index: int = 0


@dataclass
class AudioTrack:
    """Narration audio as handed over by the caller."""

    data: bytes
    mime_type: str = "audio/mpeg"


@dataclass
class ReconciledAudio:
    """Audio file whose duration is the one every downstream stage uses."""

    path: Path
    duration: float
    native_duration: float
    action: str  # "unchanged", "trimmed" or "padded"


@dataclass
class VideoSegment:
    """Fixed-duration silent clip rendered from one image."""

    source_image_index: int
    path: Path
    duration: float


@dataclass
class SilentVideoTrack:
    """Concatenated segments without an audio stream."""

    path: Path
    duration: float


@dataclass
class WordTimestamp:
    """Single spoken word with timing data."""

    word: str
    start: float
    end: float

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "WordTimestamp":
        start = payload.get("startTime", payload.get("start"))
        end = payload.get("endTime", payload.get("end"))
        try:
            return cls(word=str(payload["word"]), start=float(start), end=float(end))
        except (KeyError, TypeError, ValueError) as exc:
            raise InputValidationError(f"Malformed word timestamp: {payload!r}") from exc


@dataclass
class SubtitleLine:
    """Consecutive words displayed together."""

    words: List[WordTimestamp] = field(default_factory=list)

    @property
    def start(self) -> float:
        return self.words[0].start

    @property
    def end(self) -> float:
        return self.words[-1].end

    @property
    def text(self) -> str:
        return " ".join(word.word for word in self.words)


@dataclass
class SubtitleStyle:
    """Caller-facing subtitle style; colors are ``#RRGGBB``."""

    color: str = "#FFFFFF"
    font_size: int = 20
    font_family: str = "Arial"
    outline_color: str = "#000000"
    outline_width: float = 2

    @classmethod
    def from_dict(cls, payload: Optional[Dict[str, Any]]) -> "SubtitleStyle":
        """Build a style from a request payload, accepting camelCase keys."""
        style = cls()
        if not payload:
            return style
        aliases = {
            "color": "color",
            "fontSize": "font_size",
            "font_size": "font_size",
            "fontFamily": "font_family",
            "font_family": "font_family",
            "outlineColor": "outline_color",
            "outline_color": "outline_color",
            "outlineWidth": "outline_width",
            "outline_width": "outline_width",
        }
        numeric = {"font_size", "outline_width"}
        for key, value in payload.items():
            attr = aliases.get(key)
            if attr is None or value is None:
                continue
            try:
                value = float(value) if attr in numeric else str(value)
            except (TypeError, ValueError) as exc:
                raise InputValidationError(f"Invalid subtitle style value for {key!r}: {value!r}") from exc
            if attr in numeric and not (math.isfinite(value) and value >= 0):
                raise InputValidationError(f"Subtitle style value {key!r} must be a non-negative number, got {value!r}")
            setattr(style, attr, value)
        return style


@dataclass
class AssembledVideo:
    """Subtitle-free video produced by the assembly pipeline."""

    video_path: Path
    duration: float
    audio_duration: float
    segment_count: int
    overrun_seconds: float = 0.0
    mime_type: str = "video/mp4"


@dataclass
class SubtitleDocument:
    """Rendered ASS document (and optional SRT sidecar)."""

    path: Path
    line_count: int
    word_count: int
    srt_path: Optional[Path] = None


@dataclass
class SubtitledVideo:
    """Video with subtitles burned into its frames."""

    video_path: Path
    mime_type: str = "video/mp4"
