from __future__ import annotations

import datetime as dt
import logging
import math
import re
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import srt

from .errors import InputValidationError
from .types import SubtitleLine, SubtitleStyle, WordTimestamp

logger = logging.getLogger(__name__)

SENTENCE_END = re.compile(r"[.!?]$")
HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{2})([0-9a-fA-F]{2})([0-9a-fA-F]{2})$")

STYLE_FORMAT = (
    "Format: Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, OutlineColour, BackColour, "
    "Bold, Italic, Underline, StrikeOut, ScaleX, ScaleY, Spacing, Angle, BorderStyle, Outline, Shadow, "
    "Alignment, MarginL, MarginR, MarginV, Encoding"
)
EVENT_FORMAT = "Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text"

LANGUAGE_DEFAULTS = {
    "en": "en-US",
    "es": "es-ES",
    "fr": "fr-FR",
    "hi": "hi-IN",
    "ja": "ja-JP",
    "sw": "sw-KE",
    "ar": "ar-SA",
    "zh": "zh-CN",
    "de": "de-DE",
    "pt": "pt-BR",
    "ru": "ru-RU",
}


def clamp_words(
    words: Iterable[WordTimestamp],
    audio_duration: float,
    max_word_span: float = 2.5,
    clamped_duration: float = 0.8,
) -> List[WordTimestamp]:
    """Fit word timings inside the audio and shorten implausibly long words."""

    processed: List[WordTimestamp] = []
    previous_start = 0.0
    for index, word in enumerate(words):
        text = word.word.strip()
        start = max(0.0, float(word.start))
        end = min(audio_duration, float(word.end))
        if not text:
            logger.debug("Dropping empty word at position %s", index)
            continue
        if start >= audio_duration or end <= start:
            logger.debug("Dropping word %r outside the audio (%.2f-%.2f)", text, word.start, word.end)
            continue
        if start < previous_start:
            logger.warning("Word %r at %.2fs starts before the previous word (%.2fs)", text, start, previous_start)
        previous_start = start
        if end - start > max_word_span:
            logger.debug("Clamping %.2fs span of word %r to %.2fs", end - start, text, clamped_duration)
            end = start + clamped_duration
        processed.append(WordTimestamp(word=text, start=start, end=end))
    return processed


def group_words_into_lines(
    words: Sequence[WordTimestamp],
    audio_duration: float,
    min_words: int = 4,
    max_words: int = 6,
    max_word_span: float = 2.5,
    clamped_duration: float = 0.8,
) -> List[SubtitleLine]:
    """Bucket chronological word timestamps into short display lines.

    A line is closed once it holds at least ``min_words`` words and either reaches
    ``max_words`` or its last word ends a sentence. Whatever is left at the end
    becomes the final line.
    """

    if not words:
        raise InputValidationError("Word timestamps are required for subtitle generation.")
    if audio_duration is None or audio_duration <= 0:
        raise InputValidationError(f"Audio duration must be positive, got {audio_duration!r}.")

    processed = clamp_words(words, audio_duration, max_word_span=max_word_span, clamped_duration=clamped_duration)
    if not processed:
        raise InputValidationError("None of the word timestamps fall inside the audio duration.")

    lines: List[SubtitleLine] = []
    current: List[WordTimestamp] = []
    for word in processed:
        current.append(word)
        if len(current) >= min_words and (len(current) >= max_words or SENTENCE_END.search(word.word)):
            lines.append(SubtitleLine(words=current))
            current = []
    if current:
        lines.append(SubtitleLine(words=current))

    logger.info("Created %s subtitle lines from %s words", len(lines), len(processed))
    return lines


def format_ass_time(seconds: float) -> str:
    """Format seconds as ``H:MM:SS.cc``."""
    centiseconds = int(math.floor(max(0.0, seconds) * 100 + 1e-6))
    hours, remainder = divmod(centiseconds, 360000)
    minutes, remainder = divmod(remainder, 6000)
    secs, centis = divmod(remainder, 100)
    return f"{hours}:{minutes:02d}:{secs:02d}.{centis:02d}"


def hex_to_ass_color(value: str) -> str:
    """Convert ``#RRGGBB`` into ASS ``&HAABBGGRR`` with an opaque alpha byte."""
    match = HEX_COLOR.match((value or "").strip())
    if not match:
        raise InputValidationError(f"Invalid subtitle color {value!r}; expected #RRGGBB.")
    red, green, blue = (group.upper() for group in match.groups())
    return f"&H00{blue}{green}{red}"


def _number(value: float) -> str:
    return f"{value:g}"


def _dialogue_text(text: str) -> str:
    return " ".join(text.split())


def render_ass_document(
    lines: Sequence[SubtitleLine],
    style: Optional[SubtitleStyle] = None,
    canvas_width: int = 1920,
    canvas_height: int = 1080,
    margin_v: int = 60,
    title: str = "Video Subtitles",
) -> str:
    style = style or SubtitleStyle()
    primary = hex_to_ass_color(style.color)
    outline = hex_to_ass_color(style.outline_color)
    font_family = style.font_family.replace(",", " ").strip() or "Arial"

    # A PlayRes is always set; libass otherwise assumes 384x288 and the text renders tiny.
    document = [
        "[Script Info]",
        f"Title: {title}",
        "ScriptType: v4.00+",
        f"PlayResX: {canvas_width}",
        f"PlayResY: {canvas_height}",
        "WrapStyle: 2",
        "ScaledBorderAndShadow: yes",
        "",
        "[V4+ Styles]",
        STYLE_FORMAT,
        (
            f"Style: Default,{font_family},{_number(style.font_size)},{primary},{primary},{outline},&H00000000,"
            f"0,0,0,0,100,100,0,0,1,{_number(style.outline_width)},0,2,10,10,{margin_v},1"
        ),
        "",
        "[Events]",
        EVENT_FORMAT,
    ]
    for line in lines:
        if not line.words:
            continue
        document.append(
            f"Dialogue: 0,{format_ass_time(line.start)},{format_ass_time(line.end)},Default,,0,0,0,,"
            f"{_dialogue_text(line.text)}"
        )
    return "\n".join(document) + "\n"


def write_srt(lines: Iterable[SubtitleLine], output_path: Path) -> Path:
    subtitles = [
        srt.Subtitle(
            index=idx,
            start=dt.timedelta(seconds=line.start),
            end=dt.timedelta(seconds=line.end),
            content=line.text,
        )
        for idx, line in enumerate(lines, start=1)
    ]
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(srt.compose(subtitles), encoding="utf-8")
    return output_path


def normalize_language_code(language: str) -> str:
    """Expand bare language codes (``sw``) to the regional tag used upstream (``sw-KE``)."""
    language = language.strip()
    if "-" in language:
        return language
    return LANGUAGE_DEFAULTS.get(language.lower(), language)


def check_language_tags(narration_language: Optional[str], timestamp_language: Optional[str]) -> bool:
    """Warn when the narration and the timestamps claim different languages.

    Returns False on a mismatch. Grouping still proceeds; a mismatch usually
    means the word timings came from a recognizer run in the wrong language.
    """

    if not narration_language or not timestamp_language:
        return True
    narration = normalize_language_code(narration_language).split("-")[0].lower()
    timestamps = normalize_language_code(timestamp_language).split("-")[0].lower()
    if narration != timestamps:
        logger.warning(
            "Narration language %r does not match word timestamp language %r; subtitle lines may be wrong",
            narration_language,
            timestamp_language,
        )
        return False
    return True
