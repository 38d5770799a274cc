from __future__ import annotations

import json
import logging
import math
import os
import shlex
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from pydub.utils import which

from .config import ToolConfig
from .errors import ConfigurationError, ResourceCreationError, StageExecutionError, StageTimeoutError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

_DIAGNOSTIC_MARKERS = ("error", "invalid", "failed", "unable", "no such file", "not found", "could not")


def resolve_tool(name_or_path: str) -> str:
    """Return an executable path for an ffmpeg-family tool or raise ConfigurationError."""

    if not name_or_path:
        raise ConfigurationError("No executable configured for the media tool.")
    has_directory = os.sep in name_or_path or (os.altsep is not None and os.altsep in name_or_path)
    if has_directory:
        candidate = Path(name_or_path).expanduser()
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return str(candidate)
        raise ConfigurationError(f"Media tool is not an executable file: {candidate}")
    found = which(name_or_path)
    if not found:
        raise ConfigurationError(
            f"'{name_or_path}' was not found on PATH. Install FFmpeg (https://ffmpeg.org/download.html) "
            "and make sure it is executable."
        )
    return found


def diagnostic_excerpt(stderr: Union[str, bytes, None], max_lines: int = 8, max_chars: int = 1500) -> str:
    """Pick the lines of a tool log that explain a failure, falling back to its tail."""

    if not stderr:
        return ""
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="replace")
    lines = [line.strip() for line in stderr.splitlines() if line.strip()]
    relevant = [line for line in lines if any(marker in line.lower() for marker in _DIAGNOSTIC_MARKERS)]
    excerpt = "\n".join((relevant or lines)[-max_lines:])
    if len(excerpt) > max_chars:
        excerpt = excerpt[-max_chars:]
    return excerpt


def format_command(args: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(arg)) for arg in args)


class FFmpegRunner:
    """Executes ffmpeg/ffprobe commands as explicit token lists, never through a shell."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", ffprobe_path: str = "ffprobe", timeout: Optional[float] = None):
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: ToolConfig) -> "FFmpegRunner":
        ffmpeg_path = resolve_tool(config.ffmpeg_path)
        ffprobe_path = resolve_tool(config.ffprobe_path)
        logger.info("Using ffmpeg at %s and ffprobe at %s", ffmpeg_path, ffprobe_path)
        return cls(ffmpeg_path=ffmpeg_path, ffprobe_path=ffprobe_path, timeout=config.timeout_seconds)

    def compile(self, stream) -> List[str]:
        """Turn an ffmpeg-python output node into the argument list that will be executed."""
        return stream.compile(cmd=self.ffmpeg_path, overwrite_output=True)

    def run(self, stream, stage: str, output: PathLike, cwd: Optional[PathLike] = None) -> Path:
        """Run one ffmpeg command and confirm that it produced ``output``."""

        args = self.compile(stream)
        self._call(args, stage=stage, cwd=cwd)
        output_path = Path(output)
        if not output_path.is_absolute() and cwd is not None:
            output_path = Path(cwd) / output_path
        if not output_path.exists():
            logger.error("[%s] ffmpeg exited cleanly but %s is missing", stage, output_path)
            raise ResourceCreationError(f"{stage}: expected output was not created: {output_path}", stage=stage, path=output_path)
        return output_path

    def probe(self, path: PathLike, stage: str = "probe") -> Dict[str, Any]:
        args = [self.ffprobe_path, "-v", "quiet", "-print_format", "json", "-show_format", str(path)]
        completed = self._call(args, stage=stage)
        try:
            return json.loads(completed.stdout or "{}")
        except ValueError as exc:
            raise StageExecutionError(
                f"{stage}: ffprobe returned unreadable output for {path}",
                stage=stage,
                returncode=completed.returncode,
                command=args,
            ) from exc

    def probe_duration(self, path: PathLike, fallback: float) -> float:
        """Measure a media file's duration, degrading to ``fallback`` when probing fails."""

        try:
            data = self.probe(path)
            duration = float(data["format"]["duration"])
        except (StageExecutionError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Could not detect duration of %s (%s); using %.2fs", path, exc, fallback)
            return fallback
        if math.isnan(duration) or duration <= 0:
            logger.warning("Probed duration of %s is %s; using %.2fs", path, duration, fallback)
            return fallback
        return duration

    def _call(self, args: List[str], stage: str, cwd: Optional[PathLike] = None) -> subprocess.CompletedProcess:
        logger.debug("[%s] %s (cwd=%s)", stage, format_command(args), cwd or "current")
        try:
            completed = self._execute(args, cwd=cwd)
        except subprocess.TimeoutExpired as exc:
            logger.error("[%s] %s timed out after %ss and was killed", stage, args[0], self.timeout)
            raise StageTimeoutError(
                f"{stage}: {Path(args[0]).name} did not finish within {self.timeout}s",
                stage=stage,
                command=args,
                diagnostic=diagnostic_excerpt(exc.stderr),
            ) from exc
        except (FileNotFoundError, PermissionError) as exc:
            raise ConfigurationError(f"Cannot execute {args[0]}: {exc}") from exc

        if completed.returncode != 0:
            diagnostic = diagnostic_excerpt(completed.stderr)
            logger.error("[%s] %s exited with status %s: %s", stage, Path(args[0]).name, completed.returncode, diagnostic)
            raise StageExecutionError(
                f"{stage}: {Path(args[0]).name} exited with status {completed.returncode}",
                stage=stage,
                returncode=completed.returncode,
                command=args,
                diagnostic=diagnostic,
            )
        return completed

    def _execute(self, args: List[str], cwd: Optional[PathLike] = None) -> subprocess.CompletedProcess:
        return subprocess.run(
            args,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            encoding="utf-8",
            errors="replace",
            timeout=self.timeout,
            cwd=str(cwd) if cwd is not None else None,
        )
