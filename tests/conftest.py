import json
import subprocess
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from slideshow_agent.config import PipelineConfig
from slideshow_agent.ffmpeg_runner import FFmpegRunner


class RecordingRunner(FFmpegRunner):
    """FFmpegRunner that never spawns a process.

    ffmpeg calls write a placeholder output file; ffprobe calls answer with the
    duration registered for the longest matching file-name prefix.
    """

    def __init__(
        self,
        durations: Optional[Dict[str, float]] = None,
        fail_when: Optional[Callable[[List[str]], bool]] = None,
        skip_output_when: Optional[Callable[[List[str]], bool]] = None,
    ):
        super().__init__(ffmpeg_path="ffmpeg", ffprobe_path="ffprobe", timeout=30)
        self.durations = durations or {}
        self.fail_when = fail_when
        self.skip_output_when = skip_output_when
        self.calls: List[tuple] = []

    @property
    def ffmpeg_calls(self) -> List[List[str]]:
        return [args for args, _ in self.calls if args[0] == "ffmpeg"]

    @property
    def probe_calls(self) -> List[List[str]]:
        return [args for args, _ in self.calls if args[0] == "ffprobe"]

    def _execute(self, args, cwd=None):
        args = [str(arg) for arg in args]
        self.calls.append((args, cwd))
        if args[0] == "ffprobe":
            duration = self._duration_for(Path(args[-1]).name)
            if duration is None:
                return subprocess.CompletedProcess(args, 1, stdout="", stderr="Invalid data found when processing input")
            return subprocess.CompletedProcess(args, 0, stdout=json.dumps({"format": {"duration": str(duration)}}), stderr="")
        if self.fail_when and self.fail_when(args):
            return subprocess.CompletedProcess(
                args, 1, stdout="", stderr="ffmpeg version 6.1\nError while opening encoder\nConversion failed!"
            )
        if not (self.skip_output_when and self.skip_output_when(args)):
            output = Path(args[-2])  # compiled commands end with "<output> -y"
            if not output.is_absolute() and cwd is not None:
                output = Path(cwd) / output
            output.write_bytes(b"media")
        return subprocess.CompletedProcess(args, 0, stdout="", stderr="frame=   90 fps=0.0 q=-1.0 Lsize=  12kB")

    def _duration_for(self, name: str) -> Optional[float]:
        matches = [prefix for prefix in self.durations if name.startswith(prefix)]
        if not matches:
            return None
        return self.durations[max(matches, key=len)]


def words_from_text(text: str, end: float, start: float = 0.0):
    from slideshow_agent.types import WordTimestamp

    tokens = text.split()
    step = (end - start) / len(tokens)
    return [
        WordTimestamp(word=token, start=round(start + i * step, 3), end=round(start + (i + 1) * step, 3))
        for i, token in enumerate(tokens)
    ]


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    return tmp_path / "work"


@pytest.fixture
def config(workdir: Path) -> PipelineConfig:
    return PipelineConfig(output_dir=workdir)
