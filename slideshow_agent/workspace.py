from __future__ import annotations

import logging
import threading
import uuid
from pathlib import Path
from typing import List, Optional, Union

logger = logging.getLogger(__name__)

_MIME_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/wave": "wav",
    "audio/mp4": "m4a",
    "audio/x-m4a": "m4a",
    "audio/aac": "aac",
    "audio/ogg": "ogg",
    "audio/webm": "webm",
    "audio/flac": "flac",
}


def extension_for_mime(mime_type: Optional[str], default: str) -> str:
    """Map a mime type onto a file extension, falling back to its subtype."""
    if not mime_type:
        return default
    mime_type = mime_type.split(";")[0].strip().lower()
    if mime_type in _MIME_EXTENSIONS:
        return _MIME_EXTENSIONS[mime_type]
    _, _, subtype = mime_type.partition("/")
    subtype = "".join(ch for ch in subtype if ch.isalnum())
    return subtype or default


class AssemblyWorkspace:
    """Per-invocation namespace for intermediate files.

    Every path handed out embeds ``run_id`` so that concurrent invocations sharing
    one working directory never collide. Registered files are deleted by
    :meth:`cleanup` unless they were released with :meth:`keep`.
    """

    def __init__(self, root: Union[str, Path], run_id: Optional[str] = None):
        self.root = Path(root)
        self.run_id = run_id or uuid.uuid4().hex[:12]
        self._owned: List[Path] = []
        self._lock = threading.Lock()

    def __enter__(self) -> "AssemblyWorkspace":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc is not None:
            logger.warning("Run %s failed (%s); removing intermediate files", self.run_id, exc_type.__name__)
        self.cleanup()

    def path(self, stem: str, ext: str) -> Path:
        """Reserve a namespaced path inside the working directory."""
        self.root.mkdir(parents=True, exist_ok=True)
        path = (self.root / f"{stem}_{self.run_id}.{ext.lstrip('.')}").resolve()
        self.track(path)
        return path

    def write_bytes(self, stem: str, ext: str, data: bytes) -> Path:
        path = self.path(stem, ext)
        path.write_bytes(data)
        return path

    def write_text(self, stem: str, ext: str, text: str) -> Path:
        path = self.path(stem, ext)
        path.write_text(text, encoding="utf-8")
        return path

    def track(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        with self._lock:
            if path not in self._owned:
                self._owned.append(path)
        return path

    def keep(self, path: Union[str, Path]) -> Path:
        """Hand a finished deliverable over to the caller."""
        path = Path(path)
        with self._lock:
            if path in self._owned:
                self._owned.remove(path)
        return path

    def discard(self, path: Union[str, Path]) -> None:
        """Delete a consumed intermediate right away. Files the workspace does not own are left alone."""
        path = Path(path)
        with self._lock:
            if path not in self._owned:
                return
            self._owned.remove(path)
        _unlink_quietly(path)

    @property
    def owned(self) -> List[Path]:
        with self._lock:
            return list(self._owned)

    def cleanup(self) -> None:
        with self._lock:
            owned, self._owned = self._owned, []
        for path in owned:
            _unlink_quietly(path)


def _unlink_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Could not delete temporary file %s: %s", path, exc)
