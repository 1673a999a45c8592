"""Per-run registry of temporary files created by the pipeline."""

import logging
import shutil
import tempfile
import threading
from pathlib import Path

logger = logging.getLogger(__name__)


class ArtifactRegistry:
    """Tracks every intermediate file/dir a run creates so it can be removed.

    Thread-safe; episode workers register concurrently.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._paths: list[Path] = []

    def register(self, path: Path) -> Path:
        path = Path(path)
        with self._lock:
            if path not in self._paths:
                self._paths.append(path)
        return path

    def make_temp_dir(self, parent: Path, prefix: str = "tmp_") -> Path:
        return self.register(Path(tempfile.mkdtemp(prefix=prefix, dir=parent)))

    def pending(self) -> list[Path]:
        with self._lock:
            return list(self._paths)

    def release(self, path: Path) -> None:
        """Delete one artifact now and stop tracking it."""
        path = Path(path)
        with self._lock:
            if path in self._paths:
                self._paths.remove(path)
        _remove(path)

    def cleanup(self) -> None:
        """Delete everything still registered, newest first."""
        with self._lock:
            paths, self._paths = self._paths, []
        for path in reversed(paths):
            _remove(path)


def _remove(path: Path) -> None:
    try:
        if path.is_dir():
            shutil.rmtree(path)
        else:
            path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove %s: %s", path, e)
