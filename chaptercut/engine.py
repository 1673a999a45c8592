"""Orchestrator: runs the batch pipeline defined by a Manifest."""

import logging
import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from chaptercut import ffutil
from chaptercut.artifacts import ArtifactRegistry
from chaptercut.episode import process_episode
from chaptercut.manifest import Manifest, Timeouts
from chaptercut.merger import NoEpisodesError, merge_episodes
from chaptercut.models import END_CHAPTER, EpisodeResult, ScanResult
from chaptercut.progress import ProgressTracker

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"(\d+)")


class InputFolderError(OSError):
    """Raised when the input folder cannot be listed."""


@dataclass
class RunResult:
    parts: list[Path] = field(default_factory=list)
    episodes: list[EpisodeResult] = field(default_factory=list)

    @property
    def failed(self) -> list[EpisodeResult]:
        return [e for e in self.episodes if not e.ok]


def natural_key(name: str) -> list:
    """Sort key that orders ``ep2`` before ``ep10``."""
    return [
        (0, int(tok)) if tok.isdigit() else (1, tok.casefold())
        for tok in _DIGITS.split(name)
        if tok
    ]


def list_episodes(folder: Path, extensions: Iterable[str] = (".mkv",)) -> list[Path]:
    """Episode files of *folder* in natural (numeric-aware) order."""
    exts = {e.lower() for e in extensions}
    try:
        entries = list(Path(folder).iterdir())
    except OSError as e:
        raise InputFolderError(f"Cannot read input folder {folder}: {e}") from e
    files = [p for p in entries if p.is_file() and p.suffix.lower() in exts]
    return sorted(files, key=lambda p: (natural_key(p.name), p.name))


def scan_first_episodes(
    folder: Path,
    count: int = 2,
    extensions: Iterable[str] = (".mkv",),
    timeouts: Timeouts | None = None,
) -> ScanResult:
    """Preview chapters of the first episodes laid end to end.

    Chapters of episode ``i`` are offset by the durations of the episodes
    before it; ``End`` is the summed duration. Audio tracks come from the
    first file.
    """
    timeouts = timeouts or Timeouts()
    files = list_episodes(folder, extensions)
    if not files:
        raise NoEpisodesError(f"No episode files found in {folder}")

    chapters: dict[str, float] = {}
    offset = 0.0
    for path in files[:count]:
        cs = ffutil.probe_chapters(
            path, timeout=timeouts.chapter_probe, duration_timeout=timeouts.duration_probe
        )
        for title, start in cs.as_dict().items():
            if title != END_CHAPTER:
                chapters.setdefault(title, offset + start)
        offset += cs.end
    chapters[END_CHAPTER] = offset

    try:
        audio = ffutil.probe_audio_tracks(files[0], timeout=timeouts.chapter_probe)
    except (ffutil.FFmpegError, ValueError) as e:
        logger.warning("Audio track scan failed for %s: %s", files[0].name, e)
        audio = []

    return ScanResult(chapters=chapters, audio_tracks=audio, first_file=files[0])


def _run_episodes(
    files: list[Path],
    manifest: Manifest,
    tracker: ProgressTracker,
    registry: ArtifactRegistry,
) -> list[EpisodeResult]:
    workers = manifest.options.max_workers or len(files)
    results: list[EpisodeResult | None] = [None] * len(files)

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="episode") as pool:
        futures = {
            pool.submit(
                process_episode,
                idx, path, manifest.output, manifest.options, registry, manifest.timeouts,
            ): idx
            for idx, path in enumerate(files)
        }
        for future in as_completed(futures):
            idx = futures[future]
            try:
                result = future.result()
            except Exception as e:
                logger.exception("[%02d] Unexpected failure for %s", idx + 1, files[idx].name)
                result = EpisodeResult(index=idx, source=files[idx], error=str(e))
            results[idx] = result
            if result.ok:
                logger.info("[%02d] Trim success -> %s", idx + 1, result.final_path.name)
                tracker.advance()
            else:
                logger.error("[%02d] Failed: %s", idx + 1, result.error)

    return [r for r in results if r is not None]


def process(manifest: Manifest, tracker: ProgressTracker | None = None) -> RunResult:
    """Execute the full batch: trim every episode, then merge into parts.

    Args:
        manifest: Validated processing manifest.
        tracker: Progress handle for this run; a private one is used if omitted.
    """
    tracker = tracker or ProgressTracker()
    registry = ArtifactRegistry()

    try:
        ffutil.check_ffmpeg()
        files = list_episodes(manifest.input, manifest.options.extensions)
        if not files:
            raise NoEpisodesError(f"No episode files found in {manifest.input}")
        manifest.output.mkdir(parents=True, exist_ok=True)

        logger.info("Processing %d episode(s) from %s", len(files), manifest.input)
        tracker.start_processing(len(files))
        episodes = _run_episodes(files, manifest, tracker, registry)

        parts = merge_episodes(
            episodes, manifest.output, manifest.options, tracker, registry, manifest.timeouts
        )
        tracker.finish()
        logger.info("Done: %d part(s) written to %s", len(parts), manifest.output)
        return RunResult(parts=parts, episodes=episodes)
    except Exception as e:
        tracker.fail(str(e))
        raise
    finally:
        registry.cleanup()
