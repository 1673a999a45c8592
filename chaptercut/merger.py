"""Part merger: groups trimmed episodes into N output parts with chapters."""

import logging
import math
import os
from pathlib import Path
from typing import Sequence, TypeVar

from chaptercut import ffutil
from chaptercut.artifacts import ArtifactRegistry
from chaptercut.editors.chapters import build_combined_chapters
from chaptercut.editors.cut import CONTAINER
from chaptercut.editors.subtitles import combine_subtitles
from chaptercut.manifest import Timeouts, TrimOptions
from chaptercut.models import EpisodeResult
from chaptercut.progress import ProgressTracker

logger = logging.getLogger(__name__)

T = TypeVar("T")


class NoEpisodesError(RuntimeError):
    """Raised when no episode survived to the merge phase."""


def clamp_parts(parts: int, count: int) -> int:
    return max(1, min(parts, count))


def partition(items: Sequence[T], parts: int) -> list[list[T]]:
    """Split into contiguous chunks of ``ceil(len / parts)`` items.

    The last chunk may be shorter, and fewer than ``parts`` chunks come back
    when the division leaves nothing for the tail (7 into 3 -> 3, 3, 1).
    """
    if not items:
        return []
    parts = clamp_parts(parts, len(items))
    size = math.ceil(len(items) / parts)
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def part_filename(number: int) -> str:
    return f"Part{number}{CONTAINER}"


def _extract_episode_subtitles(
    episode: Path, subs_dir: Path, timeouts: Timeouts
) -> dict[str, Path]:
    found: dict[str, Path] = {}
    try:
        tracks = ffutil.probe_subtitle_tracks(episode, timeout=timeouts.chapter_probe)
    except (ffutil.FFmpegError, ValueError) as e:
        logger.warning("Subtitle scan failed for %s: %s", episode.name, e)
        return found

    for track in tracks:
        lang = track.language or "unknown"
        key = lang if lang not in found else f"{lang}{track.index}"
        out = subs_dir / f"{episode.stem}_{key}_{track.index}.srt"
        try:
            found[key] = ffutil.extract_subtitle(
                episode, track.index, out, timeout=timeouts.subtitle_extract
            )
        except ffutil.FFmpegError as e:
            logger.warning("Failed to extract subtitle track %d of %s: %s", track.index, episode.name, e)
    return found


def merge_part(
    number: int,
    episodes: Sequence[EpisodeResult],
    output_dir: Path,
    options: TrimOptions,
    registry: ArtifactRegistry,
    timeouts: Timeouts | None = None,
) -> Path:
    """Concatenate one chunk of episodes into ``Part{number}``.

    Raises FFmpegError when the concatenation fails. Chapter problems only
    cost the part its chapters.
    """
    timeouts = timeouts or Timeouts()
    files = [ep.final_path for ep in episodes]
    metas = [ep.metadata_path for ep in episodes]
    durations = [ep.duration for ep in episodes]

    list_file = registry.register(output_dir / f"merge_part_{number}.txt")
    tmp_merged = registry.register(output_dir / f"Part{number}_tmp{CONTAINER}")
    chapters_file: Path | None = registry.register(output_dir / f"part_{number}_chapters.txt")
    final = output_dir / part_filename(number)

    try:
        ffutil.write_concat_list(files, list_file)
        ffutil.concat_files(
            list_file, tmp_merged, timeout=timeouts.part_concat, regenerate_pts=True
        )
    finally:
        registry.release(list_file)

    try:
        build_combined_chapters(metas, durations, chapters_file)
    except OSError as e:
        logger.warning("Building chapters for part %d failed: %s", number, e)
        registry.release(chapters_file)
        chapters_file = None

    if chapters_file is not None:
        try:
            ffutil.apply_metadata(
                tmp_merged, chapters_file, final,
                timeout=timeouts.part_reapply, default_audio=options.audio_index,
            )
        except ffutil.FFmpegError as e:
            logger.warning("Applying chapters to part %d failed, using it without: %s", number, e)
            os.replace(tmp_merged, final)
        registry.release(chapters_file)
    else:
        os.replace(tmp_merged, final)
    registry.release(tmp_merged)

    if options.subtitles:
        subs_tmp = registry.make_temp_dir(output_dir, prefix="tmp_subs_")
        episode_subs = [
            _extract_episode_subtitles(f, subs_tmp, timeouts) for f in files
        ]
        if any(episode_subs):
            combine_subtitles(episode_subs, durations, output_dir / "subtitles", number)
        registry.release(subs_tmp)

    return final


def merge_episodes(
    results: Sequence[EpisodeResult],
    output_dir: Path,
    options: TrimOptions,
    tracker: ProgressTracker,
    registry: ArtifactRegistry,
    timeouts: Timeouts | None = None,
) -> list[Path]:
    """Merge the successful episodes into parts, one part at a time.

    Grouping follows each episode's position among the *successful* ones.
    The merge total is the number of chunks actually produced.
    """
    valid: list[EpisodeResult] = []
    for r in results:
        if not r.ok:
            continue
        if not r.final_path.exists():
            logger.warning("Skipping missing file in merge list: %s", r.final_path)
            continue
        valid.append(r)

    if not valid:
        raise NoEpisodesError("No episodes left to merge")

    chunks = partition(valid, options.parts)
    logger.info("Merging %d episode(s) into %d part(s)", len(valid), len(chunks))
    tracker.start_merging(len(chunks))

    outputs: list[Path] = []
    for number, chunk in enumerate(chunks, 1):
        try:
            part = merge_part(number, chunk, output_dir, options, registry, timeouts)
        except (ffutil.FFmpegError, OSError) as e:
            logger.error("Concatenation of part %d failed: %s", number, e)
        else:
            outputs.append(part)
            logger.info("Part %d ready: %s (%d episode(s))", number, part.name, len(chunk))
        tracker.advance()

    for r in valid:
        registry.release(r.final_path)
        if r.metadata_path:
            registry.release(r.metadata_path)
    return outputs
