"""Per-episode pipeline: scan -> plan -> trim each kept segment -> concat."""

import logging
from pathlib import Path

from chaptercut import ffutil
from chaptercut.analyzers.segments import plan_episode
from chaptercut.artifacts import ArtifactRegistry
from chaptercut.editors.chapters import build_combined_chapters
from chaptercut.editors.cut import CONTAINER, episode_tag, trim_segment_with_metadata
from chaptercut.manifest import Timeouts, TrimOptions
from chaptercut.models import EpisodeResult

logger = logging.getLogger(__name__)


def process_episode(
    index: int,
    source: Path,
    output_dir: Path,
    options: TrimOptions,
    registry: ArtifactRegistry,
    timeouts: Timeouts | None = None,
) -> EpisodeResult:
    """Produce one trimmed episode file.

    Never raises for media failures: a failed scan, or no segment surviving
    the trim, is reported through ``EpisodeResult.error``.
    """
    timeouts = timeouts or Timeouts()
    tag = f"[{index + 1:02d}]"
    logger.info("%s Processing %s", tag, source.name)

    try:
        chapters, segments = plan_episode(source, options.skip_ranges, timeouts)
    except (ffutil.FFmpegError, ValueError) as e:
        logger.error("%s Chapter scan failed for %s: %s", tag, source.name, e)
        return EpisodeResult(index=index, source=source, error=f"scan failed: {e}")

    logger.info(
        "%s %d chapter(s), %.1fs, keeping %d segment(s)",
        tag, len(chapters.chapters), chapters.end, len(segments),
    )

    parts: list[Path] = []
    metas: list[Path | None] = []
    durations: list[float] = []

    for i, seg in enumerate(segments):
        if seg.end <= seg.start:
            continue
        try:
            part, meta = trim_segment_with_metadata(
                source, output_dir, seg, i, registry, timeouts, episode=index
            )
        except ffutil.FFmpegError as e:
            logger.warning(
                "%s Trim of segment %d (%.3f-%.3f) failed for %s: %s",
                tag, i, seg.start, seg.end, source.name, e,
            )
            continue

        try:
            dur = ffutil.get_duration(part, timeout=timeouts.duration_probe)
        except (ffutil.FFmpegError, ValueError) as e:
            logger.warning("%s Duration probe failed for %s, using plan: %s", tag, part.name, e)
            dur = seg.duration

        parts.append(part)
        metas.append(meta)
        durations.append(dur)

    if not parts:
        logger.error("%s No segment could be trimmed for %s", tag, source.name)
        return EpisodeResult(
            index=index, source=source, error=f"no valid segments created for {source.name}"
        )

    total = sum(durations)

    if len(parts) == 1:
        return EpisodeResult(
            index=index, source=source, final_path=parts[0],
            metadata_path=metas[0], duration=total,
        )

    stem = episode_tag(index, source)
    merged = registry.register(output_dir / f"merged_{stem}{CONTAINER}")
    list_file = registry.register(output_dir / f"concat_list_{stem}.txt")
    try:
        ffutil.write_concat_list(parts, list_file)
        ffutil.concat_files(list_file, merged, timeout=timeouts.episode_concat)
    except (ffutil.FFmpegError, OSError) as e:
        logger.error("%s Concatenating segments failed for %s: %s", tag, source.name, e)
        registry.release(merged)
        return EpisodeResult(index=index, source=source, error=f"concat failed: {e}")
    finally:
        registry.release(list_file)

    for part in parts:
        registry.release(part)

    if options.merge_segment_chapters:
        meta_path = registry.register(output_dir / f"merged_{stem}_meta.txt")
        try:
            build_combined_chapters(metas, durations, meta_path)
        except OSError as e:
            logger.warning("%s Combining segment chapters failed: %s", tag, e)
            registry.release(meta_path)
            meta_path = metas[0]
    else:
        meta_path = metas[0]

    return EpisodeResult(
        index=index, source=source, final_path=merged,
        metadata_path=meta_path, duration=total,
    )
