"""Segment-cut editor: stream-copies one kept segment with its chapters."""

import logging
import os
from pathlib import Path

from chaptercut import ffutil
from chaptercut.artifacts import ArtifactRegistry
from chaptercut.editors.chapters import write_clipped_metadata
from chaptercut.ffmetadata import MetadataParseError
from chaptercut.manifest import Timeouts
from chaptercut.models import TimeRange

logger = logging.getLogger(__name__)

CONTAINER = ".mkv"


def episode_tag(episode: int, source: Path) -> str:
    """Unique prefix for the intermediates of one episode.

    Episodes may share a stem (``ep1.mkv`` and ``ep1.mp4``), so the index
    of the episode in the batch leads.
    """
    return f"{episode:03d}_{source.stem}"


def segment_filename(source: Path, index: int, seg: TimeRange, episode: int = 0) -> str:
    tag = episode_tag(episode, source)
    return f"{tag}_seg_{index:02d}_{seg.start:.0f}_{seg.end:.0f}{CONTAINER}"


def trim_segment_with_metadata(
    source: Path,
    output_dir: Path,
    seg: TimeRange,
    index: int,
    registry: ArtifactRegistry,
    timeouts: Timeouts | None = None,
    episode: int = 0,
) -> tuple[Path, Path | None]:
    """Cut ``seg`` out of ``source`` and carry its chapters along.

    Returns the trimmed file and the clipped ffmetadata file (None when no
    metadata could be produced). ``episode`` is the batch index that keeps
    the file names of same-stem episodes apart. Raises FFmpegError only when
    the trim itself fails; metadata problems are logged and tolerated.
    """
    timeouts = timeouts or Timeouts()
    tmp_dir = registry.make_temp_dir(output_dir, prefix="tmp_trim_")
    orig_meta = tmp_dir / "orig_meta.txt"
    temp_trim = tmp_dir / f"temp_trim{CONTAINER}"
    clipped_meta: Path | None = registry.register(
        output_dir / f"{episode_tag(episode, source)}_meta_{index:02d}.txt"
    )
    final_out = registry.register(output_dir / segment_filename(source, index, seg, episode))

    try:
        try:
            ffutil.extract_metadata(source, orig_meta, timeout=timeouts.metadata_extract)
            write_clipped_metadata(orig_meta, clipped_meta, seg.start, seg.end)
        except (ffutil.FFmpegError, MetadataParseError) as e:
            logger.warning("Chapters unavailable for %s segment %d: %s", source.name, index, e)
            registry.release(clipped_meta)
            clipped_meta = None

        ffutil.trim_segment(source, seg.start, seg.end, temp_trim, timeout=timeouts.segment_trim)

        if clipped_meta is None:
            os.replace(temp_trim, final_out)
            return final_out, None

        try:
            ffutil.apply_metadata(
                temp_trim, clipped_meta, final_out, timeout=timeouts.segment_reapply
            )
        except ffutil.FFmpegError as e:
            logger.warning(
                "Reapplying chapters failed for %s segment %d, keeping it without: %s",
                source.name, index, e,
            )
            os.replace(temp_trim, final_out)
        return final_out, clipped_meta
    except Exception:
        registry.release(final_out)
        if clipped_meta is not None:
            registry.release(clipped_meta)
        raise
    finally:
        registry.release(tmp_dir)
