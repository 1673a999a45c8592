"""Chapter metadata editor: clips chapters to a trimmed segment and
recombines chapters of concatenated files."""

import logging
from pathlib import Path
from typing import Sequence

from chaptercut.ffmetadata import MetadataParseError, read_ffmetadata, write_ffmetadata
from chaptercut.models import MetaChapter, MetaFile
from chaptercut.timebase import seconds_to_units, units_to_seconds

logger = logging.getLogger(__name__)

COMBINED_TIMEBASE = (1, 1000)


def clip_chapters(meta: MetaFile, seg_start: float, seg_end: float) -> MetaFile:
    """Keep the chapters overlapping [seg_start, seg_end), re-zeroed to seg_start.

    A chapter straddling a boundary is truncated to the segment. The source
    timebase is kept.
    """
    num, den = meta.timebase_num, meta.timebase_den
    out = MetaFile(timebase_num=num, timebase_den=den)

    for ch in meta.chapters:
        ch_start = units_to_seconds(ch.start, num, den)
        ch_end = units_to_seconds(ch.end, num, den)
        if ch_end <= seg_start or ch_start >= seg_end:
            continue
        new_start = max(ch_start, seg_start) - seg_start
        new_end = min(ch_end, seg_end) - seg_start
        out.chapters.append(
            MetaChapter(
                start=seconds_to_units(new_start, num, den),
                end=seconds_to_units(new_end, num, den),
                title=ch.title,
            )
        )
    return out


def combine_chapters(
    metas: Sequence[MetaFile | None], durations: Sequence[float]
) -> MetaFile:
    """Lay the chapters of consecutive files on one 1/1000 timeline.

    ``durations[i]`` always advances the offset, even when ``metas[i]`` is
    None, so later files stay aligned.
    """
    num, den = COMBINED_TIMEBASE
    combined = MetaFile(timebase_num=num, timebase_den=den)
    offset = 0.0

    for meta, duration in zip(metas, durations):
        if meta is not None:
            for ch in meta.chapters:
                start = offset + units_to_seconds(ch.start, meta.timebase_num, meta.timebase_den)
                end = offset + units_to_seconds(ch.end, meta.timebase_num, meta.timebase_den)
                combined.chapters.append(
                    MetaChapter(
                        start=seconds_to_units(start, num, den),
                        end=seconds_to_units(end, num, den),
                        title=ch.title,
                    )
                )
        offset += duration

    return combined


def write_clipped_metadata(
    orig_path: Path, out_path: Path, seg_start: float, seg_end: float
) -> Path:
    """Read *orig_path*, clip it to the segment and write *out_path*.

    An empty chapter list still produces a valid file.
    """
    meta = read_ffmetadata(orig_path)
    return write_ffmetadata(out_path, clip_chapters(meta, seg_start, seg_end))


def build_combined_chapters(
    meta_paths: Sequence[Path | None],
    durations: Sequence[float],
    out_path: Path,
) -> Path:
    """File-level combine: missing or unreadable metadata contributes nothing."""
    metas: list[MetaFile | None] = []
    for path in meta_paths:
        if not path:
            metas.append(None)
            continue
        try:
            metas.append(read_ffmetadata(path))
        except MetadataParseError as e:
            logger.warning("Skipping chapters of %s: %s", path, e)
            metas.append(None)
    return write_ffmetadata(out_path, combine_chapters(metas, durations))
