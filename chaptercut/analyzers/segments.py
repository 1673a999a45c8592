"""Keep-segment planner: turns chapter-named skip ranges into kept intervals."""

import logging
from pathlib import Path

from chaptercut import ffutil
from chaptercut.manifest import Timeouts
from chaptercut.models import ChapterSet, SkipRange, TimeRange

logger = logging.getLogger(__name__)


def removed_ranges(chapters: ChapterSet, skips: list[SkipRange]) -> list[TimeRange]:
    """Resolve skip ranges to seconds, dropping the ones that don't apply.

    A range is ignored when either name is unknown or when its end does not
    come after its start.
    """
    ranges: list[TimeRange] = []
    for skip in skips:
        s = chapters.resolve(skip.start)
        e = chapters.resolve(skip.end)
        if s is None or e is None or e <= s:
            logger.debug("Ignoring skip range %s -> %s", skip.start, skip.end)
            continue
        ranges.append(TimeRange(start=s, end=e))
    return ranges


def compute_keep_segments(
    chapters: ChapterSet, skips: list[SkipRange]
) -> list[TimeRange]:
    """Subtract every valid skip range from [0, End).

    Ranges are applied in order against the shrinking segment list. If
    nothing survives, the whole episode is kept.
    """
    full = TimeRange(start=0.0, end=chapters.end)
    segments = [TimeRange(start=full.start, end=full.end)]

    for cut in removed_ranges(chapters, skips):
        remaining: list[TimeRange] = []
        for seg in segments:
            if seg.end <= cut.start or seg.start >= cut.end:
                remaining.append(seg)
                continue
            if seg.start < cut.start:
                remaining.append(TimeRange(start=seg.start, end=cut.start))
            if seg.end > cut.end:
                remaining.append(TimeRange(start=cut.end, end=seg.end))
        segments = remaining

    if not segments:
        logger.warning("Skip ranges cover the whole episode; keeping it entirely")
        return [full]

    return segments


def plan_episode(
    input_path: Path,
    skips: list[SkipRange],
    timeouts: Timeouts | None = None,
) -> tuple[ChapterSet, list[TimeRange]]:
    """Probe an episode's chapters and plan which parts of it to keep."""
    timeouts = timeouts or Timeouts()
    chapters = ffutil.probe_chapters(
        input_path,
        timeout=timeouts.chapter_probe,
        duration_timeout=timeouts.duration_probe,
    )
    return chapters, compute_keep_segments(chapters, skips)
