"""JSON manifest schema: the contract between CLI/API and engine."""

import json
from dataclasses import dataclass, field
from pathlib import Path

from chaptercut.models import SkipRange


@dataclass
class Timeouts:
    """Deadlines in seconds for each class of ffmpeg invocation."""

    duration_probe: float = 15.0
    chapter_probe: float = 30.0
    metadata_extract: float = 20.0
    segment_trim: float = 300.0
    episode_concat: float = 600.0
    segment_reapply: float = 120.0
    part_concat: float = 900.0
    part_reapply: float = 300.0
    subtitle_extract: float = 120.0


@dataclass
class TrimOptions:
    """What to cut and how to regroup the episodes."""

    skip_ranges: list[SkipRange] = field(default_factory=list)
    parts: int = 1
    # Audio stream (audio-relative index) flagged as default in each part
    audio_index: int | None = None
    # None or 0 launches one worker per episode
    max_workers: int | None = 4
    extensions: tuple[str, ...] = (".mkv",)
    merge_segment_chapters: bool = False
    subtitles: bool = False


@dataclass
class Manifest:
    """Top-level processing manifest."""

    input: Path
    output: Path
    version: str = "1"
    options: TrimOptions = field(default_factory=TrimOptions)
    timeouts: Timeouts = field(default_factory=Timeouts)


def _skip_range(item) -> SkipRange:
    if isinstance(item, dict):
        return SkipRange(start=str(item["start"]), end=str(item["end"]))
    start, end = item
    return SkipRange(start=str(start), end=str(end))


def options_from_dict(data: dict) -> TrimOptions:
    """Build TrimOptions from either snake_case or camelCase keys."""

    def get(snake: str, camel: str, default):
        if snake in data:
            return data[snake]
        return data.get(camel, default)

    ranges = get("skip_ranges", "skipRanges", None) or []
    audio_index = get("audio_index", "audioIndex", None)
    max_workers = get("max_workers", "maxWorkers", 4)
    extensions = get("extensions", "extensions", None) or [".mkv"]

    return TrimOptions(
        skip_ranges=[_skip_range(r) for r in ranges],
        parts=int(get("parts", "parts", 1) or 1),
        audio_index=None if audio_index is None or int(audio_index) < 0 else int(audio_index),
        max_workers=None if max_workers is None else int(max_workers),
        extensions=tuple(e if e.startswith(".") else f".{e}" for e in extensions),
        merge_segment_chapters=bool(
            get("merge_segment_chapters", "mergeSegmentChapters", False)
        ),
        subtitles=bool(get("subtitles", "subtitles", False)),
    )


def load_manifest(path: str | Path) -> Manifest:
    """Load and validate a manifest from a JSON file."""
    path = Path(path)
    data = json.loads(path.read_text())

    if "input" not in data or "output" not in data:
        raise ValueError("Manifest must contain 'input' and 'output' fields")

    options = options_from_dict(data.get("options", {}))
    timeouts = Timeouts(**data["timeouts"]) if "timeouts" in data else Timeouts()

    return Manifest(
        version=data.get("version", "1"),
        input=Path(data["input"]),
        output=Path(data["output"]),
        options=options,
        timeouts=timeouts,
    )
