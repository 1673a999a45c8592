"""Shared data types used across ChapterCut."""

from dataclasses import dataclass, field
from pathlib import Path

END_CHAPTER = "End"


@dataclass
class TimeRange:
    """A half-open [start, end) time interval in seconds."""

    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass
class Chapter:
    """A chapter marker as reported by ffprobe."""

    id: str
    title: str
    start: float


@dataclass
class ChapterSet:
    """Ordered chapters of one episode plus its total duration.

    Titles are display attributes and may repeat; ``id`` is unique.
    The name ``"End"`` always resolves to the episode duration.
    """

    chapters: list[Chapter]
    end: float

    def resolve(self, name: str) -> float | None:
        if name == END_CHAPTER:
            return self.end
        for ch in self.chapters:
            if ch.title == name:
                return ch.start
        for ch in self.chapters:
            if ch.id == name:
                return ch.start
        return None

    def as_dict(self) -> dict[str, float]:
        """Name -> start mapping; the first chapter with a given title wins."""
        out: dict[str, float] = {}
        for ch in self.chapters:
            out.setdefault(ch.title, ch.start)
        out[END_CHAPTER] = self.end
        return out


@dataclass
class SkipRange:
    """A range to remove, given by two chapter names."""

    start: str
    end: str


@dataclass
class MetaChapter:
    """A single [CHAPTER] block of an ffmetadata file, in timebase units."""

    start: int
    end: int
    title: str = ""


@dataclass
class MetaFile:
    """Parsed ffmetadata: one timebase shared by every chapter."""

    timebase_num: int = 1
    timebase_den: int = 1000
    chapters: list[MetaChapter] = field(default_factory=list)


@dataclass
class EpisodeResult:
    """Outcome of processing one input episode."""

    index: int
    source: Path
    final_path: Path | None = None
    metadata_path: Path | None = None
    duration: float = 0.0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.final_path is not None


@dataclass
class AudioTrack:
    index: int
    lang: str = ""
    title: str = ""


@dataclass
class SubtitleTrack:
    index: int
    language: str = ""
    title: str = ""
    codec: str = ""


@dataclass
class ScanResult:
    """Preview of the first episodes of a folder."""

    chapters: dict[str, float]
    audio_tracks: list[AudioTrack]
    first_file: Path


@dataclass
class Progress:
    """Point-in-time copy of a run's progress."""

    total: int = 0
    completed: int = 0
    percent: float = 0.0
    status: str = "idle"
    done: bool = False
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "completed": self.completed,
            "percent": self.percent,
            "status": self.status,
            "done": self.done,
            "error": self.error,
        }
