"""Shared test fixtures."""

from pathlib import Path

import pytest

from chaptercut.models import Chapter, ChapterSet

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def sample_manifest_path() -> Path:
    return FIXTURES_DIR / "sample_manifest.json"


@pytest.fixture
def episode_chapters_path() -> Path:
    return FIXTURES_DIR / "episode_chapters.txt"


def make_chapters(end: float, **starts: float) -> ChapterSet:
    """ChapterSet from keyword titles, e.g. make_chapters(20, A=0, B=10)."""
    chapters = [
        Chapter(id=f"ch{i:02d}", title=title, start=start)
        for i, (title, start) in enumerate(starts.items(), 1)
    ]
    return ChapterSet(chapters=chapters, end=end)
