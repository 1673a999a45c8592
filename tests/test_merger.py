"""Tests for grouping trimmed episodes into parts."""

from pathlib import Path
from unittest.mock import patch

import pytest

from chaptercut.artifacts import ArtifactRegistry
from chaptercut.ffmetadata import format_ffmetadata, read_ffmetadata
from chaptercut.ffutil import FFmpegError
from chaptercut.manifest import TrimOptions
from chaptercut.merger import (
    NoEpisodesError,
    clamp_parts,
    merge_episodes,
    part_filename,
    partition,
)
from chaptercut.models import EpisodeResult, MetaChapter, MetaFile, SubtitleTrack
from chaptercut.progress import ProgressTracker


def _episode(tmp_path: Path, index: int, duration: float = 10.0, meta: bool = True):
    video = tmp_path / f"ep{index}.mkv"
    video.write_bytes(b"v")
    meta_path = None
    if meta:
        meta_path = tmp_path / f"ep{index}_meta.txt"
        meta_path.write_text(
            format_ffmetadata(MetaFile(chapters=[MetaChapter(0, 5000, f"Ep{index}")]))
        )
    return EpisodeResult(
        index=index, source=Path(f"Episode {index}.mkv"),
        final_path=video, metadata_path=meta_path, duration=duration,
    )


def _fake_concat(list_path, out, timeout=None, regenerate_pts=False):
    Path(out).write_bytes(b"part")
    return out


def _fake_apply(inp, meta, out, timeout=None, default_audio=None):
    Path(out).write_bytes(b"part+chapters")
    return out


@pytest.fixture
def tracker():
    t = ProgressTracker()
    t.start_processing(3)
    return t


class TestPartition:
    def test_seven_into_three(self):
        assert [len(c) for c in partition(list(range(7)), 3)] == [3, 3, 1]

    def test_order_preserved(self):
        assert partition([1, 2, 3, 4], 2) == [[1, 2], [3, 4]]

    def test_more_parts_than_items(self):
        assert partition([1, 2], 5) == [[1], [2]]

    def test_ceil_can_yield_fewer_parts(self):
        # ceil(4 / 3) = 2 leaves only two chunks
        assert partition([1, 2, 3, 4], 3) == [[1, 2], [3, 4]]

    def test_empty(self):
        assert partition([], 3) == []

    def test_clamp(self):
        assert clamp_parts(0, 5) == 1
        assert clamp_parts(9, 5) == 5
        assert clamp_parts(2, 5) == 2

    def test_part_filename(self):
        assert part_filename(3) == "Part3.mkv"


class TestMergeEpisodes:
    def test_two_parts_with_chapters(self, tmp_path, tracker):
        eps = [_episode(tmp_path, i) for i in range(3)]
        opts = TrimOptions(parts=2, audio_index=1)
        with patch("chaptercut.ffutil.concat_files", side_effect=_fake_concat) as mock_concat, \
             patch("chaptercut.ffutil.apply_metadata", side_effect=_fake_apply) as mock_apply:
            parts = merge_episodes(eps, tmp_path, opts, tracker, ArtifactRegistry())

        assert parts == [tmp_path / "Part1.mkv", tmp_path / "Part2.mkv"]
        assert parts[0].read_bytes() == b"part+chapters"
        assert mock_concat.call_args.kwargs["regenerate_pts"] is True
        assert mock_apply.call_args.kwargs["default_audio"] == 1
        assert tracker.snapshot().completed == 2
        # consumed inputs are removed
        assert not eps[0].final_path.exists()
        assert not eps[0].metadata_path.exists()
        assert not (tmp_path / "part_1_chapters.txt").exists()

    def test_merge_total_is_actual_part_count(self, tmp_path, tracker):
        eps = [_episode(tmp_path, i) for i in range(4)]
        with patch("chaptercut.ffutil.concat_files", side_effect=_fake_concat), \
             patch("chaptercut.ffutil.apply_metadata", side_effect=_fake_apply):
            parts = merge_episodes(eps, tmp_path, TrimOptions(parts=3), tracker, ArtifactRegistry())

        snap = tracker.snapshot()
        assert len(parts) == 2
        assert snap.total == 2
        assert snap.percent == 100.0

    def test_part_chapters_are_offset(self, tmp_path, tracker):
        eps = [_episode(tmp_path, 0, 10.0), _episode(tmp_path, 1, 12.5)]
        captured = {}

        def capture_apply(inp, meta, out, timeout=None, default_audio=None):
            captured["meta"] = read_ffmetadata(meta)
            return _fake_apply(inp, meta, out)

        with patch("chaptercut.ffutil.concat_files", side_effect=_fake_concat), \
             patch("chaptercut.ffutil.apply_metadata", side_effect=capture_apply):
            merge_episodes(eps, tmp_path, TrimOptions(parts=1), tracker, ArtifactRegistry())

        assert [(c.start, c.end, c.title) for c in captured["meta"].chapters] == [
            (0, 5000, "Ep0"), (10000, 15000, "Ep1"),
        ]

    def test_failed_and_missing_episodes_are_skipped(self, tmp_path, tracker):
        good = _episode(tmp_path, 0)
        failed = EpisodeResult(index=1, source=Path("Episode 1.mkv"), error="scan failed")
        missing = EpisodeResult(
            index=2, source=Path("Episode 2.mkv"), final_path=tmp_path / "gone.mkv"
        )
        with patch("chaptercut.ffutil.concat_files", side_effect=_fake_concat), \
             patch("chaptercut.ffutil.apply_metadata", side_effect=_fake_apply):
            parts = merge_episodes(
                [good, failed, missing], tmp_path, TrimOptions(parts=3), tracker, ArtifactRegistry()
            )
        assert parts == [tmp_path / "Part1.mkv"]

    def test_nothing_to_merge(self, tmp_path, tracker):
        failed = EpisodeResult(index=0, source=Path("a.mkv"), error="boom")
        with pytest.raises(NoEpisodesError):
            merge_episodes([failed], tmp_path, TrimOptions(), tracker, ArtifactRegistry())

    def test_chapter_failure_keeps_plain_part(self, tmp_path, tracker):
        eps = [_episode(tmp_path, 0)]
        with patch("chaptercut.ffutil.concat_files", side_effect=_fake_concat), \
             patch("chaptercut.ffutil.apply_metadata",
                   side_effect=FFmpegError("ffmpeg apply metadata", 1, "")):
            parts = merge_episodes(eps, tmp_path, TrimOptions(), tracker, ArtifactRegistry())
        assert parts[0].read_bytes() == b"part"
        assert not (tmp_path / "Part1_tmp.mkv").exists()

    def test_concat_failure_skips_part_and_continues(self, tmp_path, tracker):
        eps = [_episode(tmp_path, i) for i in range(2)]
        calls = []

        def flaky_concat(list_path, out, timeout=None, regenerate_pts=False):
            calls.append(out)
            if len(calls) == 1:
                raise FFmpegError("ffmpeg concat", None, timed_out=True)
            return _fake_concat(list_path, out)

        with patch("chaptercut.ffutil.concat_files", side_effect=flaky_concat), \
             patch("chaptercut.ffutil.apply_metadata", side_effect=_fake_apply):
            parts = merge_episodes(eps, tmp_path, TrimOptions(parts=2), tracker, ArtifactRegistry())

        assert parts == [tmp_path / "Part2.mkv"]
        assert tracker.snapshot().completed == 2

    def test_subtitles_are_combined(self, tmp_path, tracker):
        eps = [_episode(tmp_path, 0, 20.0), _episode(tmp_path, 1, 20.0)]

        def fake_extract(src, index, out, timeout=None):
            out.write_text("1\n00:00:00,500 --> 00:00:01,000\nHi\n", encoding="utf-8")
            return out

        with patch("chaptercut.ffutil.concat_files", side_effect=_fake_concat), \
             patch("chaptercut.ffutil.apply_metadata", side_effect=_fake_apply), \
             patch("chaptercut.ffutil.probe_subtitle_tracks",
                   return_value=[SubtitleTrack(index=2, language="eng", codec="subrip")]), \
             patch("chaptercut.ffutil.extract_subtitle", side_effect=fake_extract):
            merge_episodes(
                eps, tmp_path, TrimOptions(subtitles=True), tracker, ArtifactRegistry()
            )

        text = (tmp_path / "subtitles" / "Part1_eng.srt").read_text(encoding="utf-8")
        assert "00:00:20,500 --> 00:00:21,000" in text
        assert not any(p.name.startswith("tmp_subs_") for p in tmp_path.iterdir())
