"""Unit tests for ffutil: probe parsing and subprocess wrappers."""

import json
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from chaptercut.ffutil import (
    FFmpegError,
    FFmpegNotFoundError,
    apply_metadata,
    concat_files,
    escape_concat_path,
    extract_subtitle,
    get_duration,
    probe_audio_tracks,
    probe_chapters,
    probe_subtitle_tracks,
    run_ffmpeg,
    trim_segment,
    write_concat_list,
)


def _ok(stdout: str = "", stderr: str = "") -> MagicMock:
    return MagicMock(returncode=0, stdout=stdout, stderr=stderr)


# ---------------------------------------------------------------------------
# run_ffmpeg
# ---------------------------------------------------------------------------

class TestRunFFmpeg:
    @patch("chaptercut.ffutil.subprocess.run")
    def test_passes_timeout(self, mock_run):
        mock_run.return_value = _ok()
        run_ffmpeg(["ffmpeg", "-version"], "version", timeout=12)
        assert mock_run.call_args.kwargs["timeout"] == 12

    @patch("chaptercut.ffutil.subprocess.run")
    def test_failure_carries_output(self, mock_run):
        mock_run.return_value = MagicMock(
            returncode=1, stdout="", stderr="Invalid data found when processing input"
        )
        with pytest.raises(FFmpegError, match="Invalid data found") as exc:
            run_ffmpeg(["ffmpeg", "-i", "x"], "ffmpeg trim", timeout=1)
        assert exc.value.returncode == 1
        assert exc.value.operation == "ffmpeg trim"
        assert not exc.value.timed_out

    @patch("chaptercut.ffutil.subprocess.run")
    def test_timeout_becomes_ffmpeg_error(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(
            cmd=["ffmpeg"], timeout=5, output=b"partial", stderr=b"frame=10"
        )
        with pytest.raises(FFmpegError, match="timed out") as exc:
            run_ffmpeg(["ffmpeg"], "ffmpeg concat", timeout=5)
        assert exc.value.timed_out
        assert "frame=10" in exc.value.output

    @patch("chaptercut.ffutil.subprocess.run")
    def test_missing_binary(self, mock_run):
        mock_run.side_effect = FileNotFoundError("ffprobe")
        with pytest.raises(FFmpegNotFoundError):
            run_ffmpeg(["ffprobe"], "probe", timeout=1)


# ---------------------------------------------------------------------------
# probes
# ---------------------------------------------------------------------------

CHAPTERS_JSON = {
    "chapters": [
        {"start_time": "0.000000", "tags": {"title": "Opening"}},
        {"start_time": "90.000000", "tags": {"title": "Part A"}},
        {"start_time": "600.000000", "tags": {}},
    ]
}


class TestGetDuration:
    @patch("chaptercut.ffutil.subprocess.run")
    def test_parses_float(self, mock_run):
        mock_run.return_value = _ok("1410.5\n")
        assert get_duration(Path("ep.mkv")) == 1410.5

    @patch("chaptercut.ffutil.subprocess.run")
    def test_empty_output_raises(self, mock_run):
        mock_run.return_value = _ok("\n")
        with pytest.raises(ValueError, match="Empty duration"):
            get_duration(Path("ep.mkv"))


class TestProbeChapters:
    @patch("chaptercut.ffutil.subprocess.run")
    def test_chapters_and_end(self, mock_run):
        mock_run.side_effect = [_ok(json.dumps(CHAPTERS_JSON)), _ok("1410.0\n")]
        cs = probe_chapters(Path("ep.mkv"))

        assert [c.title for c in cs.chapters] == ["Opening", "Part A", "Chapter_03"]
        assert [c.id for c in cs.chapters] == ["ch01", "ch02", "ch03"]
        assert cs.end == 1410.0
        assert cs.resolve("End") == 1410.0
        assert cs.resolve("Part A") == 90.0

    @patch("chaptercut.ffutil.subprocess.run")
    def test_duration_failure_uses_last_chapter(self, mock_run):
        mock_run.side_effect = [
            _ok(json.dumps(CHAPTERS_JSON)),
            MagicMock(returncode=1, stdout="", stderr="boom"),
        ]
        cs = probe_chapters(Path("ep.mkv"))
        assert cs.end == 601.0

    @patch("chaptercut.ffutil.subprocess.run")
    def test_no_chapters(self, mock_run):
        mock_run.side_effect = [_ok(json.dumps({"chapters": []})), _ok("30.0")]
        cs = probe_chapters(Path("ep.mkv"))
        assert cs.chapters == []
        assert cs.as_dict() == {"End": 30.0}

    @patch("chaptercut.ffutil.subprocess.run")
    def test_probe_failure_raises(self, mock_run):
        mock_run.return_value = MagicMock(returncode=1, stdout="", stderr="moov atom not found")
        with pytest.raises(FFmpegError, match="moov atom"):
            probe_chapters(Path("ep.mkv"))


class TestProbeTracks:
    @patch("chaptercut.ffutil.subprocess.run")
    def test_audio_tracks_are_audio_relative(self, mock_run):
        data = {
            "streams": [
                {"index": 1, "tags": {"language": "jpn", "title": "Stereo"}},
                {"index": 2, "tags": {"language": "eng"}},
            ]
        }
        mock_run.return_value = _ok(json.dumps(data))
        tracks = probe_audio_tracks(Path("ep.mkv"))
        assert [(t.index, t.lang, t.title) for t in tracks] == [
            (0, "jpn", "Stereo"), (1, "eng", ""),
        ]

    @patch("chaptercut.ffutil.subprocess.run")
    def test_subtitle_tracks_keep_stream_index(self, mock_run):
        data = {"streams": [{"index": 3, "codec_name": "subrip", "tags": {"language": "eng"}}]}
        mock_run.return_value = _ok(json.dumps(data))
        tracks = probe_subtitle_tracks(Path("ep.mkv"))
        assert tracks[0].index == 3
        assert tracks[0].codec == "subrip"


# ---------------------------------------------------------------------------
# stream-copy commands (verify the command shape)
# ---------------------------------------------------------------------------

class TestTrimSegment:
    @patch("chaptercut.ffutil.subprocess.run")
    def test_stream_copy_without_chapters(self, mock_run):
        mock_run.return_value = _ok()
        trim_segment(Path("in.mkv"), 90.0, 600.25, Path("out.mkv"), timeout=300)

        cmd = mock_run.call_args[0][0]
        assert cmd.index("-ss") < cmd.index("-i")
        assert cmd[cmd.index("-ss") + 1] == "90.000"
        assert cmd[cmd.index("-to") + 1] == "600.250"
        assert cmd[cmd.index("-c") + 1] == "copy"
        assert cmd[cmd.index("-map") + 1] == "0"
        assert cmd[cmd.index("-map_chapters") + 1] == "-1"
        assert cmd[cmd.index("-avoid_negative_ts") + 1] == "make_zero"
        assert mock_run.call_args.kwargs["timeout"] == 300


class TestApplyMetadata:
    @patch("chaptercut.ffutil.subprocess.run")
    def test_maps_metadata_from_second_input(self, mock_run):
        mock_run.return_value = _ok()
        apply_metadata(Path("in.mkv"), Path("meta.txt"), Path("out.mkv"))
        cmd = mock_run.call_args[0][0]
        assert cmd[cmd.index("-map_metadata") + 1] == "1"
        assert not any(a.startswith("-disposition") for a in cmd)

    @patch("chaptercut.ffutil.subprocess.run")
    def test_default_audio(self, mock_run):
        mock_run.return_value = _ok()
        apply_metadata(Path("in.mkv"), Path("meta.txt"), Path("out.mkv"), default_audio=1)
        cmd = mock_run.call_args[0][0]
        assert cmd[cmd.index("-disposition:a:1") + 1] == "default"
        assert cmd[-1] == "out.mkv"


class TestConcat:
    def test_write_concat_list(self, tmp_path: Path):
        a = tmp_path / "Episode 1.mkv"
        b = tmp_path / "it's.mkv"
        lst = write_concat_list([a, b], tmp_path / "list.txt")
        lines = lst.read_text().splitlines()
        assert lines[0] == f"file '{a.resolve().as_posix()}'"
        assert lines[1].endswith("it'\\''s.mkv'")

    def test_escape_concat_path(self):
        assert escape_concat_path(Path("/x/a'b.mkv")).endswith("a'\\''b.mkv")

    @patch("chaptercut.ffutil.subprocess.run")
    def test_concat_command(self, mock_run):
        mock_run.return_value = _ok()
        concat_files(Path("list.txt"), Path("out.mkv"), regenerate_pts=True)
        cmd = mock_run.call_args[0][0]
        assert cmd[cmd.index("-f") + 1] == "concat"
        assert cmd[cmd.index("-safe") + 1] == "0"
        assert "+genpts" in cmd

    @patch("chaptercut.ffutil.subprocess.run")
    def test_concat_failure(self, mock_run):
        mock_run.return_value = MagicMock(returncode=1, stdout="", stderr="Impossible to open")
        with pytest.raises(FFmpegError, match="Impossible to open"):
            concat_files(Path("list.txt"), Path("out.mkv"))


class TestExtractSubtitle:
    @patch("chaptercut.ffutil.subprocess.run")
    def test_unknown_extension_becomes_srt(self, mock_run):
        mock_run.return_value = _ok()
        out = extract_subtitle(Path("in.mkv"), 3, Path("subs/ep.sup"))
        assert out == Path("subs/ep.srt")
        cmd = mock_run.call_args[0][0]
        assert cmd[cmd.index("-map") + 1] == "0:3"
        assert cmd[cmd.index("-c:s") + 1] == "srt"
