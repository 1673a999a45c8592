"""FFmpeg/ffprobe subprocess helpers.

Every call runs with a deadline. Failures (non-zero exit or deadline
expiry) raise FFmpegError carrying the tool's captured output.
"""

import json
import logging
import shutil
import subprocess
from pathlib import Path
from typing import Sequence

from chaptercut.models import AudioTrack, Chapter, ChapterSet, SubtitleTrack

logger = logging.getLogger(__name__)


class FFmpegNotFoundError(RuntimeError):
    pass


class FFmpegError(RuntimeError):
    """An ffmpeg/ffprobe invocation failed or ran past its deadline."""

    def __init__(
        self,
        operation: str,
        returncode: int | None,
        output: str = "",
        timed_out: bool = False,
    ):
        self.operation = operation
        self.returncode = returncode
        self.output = output
        self.timed_out = timed_out
        if timed_out:
            msg = f"{operation} timed out"
        else:
            msg = f"{operation} failed (rc={returncode})"
        tail = output.strip()[-500:]
        if tail:
            msg += f": {tail}"
        super().__init__(msg)


def _text(data) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode(errors="replace")
    return data


def check_ffmpeg() -> None:
    """Raise FFmpegNotFoundError if ffmpeg/ffprobe are not on PATH."""
    for cmd in ("ffmpeg", "ffprobe"):
        if shutil.which(cmd) is None:
            raise FFmpegNotFoundError(f"{cmd} not found on PATH")


def run_ffmpeg(
    cmd: Sequence[str], operation: str, timeout: float | None
) -> subprocess.CompletedProcess:
    """Run *cmd*, returning the completed process or raising FFmpegError."""
    logger.debug("%s: %s", operation, " ".join(cmd))
    try:
        result = subprocess.run(
            list(cmd),
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise FFmpegError(
            operation, None, _text(e.stdout) + _text(e.stderr), timed_out=True
        ) from e
    except FileNotFoundError as e:
        raise FFmpegNotFoundError(f"{cmd[0]} not found on PATH") from e

    if result.returncode != 0:
        raise FFmpegError(
            operation, result.returncode, _text(result.stdout) + _text(result.stderr)
        )
    return result


def get_duration(input_path: Path, timeout: float | None = 15.0) -> float:
    """Container duration in seconds."""
    cmd = [
        "ffprobe",
        "-v", "error",
        "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1",
        str(input_path),
    ]
    result = run_ffmpeg(cmd, "ffprobe duration", timeout)
    value = (result.stdout or "").strip()
    if not value:
        raise ValueError(f"Empty duration reported for {input_path}")
    return float(value)


def probe_chapters(
    input_path: Path,
    timeout: float | None = 30.0,
    duration_timeout: float | None = 15.0,
) -> ChapterSet:
    """Read chapter markers and total duration of one episode.

    Untitled chapters are named ``Chapter_NN`` after their 1-based ordinal.
    When the duration cannot be probed, the last chapter start plus one
    second is used instead.
    """
    cmd = [
        "ffprobe",
        "-v", "error",
        "-show_chapters",
        "-of", "json",
        str(input_path),
    ]
    result = run_ffmpeg(cmd, "ffprobe chapters", timeout)
    data = json.loads(result.stdout or "{}")

    chapters: list[Chapter] = []
    for idx, ch in enumerate(data.get("chapters", []), 1):
        try:
            start = float(ch.get("start_time", 0.0))
        except (TypeError, ValueError):
            start = 0.0
        title = (ch.get("tags") or {}).get("title") or f"Chapter_{idx:02d}"
        chapters.append(Chapter(id=f"ch{idx:02d}", title=title, start=start))

    try:
        duration = get_duration(input_path, timeout=duration_timeout)
    except (FFmpegError, ValueError) as e:
        logger.warning("Duration probe failed for %s: %s", input_path, e)
        duration = 0.0

    if duration <= 0:
        duration = max((ch.start for ch in chapters), default=0.0) + 1.0

    return ChapterSet(chapters=chapters, end=duration)


def _probe_streams(input_path: Path, selector: str, entries: str, timeout) -> list[dict]:
    cmd = [
        "ffprobe",
        "-v", "error",
        "-select_streams", selector,
        "-show_entries", entries,
        "-of", "json",
        str(input_path),
    ]
    result = run_ffmpeg(cmd, f"ffprobe streams ({selector})", timeout)
    return json.loads(result.stdout or "{}").get("streams", [])


def probe_audio_tracks(input_path: Path, timeout: float | None = 30.0) -> list[AudioTrack]:
    """Audio streams; ``index`` is relative to the audio streams (``0:a:N``)."""
    streams = _probe_streams(
        input_path, "a", "stream=index:stream_tags=language,title", timeout
    )
    tracks: list[AudioTrack] = []
    for n, s in enumerate(streams):
        tags = s.get("tags") or {}
        tracks.append(
            AudioTrack(index=n, lang=tags.get("language", ""), title=tags.get("title", ""))
        )
    return tracks


def probe_subtitle_tracks(
    input_path: Path, timeout: float | None = 30.0
) -> list[SubtitleTrack]:
    """Subtitle streams with their absolute stream index."""
    streams = _probe_streams(
        input_path, "s", "stream=index,codec_name:stream_tags=language,title", timeout
    )
    return [
        SubtitleTrack(
            index=int(s["index"]),
            language=(s.get("tags") or {}).get("language", ""),
            title=(s.get("tags") or {}).get("title", ""),
            codec=s.get("codec_name", ""),
        )
        for s in streams
    ]


def extract_metadata(
    input_path: Path, output_path: Path, timeout: float | None = 20.0
) -> Path:
    """Dump the file's ffmetadata (global tags and chapters) to *output_path*."""
    cmd = ["ffmpeg", "-y", "-i", str(input_path), "-f", "ffmetadata", str(output_path)]
    run_ffmpeg(cmd, "ffmpeg extract metadata", timeout)
    return output_path


def trim_segment(
    input_path: Path,
    start: float,
    end: float,
    output_path: Path,
    timeout: float | None = 300.0,
) -> Path:
    """Stream-copy [start, end) of every stream, dropping chapters.

    ``-ss`` is placed before ``-i`` so ffmpeg seeks by keyframe.
    """
    cmd = [
        "ffmpeg", "-y",
        "-ss", f"{start:.3f}",
        "-i", str(input_path),
        "-to", f"{end:.3f}",
        "-map", "0",
        "-ignore_unknown",
        "-c", "copy",
        "-copyts",
        "-avoid_negative_ts", "make_zero",
        "-map_chapters", "-1",
        str(output_path),
    ]
    run_ffmpeg(cmd, "ffmpeg trim", timeout)
    return output_path


def apply_metadata(
    input_path: Path,
    metadata_path: Path,
    output_path: Path,
    timeout: float | None = 120.0,
    default_audio: int | None = None,
) -> Path:
    """Remux *input_path* with the chapters/tags of an ffmetadata file.

    When *default_audio* is given, that audio stream becomes the only one
    flagged as default.
    """
    cmd = [
        "ffmpeg", "-y",
        "-i", str(input_path),
        "-i", str(metadata_path),
        "-map", "0",
        "-ignore_unknown",
        "-map_metadata", "1",
        "-c", "copy",
    ]
    if default_audio is not None:
        cmd += ["-disposition:a", "0", f"-disposition:a:{default_audio}", "default"]
    cmd.append(str(output_path))
    run_ffmpeg(cmd, "ffmpeg apply metadata", timeout)
    return output_path


def escape_concat_path(path: Path) -> str:
    """Quote a path for an ffmpeg concat list entry."""
    p = Path(path).resolve().as_posix()
    return p.replace("'", "'\\''")


def write_concat_list(paths: Sequence[Path], list_path: Path) -> Path:
    lines = [f"file '{escape_concat_path(p)}'" for p in paths]
    list_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return list_path


def concat_files(
    list_path: Path,
    output_path: Path,
    timeout: float | None = 600.0,
    regenerate_pts: bool = False,
) -> Path:
    """Concatenate the files of a concat list, copying every stream."""
    cmd = [
        "ffmpeg", "-y",
        "-f", "concat",
        "-safe", "0",
        "-i", str(list_path),
        "-map", "0",
        "-ignore_unknown",
        "-c", "copy",
    ]
    if regenerate_pts:
        cmd += ["-fflags", "+genpts", "-avoid_negative_ts", "make_zero"]
    cmd.append(str(output_path))
    run_ffmpeg(cmd, "ffmpeg concat", timeout)
    return output_path


_SUBTITLE_CODECS = {".srt": "srt", ".ass": "ass", ".ssa": "ass", ".vtt": "webvtt"}


def extract_subtitle(
    input_path: Path,
    stream_index: int,
    output_path: Path,
    timeout: float | None = 120.0,
) -> Path:
    """Extract one subtitle stream; unknown extensions are written as SRT."""
    codec = _SUBTITLE_CODECS.get(output_path.suffix.lower())
    if codec is None:
        codec = "srt"
        output_path = output_path.with_suffix(".srt")
    cmd = [
        "ffmpeg", "-y",
        "-i", str(input_path),
        "-map", f"0:{stream_index}",
        "-c:s", codec,
        str(output_path),
    ]
    run_ffmpeg(cmd, "ffmpeg extract subtitle", timeout)
    return output_path
