"""Subtitle editor: shifts cue timestamps and joins per-episode subtitle files."""

import logging
import re
from collections import defaultdict
from pathlib import Path
from typing import Sequence

logger = logging.getLogger(__name__)

_SRT_TS = re.compile(r"^(\d+):(\d{1,2}):(\d{1,2}),(\d{1,3})$")
_ASS_TS = re.compile(r"^(\d+):(\d{1,2}):(\d{1,2})(?:\.(\d{1,2}))?$")
_CUE_INDEX = re.compile(r"^\d+$")
ARROW = " --> "


def _format_srt_time(ms: int) -> str:
    h, rem = divmod(ms, 3_600_000)
    m, rem = divmod(rem, 60_000)
    s, ms = divmod(rem, 1000)
    return f"{h:02d}:{m:02d}:{s:02d},{ms:03d}"


def _format_ass_time(cs: int) -> str:
    h, rem = divmod(cs, 360_000)
    m, rem = divmod(rem, 6000)
    s, cs = divmod(rem, 100)
    return f"{h:d}:{m:02d}:{s:02d}.{cs:02d}"


def shift_srt_timestamp(timestamp: str, offset: float) -> str:
    """Shift an ``HH:MM:SS,mmm`` timestamp, clamping at zero.

    Unparseable input is returned unchanged.
    """
    m = _SRT_TS.match(timestamp.strip())
    if not m:
        return timestamp
    h, mi, s, ms = (int(g) for g in m.groups())
    total = (h * 3600 + mi * 60 + s) * 1000 + ms + round(offset * 1000)
    return _format_srt_time(max(total, 0))


def shift_ass_timestamp(timestamp: str, offset: float) -> str:
    """Shift an ``H:MM:SS.cc`` timestamp, clamping at zero."""
    m = _ASS_TS.match(timestamp.strip())
    if not m:
        return timestamp
    h, mi, s = (int(g) for g in m.groups()[:3])
    cs = int(m.group(4) or 0)
    total = (h * 3600 + mi * 60 + s) * 100 + cs + round(offset * 100)
    return _format_ass_time(max(total, 0))


def _shift_cue_line(line: str, offset: float) -> str | None:
    parts = line.split(ARROW)
    if len(parts) != 2:
        return None
    start = shift_srt_timestamp(parts[0].strip(), offset)
    end = shift_srt_timestamp(parts[1].strip(), offset)
    return f"{start}{ARROW}{end}"


def shift_srt_text(content: str, offset: float) -> str:
    lines = []
    for line in content.split("\n"):
        if ARROW in line:
            shifted = _shift_cue_line(line, offset)
            if shifted is not None:
                line = shifted
        lines.append(line)
    return "\n".join(lines)


def shift_ass_text(content: str, offset: float) -> str:
    """Shift the start/end fields of every ``Dialogue:`` event."""
    lines = []
    for line in content.split("\n"):
        if line.startswith("Dialogue:"):
            fields = line.split(",", 9)
            if len(fields) >= 3:
                fields[1] = shift_ass_timestamp(fields[1].strip(), offset)
                fields[2] = shift_ass_timestamp(fields[2].strip(), offset)
                line = ",".join(fields)
        lines.append(line)
    return "\n".join(lines)


def adjust_subtitle_timing(src: Path, dst: Path, offset: float) -> Path:
    """Write a copy of *src* shifted by *offset* seconds (.srt, .ass, .ssa)."""
    content = src.read_text(encoding="utf-8", errors="replace")
    ext = src.suffix.lower()
    if ext == ".srt":
        shifted = shift_srt_text(content, offset)
    elif ext in (".ass", ".ssa"):
        shifted = shift_ass_text(content, offset)
    else:
        raise ValueError(f"Unsupported subtitle format: {src.suffix}")
    dst.write_text(shifted, encoding="utf-8")
    return dst


def combine_srt(texts: Sequence[str], durations: Sequence[float]) -> str:
    """Join SRT documents back to back.

    File ``i`` is shifted by the sum of the durations before it; cues are
    renumbered from 1 across the whole output.
    """
    out: list[str] = []
    offset = 0.0
    cue = 1

    for i, text in enumerate(texts):
        for raw in text.replace("\r\n", "\n").split("\n"):
            line = raw.strip()
            if not line and not out:
                continue
            if _CUE_INDEX.match(line):
                out.append(str(cue))
                cue += 1
                continue
            if ARROW in line:
                shifted = _shift_cue_line(line, offset)
                if shifted is not None:
                    out.append(shifted)
                    continue
            out.append(line)

        if i < len(durations):
            offset += durations[i]
        if out:
            out.append("")

    return "\n".join(out) + "\n" if out else ""


def combine_srt_files(
    paths: Sequence[Path | None], output_path: Path, durations: Sequence[float]
) -> Path:
    """Combine SRT files; a missing entry still advances the offset."""
    texts = []
    for path in paths:
        if path is None:
            texts.append("")
            continue
        try:
            texts.append(Path(path).read_text(encoding="utf-8", errors="replace"))
        except OSError as e:
            logger.warning("Failed to read %s: %s", path, e)
            texts.append("")
    output_path.write_text(combine_srt(texts, durations), encoding="utf-8")
    return output_path


def combine_subtitles(
    episode_subs: Sequence[dict[str, Path]],
    durations: Sequence[float],
    output_dir: Path,
    part_number: int,
) -> list[Path]:
    """Write one ``Part{n}_{lang}.srt`` per language.

    ``episode_subs[i]`` maps language to the extracted SRT of episode ``i``.
    Episodes without a given language keep their slot so offsets stay right.
    """
    by_lang: dict[str, list[Path | None]] = defaultdict(lambda: [None] * len(episode_subs))
    for i, subs in enumerate(episode_subs):
        for lang, path in subs.items():
            by_lang[lang][i] = path

    output_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for lang in sorted(by_lang):
        out = output_dir / f"Part{part_number}_{lang}.srt"
        combine_srt_files(by_lang[lang], out, durations)
        logger.info("Combined subtitle track: %s", out.name)
        written.append(out)
    return written
