"""Reader/writer for ffmpeg's ``ffmetadata`` chapter format.

The files come from ``ffmpeg -i in.mkv -f ffmetadata out.txt``::

    ;FFMETADATA1
    [CHAPTER]
    TIMEBASE=1/1000
    START=0
    END=90000
    title=Opening

Only chapter blocks are kept. A ``TIMEBASE`` line sets the timebase of the
whole file, wherever it appears; the last valid declaration wins.
"""

from pathlib import Path

from chaptercut.models import MetaChapter, MetaFile

HEADER = ";FFMETADATA1"


class MetadataParseError(ValueError):
    """Raised when an ffmetadata file cannot be read."""


def _parse_int(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        return 0


def _parse_timebase(value: str) -> tuple[int, int] | None:
    parts = value.split("/")
    if len(parts) != 2:
        return None
    num, den = _parse_int(parts[0].strip()), _parse_int(parts[1].strip())
    if num > 0 and den > 0:
        return num, den
    return None


def parse_ffmetadata(text: str) -> MetaFile:
    meta = MetaFile()
    current: MetaChapter | None = None

    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith(";"):
            continue

        if line == "[CHAPTER]":
            if current is not None:
                meta.chapters.append(current)
            current = MetaChapter(start=0, end=0)
            continue

        if line.startswith("[") and line.endswith("]"):
            # [STREAM] and friends end the chapter without opening a new one
            if current is not None:
                meta.chapters.append(current)
                current = None
            continue

        key, sep, val = line.partition("=")
        if not sep:
            continue
        key, val = key.strip(), val.strip()

        if key == "TIMEBASE":
            tb = _parse_timebase(val)
            if tb is not None:
                meta.timebase_num, meta.timebase_den = tb
            continue

        if current is None:
            continue
        if key == "START":
            current.start = _parse_int(val)
        elif key == "END":
            current.end = _parse_int(val)
        elif key == "title":
            current.title = val.replace("\\n", "\n")

    if current is not None:
        meta.chapters.append(current)
    return meta


def read_ffmetadata(path: str | Path) -> MetaFile:
    try:
        text = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise MetadataParseError(f"Cannot read ffmetadata {path}: {e}") from e
    return parse_ffmetadata(text)


def format_ffmetadata(meta: MetaFile) -> str:
    lines = [HEADER]
    for ch in meta.chapters:
        lines.append("[CHAPTER]")
        lines.append(f"TIMEBASE={meta.timebase_num}/{meta.timebase_den}")
        lines.append(f"START={ch.start}")
        lines.append(f"END={ch.end}")
        if ch.title:
            lines.append("title=" + ch.title.replace("\n", "\\n"))
    return "\n".join(lines) + "\n"


def write_ffmetadata(path: str | Path, meta: MetaFile) -> Path:
    path = Path(path)
    path.write_text(format_ffmetadata(meta), encoding="utf-8")
    return path
