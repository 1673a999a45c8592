#!/usr/bin/env python3
"""Generate a folder of synthetic chaptered episodes for ChapterCut testing.

Each episode is ~20 seconds long with four chapters:
  0-3s    Opening   blue, 440 Hz
  3-10s   Part A    red, 660 Hz
  10-17s  Part B    green, 880 Hz
  17-20s  Ending    yellow, 440 Hz

Usage: generate_test_video.py [OUTPUT_DIR] [EPISODES]
"""

import subprocess
import sys
import tempfile
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from chaptercut.ffmetadata import write_ffmetadata  # noqa: E402
from chaptercut.models import MetaChapter, MetaFile  # noqa: E402

CHAPTERS = [
    ("Opening", 0, 3, "blue", 440),
    ("Part A", 3, 10, "red", 660),
    ("Part B", 10, 17, "green", 880),
    ("Ending", 17, 20, "yellow", 440),
]


def generate_episode(output: Path) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)

    n = len(CHAPTERS)
    audio = ";".join(
        f"sine=f={freq}:d={end - start}[a{i}]"
        for i, (_, start, end, _, freq) in enumerate(CHAPTERS)
    )
    video = ";".join(
        f"color=c={color}:s=320x240:d={end - start}:r=30[v{i}]"
        for i, (_, start, end, color, _) in enumerate(CHAPTERS)
    )
    labels_a = "".join(f"[a{i}]" for i in range(n))
    labels_v = "".join(f"[v{i}]" for i in range(n))
    filter_complex = (
        f"{audio};{video};"
        f"{labels_a}concat=n={n}:v=0:a=1[aout];"
        f"{labels_v}concat=n={n}:v=1:a=0[vout]"
    )

    meta = MetaFile(
        chapters=[
            MetaChapter(start=start * 1000, end=end * 1000, title=title)
            for title, start, end, _, _ in CHAPTERS
        ]
    )

    with tempfile.TemporaryDirectory() as tmpdir:
        meta_path = write_ffmetadata(Path(tmpdir) / "chapters.txt", meta)
        cmd = [
            "ffmpeg", "-y",
            "-filter_complex", filter_complex,
            "-i", str(meta_path),
            "-map", "[vout]",
            "-map", "[aout]",
            "-map_metadata", "0",
            "-map_chapters", "0",
            "-c:v", "libx264",
            "-c:a", "aac",
            "-shortest",
            str(output),
        ]
        subprocess.run(cmd, check=True)
    print(f"Generated: {output}")


if __name__ == "__main__":
    out_dir = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("tests/fixtures/episodes")
    count = int(sys.argv[2]) if len(sys.argv) > 2 else 3
    for i in range(1, count + 1):
        generate_episode(out_dir / f"Episode {i}.mkv")
