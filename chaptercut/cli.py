"""Thin CLI entry point: builds a Manifest and calls the engine."""

import argparse
import logging
import os
import sys
from pathlib import Path

from chaptercut.engine import process, scan_first_episodes
from chaptercut.manifest import Manifest, TrimOptions, load_manifest
from chaptercut.models import Progress, SkipRange
from chaptercut.progress import ProgressTracker

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str | None = None) -> None:
    """Configure root logging; level falls back to $CHAPTERCUT_LOG_LEVEL, then INFO."""
    name = (level or os.getenv("CHAPTERCUT_LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(level=getattr(logging, name, logging.INFO), format=LOG_FORMAT)


def parse_skip(value: str) -> SkipRange:
    """Parse ``START:END`` chapter names (e.g. ``Opening:Part A``)."""
    start, sep, end = value.partition(":")
    if not sep or not start or not end:
        raise argparse.ArgumentTypeError(f"expected START:END, got {value!r}")
    return SkipRange(start=start, end=end)


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="chaptercut",
        description="ChapterCut: strip chapter ranges from episodes and merge them into parts.",
    )
    parser.add_argument("--log-level", type=str, default=None, help="DEBUG, INFO, WARNING...")
    sub = parser.add_subparsers(dest="command")

    proc = sub.add_parser("process", help="Trim and merge a folder of episodes")
    proc.add_argument("input", nargs="?", type=Path, help="Folder of episode files")
    proc.add_argument("output", nargs="?", type=Path, help="Output folder")
    proc.add_argument("--manifest", "-m", type=Path, help="Path to a JSON manifest file")
    proc.add_argument("--skip", "-s", type=parse_skip, action="append", default=[],
                      help="Chapter range to remove, as START:END (repeatable)")
    proc.add_argument("--parts", "-p", type=int, default=1, help="Number of output parts")
    proc.add_argument("--audio-index", type=int, default=None, help="Audio track to flag as default")
    proc.add_argument("--workers", type=int, default=4, help="Episodes processed at once (0 = all)")
    proc.add_argument("--merge-segment-chapters", action="store_true",
                      help="Keep chapters of every kept segment, not just the first")
    proc.add_argument("--subtitles", action="store_true", help="Also combine subtitle tracks per part")

    scan = sub.add_parser("scan", help="Preview chapters and audio tracks of a folder")
    scan.add_argument("folder", type=Path, help="Folder of episode files")
    scan.add_argument("--count", type=int, default=2, help="Episodes to include")

    serve = sub.add_parser("serve", help="Launch the HTTP API")
    serve.add_argument("--port", type=int, default=8080, help="Port to listen on")
    serve.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to")

    args = parser.parse_args()
    setup_logging(args.log_level)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "serve":
        from chaptercut.web import create_app
        app = create_app()
        print(f"ChapterCut API: http://{args.host}:{args.port}")
        app.run(host=args.host, port=args.port, debug=False, threaded=True)
        return

    if args.command == "scan":
        result = scan_first_episodes(args.folder, count=args.count)
        print(f"First file: {result.first_file}")
        print("Chapters:")
        for name, t in sorted(result.chapters.items(), key=lambda kv: kv[1]):
            print(f"  {t:10.3f}s  {name}")
        print("Audio tracks:")
        for track in result.audio_tracks:
            print(f"  [{track.index}] {track.lang or '?'} {track.title}")
        return

    if args.manifest:
        m = load_manifest(args.manifest)
    elif args.input and args.output:
        m = Manifest(
            input=args.input,
            output=args.output,
            options=TrimOptions(
                skip_ranges=args.skip,
                parts=args.parts,
                audio_index=(
                    args.audio_index
                    if args.audio_index is not None and args.audio_index >= 0
                    else None
                ),
                max_workers=args.workers,
                merge_segment_chapters=args.merge_segment_chapters,
                subtitles=args.subtitles,
            ),
        )
    else:
        print("Error: provide INPUT and OUTPUT folders or --manifest.", file=sys.stderr)
        sys.exit(1)

    tracker = ProgressTracker()

    def on_progress(p: Progress) -> None:
        print(f"  [{p.percent:5.1f}%] {p.status} {p.completed}/{p.total}")

    tracker.subscribe(on_progress)
    result = process(m, tracker=tracker)

    print()
    print(f"Done! {len(result.parts)} part(s) in {m.output}")
    for part in result.parts:
        print(f"  {part}")
    if result.failed:
        print(f"  Failed episodes: {len(result.failed)}")
        for ep in result.failed:
            print(f"    {ep.source.name}: {ep.error}")
