"""HTTP routes: start a run, preview a folder, report progress."""

import json
import logging
import queue
import threading
from pathlib import Path

from flask import Blueprint, Response, current_app, jsonify, request

from chaptercut.engine import process, scan_first_episodes
from chaptercut.manifest import Manifest, options_from_dict
from chaptercut.models import Progress
from chaptercut.progress import ProgressTracker

logger = logging.getLogger(__name__)

bp = Blueprint("api", __name__)

_start_lock = threading.Lock()


def _scan_to_dict(result) -> dict:
    return {
        "chapters": result.chapters,
        "audioTracks": [
            {"index": t.index, "lang": t.lang, "title": t.title}
            for t in result.audio_tracks
        ],
        "firstFile": str(result.first_file),
    }


@bp.route("/api/process", methods=["POST"])
def start_process():
    body = request.get_json(silent=True)
    if not isinstance(body, dict) or not body.get("input") or not body.get("output"):
        return jsonify({"error": "Body must contain 'input' and 'output'"}), 400

    try:
        options = options_from_dict(body.get("options") or {})
    except (KeyError, TypeError, ValueError) as e:
        return jsonify({"error": f"Invalid options: {e}"}), 400

    manifest = Manifest(
        input=Path(body["input"]),
        output=Path(body["output"]),
        options=options,
        timeouts=current_app.config["TIMEOUTS"],
    )

    with _start_lock:
        if current_app.config["TRACKER"].active:
            return jsonify({"error": "A run is already in progress"}), 409
        tracker = ProgressTracker()
        tracker.start_processing(0)
        current_app.config["TRACKER"] = tracker

    def run():
        try:
            process(manifest, tracker=tracker)
        except Exception:
            logger.exception("Run for %s failed", manifest.input)

    threading.Thread(target=run, daemon=True).start()
    return jsonify({"status": "started"})


@bp.route("/api/scan")
def scan():
    folder = request.args.get("path", "").strip()
    if not folder:
        return jsonify({"error": "Missing 'path' query parameter"}), 400
    try:
        result = scan_first_episodes(Path(folder), timeouts=current_app.config["TIMEOUTS"])
    except Exception as e:
        logger.warning("Scan of %s failed: %s", folder, e)
        return jsonify({"error": str(e)}), 500
    return jsonify(_scan_to_dict(result))


@bp.route("/api/status")
def status():
    return jsonify(current_app.config["TRACKER"].snapshot().to_dict())


@bp.route("/api/progress")
def progress_stream():
    tracker: ProgressTracker = current_app.config["TRACKER"]
    q: queue.Queue = queue.Queue()

    def on_change(p: Progress) -> None:
        q.put(p)

    tracker.subscribe(on_change)
    first = tracker.snapshot()

    def generate():
        try:
            yield f"data: {json.dumps(first.to_dict())}\n\n"
            if first.done:
                return
            while True:
                try:
                    p = q.get(timeout=120)
                except queue.Empty:
                    yield "data: {\"error\": \"timeout\"}\n\n"
                    break
                yield f"data: {json.dumps(p.to_dict())}\n\n"
                if p.done:
                    break
        finally:
            tracker.unsubscribe(on_change)

    return Response(generate(), mimetype="text/event-stream")
