"""Flask application factory for the ChapterCut HTTP API."""

from flask import Flask, jsonify

from chaptercut.manifest import Timeouts
from chaptercut.progress import ProgressTracker


def create_app(timeouts: Timeouts | None = None) -> Flask:
    app = Flask(__name__)
    # Replaced by a fresh tracker at the start of every run
    app.config["TRACKER"] = ProgressTracker()
    app.config["TIMEOUTS"] = timeouts or Timeouts()

    from chaptercut.web.routes import bp
    app.register_blueprint(bp)

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "Not found"}), 404

    return app
