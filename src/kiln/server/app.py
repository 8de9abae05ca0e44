"""kiln.server.app - Flask app factory for the dev server.

Routes:
    GET  /<path>                 static files (bundle output + content base)
    GET  /__livereload           server-sent events push channel
    POST /__livereload/ack       client acknowledges a bundle version
    GET  /__kiln/status          session state as JSON

The app holds no build state of its own; it reads the session's status
through a callable and pushes through the shared Broadcaster.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Callable

from flask import Flask, Response, abort, jsonify, request, send_from_directory
from flask_cors import CORS
from werkzeug.security import safe_join

from kiln.bundle.runtime import LIVERELOAD_PATH
from kiln.server.broadcast import CLOSE, Broadcaster

StatusProvider = Callable[[], dict[str, Any]]


def format_event(message: dict[str, Any]) -> str:
    """Encode a message as one server-sent event."""
    return f"data: {json.dumps(message, sort_keys=True)}\n\n"


def create_app(
    output_dir: Path,
    content_base: Path,
    broadcaster: Broadcaster,
    public_path: str = "/",
    status: StatusProvider | None = None,
    keepalive: float = 15.0,
) -> Flask:
    """Create the dev server Flask application.

    Args:
        output_dir: Directory holding the bundle.
        content_base: Directory for all other static files.
        broadcaster: Session registry for the push channel.
        public_path: URL prefix of ``output_dir`` (``/dist/`` style).
        status: Callable returning the session status dict.
        keepalive: Seconds between keep-alive comments on idle streams.

    Returns:
        Configured Flask application.
    """
    app = Flask(__name__, static_folder=None)
    CORS(app)

    output_root = Path(output_dir).resolve()
    content_root = Path(content_base).resolve()

    def _status() -> dict[str, Any]:
        return status() if status is not None else {"version": 0}

    # Revalidate on every request; ETag/Last-Modified allow 304 answers.
    @app.after_request
    def _no_cache(response):
        response.headers["Cache-Control"] = "no-cache"
        return response

    # ─────────────────────────────────────────────────────────────────
    # Static files
    # ─────────────────────────────────────────────────────────────────

    def _candidates(path: str) -> list[tuple[Path, str]]:
        url_path = "/" + path
        if public_path == "/":
            return [(output_root, path), (content_root, path)]
        if url_path.startswith(public_path):
            return [(output_root, url_path[len(public_path) :])]
        if url_path + "/" == public_path:
            return [(output_root, "")]
        return [(content_root, path)]

    @app.route("/", defaults={"path": ""})
    @app.route("/<path:path>")
    def static_file(path: str):
        """GET /<path> - Serve a file from the output dir or content base."""
        for directory, relative in _candidates(path):
            if relative == "" or relative.endswith("/"):
                relative += "index.html"
            full = safe_join(str(directory), relative)
            if full is not None and os.path.isfile(full):
                return send_from_directory(directory, relative)
        abort(404)

    # ─────────────────────────────────────────────────────────────────
    # Live reload
    # ─────────────────────────────────────────────────────────────────

    @app.route(LIVERELOAD_PATH)
    def livereload():
        """GET /__livereload - Event stream of update/error notifications."""

        def stream():
            version = int(_status().get("version", 0))
            session = broadcaster.open_session(last_acknowledged=version)
            try:
                yield format_event({"type": "hello", "session": session.id, "version": version})
                while True:
                    message = session.next_message(timeout=keepalive)
                    if message is CLOSE:
                        break
                    if message is None:
                        yield ": keep-alive\n\n"
                        continue
                    yield format_event(message)
            finally:
                broadcaster.close_session(session.id)

        return Response(
            stream(),
            mimetype="text/event-stream",
            headers={"X-Accel-Buffering": "no"},
        )

    @app.route(LIVERELOAD_PATH + "/ack", methods=["POST"])
    def livereload_ack():
        """POST /__livereload/ack - Record the version a client has loaded."""
        data = request.get_json(force=True, silent=True) or {}
        session_id = str(data.get("session", ""))
        try:
            version = int(data.get("version", -1))
        except (TypeError, ValueError):
            version = -1
        if not session_id or version < 0:
            return jsonify({"success": False, "error": "session and version required"}), 400
        if not broadcaster.acknowledge(session_id, version):
            return jsonify({"success": False, "error": f"unknown session: {session_id}"}), 404
        return jsonify({"success": True})

    # ─────────────────────────────────────────────────────────────────
    # Status
    # ─────────────────────────────────────────────────────────────────

    @app.route("/__kiln/status")
    def kiln_status():
        """GET /__kiln/status - Session state, bundle version and clients."""
        result = dict(_status())
        result["clients"] = broadcaster.client_count()
        return jsonify(result)

    return app
