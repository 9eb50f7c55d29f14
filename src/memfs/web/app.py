"""Flask application factory for the memfs web terminal.

The ``create_app`` function loads the snapshot, creates a shell, and
returns a Flask app with three endpoints:

- ``GET /`` — render the terminal HTML page with the startup log.
- ``POST /api/execute`` — execute a command and return JSON.
- ``GET /api/status`` — return the running state and current directory.

``exit`` saves the snapshot once; after that the session is halted and
further commands are refused.
"""

from __future__ import annotations

from flask import Flask, Response, jsonify, render_template, request

from memfs.config import Config, load_config
from memfs.fs.nodes import path_of
from memfs.fs.snapshot import load_snapshot
from memfs.logging import Logger, LogLevel
from memfs.repl import Session, format_timestamp, save_session
from memfs.shell import Shell

_HTTP_BAD_REQUEST = 400
_SOURCE = "web"


def create_app(config: Config | None = None) -> Flask:
    """Create and configure the Flask application.

    Args:
        config: Session settings; read from the environment when omitted.

    Returns:
        A configured Flask application ready to serve.

    """
    session = Session(config=config if config is not None else load_config())
    logger = Logger(min_level=session.config.log_level)
    shell = Shell(load_snapshot(session.config.snapshot_path, logger=logger), logger=logger)
    state = {"halted": False}

    startup_log = "\n".join(str(entry) for entry in logger.entries)

    app = Flask(__name__)

    @app.route("/")
    def index() -> str:  # pyright: ignore[reportUnusedFunction]
        """Render the terminal HTML page."""
        return render_template(
            "index.html",
            startup_log=startup_log,
            started_at=format_timestamp(session.started_at),
        )

    @app.route("/api/execute", methods=["POST"])
    def execute() -> tuple[Response, int] | Response:  # pyright: ignore[reportUnusedFunction]
        """Execute a shell command and return JSON output.

        Expects JSON body: ``{"command": "..."}``

        Returns:
            JSON with ``output`` and ``halted`` fields.

        """
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or "command" not in data:
            return jsonify({"error": "Missing 'command' field"}), _HTTP_BAD_REQUEST
        command = data["command"]
        if not isinstance(command, str):
            return jsonify({"error": "'command' must be a string"}), _HTTP_BAD_REQUEST

        if state["halted"]:
            return jsonify({"output": "Session closed.", "halted": True})

        logger.log(LogLevel.DEBUG, f"Executing '{command}'", source=_SOURCE)
        result = shell.execute(command)

        if result == Shell.EXIT_SENTINEL:
            state["halted"] = True
            return jsonify({"output": save_session(shell.root, session, logger), "halted": True})

        return jsonify({"output": result, "halted": False})

    @app.route("/api/status")
    def status() -> Response:  # pyright: ignore[reportUnusedFunction]
        """Return session status for polling.

        Returns:
            JSON with ``running``, ``cwd`` and ``entries`` fields.

        """
        return jsonify(
            {
                "running": not state["halted"],
                "cwd": path_of(shell.cwd),
                "entries": len(shell.cwd.children),
            }
        )

    return app


def main() -> None:
    """Run the web terminal development server.

    This is the ``memfs-web`` console entry point.
    """
    config = load_config()
    app = create_app(config)
    app.run(debug=True, port=config.web_port)
