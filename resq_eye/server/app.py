"""Flask app exposing the live sensing controller over HTTP."""

from __future__ import annotations

from typing import TYPE_CHECKING

from flask import Flask, Response, jsonify, render_template, stream_with_context
from loguru import logger

from resq_eye.controller import COMMANDS, LiveSensingController
from resq_eye.errors import InvalidTransition
from resq_eye.logging_config import attach_log_buffer, create_log_buffer, setup_logging
from resq_eye.server.generator import gen_frames
from resq_eye.server.runner import ControllerRunner


if TYPE_CHECKING:
    from collections import deque

    from resq_eye.config import AppConfig, ServerConfig


def create_app(
    runner: ControllerRunner,
    server_config: ServerConfig | None = None,
    log_buffer: deque[str] | None = None,
) -> Flask:
    """Create and configure the operator Flask app."""
    app = Flask(__name__)
    app.config["SEND_FILE_MAX_AGE_DEFAULT"] = 0  # Disable caching for static files
    mjpeg_quality = server_config.mjpeg_quality if server_config else 30
    logs = log_buffer if log_buffer is not None else create_log_buffer()

    @app.route("/video_feed")
    def video_feed() -> Response:
        """Return multipart MJPEG stream of the active capture source."""
        response = Response(
            stream_with_context(gen_frames(runner, jpeg_quality=mjpeg_quality)),
            mimetype="multipart/x-mixed-replace; boundary=frame",
        )
        response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
        response.headers["Pragma"] = "no-cache"
        response.headers["Expires"] = "0"
        return response

    @app.route("/")
    def index() -> str:
        """Render the operator page."""
        return render_template("index.html", commands=COMMANDS)

    @app.route("/status")
    def status() -> Response:
        payload = runner.status().to_dict()
        payload["logs"] = list(logs)
        return jsonify(payload)

    @app.route("/command/<name>", methods=["POST"])
    def command(name: str) -> tuple[Response, int]:
        """Run an operator command and return the new status."""
        if name not in COMMANDS:
            return jsonify({"error": f"Unknown command: {name}"}), 404
        try:
            result = runner.command(name)
        except InvalidTransition as exc:
            logger.info("Command {} rejected: {}", name, exc)
            return jsonify({"error": str(exc)}), 409
        return jsonify(result.to_dict()), 200

    app.extensions["controller_runner"] = runner
    return app


def run(config: AppConfig) -> None:
    """Start the controller and serve the operator app until interrupted."""
    setup_logging(config.log_file)
    log_buffer = create_log_buffer()
    attach_log_buffer(log_buffer)

    runner = ControllerRunner(lambda: LiveSensingController.from_config(config))
    runner.start()
    app = create_app(runner, config.server, log_buffer)
    try:
        app.run(
            host=config.server.host,
            port=config.server.port,
            debug=config.server.debug,
            threaded=True,
            use_reloader=False,
        )
    except KeyboardInterrupt:
        logger.info("Shutting down operator server")
    finally:
        runner.stop()
