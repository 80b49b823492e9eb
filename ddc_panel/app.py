from __future__ import annotations
import concurrent.futures
import logging
import math
import shutil
import sys
from flask import Flask, jsonify, request, render_template, current_app
from flask_socketio import SocketIO, emit

from .config import CONFIG
from .ddc.controller import BrightnessController
from .loop import EventLoopThread
from .state import clamp_level, fraction_to_level

LOG = logging.getLogger(__name__)


class BadPayload(ValueError):
    pass


def setup_logging(level: str = CONFIG.log_level) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


def create_app(controller: BrightnessController | None = None, loop: EventLoopThread | None = None) -> Flask:
    app = Flask(__name__)

    loop = loop or EventLoopThread()
    loop.start()
    controller = controller or BrightnessController()
    socketio = SocketIO(app, async_mode="threading", cors_allowed_origins=[])
    controller.set_on_update(_broadcast_snapshot(socketio, controller))
    app.extensions["ddc_panel"] = {"controller": controller, "loop": loop, "socketio": socketio}

    @app.before_request
    def auth_guard():
        if CONFIG.auth_token and request.path.startswith("/api/"):
            token = request.headers.get("X-Auth-Token")
            if token != CONFIG.auth_token:
                return jsonify({"error": "unauthorized"}), 401

    @app.route("/")
    def index():
        return render_template("index.html")

    @app.route("/api/health")
    def health():
        return jsonify({
            "ok": True,
            "phase": loop.call(lambda: controller.phase.value),
            "ddcutil": shutil.which(controller.ddcutil.command),
        })

    @app.route("/api/state")
    def get_state():
        return jsonify(_snapshot())

    @app.route("/api/displays", methods=["GET", "POST"])
    def list_displays():
        try:
            catalog = loop.run(controller.refresh(), timeout=CONFIG.detect_wait_s)
        except concurrent.futures.TimeoutError:
            return jsonify({"error": "display detection timed out"}), 504
        state = _snapshot()
        state["refreshed"] = catalog is not None
        return jsonify(state)

    @app.route("/api/displays/<bus_id>/select", methods=["POST"])
    def select_display(bus_id: str):
        record = loop.call(controller.select, bus_id)
        if record is None:
            return jsonify({"error": "display not found"}), 404
        return jsonify(_snapshot())

    @app.route("/api/brightness", methods=["PATCH"])
    def set_brightness():
        payload = request.get_json(silent=True)
        try:
            level = _level_from_payload(payload)
        except BadPayload as exc:
            return jsonify({"error": str(exc)}), 400
        if loop.call(lambda: controller.selection.display) is None:
            return jsonify({"error": "no display selected"}), 409
        loop.submit(controller.set_brightness(level))
        return jsonify({"accepted": True, "level": level})

    @socketio.on("connect")
    def ws_connect():
        emit("state.snapshot", {"state": _snapshot()})

    @socketio.on("displays.list")
    def ws_list_displays(message=None):
        loop.submit(controller.refresh())

    @socketio.on("display.select")
    def ws_select(message):
        bus_id = (message or {}).get("busId")
        if bus_id is None or loop.call(controller.select, str(bus_id)) is None:
            emit("ddc.error", {"message": "Display not found", "detail": str(bus_id), "recoverable": True})

    @socketio.on("brightness.set")
    def ws_brightness_set(message):
        try:
            level = _level_from_payload(message)
        except BadPayload as exc:
            emit("ddc.error", {"message": "Invalid brightness", "detail": str(exc), "recoverable": True})
            return
        loop.submit(controller.set_brightness(level))

    return app


def shutdown(app: Flask) -> None:
    ext = app.extensions.get("ddc_panel")
    if not ext:
        return
    loop = ext["loop"]
    if loop.running:
        loop.call(ext["controller"].close)
    loop.stop()


def _snapshot() -> dict:
    ext = current_app.extensions["ddc_panel"]
    return ext["loop"].call(ext["controller"].snapshot)


def _level_from_payload(payload) -> int:
    if not isinstance(payload, dict):
        raise BadPayload("expected a JSON object")
    if "fraction" in payload:
        key, convert = "fraction", fraction_to_level
    elif "level" in payload:
        key, convert = "level", clamp_level
    else:
        raise BadPayload("missing 'fraction' or 'level'")
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise BadPayload(f"'{key}' must be a finite number")
    return convert(value)


def _broadcast_snapshot(socketio: SocketIO, controller: BrightnessController):
    def _on_update() -> None:
        try:
            socketio.emit("state.snapshot", {"state": controller.snapshot()})
        except Exception:
            LOG.exception("Failed to broadcast state snapshot")
    return _on_update


def main() -> None:
    setup_logging()
    app = create_app()
    ext = app.extensions["ddc_panel"]
    ext["loop"].submit(ext["controller"].refresh())
    try:
        ext["socketio"].run(app, host=CONFIG.bind_host, port=CONFIG.bind_port, allow_unsafe_werkzeug=True)
    finally:
        shutdown(app)


if __name__ == "__main__":
    main()
