from __future__ import annotations

import logging
import sys

from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO

from .config import Config
from .game.service import GameService
from .game.store import NullRoomStore, RedisRoomStore, RoomStore
from .realtime.handlers import register_socketio_handlers
from .routes.health import bp as health_bp
from .routes.rooms import bp as rooms_bp

logger = logging.getLogger(__name__)


def _build_store(app: Flask) -> RoomStore:
    redis_url = app.config.get("REDIS_URL", "")
    if not redis_url:
        logger.warning("REDIS_URL not configured, rooms are kept in-process only")
        return NullRoomStore()
    return RedisRoomStore.from_url(redis_url, lock_timeout=app.config["ROOM_LOCK_TIMEOUT_SEC"])


def _start_cleanup_task(socketio: SocketIO, service: GameService, interval_sec: int) -> None:
    def _runner() -> None:
        while True:
            socketio.sleep(interval_sec)
            try:
                removed = service.cleanup_inactive_rooms()
            except Exception:
                logger.exception("Inactive room sweep failed")
                continue
            if removed:
                logger.info("Inactive room sweep removed %d room(s)", removed)

    socketio.start_background_task(_runner)


def create_app(config_class: type = Config) -> tuple[Flask, SocketIO]:
    app = Flask(__name__)
    app.config.from_object(config_class)

    cors_origins = app.config.get("CORS_ORIGINS", "*")
    CORS(app, resources={r"/api/*": {"origins": cors_origins}})

    async_mode = app.config.get("SOCKETIO_ASYNC_MODE", "")
    if not async_mode:
        # Default choice:
        # - Windows: threading (eventlet has known compatibility issues on newer Python)
        # - Python >= 3.13: threading (safer default)
        # - Otherwise: eventlet
        if sys.platform.startswith("win") or sys.version_info >= (3, 13):
            async_mode = "threading"
        else:
            async_mode = "eventlet"

    socketio = SocketIO(
        app,
        cors_allowed_origins=cors_origins,
        async_mode=async_mode,
    )

    service = GameService.from_config(app.config, _build_store(app))
    app.extensions["chemistry"] = service

    app.register_blueprint(health_bp)
    app.register_blueprint(rooms_bp, url_prefix="/api")

    register_socketio_handlers(
        socketio,
        service,
        languages=tuple(app.config["LANGUAGES"]),
        room_id_length=app.config["ROOM_ID_LENGTH"],
    )

    if app.config.get("CLEANUP_ENABLED", True):
        _start_cleanup_task(socketio, service, app.config["CLEANUP_INTERVAL_SEC"])

    return app, socketio
