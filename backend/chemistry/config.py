import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev")

    # CORS
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Socket.IO async mode ("" picks a platform default)
    SOCKETIO_ASYNC_MODE = os.environ.get("SOCKETIO_ASYNC_MODE", "").strip()

    # Shared store (empty keeps rooms in-process only)
    REDIS_URL = os.environ.get("REDIS_URL", "")
    ROOM_TTL_SEC = int(os.environ.get("ROOM_TTL_SEC", "3600"))
    ROOM_LOCK_TIMEOUT_SEC = int(os.environ.get("ROOM_LOCK_TIMEOUT_SEC", "5"))

    # Rooms
    ROOM_ID_LENGTH = int(os.environ.get("ROOM_ID_LENGTH", "4"))
    ROOM_ID_MAX_ATTEMPTS = int(os.environ.get("ROOM_ID_MAX_ATTEMPTS", "20"))
    ROOM_INACTIVITY_TIMEOUT_SEC = int(os.environ.get("ROOM_INACTIVITY_TIMEOUT_SEC", "900"))
    CLEANUP_INTERVAL_SEC = int(os.environ.get("CLEANUP_INTERVAL_SEC", "60"))
    CLEANUP_ENABLED = os.environ.get("CLEANUP_ENABLED", "1") == "1"

    # Game
    MAX_PLAYERS = int(os.environ.get("MAX_PLAYERS", "10"))
    MIN_PLAYERS = int(os.environ.get("MIN_PLAYERS", "2"))
    WORDS_PER_GAME = int(os.environ.get("WORDS_PER_GAME", "2"))
    LANGUAGES = tuple(
        lang.strip() for lang in os.environ.get("LANGUAGES", "en,id").split(",") if lang.strip()
    )
