from __future__ import annotations

from typing import Any, Iterable


class InvalidPayload(ValueError):
    pass


def _text(payload: dict, key: str) -> str:
    value: Any = payload.get(key, "")
    if value is None:
        return ""
    if not isinstance(value, str):
        raise InvalidPayload(f"{key} must be a string")
    return value.strip()


def _validate_name(name: str) -> bool:
    if not name or len(name) > 12:
        return False
    # No control characters.
    for ch in name:
        if ord(ch) < 32:
            return False
    return True


def player_name(payload: dict) -> str:
    name = _text(payload, "playerName")
    if not _validate_name(name):
        raise InvalidPayload("Player name must be between 1 and 12 characters")
    return name


def language(payload: dict, allowed: Iterable[str]) -> str:
    lang = _text(payload, "language") or "en"
    allowed = tuple(allowed)
    if lang not in allowed:
        raise InvalidPayload(f"Language must be one of: {', '.join(allowed)}")
    return lang


def room_id(payload: dict, length: int = 4) -> str:
    code = _text(payload, "roomId").upper()
    if len(code) != length:
        raise InvalidPayload(f"Room ID must be exactly {length} characters")
    return code


def required_id(payload: dict, key: str, label: str) -> str:
    value = _text(payload, key)
    if not value:
        raise InvalidPayload(f"{label} is required")
    return value


def optional_id(payload: dict, key: str) -> str | None:
    return _text(payload, key) or None


def answer(payload: dict) -> str:
    raw: Any = payload.get("answer", "")
    if not isinstance(raw, str):
        raise InvalidPayload("Answer must be a string")
    if not raw.strip() or len(raw) > 50:
        raise InvalidPayload("Answer must be between 1 and 50 characters")
    return raw
