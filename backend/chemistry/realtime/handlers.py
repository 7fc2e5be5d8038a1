from __future__ import annotations

import functools
import logging
from typing import Any, Callable

from flask import request
from flask_socketio import SocketIO, close_room, disconnect, emit, join_room, leave_room

from ..game.errors import GameError
from ..game.models import Room
from ..game.service import GameService
from . import events, payloads
from .connections import ConnectionRegistry
from .payloads import InvalidPayload

logger = logging.getLogger(__name__)

INTERNAL_ERROR = "Internal server error"


def _game_event(fn: Callable[[dict], Any]) -> Callable[..., Any]:
    """Acks game and validation errors to the requesting connection only."""

    @functools.wraps(fn)
    def wrapper(data=None):
        if data is None:
            data = {}
        if not isinstance(data, dict):
            return {"error": "Invalid payload"}
        try:
            return fn(data)
        except (GameError, InvalidPayload) as exc:
            logger.debug("%s rejected for %s: %s", fn.__name__, request.sid, exc)
            return {"error": str(exc)}

    return wrapper


def register_socketio_handlers(
    socketio: SocketIO,
    service: GameService,
    languages: tuple[str, ...] = ("en", "id"),
    room_id_length: int = 4,
    connections: ConnectionRegistry | None = None,
) -> ConnectionRegistry:
    registry = connections or ConnectionRegistry()

    def _broadcast_room(room: Room) -> None:
        socketio.emit(events.ROOM_UPDATE, room.public_state(), to=room.id)

    def _enter(room: Room) -> None:
        join_room(room.id)
        registry.bind(request.sid, room.id)

    def _room_id(payload: dict) -> str:
        return payloads.room_id(payload, room_id_length)

    @socketio.on("connect")
    def on_connect(auth=None):
        logger.debug("Client connected: %s", request.sid)

    @socketio.on("disconnect")
    def on_disconnect(reason=None):
        sid = request.sid
        logger.debug("Client disconnected: %s", sid)
        registry.unbind(sid)

        result = service.disconnect_player(sid)
        if result is None:
            return
        room_id, _player_id = result
        room = service.get_room_public(room_id)
        if room is not None:
            _broadcast_room(room)

    @socketio.on(events.CREATE_ROOM)
    @_game_event
    def create_room(payload: dict):
        name = payloads.player_name(payload)
        lang = payloads.language(payload, languages)
        player_id = payloads.optional_id(payload, "playerId")

        room, player = service.create_room(name, request.sid, lang, player_id)
        _enter(room)
        return {"room": room.public_state(), "player": player.to_dict(include_private=False)}

    @socketio.on(events.JOIN_ROOM)
    @_game_event
    def join_room_event(payload: dict):
        room_id = _room_id(payload)
        name = payloads.player_name(payload)
        player_id = payloads.optional_id(payload, "playerId")

        room, player = service.join_room(room_id, name, request.sid, player_id)
        _enter(room)
        _broadcast_room(room)
        return {"room": room.public_state(), "player": player.to_dict(include_private=False)}

    @socketio.on(events.RECONNECT)
    @_game_event
    def reconnect(payload: dict):
        player_id = payloads.required_id(payload, "playerId", "Player ID")

        room, player = service.reconnect_player(player_id, request.sid)
        _enter(room)
        emit(
            events.RECONNECTED,
            {"room": room.public_state(), "player": player.to_dict(include_private=False)},
        )
        _broadcast_room(room)

    @socketio.on(events.CHECK_ROOM)
    def check_room(data=None):
        try:
            room = service.get_room_public(_room_id(data or {}))
        except Exception:
            logger.warning("checkRoom failed for %s", request.sid, exc_info=True)
            return {"exists": False}
        return {"exists": room is not None}

    @socketio.on(events.KICK_PLAYER)
    @_game_event
    def kick_player(payload: dict):
        room_id = _room_id(payload)
        requester_id = payloads.required_id(payload, "playerId", "Player ID")
        target_id = payloads.required_id(payload, "targetId", "Target player ID")

        before = service.get_room_public(room_id)
        target = before.find_member(target_id) if before else None
        target_sid = target.connection_ref if target and target.is_connected else None

        room, kicked_id = service.kick_player(room_id, requester_id, target_id)

        if target_sid:
            leave_room(room.id, sid=target_sid)
            registry.unbind(target_sid)

        _broadcast_room(room)
        socketio.emit(events.PLAYER_KICKED, {"playerId": kicked_id}, to=room.id)
        if target_sid:
            socketio.emit(events.PLAYER_KICKED, {"playerId": kicked_id}, to=target_sid)

    @socketio.on(events.START_GAME)
    @_game_event
    def start_game(payload: dict):
        room_id = _room_id(payload)
        requester_id = payloads.required_id(payload, "playerId", "Player ID")

        room = service.start_game(room_id, requester_id)
        socketio.emit(events.GAME_STARTED, room.public_state(), to=room.id)

    @socketio.on(events.SUBMIT_ANSWER)
    @_game_event
    def submit_answer(payload: dict):
        room_id = _room_id(payload)
        player_id = payloads.required_id(payload, "playerId", "Player ID")
        answer = payloads.answer(payload)

        room, all_answered = service.submit_answer(room_id, player_id, answer)
        _broadcast_room(room)

        if all_answered:
            room, match, word = service.calculate_round_results(room_id)
            socketio.emit(
                events.ROUND_RESULT,
                {"room": room.public_state(), "isMatch": match, "word": word},
                to=room.id,
            )
            logger.info("Round result for room %s: match=%s", room.id, match)

    @socketio.on(events.NEXT_ROUND)
    @_game_event
    def next_round(payload: dict):
        room_id = _room_id(payload)
        requester_id = payloads.required_id(payload, "playerId", "Player ID")

        room, game_over = service.next_round(room_id, requester_id)
        name = events.GAME_OVER if game_over else events.NEXT_ROUND
        socketio.emit(name, room.public_state(), to=room.id)

    @socketio.on(events.LEAVE_ROOM)
    @_game_event
    def leave_room_event(payload: dict):
        room_id = _room_id(payload)
        player_id = payloads.required_id(payload, "playerId", "Player ID")

        room, destroyed = service.leave_room(room_id, player_id)
        leave_room(room_id)
        registry.unbind(request.sid)

        if destroyed:
            socketio.emit(events.ROOM_DESTROYED, {"roomId": room_id}, to=room_id)
            for sid in registry.drop_room(room_id):
                disconnect(sid=sid)
            close_room(room_id)
        elif room is not None:
            _broadcast_room(room)

    @socketio.on(events.PLAYER_READY)
    @_game_event
    def player_ready(payload: dict):
        room_id = _room_id(payload)
        player_id = payloads.required_id(payload, "playerId", "Player ID")

        service.player_ready(room_id, player_id)
        room = service.check_and_switch_to_lobby(room_id)
        _broadcast_room(room)

    @socketio.on_error_default
    def on_error(exc):
        logger.exception("Unhandled error in socket event from %s", request.sid)
        emit(events.ERROR, {"message": INTERNAL_ERROR})
        return {"error": INTERNAL_ERROR}

    return registry
