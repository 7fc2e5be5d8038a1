from __future__ import annotations

import logging
import random
import string
import time
import uuid
from contextlib import contextmanager
from threading import RLock
from typing import Any, Iterator, Mapping

from .errors import (
    Forbidden,
    GameError,
    GameNotInProgress,
    NotEnoughPlayers,
    PlayerNotFound,
    PlayersNotReady,
    RoomFull,
    RoomNotFound,
)
from .models import Player, Room
from .store import NullRoomStore, RoomStore
from .words import pick_words

logger = logging.getLogger(__name__)

ROOM_ID_ALPHABET = string.ascii_uppercase + string.digits


def now_ms() -> int:
    return int(time.time() * 1000)


def normalize_answer(text: str) -> str:
    return text.strip().casefold()


class GameService:
    """Authoritative owner of room and game state.

    Rooms live in a local map mirrored against an optional shared
    :class:`RoomStore`. While the store is reachable it is authoritative and
    the local map only caches it; otherwise the local map stands alone.
    Writes go to both. Every public operation holds the room's
    lock (plus the store's cross-process lock) for its whole
    load, mutate, persist cycle.
    """

    def __init__(
        self,
        store: RoomStore | None = None,
        *,
        max_players: int = 10,
        min_players: int = 2,
        words_per_game: int = 2,
        room_ttl_sec: int = 3600,
        inactivity_timeout_sec: int = 900,
        room_id_length: int = 4,
        room_id_max_attempts: int = 20,
    ) -> None:
        self._store: RoomStore = store or NullRoomStore()
        self.max_players = max_players
        self.min_players = min_players
        self.words_per_game = words_per_game
        self.room_ttl_sec = room_ttl_sec
        self.inactivity_timeout_sec = inactivity_timeout_sec
        self.room_id_length = room_id_length
        self.room_id_max_attempts = room_id_max_attempts

        self._lock = RLock()
        self._rooms: dict[str, Room] = {}
        self._room_locks: dict[str, RLock] = {}

    @classmethod
    def from_config(cls, config: Mapping[str, Any], store: RoomStore | None = None) -> GameService:
        return cls(
            store,
            max_players=config["MAX_PLAYERS"],
            min_players=config["MIN_PLAYERS"],
            words_per_game=config["WORDS_PER_GAME"],
            room_ttl_sec=config["ROOM_TTL_SEC"],
            inactivity_timeout_sec=config["ROOM_INACTIVITY_TIMEOUT_SEC"],
            room_id_length=config["ROOM_ID_LENGTH"],
            room_id_max_attempts=config["ROOM_ID_MAX_ATTEMPTS"],
        )

    @property
    def store(self) -> RoomStore:
        return self._store

    # ---- Cache / store plumbing ----

    @contextmanager
    def _room_lock(self, room_id: str) -> Iterator[None]:
        with self._lock:
            lock = self._room_locks.setdefault(room_id, RLock())
        try:
            with lock:
                with self._store.lock(room_id):
                    yield
        finally:
            # Locks are only kept for rooms this process holds.
            with self._lock:
                if room_id not in self._rooms and self._room_locks.get(room_id) is lock:
                    del self._room_locks[room_id]

    def _load(self, room_id: str) -> Room | None:
        if not self._store.is_available():
            with self._lock:
                return self._rooms.get(room_id)

        room = self._store.get(room_id)
        with self._lock:
            if room is None:
                # Gone from the shared store: destroyed or expired elsewhere.
                self._rooms.pop(room_id, None)
                return None
            self._rooms[room_id] = room
            return room

    def _require(self, room_id: str) -> Room:
        room = self._load(room_id)
        if room is None:
            raise RoomNotFound()
        return room

    def _save(self, room: Room) -> None:
        with self._lock:
            self._rooms[room.id] = room
        if not self._store.is_available():
            return
        self._store.put(room, self.room_ttl_sec)
        for member in room.members():
            self._store.index_player(member.id, room.id, self.room_ttl_sec)

    def _delete(self, room_id: str) -> None:
        with self._lock:
            self._rooms.pop(room_id, None)
            self._room_locks.pop(room_id, None)
        if self._store.is_available():
            self._store.delete(room_id)

    def _known_room_ids(self) -> list[str]:
        with self._lock:
            ids = list(self._rooms.keys())
        if self._store.is_available():
            for room in self._store.list_all():
                if room.id not in ids:
                    ids.append(room.id)
        return ids

    def _reserve_room(self, room: Room) -> Room:
        """Picks a free code for ``room`` and claims it in the local map."""
        for _ in range(self.room_id_max_attempts):
            code = "".join(random.choices(ROOM_ID_ALPHABET, k=self.room_id_length))
            if self._store.is_available() and self._store.get(code) is not None:
                continue
            with self._lock:
                if code in self._rooms:
                    continue
                room.id = code
                self._rooms[code] = room
                return room
        raise GameError("Could not allocate a room code, try again")

    def _require_creator(self, room: Room, requester_id: str, message: str) -> None:
        creator = room.creator
        if creator is None or creator.id != requester_id:
            raise Forbidden(message)

    @staticmethod
    def _touch(room: Room) -> None:
        room.last_activity = now_ms()

    # ---- Lookups ----

    def get_room_public(self, room_id: str) -> Room | None:
        return self._load(room_id)

    def list_rooms(self) -> list[Room]:
        """Live rooms: the shared store when reachable, else the local map."""
        if self._store.is_available():
            return self._store.list_all()
        with self._lock:
            return list(self._rooms.values())

    # ---- Membership ----

    def create_room(
        self,
        creator_name: str,
        connection_ref: str,
        language: str = "en",
        player_id: str | None = None,
    ) -> tuple[Room, Player]:
        creator = Player(
            id=player_id or str(uuid.uuid4()),
            name=creator_name,
            connection_ref=connection_ref,
            is_creator=True,
            status="idle",
        )
        room = Room(id="", language=language, players=[creator])
        self._touch(room)
        self._reserve_room(room)

        with self._room_lock(room.id):
            self._save(room)

        logger.info("Room %s created by %s (%s)", room.id, creator.id, language)
        return room, creator

    def join_room(
        self,
        room_id: str,
        player_name: str,
        connection_ref: str,
        player_id: str | None = None,
    ) -> tuple[Room, Player]:
        with self._room_lock(room_id):
            room = self._require(room_id)

            if len(room.players) >= self.max_players:
                raise RoomFull()

            existing = room.find_member(player_id) if player_id else None
            if existing is not None:
                existing.connection_ref = connection_ref
                existing.name = player_name
                existing.is_connected = True
                self._touch(room)
                self._save(room)
                return room, existing

            player = Player(
                id=player_id or str(uuid.uuid4()),
                name=player_name,
                connection_ref=connection_ref,
                status="idle",
            )
            if room.state == "PLAYING":
                room.spectators.append(player)
            else:
                room.players.append(player)

            self._touch(room)
            self._save(room)

        logger.info("Player %s joined room %s", player.id, room_id)
        return room, player

    def reconnect_player(self, player_id: str, connection_ref: str) -> tuple[Room, Player]:
        candidates: list[str] = []
        if self._store.is_available():
            indexed = self._store.lookup_player_room(player_id)
            if indexed:
                candidates.append(indexed)
        # The index is empty without a shared store, so scan every room too.
        for room_id in self._known_room_ids():
            if room_id not in candidates:
                candidates.append(room_id)

        for room_id in candidates:
            with self._room_lock(room_id):
                room = self._load(room_id)
                if room is None:
                    continue
                player = room.find_member(player_id)
                if player is None:
                    continue
                player.connection_ref = connection_ref
                player.is_connected = True
                self._touch(room)
                self._save(room)
                logger.info("Player %s reconnected to room %s", player_id, room_id)
                return room, player

        raise PlayerNotFound("Player not found in any room")

    def disconnect_player(self, connection_ref: str) -> tuple[str, str] | None:
        for room_id in self._known_room_ids():
            with self._room_lock(room_id):
                room = self._load(room_id)
                if room is None:
                    continue
                player = room.find_by_connection(connection_ref)
                if player is None:
                    continue
                player.is_connected = False
                self._touch(room)
                self._save(room)
                return room.id, player.id
        return None

    def kick_player(self, room_id: str, requester_id: str, target_id: str) -> tuple[Room, str]:
        with self._room_lock(room_id):
            room = self._require(room_id)

            self._require_creator(room, requester_id, "Only creator can kick players")

            room.players = [p for p in room.players if p.id != target_id]
            room.spectators = [s for s in room.spectators if s.id != target_id]
            room.current_answers.pop(target_id, None)

            self._touch(room)
            self._save(room)

        logger.info("Player %s kicked from room %s", target_id, room_id)
        return room, target_id

    def leave_room(self, room_id: str, player_id: str) -> tuple[Room | None, bool]:
        with self._room_lock(room_id):
            room = self._require(room_id)

            player = room.find_player(player_id)
            if player is not None and player.is_creator:
                self._delete(room_id)
                logger.info("Room %s destroyed, creator left", room_id)
                return None, True

            if player is not None:
                room.players = [p for p in room.players if p.id != player_id]
            elif room.find_member(player_id) is not None:
                room.spectators = [s for s in room.spectators if s.id != player_id]
            else:
                raise PlayerNotFound("Player not found in room")

            room.current_answers.pop(player_id, None)
            self._touch(room)
            self._save(room)

        logger.info("Player %s left room %s", player_id, room_id)
        return room, False

    def player_ready(self, room_id: str, player_id: str) -> Room:
        with self._room_lock(room_id):
            room = self._require(room_id)

            player = room.find_player(player_id)
            if player is not None:
                player.status = "idle"

            self._touch(room)
            self._save(room)
            return room

    # ---- Game flow ----

    def start_game(self, room_id: str, requester_id: str) -> Room:
        with self._room_lock(room_id):
            room = self._require(room_id)

            self._require_creator(room, requester_id, "Only creator can start game")

            if len(room.players) < self.min_players:
                raise NotEnoughPlayers(f"Need at least {self.min_players} players to start")

            if any(not p.is_ready for p in room.players):
                raise PlayersNotReady()

            room.state = "PLAYING"
            room.words = pick_words(room.language, self.words_per_game)
            room.current_word_index = 0
            room.current_answers = {}
            for p in room.players:
                p.score = 0
                p.status = "in_game"

            self._touch(room)
            self._save(room)

        logger.info("Game started in room %s with %d players", room_id, len(room.players))
        return room

    def submit_answer(self, room_id: str, player_id: str, answer: str) -> tuple[Room, bool]:
        with self._room_lock(room_id):
            room = self._require(room_id)

            if room.state != "PLAYING":
                raise GameNotInProgress()

            if room.find_player(player_id) is None:
                raise PlayerNotFound()

            room.current_answers[player_id] = answer
            self._touch(room)
            self._save(room)

            # Disconnected players can't hold up the round.
            all_answered = all(
                p.id in room.current_answers for p in room.players if p.is_connected
            )
            return room, all_answered

    def calculate_round_results(self, room_id: str) -> tuple[Room, bool, str | None]:
        with self._room_lock(room_id):
            room = self._require(room_id)

            normalized = [normalize_answer(a) for a in room.current_answers.values()]
            match = len(normalized) > 0 and len(set(normalized)) == 1

            if match:
                for p in room.players:
                    if p.id in room.current_answers:
                        p.score += 1
                self._save(room)

            return room, match, room.current_word

    def next_round(self, room_id: str, requester_id: str | None = None) -> tuple[Room, bool]:
        with self._room_lock(room_id):
            room = self._require(room_id)

            if requester_id is not None:
                self._require_creator(room, requester_id, "Only creator can advance round")

            room.current_word_index += 1
            room.current_answers = {}
            self._touch(room)

            game_over = room.current_word_index >= len(room.words)
            if game_over:
                room.state = "ENDED"
                for p in room.players:
                    p.status = "awaiting_lobby"

            self._save(room)

        if game_over:
            logger.info("Game over in room %s", room_id)
        return room, game_over

    def check_and_switch_to_lobby(self, room_id: str) -> Room:
        with self._room_lock(room_id):
            room = self._require(room_id)

            if room.state != "ENDED" or not all(p.is_ready for p in room.players):
                return room

            room.state = "LOBBY"
            room.words = []
            room.current_word_index = 0
            room.current_answers = {}
            room.players = room.players + room.spectators
            room.spectators = []
            for p in room.players:
                p.status = "idle"

            self._touch(room)
            self._save(room)

        logger.info("Room %s returned to lobby", room_id)
        return room

    # ---- Housekeeping ----

    def cleanup_inactive_rooms(self, now: int | None = None) -> int:
        """Deletes rooms idle longer than the inactivity timeout; returns how many."""
        current = now if now is not None else now_ms()
        cutoff_ms = self.inactivity_timeout_sec * 1000
        removed = 0

        with self._lock:
            candidates = {room.id: room for room in self._rooms.values()}
        for room in self.list_rooms():
            candidates[room.id] = room

        for room in candidates.values():
            if current - room.last_activity <= cutoff_ms:
                continue
            try:
                with self._room_lock(room.id):
                    fresh = self._load(room.id)
                    if fresh is None or current - fresh.last_activity <= cutoff_ms:
                        continue
                    self._delete(room.id)
            except Exception:
                logger.exception("Failed to clean up room %s", room.id)
                continue
            removed += 1
            logger.info("Room %s removed due to inactivity", room.id)

        return removed
