"""Room snapshot storage shared between coordinator processes.

Two backends satisfy :class:`RoomStore`:

- :class:`NullRoomStore` is used when no ``REDIS_URL`` is configured. It is
  never available, so the coordinator runs purely on its in-process cache.
- :class:`RedisRoomStore` keeps JSON snapshots under ``room:<id>`` and a
  ``player:room:<player id>`` index, both with a sliding TTL.

An unreachable backend yields ``None``/``[]``/no-op and the coordinator falls
back to what it holds locally. The only error a store raises is
:class:`~.errors.RoomBusy`, when another process keeps a room locked past the
lock timeout.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager, nullcontext
from typing import ContextManager, Iterator, Protocol

import redis

from .errors import RoomBusy
from .models import Room

logger = logging.getLogger(__name__)

ROOM_PREFIX = "room:"
PLAYER_ROOM_PREFIX = "player:room:"
LOCK_PREFIX = "lock:room:"


class RoomStore(Protocol):
    def is_available(self) -> bool:
        ...

    def put(self, room: Room, ttl: int) -> None:
        ...

    def get(self, room_id: str) -> Room | None:
        ...

    def delete(self, room_id: str) -> None:
        ...

    def index_player(self, player_id: str, room_id: str, ttl: int) -> None:
        ...

    def lookup_player_room(self, player_id: str) -> str | None:
        ...

    def list_all(self) -> list[Room]:
        ...

    def lock(self, room_id: str) -> ContextManager[None]:
        ...


class NullRoomStore:
    """Store used when nothing shared is configured."""

    kind = "memory"

    def is_available(self) -> bool:
        return False

    def put(self, room: Room, ttl: int) -> None:
        return None

    def get(self, room_id: str) -> Room | None:
        return None

    def delete(self, room_id: str) -> None:
        return None

    def index_player(self, player_id: str, room_id: str, ttl: int) -> None:
        return None

    def lookup_player_room(self, player_id: str) -> str | None:
        return None

    def list_all(self) -> list[Room]:
        return []

    def lock(self, room_id: str) -> ContextManager[None]:
        return nullcontext()


class RedisRoomStore:
    kind = "redis"

    def __init__(self, client: redis.Redis, lock_timeout: float = 5) -> None:
        self._client = client
        self._lock_timeout = lock_timeout

    @classmethod
    def from_url(cls, url: str, lock_timeout: float = 5) -> RedisRoomStore:
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        logger.info("Using Redis room store")
        return cls(client, lock_timeout=lock_timeout)

    def is_available(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False

    def put(self, room: Room, ttl: int) -> None:
        try:
            self._client.set(f"{ROOM_PREFIX}{room.id}", json.dumps(room.to_dict()), ex=ttl)
        except redis.RedisError:
            logger.exception("Failed to save room %s", room.id)

    def get(self, room_id: str) -> Room | None:
        try:
            data = self._client.get(f"{ROOM_PREFIX}{room_id}")
        except redis.RedisError:
            logger.exception("Failed to load room %s", room_id)
            return None
        return _decode_room(data, room_id)

    def delete(self, room_id: str) -> None:
        try:
            self._client.delete(f"{ROOM_PREFIX}{room_id}")
        except redis.RedisError:
            logger.exception("Failed to delete room %s", room_id)

    def index_player(self, player_id: str, room_id: str, ttl: int) -> None:
        try:
            self._client.set(f"{PLAYER_ROOM_PREFIX}{player_id}", room_id, ex=ttl)
        except redis.RedisError:
            logger.exception("Failed to index player %s", player_id)

    def lookup_player_room(self, player_id: str) -> str | None:
        try:
            room_id = self._client.get(f"{PLAYER_ROOM_PREFIX}{player_id}")
        except redis.RedisError:
            logger.exception("Failed to look up room for player %s", player_id)
            return None
        return room_id or None

    def list_all(self) -> list[Room]:
        rooms: list[Room] = []
        try:
            for key in self._client.scan_iter(match=f"{ROOM_PREFIX}*"):
                room = _decode_room(self._client.get(key), key[len(ROOM_PREFIX):])
                if room is not None:
                    rooms.append(room)
        except redis.RedisError:
            logger.exception("Failed to list rooms")
            return []
        return rooms

    @contextmanager
    def lock(self, room_id: str) -> Iterator[None]:
        lock = self._client.lock(
            f"{LOCK_PREFIX}{room_id}",
            timeout=self._lock_timeout,
            blocking_timeout=self._lock_timeout,
        )
        try:
            acquired = lock.acquire()
        except redis.RedisError:
            logger.warning("Redis lock unavailable for room %s, using local lock only", room_id)
            acquired = None
        if acquired is False:
            # Another process holds the room.
            logger.warning("Timed out waiting for Redis lock on room %s", room_id)
            raise RoomBusy()
        try:
            yield
        finally:
            if acquired:
                try:
                    lock.release()
                except redis.RedisError:
                    logger.warning("Failed to release Redis lock for room %s", room_id)


def _decode_room(data: str | None, room_id: str) -> Room | None:
    if not data:
        return None
    try:
        payload = json.loads(data)
        if not isinstance(payload, dict):
            raise ValueError("snapshot is not an object")
        return Room.from_dict(payload)
    except (ValueError, KeyError, TypeError, AttributeError):
        logger.error("Discarding malformed snapshot for room %s", room_id)
        return None
