from __future__ import annotations

from threading import Lock


class ConnectionRegistry:
    """Tracks which Socket.IO connection sits in which room."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._sid_to_room: dict[str, str] = {}
        self._room_to_sids: dict[str, set[str]] = {}

    def bind(self, sid: str, room_id: str) -> None:
        with self._lock:
            previous = self._sid_to_room.get(sid)
            if previous and previous != room_id:
                self._discard_locked(sid, previous)
            self._sid_to_room[sid] = room_id
            self._room_to_sids.setdefault(room_id, set()).add(sid)

    def unbind(self, sid: str) -> str | None:
        with self._lock:
            room_id = self._sid_to_room.pop(sid, None)
            if room_id:
                self._discard_locked(sid, room_id)
            return room_id

    def drop_room(self, room_id: str) -> list[str]:
        with self._lock:
            sids = self._room_to_sids.pop(room_id, set())
            for sid in sids:
                self._sid_to_room.pop(sid, None)
            return list(sids)

    def _discard_locked(self, sid: str, room_id: str) -> None:
        sids = self._room_to_sids.get(room_id)
        if sids is None:
            return
        sids.discard(sid)
        if not sids:
            del self._room_to_sids[room_id]
