from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal


RoomState = Literal["LOBBY", "PLAYING", "ENDED"]

# idle: in the lobby and available to start a game
# in_game: a game is running
# awaiting_lobby: game over, results not acknowledged yet
PlayerStatus = Literal["idle", "in_game", "awaiting_lobby"]


@dataclass
class Player:
    id: str
    name: str
    connection_ref: str = ""
    is_creator: bool = False
    score: int = 0
    is_connected: bool = True
    status: PlayerStatus = "idle"

    @property
    def is_ready(self) -> bool:
        return self.status == "idle"

    def to_dict(self, include_private: bool = True) -> dict[str, Any]:
        d = {
            "id": self.id,
            "name": self.name,
            "isCreator": self.is_creator,
            "score": self.score,
            "isConnected": self.is_connected,
            "isReady": self.is_ready,
            "status": self.status,
        }
        if include_private:
            d["connectionRef"] = self.connection_ref
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Player:
        status = data.get("status")
        if status not in ("idle", "in_game", "awaiting_lobby"):
            status = "idle" if data.get("isReady", True) else "in_game"
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            connection_ref=str(data.get("connectionRef", "")),
            is_creator=bool(data.get("isCreator", False)),
            score=int(data.get("score", 0)),
            is_connected=bool(data.get("isConnected", False)),
            status=status,
        )


@dataclass
class Room:
    id: str
    language: str = "en"
    state: RoomState = "LOBBY"
    players: list[Player] = field(default_factory=list)
    spectators: list[Player] = field(default_factory=list)
    words: list[str] = field(default_factory=list)
    current_word_index: int = 0
    current_answers: dict[str, str] = field(default_factory=dict)
    last_activity: int = 0

    def find_player(self, player_id: str) -> Player | None:
        for p in self.players:
            if p.id == player_id:
                return p
        return None

    def find_member(self, player_id: str) -> Player | None:
        """Looks up a player among both players and spectators."""
        player = self.find_player(player_id)
        if player is not None:
            return player
        for s in self.spectators:
            if s.id == player_id:
                return s
        return None

    def find_by_connection(self, connection_ref: str) -> Player | None:
        for p in self.members():
            if p.connection_ref == connection_ref:
                return p
        return None

    def members(self) -> list[Player]:
        return self.players + self.spectators

    @property
    def creator(self) -> Player | None:
        for p in self.players:
            if p.is_creator:
                return p
        return None

    @property
    def current_word(self) -> str | None:
        if 0 <= self.current_word_index < len(self.words):
            return self.words[self.current_word_index]
        return None

    def to_dict(self, include_private: bool = True) -> dict[str, Any]:
        return {
            "id": self.id,
            "state": self.state,
            "language": self.language,
            "players": [p.to_dict(include_private) for p in self.players],
            "spectators": [s.to_dict(include_private) for s in self.spectators],
            "words": list(self.words),
            "currentWordIndex": self.current_word_index,
            "currentAnswers": dict(self.current_answers),
            "lastActivity": self.last_activity,
        }

    def public_state(self) -> dict[str, Any]:
        # Connection refs stay server-side.
        return self.to_dict(include_private=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Room:
        state = data.get("state", "LOBBY")
        if state not in ("LOBBY", "PLAYING", "ENDED"):
            raise ValueError(f"unknown room state: {state!r}")
        return cls(
            id=str(data["id"]),
            language=str(data.get("language", "en")),
            state=state,
            players=[Player.from_dict(p) for p in data.get("players", [])],
            spectators=[Player.from_dict(s) for s in data.get("spectators", [])],
            words=[str(w) for w in data.get("words", [])],
            current_word_index=int(data.get("currentWordIndex", 0)),
            current_answers={str(k): str(v) for k, v in (data.get("currentAnswers") or {}).items()},
            last_activity=int(data.get("lastActivity", 0)),
        )
