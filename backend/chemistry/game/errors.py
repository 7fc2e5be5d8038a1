from __future__ import annotations


class GameError(Exception):
    """Base class for errors reported back to the requesting connection."""

    default_message = "Game error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class RoomNotFound(GameError):
    default_message = "Room not found"


class PlayerNotFound(GameError):
    default_message = "Player not found"


class RoomFull(GameError):
    default_message = "Room is full"


class Forbidden(GameError):
    default_message = "Only the room creator can do that"


class NotEnoughPlayers(GameError):
    default_message = "Not enough players to start"


class PlayersNotReady(GameError):
    default_message = "Wait for all players to return to lobby"


class GameNotInProgress(GameError):
    default_message = "Game not in progress"


class RoomBusy(GameError):
    default_message = "Room is busy, try again"
