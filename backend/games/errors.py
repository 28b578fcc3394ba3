"""
Error taxonomy shared by the game machines and the room sync protocol.

- IllegalTransition: the caller asked for a move the rules do not allow.
  Raised before anything is mutated; the caller must not apply it.
- CatalogError: the external word/location catalog cannot satisfy a request.
- SessionNotFound / SessionDeleted: the backing document is gone. Terminal for
  this session view.

Join conflicts are not exceptions — see services.room_sync.JoinResult.
"""
from typing import Optional


class IllegalTransition(ValueError):
    """A transition was requested from a state that does not permit it."""


class CatalogError(ValueError):
    EMPTY = "empty"
    INSUFFICIENT = "insufficient"

    def __init__(self, reason: str, message: str, needed: Optional[int] = None, available: int = 0):
        super().__init__(message)
        self.reason = reason
        self.needed = needed
        self.available = available


class SessionNotFound(LookupError):
    def __init__(self, collection: str, room_code: str):
        super().__init__(f"Room {room_code} not found in {collection}")
        self.collection = collection
        self.room_code = room_code


class SessionDeleted(SessionNotFound):
    """The document was deleted while a client was subscribed to it."""


class UnknownGame(LookupError):
    def __init__(self, game: str):
        super().__init__(f"Unknown game: {game}")
        self.game = game


class UnknownAction(LookupError):
    def __init__(self, game: str, action: str):
        super().__init__(f"Unknown action for {game}: {action}")
        self.game = game
        self.action = action


class NotHost(PermissionError):
    """A host-only operation was requested by another player."""
