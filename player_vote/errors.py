"""Error types raised by the voting service.

Every request-level error derives from ``VotingError`` and carries the HTTP
status it maps to. The API layer turns them into
``{"success": false, "error": ...}`` bodies.
"""
from typing import Any, Dict, Optional


class VotingError(Exception):
    """Base class for errors that are reported to the client."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message}


class ValidationError(VotingError):
    """A required field is missing or empty."""

    status_code = 400
    default_message = "Invalid request"


class AlreadyVoted(VotingError):
    """The device already has a ledger entry."""

    status_code = 400
    default_message = "You have already voted from this device"

    def __init__(self, message: Optional[str] = None, player_id: Optional[int] = None):
        super().__init__(message)
        self.player_id = player_id

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["alreadyVoted"] = True
        if self.player_id is not None:
            body["playerId"] = self.player_id
        return body


class NotFound(VotingError):
    status_code = 404
    default_message = "Player not found"


class InvalidCandidate(NotFound):
    """A vote referenced a player that does not exist."""

    default_message = "Invalid player"


class Unauthorized(VotingError):
    status_code = 401
    default_message = "Invalid password"


class InternalError(VotingError):
    """Storage or other server-side failure."""


class ConfigurationError(Exception):
    """Fatal misconfiguration detected at boot."""
