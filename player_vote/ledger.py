"""Vote ledger: one vote per device, tallies kept in step with the ledger."""
import logging
from typing import Optional, Tuple

from .database import DEVICE_ID_MAX_LENGTH, MAX_ID
from .errors import InvalidCandidate, ValidationError

logger = logging.getLogger(__name__)


def _check_device_id(device_id: str):
    if len(device_id) > DEVICE_ID_MAX_LENGTH:
        raise ValidationError(f"Device ID must be at most {DEVICE_ID_MAX_LENGTH} characters")


class VoteLedger:
    """
    Vote operations over a store.

    The store is anything exposing ``cast_vote``, ``get_vote``, ``reset_vote``
    and ``reset_all`` with the semantics of ``database.Database``; the
    atomicity guarantees live there.
    """

    def __init__(self, store):
        self.store = store

    async def cast_vote(self, player_id: Optional[int], device_id: Optional[str]) -> dict:
        """
        Cast a vote for a player from a device.

        Raises:
            ValidationError: player or device missing, or device too long
            AlreadyVoted: the device has already voted
            InvalidCandidate: no such player
        """
        if player_id is None or not device_id:
            raise ValidationError("Player ID and Device ID are required")
        _check_device_id(device_id)
        # Ids outside the id column's range cannot name a player
        if not 1 <= player_id <= MAX_ID:
            raise InvalidCandidate()

        vote = await self.store.cast_vote(player_id, device_id)
        logger.info(f"Vote recorded: player={player_id}, device={device_id}")
        return vote

    async def check_vote(self, device_id: str) -> Tuple[bool, Optional[int]]:
        """Return (has_voted, player_id) for a device."""
        vote = await self.store.get_vote(device_id)
        if vote is None:
            return False, None
        return True, vote["player_id"]

    async def reset_vote(self, device_id: Optional[str]) -> Optional[int]:
        """Withdraw the device's vote. A device without a vote is a no-op."""
        if not device_id:
            raise ValidationError("Device ID is required")
        _check_device_id(device_id)

        player_id = await self.store.reset_vote(device_id)
        if player_id is None:
            logger.debug(f"No vote to reset for device={device_id}")
        else:
            logger.info(f"Vote reset: player={player_id}, device={device_id}")
        return player_id

    async def reset_all(self) -> int:
        deleted = await self.store.reset_all()
        logger.warning(f"All votes reset by admin: {deleted} votes deleted")
        return deleted
