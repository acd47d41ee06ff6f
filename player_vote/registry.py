"""Candidate registry: the players and their display metadata."""
import logging
from typing import Dict, List, Optional, Tuple

from .database import DEFAULT_POSITION, MAX_ID, NAME_MAX_LENGTH, POSITION_MAX_LENGTH
from .errors import NotFound, ValidationError

logger = logging.getLogger(__name__)


def _known_id(player_id: int) -> bool:
    return 1 <= player_id <= MAX_ID


class CandidateRegistry:
    def __init__(self, store):
        self.store = store

    async def list_players(self) -> Tuple[List[Dict], int]:
        """
        All players ordered by id, with the total of their tallies.

        The total is summed from the same rows on every call.
        """
        players = await self.store.list_players()
        total_votes = sum(p["votes"] for p in players)
        return players, total_votes

    async def get_player(self, player_id: int) -> Dict:
        player = await self.store.get_player(player_id) if _known_id(player_id) else None
        if player is None:
            raise NotFound()
        return player

    async def add_player(self, name: Optional[str], team: Optional[str],
                         image: Optional[str] = None,
                         position: Optional[str] = None) -> Dict:
        """
        Register a player with zero votes.

        Name, team and position are trimmed; a name or team that is empty
        after trimming is rejected.
        """
        name = (name or "").strip()
        team = (team or "").strip()
        position = (position or "").strip() or DEFAULT_POSITION
        if not name or not team:
            raise ValidationError("Name and team are required")
        if len(name) > NAME_MAX_LENGTH or len(team) > NAME_MAX_LENGTH:
            raise ValidationError(f"Name and team must be at most {NAME_MAX_LENGTH} characters")
        if len(position) > POSITION_MAX_LENGTH:
            raise ValidationError(f"Position must be at most {POSITION_MAX_LENGTH} characters")

        player = await self.store.add_player(name, team, position, image or None)
        logger.info(f"Player added: id={player['id']}, name={name!r}, team={team!r}")
        return player

    async def remove_player(self, player_id: int):
        """Delete a player together with every vote cast for it."""
        removed = _known_id(player_id) and await self.store.remove_player(player_id)
        if not removed:
            raise NotFound()
        logger.info(f"Player removed: id={player_id}")

    async def update_image(self, player_id: int, image: Optional[str]) -> Dict:
        player = None
        if _known_id(player_id):
            player = await self.store.update_player_image(player_id, image or None)
        if player is None:
            raise NotFound()
        logger.info(f"Player image updated: id={player_id}")
        return player
