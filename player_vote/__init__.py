"""
Single-event player voting service.

This package contains:
- Settings loaded from the environment
- The PostgreSQL store (players and the one-vote-per-device ledger)
- VoteLedger and CandidateRegistry, the operations behind the HTTP API
- The FastAPI application factory
"""

from .config import Settings
from .database import Database
from .errors import (
    AlreadyVoted,
    ConfigurationError,
    InternalError,
    InvalidCandidate,
    NotFound,
    Unauthorized,
    ValidationError,
    VotingError,
)
from .ledger import VoteLedger
from .registry import CandidateRegistry

__all__ = [
    'Settings',
    'Database',
    'VoteLedger',
    'CandidateRegistry',
    'VotingError',
    'ValidationError',
    'AlreadyVoted',
    'NotFound',
    'InvalidCandidate',
    'Unauthorized',
    'InternalError',
    'ConfigurationError',
]

__version__ = '1.0.0'
