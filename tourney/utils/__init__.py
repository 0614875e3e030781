"""Utility modules."""

from tourney.utils.db import get_db_session, run_in_transaction
from tourney.utils.errors import ErrorCode, TourneyError

__all__ = [
    "get_db_session",
    "run_in_transaction",
    "ErrorCode",
    "TourneyError",
]
