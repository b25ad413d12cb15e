"""
Table storage repositories.
"""

from pairup.repositories.base import BaseRepository, split_into_batches
from pairup.repositories.exceptions import (
    ArgumentAbsentError,
    EntityNotFoundError,
    RepositoryError,
)
from pairup.repositories.team_data import TeamDataEntity, TeamDataRepository
from pairup.repositories.user_data import UserDataEntity, UserDataRepository

__all__ = [
    "BaseRepository",
    "split_into_batches",
    "ArgumentAbsentError",
    "EntityNotFoundError",
    "RepositoryError",
    "TeamDataEntity",
    "TeamDataRepository",
    "UserDataEntity",
    "UserDataRepository",
]
