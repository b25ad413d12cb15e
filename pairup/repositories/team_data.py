"""
Repository for teams the app is installed in.
"""

import logging
from typing import Iterable, List, Optional

from pairup.core.config_manager import RepositoryOptions
from pairup.repositories.base import BaseRepository
from pairup.storage.interface import TableStore
from pairup.storage.models import TableEntity

TEAM_DATA_TABLE_NAME = "TeamData"
TEAM_DATA_PARTITION = "TeamData"


class TeamDataEntity(TableEntity):
    """A team, keyed by team id in the RowKey."""

    TeamId: Optional[str] = None
    Name: Optional[str] = None
    Description: Optional[str] = None
    ServiceUrl: Optional[str] = None
    TenantId: Optional[str] = None


class TeamDataRepository(BaseRepository[TeamDataEntity]):
    """Repository for the TeamData table."""

    entity_type = TeamDataEntity

    def __init__(
        self,
        logger: logging.Logger,
        options: RepositoryOptions,
        store: Optional[TableStore] = None,
    ):
        super().__init__(
            logger,
            storage_account_connection_string=options.storage_account_connection_string,
            table_name=TEAM_DATA_TABLE_NAME,
            default_partition_key=TEAM_DATA_PARTITION,
            ensure_table_exists=options.ensure_table_exists,
            store=store,
        )

    async def get_team_data_entities_by_ids(self, team_ids: Iterable[str]) -> List[TeamDataEntity]:
        """Get the teams with the given ids; an empty list when no id is given."""
        row_keys_filter = self.get_row_keys_filter(team_ids)
        if not row_keys_filter:
            return []
        return await self.get_with_filter(row_keys_filter)

    async def get_team_names_by_ids(self, team_ids: Iterable[str]) -> List[str]:
        """Get team names sorted case-insensitively."""
        teams = await self.get_team_data_entities_by_ids(team_ids)
        names = [team.Name for team in teams if team.Name]
        return sorted(names, key=str.lower)
