"""
Repository for users who installed the app.
"""

import logging
from typing import Iterable, List, Optional

from pairup.core.config_manager import RepositoryOptions
from pairup.repositories.base import BaseRepository
from pairup.repositories.filters import (
    QueryComparisons,
    combine_filters_with_and,
    generate_filter_condition,
    generate_filter_condition_for_bool,
)
from pairup.storage.interface import TableStore
from pairup.storage.models import TableEntity

USER_DATA_TABLE_NAME = "UserData"
USER_DATA_PARTITION = "UserData"


class UserDataEntity(TableEntity):
    """A user, keyed by Azure AD object id in the RowKey."""

    AadId: Optional[str] = None
    UserId: Optional[str] = None
    ConversationId: Optional[str] = None
    ServiceUrl: Optional[str] = None
    TenantId: Optional[str] = None
    UserName: Optional[str] = None
    TeamId: Optional[str] = None
    IsPausedForMatching: bool = False


class UserDataRepository(BaseRepository[UserDataEntity]):
    """Repository for the UserData table."""

    entity_type = UserDataEntity

    def __init__(
        self,
        logger: logging.Logger,
        options: RepositoryOptions,
        store: Optional[TableStore] = None,
    ):
        super().__init__(
            logger,
            storage_account_connection_string=options.storage_account_connection_string,
            table_name=USER_DATA_TABLE_NAME,
            default_partition_key=USER_DATA_PARTITION,
            ensure_table_exists=options.ensure_table_exists,
            store=store,
        )

    async def get_users_by_aad_ids(self, aad_ids: Iterable[str]) -> List[UserDataEntity]:
        """Get the users with the given Azure AD ids from the default partition."""
        row_keys_filter = self.get_row_keys_filter(aad_ids)
        if not row_keys_filter:
            return []
        return await self.get_with_filter(row_keys_filter)

    async def get_active_users_for_team(self, team_id: str) -> List[UserDataEntity]:
        """Get the users of a team who have not paused matching."""
        team_filter = generate_filter_condition("TeamId", QueryComparisons.EQUAL, team_id)
        active_filter = generate_filter_condition_for_bool(
            "IsPausedForMatching", QueryComparisons.EQUAL, False
        )
        return await self.get_with_filter(combine_filters_with_and(team_filter, active_filter))
