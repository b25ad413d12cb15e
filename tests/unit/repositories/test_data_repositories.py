"""
Tests for the UserData and TeamData repositories.
"""

import logging

import pytest

from pairup.core.config_manager import RepositoryOptions
from pairup.repositories.exceptions import ArgumentAbsentError
from pairup.repositories.team_data import TeamDataEntity, TeamDataRepository
from pairup.repositories.user_data import UserDataEntity, UserDataRepository
from pairup.storage.memory import InMemoryTableStore


@pytest.fixture
def options():
    return RepositoryOptions(storage_account_connection_string="UseInMemoryStorage=true", ensure_table_exists=True)


@pytest.fixture
def store():
    return InMemoryTableStore()


@pytest.fixture
def user_repository(options, store):
    return UserDataRepository(logging.getLogger("tests.user_data"), options, store=store)


@pytest.fixture
def team_repository(options, store):
    return TeamDataRepository(logging.getLogger("tests.team_data"), options, store=store)


class TestUserDataRepository:
    """Test suite for UserDataRepository."""

    def test_requires_logger(self, options, store):
        with pytest.raises(ArgumentAbsentError):
            UserDataRepository(None, options, store=store)

    def test_requires_connection_string(self):
        with pytest.raises(ArgumentAbsentError) as exc_info:
            UserDataRepository(logging.getLogger("tests.user_data"), RepositoryOptions())

        assert exc_info.value.argument_name == "storage_account_connection_string"

    def test_creates_table(self, user_repository, store):
        assert user_repository.table_name == "UserData"
        assert user_repository.default_partition_key == "UserData"
        assert "UserData" in store.list_tables()

    def test_respects_ensure_table_exists_flag(self, store):
        options = RepositoryOptions(storage_account_connection_string="UseInMemoryStorage=true", ensure_table_exists=False)

        UserDataRepository(logging.getLogger("tests.user_data"), options, store=store)

        assert store.list_tables() == []

    @pytest.mark.asyncio
    async def test_get_users_by_aad_ids(self, user_repository):
        await user_repository.batch_insert_or_merge([
            UserDataEntity(PartitionKey="UserData", RowKey=aad_id, AadId=aad_id, UserName=name)
            for aad_id, name in [("a1", "Ann"), ("b2", "Ben"), ("c3", "Cat")]
        ])

        users = await user_repository.get_users_by_aad_ids(["a1", "c3", "zz"])

        assert sorted(user.UserName for user in users) == ["Ann", "Cat"]
        assert all(isinstance(user, UserDataEntity) for user in users)

    @pytest.mark.asyncio
    async def test_get_users_by_no_ids(self, user_repository):
        assert await user_repository.get_users_by_aad_ids([]) == []

    @pytest.mark.asyncio
    async def test_get_active_users_for_team(self, user_repository):
        await user_repository.batch_insert_or_merge([
            UserDataEntity(PartitionKey="UserData", RowKey="1", TeamId="t1"),
            UserDataEntity(PartitionKey="UserData", RowKey="2", TeamId="t1", IsPausedForMatching=True),
            UserDataEntity(PartitionKey="UserData", RowKey="3", TeamId="t2"),
        ])

        users = await user_repository.get_active_users_for_team("t1")

        assert [user.RowKey for user in users] == ["1"]


class TestTeamDataRepository:
    """Test suite for TeamDataRepository."""

    @pytest.mark.asyncio
    async def test_get_team_names_by_ids_sorted(self, team_repository):
        for team_id, name in [("t1", "zebra"), ("t2", "Alpha"), ("t3", "mango"), ("t4", None)]:
            await team_repository.create_or_update(
                TeamDataEntity(PartitionKey="TeamData", RowKey=team_id, TeamId=team_id, Name=name)
            )

        names = await team_repository.get_team_names_by_ids(["t1", "t2", "t3", "t4"])

        assert names == ["Alpha", "mango", "zebra"]

    @pytest.mark.asyncio
    async def test_get_team_data_entities_by_ids(self, team_repository):
        await team_repository.create_or_update(
            TeamDataEntity(PartitionKey="TeamData", RowKey="t1", Name="O'Neil's team")
        )

        teams = await team_repository.get_team_data_entities_by_ids(["t1"])

        assert [team.Name for team in teams] == ["O'Neil's team"]
        assert await team_repository.get_team_data_entities_by_ids([]) == []
