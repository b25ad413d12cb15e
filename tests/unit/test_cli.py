"""
Tests for the pairup command-line interface.

Commands run against the process-wide in-memory store.
"""

import asyncio
import json

import pytest
from click.testing import CliRunner

from pairup.cli import cli
from pairup.storage import memory
from pairup.storage.interface import UpdateMode

IN_MEMORY = "UseInMemoryStorage=true"


@pytest.fixture
def runner(monkeypatch):
    monkeypatch.delenv("PAIRUP_STORAGE_CONNECTION_STRING", raising=False)
    monkeypatch.delenv("PAIRUP_ENSURE_TABLE_EXISTS", raising=False)
    asyncio.run(memory.store.reset())
    yield CliRunner()
    asyncio.run(memory.store.reset())


def seed(table, partition, count):
    async def run():
        await memory.store.create_table_if_not_exists(table)
        for i in range(count):
            await memory.store.upsert_entity(
                table, {"PartitionKey": partition, "RowKey": f"{i:03d}", "Name": f"user{i}"}, UpdateMode.REPLACE
            )
    asyncio.run(run())


def entity_lines(output):
    rows = []
    for line in output.splitlines():
        try:
            data = json.loads(line)
        except ValueError:
            continue
        if isinstance(data, dict) and "RowKey" in data:
            rows.append(data)
    return rows


def count_entities(table):
    async def run():
        segment = await memory.store.query_segment(table)
        return len(segment.entities)
    return asyncio.run(run())


class TestListEntities:
    """Tests for the list-entities command."""

    def test_lists_partition(self, runner):
        seed("UserData", "UserData", 7)
        seed("UserData", "Other", 2)

        result = runner.invoke(cli, [
            "list-entities", "UserData", "--top", "3",
            "--connection-string", IN_MEMORY, "--log-level", "ERROR",
        ])

        assert result.exit_code == 0
        rows = entity_lines(result.output)
        assert [row["RowKey"] for row in rows] == [f"{i:03d}" for i in range(7)]
        assert all(row["PartitionKey"] == "UserData" for row in rows)
        assert "7 entities" in result.output

    def test_partition_option(self, runner):
        seed("TeamData", "Other", 2)

        result = runner.invoke(cli, [
            "list-entities", "TeamData", "--partition", "Other",
            "--connection-string", IN_MEMORY, "--log-level", "ERROR",
        ])

        assert result.exit_code == 0
        assert len(entity_lines(result.output)) == 2

    def test_missing_table_fails(self, runner, monkeypatch):
        monkeypatch.setenv("PAIRUP_ENSURE_TABLE_EXISTS", "false")

        result = runner.invoke(cli, [
            "list-entities", "Missing",
            "--connection-string", IN_MEMORY, "--log-level", "CRITICAL",
        ])

        assert result.exit_code == 1
        assert "[ERROR]" in result.output


    def test_missing_connection_string_fails(self, runner):
        seed("UserData", "UserData", 2)

        result = runner.invoke(cli, ["list-entities", "UserData", "--log-level", "CRITICAL"])

        assert result.exit_code == 1
        assert "[ERROR]" in result.output
        assert "storage_account_connection_string" in result.output
        assert entity_lines(result.output) == []


class TestPurge:
    """Tests for the purge command."""

    def test_missing_connection_string_touches_nothing(self, runner):
        seed("UserData", "UserData", 3)

        result = runner.invoke(cli, ["purge", "UserData", "--before", "2999-01-01", "--log-level", "CRITICAL"])

        assert result.exit_code == 1
        assert "Deleted" not in result.output
        assert count_entities("UserData") == 3

    def test_purge_deletes_stale_entities(self, runner):
        seed("UserData", "UserData", 130)
        seed("UserData", "Other", 3)

        result = runner.invoke(cli, [
            "purge", "UserData", "--before", "2999-01-01",
            "--connection-string", IN_MEMORY, "--log-level", "ERROR",
        ])

        assert result.exit_code == 0
        assert "Deleted 133 entities from UserData" in result.output
        assert count_entities("UserData") == 0

    def test_purge_keeps_recent_entities(self, runner):
        seed("UserData", "UserData", 4)

        result = runner.invoke(cli, [
            "purge", "UserData", "--before", "2000-01-01",
            "--connection-string", IN_MEMORY, "--log-level", "ERROR",
        ])

        assert result.exit_code == 0
        assert "Deleted 0 entities" in result.output
        assert count_entities("UserData") == 4

    def test_dry_run(self, runner):
        seed("UserData", "UserData", 4)

        result = runner.invoke(cli, [
            "purge", "UserData", "--before", "2999-01-01T00:00:00", "--dry-run",
            "--connection-string", IN_MEMORY, "--log-level", "ERROR",
        ])

        assert result.exit_code == 0
        assert len(entity_lines(result.output)) == 4
        assert "Would delete 4 entities" in result.output
        assert count_entities("UserData") == 4


def test_version():
    result = CliRunner().invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert "0.1.0" in result.output
