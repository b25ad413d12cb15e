"""
Unit tests for the in-memory table store.

Tests table creation, entity upserts, segmented queries and entity group
transactions.
"""

import pytest

from pairup.storage.interface import (
    BatchError,
    StoreError,
    TableNotFoundError,
    TransactionAction,
    UpdateMode,
)
from pairup.storage.memory import InMemoryTableStore, InvalidTableNameError


@pytest.fixture
async def store():
    """Create a fresh store for each test."""
    store_instance = InMemoryTableStore()
    await store_instance.reset()
    return store_instance


@pytest.fixture
async def store_with_table(store):
    """Create store with one table."""
    await store.create_table_if_not_exists("testtable")
    return store


class TestCreateTable:
    """Tests for table creation."""

    def test_create_table_sync(self):
        store = InMemoryTableStore()
        store.create_table_if_not_exists_sync("MyTable")

        assert store.list_tables() == ["MyTable"]

    @pytest.mark.asyncio
    async def test_create_existing_table_is_noop(self, store):
        """Test creating a table twice, differing only in case."""
        await store.create_table_if_not_exists("MyTable")
        await store.create_table_if_not_exists("mytable")

        assert store.list_tables() == ["MyTable"]

    def test_create_table_invalid_name(self):
        store = InMemoryTableStore()

        with pytest.raises(InvalidTableNameError):
            store.create_table_if_not_exists_sync("1table")

    @pytest.mark.asyncio
    async def test_operations_on_missing_table(self, store):
        with pytest.raises(TableNotFoundError) as exc_info:
            await store.get_entity("missing", "pk", "rk")
        assert "not found" in str(exc_info.value)


class TestUpsertEntity:
    """Tests for replace and merge upserts."""

    @pytest.mark.asyncio
    async def test_insert_sets_system_properties(self, store_with_table):
        await store_with_table.upsert_entity(
            "testtable", {"PartitionKey": "pk", "RowKey": "rk", "Name": "Alice"}
        )

        stored = await store_with_table.get_entity("testtable", "pk", "rk")
        assert stored["Name"] == "Alice"
        assert stored["Timestamp"].tzinfo is not None
        assert stored["etag"].startswith('W/"datetime')

    @pytest.mark.asyncio
    async def test_replace_drops_missing_properties(self, store_with_table):
        await store_with_table.upsert_entity(
            "testtable", {"PartitionKey": "pk", "RowKey": "rk", "Name": "Alice", "Age": 30}
        )
        await store_with_table.upsert_entity(
            "testtable", {"PartitionKey": "pk", "RowKey": "rk", "Name": "Bob"}, UpdateMode.REPLACE
        )

        stored = await store_with_table.get_entity("testtable", "pk", "rk")
        assert stored["Name"] == "Bob"
        assert "Age" not in stored

    @pytest.mark.asyncio
    async def test_merge_keeps_missing_properties(self, store_with_table):
        await store_with_table.upsert_entity(
            "testtable", {"PartitionKey": "pk", "RowKey": "rk", "Name": "Alice", "Age": 30}
        )
        await store_with_table.upsert_entity(
            "testtable", {"PartitionKey": "pk", "RowKey": "rk", "Name": "Bob"}, UpdateMode.MERGE
        )

        stored = await store_with_table.get_entity("testtable", "pk", "rk")
        assert stored["Name"] == "Bob"
        assert stored["Age"] == 30

    @pytest.mark.asyncio
    async def test_get_missing_entity_returns_none(self, store_with_table):
        assert await store_with_table.get_entity("testtable", "pk", "nope") is None

    @pytest.mark.asyncio
    async def test_delete_entity(self, store_with_table):
        await store_with_table.upsert_entity("testtable", {"PartitionKey": "pk", "RowKey": "rk"})
        await store_with_table.delete_entity("testtable", "pk", "rk")

        assert await store_with_table.get_entity("testtable", "pk", "rk") is None

    @pytest.mark.asyncio
    async def test_delete_missing_entity(self, store_with_table):
        with pytest.raises(StoreError):
            await store_with_table.delete_entity("testtable", "pk", "rk")


class TestQuerySegment:
    """Tests for segmented queries."""

    @pytest.fixture
    async def populated(self, store_with_table):
        for i in range(25):
            await store_with_table.upsert_entity(
                "testtable",
                {"PartitionKey": "pk" if i < 20 else "other", "RowKey": f"{i:03d}", "Index": i},
            )
        return store_with_table

    @pytest.mark.asyncio
    async def test_single_segment(self, populated):
        segment = await populated.query_segment("testtable", "PartitionKey eq 'pk'")

        assert len(segment.entities) == 20
        assert segment.continuation_token is None

    @pytest.mark.asyncio
    async def test_pagination_with_continuation_token(self, populated):
        seen = []
        token = None
        pages = 0
        while True:
            segment = await populated.query_segment(
                "testtable", "PartitionKey eq 'pk'", take=8, continuation_token=token
            )
            pages += 1
            seen.extend(e["Index"] for e in segment.entities)
            token = segment.continuation_token
            if token is None:
                break

        assert seen == list(range(20))
        assert pages >= 3

    @pytest.mark.asyncio
    async def test_take_sets_segment_size(self, populated):
        segment = await populated.query_segment("testtable", "PartitionKey eq 'pk'", take=8)

        assert [e["Index"] for e in segment.entities] == list(range(8))
        assert segment.continuation_token is not None

    @pytest.mark.asyncio
    async def test_take_above_segment_size_is_capped(self):
        store = InMemoryTableStore(segment_size=5)
        store.create_table_if_not_exists_sync("capped")
        for i in range(12):
            await store.upsert_entity("capped", {"PartitionKey": "pk", "RowKey": f"{i:02d}"})

        segment = await store.query_segment("capped", take=50)

        assert len(segment.entities) == 5

    @pytest.mark.asyncio
    async def test_segment_size_cap(self):
        store = InMemoryTableStore(segment_size=5)
        store.create_table_if_not_exists_sync("capped")
        for i in range(12):
            await store.upsert_entity("capped", {"PartitionKey": "pk", "RowKey": f"{i:02d}"})

        segment = await store.query_segment("capped")
        assert len(segment.entities) == 5
        assert segment.continuation_token is not None

    @pytest.mark.asyncio
    async def test_ordering_by_keys(self, populated):
        segment = await populated.query_segment("testtable")
        keys = [(e["PartitionKey"], e["RowKey"]) for e in segment.entities]

        assert keys == sorted(keys)

    @pytest.mark.asyncio
    async def test_invalid_continuation_token(self, populated):
        with pytest.raises(StoreError):
            await populated.query_segment("testtable", continuation_token="not-a-token")


class TestSubmitTransaction:
    """Tests for entity group transactions."""

    @pytest.mark.asyncio
    async def test_upsert_and_delete_in_one_transaction(self, store_with_table):
        await store_with_table.upsert_entity("testtable", {"PartitionKey": "pk", "RowKey": "old"})

        await store_with_table.submit_transaction("testtable", [
            (TransactionAction.UPSERT_MERGE, {"PartitionKey": "pk", "RowKey": "new", "Value": 1}),
            (TransactionAction.DELETE, {"PartitionKey": "pk", "RowKey": "old"}),
        ])

        assert await store_with_table.get_entity("testtable", "pk", "old") is None
        assert (await store_with_table.get_entity("testtable", "pk", "new"))["Value"] == 1

    @pytest.mark.asyncio
    async def test_transaction_over_limit(self, store_with_table):
        operations = [
            (TransactionAction.UPSERT_MERGE, {"PartitionKey": "pk", "RowKey": str(i)})
            for i in range(101)
        ]

        with pytest.raises(BatchError):
            await store_with_table.submit_transaction("testtable", operations)

    @pytest.mark.asyncio
    async def test_transaction_across_partitions(self, store_with_table):
        with pytest.raises(BatchError):
            await store_with_table.submit_transaction("testtable", [
                (TransactionAction.UPSERT_MERGE, {"PartitionKey": "a", "RowKey": "1"}),
                (TransactionAction.UPSERT_MERGE, {"PartitionKey": "b", "RowKey": "1"}),
            ])

    @pytest.mark.asyncio
    async def test_failed_transaction_applies_nothing(self, store_with_table):
        with pytest.raises(BatchError):
            await store_with_table.submit_transaction("testtable", [
                (TransactionAction.UPSERT_MERGE, {"PartitionKey": "pk", "RowKey": "1"}),
                (TransactionAction.DELETE, {"PartitionKey": "pk", "RowKey": "missing"}),
            ])

        assert await store_with_table.get_entity("testtable", "pk", "1") is None

    @pytest.mark.asyncio
    async def test_empty_transaction(self, store_with_table):
        with pytest.raises(BatchError):
            await store_with_table.submit_transaction("testtable", [])
