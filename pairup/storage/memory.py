"""
In-memory table store.

Keeps tables and entities in process memory with the semantics of Azure
Table Storage: segmented queries with continuation tokens, OData filters
and atomic entity group transactions.
"""

import asyncio
import base64
import json
import threading
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pairup.storage.interface import (
    MAX_BATCH_SIZE,
    BatchError,
    QuerySegment,
    StoreError,
    TableNotFoundError,
    TableStore,
    TransactionAction,
    TransactionOperation,
    UpdateMode,
)
from pairup.storage.models import SYSTEM_PROPERTIES, TableEntity, TableNameValidator
from pairup.storage.query import ODataQuery


# Azure returns at most this many entities per segment.
DEFAULT_SEGMENT_SIZE = 1000


class InvalidTableNameError(StoreError):
    """Raised when a table name breaks Azure naming rules."""
    pass


class EntityKeyError(StoreError):
    """Raised when an entity is missing PartitionKey or RowKey."""
    pass


class InMemoryTableStore(TableStore):
    """
    In-memory table store.

    Stores entities per table keyed by (PartitionKey, RowKey). Mutations are
    serialised with an asyncio lock; table creation uses a thread lock so
    that it can run before an event loop exists.
    """

    def __init__(self, segment_size: int = DEFAULT_SEGMENT_SIZE):
        """
        Initialize the store with empty storage.

        Args:
            segment_size: Maximum entities per query segment when the
                caller does not ask for fewer
        """
        self.segment_size = segment_size
        # table_name -> {(partition_key, row_key): properties}
        self._entities: Dict[str, Dict[Tuple[str, str], Dict[str, Any]]] = defaultdict(dict)
        self._tables: Dict[str, str] = {}
        self._table_lock = threading.Lock()
        self._lock = asyncio.Lock()

    async def reset(self) -> None:
        """Drop all tables and entities."""
        async with self._lock:
            with self._table_lock:
                self._tables.clear()
                self._entities.clear()

    def list_tables(self) -> List[str]:
        """List table names as they were created."""
        with self._table_lock:
            return list(self._tables.values())

    def create_table_if_not_exists_sync(self, table_name: str) -> None:
        is_valid, error = TableNameValidator.validate(table_name)
        if not is_valid:
            raise InvalidTableNameError(error)

        with self._table_lock:
            key = table_name.lower()
            if key not in self._tables:
                self._tables[key] = table_name
                self._entities[key] = {}

    async def create_table_if_not_exists(self, table_name: str) -> None:
        self.create_table_if_not_exists_sync(table_name)

    async def upsert_entity(
        self,
        table_name: str,
        properties: Dict[str, Any],
        mode: UpdateMode = UpdateMode.MERGE,
    ) -> None:
        async with self._lock:
            table = self._get_table(table_name)
            self._apply_upsert(table, properties, mode)

    async def get_entity(
        self, table_name: str, partition_key: str, row_key: str
    ) -> Optional[Dict[str, Any]]:
        async with self._lock:
            table = self._get_table(table_name)
            stored = table.get((partition_key, row_key))
            return dict(stored) if stored is not None else None

    async def delete_entity(
        self, table_name: str, partition_key: str, row_key: str
    ) -> None:
        """
        Delete an entity.

        Raises:
            TableNotFoundError: If table not found
            StoreError: If no entity exists at the keys
        """
        async with self._lock:
            table = self._get_table(table_name)
            key = (partition_key, row_key)
            if key not in table:
                raise StoreError(
                    f"Entity with PartitionKey '{partition_key}' "
                    f"and RowKey '{row_key}' not found"
                )
            del table[key]

    async def query_segment(
        self,
        table_name: str,
        filter_expr: Optional[str] = None,
        take: Optional[int] = None,
        continuation_token: Optional[Any] = None,
    ) -> QuerySegment:
        query = ODataQuery(filter_expr=filter_expr, top=take)
        limit = min(query.top, self.segment_size) if query.top else self.segment_size
        start_key = self._decode_token(continuation_token)

        async with self._lock:
            table = self._get_table(table_name)

            # Sort by PartitionKey, then RowKey for stable pagination
            sorted_keys = sorted(table.keys())

            start_idx = 0
            if start_key is not None:
                start_idx = len(sorted_keys)
                for idx, key in enumerate(sorted_keys):
                    if key >= start_key:
                        start_idx = idx
                        break

            results: List[Dict[str, Any]] = []
            next_key = None
            for idx in range(start_idx, len(sorted_keys)):
                key = sorted_keys[idx]
                if len(results) >= limit:
                    next_key = key
                    break
                properties = table[key]
                if query.matches(properties):
                    results.append(dict(properties))

        return QuerySegment(
            entities=results,
            continuation_token=self._encode_token(next_key),
        )

    async def submit_transaction(
        self, table_name: str, operations: Sequence[TransactionOperation]
    ) -> None:
        """
        Execute an entity group transaction atomically.

        Every operation is validated before any is applied.

        Raises:
            BatchError: On an empty, oversized or cross-partition batch, a
                duplicate row, or a delete of a missing entity
        """
        if not operations:
            raise BatchError("A transaction must contain at least one operation")
        if len(operations) > MAX_BATCH_SIZE:
            raise BatchError(
                f"A transaction can contain at most {MAX_BATCH_SIZE} operations, got {len(operations)}"
            )

        partitions = {properties.get("PartitionKey") for _, properties in operations}
        if len(partitions) > 1:
            raise BatchError("All operations in a transaction must target the same partition")

        seen = set()
        for _, properties in operations:
            key = self._entity_key(properties)
            if key in seen:
                raise BatchError(f"Duplicate RowKey '{key[1]}' in transaction")
            seen.add(key)

        async with self._lock:
            table = self._get_table(table_name)

            for action, properties in operations:
                if action == TransactionAction.DELETE and self._entity_key(properties) not in table:
                    raise BatchError(
                        f"Entity with PartitionKey '{properties['PartitionKey']}' "
                        f"and RowKey '{properties['RowKey']}' not found"
                    )

            for action, properties in operations:
                if action == TransactionAction.DELETE:
                    del table[self._entity_key(properties)]
                elif action == TransactionAction.UPSERT_REPLACE:
                    self._apply_upsert(table, properties, UpdateMode.REPLACE)
                else:
                    self._apply_upsert(table, properties, UpdateMode.MERGE)

    def _apply_upsert(
        self,
        table: Dict[Tuple[str, str], Dict[str, Any]],
        properties: Dict[str, Any],
        mode: UpdateMode,
    ) -> None:
        key = self._entity_key(properties)
        custom = {k: v for k, v in properties.items() if k not in SYSTEM_PROPERTIES}

        existing = table.get(key)
        if existing is not None and mode == UpdateMode.MERGE:
            stored = dict(existing)
            stored.update(custom)
        else:
            stored = {"PartitionKey": key[0], "RowKey": key[1], **custom}

        # Set system properties
        stored["Timestamp"] = datetime.now(timezone.utc)
        stored["etag"] = TableEntity.generate_etag(stored["Timestamp"])
        table[key] = stored

    def _entity_key(self, properties: Dict[str, Any]) -> Tuple[str, str]:
        partition_key = properties.get("PartitionKey")
        row_key = properties.get("RowKey")
        if partition_key is None or row_key is None:
            raise EntityKeyError("Entity must have PartitionKey and RowKey")
        return partition_key, row_key

    def _get_table(self, table_name: str) -> Dict[Tuple[str, str], Dict[str, Any]]:
        """
        Resolve a table with case-insensitive comparison.

        Raises:
            TableNotFoundError: If table not found
        """
        key = table_name.lower()
        if key not in self._tables:
            raise TableNotFoundError(f"Table '{table_name}' not found")
        return self._entities[key]

    @staticmethod
    def _encode_token(key: Optional[Tuple[str, str]]) -> Optional[str]:
        if key is None:
            return None
        token_data = {"NextPartitionKey": key[0], "NextRowKey": key[1]}
        return base64.b64encode(json.dumps(token_data).encode()).decode()

    @staticmethod
    def _decode_token(token: Optional[Any]) -> Optional[Tuple[str, str]]:
        if not token:
            return None
        try:
            token_data = json.loads(base64.b64decode(token).decode())
            return token_data["NextPartitionKey"], token_data["NextRowKey"]
        except (ValueError, KeyError, TypeError) as e:
            raise StoreError(f"Invalid continuation token: {token}") from e


# Process-wide store shared by repositories using in-memory storage
store = InMemoryTableStore()
