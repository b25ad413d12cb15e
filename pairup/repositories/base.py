"""
Base repository for data stored in table storage.

A repository is bound to one table and one entity class. It provides point
lookups, filtered scans, paged/streamed scans and batched writes. Store
failures are logged through the injected logger and re-raised unchanged.
"""

import asyncio
import logging
from datetime import datetime
from typing import (
    Any,
    AsyncIterator,
    Generic,
    Iterable,
    List,
    Optional,
    Sequence,
    Type,
    TypeVar,
)

from pairup.repositories.exceptions import ArgumentAbsentError, EntityNotFoundError
from pairup.repositories.filters import (
    QueryComparisons,
    TableOperators,
    combine_filters,
    combine_filters_with_and,
    generate_filter_condition,
    generate_filter_condition_for_date,
    is_blank,
)
from pairup.storage.factory import create_table_store
from pairup.storage.interface import (
    MAX_BATCH_SIZE,
    TableStore,
    TransactionAction,
    UpdateMode,
)
from pairup.storage.models import TableEntity

T = TypeVar("T", bound=TableEntity)


def split_into_batches(items: Sequence[Any], batch_size: int = MAX_BATCH_SIZE) -> List[List[Any]]:
    """
    Split items into consecutive groups of at most batch_size.

    Returns ceil(len(items) / batch_size) groups, in input order.
    """
    return [list(items[start:start + batch_size]) for start in range(0, len(items), batch_size)]


class BaseRepository(Generic[T]):
    """
    Repository over one table of entities of type T.

    Subclasses pass their entity class as ``entity_type``; entities read
    from the store are built with ``entity_type.from_dict``.
    """

    entity_type: Type[T] = TableEntity  # type: ignore[assignment]

    def __init__(
        self,
        logger: logging.Logger,
        storage_account_connection_string: Optional[str],
        table_name: str,
        default_partition_key: str,
        ensure_table_exists: bool,
        entity_type: Optional[Type[T]] = None,
        store: Optional[TableStore] = None,
    ):
        """
        Initialize the repository.

        Args:
            logger: Logger receiving store failures
            storage_account_connection_string: Storage account connection
                string, ignored when ``store`` is given
            table_name: Name of the table
            default_partition_key: Partition used when an operation is not
                given one
            ensure_table_exists: Create the table now if it is missing
            entity_type: Entity class; defaults to the class attribute
            store: Table store to use instead of one built from the
                connection string

        Raises:
            ArgumentAbsentError: If logger or default_partition_key is None,
                or no store is given and the connection string is blank
        """
        if logger is None:
            raise ArgumentAbsentError("logger")
        if default_partition_key is None:
            raise ArgumentAbsentError("default_partition_key")
        if store is None and is_blank(storage_account_connection_string):
            raise ArgumentAbsentError("storage_account_connection_string")

        self.logger = logger
        self.table_name = table_name
        self.default_partition_key = default_partition_key
        if entity_type is not None:
            self.entity_type = entity_type
        self.store = store if store is not None else create_table_store(storage_account_connection_string)

        if ensure_table_exists:
            self.store.create_table_if_not_exists_sync(table_name)

    def _log_error(self, error: Exception) -> None:
        self.logger.error(str(error), exc_info=error, extra={"table": self.table_name})

    async def create_or_update(self, entity: T) -> None:
        """Insert the entity, or replace it wholesale if it exists."""
        try:
            await self.store.upsert_entity(self.table_name, entity.to_dict(), UpdateMode.REPLACE)
        except Exception as e:
            self._log_error(e)
            raise

    async def insert_or_merge(self, entity: T) -> None:
        """Insert the entity, or merge its properties into the existing one."""
        try:
            await self.store.upsert_entity(self.table_name, entity.to_dict(), UpdateMode.MERGE)
        except Exception as e:
            self._log_error(e)
            raise

    async def delete(self, entity: T) -> None:
        """
        Delete the entity stored at the keys of ``entity``.

        Raises:
            EntityNotFoundError: If no entity exists at those keys
        """
        try:
            partition_key = entity.PartitionKey
            row_key = entity.RowKey
            existing = await self.store.get_entity(self.table_name, partition_key, row_key)
            if existing is None:
                raise EntityNotFoundError(partition_key, row_key)

            await self.store.delete_entity(self.table_name, partition_key, row_key)
        except Exception as e:
            self._log_error(e)
            raise

    async def get(self, partition_key: str, row_key: str) -> Optional[T]:
        """
        Get an entity by its keys.

        Returns:
            The entity, or None if it does not exist
        """
        try:
            properties = await self.store.get_entity(self.table_name, partition_key, row_key)
            if properties is None:
                return None
            return self.entity_type.from_dict(properties)
        except Exception as e:
            self._log_error(e)
            raise

    async def get_with_filter(
        self,
        filter_expr: Optional[str],
        partition: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[T]:
        """
        Get entities of a partition matching a filter.

        Args:
            filter_expr: OData filter, blank for the whole partition
            partition: Partition key, blank for the default partition
            cancel_event: Stops the scan between segments when set
        """
        try:
            combined = combine_filters_with_and(filter_expr, self._get_partition_key_filter(partition))
            return await self._execute_query(combined, cancel_event=cancel_event)
        except Exception as e:
            self._log_error(e)
            raise

    async def get_all(
        self,
        partition: Optional[str] = None,
        count: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[T]:
        """
        Get all entities of a partition.

        Args:
            partition: Partition key, blank for the default partition
            count: Maximum number of entities to return
            cancel_event: Stops the scan between segments when set
        """
        try:
            return await self._execute_query(
                self._get_partition_key_filter(partition), count=count, cancel_event=cancel_event
            )
        except Exception as e:
            self._log_error(e)
            raise

    async def get_row_key_filter(
        self,
        row_key: str,
        filter_expr: Optional[str],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[T]:
        """Get entities with the given row key that also match a filter, across partitions."""
        try:
            row_key_filter = generate_filter_condition("RowKey", QueryComparisons.EQUAL, row_key)
            combined = combine_filters_with_and(filter_expr, row_key_filter)
            return await self._execute_query(combined, cancel_event=cancel_event)
        except Exception as e:
            self._log_error(e)
            raise

    async def get_all_less_than_date_time(
        self,
        date_time: datetime,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[T]:
        """Get entities of every partition last modified at or before ``date_time``."""
        try:
            date_filter = generate_filter_condition_for_date(
                "Timestamp", QueryComparisons.LESS_THAN_OR_EQUAL, date_time
            )
            return await self._execute_query(date_filter, cancel_event=cancel_event)
        except Exception as e:
            self._log_error(e)
            raise

    async def get_streams(
        self,
        partition: Optional[str] = None,
        count: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[List[T]]:
        """
        Stream the entities of a partition, one list per store segment.

        Each call starts a new scan. ``count`` caps the size of each
        segment. The stream ends when the store returns no continuation
        token, or when ``cancel_event`` is set between segments.
        """
        partition_filter = self._get_partition_key_filter(partition)
        token = None
        while True:
            try:
                segment = await self.store.query_segment(
                    self.table_name, partition_filter, take=count, continuation_token=token
                )
            except Exception as e:
                self._log_error(e)
                raise

            token = segment.continuation_token
            yield [self.entity_type.from_dict(properties) for properties in segment.entities]

            if token is None or (cancel_event is not None and cancel_event.is_set()):
                break

    async def batch_insert_or_merge(self, entities: Iterable[T]) -> None:
        """
        Insert or merge entities, at most 100 per store transaction.

        Groups are submitted in input order. A failure leaves earlier groups
        committed.
        """
        try:
            for batch in split_into_batches(list(entities)):
                operations = [(TransactionAction.UPSERT_MERGE, entity.to_dict()) for entity in batch]
                await self.store.submit_transaction(self.table_name, operations)
        except Exception as e:
            self._log_error(e)
            raise

    async def batch_delete(self, entities: Iterable[T]) -> None:
        """
        Delete entities, at most 100 per store transaction.

        Groups are submitted in input order. A failure leaves earlier groups
        committed.
        """
        try:
            for batch in split_into_batches(list(entities)):
                operations = [(TransactionAction.DELETE, entity.to_dict()) for entity in batch]
                await self.store.submit_transaction(self.table_name, operations)
        except Exception as e:
            self._log_error(e)
            raise

    def get_row_keys_filter(self, row_keys: Iterable[str]) -> str:
        """Build a filter matching any of the given row keys; blank when there are none."""
        row_keys_filter = ""
        for row_key in row_keys:
            single_row_key_filter = generate_filter_condition("RowKey", QueryComparisons.EQUAL, row_key)
            if is_blank(row_keys_filter):
                row_keys_filter = single_row_key_filter
            else:
                row_keys_filter = combine_filters(row_keys_filter, TableOperators.OR, single_row_key_filter)

        return row_keys_filter

    async def _execute_query(
        self,
        filter_expr: Optional[str],
        count: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[T]:
        """
        Run a segmented query to completion and collect the results.

        Stops after ``count`` entities, when the store returns no
        continuation token, or when ``cancel_event`` is set.
        """
        results: List[T] = []
        token = None

        while True:
            segment = await self.store.query_segment(
                self.table_name, filter_expr, take=count, continuation_token=token
            )
            token = segment.continuation_token
            results.extend(self.entity_type.from_dict(properties) for properties in segment.entities)

            if token is None:
                break
            if cancel_event is not None and cancel_event.is_set():
                break
            if count is not None and len(results) >= count:
                break

        if count is not None:
            return results[:count]
        return results

    def _get_partition_key_filter(self, partition: Optional[str]) -> str:
        partition_key = self.default_partition_key if is_blank(partition) else partition
        return generate_filter_condition("PartitionKey", QueryComparisons.EQUAL, partition_key)
