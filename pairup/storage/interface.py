"""
Table Store Interface

Defines the abstract interface all table store drivers must implement.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple


# Azure entity group transactions accept at most this many operations.
MAX_BATCH_SIZE = 100


class UpdateMode(str, Enum):
    """How an upsert treats an existing entity."""

    REPLACE = "replace"
    MERGE = "merge"


class TransactionAction(str, Enum):
    """Operations allowed inside an entity group transaction."""

    UPSERT_REPLACE = "upsert-replace"
    UPSERT_MERGE = "upsert-merge"
    DELETE = "delete"


# (action, entity properties)
TransactionOperation = Tuple[TransactionAction, Dict[str, Any]]


@dataclass
class QuerySegment:
    """
    One page of a segmented query.

    Attributes:
        entities: Entity property dictionaries in this page
        continuation_token: Opaque cursor for the next page, None when the
            scan is complete
    """

    entities: List[Dict[str, Any]] = field(default_factory=list)
    continuation_token: Optional[Any] = None


class StoreError(Exception):
    """Base exception for table store failures."""


class TableNotFoundError(StoreError):
    """Raised when a table is not found."""


class BatchError(StoreError):
    """Raised when an entity group transaction is rejected."""


class TableStore(ABC):
    """
    Abstract base class for table store drivers.

    A driver exposes the partition/row keyed operations of Azure Table
    Storage: table creation, single entity CRUD, segmented queries and
    entity group transactions. Entities cross this boundary as plain
    property dictionaries; ``Timestamp`` is a timezone-aware datetime.

    **Error Handling**:
    Drivers raise their native errors and never log them; the repository
    layer logs and re-raises.
    """

    @abstractmethod
    def create_table_if_not_exists_sync(self, table_name: str) -> None:
        """
        Create a table if it is missing, blocking until done.

        Used while a repository is being constructed, where no event loop
        can be awaited.
        """

    @abstractmethod
    async def create_table_if_not_exists(self, table_name: str) -> None:
        """Create a table if it is missing."""

    @abstractmethod
    async def upsert_entity(
        self,
        table_name: str,
        properties: Dict[str, Any],
        mode: UpdateMode = UpdateMode.MERGE,
    ) -> None:
        """
        Insert an entity, or update it if it exists.

        Args:
            table_name: Name of the table
            properties: Entity properties including PartitionKey and RowKey
            mode: REPLACE overwrites all properties, MERGE updates only the
                supplied ones
        """

    @abstractmethod
    async def get_entity(
        self, table_name: str, partition_key: str, row_key: str
    ) -> Optional[Dict[str, Any]]:
        """
        Get an entity by its keys.

        Returns:
            Entity properties, or None if no entity exists at those keys
        """

    @abstractmethod
    async def delete_entity(
        self, table_name: str, partition_key: str, row_key: str
    ) -> None:
        """Delete an entity by its keys."""

    @abstractmethod
    async def query_segment(
        self,
        table_name: str,
        filter_expr: Optional[str] = None,
        take: Optional[int] = None,
        continuation_token: Optional[Any] = None,
    ) -> QuerySegment:
        """
        Execute a single page-bounded query.

        Args:
            table_name: Name of the table
            filter_expr: OData $filter expression, None or blank for all
            take: Maximum number of entities in the page
            continuation_token: Token returned by the previous segment

        Returns:
            QuerySegment with the page and the next token
        """

    @abstractmethod
    async def submit_transaction(
        self, table_name: str, operations: Sequence[TransactionOperation]
    ) -> None:
        """
        Execute an entity group transaction.

        All operations must target the same partition and there may be at
        most MAX_BATCH_SIZE of them.

        Raises:
            BatchError: If the transaction is rejected
        """

    async def close(self) -> None:
        """Release connections held by the driver."""
