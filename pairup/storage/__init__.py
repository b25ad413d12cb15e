"""
Table storage drivers.

Provides the table store interface, an Azure Table Storage driver and an
in-memory driver with the same semantics.
"""

from pairup.storage.interface import (
    MAX_BATCH_SIZE,
    BatchError,
    QuerySegment,
    StoreError,
    TableNotFoundError,
    TableStore,
    TransactionAction,
    UpdateMode,
)
from pairup.storage.models import TableEntity
from pairup.storage.memory import InMemoryTableStore
from pairup.storage.factory import create_table_store
from pairup.storage.query import ODataFilter, ODataParseError

__all__ = [
    "MAX_BATCH_SIZE",
    "BatchError",
    "QuerySegment",
    "StoreError",
    "TableNotFoundError",
    "TableStore",
    "TransactionAction",
    "UpdateMode",
    "TableEntity",
    "InMemoryTableStore",
    "create_table_store",
    "ODataFilter",
    "ODataParseError",
]
