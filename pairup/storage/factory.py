"""
Table Store Factory

Creates the appropriate table store driver from a connection string.
"""

from typing import Optional

from pairup.storage.interface import TableStore


IN_MEMORY_CONNECTION_STRING = "UseInMemoryStorage=true"


def is_in_memory(connection_string: Optional[str]) -> bool:
    """Tell whether a connection string is the in-memory storage marker."""
    if connection_string is None:
        return False
    normalized = connection_string.strip().rstrip(";").replace(" ", "").lower()
    return normalized == IN_MEMORY_CONNECTION_STRING.lower()


def create_table_store(connection_string: Optional[str]) -> TableStore:
    """
    Factory function to create a table store from a connection string.

    Args:
        connection_string: Azure Storage connection string, or
            ``UseInMemoryStorage=true`` for the process-wide in-memory store

    Returns:
        Table store driver

    Raises:
        ValueError: If the connection string is None or blank

    Example:
        ```python
        store = create_table_store("UseInMemoryStorage=true")
        store.create_table_if_not_exists_sync("UserData")
        ```
    """
    if connection_string is None or not connection_string.strip():
        raise ValueError("Storage account connection string is required")

    if is_in_memory(connection_string):
        from pairup.storage.memory import store
        return store

    from pairup.storage.azure_tables import AzureTableStore
    return AzureTableStore(connection_string)
