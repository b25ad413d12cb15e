"""
Tests for the table store factory.
"""

import pytest

from pairup.storage import memory
from pairup.storage.azure_tables import AzureTableStore
from pairup.storage.factory import create_table_store, is_in_memory


class TestCreateTableStore:
    """Test suite for create_table_store."""

    @pytest.mark.parametrize("connection_string", [
        "UseInMemoryStorage=true",
        "useinmemorystorage=TRUE;",
        " UseInMemoryStorage = true ",
    ])
    def test_in_memory_connection_strings(self, connection_string):
        assert is_in_memory(connection_string)
        assert create_table_store(connection_string) is memory.store

    @pytest.mark.parametrize("connection_string", [None, "", "   "])
    def test_missing_connection_string_raises(self, connection_string):
        assert not is_in_memory(connection_string)

        with pytest.raises(ValueError):
            create_table_store(connection_string)

    @pytest.mark.parametrize("connection_string", ["memory", "UseInMemoryStorage=false"])
    def test_other_markers_are_not_in_memory(self, connection_string):
        assert not is_in_memory(connection_string)

    def test_azure_connection_string(self):
        connection_string = "DefaultEndpointsProtocol=https;AccountName=pairup;AccountKey=a2V5"

        store = create_table_store(connection_string)

        assert isinstance(store, AzureTableStore)
        assert store.connection_string == connection_string
