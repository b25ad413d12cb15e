"""
Azure Table Storage driver.

Delegates every operation to the ``azure-data-tables`` async client. The
blocking client is only used to create tables while a repository is being
constructed.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError
from azure.data.tables import EntityProperty
from azure.data.tables import TableServiceClient as SyncTableServiceClient
from azure.data.tables import UpdateMode as AzureUpdateMode
from azure.data.tables.aio import TableClient, TableServiceClient

from pairup.storage.interface import (
    QuerySegment,
    TableStore,
    TransactionAction,
    TransactionOperation,
    UpdateMode,
)
from pairup.storage.models import SYSTEM_PROPERTIES

logger = logging.getLogger(__name__)


_UPDATE_MODES = {
    UpdateMode.REPLACE: AzureUpdateMode.REPLACE,
    UpdateMode.MERGE: AzureUpdateMode.MERGE,
}


class AzureTableStore(TableStore):
    """Table store backed by an Azure Storage account."""

    def __init__(self, connection_string: str):
        """
        Initialize the driver.

        Args:
            connection_string: Azure Storage account connection string
        """
        self.connection_string = connection_string
        self._service: Optional[TableServiceClient] = None
        self._clients: Dict[str, TableClient] = {}

    def create_table_if_not_exists_sync(self, table_name: str) -> None:
        with SyncTableServiceClient.from_connection_string(conn_str=self.connection_string) as service:
            service.create_table_if_not_exists(table_name=table_name)
        logger.info(f"Ensured table '{table_name}' exists")

    async def create_table_if_not_exists(self, table_name: str) -> None:
        try:
            await self._get_client(table_name).create_table()
        except ResourceExistsError:
            pass

    async def upsert_entity(
        self,
        table_name: str,
        properties: Dict[str, Any],
        mode: UpdateMode = UpdateMode.MERGE,
    ) -> None:
        await self._get_client(table_name).upsert_entity(
            entity=self._to_azure(properties), mode=_UPDATE_MODES[mode]
        )

    async def get_entity(
        self, table_name: str, partition_key: str, row_key: str
    ) -> Optional[Dict[str, Any]]:
        try:
            entity = await self._get_client(table_name).get_entity(
                partition_key=partition_key, row_key=row_key
            )
        except ResourceNotFoundError:
            return None
        return self._from_azure(entity)

    async def delete_entity(
        self, table_name: str, partition_key: str, row_key: str
    ) -> None:
        await self._get_client(table_name).delete_entity(
            partition_key=partition_key, row_key=row_key
        )

    async def query_segment(
        self,
        table_name: str,
        filter_expr: Optional[str] = None,
        take: Optional[int] = None,
        continuation_token: Optional[Any] = None,
    ) -> QuerySegment:
        client = self._get_client(table_name)
        if filter_expr and filter_expr.strip():
            paged = client.query_entities(query_filter=filter_expr, results_per_page=take)
        else:
            paged = client.list_entities(results_per_page=take)

        pages = paged.by_page(continuation_token=continuation_token)
        entities: List[Dict[str, Any]] = []
        try:
            page = await pages.__anext__()
        except StopAsyncIteration:
            return QuerySegment(entities=entities, continuation_token=None)

        async for entity in page:
            entities.append(self._from_azure(entity))

        return QuerySegment(entities=entities, continuation_token=pages.continuation_token or None)

    async def submit_transaction(
        self, table_name: str, operations: Sequence[TransactionOperation]
    ) -> None:
        batch = []
        for action, properties in operations:
            entity = self._to_azure(properties)
            if action == TransactionAction.DELETE:
                batch.append(("delete", entity))
            elif action == TransactionAction.UPSERT_REPLACE:
                batch.append(("upsert", entity, {"mode": AzureUpdateMode.REPLACE}))
            else:
                batch.append(("upsert", entity, {"mode": AzureUpdateMode.MERGE}))

        await self._get_client(table_name).submit_transaction(batch)

    async def close(self) -> None:
        for client in self._clients.values():
            await client.close()
        self._clients.clear()
        if self._service is not None:
            await self._service.close()
            self._service = None

    def _get_client(self, table_name: str) -> TableClient:
        client = self._clients.get(table_name)
        if client is None:
            if self._service is None:
                self._service = TableServiceClient.from_connection_string(conn_str=self.connection_string)
            client = self._service.get_table_client(table_name=table_name)
            self._clients[table_name] = client
        return client

    @staticmethod
    def _to_azure(properties: Dict[str, Any]) -> Dict[str, Any]:
        """Drop store-assigned properties before a write."""
        entity = {k: v for k, v in properties.items() if k not in SYSTEM_PROPERTIES}
        entity["PartitionKey"] = properties["PartitionKey"]
        entity["RowKey"] = properties["RowKey"]
        return entity

    @staticmethod
    def _from_azure(entity: Any) -> Dict[str, Any]:
        """Flatten an Azure TableEntity into a property dictionary."""
        properties: Dict[str, Any] = {}
        for key, value in entity.items():
            # Int64 and other non-native EDM types come back wrapped
            if isinstance(value, EntityProperty):
                value = value.value
            properties[key] = value

        metadata = getattr(entity, "metadata", None) or {}
        if metadata.get("timestamp") is not None:
            properties["Timestamp"] = metadata["timestamp"]
        if metadata.get("etag"):
            properties["etag"] = metadata["etag"]
        return properties
