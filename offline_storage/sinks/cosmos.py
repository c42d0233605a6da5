"""
Azure Cosmos DB sink.

Replays queued mutations into a Cosmos DB container:
- SET entries are upserted as items
- REMOVE entries delete the item (an already missing item counts as applied)

Item ids are derived from the storage key so that arbitrary keys (which may
contain characters Cosmos DB rejects in ids) map to stable documents.
"""

from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass
from typing import Any

from azure.cosmos import PartitionKey
from azure.cosmos.aio import ContainerProxy, CosmosClient
from azure.cosmos.exceptions import CosmosHttpResponseError, CosmosResourceNotFoundError

from ..exceptions import StorageConnectionError, ValidationError
from ..logging_utils import get_storage_logger
from ..sync.queue import OperationKind, QueueEntry

logger = get_storage_logger("sinks.cosmos")

PARTITION_KEY_PATH = "/id"


@dataclass
class CosmosSinkConfig:
    """Configuration for the Cosmos DB sink.

    Attributes:
        endpoint: Cosmos DB account endpoint URL
        key: Cosmos DB account key
        database_name: Database holding the container
        container_name: Container receiving replayed items
    """

    endpoint: str
    key: str
    database_name: str = "offline-storage"
    container_name: str = "items"

    @classmethod
    def from_env(cls) -> CosmosSinkConfig:
        """Create config from environment variables.

        Expected environment variables:
        - OFFLINE_STORAGE_COSMOS_ENDPOINT: Cosmos DB account endpoint
        - OFFLINE_STORAGE_COSMOS_KEY: Cosmos DB account key
        - OFFLINE_STORAGE_COSMOS_DATABASE: Database name (optional)
        - OFFLINE_STORAGE_COSMOS_CONTAINER: Container name (optional)

        Raises:
            ValidationError: If required environment variables are missing
        """
        endpoint = os.environ.get("OFFLINE_STORAGE_COSMOS_ENDPOINT")
        key = os.environ.get("OFFLINE_STORAGE_COSMOS_KEY")

        if not endpoint:
            raise ValidationError("OFFLINE_STORAGE_COSMOS_ENDPOINT", "environment variable not set")
        if not key:
            raise ValidationError("OFFLINE_STORAGE_COSMOS_KEY", "environment variable not set")

        return cls(
            endpoint=endpoint,
            key=key,
            database_name=os.environ.get("OFFLINE_STORAGE_COSMOS_DATABASE", "offline-storage"),
            container_name=os.environ.get("OFFLINE_STORAGE_COSMOS_CONTAINER", "items"),
        )


def item_id(key: str) -> str:
    """Stable Cosmos DB item id for a storage key."""
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


class CosmosSink:
    """Sink applying queued entries to a Cosmos DB container."""

    def __init__(self, container: ContainerProxy, client: CosmosClient | None = None):
        """Initialize the sink.

        Args:
            container: Target container
            client: Owning client, closed by close() when given
        """
        self.container = container
        self._client = client

    @classmethod
    async def create(cls, config: CosmosSinkConfig | None = None) -> CosmosSink:
        """Connect and ensure the database and container exist.

        Raises:
            StorageConnectionError: If the account cannot be reached
        """
        if config is None:
            config = CosmosSinkConfig.from_env()

        client = CosmosClient(config.endpoint, credential=config.key)
        try:
            database = await client.create_database_if_not_exists(id=config.database_name)
            container = await database.create_container_if_not_exists(
                id=config.container_name,
                partition_key=PartitionKey(path=PARTITION_KEY_PATH),
            )
        except CosmosHttpResponseError as e:
            await client.close()
            raise StorageConnectionError(config.endpoint, e) from e

        logger.info(
            "Cosmos sink ready (database=%s, container=%s)",
            config.database_name,
            config.container_name,
        )
        return cls(container, client)

    async def apply(self, entry: QueueEntry) -> None:
        doc_id = item_id(entry.key)

        if entry.operation is OperationKind.REMOVE:
            try:
                await self.container.delete_item(item=doc_id, partition_key=doc_id)
            except CosmosResourceNotFoundError:
                logger.debug("Item for key %s already absent", entry.key)
            return

        body: dict[str, Any] = {
            "id": doc_id,
            "key": entry.key,
            "value": entry.value,
            "enqueuedAt": entry.enqueued_at,
        }
        await self.container.upsert_item(body=body)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def __aenter__(self) -> CosmosSink:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
