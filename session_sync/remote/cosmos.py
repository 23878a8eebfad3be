"""
Cosmos DB remote session store.

Stores one item per session in a single container partitioned by user:

    {
        "id": "{session_id}",
        "userId": "{user_id}",          // partition key
        "sessionId": "{session_id}",
        "caseId": "...",
        "score": 85.0 | null,
        "isCompleted": true,
        "evaluationStatus": "completed",
        "messageCount": 5,
        "historyBlob": "{...}",
        "blobVersion": "1.4.0",
        "deviceId": "...",
        "_ts": 1760000000               // assigned by Cosmos on every write
    }

The server-assigned "_ts" (epoch seconds) is exposed as serverUpdatedAt.
The client never writes a timestamp used for ordering.

Supports multiple authentication methods:
- Key-based authentication
- Azure AD via DefaultAzureCredential (recommended)
- Azure Managed Identity
- Service Principal
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any

from azure.core.exceptions import ServiceRequestError, ServiceResponseError
from azure.cosmos import PartitionKey
from azure.cosmos.aio import ContainerProxy, CosmosClient
from azure.cosmos.exceptions import CosmosHttpResponseError, CosmosResourceNotFoundError

from ..exceptions import (
    AuthenticationError,
    RemoteStoreError,
    StorageConnectionError,
    TransientStoreError,
)
from ..records import RemoteSessionRecord
from .base import RemoteSessionStore

logger = logging.getLogger(__name__)

PARTITION_KEY_PATH = "/userId"

# Throttling, timeouts and server-side failures are worth retrying
TRANSIENT_STATUS_CODES = {408, 429, 449}

LIST_QUERY = "SELECT * FROM c WHERE c.userId = @user_id ORDER BY c._ts DESC"


class CosmosAuthMethod(Enum):
    """Authentication method for Cosmos DB.

    KEY: Use account key
    DEFAULT_CREDENTIAL: Use Azure DefaultAzureCredential (recommended)
    MANAGED_IDENTITY: Use Azure Managed Identity explicitly
    SERVICE_PRINCIPAL: Use Service Principal with client_id/client_secret
    """

    KEY = "key"
    DEFAULT_CREDENTIAL = "default_credential"
    MANAGED_IDENTITY = "managed_identity"
    SERVICE_PRINCIPAL = "service_principal"


@dataclass
class CosmosConfig:
    """Configuration for the Cosmos DB session store.

    Environment Variables:
        SESSION_SYNC_COSMOS_ENDPOINT: Cosmos DB endpoint URL
        SESSION_SYNC_COSMOS_KEY: Account key (KEY auth only)
        SESSION_SYNC_COSMOS_DATABASE: Database name (default: session_sync)
        SESSION_SYNC_COSMOS_CONTAINER: Container name (default: sessions)
        SESSION_SYNC_COSMOS_AUTH_METHOD: Auth method (default: default_credential)
        AZURE_TENANT_ID / AZURE_CLIENT_ID / AZURE_CLIENT_SECRET: Service principal
    """

    endpoint: str
    database_name: str = "session_sync"
    container_name: str = "sessions"
    auth_method: CosmosAuthMethod = CosmosAuthMethod.DEFAULT_CREDENTIAL
    key: str | None = None
    azure_tenant_id: str | None = None
    azure_client_id: str | None = None
    azure_client_secret: str | None = None

    @classmethod
    def from_environment(cls) -> CosmosConfig:
        """Create config from environment variables.

        Raises:
            AuthenticationError: If the endpoint is not configured
        """
        endpoint = os.environ.get("SESSION_SYNC_COSMOS_ENDPOINT")
        if not endpoint:
            raise AuthenticationError(
                "cosmos", "SESSION_SYNC_COSMOS_ENDPOINT environment variable not set"
            )

        auth_method_str = os.environ.get("SESSION_SYNC_COSMOS_AUTH_METHOD", "default_credential")
        try:
            auth_method = CosmosAuthMethod(auth_method_str.lower())
        except ValueError:
            auth_method = CosmosAuthMethod.DEFAULT_CREDENTIAL

        return cls(
            endpoint=endpoint,
            database_name=os.environ.get("SESSION_SYNC_COSMOS_DATABASE", "session_sync"),
            container_name=os.environ.get("SESSION_SYNC_COSMOS_CONTAINER", "sessions"),
            auth_method=auth_method,
            key=os.environ.get("SESSION_SYNC_COSMOS_KEY"),
            azure_tenant_id=os.environ.get("AZURE_TENANT_ID"),
            azure_client_id=os.environ.get("AZURE_CLIENT_ID"),
            azure_client_secret=os.environ.get("AZURE_CLIENT_SECRET"),
        )


def _get_credential(config: CosmosConfig) -> Any:
    """Get the appropriate credential based on auth method.

    Raises:
        AuthenticationError: If credential cannot be created
    """
    auth_method = config.auth_method

    if auth_method == CosmosAuthMethod.KEY:
        if not config.key:
            raise AuthenticationError(config.endpoint, "key required for KEY authentication")
        return config.key

    if auth_method == CosmosAuthMethod.DEFAULT_CREDENTIAL:
        from azure.identity.aio import DefaultAzureCredential

        return DefaultAzureCredential()

    if auth_method == CosmosAuthMethod.MANAGED_IDENTITY:
        from azure.identity.aio import ManagedIdentityCredential

        # If client_id is provided, use user-assigned managed identity
        if config.azure_client_id:
            return ManagedIdentityCredential(client_id=config.azure_client_id)
        return ManagedIdentityCredential()

    if auth_method == CosmosAuthMethod.SERVICE_PRINCIPAL:
        if not all([config.azure_tenant_id, config.azure_client_id, config.azure_client_secret]):
            raise AuthenticationError(
                config.endpoint,
                "azure_tenant_id, azure_client_id, and azure_client_secret "
                "required for SERVICE_PRINCIPAL authentication",
            )
        from azure.identity.aio import ClientSecretCredential

        return ClientSecretCredential(
            tenant_id=config.azure_tenant_id,
            client_id=config.azure_client_id,
            client_secret=config.azure_client_secret,
        )

    raise AuthenticationError(config.endpoint, f"Unsupported auth method: {auth_method}")


def translate_error(operation: str, endpoint: str, error: Exception) -> Exception:
    """Map a Cosmos / transport exception onto the library's taxonomy."""
    if isinstance(error, CosmosHttpResponseError):
        status = error.status_code or 0
        if status in (401, 403):
            return AuthenticationError(endpoint, str(error))
        if status in TRANSIENT_STATUS_CODES or status >= 500:
            return TransientStoreError(operation, error)
        return RemoteStoreError(operation, error)
    transport_errors = (ServiceRequestError, ServiceResponseError, asyncio.TimeoutError, OSError)
    if isinstance(error, transport_errors):
        return TransientStoreError(operation, error)
    return RemoteStoreError(operation, error)


class CosmosSessionStore(RemoteSessionStore):
    """RemoteSessionStore backed by an Azure Cosmos DB container.

    The client is created lazily on first use. A failed initialization is
    retried on the next operation.
    """

    def __init__(self, config: CosmosConfig, container: ContainerProxy | None = None):
        """Initialize the store.

        Args:
            config: Cosmos DB configuration
            container: Pre-built container proxy (skips client creation)
        """
        self.config = config
        self._credential: Any = None
        self._client: CosmosClient | None = None
        self._container: ContainerProxy | None = container
        self._init_lock = asyncio.Lock()

    async def _ensure_initialized(self) -> ContainerProxy:
        """Ensure client and container are initialized."""
        if self._container is not None:
            return self._container

        async with self._init_lock:
            if self._container is not None:
                return self._container

            self._credential = _get_credential(self.config)
            try:
                client = CosmosClient(self.config.endpoint, credential=self._credential)
                self._client = client
                database = await client.create_database_if_not_exists(
                    id=self.config.database_name
                )
                self._container = await database.create_container_if_not_exists(
                    id=self.config.container_name,
                    partition_key=PartitionKey(path=PARTITION_KEY_PATH),
                )
            except CosmosHttpResponseError as e:
                await self._reset()
                if e.status_code in (401, 403):
                    raise AuthenticationError(self.config.endpoint, str(e)) from e
                raise StorageConnectionError(self.config.endpoint, e) from e
            except (ServiceRequestError, ServiceResponseError, OSError) as e:
                await self._reset()
                raise StorageConnectionError(self.config.endpoint, e) from e

            logger.info(
                f"Connected to Cosmos DB: {self.config.endpoint} "
                f"(database={self.config.database_name}, "
                f"container={self.config.container_name}, "
                f"auth={self.config.auth_method.value})"
            )
            return self._container

    async def upsert_record(self, user_id: str, record: RemoteSessionRecord) -> None:
        container = await self._ensure_initialized()
        try:
            await container.upsert_item(body=record.to_document(user_id))
        except Exception as e:
            raise translate_error("upsert_record", self.config.endpoint, e) from e

    async def query_documents(self, user_id: str) -> list[dict[str, Any]]:
        container = await self._ensure_initialized()
        items: list[dict[str, Any]] = []
        try:
            async for item in container.query_items(
                query=LIST_QUERY,
                parameters=[{"name": "@user_id", "value": user_id}],
                partition_key=user_id,
            ):
                items.append(item)
        except Exception as e:
            raise translate_error("query_documents", self.config.endpoint, e) from e
        return [_expose_server_timestamp(item) for item in items]

    async def get_document(self, user_id: str, session_id: str) -> dict[str, Any] | None:
        container = await self._ensure_initialized()
        try:
            item = await container.read_item(item=session_id, partition_key=user_id)
        except CosmosResourceNotFoundError:
            return None
        except Exception as e:
            raise translate_error("get_document", self.config.endpoint, e) from e
        return _expose_server_timestamp(item)

    async def delete_record(self, user_id: str, session_id: str) -> bool:
        container = await self._ensure_initialized()
        try:
            await container.delete_item(item=session_id, partition_key=user_id)
        except CosmosResourceNotFoundError:
            return False
        except Exception as e:
            raise translate_error("delete_record", self.config.endpoint, e) from e
        return True

    async def close(self) -> None:
        await self._reset()

    async def _reset(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
            self._container = None
        if self._credential is not None and hasattr(self._credential, "close"):
            await self._credential.close()
        self._credential = None


def _expose_server_timestamp(item: dict[str, Any]) -> dict[str, Any]:
    """Copy an item, exposing Cosmos "_ts" as serverUpdatedAt.

    The value is passed through unparsed; a malformed one fails only its own
    record in RemoteSessionRecord.from_document.
    """
    doc = {k: v for k, v in item.items() if not k.startswith("_")}
    doc["serverUpdatedAt"] = item.get("_ts")
    return doc
