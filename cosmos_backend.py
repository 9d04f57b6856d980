"""
Azure Cosmos DB Record Store.

Implements the RecordStore contract over Cosmos DB containers (one container
per logical table, see shared/cosmos_config.py). The synchronous Cosmos SDK is
driven from worker threads so the event loop never blocks, and every call is
bounded by the configured timeout.

When no endpoint is configured, UnconfiguredRecordStore answers every call
with a NOT_CONFIGURED error so the application runs in degraded/demo mode.
"""

import asyncio
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from azure.core.exceptions import ServiceRequestError
from azure.cosmos import CosmosClient
from azure.cosmos.exceptions import CosmosHttpResponseError, CosmosResourceNotFoundError
from azure.identity import DefaultAzureCredential

from core.data import (
    BackendError,
    BackendResult,
    ErrorKind,
    IdentityProvider,
    QueryOptions,
    RecordStore,
    classify_error,
    not_configured_error,
    with_timeout,
)
from core.roles import DEFAULT_ROLE, Role
from shared.cosmos_config import (
    ASSIGN_DEFAULT_PATIENT_ROLE,
    CREATE_SUPER_ADMIN,
    TABLES,
    get_container_name,
    is_cosmos_configured,
)

logger = logging.getLogger(__name__)

FIELD_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _field(name: str) -> str:
    """Quote-free field reference; rejects anything that is not an identifier."""
    if not FIELD_PATTERN.match(name or ""):
        raise ValueError(f"Invalid field name: {name!r}")
    return f"c.{name}"


def build_query(
    options: Optional[QueryOptions] = None,
    count: bool = False,
) -> Tuple[str, List[Dict[str, Any]]]:
    """
    Build a parameterized Cosmos SQL query from QueryOptions.

    A list filter value becomes an ARRAY_CONTAINS membership test.
    """
    options = options or QueryOptions()
    params: List[Dict[str, Any]] = []

    if count:
        projection = "VALUE COUNT(1)"
    elif options.columns:
        projection = ", ".join(_field(column) for column in options.columns)
    else:
        projection = "*"

    conditions = []
    for index, (name, value) in enumerate(options.filters.items()):
        param = f"@p{index}"
        if isinstance(value, (list, tuple, set)):
            conditions.append(f"ARRAY_CONTAINS({param}, {_field(name)})")
            value = list(value)
        else:
            conditions.append(f"{_field(name)} = {param}")
        params.append({"name": param, "value": value})

    query = f"SELECT {projection} FROM c"
    if conditions:
        query += " WHERE " + " AND ".join(conditions)
    if not count and options.order_by:
        query += f" ORDER BY {_field(options.order_by)} {'DESC' if options.order_desc else 'ASC'}"
    if not count and options.limit is not None:
        query += " OFFSET @offset LIMIT @limit"
        params.append({"name": "@offset", "value": max(0, options.offset)})
        params.append({"name": "@limit", "value": options.limit})
    return query, params


def _translate(error: Exception) -> BackendError:
    """Map Cosmos SDK exceptions onto BackendError."""
    if isinstance(error, CosmosResourceNotFoundError):
        # Queries and writes only hit NotFound when the container is missing
        return BackendError(ErrorKind.SCHEMA_MISSING, f"Container not found: {error.message}", code="404")
    if isinstance(error, CosmosHttpResponseError):
        kind = classify_error(status=error.status_code)
        return BackendError(kind, error.message or str(error), code=str(error.status_code))
    if isinstance(error, ServiceRequestError):
        return BackendError(ErrorKind.UNAVAILABLE, f"Cosmos DB unreachable: {error}")
    return BackendError(ErrorKind.UNKNOWN, str(error))


class CosmosRecordStore(RecordStore):
    """RecordStore backed by Azure Cosmos DB."""

    def __init__(
        self,
        endpoint: str,
        database_name: str,
        key: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        """
        Initialize the Cosmos DB client.

        Args:
            endpoint: Cosmos DB endpoint URL
            database_name: Database name
            key: Account key; DefaultAzureCredential is used when empty
            timeout_seconds: Upper bound for each call
        """
        logger.info("Initializing Cosmos DB record store...")
        if key:
            self._credential = key
        else:
            self._credential = DefaultAzureCredential(
                exclude_interactive_browser_credential=False,
                exclude_shared_token_cache_credential=False,
            )
        self._client = CosmosClient(endpoint, credential=self._credential)
        self._database = self._client.get_database_client(database_name)
        self._containers = {}
        self._timeout = timeout_seconds
        self._functions: Dict[str, Callable[[Dict[str, Any]], Any]] = {
            ASSIGN_DEFAULT_PATIENT_ROLE: self._assign_default_patient_role,
            CREATE_SUPER_ADMIN: self._create_super_admin,
        }
        logger.info(f"Connected to Cosmos DB: {database_name}")

    def _get_container(self, table: str):
        """Get a container client, caching for reuse."""
        if table not in self._containers:
            self._containers[table] = self._database.get_container_client(get_container_name(table))
        return self._containers[table]

    @staticmethod
    def _partition_value(table: str, record: Dict[str, Any]):
        _, path = TABLES.get(table, (table, "/id"))
        return record.get(path.lstrip("/"))

    async def _run(self, operation: str, func: Callable, *args) -> BackendResult:
        async def call():
            try:
                return BackendResult.success(await asyncio.to_thread(func, *args))
            except (CosmosHttpResponseError, ServiceRequestError) as e:
                error = _translate(e)
                logger.debug(f"{operation} failed: {error!r}")
                return BackendResult.failure(error)
            except BackendError as e:
                return BackendResult.failure(e)

        return await with_timeout(call(), self._timeout, operation)

    # =========================================================================
    # SYNCHRONOUS SDK CALLS (run in worker threads)
    # =========================================================================

    def _query(self, table: str, options: Optional[QueryOptions] = None, count: bool = False) -> List[Any]:
        query, params = build_query(options, count=count)
        container = self._get_container(table)
        return list(container.query_items(query, parameters=params, enable_cross_partition_query=True))

    def _upsert_sync(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        body = dict(record)
        body.setdefault("id", str(uuid.uuid4()))
        return self._get_container(table).upsert_item(body)

    def _insert_sync(self, table: str, records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        container = self._get_container(table)
        created = []
        for record in records:
            body = dict(record)
            body.setdefault("id", str(uuid.uuid4()))
            created.append(container.create_item(body))
        return created

    def _update_sync(self, table: str, values: Dict[str, Any], filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        container = self._get_container(table)
        updated = []
        for row in self._query(table, QueryOptions(filters=filters)):
            row.update(values)
            updated.append(container.replace_item(item=row["id"], body=row))
        return updated

    def _delete_sync(self, table: str, filters: Dict[str, Any]) -> int:
        container = self._get_container(table)
        removed = 0
        for row in self._query(table, QueryOptions(filters=filters)):
            try:
                container.delete_item(item=row["id"], partition_key=self._partition_value(table, row))
                removed += 1
            except CosmosResourceNotFoundError:
                # Already gone
                continue
        return removed

    def _count_sync(self, table: str, filters: Optional[Dict[str, Any]]) -> int:
        rows = self._query(table, QueryOptions(filters=filters or {}), count=True)
        return int(rows[0]) if rows else 0

    # =========================================================================
    # PRIVILEGED FUNCTIONS
    # =========================================================================

    def _assign_default_patient_role(self, params: Dict[str, Any]) -> bool:
        user_id = params.get("p_user_id")
        if not user_id:
            raise BackendError(ErrorKind.UNKNOWN, "p_user_id is required")
        existing = self._query("user_roles", QueryOptions(filters={"user_id": user_id}, columns=["role"]))
        if existing:
            return False
        self._upsert_sync("user_roles", {
            "id": f"{user_id}:{DEFAULT_ROLE}",
            "user_id": user_id,
            "role": DEFAULT_ROLE,
            "created_at": datetime.now(timezone.utc).isoformat(),
        })
        return True

    def _create_super_admin(self, params: Dict[str, Any]) -> bool:
        """Promote a user; only allowed while no super admin exists."""
        user_id = params.get("admin_user_id")
        if not user_id:
            raise BackendError(ErrorKind.UNKNOWN, "admin_user_id is required")
        admins = self._query(
            "user_roles", QueryOptions(filters={"role": Role.SUPER_ADMIN.value}, columns=["user_id"])
        )
        if admins:
            raise BackendError(ErrorKind.PERMISSION, "A super admin already exists")

        now = datetime.now(timezone.utc).isoformat()
        self._upsert_sync("users", {
            "id": user_id,
            "email": params.get("admin_email", ""),
            "full_name": params.get("admin_name", ""),
            "created_at": now,
            "updated_at": now,
        })
        self._upsert_sync("user_roles", {
            "id": f"{user_id}:{Role.SUPER_ADMIN.value}",
            "user_id": user_id,
            "role": Role.SUPER_ADMIN.value,
            "created_at": now,
        })
        return True

    # =========================================================================
    # RecordStore INTERFACE
    # =========================================================================

    async def upsert(self, table, record):
        return await self._run(f"{table} upsert", self._upsert_sync, table, record)

    async def select(self, table, options=None):
        return await self._run(f"{table} select", self._query, table, options)

    async def insert(self, table, records):
        return await self._run(f"{table} insert", self._insert_sync, table, records)

    async def update(self, table, values, filters):
        return await self._run(f"{table} update", self._update_sync, table, values, filters)

    async def delete(self, table, filters):
        return await self._run(f"{table} delete", self._delete_sync, table, filters)

    async def count(self, table, filters=None):
        return await self._run(f"{table} count", self._count_sync, table, filters)

    async def call(self, function, params):
        handler = self._functions.get(function)
        if handler is None:
            return BackendResult.failure(
                BackendError(ErrorKind.NOT_FOUND, f"Function {function} is not available")
            )
        return await self._run(function, handler, params)


class UnconfiguredRecordStore(RecordStore):
    """Stand-in used while no backend is configured; every call reports it."""

    @property
    def is_configured(self) -> bool:
        return False

    async def upsert(self, table, record):
        return BackendResult.failure(not_configured_error(f"{table} upsert"))

    async def select(self, table, options=None):
        return BackendResult.failure(not_configured_error(f"{table} select"))

    async def insert(self, table, records):
        return BackendResult.failure(not_configured_error(f"{table} insert"))

    async def update(self, table, values, filters):
        return BackendResult.failure(not_configured_error(f"{table} update"))

    async def delete(self, table, filters):
        return BackendResult.failure(not_configured_error(f"{table} delete"))

    async def count(self, table, filters=None):
        return BackendResult.failure(not_configured_error(f"{table} count"))

    async def call(self, function, params):
        return BackendResult.failure(not_configured_error(function))


def create_backend(config) -> Tuple[RecordStore, IdentityProvider]:
    """
    Build the record store and identity provider for the given settings.

    Falls back to the unconfigured stand-ins when no endpoint is set, so the
    application still starts in demo mode.
    """
    from auth import CosmosIdentityProvider, UnconfiguredIdentityProvider

    if not is_cosmos_configured(config.cosmos_endpoint):
        logger.warning("Cosmos DB endpoint not configured; running without a backend")
        return UnconfiguredRecordStore(), UnconfiguredIdentityProvider()

    store = CosmosRecordStore(
        config.cosmos_endpoint,
        config.cosmos_database,
        key=config.cosmos_key or None,
        timeout_seconds=config.backend_timeout_seconds,
    )
    return store, CosmosIdentityProvider(store)
