"""
Cosmos DB Setup Script for the Wanterio portal.

Creates the database and every application container, then seeds the
medicine catalog with sample data.

Usage:
    python scripts/populate_cosmosdb.py

Environment:
    COSMOS_ENDPOINT - Cosmos DB account endpoint (required)
    COSMOS_DATABASE - Override the default database name
    COSMOS_KEY      - Account key; Azure CLI credentials are used when empty

Containers:
    - Portal_Users             (partition: /id)
    - Portal_UserRoles         (partition: /user_id)
    - Portal_Medicines         (partition: /id)       seeded with sample data
    - Portal_Orders            (partition: /id)
    - Portal_OrderItems        (partition: /order_id)
    - Portal_Appointments      (partition: /id)
    - Portal_AmbulanceRequests (partition: /id)
    - Portal_Carts             (partition: /id)
    - Portal_Credentials       (partition: /email)
"""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from azure.cosmos import CosmosClient, PartitionKey
from azure.cosmos.exceptions import CosmosHttpResponseError
from azure.identity import AzureCliCredential

from shared.cosmos_config import (
    COSMOS_ENDPOINT,
    COSMOS_KEY,
    DATABASE_NAME,
    TABLES,
    is_cosmos_configured,
)

from data.sample.pharmacy_data import IMAGE_URL, MEDICINES

# Configure logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


# =============================================================================
# DATA PREPARATION
# =============================================================================

def prepare_medicines() -> List[Dict[str, Any]]:
    """Prepare medicines for Cosmos DB (timestamps and image defaults)."""
    now = datetime.now(timezone.utc).isoformat()
    items = []
    for m in MEDICINES:
        item = m.copy()
        item.setdefault("image_url", IMAGE_URL)
        item.setdefault("created_at", now)
        item["updated_at"] = now
        items.append(item)
    return items


# =============================================================================
# COSMOS DB OPERATIONS
# =============================================================================

def ensure_containers(database) -> int:
    """Create any missing container; returns how many exist afterwards."""
    ready = 0
    for table, (container_name, partition_key) in TABLES.items():
        try:
            database.create_container_if_not_exists(
                id=container_name,
                partition_key=PartitionKey(path=partition_key),
            )
            logger.info(f"  {container_name} (partition: {partition_key}) for '{table}'")
            ready += 1
        except CosmosHttpResponseError as e:
            logger.error(f"Failed to create container {container_name}: {e.message}")
    return ready


def upsert_items(container, items: List[Dict[str, Any]]) -> int:
    """Upsert items into a container."""
    count = 0
    for item in items:
        try:
            container.upsert_item(item)
            count += 1
        except CosmosHttpResponseError as e:
            logger.error(f"Failed to upsert item {item.get('id')}: {e.message}")
    return count


def main() -> int:
    """Create the schema and seed the medicine catalog."""
    logger.info("=" * 60)
    logger.info("Wanterio - Cosmos DB Setup Script")
    logger.info("=" * 60)

    if not is_cosmos_configured(COSMOS_ENDPOINT):
        logger.error("COSMOS_ENDPOINT is not set; nothing to populate")
        return 1

    logger.info(f"Endpoint: {COSMOS_ENDPOINT}")
    logger.info(f"Database: {DATABASE_NAME}")
    logger.info(f"Authentication: {'account key' if COSMOS_KEY else 'AzureCliCredential'}")
    logger.info("=" * 60)

    credential = COSMOS_KEY or AzureCliCredential()
    client = CosmosClient(COSMOS_ENDPOINT, credential=credential)

    logger.info(f"Connecting to database '{DATABASE_NAME}'...")
    try:
        database = client.create_database_if_not_exists(id=DATABASE_NAME)
    except CosmosHttpResponseError as e:
        logger.error(f"Database '{DATABASE_NAME}' not available or access denied: {e.message}")
        logger.error("Please create the database first or check RBAC permissions")
        return 1

    logger.info("\n--- Containers ---")
    ready = ensure_containers(database)

    logger.info("\n--- Seeding Medicines ---")
    container_name, _ = TABLES["medicines"]
    count = upsert_items(database.get_container_client(container_name), prepare_medicines())
    logger.info(f"  {container_name}: {count} items")

    logger.info("\n" + "=" * 60)
    logger.info(f"COMPLETE: {ready}/{len(TABLES)} containers ready, {count} medicines seeded")
    logger.info("Create the first super admin through AdminService.create_super_admin")
    logger.info("=" * 60)
    return 0 if ready == len(TABLES) else 1


if __name__ == "__main__":
    sys.exit(main())
