"""
Azure Cosmos DB Configuration.

Centralized configuration for all Cosmos DB settings used across the application.
This keeps the application, the setup scripts and the tests pointing at the same
containers.

Environment Variables (optional overrides):
    COSMOS_ENDPOINT - Cosmos DB account endpoint (empty means "not configured")
    COSMOS_DATABASE - Database name
    COSMOS_KEY      - Account key (DefaultAzureCredential is used when empty)
"""

from config import settings

# =============================================================================
# COSMOS DB CONNECTION
# =============================================================================

COSMOS_ENDPOINT = settings.cosmos_endpoint

DATABASE_NAME = settings.cosmos_database

COSMOS_KEY = settings.cosmos_key

# Value shipped in .env.example; treated the same as no endpoint at all
PLACEHOLDER_ENDPOINT = "https://your-account.documents.azure.com:443/"

# =============================================================================
# APPLICATION TABLES
# =============================================================================

# Logical table name -> (container_name, partition_key_path)
TABLES = {
    "users": ("Portal_Users", "/id"),
    "user_roles": ("Portal_UserRoles", "/user_id"),
    "medicines": ("Portal_Medicines", "/id"),
    "orders": ("Portal_Orders", "/id"),
    "order_items": ("Portal_OrderItems", "/order_id"),
    "appointments": ("Portal_Appointments", "/id"),
    "ambulance_requests": ("Portal_AmbulanceRequests", "/id"),
    "carts": ("Portal_Carts", "/id"),
    "credentials": ("Portal_Credentials", "/email"),
}

# Simple container name lookup (without partition key)
TABLE_CONTAINER_NAMES = {
    key: name for key, (name, _) in TABLES.items()
}

# =============================================================================
# PRIVILEGED FUNCTIONS
# =============================================================================

ASSIGN_DEFAULT_PATIENT_ROLE = "assign_default_patient_role"
CREATE_SUPER_ADMIN = "create_super_admin"

# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def is_cosmos_configured(endpoint: str = None) -> bool:
    """Check whether a usable Cosmos DB endpoint has been provided."""
    endpoint = COSMOS_ENDPOINT if endpoint is None else endpoint
    return bool(endpoint) and endpoint != PLACEHOLDER_ENDPOINT


def get_container_name(table: str) -> str:
    """Get the actual container name for a logical table name."""
    if table in TABLE_CONTAINER_NAMES:
        return TABLE_CONTAINER_NAMES[table]
    return table


def get_container_config(table: str) -> tuple:
    """Get (container_name, partition_key_path) for a logical table."""
    if table in TABLES:
        return TABLES[table]
    raise ValueError(f"Unknown table: {table}")
