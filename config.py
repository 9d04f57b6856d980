"""
Configuration module for the Wanterio patient portal.
Loads settings from environment variables (and an optional .env file).
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Backend (Azure Cosmos DB) Configuration
    cosmos_endpoint: str = Field(
        default="",
        alias="COSMOS_ENDPOINT",
        description="Cosmos DB account endpoint (empty disables the backend)"
    )
    cosmos_database: str = Field(
        default="wanterio",
        alias="COSMOS_DATABASE",
        description="Cosmos DB database name"
    )
    cosmos_key: str = Field(
        default="",
        alias="COSMOS_KEY",
        description="Account key; when empty DefaultAzureCredential is used"
    )
    backend_timeout_seconds: float = Field(
        default=10.0,
        alias="BACKEND_TIMEOUT_SECONDS",
        description="Upper bound for every backend call"
    )

    # Application Configuration
    app_host: str = Field(
        default="0.0.0.0",
        alias="APP_HOST",
        description="Host to bind the application"
    )
    app_port: int = Field(
        default=8000,
        alias="APP_PORT",
        description="Port to bind the application"
    )

    # Local cart persistence
    cart_storage_path: str = Field(
        default="./data/local_storage.json",
        alias="CART_STORAGE_PATH",
        description="Path to the JSON file backing local storage"
    )
    cart_storage_key: str = Field(
        default="wanterio_cart",
        alias="CART_STORAGE_KEY",
        description="Namespaced key the cart is stored under"
    )

    # Session / routing
    allow_local_default_role: bool = Field(
        default=False,
        alias="ALLOW_LOCAL_DEFAULT_ROLE",
        description="Grant the patient role locally when default role assignment fails"
    )
    home_path: str = Field(
        default="/",
        alias="HOME_PATH",
        description="Route of the landing page"
    )
    auth_path_prefix: str = Field(
        default="/auth/",
        alias="AUTH_PATH_PREFIX",
        description="Prefix of the sign-in / sign-up routes"
    )

    # Checkout pricing
    tax_rate: float = Field(
        default=0.08,
        alias="TAX_RATE",
        description="Sales tax applied to the order subtotal"
    )
    free_shipping_threshold: float = Field(
        default=50.0,
        alias="FREE_SHIPPING_THRESHOLD",
        description="Subtotal above which shipping is free"
    )
    shipping_fee: float = Field(
        default=9.99,
        alias="SHIPPING_FEE",
        description="Flat shipping fee below the free shipping threshold"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Global settings instance
settings = Settings()
