import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

# Load environment variables from .env file if it exists
load_dotenv()

# DynamoDB rejects TransactWriteItems calls with more than 100 actions
MAX_TRANSACTION_ITEMS = 100


class DatastoreConfig(BaseModel):
    """Configuration for the DynamoDB connection and datastore behaviour."""

    aws_access_key_id: Optional[str] = Field(
        default_factory=lambda: os.getenv("AWS_ACCESS_KEY_ID"),
        description="AWS access key ID"
    )

    aws_secret_access_key: Optional[str] = Field(
        default_factory=lambda: os.getenv("AWS_SECRET_ACCESS_KEY"),
        description="AWS secret access key"
    )

    region_name: str = Field(
        default_factory=lambda: os.getenv("AWS_REGION", "us-east-1"),
        description="AWS region name"
    )

    # DynamoDB specific settings
    endpoint_url: Optional[str] = Field(
        default_factory=lambda: os.getenv("DYNAMODB_ENDPOINT_URL"),
        description="DynamoDB endpoint URL (for local development)"
    )

    # Table configuration
    table_prefix: str = Field(
        default_factory=lambda: os.getenv("DYNAMODB_TABLE_PREFIX", ""),
        description="Prefix to add to the table name"
    )

    table_name: str = Field(
        default_factory=lambda: os.getenv("DATASTORE_TABLE_NAME", "datastore"),
        description="Base name of the table holding every kind"
    )

    namespace: str = Field(
        default_factory=lambda: os.getenv("DATASTORE_NAMESPACE", ""),
        description="Namespace applied to every key built through the datastore"
    )

    # Connection settings
    max_pool_connections: int = Field(
        default=50,
        description="Maximum number of connections in the connection pool"
    )

    retries: int = Field(
        default=3,
        description="Number of retry attempts performed by the boto3 client"
    )

    timeout_seconds: float = Field(
        default=30.0,
        description="Request timeout in seconds"
    )

    # Query and batch settings
    page_size: int = Field(
        default_factory=lambda: int(os.getenv("DATASTORE_PAGE_SIZE", "50")),
        description="Default number of items evaluated per query page"
    )

    max_batch_size: int = Field(
        default=MAX_TRANSACTION_ITEMS,
        description="Largest batch accepted by create_all/update_all/delete_all"
    )

    # Environment settings
    environment: str = Field(
        default_factory=lambda: os.getenv("ENVIRONMENT", "dev"),
        description="Current environment (dev, test, staging, prod)"
    )

    # Logging settings
    enable_debug_logging: bool = Field(
        default_factory=lambda: os.getenv("DATASTORE_DEBUG_LOGGING", "false").lower() == "true",
        description="Enable debug logging for datastore operations"
    )

    @field_validator('region_name')
    @classmethod
    def validate_region(cls, v):
        """Validate AWS region name."""
        if not v:
            raise ValueError("AWS region name is required")
        return v

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v):
        """Validate environment value."""
        valid_environments = ['dev', 'test', 'staging', 'prod']
        if v not in valid_environments:
            raise ValueError(f"Environment must be one of: {valid_environments}")
        return v

    @field_validator('namespace')
    @classmethod
    def validate_namespace(cls, v):
        # '!' separates namespace and kind in the partition attribute
        if '!' in v:
            raise ValueError("Namespace must not contain '!'")
        return v

    @field_validator('page_size')
    @classmethod
    def validate_page_size(cls, v):
        if v < 1:
            raise ValueError("Page size must be a positive integer")
        return v

    @field_validator('max_batch_size')
    @classmethod
    def validate_max_batch_size(cls, v):
        if not 1 <= v <= MAX_TRANSACTION_ITEMS:
            raise ValueError(f"Batch size must be between 1 and {MAX_TRANSACTION_ITEMS}")
        return v

    def get_table_name(self) -> str:
        """Get the full table name with prefix and environment.

        Returns:
            Full table name with prefix and environment
        """
        parts = []

        if self.table_prefix:
            parts.append(self.table_prefix)

        if self.environment != "prod":
            parts.append(self.environment)

        parts.append(self.table_name)

        return "_".join(parts)

    @classmethod
    def from_env(cls) -> 'DatastoreConfig':
        """Create configuration from environment variables.

        Returns:
            DatastoreConfig instance
        """
        return cls()

    @classmethod
    def for_local_development(cls) -> 'DatastoreConfig':
        """Create configuration for DynamoDB Local / LocalStack development.

        Returns:
            DatastoreConfig instance configured for local development
        """
        return cls(
            aws_access_key_id="local",
            aws_secret_access_key="local",
            region_name="us-east-1",
            endpoint_url="http://localhost:8000",
            environment="dev",
            enable_debug_logging=True
        )

    model_config = ConfigDict(
        validate_assignment=True,
    )
