"""
DynamoDB Datastore

A thin object-mapping layer over DynamoDB: records derive their keys from
metadata, are loaded, created, updated and deleted through a generic
Datastore facade, and are read back in bulk through query runners with
resumable item and page iterators.
"""

from .config import DatastoreConfig
from .exceptions import (
    ConnectionError,
    DatastoreError,
    InvalidEntityTypeError,
    InvalidMetadataError,
    ItemNotFoundError,
    UnresolvableKeyError,
    ValidationError,
)
from .models import (
    Entity,
    Key,
    KeyMetadata,
    Model,
    TaggedModel,
)
from .core import (
    TableGateway,
    create_table_gateway,
)
from .datastore import Datastore
from .query import (
    ItemsIterator,
    PagesIterator,
    Query,
    QueryRunner,
)
from .utils import build_key, extract_key_metadata

__version__ = "1.0.0"
__all__ = [
    # Configuration
    "DatastoreConfig",

    # Exceptions
    "ConnectionError",
    "DatastoreError",
    "InvalidEntityTypeError",
    "InvalidMetadataError",
    "ItemNotFoundError",
    "UnresolvableKeyError",
    "ValidationError",

    # Keys and entities
    "Entity",
    "Key",
    "KeyMetadata",
    "Model",
    "TaggedModel",
    "build_key",
    "extract_key_metadata",

    # Gateway
    "TableGateway",
    "create_table_gateway",

    # Facade and queries
    "Datastore",
    "Query",
    "QueryRunner",
    "ItemsIterator",
    "PagesIterator",
]
