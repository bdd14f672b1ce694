# Base exception class
from .base import DatastoreError

# Domain-specific exceptions
from .domain_exceptions import (
    ConnectionError,
    InvalidEntityTypeError,
    InvalidMetadataError,
    ItemNotFoundError,
    UnresolvableKeyError,
    ValidationError,
)

__all__ = [
    # Base exception
    "DatastoreError",

    # Domain exceptions (alphabetically ordered)
    "ConnectionError",
    "InvalidEntityTypeError",
    "InvalidMetadataError",
    "ItemNotFoundError",
    "UnresolvableKeyError",
    "ValidationError",
]
