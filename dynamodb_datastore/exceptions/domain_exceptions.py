"""
Domain-Specific Exceptions for the datastore layer

Every error this package raises on its own extends DatastoreError. Errors
coming back from DynamoDB itself (botocore ClientError) are not wrapped and
reach the caller unchanged.

Organized by category:
1. Key and Metadata Errors
2. Data Validation Errors
3. Resource Not Found Errors
4. Infrastructure Errors
"""

from typing import Any, Dict, List, Optional

from .base import DatastoreError


# =============================================================================
# Key and Metadata Errors
# =============================================================================

class InvalidMetadataError(DatastoreError):
    """Raised when key metadata cannot be derived or is inconsistent.

    Used for:
    - Records whose metadata has an empty kind
    - Metadata carrying both a string and an integer identifier
    - Parent keys that are incomplete or live in another namespace
    """

    def __init__(self, message: str, record_type: Optional[str] = None, original_error: Optional[Exception] = None):
        """Initialize invalid metadata error.

        Args:
            message: Human-readable error message
            record_type: Name of the record class whose metadata failed
            original_error: The original exception that caused this error
        """
        self.record_type = record_type
        context = {}
        if record_type:
            context['record_type'] = record_type
        super().__init__(message, original_error, context)


class UnresolvableKeyError(DatastoreError):
    """Raised when an operation needs a complete key and none can be resolved.

    Load, Update and Delete never auto-generate identifiers: a record without
    a resolved key whose metadata has no identifier cannot be addressed.
    """

    def __init__(self, kind: str, record_type: Optional[str] = None):
        """Initialize unresolvable key error.

        Args:
            kind: Kind of the incomplete key
            record_type: Name of the record class
        """
        self.kind = kind
        self.record_type = record_type
        context = {'kind': kind}
        if record_type:
            context['record_type'] = record_type
        super().__init__(f"Cannot resolve a complete key for kind '{kind}'", None, context)


class InvalidEntityTypeError(DatastoreError):
    """Raised when a query destination is not a sequence of entities."""

    def __init__(self, message: str, destination_type: Optional[str] = None):
        """Initialize invalid entity type error.

        Args:
            message: Human-readable error message
            destination_type: Name of the offending destination type
        """
        self.destination_type = destination_type
        context = {}
        if destination_type:
            context['destination_type'] = destination_type
        super().__init__(message, None, context)


# =============================================================================
# Data Validation Errors
# =============================================================================

class ValidationError(DatastoreError):
    """Raised when data validation fails.

    Used for:
    - Stored items that no longer validate against the record model
    - Batches exceeding the transaction size limit
    - Undecodable key tokens
    - Unsupported query filter operators
    """

    def __init__(self, message: str, errors: Optional[Dict[str, Any]] = None, original_error: Optional[Exception] = None):
        """Initialize validation error.

        Args:
            message: Human-readable error message
            errors: Dictionary of field-level validation errors
            original_error: The original exception that caused this error
        """
        self.errors = errors or {}
        context = {}
        if self.errors:
            context['validation_errors'] = self.errors
        super().__init__(message, original_error, context)


# =============================================================================
# Resource Not Found Errors
# =============================================================================

class ItemNotFoundError(DatastoreError):
    """Raised when no item exists under the requested key(s).

    Used for:
    - Load on a key with no stored item
    - Batch loads where one or more keys are missing
    - Query.result() on a query without results
    """

    def __init__(self, table_name: str, keys: List[Any], original_error: Optional[Exception] = None):
        """Initialize item not found error.

        Args:
            table_name: Name of the DynamoDB table
            keys: The key(s) that were not found
            original_error: The original exception that caused this error
        """
        self.table_name = table_name
        self.keys = list(keys)
        rendered = ", ".join(str(key) for key in self.keys) or "<query>"
        message = f"Item not found in table '{table_name}' with key: {rendered}"
        context = {
            'table_name': table_name,
        }
        super().__init__(message, original_error, context)


# =============================================================================
# Infrastructure Errors
# =============================================================================

class ConnectionError(DatastoreError):
    """Raised when the DynamoDB resource or table handle cannot be created.

    Used for:
    - Invalid session credentials or endpoint configuration
    - Failures while building the boto3 resource
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None, context: Optional[Dict[str, Any]] = None):
        """Initialize connection error.

        Args:
            message: Human-readable error message
            original_error: The original exception that caused this error
            context: Additional context information (e.g., endpoint, region)
        """
        super().__init__(message, original_error, context)
