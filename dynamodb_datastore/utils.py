"""
Datastore Utilities

Key Features:
- Key metadata extraction from entities
- Key building (complete, incomplete and nested keys)
- Query building (filter, key condition and ancestor expressions)
- Cursor encoding for resumable queries
"""

import base64
import json
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from boto3.dynamodb.conditions import Attr, Key as KeyCondition

from .exceptions import InvalidEntityTypeError, InvalidMetadataError, ValidationError
from .models.base import Entity, to_dynamodb_value
from .models.key import (
    INT_ID_WIDTH,
    NAMESPACE_SEPARATOR,
    PARTITION_ATTRIBUTE,
    SORT_ATTRIBUTE,
    Key,
    KeyMetadata,
    partition_value,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Key Metadata and Key Building
# =============================================================================

def extract_key_metadata(entity: Entity) -> KeyMetadata:
    """Obtain the key metadata an entity describes.

    Args:
        entity: Model overriding key_metadata() or a TaggedModel adapter

    Returns:
        KeyMetadata with a non-empty kind

    Raises:
        InvalidEntityTypeError: If the value is not an Entity
        InvalidMetadataError: If the metadata has no kind
    """
    if not isinstance(entity, Entity):
        raise InvalidEntityTypeError(
            f"Expected an Entity, got {type(entity).__name__}",
            type(entity).__name__
        )

    metadata = entity.key_metadata()
    if metadata is None or not metadata.kind:
        raise InvalidMetadataError(
            f"Unresolvable key metadata for {type(entity).__name__}: kind is empty",
            type(entity).__name__
        )
    return metadata


# Integer identifiers must fit the zero padded storage width
MAX_INT_ID = 10 ** INT_ID_WIDTH


def validate_kind(kind: str) -> None:
    """Check that a kind can be stored and read back unchanged.

    Raises:
        InvalidMetadataError: If kind is empty, reserved, or contains the
            namespace separator
    """
    if not kind:
        raise InvalidMetadataError("Invalid key metadata: kind is empty")
    if kind.startswith("__"):
        raise InvalidMetadataError(f"Invalid key metadata: kind '{kind}' is reserved")
    if NAMESPACE_SEPARATOR in kind:
        raise InvalidMetadataError(
            f"Invalid key metadata: kind '{kind}' must not contain '{NAMESPACE_SEPARATOR}'"
        )


def build_key(metadata: KeyMetadata, namespace: str = "") -> Key:
    """Build a Key from key metadata.

    Metadata with a string or integer identifier produces a complete key;
    metadata with neither produces an incomplete key that the datastore
    completes on create. A parent nests the key under the parent's path.

    Args:
        metadata: Key descriptor
        namespace: Namespace the key lives in

    Returns:
        Key built from the metadata

    Raises:
        InvalidMetadataError: If the kind is not storable (see validate_kind),
            both identifiers are set, the integer identifier is negative or
            too wide, or the parent is incomplete or in another namespace

    Examples:
        >>> str(build_key(KeyMetadata(kind="Tags", string_id="golang")))
        '/Tags,golang'
        >>> build_key(KeyMetadata(kind="Posts")).incomplete
        True
    """
    validate_kind(metadata.kind)

    string_id = metadata.string_id or None
    int_id = metadata.int_id or None

    if string_id is not None and int_id is not None:
        raise InvalidMetadataError(
            f"Invalid key metadata for kind '{metadata.kind}': both string_id and int_id are set"
        )
    if int_id is not None and int_id < 0:
        raise InvalidMetadataError(
            f"Invalid key metadata for kind '{metadata.kind}': int_id must not be negative"
        )
    if int_id is not None and int_id >= MAX_INT_ID:
        raise InvalidMetadataError(
            f"Invalid key metadata for kind '{metadata.kind}': int_id must be below {MAX_INT_ID}"
        )

    parent = metadata.parent
    if parent is not None:
        if parent.incomplete:
            raise InvalidMetadataError(
                f"Invalid key metadata for kind '{metadata.kind}': parent key {parent} is incomplete"
            )
        if parent.namespace != namespace:
            raise InvalidMetadataError(
                f"Invalid key metadata for kind '{metadata.kind}': parent namespace "
                f"'{parent.namespace}' differs from '{namespace}'"
            )

    return Key(
        kind=metadata.kind,
        string_id=string_id,
        int_id=int_id,
        parent=parent,
        namespace=namespace
    )


def complete_key(key: Key, int_id: int) -> Key:
    """Return a copy of an incomplete key carrying an allocated identifier."""
    return key.model_copy(update={'int_id': int_id})


def key_attributes(key: Key) -> Dict[str, str]:
    """Build the DynamoDB primary key dictionary for a complete key."""
    return {
        PARTITION_ATTRIBUTE: key.partition,
        SORT_ATTRIBUTE: key.storage_path(),
    }


def key_from_item(item: Dict[str, Any]) -> Key:
    """Rebuild the Key of a stored item from its key attributes."""
    return Key.from_storage(item[PARTITION_ATTRIBUTE], item[SORT_ATTRIBUTE])


# =============================================================================
# Cursor Encoding
# =============================================================================

def encode_cursor(last_key: Optional[Dict[str, Any]]) -> Optional[str]:
    """Encode a DynamoDB LastEvaluatedKey as an opaque URL-safe token.

    Returns:
        Cursor token, or None when there is no position to encode
    """
    if not last_key:
        return None
    plain = {k: str(v) if isinstance(v, Decimal) else v for k, v in last_key.items()}
    raw = json.dumps(plain, sort_keys=True, separators=(',', ':')).encode('utf-8')
    return base64.urlsafe_b64encode(raw).decode('ascii').rstrip('=')


def decode_cursor(cursor: str) -> Dict[str, Any]:
    """Decode a cursor produced by encode_cursor().

    Raises:
        ValidationError: If the cursor cannot be decoded
    """
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        last_key = json.loads(base64.urlsafe_b64decode(padded.encode('ascii')))
    except (ValueError, TypeError, AttributeError) as e:
        raise ValidationError(f"Invalid cursor: {cursor!r}", original_error=e) from e

    if not isinstance(last_key, dict) or set(last_key) != {PARTITION_ATTRIBUTE, SORT_ATTRIBUTE}:
        raise ValidationError(f"Invalid cursor: {cursor!r}")
    return last_key


# =============================================================================
# Query Building Utilities
# =============================================================================

FILTER_OPERATORS = {
    '=': 'eq',
    '!=': 'ne',
    '<': 'lt',
    '<=': 'lte',
    '>': 'gt',
    '>=': 'gte',
}


def build_filter_expression(filters: List[tuple]):
    """Build FilterExpression for DynamoDB queries.

    Args:
        filters: List of (attribute name, operator, value) tuples

    Returns:
        FilterExpression for boto3, or None if no filters

    Example:
        >>> build_filter_expression([('is_active', '=', True), ('age', '>=', 21)])
        # Returns: Attr('is_active').eq(True) & Attr('age').gte(21)
    """
    if not filters:
        return None

    conditions = []
    for attr_name, operator, value in filters:
        method = FILTER_OPERATORS.get(operator)
        if method is None:
            raise ValidationError(
                f"Unsupported filter operator: {operator!r}. "
                f"Supported values: {', '.join(FILTER_OPERATORS)}"
            )
        conditions.append(getattr(Attr(attr_name), method)(to_dynamodb_value(value)))

    # Combine conditions with AND
    filter_expr = conditions[0]
    for condition in conditions[1:]:
        filter_expr = filter_expr & condition

    return filter_expr


def build_key_condition(kind: str, namespace: str = "", ancestor: Optional[Key] = None):
    """Build KeyConditionExpression selecting one kind, optionally under an ancestor.

    Descendants share the ancestor's storage path as prefix, so the ancestor
    restriction is a begins_with condition on the sort key.

    Raises:
        InvalidMetadataError: If the ancestor key is incomplete
    """
    condition = KeyCondition(PARTITION_ATTRIBUTE).eq(partition_value(kind, namespace))

    if ancestor is not None:
        if ancestor.incomplete:
            raise InvalidMetadataError(f"Ancestor key {ancestor} is incomplete")
        condition = condition & KeyCondition(SORT_ATTRIBUTE).begins_with(ancestor.storage_path() + "/")

    return condition


__all__ = [
    # Keys
    "extract_key_metadata",
    "validate_kind",
    "build_key",
    "complete_key",
    "key_attributes",
    "key_from_item",

    # Cursors
    "encode_cursor",
    "decode_cursor",

    # Query Building
    "FILTER_OPERATORS",
    "build_filter_expression",
    "build_key_condition",
]
