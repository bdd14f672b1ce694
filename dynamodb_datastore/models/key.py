"""
Datastore keys and key metadata.

A Key addresses one record: a kind plus either a string or an integer
identifier, optionally nested under a parent key. Keys without an identifier
are incomplete and only become addressable once the datastore assigns one.

Keys map onto the single datastore table as two attributes:

- the partition value (``namespace!Kind`` or ``Kind``)
- the storage path, e.g. ``/Users,i:00000000000000000007/Posts,s:hello``

Integer identifiers are zero padded so the sort key orders them numerically,
and every element carries a parent prefix so descendants can be selected with
``begins_with``.
"""

import base64
import json
from typing import Any, List, Optional, Tuple
from urllib.parse import quote, unquote

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..exceptions import ValidationError

# Attribute names of the table primary key
PARTITION_ATTRIBUTE = "_kind"
SORT_ATTRIBUTE = "_path"
RESERVED_ATTRIBUTES = (PARTITION_ATTRIBUTE, SORT_ATTRIBUTE)

NAMESPACE_SEPARATOR = "!"
STRING_ID_MARKER = "s"
INT_ID_MARKER = "i"
INT_ID_WIDTH = 20


def partition_value(kind: str, namespace: str = "") -> str:
    """Build the partition attribute value for a kind inside a namespace."""
    if namespace:
        return f"{namespace}{NAMESPACE_SEPARATOR}{kind}"
    return kind


class KeyMetadata(BaseModel):
    """Key descriptor derived from a record.

    Empty values mean "unset": a record whose name is still ``""`` or whose
    numeric id is still ``0`` describes an incomplete key.
    """

    kind: str = ""
    string_id: Optional[str] = None
    int_id: Optional[int] = None
    parent: Optional['Key'] = None


class Key(BaseModel):
    """Immutable, hashable datastore key."""

    model_config = ConfigDict(frozen=True)

    kind: str = Field(min_length=1)
    string_id: Optional[str] = None
    int_id: Optional[int] = Field(default=None, ge=0, lt=10 ** INT_ID_WIDTH)
    parent: Optional['Key'] = None
    namespace: str = ""

    @model_validator(mode='before')
    @classmethod
    def accept_encoded_token(cls, data: Any) -> Any:
        """Allow Key fields on records to be validated from encoded tokens."""
        if isinstance(data, str):
            return _fields_from_token(data)
        return data

    @property
    def incomplete(self) -> bool:
        return not self.string_id and not self.int_id

    @property
    def partition(self) -> str:
        return partition_value(self.kind, self.namespace)

    def path(self) -> List['Key']:
        """Return the key path from the root ancestor down to this key."""
        elements = []
        key = self
        while key is not None:
            elements.append(key)
            key = key.parent
        return list(reversed(elements))

    def storage_path(self) -> str:
        """Render the sort key value for this (complete) key."""
        parts = []
        for element in self.path():
            if element.string_id:
                ident = f"{STRING_ID_MARKER}:{quote(element.string_id, safe='')}"
            elif element.int_id:
                ident = f"{INT_ID_MARKER}:{element.int_id:0{INT_ID_WIDTH}d}"
            else:
                raise ValueError(f"Incomplete key {self} has no storage path")
            parts.append(f"/{quote(element.kind, safe='')},{ident}")
        return "".join(parts)

    @classmethod
    def from_storage(cls, partition: str, storage_path: str) -> 'Key':
        """Rebuild a key from its partition and sort key attribute values."""
        namespace = ""
        if NAMESPACE_SEPARATOR in partition:
            namespace, _ = partition.split(NAMESPACE_SEPARATOR, 1)

        key = None
        for element in storage_path.split("/")[1:]:
            quoted_kind, ident = element.split(",", 1)
            marker, value = ident.split(":", 1)
            if marker == STRING_ID_MARKER:
                key = cls(kind=unquote(quoted_kind), string_id=unquote(value), parent=key, namespace=namespace)
            else:
                key = cls(kind=unquote(quoted_kind), int_id=int(value), parent=key, namespace=namespace)
        if key is None:
            raise ValueError(f"Empty storage path for partition '{partition}'")
        return key

    def encode(self) -> str:
        """Encode the key as an opaque URL-safe token."""
        payload = {
            'ns': self.namespace,
            'path': [_element_to_json(element) for element in self.path()],
        }
        raw = json.dumps(payload, separators=(',', ':')).encode('utf-8')
        return base64.urlsafe_b64encode(raw).decode('ascii').rstrip('=')

    @classmethod
    def decode(cls, token: str) -> 'Key':
        """Decode a token produced by encode().

        Raises:
            ValidationError: If the token is not a valid key encoding
        """
        try:
            return cls(**_fields_from_token(token))
        except (ValueError, TypeError) as e:
            raise ValidationError(f"Invalid key token: {token!r}", original_error=e) from e

    def __str__(self) -> str:
        rendered = []
        for element in self.path():
            ident = element.string_id if element.string_id else (element.int_id or 0)
            rendered.append(f"/{element.kind},{ident}")
        return "".join(rendered)


def _element_to_json(element: Key) -> Tuple[str, str, Any]:
    if element.string_id:
        return (element.kind, STRING_ID_MARKER, element.string_id)
    return (element.kind, INT_ID_MARKER, element.int_id or 0)


def _fields_from_token(token: str) -> dict:
    try:
        padded = token + "=" * (-len(token) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded.encode('ascii')))
        namespace = payload['ns']
        fields = None
        for kind, marker, ident in payload['path']:
            fields = {
                'kind': kind,
                'string_id': ident if marker == STRING_ID_MARKER else None,
                'int_id': ident if marker == INT_ID_MARKER and ident else None,
                'parent': fields,
                'namespace': namespace,
            }
    except (ValueError, KeyError, TypeError) as e:
        raise ValueError(f"Undecodable key token: {token!r}") from e

    if fields is None:
        raise ValueError("Key token has an empty path")
    return fields


KeyMetadata.model_rebuild()
