"""
Entity contract, record base class and key metadata strategies.

Every record the datastore handles is an ``Entity``: it reports and accepts
its resolved key, describes the key it wants (``key_metadata``), and converts
itself to and from a DynamoDB item.

## Choosing a key metadata strategy

Records pick one of two strategies explicitly.

1. **Explicit**: override ``key_metadata()`` on the model.

   ```python
   class Tag(Model):
       name: str
       owner: str = ""

       def key_metadata(self) -> KeyMetadata:
           return KeyMetadata(kind="Tags", string_id=self.name)
   ```

2. **Tag-driven**: mark the identifier field and wrap the record with
   ``TaggedModel`` when handing it to the datastore.

   ```python
   class User(Model):
       name: str = Field(json_schema_extra={"ds": "id"})
       twitter: str = ""

   datastore.create(TaggedModel(user))
   ```

   A ``Meta`` class may name the identifier field instead of the field
   marker, and may also set ``kind`` and ``parent_field``:

   ```python
   class Comment(Model):
       number: int
       post: Key

       class Meta:
           kind = "Comments"
           id_field = "number"
           parent_field = "post"
   ```

   Without ``Meta.kind`` the kind is the pluralised class name
   (``User`` -> ``Users``).

## Components

- Entity: the capability contract consumed by Datastore and QueryRunner
- DynamoDBMixin: record <-> DynamoDB item conversion
- Model: pydantic base class for records
- TaggedModel: adapter implementing the tag-driven strategy
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, Optional, Type
from uuid import UUID

from pydantic import BaseModel, PrivateAttr
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import InvalidEntityTypeError, InvalidMetadataError, ValidationError
from .key import RESERVED_ATTRIBUTES, Key, KeyMetadata

logger = logging.getLogger(__name__)

ID_TAG = "id"


class Entity(ABC):
    """Capability contract of every storable record."""

    @property
    @abstractmethod
    def key(self) -> Optional[Key]:
        """Resolved key, or None while the record is unkeyed."""

    @abstractmethod
    def set_key(self, key: Optional[Key]) -> None:
        """Record the resolved key."""

    @abstractmethod
    def key_metadata(self) -> KeyMetadata:
        """Describe the key this record should be stored under."""

    @abstractmethod
    def to_item(self) -> Dict[str, Any]:
        """Convert the record's fields to DynamoDB attribute values."""

    @abstractmethod
    def load_item(self, item: Dict[str, Any]) -> None:
        """Replace the record's fields with the values of a stored item."""

    @abstractmethod
    def validate_item(self, item: Dict[str, Any]) -> None:
        """Raise ValidationError if a stored item does not fit this record."""


def to_dynamodb_value(obj: Any) -> Any:
    """Recursively convert Python values to DynamoDB-compatible values.

    DynamoDB Requirements:
    - Key -> encoded key token
    - datetime/date/time -> ISO string
    - float -> Decimal (boto3 rejects floats)
    - set/tuple -> list
    - Enum -> its value
    - nested pydantic models -> maps
    """
    if isinstance(obj, Key):
        return obj.encode()
    elif isinstance(obj, Enum):
        return to_dynamodb_value(obj.value)
    elif isinstance(obj, BaseModel):
        return {name: to_dynamodb_value(getattr(obj, name)) for name in type(obj).model_fields}
    elif isinstance(obj, dict):
        return {str(k): to_dynamodb_value(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple, set, frozenset)):
        return [to_dynamodb_value(element) for element in obj]
    elif isinstance(obj, (datetime, date, time)):
        return obj.isoformat()
    elif isinstance(obj, bool):
        return obj
    elif isinstance(obj, float):
        return Decimal(str(obj))
    elif isinstance(obj, UUID):
        return str(obj)
    else:
        # str, int, Decimal, bytes and None are handled by boto3 directly
        return obj


class DynamoDBMixin(BaseModel):
    """
    Mixin providing DynamoDB serialization and deserialization functionality.

    Items hold one attribute per model field next to the reserved key
    attributes (``_kind``/``_path``). Loading strips the reserved attributes
    and lets pydantic validate the rest, which turns ISO strings back into
    datetimes, Decimals into ints/floats and key tokens into Keys.
    """

    def to_item(self) -> Dict[str, Any]:
        """
        Convert model to DynamoDB-compatible item attributes.

        Returns:
            Dictionary ready to be merged with the key attributes and stored
        """
        return {name: to_dynamodb_value(getattr(self, name)) for name in type(self).model_fields}

    @classmethod
    def _validate_item(cls, item: Dict[str, Any]):
        fields = {k: v for k, v in item.items() if k not in RESERVED_ATTRIBUTES}
        try:
            return cls.model_validate(fields)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Failed to convert DynamoDB item to {cls.__name__}: {e}",
                errors={'.'.join(str(loc) for loc in err['loc']): err['msg'] for err in e.errors()},
                original_error=e
            ) from e

    @classmethod
    def from_item(cls, item: Dict[str, Any], key: Optional[Key] = None):
        """
        Create model instance from a stored DynamoDB item.

        Args:
            item: DynamoDB item dictionary
            key: Resolved key to attach to the new instance

        Returns:
            Model instance with the key set

        Raises:
            ValidationError: If item data is invalid for the model
        """
        record = cls._validate_item(item)
        if key is not None:
            record.set_key(key)
        return record

    def load_item(self, item: Dict[str, Any]) -> None:
        """Copy the values of a stored item into this instance."""
        loaded = self._validate_item(item)
        for name in type(self).model_fields:
            setattr(self, name, getattr(loaded, name))

    def validate_item(self, item: Dict[str, Any]) -> None:
        self._validate_item(item)


class Model(DynamoDBMixin, Entity):
    """
    Base class for records stored through the datastore.

    The resolved key is a private attribute: it is never stored as a field,
    starts out unset and is filled in by load/create/update. Subclasses using
    the explicit strategy override ``key_metadata``; the default describes no
    kind at all, so a plain Model is rejected unless wrapped in TaggedModel.
    """

    _key: Optional[Key] = PrivateAttr(default=None)

    @property
    def key(self) -> Optional[Key]:
        return self._key

    def set_key(self, key: Optional[Key]) -> None:
        self._key = key

    def key_metadata(self) -> KeyMetadata:
        return KeyMetadata()


def derive_kind(type_name: str) -> str:
    """Pluralise a class name into a kind name.

    Examples:
        >>> derive_kind("User")
        'Users'
        >>> derive_kind("Category")
        'Categories'
        >>> derive_kind("Address")
        'Addresses'
    """
    if not type_name:
        return type_name
    lowered = type_name.lower()
    if lowered.endswith("y") and len(lowered) > 1 and lowered[-2] not in "aeiou":
        return type_name[:-1] + "ies"
    if lowered.endswith(("s", "x", "z", "ch", "sh")):
        return type_name + "es"
    return type_name + "s"


@dataclass(frozen=True)
class TagRegistration:
    """Key layout of one record class, resolved once per class."""

    kind: str
    id_field: Optional[str]
    parent_field: Optional[str]


@lru_cache(maxsize=None)
def tag_registration(model_class: Type[Model]) -> TagRegistration:
    """Scan a record class for its Meta options and tagged identifier field.

    Raises:
        InvalidMetadataError: If more than one field is tagged as identifier
            or the Meta class names unknown fields
    """
    meta = getattr(model_class, 'Meta', None)
    fields = model_class.model_fields

    tagged = [
        name for name, info in fields.items()
        if isinstance(info.json_schema_extra, dict) and info.json_schema_extra.get("ds") == ID_TAG
    ]
    if len(tagged) > 1:
        raise InvalidMetadataError(
            f"{model_class.__name__} tags more than one identifier field: {tagged}",
            model_class.__name__
        )

    id_field = getattr(meta, 'id_field', None) or (tagged[0] if tagged else None)
    parent_field = getattr(meta, 'parent_field', None)
    for option in (id_field, parent_field):
        if option is not None and option not in fields:
            raise InvalidMetadataError(
                f"{model_class.__name__} has no field named '{option}'",
                model_class.__name__
            )

    kind = getattr(meta, 'kind', None) or derive_kind(model_class.__name__)
    logger.debug(f"Registered {model_class.__name__}: kind={kind}, id_field={id_field}, parent_field={parent_field}")
    return TagRegistration(kind=kind, id_field=id_field, parent_field=parent_field)


class TaggedModel(Entity):
    """Adapter deriving key metadata from a record's tagged fields.

    Key handling and item conversion delegate to the wrapped record, so the
    datastore writes loaded values and resolved keys straight into it.
    """

    def __init__(self, record: Model):
        if not isinstance(record, Model):
            raise InvalidEntityTypeError(
                f"TaggedModel wraps Model instances, got {type(record).__name__}",
                type(record).__name__
            )
        self.record = record

    @property
    def key(self) -> Optional[Key]:
        return self.record.key

    def set_key(self, key: Optional[Key]) -> None:
        self.record.set_key(key)

    def key_metadata(self) -> KeyMetadata:
        registration = tag_registration(type(self.record))
        metadata = KeyMetadata(kind=registration.kind)

        if registration.id_field:
            value = getattr(self.record, registration.id_field)
            if isinstance(value, bool) or not isinstance(value, (str, int, type(None))):
                raise InvalidMetadataError(
                    f"Identifier field '{registration.id_field}' must hold a str or int, got {type(value).__name__}",
                    type(self.record).__name__
                )
            if isinstance(value, str):
                metadata.string_id = value or None
            elif isinstance(value, int):
                metadata.int_id = value or None

        if registration.parent_field:
            metadata.parent = getattr(self.record, registration.parent_field)

        return metadata

    def to_item(self) -> Dict[str, Any]:
        return self.record.to_item()

    def load_item(self, item: Dict[str, Any]) -> None:
        self.record.load_item(item)

    def validate_item(self, item: Dict[str, Any]) -> None:
        self.record.validate_item(item)

    def __repr__(self) -> str:
        return f"TaggedModel({self.record!r})"
