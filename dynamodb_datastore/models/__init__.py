# Keys and key descriptors
from .key import (
    Key,
    KeyMetadata,
)

# Entity contract, record base class and metadata strategies
from .base import (
    DynamoDBMixin,
    Entity,
    Model,
    TaggedModel,
    derive_kind,
)

__all__ = [
    # Keys
    "Key",
    "KeyMetadata",

    # Entities
    "DynamoDBMixin",
    "Entity",
    "Model",
    "TaggedModel",
    "derive_kind",
]
