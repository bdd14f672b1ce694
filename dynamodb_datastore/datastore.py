"""
Generic datastore facade.

Datastore loads, creates, updates and deletes any Entity, deriving its key
from the entity's metadata and writing the resolved key back onto it.

Design Philosophy:
- Explicit handle: a Datastore is built from a DatastoreConfig (or an
  existing TableGateway) and closed by the caller, or used as a context
  manager
- Pass-through: every operation is one DynamoDB request (or one request per
  chunk for batch reads); DynamoDB errors are raised unchanged
- Keys are only written back after the store accepted the operation

Example:
    with Datastore(DatastoreConfig.from_env()) as datastore:
        tag = Tag(name="golang", owner="Borges")
        datastore.create(tag)
        print(tag.key)  # /Tags,golang

        loaded = Tag(name="golang")
        datastore.load(loaded)
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Type

from .config import DatastoreConfig
from .core.table_gateway import TableGateway, create_table_gateway
from .exceptions import ItemNotFoundError, UnresolvableKeyError, ValidationError
from .models.base import Entity, Model, tag_registration
from .models.key import Key
from .query import Query, QueryRunner
from .utils import build_key, complete_key, extract_key_metadata, key_attributes, key_from_item

logger = logging.getLogger(__name__)


class Datastore:
    """Load/Create/Update/Delete facade over one datastore table."""

    def __init__(self, config: Optional[DatastoreConfig] = None, gateway: Optional[TableGateway] = None):
        """Initialize the datastore.

        Args:
            config: Datastore configuration (defaults to the gateway's
                configuration, then to DatastoreConfig.from_env())
            gateway: Pre-built table gateway
        """
        if config is None:
            config = gateway.config if gateway is not None else DatastoreConfig.from_env()
        self.config = config
        self.gateway = gateway or create_table_gateway(config)

        if config.enable_debug_logging:
            logging.getLogger(__package__).setLevel(logging.DEBUG)

    @property
    def namespace(self) -> str:
        return self.config.namespace

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def create_table(self):
        """Provision the datastore table if missing."""
        return self.gateway.create_table()

    def close(self) -> None:
        """Release the DynamoDB connection."""
        self.gateway.close()

    def __enter__(self) -> 'Datastore':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Keys
    # -------------------------------------------------------------------------

    def new_key(self, entity: Entity) -> Key:
        """Build the key an entity's metadata describes, in this datastore's namespace.

        Raises:
            InvalidMetadataError: If the metadata is invalid
        """
        return build_key(extract_key_metadata(entity), self.namespace)

    def _resolve_key(self, entity: Entity) -> Key:
        """Use the entity's resolved key, or derive one; never auto-generate."""
        key = entity.key
        if key is None:
            key = self.new_key(entity)
        if key.incomplete:
            raise UnresolvableKeyError(key.kind, type(entity).__name__)
        return key

    def _update_key(self, entity: Entity) -> Key:
        """Derive the key for an upsert.

        Metadata without identifier falls back to the entity's resolved key
        of the same kind, so records with allocated identifiers can be saved
        again.
        """
        key = self.new_key(entity)
        if key.incomplete:
            resolved = entity.key
            if resolved is None or resolved.incomplete or resolved.kind != key.kind:
                raise UnresolvableKeyError(key.kind, type(entity).__name__)
            key = resolved
        return key

    def _complete_keys(self, keys: List[Key]) -> List[Key]:
        """Allocate identifiers for every incomplete key, one counter call per kind."""
        pending: Dict[str, List[int]] = defaultdict(list)
        for position, key in enumerate(keys):
            if key.incomplete:
                pending[key.partition].append(position)

        completed = list(keys)
        for partition, positions in pending.items():
            first_id = self.gateway.allocate_ids(partition, len(positions))
            for offset, position in enumerate(positions):
                completed[position] = complete_key(keys[position], first_id + offset)
        return completed

    def _check_batch_size(self, entities: List[Entity]) -> None:
        if len(entities) > self.config.max_batch_size:
            raise ValidationError(
                f"Batch of {len(entities)} entities exceeds the limit of {self.config.max_batch_size}"
            )

    @staticmethod
    def _check_unique_keys(keys: List[Key]) -> None:
        # A transaction may touch each item only once
        seen = set()
        duplicates = []
        for key in keys:
            if key.incomplete:
                continue
            if key in seen and key not in duplicates:
                duplicates.append(key)
            seen.add(key)
        if duplicates:
            raise ValidationError(
                f"Batch addresses the same key more than once: {', '.join(str(key) for key in duplicates)}"
            )

    @staticmethod
    def _to_item(entity: Entity, key: Key) -> dict:
        item = entity.to_item()
        item.update(key_attributes(key))
        return item

    # -------------------------------------------------------------------------
    # Single entity operations
    # -------------------------------------------------------------------------

    def load(self, entity: Entity) -> None:
        """Load the stored values of an entity and set its key.

        Raises:
            UnresolvableKeyError: If no complete key can be resolved
            InvalidMetadataError: If the entity's metadata is invalid
            ItemNotFoundError: If nothing is stored under the key
        """
        key = self._resolve_key(entity)
        item = self.gateway.get_item(key_attributes(key))
        if item is None:
            raise ItemNotFoundError(self.gateway.table_name, [key])

        entity.load_item(item)
        entity.set_key(key)

    def create(self, entity: Entity) -> Key:
        """Store an entity as a new item, allocating an identifier if needed.

        Returns:
            The key written back onto the entity

        Raises:
            InvalidMetadataError: If the entity's metadata is invalid
        """
        key = self.new_key(entity)
        if key.incomplete:
            key = complete_key(key, self.gateway.allocate_ids(key.partition))

        self.gateway.put_item(self._to_item(entity, key))
        entity.set_key(key)
        logger.info(f"Created {key}")
        return key

    def update(self, entity: Entity) -> Key:
        """Store an entity under its complete key, creating or replacing the item.

        Returns:
            The key written back onto the entity

        Raises:
            InvalidMetadataError: If the entity's metadata is invalid
            UnresolvableKeyError: If no complete key can be resolved
        """
        key = self._update_key(entity)
        self.gateway.put_item(self._to_item(entity, key))
        entity.set_key(key)
        logger.info(f"Updated {key}")
        return key

    def delete(self, entity: Entity) -> None:
        """Delete the item stored for an entity. The entity keeps its key.

        Raises:
            UnresolvableKeyError: If no complete key can be resolved
        """
        key = self._resolve_key(entity)
        self.gateway.delete_item(key_attributes(key))
        logger.info(f"Deleted {key}")

    # -------------------------------------------------------------------------
    # Batch operations
    # -------------------------------------------------------------------------

    def create_all(self, entities: Iterable[Entity]) -> List[Key]:
        """Create several entities in one transaction.

        Either every entity is stored and keyed, or none is.

        Returns:
            The keys written back, in entity order

        Raises:
            ValidationError: If the batch exceeds config.max_batch_size or
                addresses one key twice
            InvalidMetadataError: If any entity's metadata is invalid
        """
        entities = list(entities)
        self._check_batch_size(entities)

        keys = [self.new_key(entity) for entity in entities]
        self._check_unique_keys(keys)
        keys = self._complete_keys(keys)
        self.gateway.transact_put_items([
            self._to_item(entity, key) for entity, key in zip(entities, keys)
        ])

        for entity, key in zip(entities, keys):
            entity.set_key(key)
        logger.info(f"Created {len(keys)} entities")
        return keys

    def update_all(self, entities: Iterable[Entity]) -> List[Key]:
        """Upsert several entities in one transaction, all or nothing.

        Raises:
            ValidationError: If the batch exceeds config.max_batch_size or
                addresses one key twice
            UnresolvableKeyError: If any entity lacks a complete key
        """
        entities = list(entities)
        self._check_batch_size(entities)

        keys = [self._update_key(entity) for entity in entities]
        self._check_unique_keys(keys)
        self.gateway.transact_put_items([
            self._to_item(entity, key) for entity, key in zip(entities, keys)
        ])

        for entity, key in zip(entities, keys):
            entity.set_key(key)
        logger.info(f"Updated {len(keys)} entities")
        return keys

    def delete_all(self, entities: Iterable[Entity]) -> None:
        """Delete the items of several entities in one transaction.

        Raises:
            ValidationError: If the batch exceeds config.max_batch_size or
                addresses one key twice
            UnresolvableKeyError: If any entity lacks a complete key
        """
        entities = list(entities)
        self._check_batch_size(entities)

        keys = [self._resolve_key(entity) for entity in entities]
        self._check_unique_keys(keys)
        self.gateway.transact_delete_items([key_attributes(key) for key in keys])
        logger.info(f"Deleted {len(keys)} entities")

    def load_all(self, entities: Iterable[Entity]) -> None:
        """Load several entities with batched reads.

        Entities are only populated when every key was found
        and every stored item validates against its entity.

        Raises:
            UnresolvableKeyError: If any entity lacks a complete key
            ItemNotFoundError: If any key has no stored item
            ValidationError: If any stored item does not fit its entity
        """
        entities = list(entities)
        keys = [self._resolve_key(entity) for entity in entities]

        unique_keys = list(dict.fromkeys(keys))
        items = self.gateway.batch_get_items([key_attributes(key) for key in unique_keys])
        found = {key_from_item(item): item for item in items}

        missing = [key for key in unique_keys if key not in found]
        if missing:
            raise ItemNotFoundError(self.gateway.table_name, missing)

        for entity, key in zip(entities, keys):
            entity.validate_item(found[key])

        for entity, key in zip(entities, keys):
            entity.load_item(found[key])
            entity.set_key(key)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def query(self, model_class: Type[Model], kind: Optional[str] = None) -> QueryRunner:
        """Start a query returning model_class records.

        The default kind is read from the class, never from key_metadata():
        a record whose key_metadata() returns another kind than its
        pluralised class name must declare ``Meta.kind`` or pass ``kind``,
        otherwise the query reads the wrong partition.

        Args:
            model_class: Record class the results are converted to
            kind: Kind to query; defaults to the class's Meta.kind or its
                pluralised name

        Raises:
            InvalidMetadataError: If the kind cannot be stored

        Returns:
            QueryRunner bound to this datastore
        """
        if kind is None:
            kind = tag_registration(model_class).kind
        return QueryRunner(self, Query(kind), model_class)
