"""
Queries over one kind and the runner that executes them.

A Query only describes what to read: the kind, an optional ancestor,
property filters, key ordering direction, a result limit and a start
position. QueryRunner binds a query to a Datastore and a record class and
turns the DynamoDB responses into keyed records.

Example:
    runner = datastore.query(Post, kind="Posts")
    runner = runner.with_query(runner.query.filter("published", "=", True).limit(20))

    for page in runner.pages_iterator(page_size=10):
        render(page)

    next_runner = runner.start_from(saved_cursor)
"""

import logging
from collections import deque
from collections.abc import MutableSequence
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Tuple, Type

from .exceptions import InvalidEntityTypeError, ItemNotFoundError, ValidationError
from .models.base import Entity, Model
from .models.key import PARTITION_ATTRIBUTE, SORT_ATTRIBUTE, Key
from .utils import (
    FILTER_OPERATORS,
    build_filter_expression,
    build_key_condition,
    decode_cursor,
    encode_cursor,
    key_from_item,
    validate_kind,
)

if TYPE_CHECKING:
    from .datastore import Datastore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Query:
    """Immutable description of a query over one kind.

    Every builder method returns a new Query.
    """

    kind: str
    namespace: Optional[str] = None
    ancestor_key: Optional[Key] = None
    filters: Tuple[Tuple[str, str, Any], ...] = ()
    descending: bool = False
    limit_count: Optional[int] = None
    start_key: Optional[Dict[str, Any]] = field(default=None, compare=False)

    def __post_init__(self):
        validate_kind(self.kind)

    def filter(self, name: str, operator: str, value: Any) -> 'Query':
        """Add a property filter (=, !=, <, <=, >, >=)."""
        if operator not in FILTER_OPERATORS:
            raise ValidationError(
                f"Unsupported filter operator: {operator!r}. "
                f"Supported values: {', '.join(FILTER_OPERATORS)}"
            )
        return replace(self, filters=self.filters + ((name, operator, value),))

    def ancestor(self, key: Key) -> 'Query':
        """Restrict results to descendants of key."""
        return replace(self, ancestor_key=key)

    def order(self, descending: bool = False) -> 'Query':
        """Order results by key, ascending unless descending is set."""
        return replace(self, descending=descending)

    def limit(self, count: Optional[int]) -> 'Query':
        """Cap the number of results; None removes the cap."""
        if count is not None and count < 0:
            raise ValidationError(f"Query limit must not be negative, got {count}")
        return replace(self, limit_count=count)

    def start(self, last_key: Optional[Dict[str, Any]]) -> 'Query':
        """Resume after the item whose primary key is last_key."""
        return replace(self, start_key=last_key)

    def to_query_kwargs(self, default_namespace: str = "") -> Dict[str, Any]:
        """Build the boto3 query parameters for this query."""
        namespace = self.namespace if self.namespace is not None else default_namespace
        query_kwargs = {
            'KeyConditionExpression': build_key_condition(self.kind, namespace, self.ancestor_key),
            'ScanIndexForward': not self.descending,
        }

        filter_expression = build_filter_expression(list(self.filters))
        if filter_expression is not None:
            query_kwargs['FilterExpression'] = filter_expression

        if self.start_key:
            query_kwargs['ExclusiveStartKey'] = self.start_key

        return query_kwargs


class QueryRunner:
    """Executes one query against a datastore, resolving keys onto records."""

    def __init__(self, datastore: 'Datastore', query: Query, model_class: Type[Model]):
        self.datastore = datastore
        self.query = query
        self.model_class = model_class

    def with_query(self, query: Query) -> 'QueryRunner':
        """Return a runner for another query over the same datastore and class."""
        return QueryRunner(self.datastore, query, self.model_class)

    def _query_kwargs(self) -> Dict[str, Any]:
        return self.query.to_query_kwargs(self.datastore.namespace)

    def _fetch_pages(self, page_size: int) -> Iterator[List[Dict[str, Any]]]:
        """Yield raw item lists, one per DynamoDB Query call."""
        query_kwargs = self._query_kwargs()
        query_kwargs['Limit'] = page_size
        while True:
            response = self.datastore.gateway.query(**query_kwargs)
            yield response.get('Items', [])

            last_key = response.get('LastEvaluatedKey')
            if not last_key:
                return
            query_kwargs['ExclusiveStartKey'] = last_key

    def _to_record(self, item: Dict[str, Any]) -> Model:
        return self.model_class.from_item(item, key_from_item(item))

    def count(self) -> int:
        """Count the matching items.

        Returns:
            Number of items matching kind, ancestor, filters and start position,
            capped by the query limit
        """
        query_kwargs = self._query_kwargs()
        query_kwargs['Select'] = 'COUNT'
        limit = self.query.limit_count

        total = 0
        while limit is None or total < limit:
            response = self.datastore.gateway.query(**query_kwargs)
            total += response.get('Count', 0)

            last_key = response.get('LastEvaluatedKey')
            if not last_key:
                break
            query_kwargs['ExclusiveStartKey'] = last_key

        return total if limit is None else min(total, limit)

    def result(self, dst: Entity) -> Entity:
        """Copy the first matching item into dst and set its key.

        Raises:
            InvalidEntityTypeError: If dst is not an Entity
            ItemNotFoundError: If the query has no results
        """
        if not isinstance(dst, Entity):
            raise InvalidEntityTypeError(
                f"Query result destination must be an Entity, got {type(dst).__name__}",
                type(dst).__name__
            )

        if self.query.limit_count == 0:
            raise ItemNotFoundError(self.datastore.gateway.table_name, [])

        for page in self._fetch_pages(self.datastore.config.page_size):
            if page:
                item = page[0]
                dst.load_item(item)
                dst.set_key(key_from_item(item))
                return dst

        raise ItemNotFoundError(self.datastore.gateway.table_name, [])

    def results(self, dst: MutableSequence) -> MutableSequence:
        """Append every matching record to dst, each with its key set.

        dst is only extended once all results were read and converted.

        Returns:
            dst

        Raises:
            InvalidEntityTypeError: If dst is not a mutable sequence of
                entities or the runner's model class is not a Model
        """
        if isinstance(dst, bytearray) or not isinstance(dst, MutableSequence):
            raise InvalidEntityTypeError(
                f"Query results destination must be a mutable sequence, got {type(dst).__name__}",
                type(dst).__name__
            )
        for element in dst:
            if not isinstance(element, Entity):
                raise InvalidEntityTypeError(
                    f"Query results destination holds a non-entity {type(element).__name__}",
                    type(element).__name__
                )
        if not (isinstance(self.model_class, type) and issubclass(self.model_class, Model)):
            raise InvalidEntityTypeError(
                f"Query results require a Model subclass, got {self.model_class!r}",
                getattr(self.model_class, '__name__', type(self.model_class).__name__)
            )

        records = list(self.items_iterator())
        dst.extend(records)
        logger.debug(f"Query on {self.query.kind} loaded {len(records)} records")
        return dst

    def start_from(self, cursor: str) -> 'QueryRunner':
        """Return a runner resuming from a cursor issued by an iterator.

        An undecodable cursor leaves the query unmodified.
        """
        try:
            last_key = decode_cursor(cursor)
        except ValidationError as e:
            logger.warning(f"Ignoring undecodable cursor for {self.query.kind} query: {e}")
            return self.with_query(self.query)
        return self.with_query(self.query.start(last_key))

    def items_iterator(self, page_size: Optional[int] = None) -> 'ItemsIterator':
        """Lazily iterate over matching records."""
        return ItemsIterator(self, page_size or self.datastore.config.page_size)

    def pages_iterator(self, page_size: Optional[int] = None) -> 'PagesIterator':
        """Lazily iterate over non-empty pages of matching records."""
        return PagesIterator(self, page_size or self.datastore.config.page_size)


class _QueryIterator:
    """Forward-only iteration state shared by items and pages iterators."""

    def __init__(self, runner: QueryRunner, page_size: int):
        self._runner = runner
        self._pages = runner._fetch_pages(page_size)
        self._remaining = runner.query.limit_count
        self._cursor = None

    def __iter__(self):
        return self

    def cursor(self) -> Optional[str]:
        """Cursor resuming after the last element handed out, or None."""
        return self._cursor

    def _advance(self, item: Dict[str, Any]) -> None:
        self._cursor = encode_cursor({
            PARTITION_ATTRIBUTE: item[PARTITION_ATTRIBUTE],
            SORT_ATTRIBUTE: item[SORT_ATTRIBUTE],
        })
        if self._remaining is not None:
            self._remaining -= 1


class ItemsIterator(_QueryIterator):
    """Yields matching records one at a time."""

    def __init__(self, runner: QueryRunner, page_size: int):
        super().__init__(runner, page_size)
        self._buffer = deque()

    def __next__(self) -> Model:
        if self._remaining == 0:
            raise StopIteration
        while not self._buffer:
            self._buffer.extend(next(self._pages))

        item = self._buffer.popleft()
        record = self._runner._to_record(item)
        self._advance(item)
        return record


class PagesIterator(_QueryIterator):
    """Yields lists of matching records, one list per non-empty page."""

    def __next__(self) -> List[Model]:
        if self._remaining == 0:
            raise StopIteration

        page = []
        while not page:
            page = next(self._pages)
        if self._remaining is not None:
            page = page[:self._remaining]

        records = [self._runner._to_record(item) for item in page]
        for item in page:
            self._advance(item)
        return records
