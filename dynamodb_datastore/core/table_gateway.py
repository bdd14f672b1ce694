"""
Thin DynamoDB Table Gateway

This module provides the key-value store primitives the datastore is built
on, as a lightweight wrapper around boto3:

- get / batch get / put / delete of single items
- transactional writes for all-or-nothing batches
- atomic identifier allocation for incomplete keys
- raw query pass-through
- table provisioning and connection lifecycle

The gateway adds no caching and no retries of its own. Errors raised by
DynamoDB (botocore ClientError) propagate to the caller unchanged; only the
failure to build the boto3 resource itself is reported as ConnectionError.
"""

import logging
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from ..config import DatastoreConfig
from ..exceptions import ConnectionError
from ..models.key import PARTITION_ATTRIBUTE, SORT_ATTRIBUTE

logger = logging.getLogger(__name__)

# DynamoDB BatchGetItem accepts at most 100 keys per request
BATCH_GET_LIMIT = 100

# Identifier counters share the table under this reserved partition
ALLOCATOR_PARTITION = "__allocator__"
ALLOCATOR_ATTRIBUTE = "next_id"


class TableGateway:
    """
    Thin gateway for the datastore table.

    Provides minimal, composable DynamoDB operations. Used by Datastore and
    QueryRunner rather than directly by clients.
    """

    def __init__(self, config: DatastoreConfig, table_name: Optional[str] = None):
        """Initialize table gateway.

        Args:
            config: Datastore configuration
            table_name: Full table name (defaults to config.get_table_name())
        """
        self.config = config
        self.table_name = table_name or config.get_table_name()
        self._dynamodb = None
        self._table = None

    @property
    def dynamodb(self):
        """Lazy initialization of DynamoDB resource."""
        if self._dynamodb is None:
            try:
                session = boto3.Session(
                    aws_access_key_id=self.config.aws_access_key_id,
                    aws_secret_access_key=self.config.aws_secret_access_key,
                    region_name=self.config.region_name
                )

                # Configure connection parameters
                dynamodb_config = {
                    'region_name': self.config.region_name
                }

                if self.config.endpoint_url:
                    dynamodb_config['endpoint_url'] = self.config.endpoint_url

                # Add retry and timeout configuration
                boto_config = Config(
                    retries={'max_attempts': self.config.retries},
                    max_pool_connections=self.config.max_pool_connections,
                    read_timeout=self.config.timeout_seconds,
                    connect_timeout=self.config.timeout_seconds
                )
                dynamodb_config['config'] = boto_config

                self._dynamodb = session.resource('dynamodb', **dynamodb_config)
            except Exception as e:
                raise ConnectionError(
                    f"Failed to connect to DynamoDB: {e}",
                    e,
                    {'region': self.config.region_name, 'endpoint': self.config.endpoint_url}
                ) from e
        return self._dynamodb

    @property
    def table(self):
        """
        Get boto3 DynamoDB Table resource.

        This is the primary interface for DynamoDB operations.
        """
        if self._table is None:
            try:
                self._table = self.dynamodb.Table(self.table_name)
            except Exception as e:
                raise ConnectionError(f"Failed to access table '{self.table_name}': {e}", e) from e
        return self._table

    def get_item(self, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Fetch one item with a strongly consistent read.

        Args:
            key: Primary key of the item

        Returns:
            The stored item, or None when nothing is stored under the key
        """
        response = self.table.get_item(Key=key, ConsistentRead=True)
        logger.debug(f"Get item from {self.table_name}: {key}")
        return response.get('Item')

    def batch_get_items(self, keys: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Fetch many items, chunked at the BatchGetItem limit.

        DynamoDB returns items in no particular order and may report part of
        a request as UnprocessedKeys; those are requested again until every
        key has been answered.

        Args:
            keys: Primary keys of the items

        Returns:
            The items found (missing keys are simply absent)
        """
        items = []
        for start in range(0, len(keys), BATCH_GET_LIMIT):
            request = {
                self.table_name: {
                    'Keys': keys[start:start + BATCH_GET_LIMIT],
                    'ConsistentRead': True
                }
            }
            while request:
                response = self.dynamodb.batch_get_item(RequestItems=request)
                items.extend(response.get('Responses', {}).get(self.table_name, []))
                request = response.get('UnprocessedKeys') or None

        logger.debug(f"Batch get {len(keys)} keys from {self.table_name}: {len(items)} found")
        return items

    def put_item(self, item: Dict[str, Any]) -> None:
        """
        Put item into the table, replacing any item stored under its key.

        Args:
            item: Item to store, including the key attributes
        """
        self.table.put_item(Item=item)
        logger.info(f"Put item in {self.table_name}: {item[PARTITION_ATTRIBUTE]} {item[SORT_ATTRIBUTE]}")

    def delete_item(self, key: Dict[str, Any]) -> None:
        """
        Delete item from the table. Deleting a missing item is not an error.

        Args:
            key: Primary key of the item to delete
        """
        self.table.delete_item(Key=key)
        logger.info(f"Deleted item from {self.table_name}: {key}")

    def transact_put_items(self, items: List[Dict[str, Any]]) -> None:
        """
        Put several items in one all-or-nothing transaction.

        Example:
            gateway.transact_put_items([
                {'_kind': 'Posts', '_path': '/Posts,i:...01', 'description': 'Post 1'},
                {'_kind': 'Posts', '_path': '/Posts,i:...02', 'description': 'Post 2'},
            ])
        """
        self.transact_write_items([
            {'Put': {'TableName': self.table_name, 'Item': item}}
            for item in items
        ])

    def transact_delete_items(self, keys: List[Dict[str, Any]]) -> None:
        """Delete several items in one all-or-nothing transaction."""
        self.transact_write_items([
            {'Delete': {'TableName': self.table_name, 'Key': key}}
            for key in keys
        ])

    def transact_write_items(self, transact_items: List[Dict[str, Any]]) -> None:
        """
        Execute transactional write operations.

        Args:
            transact_items: List of transaction items
        """
        if not transact_items:
            return
        self.dynamodb.meta.client.transact_write_items(
            TransactItems=transact_items
        )
        logger.info(f"Transaction of {len(transact_items)} writes completed on {self.table_name}")

    def allocate_ids(self, partition: str, count: int = 1) -> int:
        """
        Reserve a block of integer identifiers for one kind.

        The counter item is incremented atomically with UpdateItem ADD, so
        concurrent allocations never hand out the same identifier.

        Args:
            partition: Partition value of the kind (namespace included)
            count: Number of identifiers to reserve

        Returns:
            The first identifier of the reserved block; the block is
            [first, first + count)
        """
        response = self.table.update_item(
            Key={PARTITION_ATTRIBUTE: ALLOCATOR_PARTITION, SORT_ATTRIBUTE: partition},
            UpdateExpression='ADD #next :count',
            ExpressionAttributeNames={'#next': ALLOCATOR_ATTRIBUTE},
            ExpressionAttributeValues={':count': count},
            ReturnValues='UPDATED_NEW'
        )
        high = int(response['Attributes'][ALLOCATOR_ATTRIBUTE])
        logger.debug(f"Allocated {count} ids for {partition}: {high - count + 1}..{high}")
        return high - count + 1

    def query(self, **kwargs) -> Dict[str, Any]:
        """
        Execute DynamoDB Query operation.

        Raw pass-through to boto3. Use this for:
        - Key conditions on the kind partition
        - Pagination with ExclusiveStartKey
        - Filter expressions for server-side filtering
        - Select='COUNT' for counting

        Args:
            **kwargs: All boto3 query parameters

        Returns:
            Raw DynamoDB response
        """
        response = self.table.query(**kwargs)
        logger.debug(f"Query on {self.table_name} returned {response.get('Count', 0)} items")
        return response

    def create_table(self):
        """
        Create the datastore table if it does not exist yet.

        Returns:
            boto3 Table resource of the (existing or new) table
        """
        try:
            table = self.dynamodb.create_table(
                TableName=self.table_name,
                KeySchema=[
                    {'AttributeName': PARTITION_ATTRIBUTE, 'KeyType': 'HASH'},
                    {'AttributeName': SORT_ATTRIBUTE, 'KeyType': 'RANGE'}
                ],
                AttributeDefinitions=[
                    {'AttributeName': PARTITION_ATTRIBUTE, 'AttributeType': 'S'},
                    {'AttributeName': SORT_ATTRIBUTE, 'AttributeType': 'S'}
                ],
                BillingMode='PAY_PER_REQUEST'
            )
        except ClientError as e:
            if e.response['Error']['Code'] != 'ResourceInUseException':
                raise
            logger.debug(f"Table {self.table_name} already exists")
            return self.table

        table.wait_until_exists()
        logger.info(f"Created table {self.table_name}")
        self._table = table
        return table

    def close(self) -> None:
        """Release the underlying boto3 client and its connection pool."""
        if self._dynamodb is not None:
            self._dynamodb.meta.client.close()
            logger.debug(f"Closed DynamoDB connection for {self.table_name}")
        self._dynamodb = None
        self._table = None


def create_table_gateway(config: DatastoreConfig) -> TableGateway:
    """
    Factory function to create a TableGateway instance.

    Args:
        config: Datastore configuration

    Returns:
        Configured TableGateway instance
    """
    return TableGateway(config, config.get_table_name())
