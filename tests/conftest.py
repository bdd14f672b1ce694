"""
Test configuration and fixtures for the datastore.

Provides datastores backed by moto's in-process DynamoDB.
"""

import pytest
from moto import mock_aws

from dynamodb_datastore import Datastore, DatastoreConfig


@pytest.fixture
def datastore_config():
    """Datastore configuration for mocked testing."""
    return DatastoreConfig(
        aws_access_key_id="test_key",
        aws_secret_access_key="test_secret",
        region_name="us-east-1",
        endpoint_url=None,  # Use default AWS endpoint for moto
        environment="test",
        table_prefix="test",
        namespace=""
    )


@pytest.fixture
def mock_dynamodb():
    """Run the test against moto's DynamoDB."""
    with mock_aws():
        yield


@pytest.fixture
def datastore(mock_dynamodb, datastore_config):
    """Datastore with its table provisioned in moto."""
    datastore = Datastore(datastore_config)
    datastore.create_table()
    yield datastore
    datastore.close()


@pytest.fixture
def namespaced_datastore(datastore, datastore_config):
    """Datastore sharing the table of `datastore` inside the 'tenant' namespace."""
    config = datastore_config.model_copy(update={'namespace': 'tenant'})
    namespaced = Datastore(config)
    yield namespaced
    namespaced.close()
