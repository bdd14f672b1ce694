"""
Tests for record <-> DynamoDB item conversion (models/base.py)
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Set
from uuid import UUID

import pytest

from dynamodb_datastore import Key, Model, ValidationError
from dynamodb_datastore.models.base import to_dynamodb_value


class Status(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


class Author(Model):
    name: str = ""
    score: float = 0.0


class Article(Model):
    title: str = ""
    status: Status = Status.DRAFT
    rating: float = 0.0
    views: int = 0
    created_at: Optional[datetime] = None
    published_on: Optional[date] = None
    labels: Set[str] = set()
    scores: List[float] = []
    extra: Dict[str, int] = {}
    author: Optional[Author] = None
    related: Optional[Key] = None


class TestToDynamoDBValue:
    """Test Python to DynamoDB value conversion."""

    def test_float_becomes_decimal(self):
        assert to_dynamodb_value(1.5) == Decimal("1.5")

    def test_bool_is_kept(self):
        assert to_dynamodb_value(True) is True

    def test_datetime_becomes_iso_string(self):
        value = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

        assert to_dynamodb_value(value) == "2024-01-02T03:04:05+00:00"

    def test_collections(self):
        assert to_dynamodb_value((1.5, 2)) == [Decimal("1.5"), 2]
        assert to_dynamodb_value({"a": [0.5]}) == {"a": [Decimal("0.5")]}

    def test_enum_and_uuid(self):
        uuid = UUID("12345678-1234-5678-1234-567812345678")

        assert to_dynamodb_value(Status.PUBLISHED) == "published"
        assert to_dynamodb_value(uuid) == str(uuid)

    def test_key_becomes_token(self):
        key = Key(kind="Posts", int_id=7)

        assert to_dynamodb_value(key) == key.encode()


class TestItemConversion:
    """Test Model.to_item, from_item and load_item."""

    def test_to_item(self):
        """Test that every field is converted."""
        article = Article(
            title="Hello",
            status=Status.PUBLISHED,
            rating=4.5,
            created_at=datetime(2024, 1, 2, tzinfo=timezone.utc),
            published_on=date(2024, 1, 3),
            labels={"go"},
            author=Author(name="Borges", score=1.25),
            related=Key(kind="Posts", int_id=7)
        )

        item = article.to_item()

        assert item['title'] == "Hello"
        assert item['status'] == "published"
        assert item['rating'] == Decimal("4.5")
        assert item['created_at'] == "2024-01-02T00:00:00+00:00"
        assert item['published_on'] == "2024-01-03"
        assert item['labels'] == ["go"]
        assert item['author'] == {'name': "Borges", 'score': Decimal("1.25")}
        assert item['related'] == Key(kind="Posts", int_id=7).encode()

    def test_none_is_stored(self):
        """Test that unset optional fields are kept as None."""
        item = Article().to_item()

        assert 'created_at' in item
        assert item['created_at'] is None

    def test_key_is_not_a_field(self):
        """Test that the resolved key never becomes an attribute."""
        article = Article(title="Hello")
        article.set_key(Key(kind="Articles", int_id=1))

        assert set(article.to_item()) == set(Article.model_fields)

    def test_from_stored_item(self):
        """Test that stored values validate back into Python types."""
        key = Key(kind="Articles", int_id=1)
        item = {
            '_kind': 'Articles',
            '_path': '/Articles,i:00000000000000000001',
            'title': 'Hello',
            'status': 'published',
            'rating': Decimal('4.5'),
            'views': Decimal('10'),
            'created_at': '2024-01-02T00:00:00+00:00',
            'published_on': '2024-01-03',
            'labels': ['go'],
            'scores': [Decimal('0.5')],
            'extra': {'likes': Decimal('3')},
            'author': {'name': 'Borges', 'score': Decimal('1.25')},
            'related': Key(kind="Posts", int_id=7).encode(),
        }

        article = Article.from_item(item, key)

        assert article.key == key
        assert article.status is Status.PUBLISHED
        assert article.rating == 4.5
        assert article.views == 10
        assert article.created_at == datetime(2024, 1, 2, tzinfo=timezone.utc)
        assert article.published_on == date(2024, 1, 3)
        assert article.labels == {"go"}
        assert article.scores == [0.5]
        assert article.extra == {'likes': 3}
        assert article.author == Author(name="Borges", score=1.25)
        assert article.related == Key(kind="Posts", int_id=7)

    def test_load_item_replaces_fields(self):
        """Test that load_item overwrites every field in place."""
        article = Article(title="Old", views=99)

        article.load_item({'title': 'New'})

        assert article.title == "New"
        assert article.views == 0

    def test_invalid_item(self):
        """Test that items that no longer validate raise ValidationError."""
        with pytest.raises(ValidationError, match="Failed to convert DynamoDB item to Article") as exc_info:
            Article.from_item({'views': 'many'})

        assert 'views' in exc_info.value.errors
