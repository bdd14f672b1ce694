"""
Tests for the tag-driven key metadata strategy (models/base.py)
"""

from typing import List, Optional

import pytest
from pydantic import Field

from dynamodb_datastore import InvalidEntityTypeError, InvalidMetadataError, Key, Model, TaggedModel
from dynamodb_datastore.models import derive_kind
from dynamodb_datastore.models.base import tag_registration

from tests.helpers import Comment, User


class Category(Model):
    code: int = Field(default=0, json_schema_extra={"ds": "id"})


class Anonymous(Model):
    body: str = ""


class TwoIds(Model):
    first: str = Field(default="", json_schema_extra={"ds": "id"})
    second: str = Field(default="", json_schema_extra={"ds": "id"})


class BadMeta(Model):
    body: str = ""

    class Meta:
        id_field = "missing"


class ListId(Model):
    tags: List[str] = Field(default_factory=list, json_schema_extra={"ds": "id"})


class FlagId(Model):
    flag: bool = Field(default=False, json_schema_extra={"ds": "id"})


class TestTaggedModel:
    """Test TaggedModel key metadata."""

    def test_string_id_field(self):
        """Test a tagged string field as identifier."""
        metadata = TaggedModel(User(name="Diego")).key_metadata()

        assert metadata.kind == "Users"
        assert metadata.string_id == "Diego"
        assert metadata.int_id is None

    def test_int_id_field(self):
        """Test a tagged int field as identifier."""
        metadata = TaggedModel(Category(code=42)).key_metadata()

        assert metadata.kind == "Categories"
        assert metadata.int_id == 42
        assert metadata.string_id is None

    @pytest.mark.parametrize("record", [User(), Category(), Anonymous()])
    def test_unset_id_describes_incomplete_key(self, record):
        """Test that empty identifiers leave the metadata without id."""
        metadata = TaggedModel(record).key_metadata()

        assert metadata.string_id is None
        assert metadata.int_id is None

    def test_meta_options(self):
        """Test kind, id and parent taken from the Meta class."""
        post_key = Key(kind="Posts", int_id=7)

        metadata = TaggedModel(Comment(number=3, post=post_key)).key_metadata()

        assert metadata.kind == "Comments"
        assert metadata.int_id == 3
        assert metadata.parent == post_key

    def test_key_handling_delegates_to_record(self):
        """Test that keys set on the adapter land on the record."""
        user = User(name="Diego")
        tagged = TaggedModel(user)
        key = Key(kind="Users", string_id="Diego")

        tagged.set_key(key)

        assert user.key == key
        assert tagged.key == key
        assert tagged.to_item() == user.to_item()

    def test_load_item_delegates_to_record(self):
        """Test that loaded values land on the record."""
        user = User(name="Diego")

        TaggedModel(user).load_item({'_kind': 'Users', '_path': '/Users,s:Diego', 'name': 'Diego', 'twitter': '@drborges'})

        assert user.twitter == "@drborges"

    def test_wraps_models_only(self):
        """Test that only Model instances can be wrapped."""
        with pytest.raises(InvalidEntityTypeError):
            TaggedModel({"name": "Diego"})

    def test_more_than_one_tagged_field(self):
        """Test that two identifier fields are rejected."""
        with pytest.raises(InvalidMetadataError, match="more than one identifier"):
            TaggedModel(TwoIds()).key_metadata()

    def test_unknown_meta_field(self):
        """Test that Meta options must name existing fields."""
        with pytest.raises(InvalidMetadataError, match="no field named 'missing'"):
            TaggedModel(BadMeta()).key_metadata()

    @pytest.mark.parametrize("record", [ListId(tags=["a"]), FlagId(flag=True)])
    def test_unsupported_identifier_type(self, record):
        """Test that identifiers must be strings or integers."""
        with pytest.raises(InvalidMetadataError, match="must hold a str or int"):
            TaggedModel(record).key_metadata()

    def test_registration_is_cached(self):
        """Test that class scanning happens once per class."""
        assert tag_registration(User) is tag_registration(User)

    def test_repr(self):
        """Test the adapter representation."""
        assert repr(TaggedModel(User(name="Diego"))).startswith("TaggedModel(User(")


class TestDeriveKind:
    """Test kind derivation from class names."""

    @pytest.mark.parametrize("type_name, kind", [
        ("User", "Users"),
        ("Post", "Posts"),
        ("Category", "Categories"),
        ("Day", "Days"),
        ("Address", "Addresses"),
        ("Box", "Boxes"),
        ("Match", "Matches"),
    ])
    def test_derive_kind(self, type_name, kind):
        """Test pluralisation of class names."""
        assert derive_kind(type_name) == kind


class TestOptionalParent:
    """Test records whose parent field is unset."""

    def test_unset_parent(self):
        """Test that a missing parent leaves the metadata without parent."""
        metadata = TaggedModel(Comment(number=1)).key_metadata()

        assert metadata.parent is None

    def test_parent_field_type(self):
        """Test that parent fields hold keys."""
        comment = Comment(number=1, post=Key(kind="Posts", int_id=2))

        parent: Optional[Key] = TaggedModel(comment).key_metadata().parent

        assert str(parent) == "/Posts,2"
