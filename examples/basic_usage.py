#!/usr/bin/env python3
"""
Basic usage examples for the DynamoDB datastore.

This example demonstrates:
1. Setting up configuration and provisioning the table
2. Records with explicit key metadata
3. Records with tag-driven key metadata and parent keys
4. Batch creates with allocated identifiers
5. Queries with filters, limits, iterators and cursors
"""

from typing import Optional

from pydantic import Field

from dynamodb_datastore import (
    Datastore,
    DatastoreConfig,
    ItemNotFoundError,
    Key,
    KeyMetadata,
    Model,
    TaggedModel,
)


class Tag(Model):
    name: str = ""
    owner: str = ""

    def key_metadata(self) -> KeyMetadata:
        return KeyMetadata(kind="Tags", string_id=self.name)


class Post(Model):
    description: str = ""
    published: bool = False

    def key_metadata(self) -> KeyMetadata:
        return KeyMetadata(kind="Posts")


class User(Model):
    name: str = Field(default="", json_schema_extra={"ds": "id"})
    twitter: str = ""


class Comment(Model):
    number: int = 0
    body: str = ""
    post: Optional[Key] = None

    class Meta:
        kind = "Comments"
        id_field = "number"
        parent_field = "post"


def main():
    """Demonstrate basic usage of the datastore."""

    # 1. Configure the DynamoDB connection
    print("1. Setting up datastore configuration...")
    config = DatastoreConfig.from_env()  # Uses environment variables

    # For DynamoDB Local, you might use:
    # config = DatastoreConfig.for_local_development()

    with Datastore(config) as datastore:
        datastore.create_table()

        # 2. Explicit key metadata
        print("2. Saving and loading a tag...")
        tag = Tag(name="golang", owner="Borges")
        datastore.update(tag)
        print(f"Saved tag under {tag.key}")  # /Tags,golang

        loaded_tag = Tag(name="golang")
        datastore.load(loaded_tag)
        print(f"Loaded tag owned by {loaded_tag.owner}")

        # 3. Tag-driven key metadata
        print("3. Creating a user...")
        user = User(name="Diego", twitter="@drborges")
        datastore.create(TaggedModel(user))
        print(f"Created user under {user.key}")  # /Users,Diego

        # 4. Allocated identifiers and batch creates
        print("4. Creating posts...")
        posts = [Post(description=f"Post {i}", published=i % 2 == 0) for i in range(5)]
        datastore.create_all(posts)
        print(f"Created posts: {', '.join(str(post.key) for post in posts)}")

        comment = Comment(number=1, body="First!", post=posts[0].key)
        datastore.create(TaggedModel(comment))
        print(f"Created comment under {comment.key}")

        # 5. Queries
        print("5. Querying posts...")
        runner = datastore.query(Post)
        published = runner.with_query(runner.query.filter("published", "=", True))
        print(f"Published posts: {published.count()}")

        iterator = runner.items_iterator(page_size=2)
        first_two = [next(iterator), next(iterator)]
        print(f"First page: {[post.description for post in first_two]}")

        # Resume later from the cursor
        rest = runner.start_from(iterator.cursor()).results([])
        print(f"Remaining posts: {[post.description for post in rest]}")

        comments = datastore.query(Comment)
        under_first = comments.with_query(comments.query.ancestor(posts[0].key)).results([])
        print(f"Comments on {posts[0].key}: {len(under_first)}")

        # 6. Deleting
        print("6. Deleting the tag...")
        datastore.delete(tag)
        try:
            datastore.load(Tag(name="golang"))
        except ItemNotFoundError as e:
            print(f"Tag is gone: {e}")

    print("\nDatastore example completed!")


if __name__ == "__main__":
    main()
