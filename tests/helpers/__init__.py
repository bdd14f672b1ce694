"""
Test helpers for the datastore test suite.
"""

from .models import (
    Account,
    Comment,
    ModelMissingKind,
    Note,
    Post,
    Separated,
    Tag,
    User,
)

__all__ = [
    'Account',
    'Comment',
    'ModelMissingKind',
    'Note',
    'Post',
    'Separated',
    'Tag',
    'User',
]
