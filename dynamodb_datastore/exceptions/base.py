"""
Root of the datastore error hierarchy.

Errors raised by the datastore itself carry the failing record type, kind or
table in ``context`` so log lines and test assertions can name what went
wrong without parsing the message.
"""

from typing import Any, Dict, Optional


class DatastoreError(Exception):
    """Raised by key building, record conversion and datastore operations.

    DynamoDB's own ClientErrors are never wrapped in this class; only
    failures detected before or after the store call are.

    Attributes:
        message: What failed, phrased for the caller
        original_error: Lower-level exception this error was raised from
        context: Record type, kind, table or other details of the failure
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.original_error = original_error
        self.context = dict(context or {})
        super().__init__(message)

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{name}={value}" for name, value in self.context.items())
        return f"{self.message} (Context: {details})"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, context={self.context!r})"
