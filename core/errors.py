# core/errors.py
from __future__ import annotations
from typing import List, Optional


class ConsoleError(Exception):
    """Base class for errors reported to the console operator."""


class NotFoundError(ConsoleError):
    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"{collection}/{doc_id} not found")
        self.collection = collection
        self.doc_id = doc_id


class ValidationError(ConsoleError):
    """Input rejected before any store call."""


class StoreError(ConsoleError):
    """The document store failed (IO, network, permissions)."""


class AuthError(ConsoleError):
    def __init__(self, message: str, *, rate_limited: bool = False):
        super().__init__(message)
        self.rate_limited = rate_limited


class PartialDeleteError(ConsoleError):
    """
    A multi-document delete stopped short of completion.
    Deletes that already happened are not rolled back.
    """

    def __init__(self, user_id: str, deleted: List[str], failed: List[str], cause: Optional[BaseException] = None):
        super().__init__(
            f"user {user_id}: deleted {len(deleted)} certificate(s), "
            f"{len(failed)} failed; profile kept"
        )
        self.user_id = user_id
        self.deleted = list(deleted)
        self.failed = list(failed)
        self.cause = cause
