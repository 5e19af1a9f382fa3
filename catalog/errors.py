"""
Exceptions raised by the book catalog.
The HTTP layer maps each of them to a status code.
"""

from typing import List


class CatalogError(Exception):
    """Base class for catalog errors."""


class MissingFieldsError(CatalogError):
    """A write request did not supply every required field."""

    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        super().__init__(f"Missing required fields: {', '.join(self.missing)}")


class BookValidationError(CatalogError):
    """One or more field constraints were violated."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class BookNotFoundError(CatalogError):
    """No book exists for the given id."""

    def __init__(self, book_id: str):
        self.book_id = book_id
        super().__init__(f"Book '{book_id}' not found")


class StoreError(CatalogError):
    """The document store is unavailable or an operation failed."""

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation} failed: {detail}")
