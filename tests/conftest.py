"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId

from catalog.database import MongoDBManager, parse_object_id, utc_now
from catalog.errors import BookNotFoundError
from catalog.models import Book, require_fields, validate_book_fields


class FakeCursor:
    """Async-iterable stand-in for a Motor cursor."""

    def __init__(self, documents: List[Dict[str, Any]]):
        self.documents = list(documents)
        self.sort_spec = None

    def sort(self, spec):
        self.sort_spec = spec
        return self

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for document in self.documents:
            yield document


class InMemoryBookRepository:
    """
    Dict-backed double of BookRepository for HTTP tests.
    Uses the real presence and schema checks.
    """

    def __init__(self):
        self.documents: Dict[ObjectId, Dict[str, Any]] = {}

    def _newest_first(self, documents) -> List[Book]:
        ordered = sorted(documents, key=lambda d: (d["created_at"], d["_id"]), reverse=True)
        return [Book.from_document(document) for document in ordered]

    async def list_all(self) -> List[Book]:
        return self._newest_first(self.documents.values())

    async def get_by_id(self, book_id: str) -> Book:
        document = self.documents.get(parse_object_id(book_id))
        if document is None:
            raise BookNotFoundError(book_id)
        return Book.from_document(document)

    async def create(self, fields: Mapping[str, Any]) -> Book:
        require_fields(fields)
        book_fields = validate_book_fields(fields)
        now = utc_now()
        document = book_fields.to_document()
        document.update({"_id": ObjectId(), "created_at": now, "updated_at": now})
        self.documents[document["_id"]] = document
        return Book.from_document(document)

    async def update_by_id(self, book_id: str, fields: Mapping[str, Any]) -> Book:
        require_fields(fields)
        object_id = parse_object_id(book_id)
        document = self.documents.get(object_id)
        if document is None:
            raise BookNotFoundError(book_id)
        book_fields = validate_book_fields(fields)
        document.update(book_fields.to_document())
        document["updated_at"] = max(utc_now(), document["updated_at"] + timedelta(milliseconds=1))
        return Book.from_document(document)

    async def delete_by_id(self, book_id: str) -> Book:
        document = self.documents.pop(parse_object_id(book_id), None)
        if document is None:
            raise BookNotFoundError(book_id)
        return Book.from_document(document)

    async def search(self, query: str) -> List[Book]:
        needle = query.lower()
        matches = [
            document for document in self.documents.values()
            if any(needle in str(document.get(key, "")).lower()
                   for key in ("title", "author", "description", "publish_year"))
        ]
        return self._newest_first(matches)


@pytest.fixture
def in_memory_repository():
    """Empty in-memory repository."""
    return InMemoryBookRepository()


@pytest.fixture
def sample_book_payload():
    """Request body for a valid book."""
    return {
        "title": "Dune",
        "author": "Frank Herbert",
        "publishYear": 1965,
        "description": "A desert planet, a noble family and the spice melange.",
    }


@pytest.fixture
def sample_book_document():
    """A stored book document as MongoDB returns it."""
    created = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
    return {
        "_id": ObjectId("65a50b2f9d1e8a0012345678"),
        "title": "Foundation",
        "author": "Isaac Asimov",
        "publish_year": 1951,
        "description": "The Galactic Empire is falling and psychohistory predicts a dark age.",
        "created_at": created,
        "updated_at": created + timedelta(hours=2),
    }


@pytest.fixture
def mock_collection():
    """MagicMock collection with the async Motor methods mocked."""
    collection = MagicMock()
    collection.name = "books"
    collection.find_one = AsyncMock()
    collection.insert_one = AsyncMock()
    collection.find_one_and_update = AsyncMock()
    collection.find_one_and_delete = AsyncMock()
    collection.count_documents = AsyncMock()
    collection.database.command = AsyncMock()
    return collection


@pytest.fixture
def mock_db_manager():
    """Create a mock MongoDB manager for testing."""
    manager = AsyncMock(spec=MongoDBManager)
    manager.ping.return_value = True
    return manager


@pytest.fixture
def make_cursor():
    """Factory for async-iterable cursors over given documents."""
    return FakeCursor
