"""
MongoDB database utilities for async operations.
Handles connection, indexing, and CRUD operations for book data.
"""

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

import structlog
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from .errors import BookNotFoundError, BookValidationError, StoreError
from .models import Book, require_fields, validate_book_fields

logger = structlog.get_logger(__name__)

NEWEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]


def utc_now() -> datetime:
    """Current UTC time truncated to the store's millisecond resolution."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def parse_object_id(book_id: str) -> ObjectId:
    """
    Convert a path id to an ObjectId.

    Raises:
        BookNotFoundError: if the id is not a valid ObjectId
    """
    if not ObjectId.is_valid(book_id):
        raise BookNotFoundError(book_id)
    return ObjectId(book_id)


class MongoDBManager:
    """
    Async MongoDB manager for the books collection.
    Owns the client connection and the collection indexes.
    """

    def __init__(
        self,
        connection_url: str,
        database_name: str,
        collection_name: str,
        server_selection_timeout_ms: int = 5000
    ):
        """
        Initialize MongoDB manager.

        Args:
            connection_url: MongoDB connection URL
            database_name: Name of the database
            collection_name: Name of the collection
            server_selection_timeout_ms: How long to wait for a reachable server
        """
        self.connection_url = connection_url
        self.database_name = database_name
        self.collection_name = collection_name
        self.server_selection_timeout_ms = server_selection_timeout_ms
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self.collection: Optional[AsyncIOMotorCollection] = None

    async def connect(self) -> None:
        """Establish connection to MongoDB."""
        try:
            self.client = AsyncIOMotorClient(
                self.connection_url,
                serverSelectionTimeoutMS=self.server_selection_timeout_ms,
                tz_aware=True
            )
            self.database = self.client[self.database_name]
            self.collection = self.database[self.collection_name]

            # Test connection
            await self.client.admin.command('ping')
            logger.info("Successfully connected to MongoDB",
                        database=self.database_name,
                        collection=self.collection_name)

            await self._create_indexes()

        except PyMongoError as e:
            logger.error("Failed to connect to MongoDB", error=str(e))
            raise StoreError("connect", str(e)) from e

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client:
            self.client.close()
            self.client = None
            logger.info("Disconnected from MongoDB")

    @property
    def is_connected(self) -> bool:
        return self.client is not None

    async def ping(self) -> bool:
        """Report whether the server currently answers a ping."""
        if not self.client:
            return False
        try:
            await self.client.admin.command('ping')
            return True
        except PyMongoError as e:
            logger.warning("MongoDB ping failed", error=str(e))
            return False

    async def _create_indexes(self) -> None:
        """Create indexes for listing order and title/author lookups."""
        await self.collection.create_index([("title", ASCENDING), ("author", ASCENDING)])
        await self.collection.create_index([("created_at", DESCENDING)])
        logger.info("Successfully created MongoDB indexes")

    def get_repository(self) -> "BookRepository":
        """Repository bound to the managed collection."""
        if self.collection is None:
            raise StoreError("get_repository", "database is not connected")
        return BookRepository(self.collection)


class BookRepository:
    """
    Persistence gateway for books.
    Every store failure is raised as StoreError.
    """

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    async def _find_sorted(self, filter_query: Dict[str, Any], operation: str) -> List[Book]:
        try:
            cursor = self.collection.find(filter_query).sort(NEWEST_FIRST)
            return [Book.from_document(document) async for document in cursor]
        except PyMongoError as e:
            logger.error("Failed to query books", operation=operation, error=str(e))
            raise StoreError(operation, str(e)) from e

    async def list_all(self) -> List[Book]:
        """All books, newest first."""
        books = await self._find_sorted({}, "list_all")
        logger.debug("Listed books", count=len(books))
        return books

    async def get_by_id(self, book_id: str) -> Book:
        """
        Get a single book by ID.

        Raises:
            BookNotFoundError: if the id is malformed or no book has it
        """
        object_id = parse_object_id(book_id)
        try:
            document = await self.collection.find_one({"_id": object_id})
        except PyMongoError as e:
            logger.error("Failed to get book by ID", book_id=book_id, error=str(e))
            raise StoreError("get_by_id", str(e)) from e

        if document is None:
            raise BookNotFoundError(book_id)
        return Book.from_document(document)

    async def create(self, fields: Mapping[str, Any]) -> Book:
        """
        Validate and insert a new book.

        Args:
            fields: Request body with title, author, publishYear and description

        Returns:
            The stored book with its generated id

        Raises:
            MissingFieldsError: if a required field is absent
            BookValidationError: if any field constraint is violated
        """
        require_fields(fields)
        book_fields = validate_book_fields(fields)

        now = utc_now()
        document = book_fields.to_document()
        document["created_at"] = now
        document["updated_at"] = now

        try:
            result = await self.collection.insert_one(document)
        except PyMongoError as e:
            logger.error("Failed to insert book", title=book_fields.title, error=str(e))
            raise StoreError("create", str(e)) from e

        document["_id"] = result.inserted_id
        logger.info("Book created", book_id=str(result.inserted_id), title=book_fields.title)
        return Book.from_document(document)

    async def update_by_id(self, book_id: str, fields: Mapping[str, Any]) -> Book:
        """
        Replace the content fields of a book and refresh updated_at.

        Returns:
            The book as stored after the update

        Raises:
            MissingFieldsError: if a required field is absent
            BookNotFoundError: if no book has the id
            BookValidationError: if any field constraint is violated
        """
        require_fields(fields)
        object_id = parse_object_id(book_id)

        try:
            book_fields = validate_book_fields(fields)
        except BookValidationError:
            # Unknown ids are reported as such whatever the payload
            if await self._exists(object_id):
                raise
            raise BookNotFoundError(book_id) from None

        content = {name: {"$literal": value} for name, value in book_fields.to_document().items()}
        # updated_at advances by at least one millisecond so it strictly increases
        content["updated_at"] = {"$max": [utc_now(), {"$add": ["$updated_at", 1]}]}

        try:
            document = await self.collection.find_one_and_update(
                {"_id": object_id},
                [{"$set": content}],
                return_document=ReturnDocument.AFTER
            )
        except PyMongoError as e:
            logger.error("Failed to update book by ID", book_id=book_id, error=str(e))
            raise StoreError("update_by_id", str(e)) from e

        if document is None:
            logger.warning("Book not found for update", book_id=book_id)
            raise BookNotFoundError(book_id)

        logger.info("Book updated", book_id=book_id)
        return Book.from_document(document)

    async def delete_by_id(self, book_id: str) -> Book:
        """
        Delete a book and return the removed record.

        Raises:
            BookNotFoundError: if no book has the id
        """
        object_id = parse_object_id(book_id)
        try:
            document = await self.collection.find_one_and_delete({"_id": object_id})
        except PyMongoError as e:
            logger.error("Failed to delete book", book_id=book_id, error=str(e))
            raise StoreError("delete_by_id", str(e)) from e

        if document is None:
            logger.warning("Book not found for deletion", book_id=book_id)
            raise BookNotFoundError(book_id)

        logger.info("Book deleted", book_id=book_id)
        return Book.from_document(document)

    async def search(self, query: str) -> List[Book]:
        """
        Books whose title, author or description contains the query,
        case-insensitively, or whose publish year contains it as digits.
        An empty query matches every book.
        """
        books = await self._find_sorted(build_search_filter(query), "search")
        logger.debug("Searched books", query=query, count=len(books))
        return books

    async def _exists(self, object_id: ObjectId) -> bool:
        try:
            return await self.collection.count_documents({"_id": object_id}, limit=1) > 0
        except PyMongoError as e:
            logger.error("Failed to check book existence", book_id=str(object_id), error=str(e))
            raise StoreError("update_by_id", str(e)) from e

    async def count(self) -> int:
        """Get total number of books in the collection."""
        try:
            return await self.collection.count_documents({})
        except PyMongoError as e:
            logger.error("Failed to get books count", error=str(e))
            raise StoreError("count", str(e)) from e

    async def stats(self) -> Dict[str, Any]:
        """Collection statistics for inspection and monitoring."""
        try:
            collection_stats = await self.collection.database.command("collStats", self.collection.name)
            with_year = await self.collection.count_documents({"publish_year": {"$exists": True, "$ne": None}})
            without_year = await self.collection.count_documents(
                {"$or": [{"publish_year": {"$exists": False}}, {"publish_year": None}]}
            )
        except PyMongoError as e:
            logger.error("Failed to get collection stats", error=str(e))
            raise StoreError("stats", str(e)) from e

        return {
            "total_books": collection_stats.get("count", 0),
            "data_size": collection_stats.get("size", 0),
            "average_document_size": collection_stats.get("avgObjSize", 0),
            "books_with_publish_year": with_year,
            "books_without_publish_year": without_year,
        }


def build_search_filter(query: str) -> Dict[str, Any]:
    """MongoDB filter for a literal, case-insensitive search."""
    if not query:
        return {}

    pattern = re.escape(query)
    text_match = {"$regex": pattern, "$options": "i"}
    return {
        "$or": [
            {"title": text_match},
            {"author": text_match},
            {"description": text_match},
            # publish_year is numeric, so match against its decimal rendering
            {"$expr": {"$regexMatch": {
                "input": {"$toString": "$publish_year"},
                "regex": pattern,
                "options": "i",
            }}},
        ]
    }
