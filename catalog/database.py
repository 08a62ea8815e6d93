"""
MongoDB database utilities for async operations.
Handles connection, indexing, and CRUD operations for book records.
"""

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase, AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import ConnectionFailure, DuplicateKeyError

from .models import Book, BookFields, SortField, SortOrder
from .repository import DuplicateBookError

logger = structlog.get_logger(__name__)


def document_to_book(document: Dict[str, Any]) -> Book:
    """Convert a raw MongoDB document into a Book."""
    document = dict(document)
    document["id"] = str(document.pop("_id"))
    document.pop("__v", None)
    return Book(**document)


class MongoBookRepository:
    """
    Async MongoDB repository for book records.
    Handles connection, indexing, and the catalog's storage operations.
    """

    def __init__(self, connection_url: str, database_name: str, collection_name: str = "books"):
        """
        Initialize the repository.

        Args:
            connection_url: MongoDB connection URL
            database_name: Name of the database
            collection_name: Name of the collection
        """
        self.connection_url = connection_url
        self.database_name = database_name
        self.collection_name = collection_name
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self.collection: Optional[AsyncIOMotorCollection] = None

    async def connect(self) -> None:
        """Establish connection to MongoDB."""
        try:
            self.client = AsyncIOMotorClient(self.connection_url, tz_aware=True)
            self.database = self.client[self.database_name]
            self.collection = self.database[self.collection_name]

            # Test connection
            await self.client.admin.command('ping')
            logger.info("Successfully connected to MongoDB",
                        database=self.database_name,
                        collection=self.collection_name)

            await self._create_indexes()

        except ConnectionFailure as e:
            logger.error("Failed to connect to MongoDB", error=str(e))
            raise

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")

    async def _create_indexes(self) -> None:
        """
        Create the unique ISBN index and the indexes behind search and sort.
        The unique index is what keeps concurrent creates from duplicating a book.
        """
        try:
            await self.collection.create_index("isbn", unique=True)
            await self.collection.create_index("category")
            await self.collection.create_index("title")
            await self.collection.create_index("year")

            logger.info("Successfully created MongoDB indexes")

        except Exception as e:
            logger.error("Failed to create indexes", error=str(e))
            raise

    async def _find_many(self, filter_query: Dict[str, Any], sort_query=None) -> List[Book]:
        cursor = self.collection.find(filter_query)
        if sort_query:
            cursor = cursor.sort(sort_query)
        documents = await cursor.to_list(length=None)
        return [document_to_book(document) for document in documents]

    async def find_all(self) -> List[Book]:
        """Retrieve every book."""
        try:
            return await self._find_many({})
        except Exception as e:
            logger.error("Failed to retrieve books", error=str(e))
            raise

    async def find_by_isbn(self, isbn: str) -> Optional[Book]:
        """
        Retrieve a book by its ISBN.

        Args:
            isbn: ISBN of the book

        Returns:
            Book instance or None if not found
        """
        try:
            document = await self.collection.find_one({"isbn": isbn})
            return document_to_book(document) if document else None
        except Exception as e:
            logger.error("Failed to retrieve book", isbn=isbn, error=str(e))
            raise

    async def insert(self, fields: BookFields) -> Book:
        """
        Insert a single book into the database.

        Args:
            fields: Validated book fields

        Returns:
            The stored book with its id and timestamps

        Raises:
            DuplicateBookError: If the unique ISBN index rejects the insert
        """
        now = datetime.now(timezone.utc)
        document = fields.model_dump()
        document["createdAt"] = now
        document["updatedAt"] = now

        try:
            result = await self.collection.insert_one(document)
        except DuplicateKeyError:
            logger.warning("Book already exists", isbn=fields.isbn)
            raise DuplicateBookError(fields.isbn)
        except Exception as e:
            logger.error("Failed to insert book", isbn=fields.isbn, error=str(e))
            raise

        document["_id"] = result.inserted_id
        logger.debug("Successfully inserted book", isbn=fields.isbn)
        return document_to_book(document)

    async def find_and_replace(self, isbn: str, changes: Dict[str, Any]) -> Optional[Book]:
        """
        Update a book's fields and return the updated document.

        Args:
            isbn: ISBN of the book to update
            changes: Fields to overwrite

        Returns:
            Updated Book, or None if not found
        """
        update_data = dict(changes)
        update_data.pop("isbn", None)
        update_data["updatedAt"] = datetime.now(timezone.utc)

        try:
            document = await self.collection.find_one_and_update(
                {"isbn": isbn},
                {"$set": update_data},
                return_document=ReturnDocument.AFTER
            )
        except Exception as e:
            logger.error("Failed to update book", isbn=isbn, error=str(e))
            raise

        if document is None:
            logger.warning("Book not found for update", isbn=isbn)
            return None

        logger.debug("Successfully updated book", isbn=isbn)
        return document_to_book(document)

    async def find_and_remove(self, isbn: str) -> Optional[Book]:
        """
        Delete a book by ISBN.

        Args:
            isbn: ISBN of the book to delete

        Returns:
            The deleted Book, or None if not found
        """
        try:
            document = await self.collection.find_one_and_delete({"isbn": isbn})
        except Exception as e:
            logger.error("Failed to delete book", isbn=isbn, error=str(e))
            raise

        if document is None:
            logger.warning("Book not found for deletion", isbn=isbn)
            return None

        logger.debug("Successfully deleted book", isbn=isbn)
        return document_to_book(document)

    async def find_by_category_pattern(self, pattern: str) -> List[Book]:
        """
        Retrieve books whose category contains the pattern, case-insensitively.

        Args:
            pattern: Literal text to look for; regex metacharacters are escaped
        """
        filter_query = {"category": {"$regex": re.escape(pattern), "$options": "i"}}
        try:
            books = await self._find_many(filter_query)
            logger.debug("Retrieved books by category", category=pattern, count=len(books))
            return books
        except Exception as e:
            logger.error("Failed to retrieve books by category", category=pattern, error=str(e))
            raise

    async def find_all_sorted(self, field: SortField, order: SortOrder) -> List[Book]:
        """Retrieve every book sorted on a single field."""
        sort_direction = ASCENDING if order == SortOrder.ASC else DESCENDING
        try:
            return await self._find_many({}, [(field.value, sort_direction)])
        except Exception as e:
            logger.error("Failed to retrieve sorted books",
                         sort_by=field.value, sort_order=order.value, error=str(e))
            raise

    async def ping(self) -> None:
        """Check connectivity with the server."""
        await self.database.command("ping")
