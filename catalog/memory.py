"""
In-memory book repository.

Keeps records in a dict keyed by ISBN, preserving insertion order. Used by
the test suite and by local runs with ``STORE_BACKEND=memory``.
"""

from datetime import datetime, timezone
from operator import attrgetter
from typing import Any, Dict, List, Optional

from bson import ObjectId

from .models import Book, BookFields, SortField, SortOrder
from .repository import DuplicateBookError


class InMemoryBookRepository:
    """Dictionary-backed implementation of the book repository."""

    def __init__(self):
        self._books: Dict[str, Book] = {}

    async def find_all(self) -> List[Book]:
        return list(self._books.values())

    async def find_by_isbn(self, isbn: str) -> Optional[Book]:
        return self._books.get(isbn)

    async def insert(self, fields: BookFields) -> Book:
        if fields.isbn in self._books:
            raise DuplicateBookError(fields.isbn)

        now = datetime.now(timezone.utc)
        book = Book(id=str(ObjectId()), created_at=now, updated_at=now, **fields.model_dump())
        self._books[book.isbn] = book
        return book

    async def find_and_replace(self, isbn: str, changes: Dict[str, Any]) -> Optional[Book]:
        book = self._books.get(isbn)
        if book is None:
            return None

        update_data = {key: value for key, value in changes.items() if key != "isbn"}
        update_data["updated_at"] = datetime.now(timezone.utc)
        updated = book.model_copy(update=update_data)
        self._books[isbn] = updated
        return updated

    async def find_and_remove(self, isbn: str) -> Optional[Book]:
        return self._books.pop(isbn, None)

    async def find_by_category_pattern(self, pattern: str) -> List[Book]:
        needle = pattern.lower()
        return [book for book in self._books.values() if needle in book.category.lower()]

    async def find_all_sorted(self, field: SortField, order: SortOrder) -> List[Book]:
        return sorted(
            self._books.values(),
            key=attrgetter(field.value),
            reverse=order == SortOrder.DESC
        )

    async def ping(self) -> None:
        return None
