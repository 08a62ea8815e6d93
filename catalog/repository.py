"""
Storage contract the catalog service depends on.

Any document store can back the catalog as long as it provides these
operations. Implementations must also enforce uniqueness of ``isbn`` on
their own: the service checks for an existing book before inserting, but
that read and the following write are not atomic, so two concurrent
creates with the same ISBN can both pass the check.
"""

from typing import Any, Dict, List, Optional, Protocol

from .models import Book, BookFields, SortField, SortOrder


class DuplicateBookError(Exception):
    """Raised by ``insert`` when the store already holds the ISBN."""

    def __init__(self, isbn: str):
        super().__init__(f"Book with ISBN '{isbn}' already exists")
        self.isbn = isbn


class BookRepository(Protocol):
    """
    Port for persisting and retrieving books.

    Store failures (unreachable server, driver errors) are raised as
    exceptions and are not retried.
    """

    async def find_all(self) -> List[Book]:
        """Return every book in store iteration order."""
        ...

    async def find_by_isbn(self, isbn: str) -> Optional[Book]:
        """Return the book with this ISBN, or None."""
        ...

    async def insert(self, fields: BookFields) -> Book:
        """
        Persist a new book and stamp its creation and update times.

        Raises:
            DuplicateBookError: If a book with the same ISBN exists
        """
        ...

    async def find_and_replace(self, isbn: str, changes: Dict[str, Any]) -> Optional[Book]:
        """Overwrite the given fields of the book with this ISBN and return its new state."""
        ...

    async def find_and_remove(self, isbn: str) -> Optional[Book]:
        """Delete the book with this ISBN and return it as it was."""
        ...

    async def find_by_category_pattern(self, pattern: str) -> List[Book]:
        """Return books whose category contains ``pattern``, ignoring case."""
        ...

    async def find_all_sorted(self, field: SortField, order: SortOrder) -> List[Book]:
        """Return every book ordered by a single field."""
        ...

    async def ping(self) -> None:
        """Raise if the store cannot be reached."""
        ...
