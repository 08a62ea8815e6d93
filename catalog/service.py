"""
Catalog service: the business rules behind the book endpoints.

Every operation returns an ``OperationResult``. Expected conditions (bad
input, duplicate ISBN, unknown ISBN) come back as a ``ServiceFailure``;
only store faults are raised.
"""

from enum import Enum
from typing import Any, Generic, List, Mapping, Optional, TypeVar

import structlog
from pydantic import BaseModel

from .models import Book, BookFields, SortField, SortOrder
from .repository import BookRepository, DuplicateBookError
from .validation import validate_book

logger = structlog.get_logger(__name__)

T = TypeVar("T")

NOT_FOUND_MESSAGE = "Book not found"
DUPLICATE_ISBN_MESSAGE = "ISBN must be unique"
MISSING_CATEGORY_MESSAGE = "Category query is required"
INVALID_SORT_MESSAGE = "Invalid sort query"

SORTABLE_FIELDS = {field.value for field in SortField}
SORT_ORDERS = {order.value for order in SortOrder}


class FailureKind(str, Enum):
    """Business failure categories."""
    INVALID_INPUT = "invalid_input"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"


class ServiceFailure(BaseModel):
    """A business rule the request did not satisfy."""
    kind: FailureKind
    message: str


class OperationResult(BaseModel, Generic[T]):
    """Either the value an operation produced or the reason it failed."""
    value: Optional[T] = None
    failure: Optional[ServiceFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: T) -> "OperationResult[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, kind: FailureKind, message: str) -> "OperationResult[T]":
        return cls(failure=ServiceFailure(kind=kind, message=message))


def _as_text(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def build_fields(payload: Mapping[str, Any]) -> BookFields:
    """Build the stored fields from a payload that passed ``validate_book``."""
    return BookFields(
        isbn=_as_text(payload["isbn"]),
        title=_as_text(payload["title"]),
        author=_as_text(payload["author"]),
        year=int(payload["year"]),
        category=_as_text(payload["category"]),
    )


class BookService:
    """Catalog operations over an injected book repository."""

    def __init__(self, repository: BookRepository):
        self.repository = repository

    async def list_books(self) -> OperationResult[List[Book]]:
        books = await self.repository.find_all()
        return OperationResult[List[Book]].success(books)

    async def get_book(self, isbn: str) -> OperationResult[Book]:
        book = await self.repository.find_by_isbn(isbn)
        if book is None:
            return OperationResult[Book].fail(FailureKind.NOT_FOUND, NOT_FOUND_MESSAGE)
        return OperationResult[Book].success(book)

    async def create_book(self, payload: Mapping[str, Any]) -> OperationResult[Book]:
        """
        Validate and store a new book.

        The existence check and the insert are separate store calls. A
        concurrent create of the same ISBN that slips between them is
        rejected by the store's unique index and reported as a conflict.
        """
        error = validate_book(payload)
        if error:
            logger.info("Rejected book payload", error=error)
            return OperationResult[Book].fail(FailureKind.INVALID_INPUT, error)

        fields = build_fields(payload)

        existing = await self.repository.find_by_isbn(fields.isbn)
        if existing is not None:
            logger.info("Duplicate ISBN on create", isbn=fields.isbn)
            return OperationResult[Book].fail(FailureKind.CONFLICT, DUPLICATE_ISBN_MESSAGE)

        try:
            book = await self.repository.insert(fields)
        except DuplicateBookError:
            logger.warning("Duplicate ISBN rejected by store", isbn=fields.isbn)
            return OperationResult[Book].fail(FailureKind.CONFLICT, DUPLICATE_ISBN_MESSAGE)

        logger.info("Book created", isbn=book.isbn)
        return OperationResult[Book].success(book)

    async def update_book(self, isbn: str, payload: Mapping[str, Any]) -> OperationResult[Book]:
        """
        Replace every field of the book stored under ``isbn`` except the ISBN itself.

        The payload must still carry a valid ``isbn``; it is validated but
        never written.
        """
        error = validate_book(payload)
        if error:
            logger.info("Rejected book payload", isbn=isbn, error=error)
            return OperationResult[Book].fail(FailureKind.INVALID_INPUT, error)

        fields = build_fields(payload)

        book = await self.repository.find_and_replace(isbn, fields.replacement())
        if book is None:
            return OperationResult[Book].fail(FailureKind.NOT_FOUND, NOT_FOUND_MESSAGE)

        logger.info("Book updated", isbn=isbn)
        return OperationResult[Book].success(book)

    async def delete_book(self, isbn: str) -> OperationResult[Book]:
        book = await self.repository.find_and_remove(isbn)
        if book is None:
            return OperationResult[Book].fail(FailureKind.NOT_FOUND, NOT_FOUND_MESSAGE)

        logger.info("Book deleted", isbn=isbn)
        return OperationResult[Book].success(book)

    async def search_by_category(self, category: Optional[str]) -> OperationResult[List[Book]]:
        """Find books whose category contains the query, ignoring case."""
        if not category:
            return OperationResult[List[Book]].fail(FailureKind.INVALID_INPUT, MISSING_CATEGORY_MESSAGE)

        books = await self.repository.find_by_category_pattern(category.lower())
        return OperationResult[List[Book]].success(books)

    async def sort_books(self, by: Optional[str], order: Optional[str]) -> OperationResult[List[Book]]:
        """List every book ordered by ``title`` or ``year``, ascending or descending."""
        if by not in SORTABLE_FIELDS or order not in SORT_ORDERS:
            return OperationResult[List[Book]].fail(FailureKind.INVALID_INPUT, INVALID_SORT_MESSAGE)

        books = await self.repository.find_all_sorted(SortField(by), SortOrder(order))
        return OperationResult[List[Book]].success(books)
