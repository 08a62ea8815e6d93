"""
Unit tests for the catalog service.
Tests business rules, typed failures and store error propagation.
"""

import pytest
from unittest.mock import AsyncMock
from pymongo.errors import ServerSelectionTimeoutError

from catalog.memory import InMemoryBookRepository
from catalog.models import Book, SortField, SortOrder
from catalog.repository import DuplicateBookError
from catalog.service import BookService, FailureKind, OperationResult, build_fields


async def seed(service, payloads):
    for payload in payloads:
        result = await service.create_book(payload)
        assert result.ok


class TestCreateBook:
    """Test cases for create_book."""

    @pytest.mark.asyncio
    async def test_create_returns_stored_book(self, book_service, sample_book_payload):
        """A valid payload is stored with an id and timestamps."""
        result = await book_service.create_book(sample_book_payload)

        assert result.ok
        book = result.value
        assert book.isbn == "111"
        assert book.title == "A"
        assert book.year == 2000
        assert book.id is not None
        assert book.created_at is not None
        assert book.created_at == book.updated_at

    @pytest.mark.asyncio
    async def test_create_invalid_payload(self, book_service, memory_repository):
        """Validation failures are reported as invalid input and nothing is stored."""
        result = await book_service.create_book({"isbn": "111", "title": "A"})

        assert not result.ok
        assert result.failure.kind == FailureKind.INVALID_INPUT
        assert result.failure.message == "Author is required"
        assert await memory_repository.find_all() == []

    @pytest.mark.asyncio
    async def test_create_duplicate_isbn(self, book_service, sample_book_payload):
        """A second book with the same ISBN is a conflict."""
        await book_service.create_book(sample_book_payload)

        result = await book_service.create_book({**sample_book_payload, "title": "Other"})

        assert result.failure.kind == FailureKind.CONFLICT
        assert result.failure.message == "ISBN must be unique"

    @pytest.mark.asyncio
    async def test_create_race_lost_to_unique_index(self, sample_book_payload):
        """A duplicate rejected by the store after the check passed is still a conflict."""
        repository = AsyncMock(spec=InMemoryBookRepository)
        repository.find_by_isbn.return_value = None
        repository.insert.side_effect = DuplicateBookError("111")
        service = BookService(repository)

        result = await service.create_book(sample_book_payload)

        assert result.failure.kind == FailureKind.CONFLICT
        assert result.failure.message == "ISBN must be unique"
        repository.insert.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_create_coerces_numeric_text(self, book_service, sample_book_payload):
        """Numeric ISBNs are stored as text and integral float years as ints."""
        sample_book_payload.update(isbn=111, year=2000.0)

        result = await book_service.create_book(sample_book_payload)

        assert result.value.isbn == "111"
        assert result.value.year == 2000
        assert isinstance(result.value.year, int)

    @pytest.mark.asyncio
    async def test_create_ignores_unknown_fields(self, book_service, sample_book_payload):
        """Only catalog fields are stored."""
        sample_book_payload["price"] = 12.5

        result = await book_service.create_book(sample_book_payload)

        assert "price" not in result.value.to_response()

    @pytest.mark.asyncio
    async def test_round_trip(self, book_service, sample_book_payload):
        """A created book reads back with the same fields."""
        await book_service.create_book(sample_book_payload)

        result = await book_service.get_book("111")

        for field, value in sample_book_payload.items():
            assert getattr(result.value, field) == value


class TestGetUpdateDelete:
    """Test cases for lookups and mutations by ISBN."""

    @pytest.mark.asyncio
    async def test_get_missing_book(self, book_service):
        result = await book_service.get_book("nope")
        assert result.failure.kind == FailureKind.NOT_FOUND
        assert result.failure.message == "Book not found"

    @pytest.mark.asyncio
    async def test_update_replaces_fields(self, book_service, sample_book_payload):
        """Every field except the ISBN is replaced."""
        created = (await book_service.create_book(sample_book_payload)).value

        result = await book_service.update_book(
            "111", {"isbn": "111", "title": "B", "author": "Y", "year": 2001, "category": "Comedy"}
        )

        assert result.ok
        book = result.value
        assert (book.title, book.author, book.year, book.category) == ("B", "Y", 2001, "Comedy")
        assert book.id == created.id
        assert book.created_at == created.created_at
        assert book.updated_at >= created.updated_at

    @pytest.mark.asyncio
    async def test_update_never_changes_isbn(self, book_service, sample_book_payload):
        """The ISBN in the body is validated but the path ISBN stays the key."""
        await book_service.create_book(sample_book_payload)

        result = await book_service.update_book("111", {**sample_book_payload, "isbn": "222"})

        assert result.value.isbn == "111"
        assert (await book_service.get_book("222")).failure.kind == FailureKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_update_requires_isbn_in_body(self, book_service, sample_book_payload):
        """The body must carry an ISBN even though the path supplies the key."""
        await book_service.create_book(sample_book_payload)
        del sample_book_payload["isbn"]

        result = await book_service.update_book("111", sample_book_payload)

        assert result.failure.kind == FailureKind.INVALID_INPUT
        assert result.failure.message == "ISBN is required"

    @pytest.mark.asyncio
    async def test_update_validates_before_lookup(self, book_service, sample_book_payload):
        """An invalid body on an unknown ISBN is invalid input, not not-found."""
        sample_book_payload["year"] = 1800

        result = await book_service.update_book("missing", sample_book_payload)

        assert result.failure.kind == FailureKind.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_update_missing_book(self, book_service, sample_book_payload):
        result = await book_service.update_book("missing", sample_book_payload)
        assert result.failure.kind == FailureKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_delete_returns_removed_book(self, book_service, sample_book_payload):
        await book_service.create_book(sample_book_payload)

        result = await book_service.delete_book("111")

        assert result.value.isbn == "111"
        assert (await book_service.get_book("111")).failure.kind == FailureKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_delete_missing_book(self, book_service):
        result = await book_service.delete_book("missing")
        assert result.failure.kind == FailureKind.NOT_FOUND
        assert result.failure.message == "Book not found"


class TestSearchAndSort:
    """Test cases for category search and sorted listings."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["fiction", "FICTION", "Science", "ence fic"])
    async def test_search_is_case_insensitive_substring(self, book_service, catalog_payloads, query):
        await seed(book_service, catalog_payloads)

        result = await book_service.search_by_category(query)

        categories = {book.category for book in result.value}
        assert "Science Fiction" in categories
        assert "Fantasy" not in categories

    @pytest.mark.asyncio
    async def test_search_matches_every_containing_category(self, book_service, catalog_payloads):
        await seed(book_service, catalog_payloads)

        result = await book_service.search_by_category("fiction")

        assert sorted(book.isbn for book in result.value) == ["9780307387899", "9780441172719"]

    @pytest.mark.asyncio
    async def test_search_lowercases_query(self, sample_book_payload):
        repository = AsyncMock(spec=InMemoryBookRepository)
        repository.find_by_category_pattern.return_value = []

        await BookService(repository).search_by_category("DRAMA")

        repository.find_by_category_pattern.assert_awaited_once_with("drama")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", [None, ""])
    async def test_search_requires_category(self, book_service, query):
        result = await book_service.search_by_category(query)
        assert result.failure.kind == FailureKind.INVALID_INPUT
        assert result.failure.message == "Category query is required"

    @pytest.mark.asyncio
    async def test_sort_by_year_ascending(self, book_service, catalog_payloads):
        await seed(book_service, catalog_payloads)

        result = await book_service.sort_books("year", "asc")

        years = [book.year for book in result.value]
        assert years == sorted(years)
        assert len(years) == len(catalog_payloads)

    @pytest.mark.asyncio
    async def test_sort_by_title_descending(self, book_service, catalog_payloads):
        await seed(book_service, catalog_payloads)

        result = await book_service.sort_books("title", "desc")

        titles = [book.title for book in result.value]
        assert titles == sorted(titles, reverse=True)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("by, order", [
        ("author", "asc"),
        ("year", "up"),
        (None, "asc"),
        ("title", None),
        ("TITLE", "asc"),
        ("", ""),
    ])
    async def test_sort_rejects_unknown_parameters(self, book_service, by, order):
        result = await book_service.sort_books(by, order)
        assert result.failure.kind == FailureKind.INVALID_INPUT
        assert result.failure.message == "Invalid sort query"

    @pytest.mark.asyncio
    async def test_sort_passes_enums_to_repository(self):
        repository = AsyncMock(spec=InMemoryBookRepository)
        repository.find_all_sorted.return_value = []

        await BookService(repository).sort_books("title", "desc")

        repository.find_all_sorted.assert_awaited_once_with(SortField.TITLE, SortOrder.DESC)

    @pytest.mark.asyncio
    async def test_list_books(self, book_service, catalog_payloads):
        await seed(book_service, catalog_payloads)

        result = await book_service.list_books()

        assert [book.isbn for book in result.value] == [p["isbn"] for p in catalog_payloads]


class TestStoreFailures:
    """Store errors propagate instead of becoming business failures."""

    @pytest.mark.asyncio
    async def test_list_propagates_store_error(self, failing_repository):
        with pytest.raises(ServerSelectionTimeoutError):
            await BookService(failing_repository).list_books()

    @pytest.mark.asyncio
    async def test_create_propagates_store_error(self, failing_repository, sample_book_payload):
        with pytest.raises(ServerSelectionTimeoutError):
            await BookService(failing_repository).create_book(sample_book_payload)

    @pytest.mark.asyncio
    async def test_invalid_input_checked_before_store(self, failing_repository):
        """Validation failures never touch the store."""
        result = await BookService(failing_repository).create_book({})
        assert result.failure.kind == FailureKind.INVALID_INPUT
        failing_repository.find_by_isbn.assert_not_awaited()


def test_build_fields_from_validated_payload(sample_book_payload):
    fields = build_fields({**sample_book_payload, "isbn": 978.0})
    assert fields.isbn == "978"
    assert fields.replacement() == {"title": "A", "author": "X", "year": 2000, "category": "Drama"}


def test_operation_result_helpers():
    book = Book(isbn="1", title="T", author="A", year=1999, category="C")

    success = OperationResult[Book].success(book)
    failure = OperationResult[Book].fail(FailureKind.NOT_FOUND, "Book not found")

    assert success.ok and success.value == book
    assert not failure.ok and failure.value is None
