"""
Pytest configuration and shared fixtures.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from catalog.memory import InMemoryBookRepository
from catalog.service import BookService


@pytest.fixture
def memory_repository():
    """Create an empty in-memory repository."""
    return InMemoryBookRepository()


@pytest.fixture
def book_service(memory_repository):
    """Create a service over the in-memory repository."""
    return BookService(memory_repository)


@pytest.fixture
def failing_repository():
    """Create a repository whose every call fails like an unreachable server."""
    from pymongo.errors import ServerSelectionTimeoutError

    repository = AsyncMock(spec=InMemoryBookRepository)
    error = ServerSelectionTimeoutError("localhost:27017: connection refused")
    for method in (
        "find_all", "find_by_isbn", "insert", "find_and_replace",
        "find_and_remove", "find_by_category_pattern", "find_all_sorted", "ping",
    ):
        getattr(repository, method).side_effect = error
    return repository


@pytest.fixture
def sample_book_payload():
    """Create a valid book payload."""
    return {
        "isbn": "111",
        "title": "A",
        "author": "X",
        "year": 2000,
        "category": "Drama",
    }


@pytest.fixture
def catalog_payloads():
    """Payloads for a small catalog with distinct titles, years and categories."""
    return [
        {"isbn": "9780441172719", "title": "Dune", "author": "Frank Herbert",
         "year": 1965, "category": "Science Fiction"},
        {"isbn": "9780547928227", "title": "The Hobbit", "author": "J. R. R. Tolkien",
         "year": 1937, "category": "Fantasy"},
        {"isbn": "9780307387899", "title": "The Road", "author": "Cormac McCarthy",
         "year": 2006, "category": "Post-Apocalyptic Fiction"},
        {"isbn": "9780060850524", "title": "Brave New World", "author": "Aldous Huxley",
         "year": 1932, "category": "Dystopian"},
    ]


@pytest.fixture
def mock_collection():
    """Create a mock motor collection with an empty cursor."""
    collection = MagicMock()
    collection.find_one = AsyncMock(return_value=None)
    collection.insert_one = AsyncMock()
    collection.find_one_and_update = AsyncMock(return_value=None)
    collection.find_one_and_delete = AsyncMock(return_value=None)
    collection.create_index = AsyncMock()

    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.to_list = AsyncMock(return_value=[])
    collection.find.return_value = cursor
    return collection
