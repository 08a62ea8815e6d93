"""
Pydantic models for the book catalog.
Implements the Book record and the enumerations used for sorting.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .validation import MAX_YEAR, MIN_YEAR


class SortField(str, Enum):
    """Fields a catalog listing can be sorted by."""
    TITLE = "title"
    YEAR = "year"


class SortOrder(str, Enum):
    """Sort order options."""
    ASC = "asc"
    DESC = "desc"


class BookFields(BaseModel):
    """
    Editable fields of a book, as accepted from a validated payload.
    """
    isbn: str = Field(..., min_length=1, description="International Standard Book Number")
    title: str = Field(..., min_length=1, description="Title of the book")
    author: str = Field(..., min_length=1, description="Author of the book")
    year: int = Field(..., ge=MIN_YEAR, le=MAX_YEAR, description="Publication year")
    category: str = Field(..., min_length=1, description="Book category")

    def replacement(self) -> dict:
        """Fields written by an update; the ISBN is the key and never changes."""
        return self.model_dump(exclude={"isbn"})


class Book(BookFields):
    """
    Persisted book record, including the store-maintained metadata.
    """
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "id": "6650c2f1e4b0a1d2c3f4a5b6",
                "isbn": "9780441172719",
                "title": "Dune",
                "author": "Frank Herbert",
                "year": 1965,
                "category": "Science Fiction",
                "createdAt": "2024-01-15T10:30:00",
                "updatedAt": "2024-01-15T10:30:00",
            }
        },
    )

    id: Optional[str] = Field(None, description="Document identifier assigned by the store")
    created_at: Optional[datetime] = Field(None, alias="createdAt", description="Creation timestamp")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt", description="Last update timestamp")

    def to_response(self) -> dict:
        """Render the book as a JSON-compatible dictionary."""
        return self.model_dump(mode="json", by_alias=True)
