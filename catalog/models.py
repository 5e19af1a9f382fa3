"""
Pydantic models for book data validation and serialization.
Implements the Book schema with its field constraints and derived summary.
"""

import math
import re
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional
from pydantic import BaseModel, Field, ValidationError, computed_field, validator

from .errors import BookValidationError, MissingFieldsError


TITLE_MAX_LENGTH = 100
AUTHOR_MAX_LENGTH = 50
DESCRIPTION_MAX_LENGTH = 500
MIN_PUBLISH_YEAR = 1000
SUMMARY_LENGTH = 100

# Request body keys every write must carry, in API naming
REQUIRED_FIELDS = ("title", "author", "publishYear", "description")

REQUIRED_MESSAGES = {
    "title": "Book title is required",
    "author": "Author name is required",
    "publishYear": "Publish year is required",
    "description": "Book description is required",
}

_LEADING_INTEGER = re.compile(r"^\s*([+-]?)0*(\d+)")
# Longer digit runs are clamped; they are out of range either way
_MAX_YEAR_DIGITS = 9


def max_publish_year() -> int:
    """Latest accepted publish year: next calendar year."""
    return datetime.now().year + 1


def summarize(description: Optional[str]) -> str:
    """First SUMMARY_LENGTH characters of a description, with '...' if cut."""
    if not description:
        return ""
    if len(description) > SUMMARY_LENGTH:
        return description[:SUMMARY_LENGTH] + "..."
    return description


def coerce_publish_year(value: Any) -> Optional[int]:
    """
    Coerce a request value to an integer year.

    Integers pass through, floats are truncated and strings contribute the
    integer made of their leading sign and digits ("1965abc" -> 1965).
    Anything else yields None, which validation reports as non-numeric.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return int(value)
    if isinstance(value, str):
        match = _LEADING_INTEGER.match(value)
        if not match:
            return None
        sign, digits = match.groups()
        if len(digits) > _MAX_YEAR_DIGITS:
            digits = "9" * (_MAX_YEAR_DIGITS + 1)
        return int(sign + digits)
    return None


def _is_missing(value: Any) -> bool:
    if value is None or value is False or value == "":
        return True
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 0 or value != value
    return False


def missing_fields(payload: Any) -> List[str]:
    """
    Names of the required fields absent from a request body.

    A field counts as absent when the key is missing or its value is null,
    an empty string, false or zero.
    """
    if not isinstance(payload, Mapping):
        return list(REQUIRED_FIELDS)
    return [name for name in REQUIRED_FIELDS if _is_missing(payload.get(name))]


def require_fields(payload: Any) -> None:
    """Raise MissingFieldsError unless every required field is present."""
    missing = missing_fields(payload)
    if missing:
        raise MissingFieldsError(missing)


def _clean_text(value: Any, required_message: str, max_length: int, too_long_message: str) -> str:
    if value is None:
        raise ValueError(required_message)
    if isinstance(value, bool):
        value = "true" if value else "false"
    elif isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        raise ValueError(required_message)
    value = value.strip()
    if not value:
        raise ValueError(required_message)
    if len(value) > max_length:
        raise ValueError(too_long_message)
    return value


class BookFields(BaseModel):
    """
    The four content fields of a book, validated for writing.
    Text fields are trimmed before length checks.
    """
    title: str = Field(..., description="Book title")
    author: str = Field(..., description="Author name")
    publish_year: int = Field(..., alias="publishYear", description="Year of first publication")
    description: str = Field(..., description="Book description")

    @validator('title', pre=True)
    def validate_title(cls, v):
        """Trim and bound the title."""
        return _clean_text(v, REQUIRED_MESSAGES["title"], TITLE_MAX_LENGTH,
                           f"Title cannot exceed {TITLE_MAX_LENGTH} characters")

    @validator('author', pre=True)
    def validate_author(cls, v):
        """Trim and bound the author name."""
        return _clean_text(v, REQUIRED_MESSAGES["author"], AUTHOR_MAX_LENGTH,
                           f"Author name cannot exceed {AUTHOR_MAX_LENGTH} characters")

    @validator('description', pre=True)
    def validate_description(cls, v):
        """Trim and bound the description."""
        return _clean_text(v, REQUIRED_MESSAGES["description"], DESCRIPTION_MAX_LENGTH,
                           f"Description cannot exceed {DESCRIPTION_MAX_LENGTH} characters")

    @validator('publish_year', pre=True)
    def validate_publish_year(cls, v):
        """Coerce the year to an integer and check its range."""
        if v is None:
            raise ValueError(REQUIRED_MESSAGES["publishYear"])
        year = coerce_publish_year(v)
        if year is None:
            raise ValueError("Publish year must be a number")
        if year < MIN_PUBLISH_YEAR:
            raise ValueError(f"Publish year must be at least {MIN_PUBLISH_YEAR}")
        if year > max_publish_year():
            raise ValueError("Publish year cannot be in the future")
        return year

    class Config:
        """Pydantic configuration."""
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "title": "Dune",
                "author": "Frank Herbert",
                "publishYear": 1965,
                "description": "A desert planet, a noble family and the spice melange.",
            }
        }

    def to_document(self) -> Dict[str, Any]:
        """Storage representation of the content fields."""
        return {
            "title": self.title,
            "author": self.author,
            "publish_year": self.publish_year,
            "description": self.description,
        }


def _error_message(error: Dict[str, Any]) -> str:
    if error["type"] == "missing":
        field = str(error["loc"][0]) if error["loc"] else ""
        return REQUIRED_MESSAGES.get(field, error["msg"])
    ctx = error.get("ctx") or {}
    if "error" in ctx:
        return str(ctx["error"])
    return error["msg"]


def validate_book_fields(payload: Mapping[str, Any]) -> BookFields:
    """
    Validate a request body against the book schema.

    Raises:
        BookValidationError: listing the message of every violated field
    """
    try:
        return BookFields.model_validate(dict(payload))
    except ValidationError as e:
        raise BookValidationError([_error_message(error) for error in e.errors()])


class Book(BaseModel):
    """A persisted book as returned by the API."""
    id: str = Field(..., description="Unique book identifier")
    title: str = Field(..., description="Book title")
    author: str = Field(..., description="Author name")
    publish_year: Optional[int] = Field(None, alias="publishYear", description="Year of first publication")
    description: str = Field("", description="Book description")
    created_at: datetime = Field(..., alias="createdAt", description="Creation timestamp")
    updated_at: datetime = Field(..., alias="updatedAt", description="Last update timestamp")

    class Config:
        """Pydantic configuration."""
        populate_by_name = True

    @computed_field
    @property
    def summary(self) -> str:
        """Shortened description, computed on every serialization."""
        return summarize(self.description)

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "Book":
        """Build a Book from a stored document."""
        return cls(
            id=str(document["_id"]),
            title=document.get("title", ""),
            author=document.get("author", ""),
            publish_year=document.get("publish_year"),
            description=document.get("description", ""),
            created_at=document["created_at"],
            updated_at=document.get("updated_at", document["created_at"]),
        )
