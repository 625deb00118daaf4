# bookhaven/models.py
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Type, TypeVar

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator

from . import config
from .errors import ValidationError


ModelT = TypeVar("ModelT", bound=BaseModel)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def max_published_year() -> int:
    return utcnow().year + 1


def _check_year(value: int) -> int:
    if value < config.MIN_PUBLISHED_YEAR:
        raise ValueError("Invalid year")
    if value > max_published_year():
        raise ValueError("Year cannot be in the future")
    return value


class Identity(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: str = ""
    name: Optional[str] = None


class Profile(BaseModel):
    id: str
    name: str = config.DEFAULT_PROFILE_NAME
    email: str = ""
    created_at: datetime = Field(default_factory=utcnow)


class Book(BaseModel):
    id: str
    title: str
    author: str
    description: str = ""
    genre: str
    published_year: int
    # None for system-seeded books
    owner_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("published_year")
    @classmethod
    def _year_in_range(cls, value: int) -> int:
        return _check_year(value)


class Review(BaseModel):
    id: str
    book_id: str
    author_id: str
    rating: int = Field(ge=config.MIN_RATING, le=config.MAX_RATING)
    text: str = Field(min_length=1, max_length=config.REVIEW_TEXT_MAX)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class BookFields(BaseModel):
    """User-editable book fields, as submitted from the add/edit form."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str
    author: str
    description: str
    genre: str
    published_year: int

    @field_validator("title")
    @classmethod
    def _title(cls, value: str) -> str:
        if not value:
            raise ValueError("Title is required")
        if len(value) > config.TITLE_MAX:
            raise ValueError(f"Title must be less than {config.TITLE_MAX} characters")
        return value

    @field_validator("author")
    @classmethod
    def _author(cls, value: str) -> str:
        if not value:
            raise ValueError("Author is required")
        if len(value) > config.AUTHOR_MAX:
            raise ValueError(f"Author must be less than {config.AUTHOR_MAX} characters")
        return value

    @field_validator("description")
    @classmethod
    def _description(cls, value: str) -> str:
        if len(value) < config.DESCRIPTION_MIN:
            raise ValueError(
                f"Description must be at least {config.DESCRIPTION_MIN} characters"
            )
        if len(value) > config.DESCRIPTION_MAX:
            raise ValueError(
                f"Description must be less than {config.DESCRIPTION_MAX} characters"
            )
        return value

    @field_validator("genre")
    @classmethod
    def _genre(cls, value: str) -> str:
        if not value:
            raise ValueError("Genre is required")
        if len(value) > config.GENRE_MAX:
            raise ValueError(f"Genre must be less than {config.GENRE_MAX} characters")
        return value

    @field_validator("published_year")
    @classmethod
    def _year(cls, value: int) -> int:
        return _check_year(value)


class ReviewFields(BaseModel):
    """The rating and text of a review, as submitted from the review form."""

    model_config = ConfigDict(str_strip_whitespace=True)

    rating: int
    text: str

    @field_validator("rating")
    @classmethod
    def _rating(cls, value: int) -> int:
        if not config.MIN_RATING <= value <= config.MAX_RATING:
            raise ValueError(
                f"Rating must be between {config.MIN_RATING} and {config.MAX_RATING}"
            )
        return value

    @field_validator("text")
    @classmethod
    def _text(cls, value: str) -> str:
        if len(value) < config.REVIEW_TEXT_MIN:
            raise ValueError(
                f"Review must be at least {config.REVIEW_TEXT_MIN} characters"
            )
        if len(value) > config.REVIEW_TEXT_MAX:
            raise ValueError(
                f"Review must be less than {config.REVIEW_TEXT_MAX} characters"
            )
        return value


def parse_fields(model: Type[ModelT], data: Dict[str, Any]) -> ModelT:
    """Validate form data into ``model`` or raise our ``ValidationError``.

    Only the first problem is reported, which is what the form shows
    inline next to the offending field.
    """
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or None
        cause = first.get("ctx", {}).get("error")
        message = str(cause) if cause is not None else first["msg"]
        raise ValidationError(message, field=field) from exc
