from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union
import uuid

from sqlalchemy import (
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    Uuid,
)

from .errors import ValidationError
from .helpers.slug_helpers import generate_slug


metadata = MetaData()

movies_table = Table(
    "movies",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("slug", Text, nullable=False),
    Column("title", Text, nullable=False),
    Column("yearofrelease", Integer, nullable=False),
)

Index("movies_slug_idx", movies_table.c.slug, unique=True)

genres_table = Table(
    "genres",
    metadata,
    Column("movieid", Uuid, ForeignKey("movies.id"), primary_key=True),
    Column("name", Text, primary_key=True),
)

ratings_table = Table(
    "ratings",
    metadata,
    Column("userid", Uuid, primary_key=True),
    Column("movieid", Uuid, ForeignKey("movies.id"), primary_key=True),
    Column("rating", Integer, nullable=False),
)


DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 10


class SortField(str, Enum):
    """Columns a movie listing may be ordered by."""
    TITLE = "title"
    YEAR_OF_RELEASE = "yearofrelease"


class SortOrder(str, Enum):
    ASCENDING = "asc"
    DESCENDING = "desc"


@dataclass
class Movie:
    """A catalog movie with its genre set and rating enrichment."""

    id: uuid.UUID
    title: str
    year_of_release: int
    genres: List[str] = field(default_factory=list)
    # Derived from the ratings table, never stored on the movie row
    rating: Optional[float] = None
    user_rating: Optional[int] = None

    @property
    def slug(self) -> str:
        return generate_slug(self.title, self.year_of_release)


@dataclass(frozen=True)
class MovieRating:
    """One of a user's ratings, as listed for that user."""

    movie_id: uuid.UUID
    slug: str
    rating: int


@dataclass
class GetAllOptions:
    """Filter, sort and paging options for a movie listing."""

    title: Optional[str] = None
    year: Optional[int] = None
    sort_field: Optional[SortField] = None
    sort_order: SortOrder = SortOrder.ASCENDING
    user_id: Optional[uuid.UUID] = None
    page: int = DEFAULT_PAGE
    page_size: int = DEFAULT_PAGE_SIZE

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    @classmethod
    def from_request(
        cls,
        title: Optional[str] = None,
        year: Optional[int] = None,
        sort_by: Optional[str] = None,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
        user_id: Union[uuid.UUID, str, None] = None,
    ) -> "GetAllOptions":
        """
        Build options from raw request values.

        ``sort_by`` is a field name with an optional ``+`` (ascending) or
        ``-`` (descending) prefix. Fields outside the allow-list raise
        ``ValidationError``.
        """
        sort_field = None
        sort_order = SortOrder.ASCENDING
        if sort_by:
            name = sort_by.strip()
            if name.startswith("-"):
                sort_order = SortOrder.DESCENDING
                name = name[1:]
            elif name.startswith("+"):
                name = name[1:]
            try:
                sort_field = SortField(name.lower())
            except ValueError:
                allowed = ", ".join(f.value for f in SortField)
                raise ValidationError(
                    [f"You can only sort by: {allowed}"]
                ) from None

        if isinstance(user_id, str):
            try:
                user_id = uuid.UUID(user_id)
            except ValueError:
                raise ValidationError([f"Invalid user id: {user_id!r}"]) from None

        return cls(
            title=title or None,
            year=year,
            sort_field=sort_field,
            sort_order=sort_order,
            user_id=user_id,
            page=DEFAULT_PAGE if page is None else page,
            page_size=DEFAULT_PAGE_SIZE if page_size is None else page_size,
        )
