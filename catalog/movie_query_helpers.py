"""
Movie Query Helpers
Builds the aggregate movie queries (filter, sort, paginate, rating join)
and hydrates rows into Movie objects.

Only values are bound as parameters. Identifiers that end up in the query
text (sort column, lookup column) come from fixed lookup tables.
"""

from decimal import Decimal
import logging
from typing import Dict, Iterable, List, Optional, Tuple
import uuid

from sqlalchemy import Uuid, bindparam, text
from sqlalchemy.engine import Connection

from .helpers.sql_helpers import LIKE_ESCAPE_CHAR, contains_pattern, validate_identifier, validate_limit
from .models import DEFAULT_PAGE_SIZE, GetAllOptions, Movie, SortField, SortOrder

logger = logging.getLogger(__name__)

# Upper bound for LIMIT regardless of what the caller validated
MAX_QUERY_LIMIT = 1000

_MOVIE_SELECT = """
    SELECT m.id, m.slug, m.title, m.yearofrelease,
           ROUND(AVG(r.rating), 1) AS rating,
           myr.rating AS userrating
    FROM movies m
    LEFT JOIN ratings r ON m.id = r.movieid
    LEFT JOIN ratings myr ON m.id = myr.movieid AND myr.userid = :user_id
"""

_MOVIE_GROUP_BY = "GROUP BY m.id, m.slug, m.title, m.yearofrelease, myr.rating"

ORDER_BY_CLAUSES = {
    None: "ORDER BY m.id",
    (SortField.TITLE, SortOrder.ASCENDING): "ORDER BY m.title ASC, m.id",
    (SortField.TITLE, SortOrder.DESCENDING): "ORDER BY m.title DESC, m.id",
    (SortField.YEAR_OF_RELEASE, SortOrder.ASCENDING): "ORDER BY m.yearofrelease ASC, m.id",
    (SortField.YEAR_OF_RELEASE, SortOrder.DESCENDING): "ORDER BY m.yearofrelease DESC, m.id",
}

LOOKUP_COLUMNS = ("id", "slug")


def _order_by_clause(sort_field, sort_order) -> str:
    if sort_field is None:
        return ORDER_BY_CLAUSES[None]
    try:
        key = (SortField(sort_field), SortOrder(sort_order))
    except ValueError:
        raise ValueError(f"Unsupported sort: {sort_field!r} {sort_order!r}") from None
    return ORDER_BY_CLAUSES[key]


def _filter_clauses(title: Optional[str], year: Optional[int]) -> Tuple[List[str], Dict]:
    clauses = []
    params = {}
    if title:
        clauses.append(f"LOWER(m.title) LIKE LOWER(:title_pattern) ESCAPE '{LIKE_ESCAPE_CHAR}'")
        params["title_pattern"] = contains_pattern(title)
    if year is not None:
        clauses.append("m.yearofrelease = :year")
        params["year"] = year
    return clauses, params


def _where(clauses: List[str]) -> str:
    if not clauses:
        return ""
    return "WHERE " + " AND ".join(clauses)


def build_get_all_query(options: GetAllOptions):
    """
    Build the listing query for GetAllOptions.

    Filters are applied first, then the ORDER BY, then LIMIT/OFFSET.

    Args:
        options: GetAllOptions (sort field must already be a SortField)

    Returns:
        (TextClause, params dict)

    Raises:
        ValueError: If the sort field/order is not in the allow-list
    """
    order_by = _order_by_clause(options.sort_field, options.sort_order)
    clauses, params = _filter_clauses(options.title, options.year)

    limit = validate_limit(options.page_size, max_limit=MAX_QUERY_LIMIT, default=DEFAULT_PAGE_SIZE)
    offset = max(options.offset, 0)

    query = text(f"""
        {_MOVIE_SELECT}
        {_where(clauses)}
        {_MOVIE_GROUP_BY}
        {order_by}
        LIMIT :limit OFFSET :offset
    """).bindparams(bindparam("user_id", type_=Uuid)).columns(id=Uuid)

    params.update({
        "user_id": options.user_id,
        "limit": limit,
        "offset": offset,
    })
    return query, params


def build_count_query(title: Optional[str] = None, year: Optional[int] = None):
    """Count of movies matching the same filters as build_get_all_query."""
    clauses, params = _filter_clauses(title, year)
    query = text(f"SELECT COUNT(m.id) FROM movies m {_where(clauses)}")
    return query, params


def build_movie_lookup_query(key: str):
    """
    Single-movie query keyed by ``id`` or ``slug``; the value is bound as ``:key_value``.
    """
    column = validate_identifier(key, LOOKUP_COLUMNS)
    query = text(f"""
        {_MOVIE_SELECT}
        WHERE m.{column} = :key_value
        {_MOVIE_GROUP_BY}
    """)
    binds = [bindparam("user_id", type_=Uuid)]
    if column == "id":
        binds.append(bindparam("key_value", type_=Uuid))
    return query.bindparams(*binds).columns(id=Uuid)


def fetch_genres(conn: Connection, movie_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, List[str]]:
    """
    Load the genres of several movies in one query (avoids N+1).

    Returns:
        Dict[UUID, List[str]]: movie id -> sorted genre names
    """
    movie_ids = list(movie_ids)
    if not movie_ids:
        return {}

    query = text("""
        SELECT movieid, name
        FROM genres
        WHERE movieid IN :ids
        ORDER BY name
    """).bindparams(bindparam("ids", expanding=True, type_=Uuid)).columns(movieid=Uuid)

    genres = {movie_id: [] for movie_id in movie_ids}
    for row in conn.execute(query, {"ids": movie_ids}):
        genres.setdefault(row.movieid, []).append(row.name)
    return genres


def normalize_rating(value) -> Optional[float]:
    """Aggregate rating as float rounded to one decimal; None stays None."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        value = float(value)
    return round(float(value), 1)


def row_to_movie(row, genres: Optional[List[str]] = None) -> Movie:
    user_rating = row.userrating
    return Movie(
        id=row.id,
        title=row.title,
        year_of_release=int(row.yearofrelease),
        genres=list(genres or []),
        rating=normalize_rating(row.rating),
        user_rating=int(user_rating) if user_rating is not None else None,
    )
