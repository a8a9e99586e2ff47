"""
Movie persistence: movie rows plus their dependent genre rows.
Every multi-statement write runs inside one transaction.
"""

import logging
import threading
from typing import List, Optional
import uuid

from sqlalchemy import Uuid, bindparam, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from ..db import check_cancelled, get_db_connection, get_db_transaction
from ..errors import ConstraintViolationError
from ..models import GetAllOptions, Movie
from ..movie_query_helpers import (
    build_count_query,
    build_get_all_query,
    build_movie_lookup_query,
    fetch_genres,
    row_to_movie,
)

logger = logging.getLogger(__name__)


def _with_uuids(statement: str, *names: str):
    return text(statement).bindparams(*(bindparam(name, type_=Uuid) for name in names))


# Zero rows affected means the id or the slug is already taken
INSERT_MOVIE = _with_uuids("""
    INSERT INTO movies (id, slug, title, yearofrelease)
    VALUES (:id, :slug, :title, :yearofrelease)
    ON CONFLICT DO NOTHING
""", "id")

INSERT_GENRE = _with_uuids("""
    INSERT INTO genres (movieid, name)
    VALUES (:movie_id, :name)
""", "movie_id")

UPDATE_MOVIE = _with_uuids("""
    UPDATE movies
    SET slug = :slug, title = :title, yearofrelease = :yearofrelease
    WHERE id = :id
""", "id")

DELETE_GENRES = _with_uuids("DELETE FROM genres WHERE movieid = :movie_id", "movie_id")
DELETE_RATINGS = _with_uuids("DELETE FROM ratings WHERE movieid = :movie_id", "movie_id")
DELETE_MOVIE = _with_uuids("DELETE FROM movies WHERE id = :id", "id")

MOVIE_EXISTS = _with_uuids("SELECT COUNT(1) FROM movies WHERE id = :id", "id")


def _is_slug_violation(error: IntegrityError) -> bool:
    # PostgreSQL names the index, SQLite names the column
    message = str(error.orig)
    return "movies_slug_idx" in message or "movies.slug" in message


class MovieRepository:
    """CRUD for movies and their genre sets."""

    def __init__(self, db_engine: Optional[Engine] = None):
        # None: resolved from current_app on every call
        self.db_engine = db_engine

    def create(self, movie: Movie, cancel: Optional[threading.Event] = None) -> bool:
        """
        Insert the movie row and one genre row per genre, atomically.

        Returns False when a movie with the same id or slug already exists;
        in that case no genre rows are written. A failing genre insert rolls
        back the movie row too and the error propagates.
        """
        with get_db_transaction(self.db_engine, cancel) as conn:
            result = conn.execute(INSERT_MOVIE, {
                "id": movie.id,
                "slug": movie.slug,
                "title": movie.title,
                "yearofrelease": movie.year_of_release,
            })
            created = result.rowcount > 0

            if created:
                self._insert_genres(conn, movie, cancel)

        if created:
            logger.info(f"Created movie {movie.id} ({movie.slug}) with {len(movie.genres)} genres")
        else:
            logger.warning(f"Movie {movie.id} ({movie.slug}) already exists, nothing inserted")
        return created

    def get_by_id(
        self,
        movie_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Optional[Movie]:
        return self._get_one("id", movie_id, user_id, cancel)

    def get_by_slug(
        self,
        slug: str,
        user_id: Optional[uuid.UUID] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Optional[Movie]:
        return self._get_one("slug", slug, user_id, cancel)

    def get_all(self, options: GetAllOptions, cancel: Optional[threading.Event] = None) -> List[Movie]:
        """Filtered, sorted, paginated listing with genres and ratings."""
        query, params = build_get_all_query(options)

        with get_db_connection(self.db_engine, cancel) as conn:
            rows = conn.execute(query, params).all()
            check_cancelled(cancel)
            genres = fetch_genres(conn, [row.id for row in rows])

        return [row_to_movie(row, genres.get(row.id)) for row in rows]

    def get_count(
        self,
        title: Optional[str] = None,
        year: Optional[int] = None,
        cancel: Optional[threading.Event] = None,
    ) -> int:
        query, params = build_count_query(title, year)
        with get_db_connection(self.db_engine, cancel) as conn:
            return int(conn.execute(query, params).scalar() or 0)

    def update(self, movie: Movie, cancel: Optional[threading.Event] = None) -> bool:
        """
        Replace the genre set and update title, year and slug, atomically.

        Returns False without writing anything if the movie does not exist.

        Raises:
            ConstraintViolationError: The new slug belongs to another movie,
                or the genre rows violate a constraint
        """
        try:
            with get_db_transaction(self.db_engine, cancel) as conn:
                if not conn.execute(MOVIE_EXISTS, {"id": movie.id}).scalar():
                    logger.warning(f"Update skipped, movie {movie.id} not found")
                    return False

                conn.execute(DELETE_GENRES, {"movie_id": movie.id})
                self._insert_genres(conn, movie, cancel)

                check_cancelled(cancel)
                result = conn.execute(UPDATE_MOVIE, {
                    "id": movie.id,
                    "slug": movie.slug,
                    "title": movie.title,
                    "yearofrelease": movie.year_of_release,
                })
                updated = result.rowcount > 0
        except IntegrityError as e:
            logger.warning(f"Update of movie {movie.id} rejected by a constraint: {e.orig}")
            if _is_slug_violation(e):
                raise ConstraintViolationError(
                    f"A movie with slug '{movie.slug}' already exists"
                ) from e
            raise ConstraintViolationError(
                f"Update of movie {movie.id} violates a constraint: {e.orig}"
            ) from e

        logger.info(f"Updated movie {movie.id} ({movie.slug})")
        return updated

    def delete_by_id(self, movie_id: uuid.UUID, cancel: Optional[threading.Event] = None) -> bool:
        """Delete the movie with its ratings and genres in one transaction."""
        with get_db_transaction(self.db_engine, cancel) as conn:
            conn.execute(DELETE_RATINGS, {"movie_id": movie_id})
            conn.execute(DELETE_GENRES, {"movie_id": movie_id})
            check_cancelled(cancel)
            result = conn.execute(DELETE_MOVIE, {"id": movie_id})
            deleted = result.rowcount > 0

        if deleted:
            logger.info(f"Deleted movie {movie_id}")
        return deleted

    def exists_by_id(self, movie_id: uuid.UUID, cancel: Optional[threading.Event] = None) -> bool:
        with get_db_connection(self.db_engine, cancel) as conn:
            return bool(conn.execute(MOVIE_EXISTS, {"id": movie_id}).scalar())

    def _get_one(self, key, value, user_id, cancel) -> Optional[Movie]:
        query = build_movie_lookup_query(key)

        with get_db_connection(self.db_engine, cancel) as conn:
            row = conn.execute(query, {"key_value": value, "user_id": user_id}).first()
            if row is None:
                return None
            genres = fetch_genres(conn, [row.id])

        return row_to_movie(row, genres.get(row.id))

    @staticmethod
    def _insert_genres(conn, movie: Movie, cancel) -> None:
        for genre in movie.genres:
            check_cancelled(cancel)
            conn.execute(INSERT_GENRE, {"movie_id": movie.id, "name": genre})
