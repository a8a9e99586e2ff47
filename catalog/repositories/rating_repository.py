"""
Rating persistence: one rating per (user, movie), written with an atomic upsert.
"""

import logging
import threading
from typing import List, Optional, Tuple
import uuid

from sqlalchemy import Uuid, bindparam, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from ..db import get_db_connection, get_db_transaction
from ..models import MovieRating
from ..movie_query_helpers import normalize_rating

logger = logging.getLogger(__name__)

_UUID_PARAMS = (bindparam("movie_id", type_=Uuid), bindparam("user_id", type_=Uuid))

# Single statement: concurrent writers on the same pair never race a read
UPSERT_RATING = text("""
    INSERT INTO ratings (userid, movieid, rating)
    VALUES (:user_id, :movie_id, :rating)
    ON CONFLICT (userid, movieid) DO UPDATE
    SET rating = excluded.rating
""").bindparams(*_UUID_PARAMS)

AVERAGE_RATING = text("""
    SELECT ROUND(AVG(rating), 1)
    FROM ratings
    WHERE movieid = :movie_id
""").bindparams(bindparam("movie_id", type_=Uuid))

AVERAGE_AND_USER_RATING = text("""
    SELECT ROUND(AVG(rating), 1) AS rating,
           (SELECT rating FROM ratings
            WHERE movieid = :movie_id AND userid = :user_id) AS userrating
    FROM ratings
    WHERE movieid = :movie_id
""").bindparams(*_UUID_PARAMS)

DELETE_RATING = text("""
    DELETE FROM ratings
    WHERE movieid = :movie_id AND userid = :user_id
""").bindparams(*_UUID_PARAMS)

USER_RATINGS = text("""
    SELECT r.movieid, m.slug, r.rating
    FROM ratings r
    JOIN movies m ON r.movieid = m.id
    WHERE r.userid = :user_id
    ORDER BY m.slug
""").bindparams(bindparam("user_id", type_=Uuid)).columns(movieid=Uuid)


class RatingRepository:

    def __init__(self, db_engine: Optional[Engine] = None):
        self.db_engine = db_engine

    def rate_movie(
        self,
        movie_id: uuid.UUID,
        rating: int,
        user_id: uuid.UUID,
        cancel: Optional[threading.Event] = None,
    ) -> bool:
        """
        Insert the user's rating or overwrite the existing one.
        The value is stored as given; range checks belong to the caller.
        """
        try:
            with get_db_transaction(self.db_engine, cancel) as conn:
                result = conn.execute(UPSERT_RATING, {
                    "user_id": user_id,
                    "movie_id": movie_id,
                    "rating": rating,
                })
                rated = result.rowcount > 0
        except IntegrityError as e:
            # Movie row missing (deleted concurrently)
            logger.warning(f"Rating for movie {movie_id} rejected: {e.orig}")
            return False

        return rated

    def get_rating(self, movie_id: uuid.UUID, cancel: Optional[threading.Event] = None) -> Optional[float]:
        """Average rating rounded to one decimal, None if nobody rated the movie."""
        with get_db_connection(self.db_engine, cancel) as conn:
            value = conn.execute(AVERAGE_RATING, {"movie_id": movie_id}).scalar()
        return normalize_rating(value)

    def get_rating_for_user(
        self,
        movie_id: uuid.UUID,
        user_id: uuid.UUID,
        cancel: Optional[threading.Event] = None,
    ) -> Tuple[Optional[float], Optional[int]]:
        """(average rating, the user's own rating); each may be None."""
        with get_db_connection(self.db_engine, cancel) as conn:
            row = conn.execute(AVERAGE_AND_USER_RATING, {
                "movie_id": movie_id,
                "user_id": user_id,
            }).first()

        if row is None:
            return None, None
        user_rating = int(row.userrating) if row.userrating is not None else None
        return normalize_rating(row.rating), user_rating

    def delete_rating(
        self,
        movie_id: uuid.UUID,
        user_id: uuid.UUID,
        cancel: Optional[threading.Event] = None,
    ) -> bool:
        with get_db_transaction(self.db_engine, cancel) as conn:
            result = conn.execute(DELETE_RATING, {"movie_id": movie_id, "user_id": user_id})
            deleted = result.rowcount > 0
        return deleted

    def get_ratings_for_user(
        self,
        user_id: uuid.UUID,
        cancel: Optional[threading.Event] = None,
    ) -> List[MovieRating]:
        with get_db_connection(self.db_engine, cancel) as conn:
            rows = conn.execute(USER_RATINGS, {"user_id": user_id}).all()
        return [
            MovieRating(movie_id=row.movieid, slug=row.slug, rating=int(row.rating))
            for row in rows
        ]
