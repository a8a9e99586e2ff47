"""
Catalog Service
Entry point for the routing layer: validates input, then delegates to the
movie and rating repositories. Store and connection errors propagate unchanged.
"""

import logging
import threading
from typing import Iterable, List, Optional, Tuple, Union
import uuid

from sqlalchemy.engine import Engine

from ..config import Config
from ..models import GetAllOptions, Movie, MovieRating
from ..repositories import MovieRepository, RatingRepository
from .validators import validate_movie, validate_options, validate_rating

logger = logging.getLogger(__name__)


class CatalogService:

    def __init__(
        self,
        movie_repository: MovieRepository,
        rating_repository: RatingRepository,
        max_page_size: int = Config.MAX_PAGE_SIZE,
    ):
        self.movies = movie_repository
        self.ratings = rating_repository
        self.max_page_size = max_page_size

    @classmethod
    def from_engine(cls, db_engine: Optional[Engine] = None, max_page_size: int = Config.MAX_PAGE_SIZE):
        return cls(MovieRepository(db_engine), RatingRepository(db_engine), max_page_size)

    # Movies

    def create(self, movie: Movie, cancel: Optional[threading.Event] = None) -> bool:
        """
        Validate and store a movie.

        Returns False if a movie with the same id or slug already exists.

        Raises:
            ValidationError: Invalid title, year or genres (store not touched)
        """
        validate_movie(movie)
        return self.movies.create(movie, cancel)

    def create_movie(
        self,
        title: str,
        year_of_release: int,
        genres: Iterable[str],
        cancel: Optional[threading.Event] = None,
    ) -> Optional[Movie]:
        """Create a movie with a new id. None if its slug is already taken."""
        movie = Movie(
            id=uuid.uuid4(),
            title=title,
            year_of_release=year_of_release,
            genres=list(genres) if genres is not None else None,
        )
        return movie if self.create(movie, cancel) else None

    def get_by_id(
        self,
        movie_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Optional[Movie]:
        return self.movies.get_by_id(movie_id, user_id, cancel)

    def get_by_slug(
        self,
        slug: str,
        user_id: Optional[uuid.UUID] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Optional[Movie]:
        return self.movies.get_by_slug(slug, user_id, cancel)

    def get_by_id_or_slug(
        self,
        id_or_slug: Union[uuid.UUID, str],
        user_id: Optional[uuid.UUID] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Optional[Movie]:
        """Look up by id when the key parses as a UUID, by slug otherwise."""
        if isinstance(id_or_slug, uuid.UUID):
            return self.get_by_id(id_or_slug, user_id, cancel)
        try:
            movie_id = uuid.UUID(id_or_slug)
        except ValueError:
            return self.get_by_slug(id_or_slug, user_id, cancel)
        return self.get_by_id(movie_id, user_id, cancel)

    def get_all(self, options: GetAllOptions, cancel: Optional[threading.Event] = None) -> List[Movie]:
        validate_options(options, self.max_page_size)
        return self.movies.get_all(options, cancel)

    def get_count(
        self,
        title: Optional[str] = None,
        year: Optional[int] = None,
        cancel: Optional[threading.Event] = None,
    ) -> int:
        return self.movies.get_count(title, year, cancel)

    def update(
        self,
        movie: Movie,
        user_id: Optional[uuid.UUID] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Optional[Movie]:
        """
        Replace a movie's title, year and genre set.

        Returns the stored movie with its aggregate rating and, when user_id
        is given, that user's rating. None if the movie does not exist.

        Raises:
            ValidationError: Invalid input (store not touched)
            ConstraintViolationError: New title and year collide with another movie's slug,
                or the genres violate a constraint
        """
        validate_movie(movie)

        if not self.movies.exists_by_id(movie.id, cancel):
            logger.info(f"Movie {movie.id} not found, update skipped")
            return None

        if not self.movies.update(movie, cancel):
            # Deleted between the existence check and the update
            return None

        return self.movies.get_by_id(movie.id, user_id, cancel)

    def delete_by_id(self, movie_id: uuid.UUID, cancel: Optional[threading.Event] = None) -> bool:
        return self.movies.delete_by_id(movie_id, cancel)

    # Ratings

    def rate_movie(
        self,
        movie_id: uuid.UUID,
        rating: int,
        user_id: uuid.UUID,
        cancel: Optional[threading.Event] = None,
    ) -> bool:
        """
        Set the user's rating for a movie (1 to 5), replacing any previous one.

        Returns False if the movie does not exist.
        """
        validate_rating(rating)

        if not self.movies.exists_by_id(movie_id, cancel):
            logger.info(f"Movie {movie_id} not found, rating skipped")
            return False

        return self.ratings.rate_movie(movie_id, rating, user_id, cancel)

    def get_rating(
        self,
        movie_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Union[Optional[float], Tuple[Optional[float], Optional[int]]]:
        """
        Average rating of a movie, or (average, user's rating) when user_id is given.
        """
        if user_id is None:
            return self.ratings.get_rating(movie_id, cancel)
        return self.ratings.get_rating_for_user(movie_id, user_id, cancel)

    def delete_rating(
        self,
        movie_id: uuid.UUID,
        user_id: uuid.UUID,
        cancel: Optional[threading.Event] = None,
    ) -> bool:
        return self.ratings.delete_rating(movie_id, user_id, cancel)

    def get_ratings_for_user(
        self,
        user_id: uuid.UUID,
        cancel: Optional[threading.Event] = None,
    ) -> List[MovieRating]:
        return self.ratings.get_ratings_for_user(user_id, cancel)
