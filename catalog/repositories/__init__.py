from .movie_repository import MovieRepository
from .rating_repository import RatingRepository

__all__ = ["MovieRepository", "RatingRepository"]
