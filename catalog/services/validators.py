"""
Input validation for catalog commands and queries.
All checks run before any store access.
"""

from typing import List

from ..errors import ValidationError
from ..models import GetAllOptions, Movie, SortField, SortOrder

MIN_RATING = 1
MAX_RATING = 5

_SORT_FIELDS = tuple(field.value for field in SortField)
_SORT_ORDERS = tuple(order.value for order in SortOrder)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def movie_errors(movie: Movie) -> List[str]:
    errors = []

    if movie.id is None:
        errors.append("Movie id is required")

    if not isinstance(movie.title, str) or not movie.title.strip():
        errors.append("Title must not be empty")

    if not _is_int(movie.year_of_release) or movie.year_of_release <= 0:
        errors.append("Year of release must be a positive integer")

    genres = movie.genres
    if genres is None or isinstance(genres, str):
        errors.append("Genres must be a list of names")
        return errors

    seen = set()
    for genre in genres:
        if not isinstance(genre, str) or not genre.strip():
            errors.append("Genre names must not be empty")
        elif genre != genre.strip():
            errors.append(f"Genre '{genre}' has surrounding whitespace")
        elif genre in seen:
            errors.append(f"Genre '{genre}' is listed more than once")
        else:
            seen.add(genre)

    return errors


def validate_movie(movie: Movie) -> None:
    """Raise ValidationError if the movie cannot be stored."""
    errors = movie_errors(movie)
    if errors:
        raise ValidationError(errors)


def validate_options(options: GetAllOptions, max_page_size: int) -> None:
    errors = []

    if options.sort_field is not None and options.sort_field not in _SORT_FIELDS:
        allowed = ", ".join(_SORT_FIELDS)
        errors.append(f"You can only sort by: {allowed}")

    if options.sort_order not in _SORT_ORDERS:
        errors.append("Sort order must be ascending or descending")

    if options.year is not None and (not _is_int(options.year) or options.year <= 0):
        errors.append("Year must be a positive integer")

    if not _is_int(options.page) or options.page < 1:
        errors.append("Page must be greater than or equal to 1")

    if not _is_int(options.page_size) or not 1 <= options.page_size <= max_page_size:
        errors.append(f"You can get between 1 and {max_page_size} movies per page")

    if errors:
        raise ValidationError(errors)


def validate_rating(rating) -> None:
    if not _is_int(rating) or not MIN_RATING <= rating <= MAX_RATING:
        raise ValidationError([f"Rating must be between {MIN_RATING} and {MAX_RATING}"])
