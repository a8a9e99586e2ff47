import threading
import uuid

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from catalog.errors import ConstraintViolationError, OperationCancelledError
from catalog.models import GetAllOptions, Movie, SortField, SortOrder


class CancelAfter(threading.Event):
    """Event that reports itself set after a number of checks."""

    def __init__(self, checks):
        super().__init__()
        self.remaining = checks

    def is_set(self):
        self.remaining -= 1
        return self.remaining < 0


def _count(engine, table):
    with engine.connect() as conn:
        return conn.execute(text(f"SELECT COUNT(*) FROM {table}")).scalar()


def test_create_then_get_by_id_returns_same_genres(movie_repository, make_movie):
    movie = make_movie(genres=["action", "drama", "crime"])

    assert movie_repository.create(movie) is True

    stored = movie_repository.get_by_id(movie.id)
    assert stored is not None
    assert stored.id == movie.id
    assert stored.title == movie.title
    assert stored.year_of_release == 1994
    assert set(stored.genres) == {"action", "drama", "crime"}
    assert stored.rating is None
    assert stored.user_rating is None


def test_get_by_slug(movie_repository, make_movie):
    movie = make_movie()
    movie_repository.create(movie)

    stored = movie_repository.get_by_slug("the-shawshank-redemption-1994")

    assert stored is not None
    assert stored.id == movie.id
    assert movie_repository.get_by_slug("missing-2000") is None


def test_get_by_id_missing_returns_none(movie_repository):
    assert movie_repository.get_by_id(uuid.uuid4()) is None


def test_create_existing_id_returns_false_and_writes_no_genres(movie_repository, engine, make_movie):
    movie = make_movie(genres=["drama"])
    movie_repository.create(movie)

    duplicate = Movie(id=movie.id, title="Other", year_of_release=2001, genres=["comedy"])

    assert movie_repository.create(duplicate) is False
    assert movie_repository.get_by_id(movie.id).genres == ["drama"]
    assert _count(engine, "genres") == 1


def test_create_existing_slug_returns_false(movie_repository, make_movie):
    assert movie_repository.create(make_movie()) is True
    assert movie_repository.create(make_movie()) is False


def test_failed_genre_insert_rolls_back_movie(movie_repository, engine, make_movie):
    # Duplicate genre names violate the genres primary key
    movie = make_movie(genres=["drama", "drama"])

    with pytest.raises(IntegrityError):
        movie_repository.create(movie)

    assert movie_repository.exists_by_id(movie.id) is False
    assert _count(engine, "movies") == 0
    assert _count(engine, "genres") == 0


def test_cancel_mid_create_rolls_back(movie_repository, engine, make_movie):
    movie = make_movie(genres=["action", "drama", "crime"])

    with pytest.raises(OperationCancelledError):
        movie_repository.create(movie, cancel=CancelAfter(2))

    assert _count(engine, "movies") == 0
    assert _count(engine, "genres") == 0


def test_cancel_before_start_does_not_touch_store(movie_repository, make_movie):
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(OperationCancelledError):
        movie_repository.get_by_id(uuid.uuid4(), cancel=cancel)


def test_update_replaces_genres_and_fields(movie_repository, make_movie):
    movie = make_movie(title="The Shawshank Redemption", year=2000, genres=["action", "drama"])
    movie_repository.create(movie)

    movie.year_of_release = 1994
    movie.genres = ["drama"]
    assert movie_repository.update(movie) is True

    stored = movie_repository.get_by_slug("the-shawshank-redemption-1994")
    assert stored.year_of_release == 1994
    assert stored.genres == ["drama"]
    assert movie_repository.get_by_slug("the-shawshank-redemption-2000") is None


def test_update_missing_movie_writes_nothing(movie_repository, engine, make_movie):
    movie = make_movie(genres=["drama", "crime"])

    assert movie_repository.update(movie) is False
    assert _count(engine, "genres") == 0


def test_update_slug_collision_raises_and_keeps_old_state(movie_repository, make_movie):
    first = make_movie(title="Alien", year=1979, genres=["horror"])
    second = make_movie(title="Aliens", year=1986, genres=["action"])
    movie_repository.create(first)
    movie_repository.create(second)

    second.title = "Alien"
    second.year_of_release = 1979
    second.genres = ["sci-fi"]
    with pytest.raises(ConstraintViolationError, match="slug 'alien-1979' already exists"):
        movie_repository.update(second)

    stored = movie_repository.get_by_id(second.id)
    assert stored.title == "Aliens"
    assert stored.genres == ["action"]


def test_delete_removes_movie_genres_and_ratings(movie_repository, rating_repository, engine, make_movie):
    movie = make_movie(genres=["action", "drama"])
    movie_repository.create(movie)
    rating_repository.rate_movie(movie.id, 4, uuid.uuid4())

    assert movie_repository.delete_by_id(movie.id) is True

    assert movie_repository.get_by_id(movie.id) is None
    assert movie_repository.exists_by_id(movie.id) is False
    assert _count(engine, "genres") == 0
    assert _count(engine, "ratings") == 0


def test_delete_missing_returns_false(movie_repository):
    assert movie_repository.delete_by_id(uuid.uuid4()) is False


def test_get_by_id_includes_ratings(movie_repository, rating_repository, make_movie):
    movie = make_movie()
    movie_repository.create(movie)
    user = uuid.uuid4()
    rating_repository.rate_movie(movie.id, 5, user)
    rating_repository.rate_movie(movie.id, 2, uuid.uuid4())

    stored = movie_repository.get_by_id(movie.id, user_id=user)
    assert stored.rating == 3.5
    assert stored.user_rating == 5

    anonymous = movie_repository.get_by_id(movie.id)
    assert anonymous.rating == 3.5
    assert anonymous.user_rating is None


def _seed(movie_repository, make_movie):
    movies = [
        make_movie(title="Zeta", year=1994, genres=["drama"]),
        make_movie(title="Alpha", year=2010, genres=["action", "sci-fi"]),
        make_movie(title="Mike", year=1994, genres=["comedy"]),
    ]
    for movie in movies:
        movie_repository.create(movie)
    return movies


def test_get_all_without_filters_returns_every_movie(movie_repository, make_movie):
    movies = _seed(movie_repository, make_movie)

    result = movie_repository.get_all(GetAllOptions(page_size=25))

    assert {m.id for m in result} == {m.id for m in movies}
    alpha = next(m for m in result if m.title == "Alpha")
    assert set(alpha.genres) == {"action", "sci-fi"}


def test_get_all_year_filter(movie_repository, make_movie):
    _seed(movie_repository, make_movie)

    result = movie_repository.get_all(GetAllOptions(year=1994, page_size=25))

    assert len(result) == 2
    assert all(m.year_of_release == 1994 for m in result)


def test_get_all_title_filter_is_case_insensitive_substring(movie_repository, make_movie):
    _seed(movie_repository, make_movie)

    result = movie_repository.get_all(GetAllOptions(title="LPH", page_size=25))

    assert [m.title for m in result] == ["Alpha"]


def test_get_all_title_filter_treats_wildcards_literally(movie_repository, make_movie):
    movie_repository.create(make_movie(title="100% Love", year=2011))
    movie_repository.create(make_movie(title="1000 Love", year=2011))

    result = movie_repository.get_all(GetAllOptions(title="100%", page_size=25))

    assert [m.title for m in result] == ["100% Love"]


def test_get_all_sort_by_title(movie_repository, make_movie):
    _seed(movie_repository, make_movie)

    ascending = movie_repository.get_all(GetAllOptions(sort_field=SortField.TITLE, page_size=25))
    descending = movie_repository.get_all(GetAllOptions(
        sort_field=SortField.TITLE, sort_order=SortOrder.DESCENDING, page_size=25,
    ))

    assert [m.title for m in ascending] == ["Alpha", "Mike", "Zeta"]
    assert [m.title for m in descending] == ["Zeta", "Mike", "Alpha"]


def test_get_all_sort_by_year(movie_repository, make_movie):
    _seed(movie_repository, make_movie)

    result = movie_repository.get_all(GetAllOptions(
        sort_field=SortField.YEAR_OF_RELEASE, sort_order=SortOrder.DESCENDING, page_size=25,
    ))

    assert result[0].title == "Alpha"
    assert [m.year_of_release for m in result] == [2010, 1994, 1994]


def test_get_all_paginates_after_sorting(movie_repository, make_movie):
    for title in ["Echo", "Bravo", "Delta", "Alpha", "Charlie"]:
        movie_repository.create(make_movie(title=title, year=2000))

    page_two = movie_repository.get_all(GetAllOptions(sort_field=SortField.TITLE, page=2, page_size=2))
    page_three = movie_repository.get_all(GetAllOptions(sort_field=SortField.TITLE, page=3, page_size=2))

    assert [m.title for m in page_two] == ["Charlie", "Delta"]
    assert [m.title for m in page_three] == ["Echo"]


def test_get_all_user_rating_enrichment(movie_repository, rating_repository, make_movie):
    zeta, alpha, mike = _seed(movie_repository, make_movie)
    user = uuid.uuid4()
    rating_repository.rate_movie(alpha.id, 4, user)
    rating_repository.rate_movie(alpha.id, 5, uuid.uuid4())

    result = movie_repository.get_all(GetAllOptions(
        sort_field=SortField.TITLE, user_id=user, page_size=25,
    ))

    assert [(m.title, m.rating, m.user_rating) for m in result] == [
        ("Alpha", 4.5, 4),
        ("Mike", None, None),
        ("Zeta", None, None),
    ]


def test_get_count_uses_same_filters(movie_repository, make_movie):
    _seed(movie_repository, make_movie)

    assert movie_repository.get_count() == 3
    assert movie_repository.get_count(year=1994) == 2
    assert movie_repository.get_count(title="zet") == 1
    assert movie_repository.get_count(title="nothing") == 0


def test_update_genre_violation_is_not_reported_as_slug_clash(movie_repository, make_movie):
    movie = make_movie(genres=["drama"])
    movie_repository.create(movie)

    movie.genres = ["crime", "crime"]
    with pytest.raises(ConstraintViolationError) as excinfo:
        movie_repository.update(movie)

    assert "slug" not in str(excinfo.value)
    assert movie_repository.get_by_id(movie.id).genres == ["drama"]


def test_get_all_title_filter_folds_non_ascii_case(movie_repository, make_movie):
    movie_repository.create(make_movie(title="ÉCOLE", year=2004))
    movie_repository.create(make_movie(title="Other", year=2004))

    result = movie_repository.get_all(GetAllOptions(title="école", page_size=25))

    assert [m.title for m in result] == ["ÉCOLE"]
    assert movie_repository.get_count(title="École") == 1
