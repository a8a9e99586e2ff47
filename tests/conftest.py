import uuid

import pytest

from catalog import create_app
from catalog.config import TestingConfig
from catalog.db import build_engine, init_db
from catalog.models import Movie
from catalog.repositories import MovieRepository, RatingRepository
from catalog.services import CatalogService


@pytest.fixture
def engine():
    engine = build_engine(TestingConfig)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def movie_repository(engine):
    return MovieRepository(engine)


@pytest.fixture
def rating_repository(engine):
    return RatingRepository(engine)


@pytest.fixture
def service(movie_repository, rating_repository):
    return CatalogService(movie_repository, rating_repository, max_page_size=25)


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    yield app
    app.db_engine.dispose()


@pytest.fixture
def make_movie():
    def _make(title="The Shawshank Redemption", year=1994, genres=("drama",)):
        return Movie(id=uuid.uuid4(), title=title, year_of_release=year, genres=list(genres))
    return _make
