import pytest

from biblio_backend import create_app
from biblio_backend.database import LocalFileSignalBackend, SignalPersistenceError
from biblio_backend.recommendation_system import BookRecommendationEngine, TFIDFVectorizer
from biblio_backend.recommender.settings import RecommenderSettings


LIBRARY = [
    {
        "id": 1,
        "title": "Dune",
        "author": "Frank Herbert",
        "tags": ["fantascienza", "deserto", "politica"],
        "rating": 5,
        "year": 1965,
        "pages": 600,
        "description": "Su un pianeta desertico la famiglia Atreides combatte per il controllo della spezia",
    },
    {
        "id": 2,
        "title": "Dune Messiah",
        "author": "Frank Herbert",
        "tags": ["fantascienza", "politica"],
        "rating": 4,
        "year": 1969,
        "pages": 330,
        "description": "Paul Atreides governa un impero galattico e affronta congiure per la spezia",
    },
    {
        "id": 3,
        "title": "Il nome della rosa",
        "author": "Umberto Eco",
        "tags": ["giallo", "storico"],
        "rating": 4,
        "year": 1980,
        "pages": 500,
        "description": "Un monaco indaga su misteriosi delitti in un'abbazia medievale",
    },
    {
        "id": 4,
        "title": "Foundation",
        "author": "Isaac Asimov",
        "tags": ["fantascienza"],
        "rating": 3,
        "year": 1951,
        "pages": 250,
        "description": "Uno psicostorico prevede la caduta di un impero galattico",
    },
]


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingBackend:
    """Backend whose every operation fails, like an unreachable database"""
    name = "failing"

    def load(self, user_id):
        raise SignalPersistenceError("connection refused")

    def save(self, user_id, snapshot):
        raise SignalPersistenceError("connection refused")

    def delete(self, user_id):
        raise SignalPersistenceError("connection refused")


@pytest.fixture
def library():
    return [dict(book) for book in LIBRARY]


@pytest.fixture
def settings():
    return RecommenderSettings()


@pytest.fixture
def vectorizer(settings):
    return TFIDFVectorizer(settings)


@pytest.fixture
def backend(tmp_path):
    return LocalFileSignalBackend(str(tmp_path / "signals"))


@pytest.fixture
def engine(settings, backend):
    return BookRecommendationEngine(user_id="test_user", settings=settings, backend=backend)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SIGNAL_BACKEND": "local",
        "SIGNAL_STORE_DIR": str(tmp_path / "store"),
        "MAX_ACTIVE_USERS": 3,
        "CACHE_TYPE": "SimpleCache",
        "CACHE_REDIS_URL": None,
        "DATABASE_URL": None,
    })
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def failing_backend():
    return FailingBackend()
