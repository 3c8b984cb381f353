import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("EMAIL_TRANSPORT", "dummy")
os.environ.setdefault("SECRET_KEY", "test-secret")

import mongomock
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from magicaltsutsunlist.auth import create_access_token
from magicaltsutsunlist.catalog import CatalogStore
from magicaltsutsunlist.db import build_engine, build_sessionmaker, get_db
from magicaltsutsunlist.main import app, get_catalog
from magicaltsutsunlist.models import Anime, Base, Manga
from magicaltsutsunlist.users import ensure_admin, sign_up

OJAMAJO = {
    "_id": "67cf0157362455cec9bd66f0",
    "title": "Ojamajo Doremi",
    "synopsis": "Harukaze Doremi considers herself to be the unluckiest girl in the world.",
    "image": "/uploads/animes/anime1.jpg",
    "genres": ["Comedy"],
}

YOTSUBA = {
    "_id": "67cf0157362455cec9bd7001",
    "title": "Yotsuba&!",
    "synopsis": "A green-haired girl discovers everyday life.",
    "image": "/uploads/mangas/yotsuba.jpg",
    "genres": ["Comedy", "Slice of Life"],
}


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def catalog():
    return CatalogStore(mongomock.MongoClient()["magicaltsutsunlist"])


@pytest.fixture
def user(db):
    return sign_up(db, "doremi", "doremi@example.com", "pirika-pirilala")


@pytest.fixture
def other_user(db):
    return sign_up(db, "hazuki", "hazuki@example.com", "paipai-ponpoi")


@pytest.fixture
def admin(db):
    return ensure_admin(db, "majorika@example.com", "maho-do", "majorika")


@pytest.fixture
def synced(db):
    db.add_all([Anime(anime_id=OJAMAJO["_id"]), Manga(manga_id=YOTSUBA["_id"])])
    db.commit()


@pytest.fixture
def client(session_factory, catalog):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_catalog] = lambda: catalog
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_header(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}
