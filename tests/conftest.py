from datetime import datetime, timedelta

import pytest
from botocore.exceptions import ClientError

from app import create_app
from models import db, Profile, Story

PASSWORD = "secret1"


class FakeStorage:
    def __init__(self):
        self.objects = {}
        self.fail = False

    def upload(self, key, data, content_type):
        if self.fail:
            raise ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject")
        self.objects[key] = (data, content_type)
        return f"https://cdn.example.com/{key}"


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def app(storage):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "SECRET_KEY": "test-secret",
        "JWT_SECRET_KEY": "test-jwt-secret-that-is-long-enough-for-hs256",
        "BCRYPT_LOG_ROUNDS": 4,
    }, storage=storage)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_profile(app):
    def _make(username, password=PASSWORD, email=None, display_name=None):
        with app.app_context():
            profile = Profile(
                username=username,
                email=email or f"{username}@example.com",
                display_name=display_name or username.title(),
            )
            profile.set_password(password)
            db.session.add(profile)
            db.session.commit()
            return profile.id
    return _make


@pytest.fixture
def make_story(app):
    counter = {"n": 0}

    def _make(author_id, **fields):
        counter["n"] += 1
        fields.setdefault("title", f"Story {counter['n']}")
        fields.setdefault("content", "Once upon a time.")
        fields.setdefault("story_type", "one_time")
        fields.setdefault("status", "published")
        fields.setdefault("tags", [])
        if fields["status"] != "draft":
            fields.setdefault("published_at", datetime(2024, 1, 1) + timedelta(days=counter["n"]))
        with app.app_context():
            story = Story(author_id=author_id, **fields)
            db.session.add(story)
            db.session.commit()
            return story.id
    return _make


@pytest.fixture
def client_for(app):
    def _client(login, password=PASSWORD):
        client = app.test_client()
        resp = client.post("/auth/signin", data={"login": login, "password": password})
        assert resp.status_code == 302
        return client
    return _client


@pytest.fixture
def fetch(app):
    """Reads a row by primary key and returns its column values as a dict."""
    def _fetch(model, ident):
        with app.app_context():
            row = db.session.get(model, ident)
            if row is None:
                return None
            return {column.name: getattr(row, column.name) for column in model.__table__.columns}
    return _fetch
