import re
from datetime import datetime, timedelta

import mongomock
import pytest
from fastapi.testclient import TestClient

from cart import CartEngine
from config import Settings
from database import Database
from main import create_app
from tokens import SessionTokens
from users import UserStore
from wishlist import WishlistEngine


class FakeMailer:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, recipient, subject, html):
        if self.fail:
            return False, "smtp down"
        self.sent.append({"recipient": recipient, "subject": subject, "html": html})
        return True, None

    def last_token(self, kind="verify-email"):
        match = re.search(rf"/{kind}/([0-9a-f]+)", self.sent[-1]["html"])
        return match.group(1)


class Clock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def database():
    return Database(db=mongomock.MongoClient()["shop_test"]).connect()


@pytest.fixture
def settings():
    return Settings(jwt_secret="test-secret", public_base_url="http://testserver")


@pytest.fixture
def sessions(settings):
    return SessionTokens(settings.jwt_secret)


@pytest.fixture
def users(database, mailer, sessions, clock):
    return UserStore(database, mailer, sessions, base_url="http://testserver", clock=clock)


@pytest.fixture
def carts(database, clock):
    return CartEngine(database, clock=clock)


@pytest.fixture
def wishlists(database, clock):
    return WishlistEngine(database, clock=clock)


PROFILE = {"first_name": "Alice", "last_name": "Smith", "email": "alice@example.com"}


@pytest.fixture
def verified_user(users, mailer):
    users.register(PROFILE, "secret1")
    return users.verify_email(mailer.last_token()).value


@pytest.fixture
def client(settings, database, mailer, clock):
    app = create_app(settings=settings, database=database, mailer=mailer, clock=clock)
    with TestClient(app) as c:
        yield c
