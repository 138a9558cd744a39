# tests/conftest.py
import os
from datetime import datetime, timedelta, timezone

import pytest

os.environ.setdefault("TWAIN_CONFIG", "twain.config.TestConfig")

from twain.bookshelf import Bookshelf
from twain.content_store import ContentStore
from twain.plans import Entitlements, Plan
from twain.storage import MemoryStorage

USER = "ann@gmail.com"


class Clock:
    """Fixed time that tests move forward by hand."""

    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return Clock(datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage):
    return ContentStore(storage)


@pytest.fixture
def free_plan(clock):
    return Entitlements(Plan(start_date=clock()), clock)


@pytest.fixture
def paid_plan(clock):
    plan = Plan(type="paid", start_date=clock(), end_date=clock() + timedelta(days=365))
    return Entitlements(plan, clock)


@pytest.fixture
def shelf(store, free_plan, clock):
    return Bookshelf(store, USER, free_plan, "Ann Writer", clock)


@pytest.fixture
def paid_shelf(store, paid_plan, clock):
    return Bookshelf(store, USER, paid_plan, "Ann Writer", clock)


@pytest.fixture
def client(tmp_path):
    from twain.app import app, init_db
    from twain.models import db

    app.config.update(
        USERS_FILE=str(tmp_path / "users.json"),
        SIGNUP_REQUESTS_FILE=str(tmp_path / "signup_requests.json"),
        FEEDBACK_FILE=str(tmp_path / "feedback.json"),
        ADMIN_EMAIL="admin@gmail.com",
        ADMIN_NAME="Admin",
    )
    with app.app_context():
        db.drop_all()
        init_db()
    with app.test_client() as test_client:
        yield test_client
    with app.app_context():
        db.session.remove()
        db.drop_all()
