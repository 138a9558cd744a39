# tests/test_allowlist.py
import json

import pytest

from twain.allowlist import SignupRequests, UserDirectory
from twain.errors import ConflictError, NotFoundError, StorageError, ValidationError
from twain.feedback import FeedbackInbox


@pytest.fixture
def users(tmp_path, clock):
    return UserDirectory(str(tmp_path / "users.json"), clock)


@pytest.fixture
def requests(tmp_path, users, clock):
    return SignupRequests(str(tmp_path / "signup_requests.json"), users, "@gmail.com", clock)


def test_signup_and_approve(requests, users):
    request = requests.create("A", "a@gmail.com")
    assert request.status == "pending"

    approved = requests.approve(request.id, processed_by="admin@gmail.com", notes="welcome")
    assert approved.status == "approved"
    assert approved.processed_by == "admin@gmail.com"
    assert users.is_allowed("A@Gmail.com")
    assert requests.get(request.id).status == "approved"

    with pytest.raises(ConflictError):
        requests.approve(request.id, processed_by="admin@gmail.com")


def test_signup_validation(requests, users):
    with pytest.raises(ValidationError):
        requests.create("", "a@gmail.com")
    with pytest.raises(ValidationError):
        requests.create("A", "a@yahoo.com")

    requests.create("A", "a@gmail.com")
    with pytest.raises(ConflictError):
        requests.create("A again", "A@gmail.com")

    users.add_user("b@gmail.com", "B")
    with pytest.raises(ConflictError):
        requests.create("B", "b@gmail.com")


def test_reject_and_missing_requests(requests, users):
    request = requests.create("C", "c@gmail.com")
    assert requests.reject(request.id, "admin@gmail.com").status == "rejected"
    assert not users.is_allowed("c@gmail.com")
    with pytest.raises(NotFoundError):
        requests.approve("no-such-id", "admin@gmail.com")


def test_requests_listed_newest_first(requests, clock):
    requests.create("Old", "old@gmail.com")
    clock.advance(60)
    requests.create("New", "new@gmail.com")
    assert [r.name for r in requests.list()] == ["New", "Old"]


def test_user_directory(users, clock):
    user = users.add_user("Mixed@Gmail.com", "Mixed", is_admin=True)
    assert user.email == "mixed@gmail.com"
    assert users.is_admin("MIXED@gmail.com")
    with pytest.raises(ConflictError):
        users.add_user("mixed@gmail.com", "Again")

    clock.advance(5)
    updated = users.upsert_on_login("mixed@gmail.com", "Mixed Up", image="pic.png")
    assert (updated.name, updated.image, updated.login_count) == ("Mixed Up", "pic.png", 1)
    assert updated.last_login_at == clock()
    with pytest.raises(NotFoundError):
        users.upsert_on_login("stranger@gmail.com", "Stranger")

    assert users.remove_user("MIXED@gmail.com")
    assert not users.remove_user("mixed@gmail.com")
    assert users.list_users() == []


def test_inactive_users_are_not_allowed(tmp_path):
    path = tmp_path / "users.json"
    path.write_text(json.dumps({"users": [
        {"email": "gone@gmail.com", "name": "Gone", "status": "inactive"},
    ]}))
    users = UserDirectory(str(path))
    assert users.get_user("gone@gmail.com") is not None
    assert not users.is_allowed("gone@gmail.com")


def test_unreadable_file_fails_loudly(tmp_path):
    path = tmp_path / "users.json"
    path.write_text("{broken")
    with pytest.raises(StorageError):
        UserDirectory(str(path)).list_users()


def test_feedback_inbox(tmp_path, clock):
    inbox = FeedbackInbox(str(tmp_path / "feedback.json"), clock)
    with pytest.raises(ValidationError):
        inbox.submit("bug", "editor", "", "nothing")

    first = inbox.submit("bug", "editor", "Lost text", "Autosave missed a word")
    inbox.submit("idea", "export", "PDF", "Please add PDF", user_email="a@gmail.com")
    assert first.user_email == "Anonymous"

    archived = inbox.archive(first.id)
    assert archived.status == "archived"
    assert archived.archived_at == clock()
    assert [f.status for f in inbox.list()] == ["archived", "open"]
    with pytest.raises(NotFoundError):
        inbox.archive("missing")

    raw = json.loads((tmp_path / "feedback.json").read_text())
    assert raw[1]["userEmail"] == "a@gmail.com"


def test_non_text_values_are_validated(tmp_path, users, requests):
    inbox = FeedbackInbox(str(tmp_path / "feedback.json"))
    entry = inbox.submit(5, "editor", "Numbers", "Type came in as a number", user_email=7)
    assert (entry.type, entry.user_email) == ("5", "7")
    with pytest.raises(ValidationError):
        inbox.submit(None, "editor", "x", "y")
    with pytest.raises(ValidationError):
        requests.create(["A"], 42)
    with pytest.raises(ValidationError):
        users.add_user(None, "Nobody")
