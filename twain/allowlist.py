"""
Allow-list of users and the signup approval queue.

Both live in flat JSON files ({"users": [...]}, {"requests": [...]}) that are
read and rewritten whole on every call. Emails are compared case-insensitively
and stored lower-cased. File errors raise StorageError.
"""
import logging
import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from twain.entities import utcnow
from twain.errors import ConflictError, NotFoundError, ValidationError
from twain.storage import read_json_file, write_json_file

logger = logging.getLogger(__name__)


class AllowedUser(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    email: str
    name: str
    image: str = ""
    provider: str = "google"
    provider_id: str = ""
    account_created_at: datetime = Field(default_factory=utcnow)
    last_login_at: Optional[datetime] = None
    login_count: int = 0
    status: Literal["active", "inactive"] = "active"
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    is_admin: bool = False


class SignupRequest(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    email: str
    status: Literal["pending", "approved", "rejected"] = "pending"
    requested_at: datetime = Field(default_factory=utcnow)
    processed_at: Optional[datetime] = None
    processed_by: Optional[str] = None
    notes: Optional[str] = None


def _same_email(a: str, b: str) -> bool:
    return a.strip().lower() == b.strip().lower()


class UserDirectory:

    def __init__(self, path: str, clock=utcnow):
        self.path = path
        self.clock = clock

    def _read(self) -> List[AllowedUser]:
        data = read_json_file(self.path, {"users": []})
        return [AllowedUser.model_validate(u) for u in data.get("users", [])]

    def _write(self, users: List[AllowedUser]):
        write_json_file(self.path, {"users": [u.model_dump(mode="json") for u in users]})

    def list_users(self) -> List[AllowedUser]:
        return self._read()

    def get_user(self, email: str) -> AllowedUser | None:
        for user in self._read():
            if _same_email(user.email, email):
                return user
        return None

    def is_allowed(self, email: str) -> bool:
        user = self.get_user(email)
        return user is not None and user.status == "active"

    def is_admin(self, email: str) -> bool:
        user = self.get_user(email)
        return bool(user and user.is_admin)

    def upsert_on_login(self, email: str, name: str, image: str | None = None,
                        provider_id: str | None = None) -> AllowedUser:
        """Refresh profile fields and count the login. Unknown users are refused."""
        users = self._read()
        for index, user in enumerate(users):
            if not _same_email(user.email, email):
                continue
            now = self.clock()
            users[index] = user.model_copy(update={
                "name": name or user.name,
                "image": image or user.image,
                "provider_id": provider_id or user.provider_id,
                "last_login_at": now,
                "login_count": user.login_count + 1,
                "updated_at": now,
            })
            self._write(users)
            return users[index]
        raise NotFoundError("User not found in allowed list. Please request access first.")

    def add_user(self, email: str, name: str, is_admin: bool = False) -> AllowedUser:
        email = str(email or "").strip().lower()
        name = str(name or "").strip()
        if not email or not name:
            raise ValidationError("Email and name are required")
        users = self._read()
        if any(_same_email(u.email, email) for u in users):
            raise ConflictError("User already exists")
        now = self.clock()
        user = AllowedUser(email=email, name=name, is_admin=is_admin,
                           account_created_at=now, created_at=now, updated_at=now)
        self._write(users + [user])
        logger.info(f"Added {email} to the allow-list")
        return user

    def remove_user(self, email: str) -> bool:
        users = self._read()
        remaining = [u for u in users if not _same_email(u.email, email)]
        if len(remaining) == len(users):
            return False
        self._write(remaining)
        logger.info(f"Removed {email} from the allow-list")
        return True


class SignupRequests:

    def __init__(self, path: str, users: UserDirectory, email_domain: str = "@gmail.com",
                 clock=utcnow):
        self.path = path
        self.users = users
        self.email_domain = email_domain.lower()
        self.clock = clock

    def _read(self) -> List[SignupRequest]:
        data = read_json_file(self.path, {"requests": []})
        return [SignupRequest.model_validate(r) for r in data.get("requests", [])]

    def _write(self, requests: List[SignupRequest]):
        write_json_file(self.path, {"requests": [r.model_dump(mode="json") for r in requests]})

    def create(self, name: str, email: str) -> SignupRequest:
        name = str(name or "").strip()
        email = str(email or "").strip().lower()
        if not name or not email:
            raise ValidationError("Name and email are required")
        if not email.endswith(self.email_domain):
            raise ValidationError(f"Only {self.email_domain} addresses are accepted")
        if self.users.get_user(email):
            raise ConflictError("An account with this email already exists")

        requests = self._read()
        if any(r.email == email and r.status == "pending" for r in requests):
            raise ConflictError("A signup request with this email is already pending")

        request = SignupRequest(name=name, email=email, requested_at=self.clock())
        self._write(requests + [request])
        logger.info(f"Signup request {request.id} from {email}")
        return request

    def list(self) -> List[SignupRequest]:
        """Newest first."""
        return sorted(self._read(), key=lambda r: r.requested_at, reverse=True)

    def get(self, request_id: str) -> SignupRequest:
        for request in self._read():
            if request.id == request_id:
                return request
        raise NotFoundError("Signup request not found")

    def approve(self, request_id: str, processed_by: str, notes: str | None = None) -> SignupRequest:
        request = self._pending(request_id)
        if self.users.get_user(request.email):
            raise ConflictError("User already exists")
        self.users.add_user(request.email, request.name)
        return self._process(request, "approved", processed_by, notes)

    def reject(self, request_id: str, processed_by: str, notes: str | None = None) -> SignupRequest:
        request = self._pending(request_id)
        return self._process(request, "rejected", processed_by, notes)

    def _pending(self, request_id: str) -> SignupRequest:
        request = self.get(request_id)
        if request.status != "pending":
            raise ConflictError(f"Signup request was already {request.status}")
        return request

    def _process(self, request, status, processed_by, notes):
        processed = request.model_copy(update={
            "status": status,
            "processed_at": self.clock(),
            "processed_by": processed_by,
            "notes": notes or None,
        })
        self._write([processed if r.id == request.id else r for r in self._read()])
        logger.info(f"Signup request {request.id} {status} by {processed_by}")
        return processed
