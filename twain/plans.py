"""
Plans, entitlements and per-user preferences.

The free plan caps how many items of each kind can be created and locks a few
features entirely. Limits are checked when something is created, existing
data over a limit is left alone.
"""
import json
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Literal, Optional

from pydantic import Field, ValidationError as RecordError

from twain.entities import Entity, utcnow
from twain.errors import StorageError, UpgradeRequired, ValidationError

logger = logging.getLogger(__name__)

PlanType = Literal["free", "paid"]
PlanStatus = Literal["active", "expired", "cancelled"]

# per work unless noted; "works" counts per work kind, "series" per user
FREE_LIMITS = {
    "works": 3,
    "ideas": 3,
    "characters": 3,
    "chapters": 3,
    "stories": 3,
    "outlines": 1,
    "series": 1,
    "series books": 3,
}
PAID_FEATURES = ("parts", "notecards", "contributors", "publisher", "export")

RECENT_LIMIT = 10
LOGIN_SESSION_GAP = timedelta(minutes=30)
PAID_PLAN_LENGTH = 365


def _one_year_after(start: datetime) -> datetime:
    try:
        return start.replace(year=start.year + 1)
    except ValueError:
        # Feb 29th
        return start + timedelta(days=PAID_PLAN_LENGTH)


class Plan(Entity):
    type: PlanType = "free"
    status: PlanStatus = "active"
    start_date: Optional[datetime] = Field(default_factory=utcnow)
    end_date: Optional[datetime] = None

    def is_active(self, now: datetime | None = None) -> bool:
        if self.status != "active":
            return False
        if self.end_date is not None:
            return (now or utcnow()) <= self.end_date
        return True

    def is_paid(self, now: datetime | None = None) -> bool:
        return self.type == "paid" and self.is_active(now)


class Entitlements:
    """Answers "may this user do X" for one plan."""

    def __init__(self, plan: Plan, clock=utcnow):
        self.plan = plan
        self.clock = clock

    @property
    def paid(self) -> bool:
        return self.plan.is_paid(self.clock())

    def limit_for(self, kind: str) -> int | None:
        """None means unlimited."""
        if self.paid:
            return None
        return FREE_LIMITS.get(kind)

    def check_quantity(self, kind: str, current_count: int):
        """Raise UpgradeRequired if one more `kind` would exceed the plan."""
        limit = self.limit_for(kind)
        if limit is not None and current_count >= limit:
            raise UpgradeRequired(kind, limit)

    def allows(self, feature: str) -> bool:
        return feature not in PAID_FEATURES or self.paid

    def require(self, feature: str):
        if not self.allows(feature):
            raise UpgradeRequired(feature)


class UserPreferences(Entity):
    plan: Plan = Field(default_factory=Plan)
    account_created_at: datetime = Field(default_factory=utcnow)
    last_login_at: datetime = Field(default_factory=utcnow)
    login_count: int = 1
    theme: Literal["light", "dark", "auto"] = "auto"
    auto_save: bool = True
    word_count_goal: Optional[int] = None
    default_export_format: Literal["pdf", "docx", "txt", "html"] = "docx"
    recent_books: List[str] = []
    recent_stories: List[str] = []
    custom_settings: Dict[str, object] = {}


def preferences_key(user_key: str) -> str:
    return f"twain-user-preferences-{user_key}"


class PreferencesStore:

    def __init__(self, storage, clock=utcnow):
        self.storage = storage
        self.clock = clock

    def load(self, user_key: str) -> UserPreferences:
        """Stored preferences, created with defaults on first use."""
        try:
            stored = self.storage.get(preferences_key(user_key))
        except StorageError as e:
            logger.error(f"Error loading preferences for {user_key}: {e}")
            return UserPreferences()

        if not stored:
            now = self.clock()
            preferences = UserPreferences(account_created_at=now, last_login_at=now,
                                          plan=Plan(start_date=now))
            self.save(user_key, preferences)
            return preferences

        try:
            preferences = UserPreferences.model_validate(json.loads(stored))
        except (ValueError, RecordError) as e:
            logger.error(f"Stored preferences for {user_key} are unreadable, using defaults: {e}")
            return UserPreferences()

        # paid plans saved before end dates existed run for one year
        plan = preferences.plan
        if plan.type == "paid" and plan.start_date and not plan.end_date:
            plan.end_date = _one_year_after(plan.start_date)
            self.save(user_key, preferences)
        return preferences

    def save(self, user_key: str, preferences: UserPreferences) -> bool:
        try:
            self.storage.set(preferences_key(user_key), json.dumps(preferences.to_record()))
            return True
        except StorageError as e:
            logger.error(f"Error saving preferences for {user_key}: {e}")
            return False

    def entitlements(self, user_key: str) -> Entitlements:
        return Entitlements(self.load(user_key).plan, self.clock)

    def record_login(self, user_key: str) -> UserPreferences:
        """Count a login unless the previous one was less than 30 minutes ago."""
        preferences = self.load(user_key)
        now = self.clock()
        if now - preferences.last_login_at > LOGIN_SESSION_GAP:
            preferences.login_count += 1
        preferences.last_login_at = now
        self.save(user_key, preferences)
        return preferences

    def update_plan(self, user_key: str, **changes) -> Plan:
        preferences = self.load(user_key)
        try:
            preferences.plan = Plan.model_validate({**preferences.plan.model_dump(), **changes})
        except RecordError as e:
            raise ValidationError(f"Invalid plan: {e.errors()[0]['msg']}") from e
        self.save(user_key, preferences)
        return preferences.plan

    def upgrade(self, user_key: str, plan_type: str = "paid") -> Plan:
        now = self.clock()
        end_date = _one_year_after(now) if plan_type == "paid" else None
        return self.update_plan(user_key, type=plan_type, status="active",
                                start_date=now, end_date=end_date)

    def cancel(self, user_key: str) -> Plan:
        return self.update_plan(user_key, status="cancelled", end_date=self.clock())

    def renew(self, user_key: str) -> Plan:
        preferences = self.load(user_key)
        end_date = _one_year_after(self.clock()) if preferences.plan.type == "paid" else None
        return self.update_plan(user_key, status="active", end_date=end_date)

    def add_recent(self, user_key: str, work_kind: str, work_id) -> List[str]:
        """Move `work_id` to the front of the recent books or stories list."""
        preferences = self.load(user_key)
        field = "recent_books" if work_kind == "book" else "recent_stories"
        work_id = str(work_id)
        current = [i for i in getattr(preferences, field) if i != work_id]
        updated = [work_id] + current
        setattr(preferences, field, updated[:RECENT_LIMIT])
        self.save(user_key, preferences)
        return getattr(preferences, field)

    def account_age_days(self, user_key: str) -> int:
        preferences = self.load(user_key)
        delta = abs(self.clock() - preferences.account_created_at)
        days, remainder = divmod(delta.total_seconds(), 86400)
        return int(days) + (1 if remainder else 0)

