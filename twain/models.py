# models.py
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def _utcnow():
    return datetime.now(timezone.utc)


# One row per storage key. The authoring data is always read and written as
# whole JSON collections, so the value column holds the full serialized list.
class StoredValue(db.Model):
    __tablename__ = "stored_value"

    key = db.Column(db.String(255), primary_key=True)
    value = db.Column(db.Text, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<StoredValue {self.key}>"
