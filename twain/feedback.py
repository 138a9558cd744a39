# feedback.py
import logging
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from twain.entities import new_item_id, utcnow
from twain.errors import NotFoundError, ValidationError
from twain.storage import read_json_file, write_json_file

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("type", "area", "subject", "description")


class Feedback(BaseModel):
    id: str
    timestamp: datetime = Field(default_factory=utcnow)
    type: str
    area: str
    subject: str
    description: str
    user_email: str = Field("Anonymous", alias="userEmail")
    user_name: str = Field("Anonymous", alias="userName")
    status: Literal["open", "archived"] = "open"
    archived_at: Optional[datetime] = Field(None, alias="archivedAt")

    model_config = {"populate_by_name": True}


class FeedbackInbox:
    """Feedback entries in one JSON list, oldest first."""

    def __init__(self, path: str, clock=utcnow):
        self.path = path
        self.clock = clock

    def _read(self) -> List[Feedback]:
        return [Feedback.model_validate(f) for f in read_json_file(self.path, [])]

    def _write(self, entries: List[Feedback]):
        write_json_file(self.path, [f.model_dump(mode="json", by_alias=True) for f in entries])

    def submit(self, type: str, area: str, subject: str, description: str,
               user_email: str | None = None, user_name: str | None = None) -> Feedback:
        submitted = {"type": type, "area": area, "subject": subject, "description": description}
        values = {f: str(submitted[f] or "").strip() for f in REQUIRED_FIELDS}
        if not all(values.values()):
            raise ValidationError("All fields are required")

        entries = self._read()
        entry = Feedback(
            id=new_item_id(e.id for e in entries),
            timestamp=self.clock(),
            user_email=str(user_email or "Anonymous"),
            user_name=str(user_name or "Anonymous"),
            **values,
        )
        self._write(entries + [entry])
        logger.info(f"Feedback {entry.id} submitted by {entry.user_email}")
        return entry

    def list(self) -> List[Feedback]:
        return self._read()

    def archive(self, feedback_id: str) -> Feedback:
        entries = self._read()
        for index, entry in enumerate(entries):
            if entry.id == feedback_id:
                entries[index] = entry.model_copy(update={
                    "status": "archived", "archived_at": self.clock(),
                })
                self._write(entries)
                return entries[index]
        raise NotFoundError("Feedback not found")
