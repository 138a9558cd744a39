# entities.py
import time
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

WorkKind = Literal["book", "quickstory"]
ActivityType = Literal["idea", "character", "story", "chapter", "outline", "part", "notecard"]
ActivityAction = Literal["created", "modified", "deleted"]
NoteColor = Literal["yellow", "red", "blue", "green", "gray"]
AgeGroup = Literal["Adult", "Teen", "Child"]
ContributorRole = Literal[
    "Co-Author", "Editor", "Illustrator", "Photographer", "Translator", "Foreword",
    "Introduction", "Preface", "Agent", "Proof Reader", "Advisor", "Typesetter",
]

WORK_KINDS = ("book", "quickstory")
NOTE_COLORS = ("yellow", "red", "blue", "green", "gray")
EMPTY_DOCUMENT = "{}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_item_id(existing=()) -> str:
    """Millisecond timestamp id, bumped until it is free in `existing`."""
    taken = set(existing)
    candidate = int(time.time() * 1000)
    while str(candidate) in taken:
        candidate += 1
    return str(candidate)


class Entity(BaseModel):
    # stored records use camelCase keys
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_record(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_record(cls, raw: dict):
        return cls.model_validate(raw)


class ContentItem(Entity):
    id: str
    created_at: datetime = Field(default_factory=utcnow)


class Idea(ContentItem):
    title: str
    notes: str = ""


class Character(ContentItem):
    name: str
    avatar: Optional[str] = None  # data URL
    gender: str = ""
    backstory: str = ""
    characterization: str = ""
    voice: str = ""
    appearance: str = ""
    friends_family: str = ""
    favorites: str = ""
    misc: str = ""


class RichTextItem(ContentItem):
    """Chapter, Story or Outline: `content` is a serialized delta document."""
    title: str
    content: str = EMPTY_DOCUMENT


class Chapter(RichTextItem):
    pass


class Story(RichTextItem):
    pass


class Outline(RichTextItem):
    pass


class Part(ContentItem):
    title: str
    chapter_ids: List[str] = []
    story_ids: List[str] = []

    def is_empty(self) -> bool:
        return not self.chapter_ids and not self.story_ids


class NoteCard(ContentItem):
    title: str = ""
    content: str = ""
    color: NoteColor = "yellow"
    linked_idea_ids: List[str] = []
    linked_character_ids: List[str] = []
    linked_chapter_ids: List[str] = []


class ActivityEntry(Entity):
    id: str
    type: ActivityType
    title: str
    action: ActivityAction
    timestamp: datetime


class Contributor(Entity):
    id: str
    role: ContributorRole = "Co-Author"
    first_name: str = ""
    last_name: str = ""


class Work(Entity):
    """A Book or a Quick Story. `word_count` is derived from its content."""
    id: int = Field(..., ge=1)
    title: str
    subtitle: str = ""
    author: str = "Unknown Author"
    edition: str = "First Edition"
    copyright_year: str = Field(default_factory=lambda: str(utcnow().year))
    word_count: int = 0
    cover_image: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    is_series: bool = False
    series_name: Optional[str] = None
    series_number: Optional[int] = None
    contributors: Optional[List[Contributor]] = None
    description: Optional[str] = None
    genre: Optional[str] = None
    age_group: AgeGroup = "Adult"
    publisher_name: Optional[str] = None
    isbn_epub: Optional[str] = None
    isbn_kindle: Optional[str] = None
    isbn_paperback: Optional[str] = None
    isbn_hardcover: Optional[str] = None
    isbn_pdf: Optional[str] = None
    clause_all_rights_reserved: Optional[bool] = None
    clause_fiction: Optional[bool] = None
    clause_moral_rights: Optional[bool] = None
    clause_custom: Optional[bool] = None
    custom_clause_text: Optional[str] = None
