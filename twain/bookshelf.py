"""
The user's Works: Books and Quick Stories.

Work ids are integers, one sequence per work kind. Deleting a Work also drops
all of its collections from the store.
"""
import base64
import logging
from typing import List

from pydantic import ValidationError as RecordError

from twain.activity import ActivityLog
from twain.content_store import ContentStore
from twain.entities import Chapter, Contributor, Work, new_item_id, utcnow
from twain.errors import NotFoundError, SeriesFull, StorageError, ValidationError
from twain.plans import Entitlements
from twain.wordcount import work_word_count

logger = logging.getLogger(__name__)

SERIES_NUMBERS = range(1, 13)
MAX_CONTRIBUTORS = 10
MAX_COVER_BYTES = 5 * 1024 * 1024
PUBLISHER_FIELDS = (
    "publisher_name", "isbn_epub", "isbn_kindle", "isbn_paperback", "isbn_hardcover", "isbn_pdf",
)
EDITABLE_FIELDS = (
    "title", "subtitle", "author", "edition", "copyright_year", "is_series", "series_name",
    "series_number", "contributors", "description", "genre", "age_group",
    "clause_all_rights_reserved", "clause_fiction", "clause_moral_rights", "clause_custom",
    "custom_clause_text",
) + PUBLISHER_FIELDS


def series_names(books: List[Work]) -> List[str]:
    return sorted({b.series_name for b in books if b.is_series and b.series_name})


def available_series_numbers(books: List[Work], series_name: str,
                             exclude_id: int | None = None) -> List[int]:
    """Book numbers 1-12 not yet used in `series_name`, ignoring `exclude_id`."""
    used = {
        b.series_number or 1
        for b in books
        if b.is_series and b.series_name == series_name and b.id != exclude_id
    }
    return [n for n in SERIES_NUMBERS if n not in used]


def next_series_number(books: List[Work], series_name: str, exclude_id: int | None = None) -> int:
    available = available_series_numbers(books, series_name, exclude_id)
    if not available:
        raise SeriesFull(series_name)
    return available[0]


def move_contributor(contributors: List[Contributor], index: int, direction: str) -> List[Contributor]:
    """Swap the contributor at `index` with its neighbour ("up" or "down")."""
    target = index - 1 if direction == "up" else index + 1
    moved = list(contributors)
    if 0 <= index < len(moved) and 0 <= target < len(moved):
        moved[index], moved[target] = moved[target], moved[index]
    return moved


class Bookshelf:

    def __init__(self, store: ContentStore, user_key: str, entitlements: Entitlements,
                 author_name: str | None = None, clock=utcnow):
        self.store = store
        self.user_key = user_key
        self.entitlements = entitlements
        self.author_name = author_name or "Unknown Author"
        self.clock = clock

    def works(self, work_kind: str = "book") -> List[Work]:
        return self.store.load_works(work_kind, self.user_key)

    def get(self, work_kind: str, work_id: int) -> Work:
        for work in self.works(work_kind):
            if work.id == work_id:
                return work
        raise NotFoundError(f"No {work_kind} with id {work_id}")

    def _replace(self, work_kind: str, updated: Work):
        works = [updated if w.id == updated.id else w for w in self.works(work_kind)]
        self.store.save_works(work_kind, self.user_key, works)

    def create_work(self, title: str, work_kind: str = "book") -> Work:
        title = (title or "").strip()
        if not title:
            raise ValidationError("Title is required")
        works = self.works(work_kind)
        self.entitlements.check_quantity("works", len(works))

        now = self.clock()
        work = Work(
            id=max((w.id for w in works), default=0) + 1,
            title=title,
            author=self.author_name,
            copyright_year=str(now.year),
            created_at=now,
            updated_at=now,
        )
        self.store.save_works(work_kind, self.user_key, works + [work])
        logger.info(f"Created {work_kind} '{work.title}' ({work.id}) for {self.user_key}")
        return work

    def update_book(self, work_id: int, **changes) -> Work:
        """Save the "manage book" form. Unknown fields are rejected."""
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown book fields: {', '.join(sorted(unknown))}")

        books = self.works("book")
        book = self.get("book", work_id)
        data = {**book.model_dump(), **changes}

        for field in ("title", "author"):
            data[field] = (data.get(field) or "").strip()
            if not data[field]:
                raise ValidationError(f"{field.capitalize()} is required")

        if any(changes.get(f) for f in PUBLISHER_FIELDS):
            self.entitlements.require("publisher")

        contributors = data.get("contributors") or []
        if len(contributors) > MAX_CONTRIBUTORS:
            raise ValidationError(f"Maximum of {MAX_CONTRIBUTORS} contributors allowed.")
        if changes.get("contributors"):
            self.entitlements.require("contributors")
        data["contributors"] = contributors or None

        if data.get("is_series"):
            self._check_series(books, book, data)
        else:
            data["series_name"] = None
            data["series_number"] = None

        if not data.get("clause_custom"):
            data["custom_clause_text"] = None

        data["updated_at"] = self.clock()
        try:
            updated = Work.model_validate(data)
        except RecordError as e:
            raise ValidationError(f"Invalid book: {e.errors()[0]['msg']}") from e
        self._replace("book", updated)
        return updated

    def _check_series(self, books, book, data):
        name = (data.get("series_name") or "").strip()
        if not name:
            raise ValidationError("Please enter a series name or disable the series option.")
        data["series_name"] = name

        joining = not (book.is_series and book.series_name == name)
        if joining:
            others = [b for b in books if b.id != book.id]
            if name not in series_names(others):
                self.entitlements.check_quantity("series", len(series_names(others)))
            self.entitlements.check_quantity("series books", sum(1 for b in others if b.is_series))

        number = data.get("series_number")
        if number is None:
            data["series_number"] = next_series_number(books, name, book.id)
        elif number not in available_series_numbers(books, name, book.id):
            raise ValidationError(f"Book number {number} is already used in '{name}'")

    def suggest_series(self, work_id: int) -> tuple[str, int] | None:
        """
        Series preselected on the manage form. Free users who already own a
        series get that series; everyone else keeps what the book has.
        """
        books = self.works("book")
        book = self.get("book", work_id)
        existing = series_names(books)
        if not self.entitlements.paid and existing:
            name = book.series_name or existing[0]
            number = book.series_number or next_series_number(books, name, book.id)
            return name, number
        if book.series_name:
            return book.series_name, book.series_number or 1
        return None

    def rename_work(self, work_kind: str, work_id: int, title: str) -> Work:
        title = (title or "").strip()
        if not title:
            raise ValidationError("Title is required")
        work = self.get(work_kind, work_id)
        updated = work.model_copy(update={"title": title, "updated_at": self.clock()})
        self._replace(work_kind, updated)
        return updated

    def set_cover(self, work_kind: str, work_id: int, data: bytes, mimetype: str) -> Work:
        if not (mimetype or "").startswith("image/"):
            raise ValidationError("Please select an image file.")
        if len(data) > MAX_COVER_BYTES:
            raise ValidationError("Image file size must be less than 5MB.")
        encoded = base64.b64encode(data).decode("ascii")
        work = self.get(work_kind, work_id)
        updated = work.model_copy(update={
            "cover_image": f"data:{mimetype};base64,{encoded}",
            "updated_at": self.clock(),
        })
        self._replace(work_kind, updated)
        return updated

    def remove_cover(self, work_kind: str, work_id: int) -> Work:
        work = self.get(work_kind, work_id)
        updated = work.model_copy(update={"cover_image": None, "updated_at": self.clock()})
        self._replace(work_kind, updated)
        return updated

    def update_word_count(self, work_kind: str, work_id: int, word_count: int):
        works = self.works(work_kind)
        updated = [
            w.model_copy(update={"word_count": word_count, "updated_at": self.clock()})
            if w.id == work_id else w
            for w in works
        ]
        self.store.save_works(work_kind, self.user_key, updated)

    def delete_work(self, work_kind: str, work_id: int):
        work = self.get(work_kind, work_id)
        remaining = [w for w in self.works(work_kind) if w.id != work_id]
        self.store.save_works(work_kind, self.user_key, remaining)
        self.store.remove_work_data(work_kind, work_id, self.user_key)
        logger.info(f"Deleted {work_kind} '{work.title}' ({work_id}) for {self.user_key}")

    def move_story_to_book(self, story_id: int, book_id: int, title: str | None = None) -> Chapter:
        """Turn a Quick Story into the last chapter of a Book and delete the story."""
        story = self.get("quickstory", story_id)
        book = self.get("book", book_id)
        contents = self.store.load("stories", story.id, self.user_key, "quickstory")
        if not contents:
            raise NotFoundError("Story content not found!")

        chapters = self.store.load("chapters", book.id, self.user_key, "book")
        self.entitlements.check_quantity("chapters", len(chapters))
        chapter = Chapter(
            id=new_item_id(c.id for c in chapters),
            title=(title or "").strip() or story.title,
            content=contents[0].content,
            created_at=self.clock(),
        )
        chapters.append(chapter)
        if not self.store.save("chapters", book.id, self.user_key, chapters, "book"):
            raise StorageError(f"Could not add '{chapter.title}' to book {book.id}")
        ActivityLog(self.store, "book", book.id, self.user_key, self.clock).append(
            "chapter", chapter.title, "created")

        total = work_word_count(
            chapters,
            self.store.load("stories", book.id, self.user_key, "book"),
            self.store.load("outlines", book.id, self.user_key, "book"),
        )
        self.update_word_count("book", book.id, total)
        self.delete_work("quickstory", story.id)
        return chapter
