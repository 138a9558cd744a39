"""
Authoring session over one open Work.

At most one chapter, story or outline is open in the editor. Every editor
change is saved straight away; "modified" activity is recorded at most every
five seconds and only when the word count moved by more than one word.
"""
import logging
import os
from datetime import timedelta

from twain.activity import ActivityLog
from twain.bookshelf import Bookshelf
from twain.documents import (
    document_from_text, document_paragraphs, export_docx, export_filename, read_docx_text,
    serialize_document,
)
from twain.entities import (
    EMPTY_DOCUMENT, NOTE_COLORS, Chapter, Character, Idea, NoteCard, Outline, Part, Story,
    new_item_id,
)
from twain.errors import ImportConflict, NotFoundError, StorageError, ValidationError
from twain.timers import CountdownTimer
from twain.wordcount import count_words, work_word_count

logger = logging.getLogger(__name__)

# editor kind -> (collection, model, default title prefix)
RICH_KINDS = {
    "chapter": ("chapters", Chapter, "Chapter"),
    "story": ("stories", Story, "Story"),
    "outline": ("outlines", Outline, "Outline"),
}
MODIFIED_DEBOUNCE = timedelta(seconds=5)
NEW_ITEM_PLACEHOLDER = "Begin Writing Here..."
IMPORT_EXTENSIONS = (".txt", ".docx")


class WordGoal:
    """Words to write from the moment the goal was started. No partial credit."""

    def __init__(self):
        self.goal = None
        self.start_count = 0

    @property
    def active(self) -> bool:
        return self.goal is not None

    def start(self, goal: int, current_count: int):
        if goal <= 0:
            raise ValidationError("Word goal must be positive")
        self.goal = goal
        self.start_count = current_count

    def written(self, current_count: int) -> int:
        return max(current_count - self.start_count, 0) if self.active else 0

    def reached(self, current_count: int) -> bool:
        return self.active and current_count - self.start_count >= self.goal

    def stop(self):
        self.goal = None
        self.start_count = 0


class AuthoringSession:

    def __init__(self, bookshelf: Bookshelf, work_kind: str, work_id: int):
        self.bookshelf = bookshelf
        self.store = bookshelf.store
        self.user_key = bookshelf.user_key
        self.entitlements = bookshelf.entitlements
        self.clock = bookshelf.clock
        self.work_kind = work_kind
        self.work = bookshelf.get(work_kind, work_id)
        self.activity = ActivityLog(self.store, work_kind, work_id, self.user_key, self.clock)

        # editor state
        self.active_kind = None
        self.active_id = None
        self.placeholder = ""
        self.baseline = 0
        self.last_tracked_at = None
        self.last_save_time = None
        self._pending = None

        self.timer = CountdownTimer()
        self.word_goal = WordGoal()

    # ------------- collections -------------

    def items(self, collection: str) -> list:
        return self.store.load(collection, self.work.id, self.user_key, self.work_kind)

    def _save(self, collection: str, items) -> bool:
        return self.store.save(collection, self.work.id, self.user_key, items, self.work_kind)

    def _find(self, collection: str, item_id: str):
        for item in self.items(collection):
            if item.id == item_id:
                return item
        raise NotFoundError(f"No {collection} item with id {item_id}")

    def total_word_count(self) -> int:
        return work_word_count(self.items("chapters"), self.items("stories"), self.items("outlines"))

    def refresh_word_count(self) -> int:
        total = self.total_word_count()
        self.bookshelf.update_word_count(self.work_kind, self.work.id, total)
        self.work = self.work.model_copy(update={"word_count": total})
        return total

    # ------------- editor state -------------

    @property
    def editing(self) -> bool:
        return self.active_kind is not None

    @property
    def last_save_display(self) -> str | None:
        """Last autosave time as h:mm:ss AM/PM."""
        if self.last_save_time is None:
            return None
        return self.last_save_time.strftime("%I:%M:%S %p").lstrip("0")

    def active_item(self):
        if not self.editing:
            return None
        collection = RICH_KINDS[self.active_kind][0]
        return self._find(collection, self.active_id)

    def _open(self, kind: str, item, placeholder: str):
        self.active_kind = kind
        self.active_id = item.id
        self.placeholder = placeholder
        self.baseline = count_words(item.content)
        self.last_tracked_at = None
        self._pending = None

    def _reset(self):
        self.active_kind = None
        self.active_id = None
        self.placeholder = ""
        self.baseline = 0
        self.last_tracked_at = None
        self._pending = None

    def create_item(self, kind: str, title: str | None = None):
        """Create a chapter, story or outline and open it in the editor."""
        collection, model, prefix = RICH_KINDS[kind]
        items = self.items(collection)
        self.entitlements.check_quantity(collection, len(items))

        item = model(
            id=new_item_id(i.id for i in items),
            title=(title or "").strip() or f"{prefix} {len(items) + 1}",
            content=EMPTY_DOCUMENT,
            created_at=self.clock(),
        )
        self._flush_or_raise()
        self._save(collection, items + [item])
        self.activity.append(kind, item.title, "created")
        self.refresh_word_count()
        self._open(kind, item, NEW_ITEM_PLACEHOLDER)
        return item

    def create_chapter(self, title: str | None = None) -> Chapter:
        return self.create_item("chapter", title)

    def create_story(self, title: str | None = None) -> Story:
        return self.create_item("story", title)

    def create_outline(self, title: str | None = None) -> Outline:
        return self.create_item("outline", title)

    def edit(self, kind: str, item_id: str):
        """Open an existing item. Whatever was open is flushed first."""
        item = self._find(RICH_KINDS[kind][0], item_id)
        self._flush_or_raise()
        self._open(kind, item, f"Continue writing {item.title}...")
        return item

    def close(self):
        self._flush_or_raise()
        self._reset()

    def flush(self) -> bool:
        """Write a pending editor document that autosave could not store."""
        if not self.editing or self._pending is None:
            return True
        if self._write_active(self._pending):
            self._pending = None
            return True
        return False

    def _flush_or_raise(self):
        """Leave the editor untouched when the open document cannot be written."""
        if not self.flush():
            raise StorageError(f"Unsaved changes to the open {self.active_kind} could not be written")

    def _write_active(self, content: str) -> bool:
        collection = RICH_KINDS[self.active_kind][0]
        items = self.items(collection)
        updated = [i.model_copy(update={"content": content}) if i.id == self.active_id else i
                   for i in items]
        return self._save(collection, updated)

    def document_changed(self, document):
        """Autosave the open item and track meaningful modifications."""
        if not self.editing:
            raise ValidationError("No chapter, story or outline is open")

        content = serialize_document(document)
        if self._write_active(content):
            self._pending = None
            self.last_save_time = self.clock()
        else:
            self._pending = content
        self.refresh_word_count()

        now = self.clock()
        current = count_words(content)
        if self.last_tracked_at is not None and now - self.last_tracked_at < MODIFIED_DEBOUNCE:
            return
        if abs(current - self.baseline) <= 1:
            return
        item = self.active_item()
        self.activity.append(self.active_kind, item.title, "modified")
        self.baseline = current
        self.last_tracked_at = now

    def rename_item(self, kind: str, item_id: str, title: str):
        title = (title or "").strip()
        if not title:
            raise ValidationError("Title is required")
        collection = RICH_KINDS[kind][0]
        item = self._find(collection, item_id)
        updated = item.model_copy(update={"title": title})
        self._save(collection, [updated if i.id == item_id else i for i in self.items(collection)])
        self.activity.append(kind, title, "modified")
        return updated

    def delete_item(self, kind: str, item_id: str):
        """Delete a chapter, story or outline, and its references from Parts."""
        collection = RICH_KINDS[kind][0]
        item = self._find(collection, item_id)
        if self.active_kind == kind and self.active_id == item_id:
            self._reset()

        self._save(collection, [i for i in self.items(collection) if i.id != item_id])
        if kind in ("chapter", "story"):
            self._drop_part_references(kind, item_id)
        self.activity.append(kind, item.title, "deleted")
        self.refresh_word_count()

    def _drop_part_references(self, kind: str, item_id: str):
        field = "chapter_ids" if kind == "chapter" else "story_ids"
        parts = []
        for part in self.items("parts"):
            ids = getattr(part, field)
            if item_id in ids:
                part = part.model_copy(update={field: [i for i in ids if i != item_id]})
                if part.is_empty():
                    logger.info(f"Removing empty part '{part.title}'")
                    continue
            parts.append(part)
        self._save("parts", parts)

    def start(self, auto_start_story: bool = True):
        """
        Quick-story mode: open the first story, creating one named after the
        Work when there is none yet.
        """
        stories = self.items("stories")
        if stories:
            return self.edit("story", stories[0].id)
        if not auto_start_story:
            return None
        story = self.create_item("story", self.work.title)
        self.placeholder = f'Begin writing "{self.work.title}"...'
        return story

    # ------------- ideas and characters -------------

    def save_idea(self, title: str, notes: str = "", idea_id: str | None = None) -> Idea:
        title = (title or "").strip()
        if not title:
            raise ValidationError("Title is required")
        ideas = self.items("ideas")
        if idea_id is None:
            self.entitlements.check_quantity("ideas", len(ideas))
            idea = Idea(id=new_item_id(i.id for i in ideas), title=title, notes=notes,
                        created_at=self.clock())
            self._save("ideas", ideas + [idea])
            self.activity.append("idea", title, "created")
            return idea

        idea = self._find("ideas", idea_id).model_copy(update={"title": title, "notes": notes})
        self._save("ideas", [idea if i.id == idea_id else i for i in ideas])
        self.activity.append("idea", title, "modified")
        return idea

    def delete_idea(self, idea_id: str):
        idea = self._find("ideas", idea_id)
        self._save("ideas", [i for i in self.items("ideas") if i.id != idea_id])
        self.activity.append("idea", idea.title, "deleted")

    def save_character(self, name: str, character_id: str | None = None, **fields) -> Character:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required")
        characters = self.items("characters")
        if character_id is None:
            self.entitlements.check_quantity("characters", len(characters))
            character = Character(id=new_item_id(c.id for c in characters), name=name,
                                  created_at=self.clock(), **fields)
            self._save("characters", characters + [character])
            self.activity.append("character", name, "created")
            return character

        current = self._find("characters", character_id)
        character = Character.model_validate({**current.model_dump(), **fields, "name": name})
        self._save("characters", [character if c.id == character_id else c for c in characters])
        self.activity.append("character", name, "modified")
        return character

    def delete_character(self, character_id: str):
        character = self._find("characters", character_id)
        self._save("characters", [c for c in self.items("characters") if c.id != character_id])
        self.activity.append("character", character.name, "deleted")

    # ------------- parts -------------

    def save_part(self, title: str, chapter_ids=(), story_ids=(), part_id: str | None = None) -> Part:
        """A chapter or story belongs to at most one Part."""
        self.entitlements.require("parts")
        title = (title or "").strip()
        chapter_ids, story_ids = list(chapter_ids), list(story_ids)
        if not title:
            raise ValidationError("Part title is required")
        if not chapter_ids and not story_ids:
            raise ValidationError("Select at least one chapter or story")

        known_chapters = {c.id for c in self.items("chapters")}
        known_stories = {s.id for s in self.items("stories")}
        missing = [i for i in chapter_ids if i not in known_chapters] + \
                  [i for i in story_ids if i not in known_stories]
        if missing:
            raise ValidationError(f"Unknown chapters or stories: {', '.join(missing)}")

        parts = self.items("parts")
        for other in parts:
            if other.id == part_id:
                continue
            taken = set(other.chapter_ids) & set(chapter_ids) or set(other.story_ids) & set(story_ids)
            if taken:
                raise ValidationError(f"Already assigned to part '{other.title}'")

        if part_id is None:
            part = Part(id=new_item_id(p.id for p in parts), title=title,
                        chapter_ids=chapter_ids, story_ids=story_ids, created_at=self.clock())
            self._save("parts", parts + [part])
            self.activity.append("part", title, "created")
            return part

        part = self._find("parts", part_id).model_copy(
            update={"title": title, "chapter_ids": chapter_ids, "story_ids": story_ids}
        )
        self._save("parts", [part if p.id == part_id else p for p in parts])
        self.activity.append("part", title, "modified")
        return part

    def delete_part(self, part_id: str):
        part = self._find("parts", part_id)
        self._save("parts", [p for p in self.items("parts") if p.id != part_id])
        self.activity.append("part", part.title, "deleted")

    # ------------- note cards -------------

    def save_note_card(self, content: str, title: str = "", color: str = "yellow",
                       card_id: str | None = None, **links) -> NoteCard:
        self.entitlements.require("notecards")
        if color not in NOTE_COLORS:
            raise ValidationError(f"Unknown note card color: {color}")
        cards = self.items("notecards")
        data = {"title": (title or "").strip(), "content": content, "color": color, **links}
        logged_title = data["title"] or "Untitled"

        if card_id is None:
            card = NoteCard(id=new_item_id(c.id for c in cards), created_at=self.clock(), **data)
            self._save("notecards", cards + [card])
            self.activity.append("notecard", logged_title, "created")
            return card

        current = self._find("notecards", card_id)
        card = NoteCard.model_validate({**current.model_dump(), **data})
        self._save("notecards", [card if c.id == card_id else c for c in cards])
        self.activity.append("notecard", logged_title, "modified")
        return card

    def delete_note_card(self, card_id: str):
        card = self._find("notecards", card_id)
        self._save("notecards", [c for c in self.items("notecards") if c.id != card_id])
        self.activity.append("notecard", card.title or "Untitled", "deleted")

    def move_note_card(self, dragged_id: str, target_id: str) -> list:
        """Take the dragged card out and insert it at the target's position."""
        cards = self.items("notecards")
        ids = [c.id for c in cards]
        if dragged_id not in ids or target_id not in ids:
            raise NotFoundError("Note card not found")
        if dragged_id == target_id:
            return cards
        target_index = ids.index(target_id)
        dragged = cards.pop(ids.index(dragged_id))
        cards.insert(target_index, dragged)
        self._save("notecards", cards)
        return cards

    # ------------- imports -------------

    def importable_stories(self) -> list:
        """Quick stories that have content, as (work, story) pairs."""
        found = []
        for work in self.bookshelf.works("quickstory"):
            stories = self.store.load("stories", work.id, self.user_key, "quickstory")
            if stories:
                found.append((work, stories[0]))
        return found

    def plan_import(self, story_ids):
        """
        Split the selected quick stories into (conflicts, clean). A conflict is
        a story whose title matches an existing chapter, ignoring case and
        surrounding whitespace.
        """
        selected = [(w, s) for w, s in self.importable_stories() if w.id in set(story_ids)]
        existing = {c.title.strip().lower() for c in self.items("chapters")}
        conflicts, clean = [], []
        for work, story in selected:
            if work.title.strip().lower() in existing:
                conflicts.append((work.id, work.title))
            else:
                clean.append((work.id, work.title))
        return conflicts, clean

    def import_stories(self, story_ids, on_conflict: str | None = None) -> list:
        """
        Copy quick stories into this book as chapters. With conflicts and no
        `on_conflict` decision ("overwrite", "skip" or "cancel"), raises
        ImportConflict so the caller can ask.
        """
        conflicts, clean = self.plan_import(story_ids)
        if conflicts and on_conflict is None:
            raise ImportConflict(conflicts, clean)
        if on_conflict == "cancel":
            return []
        if on_conflict not in (None, "overwrite", "skip"):
            raise ValidationError(f"Unknown conflict resolution: {on_conflict}")

        selected = clean + (conflicts if on_conflict == "overwrite" else [])
        contents = {w.id: s.content for w, s in self.importable_stories()}
        chapters = self.items("chapters")
        imported, logged = [], []
        for work_id, title in selected:
            key = title.strip().lower()
            match = next((c for c in chapters if c.title.strip().lower() == key), None)
            if match is not None:
                replacement = match.model_copy(update={"title": title, "content": contents[work_id]})
                chapters = [replacement if c.id == match.id else c for c in chapters]
                logged.append((title, "modified"))
                imported.append(replacement)
                continue
            self.entitlements.check_quantity("chapters", len(chapters))
            chapter = Chapter(id=new_item_id(c.id for c in chapters), title=title,
                              content=contents[work_id], created_at=self.clock())
            chapters.append(chapter)
            logged.append((title, "created"))
            imported.append(chapter)

        # nothing is written or logged until every chapter passed the limit check
        if not self._save("chapters", chapters):
            raise StorageError("Imported chapters could not be saved")
        for title, action in logged:
            self.activity.append("chapter", title, action)
        self.refresh_word_count()
        logger.info(f"Imported {len(imported)} stories into book {self.work.id}")
        return imported

    def import_file(self, kind: str, filename: str, data: bytes, title: str | None = None):
        """New chapter, story or outline from an uploaded .txt or .docx file."""
        extension = os.path.splitext(filename or "")[1].lower()
        if extension not in IMPORT_EXTENSIONS:
            raise ValidationError("Please select a .txt or .docx file")
        if extension == ".docx":
            text = read_docx_text(data)
            if not text.strip():
                raise ValidationError("The DOCX file appears to be empty.")
        else:
            text = data.decode("utf-8", errors="replace")

        collection, model, _ = RICH_KINDS[kind]
        items = self.items(collection)
        self.entitlements.check_quantity(collection, len(items))
        item = model(
            id=new_item_id(i.id for i in items),
            title=(title or "").strip() or os.path.splitext(os.path.basename(filename))[0],
            content=document_from_text(text),
            created_at=self.clock(),
        )
        self._save(collection, items + [item])
        self.activity.append(kind, item.title, "created")
        self.refresh_word_count()
        return item

    # ------------- export -------------

    def export_item(self, kind: str, item_id: str):
        """(filename, docx bytes) for one chapter, story or outline."""
        self.entitlements.require("export")
        item = self._find(RICH_KINDS[kind][0], item_id)
        return export_filename(item.title), export_docx(item.title, [(None, document_paragraphs(item.content))])

    def export_work(self):
        """(filename, docx bytes) for the whole Work, one heading per item."""
        self.entitlements.require("export")
        self.flush()
        sections = []
        for collection in ("chapters", "stories"):
            for item in self.items(collection):
                sections.append((item.title, document_paragraphs(item.content)))
        return export_filename(self.work.title), export_docx(self.work.title, sections)

    # ------------- timer and word goal -------------

    def start_timer(self, minutes: int, background: bool = True):
        self.timer.start(minutes, background)

    def stop_timer(self):
        self.timer.stop()

    def editor_word_count(self) -> int:
        item = self.active_item()
        return count_words(item.content) if item else 0

    def start_word_goal(self, goal: int):
        self.word_goal.start(goal, self.editor_word_count())

    def word_goal_reached(self) -> bool:
        return self.word_goal.reached(self.editor_word_count())

    def teardown(self):
        """Stop the timer and flush the editor. The session stays usable."""
        self.timer.stop()
        self.flush()
