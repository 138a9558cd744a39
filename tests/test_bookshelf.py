# tests/test_bookshelf.py
import pytest

from twain.activity import ActivityLog
from twain.bookshelf import available_series_numbers, move_contributor
from twain.entities import Chapter, Contributor, Idea
from twain.errors import NotFoundError, SeriesFull, UpgradeRequired, ValidationError
from twain.session import AuthoringSession

from conftest import USER


def test_free_user_cannot_create_a_fourth_work(shelf):
    for n in range(3):
        shelf.create_work(f"Book {n + 1}")
    with pytest.raises(UpgradeRequired):
        shelf.create_work("Book 4")
    assert len(shelf.works("book")) == 3

    # the limit counts per work kind
    shelf.create_work("A quick one", "quickstory")


def test_new_work_defaults(shelf, clock):
    work = shelf.create_work("  Night Train ")
    assert work.id == 1
    assert work.title == "Night Train"
    assert work.author == "Ann Writer"
    assert work.copyright_year == "2024"
    assert work.edition == "First Edition"
    assert work.created_at == clock()

    with pytest.raises(ValidationError):
        shelf.create_work("   ")


def test_ids_continue_after_the_highest(shelf):
    shelf.create_work("One")
    shelf.create_work("Two")
    shelf.delete_work("book", 1)
    assert shelf.create_work("Three").id == 3


def test_delete_cascades_to_content(shelf, store):
    work = shelf.create_work("Doomed")
    store.save("ideas", work.id, USER, [Idea(id="1", title="x")])
    shelf.delete_work("book", work.id)

    assert store.load("ideas", work.id, USER) == []
    with pytest.raises(NotFoundError):
        shelf.get("book", work.id)


def test_series_numbers_are_unique(paid_shelf):
    for n in range(3):
        paid_shelf.create_work(f"Saga {n + 1}")
    assert paid_shelf.update_book(1, is_series=True, series_name="Saga").series_number == 1
    assert paid_shelf.update_book(2, is_series=True, series_name="Saga").series_number == 2
    with pytest.raises(ValidationError):
        paid_shelf.update_book(3, is_series=True, series_name="Saga", series_number=2)

    books = paid_shelf.works("book")
    assert available_series_numbers(books, "Saga")[:2] == [3, 4]
    # the book being edited keeps its own number available
    assert 1 in available_series_numbers(books, "Saga", exclude_id=1)


def test_full_series_raises(paid_shelf):
    for n in range(13):
        paid_shelf.create_work(f"Volume {n + 1}")
    for work_id in range(1, 13):
        paid_shelf.update_book(work_id, is_series=True, series_name="Long Saga")
    with pytest.raises(SeriesFull):
        paid_shelf.update_book(13, is_series=True, series_name="Long Saga")


def test_free_user_gets_one_series(shelf):
    shelf.create_work("First")
    shelf.create_work("Second")
    shelf.update_book(1, is_series=True, series_name="Saga")
    with pytest.raises(UpgradeRequired):
        shelf.update_book(2, is_series=True, series_name="Other Saga")
    assert shelf.suggest_series(2) == ("Saga", 2)


def test_book_form_validation(shelf):
    shelf.create_work("Book")
    with pytest.raises(ValidationError):
        shelf.update_book(1, title="")
    with pytest.raises(ValidationError):
        shelf.update_book(1, is_series=True, series_name=" ")
    with pytest.raises(UpgradeRequired):
        shelf.update_book(1, isbn_epub="978-3-16-148410-0")
    with pytest.raises(UpgradeRequired):
        shelf.update_book(1, contributors=[{"id": "1", "firstName": "Bo"}])

    book = shelf.update_book(1, subtitle="A Tale", is_series=False, series_name="ignored")
    assert book.subtitle == "A Tale"
    assert book.series_name is None


def test_contributors(paid_shelf):
    paid_shelf.create_work("Book")
    people = [{"id": str(n), "role": "Editor", "first_name": f"P{n}"} for n in range(11)]
    with pytest.raises(ValidationError):
        paid_shelf.update_book(1, contributors=people)
    book = paid_shelf.update_book(1, contributors=people[:2])
    assert [c.first_name for c in book.contributors] == ["P0", "P1"]

    moved = move_contributor(book.contributors, 1, "up")
    assert [c.first_name for c in moved] == ["P1", "P0"]
    assert move_contributor(moved, 0, "up") == moved


def test_cover_image(shelf):
    shelf.create_work("Book")
    with pytest.raises(ValidationError):
        shelf.set_cover("book", 1, b"%PDF", "application/pdf")
    with pytest.raises(ValidationError):
        shelf.set_cover("book", 1, b"x" * (5 * 1024 * 1024 + 1), "image/png")

    work = shelf.set_cover("book", 1, b"\x89PNG", "image/png")
    assert work.cover_image.startswith("data:image/png;base64,")
    assert shelf.remove_cover("book", 1).cover_image is None


def test_move_story_to_book(shelf, store):
    shelf.create_work("Novel")
    story_work = shelf.create_work("Short Piece", "quickstory")
    quick = AuthoringSession(shelf, "quickstory", story_work.id)
    quick.start()
    quick.document_changed({"ops": [{"insert": "It was late.\n"}]})
    quick.close()

    chapter = shelf.move_story_to_book(story_work.id, 1)

    assert isinstance(chapter, Chapter)
    assert chapter.title == "Short Piece"
    assert store.load("chapters", 1, USER)[0].content == chapter.content
    assert shelf.works("quickstory") == []
    assert store.load("stories", story_work.id, USER, "quickstory") == []

    assert shelf.get("book", 1).word_count == 3
    activity = ActivityLog(store, "book", 1, USER).entries()
    assert [(e.type, e.title, e.action) for e in activity] == [("chapter", "Short Piece", "created")]


def test_move_story_respects_chapter_limit(shelf, store):
    shelf.create_work("Full Book")
    store.save("chapters", 1, USER, [Chapter(id=str(n), title=f"Chapter {n}") for n in range(3)])
    story_work = shelf.create_work("Extra", "quickstory")
    quick = AuthoringSession(shelf, "quickstory", story_work.id)
    quick.start()
    quick.document_changed({"ops": [{"insert": "one two three\n"}]})
    quick.close()

    with pytest.raises(UpgradeRequired):
        shelf.move_story_to_book(story_work.id, 1)

    assert len(store.load("chapters", 1, USER)) == 3
    assert [w.title for w in shelf.works("quickstory")] == ["Extra"]


def test_contributor_roles_are_checked():
    with pytest.raises(ValueError):
        Contributor(id="1", role="Ghost")
