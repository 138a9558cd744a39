"""
Word counts for rich-text documents and the Works that own them.
"""
from typing import Iterable

from twain.documents import iter_text_runs
from twain.entities import RichTextItem


def count_words(document) -> int:
    """
    Count whitespace-separated tokens in every text run of `document`.

    Each run is counted on its own, so a word split across two runs counts
    twice. Malformed documents count as 0.
    """
    return sum(len(run.split()) for run in iter_text_runs(document))


def work_word_count(*collections: Iterable[RichTextItem]) -> int:
    """Total over the chapters, stories and outlines of one Work."""
    return sum(count_words(item.content) for items in collections for item in items)
