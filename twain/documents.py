"""
Rich-text document helpers.

Documents are delta-style JSON: {"ops": [{"insert": "text"}, {"insert": {...}}]}.
String inserts are text runs, anything else (images, embeds) is ignored here.
"""
import io
import json
import logging
import re
from typing import Iterator, List, Mapping, Tuple

import docx

from twain.errors import ValidationError

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME = re.compile(r"[^a-z0-9\s]", re.IGNORECASE)


def parse_document(document) -> dict | None:
    """Return the parsed document, or None when it cannot be read."""
    if isinstance(document, Mapping):
        return dict(document)
    if not isinstance(document, (str, bytes)):
        return None
    try:
        parsed = json.loads(document)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def serialize_document(document) -> str:
    if isinstance(document, str):
        return document
    return json.dumps(document, ensure_ascii=False)


def iter_text_runs(document) -> Iterator[str]:
    parsed = parse_document(document)
    if not parsed:
        return
    ops = parsed.get("ops")
    if not isinstance(ops, list):
        return
    for op in ops:
        if isinstance(op, Mapping) and isinstance(op.get("insert"), str):
            yield op["insert"]


def document_text(document) -> str:
    return "".join(iter_text_runs(document))


def document_paragraphs(document) -> List[str]:
    """Non-empty lines of the document's plain text, stripped."""
    return [line.strip() for line in document_text(document).split("\n") if line.strip()]


def document_from_text(text: str) -> str:
    return serialize_document({"ops": [{"insert": text + "\n"}]})


def export_filename(title: str) -> str:
    return _UNSAFE_FILENAME.sub("_", title).lower() + ".docx"


def export_docx(title: str, sections: List[Tuple[str | None, List[str]]]) -> bytes:
    """
    Build a Word document: the title, then each section's optional heading
    followed by its paragraphs.
    """
    document = docx.Document()
    document.add_heading(title, level=0)
    for heading, paragraphs in sections:
        if heading:
            document.add_heading(heading, level=1)
        for text in paragraphs:
            document.add_paragraph(text)
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def read_docx_text(data: bytes) -> str:
    """Raw text of a .docx file, one line per paragraph."""
    try:
        document = docx.Document(io.BytesIO(data))
    except Exception as e:
        logger.warning(f"Could not read DOCX upload: {e}")
        raise ValidationError(
            "Could not extract text from the DOCX file. It may be corrupted or password-protected."
        ) from e
    return "\n".join(p.text for p in document.paragraphs)
