import io
import re
from dataclasses import dataclass, field
from typing import List

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from .errors import ExtractionError

_INLINE_WHITESPACE = re.compile(r"[^\S\r\n]+")
_BLANK_LINES = re.compile(r"\n\s*\n")


@dataclass
class ExtractedText:
    text: str
    page_count: int
    # index of the first word of each page within the flattened word sequence
    page_word_offsets: List[int] = field(default_factory=list)


def normalize_text(text: str) -> str:
    """
    Collapse runs of spaces/tabs to a single space and runs of blank lines
    to a single newline, then trim.
    """
    text = _INLINE_WHITESPACE.sub(" ", text)
    text = _BLANK_LINES.sub("\n", text)
    return text.strip()


def extract_pdf_text(data: bytes) -> ExtractedText:
    """
    Extract normalized text and page count from a PDF byte buffer.

    Pages are normalized one at a time and joined with newlines, recording
    where each page starts in word terms so chunks can be attributed to a page.
    No reference to `data` is kept after this returns.

    Raises:
        ExtractionError: buffer is not a readable PDF or has no text layer
    """
    if not data:
        raise ExtractionError("Empty document buffer")

    try:
        reader = PdfReader(io.BytesIO(data))
        page_count = len(reader.pages)
        parts = []
        offsets = []
        words_seen = 0
        for page in reader.pages:
            page_text = normalize_text(page.extract_text() or "")
            offsets.append(words_seen)
            if page_text:
                parts.append(page_text)
                words_seen += len(page_text.split())
    except PyPdfError as e:
        raise ExtractionError(f"Not a readable PDF: {e}") from e
    except (ValueError, TypeError, KeyError) as e:
        # pypdf surfaces some structural damage as plain Python errors
        raise ExtractionError(f"Malformed PDF structure: {e}") from e

    if words_seen == 0:
        raise ExtractionError(
            "No extractable text found (scanned or empty PDF)",
            {"page_count": page_count},
        )

    return ExtractedText(text="\n".join(parts), page_count=page_count, page_word_offsets=offsets)
