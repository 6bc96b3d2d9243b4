"""Page removal for PDF byte streams, backed by ``pypdf``."""

from __future__ import annotations

import io
import logging
from typing import List, Sequence

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError

from paper_notes.errors import PdfEditError

LOGGER = logging.getLogger(__name__)


def removal_indices(page_numbers: Sequence[int]) -> List[int]:
    """Return the zero-based index removed at each step.

    The offset starts at 1 and grows by one after every deletion, so each
    requested number is shifted to account for the pages already removed.
    Input must be positive and strictly ascending.
    """

    previous = 0
    indices: List[int] = []
    for offset, page_number in enumerate(page_numbers, start=1):
        if page_number < 1:
            raise PdfEditError(f"page numbers must be positive, got {page_number}")
        if page_number <= previous:
            raise PdfEditError("page numbers must be strictly ascending without duplicates")
        previous = page_number
        indices.append(page_number - offset)
    return indices


class PdfEditor:
    def delete_pages(self, data: bytes, page_numbers: Sequence[int]) -> bytes:
        indices = removal_indices(page_numbers)
        try:
            writer = PdfWriter(clone_from=PdfReader(io.BytesIO(data)))
        except (PyPdfError, ValueError, OSError) as exc:
            LOGGER.error("Unable to open PDF for editing: %s", exc)
            raise PdfEditError("unreadable PDF") from exc

        for page_number, index in zip(page_numbers, indices):
            page_count = len(writer.pages)
            if not 0 <= index < page_count:
                LOGGER.error(
                    "Page %s maps to index %s but the document has %s pages",
                    page_number,
                    index,
                    page_count,
                )
                raise PdfEditError(f"page {page_number} is out of range")
            del writer.pages[index]

        buffer = io.BytesIO()
        writer.write(buffer)
        return buffer.getvalue()
