"""Shared fixtures: settings, synthetic PDFs and in-memory collaborators."""

import io
from typing import Dict, List, Optional

import pytest
from pypdf import PdfReader, PdfWriter

from paper_notes.config import Settings
from paper_notes.documents import Paper, QARecord
from paper_notes.schemas.notes import Note


def make_pdf(page_count: int) -> bytes:
    """Build a blank PDF whose page N is (99 + N) points wide."""

    writer = PdfWriter()
    for number in range(1, page_count + 1):
        writer.add_blank_page(width=99 + number, height=200)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def original_page_numbers(data: bytes) -> List[int]:
    """Recover the original page numbers of a PDF produced by ``make_pdf``."""

    return [round(float(page.mediabox.width)) - 99 for page in PdfReader(io.BytesIO(data)).pages]


class InMemoryPaperStore:
    def __init__(self) -> None:
        self.papers: Dict[str, Paper] = {}
        self.qa_log: List[QARecord] = []

    def get_paper(self, url: str, deadline=None) -> Optional[Paper]:
        return self.papers.get(url)

    def has_paper(self, url: str, deadline=None) -> bool:
        return url in self.papers

    def add_paper(self, paper: Paper, deadline=None) -> None:
        self.papers[paper.url] = paper

    def save_qa(self, record: QARecord, deadline=None) -> str:
        self.qa_log.append(record)
        return str(len(self.qa_log))


@pytest.fixture
def settings(tmp_path):
    return Settings(
        gemini_api_key="test-gemini-key",
        unstructured_api_key=None,
        staging_dir=tmp_path / "staging",
    )


@pytest.fixture
def store():
    return InMemoryPaperStore()


@pytest.fixture
def sample_notes():
    return [
        Note(note="The transformer relies only on attention.", pageNumbers=[1, 2]),
        Note(note="Multi-head attention uses 8 heads.", pageNumbers=[4]),
    ]


@pytest.fixture
def ten_page_pdf():
    return make_pdf(10)
