"""Paper ingestion: fetch, edit, extract, take notes, persist and index.

The pipeline is a linear state machine.  Every stage up to and including
persistence is fatal on failure and leaves nothing behind; indexing runs only
after the paper is saved and its failure is logged and discarded.
"""

from __future__ import annotations

import enum
import logging
from typing import List, Optional, Sequence, Tuple

from paper_notes.config import Settings
from paper_notes.deadline import Deadline
from paper_notes.documents import Paper, TextSegment, format_segments
from paper_notes.errors import ConfigError, PaperNotesError
from paper_notes.generation.notes import NoteGenerator
from paper_notes.ingestors.editor import PdfEditor
from paper_notes.ingestors.fetcher import PdfFetcher
from paper_notes.ingestors.pdf import DocumentExtractor
from paper_notes.outcome import Outcome
from paper_notes.schemas.notes import Note
from paper_notes.search.vector_index import VectorIndex
from paper_notes.storage.papers import PaperStore

LOGGER = logging.getLogger(__name__)


class PipelineStage(str, enum.Enum):
    START = "start"
    FETCHED = "fetched"
    EDITED = "edited"
    EXTRACTED = "extracted"
    NOTES_GENERATED = "notes_generated"
    PAPER_PERSISTED = "paper_persisted"
    INDEXED = "indexed"
    DONE = "done"
    ABORTED = "aborted"


class IngestionPipeline:
    def __init__(
        self,
        settings: Settings,
        fetcher: PdfFetcher,
        editor: PdfEditor,
        extractor: DocumentExtractor,
        note_generator: NoteGenerator,
        store: PaperStore,
        index: VectorIndex,
    ) -> None:
        self._settings = settings
        self._fetcher = fetcher
        self._editor = editor
        self._extractor = extractor
        self._note_generator = note_generator
        self._store = store
        self._index = index

    def take_notes(
        self,
        url: str,
        name: str,
        pages_to_delete: Optional[Sequence[int]] = None,
        deadline: Optional[Deadline] = None,
    ) -> List[Note]:
        if not self._settings.gemini_api_key:
            raise ConfigError("GEMINI_API_KEY is not configured")

        existing = self._store.get_paper(url, deadline=deadline)
        if existing is not None:
            LOGGER.info("Paper %s already ingested; returning stored notes", url)
            self._enter(url, PipelineStage.DONE)
            return list(existing.notes)

        self._enter(url, PipelineStage.START)
        try:
            paper, segments = self._build_paper(url, name, pages_to_delete or [], deadline)
            self._store.add_paper(paper, deadline=deadline)
        except PaperNotesError as exc:
            self._enter(url, PipelineStage.ABORTED)
            LOGGER.error("Ingestion of %s aborted: %s", url, exc.code)
            raise
        self._enter(url, PipelineStage.PAPER_PERSISTED)

        indexed = self._index_segments(segments, deadline)
        if indexed.ok:
            self._enter(url, PipelineStage.INDEXED)
            LOGGER.info("Indexed %s segments for %s", indexed.value, url)
        else:
            LOGGER.warning("Vector indexing skipped for %s: %s", url, indexed.error)

        self._enter(url, PipelineStage.DONE)
        return list(paper.notes)

    def _build_paper(
        self,
        url: str,
        name: str,
        pages_to_delete: Sequence[int],
        deadline: Optional[Deadline],
    ) -> Tuple[Paper, List[TextSegment]]:
        pdf = self._fetcher.fetch(url, deadline=deadline)
        self._enter(url, PipelineStage.FETCHED)

        if pages_to_delete:
            pdf = self._editor.delete_pages(pdf, pages_to_delete)
            self._enter(url, PipelineStage.EDITED)

        segments = [segment.with_url(url) for segment in self._extractor.extract(pdf, deadline=deadline)]
        self._enter(url, PipelineStage.EXTRACTED)

        notes = self._note_generator.generate(segments, deadline=deadline)
        self._enter(url, PipelineStage.NOTES_GENERATED)

        paper = Paper(url=url, name=name, full_text=format_segments(segments), notes=notes)
        return paper, segments

    def _index_segments(self, segments: Sequence[TextSegment], deadline: Optional[Deadline]) -> Outcome[int]:
        return Outcome.attempt(self._index.add_segments, segments, deadline)

    @staticmethod
    def _enter(url: str, stage: PipelineStage) -> None:
        LOGGER.debug("Ingestion of %s -> %s", url, stage.value)
