"""Wiring of the pipeline and QA engine from a ``Settings`` instance."""

from __future__ import annotations

from functools import lru_cache

from paper_notes.config import Settings, get_settings
from paper_notes.generation.llm import GeminiToolCaller
from paper_notes.generation.notes import NoteGenerator
from paper_notes.ingestors.editor import PdfEditor
from paper_notes.ingestors.fetcher import PdfFetcher
from paper_notes.ingestors.pdf import DocumentExtractor
from paper_notes.pipeline import IngestionPipeline
from paper_notes.qa.engine import QAEngine
from paper_notes.search.embedding import OllamaEmbeddingClient
from paper_notes.search.opensearch_client import OpenSearchClient
from paper_notes.search.vector_index import VectorIndex
from paper_notes.storage.papers import PaperStore


def build_pipeline(settings: Settings) -> IngestionPipeline:
    client = OpenSearchClient(settings)
    return IngestionPipeline(
        settings=settings,
        fetcher=PdfFetcher(settings),
        editor=PdfEditor(),
        extractor=DocumentExtractor(settings),
        note_generator=NoteGenerator(GeminiToolCaller(settings)),
        store=PaperStore(client, settings),
        index=VectorIndex(client, OllamaEmbeddingClient(settings), settings),
    )


def build_qa_engine(settings: Settings) -> QAEngine:
    client = OpenSearchClient(settings)
    return QAEngine(
        settings=settings,
        llm=GeminiToolCaller(settings),
        store=PaperStore(client, settings),
        index=VectorIndex(client, OllamaEmbeddingClient(settings), settings),
    )


@lru_cache(maxsize=1)
def get_pipeline() -> IngestionPipeline:
    return build_pipeline(get_settings())


@lru_cache(maxsize=1)
def get_qa_engine() -> QAEngine:
    return build_qa_engine(get_settings())
