"""Retrieval-augmented question answering over a stored paper."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

from pydantic import ValidationError

from paper_notes.config import Settings
from paper_notes.deadline import Deadline
from paper_notes.documents import Paper, QARecord, TextSegment, format_segments
from paper_notes.errors import ConfigError, GenerationError, PaperNotFoundError
from paper_notes.generation.llm import GeminiToolCaller, ToolSpec
from paper_notes.outcome import Outcome
from paper_notes.schemas.qa import QAAnswer
from paper_notes.search.vector_index import VectorIndex
from paper_notes.storage.papers import PaperStore

LOGGER = logging.getLogger(__name__)

FALLBACK_SOURCE = "paper-fallback"

ANSWER_TOOL = ToolSpec(
    name="questionAnswer",
    description="The answer to the question",
    parameters={
        "type": "OBJECT",
        "properties": {
            "answer": {
                "type": "STRING",
                "description": "The answer to the question",
            },
            "followupQuestions": {
                "type": "ARRAY",
                "items": {"type": "STRING"},
                "description": "Followup questions the user could also ask",
            },
        },
        "required": ["answer", "followupQuestions"],
    },
)


def build_qa_prompt(question: str, relevant_documents: str, notes: str) -> str:
    return (
        "You are a tenured professor of computer science helping a student with their research.\n"
        "The student has a question about a paper they are reading.\n"
        "Below are excerpts of the paper relevant to the question, followed by notes taken on the whole paper.\n"
        "Answer the question using these sources, then suggest follow-up questions the student could ask.\n"
        "Respond by calling the questionAnswer tool.\n"
        f"\nRelevant excerpts:\n{relevant_documents}\n"
        f"\nNotes:\n{notes}\n"
        f"\nQuestion:\n{question}"
    )


class QAEngine:
    def __init__(
        self,
        settings: Settings,
        llm: GeminiToolCaller,
        store: PaperStore,
        index: VectorIndex,
    ) -> None:
        self._settings = settings
        self._llm = llm
        self._store = store
        self._index = index
        self._top_k = settings.qa_top_k

    def answer(self, question: str, paper_url: str, deadline: Optional[Deadline] = None) -> List[QAAnswer]:
        if not self._settings.gemini_api_key:
            raise ConfigError("GEMINI_API_KEY is not configured")

        retrieved = self._retrieve(question, paper_url, deadline)
        segments = retrieved.value or []
        if not retrieved.ok:
            LOGGER.warning("Similarity search failed, will fall back to the stored paper: %s", retrieved.error)

        paper = self._store.get_paper(paper_url, deadline=deadline)
        if paper is None or not paper.notes:
            raise PaperNotFoundError(f"no notes found for {paper_url}")

        if not segments:
            segments = [fallback_segment(paper)]

        context = format_segments(segments)
        notes = "\n".join(note.note for note in paper.notes)
        calls = self._llm.call_tool(build_qa_prompt(question, context, notes), ANSWER_TOOL, deadline=deadline)
        answers = parse_answers(calls)
        if not answers:
            raise GenerationError("model returned no answer")

        records = [QARecord(question, item.answer, context, item.followupQuestions) for item in answers]
        for outcome in self._record_all(records, deadline):
            if not outcome.ok:
                LOGGER.warning("QA record was not saved: %s", outcome.error)
        return answers

    def _retrieve(self, question: str, paper_url: str, deadline: Optional[Deadline]) -> Outcome[List[TextSegment]]:
        return Outcome.attempt(self._index.similarity_search, question, self._top_k, paper_url, deadline)

    def _record(self, record: QARecord, deadline: Optional[Deadline]) -> Outcome[str]:
        return Outcome.attempt(self._store.save_qa, record, deadline)

    def _record_all(self, records: Sequence[QARecord], deadline: Optional[Deadline]) -> List[Outcome[str]]:
        if len(records) == 1:
            return [self._record(records[0], deadline)]
        with ThreadPoolExecutor(max_workers=len(records)) as pool:
            return list(pool.map(lambda record: self._record(record, deadline), records))


def fallback_segment(paper: Paper) -> TextSegment:
    return TextSegment(content=paper.full_text, metadata={"source": FALLBACK_SOURCE, "url": paper.url})


def parse_answers(calls: Sequence[dict]) -> List[QAAnswer]:
    try:
        return [QAAnswer.model_validate(args) for args in calls]
    except ValidationError as exc:
        LOGGER.error("Model returned an answer that does not match the schema: %s", exc)
        raise GenerationError("answer did not match the expected schema") from exc
