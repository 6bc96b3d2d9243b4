"""Internal records passed between the pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from paper_notes.schemas.notes import Note


@dataclass
class TextSegment:
    """A unit of extracted text with its source metadata."""

    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def with_url(self, url: str) -> "TextSegment":
        return TextSegment(content=self.content, metadata=dict(self.metadata, url=url))


@dataclass(frozen=True)
class Paper:
    """A stored paper. Never mutated after creation."""

    url: str
    name: str
    full_text: str
    notes: List[Note]

    def to_document(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "name": self.name,
            "paper": self.full_text,
            "notes": [note.model_dump(by_alias=True) for note in self.notes],
        }

    @classmethod
    def from_document(cls, source: Dict[str, Any]) -> "Paper":
        return cls(
            url=source["url"],
            name=source.get("name", ""),
            full_text=source.get("paper", ""),
            notes=[Note.model_validate(item) for item in source.get("notes") or []],
        )


@dataclass(frozen=True)
class QARecord:
    question: str
    answer: str
    context: str
    followup_questions: List[str]

    def to_document(self) -> Dict[str, Any]:
        return {
            "question": self.question,
            "answer": self.answer,
            "context": self.context,
            "followupQuestions": list(self.followup_questions),
        }


def format_segments(segments: Iterable[TextSegment]) -> str:
    """Join segment contents in order, separated by blank lines."""

    return "\n\n".join(segment.content for segment in segments)
