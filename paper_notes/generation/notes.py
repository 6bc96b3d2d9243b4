"""Structured note generation over the extracted text of a paper."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from pydantic import ValidationError

from paper_notes.deadline import Deadline
from paper_notes.documents import TextSegment, format_segments
from paper_notes.errors import GenerationError
from paper_notes.generation.llm import GeminiToolCaller, ToolSpec
from paper_notes.schemas.notes import Note

LOGGER = logging.getLogger(__name__)

NOTES_TOOL = ToolSpec(
    name="formatNotes",
    description="Format the notes response.",
    parameters={
        "type": "OBJECT",
        "properties": {
            "notes": {
                "type": "ARRAY",
                "items": {
                    "type": "OBJECT",
                    "properties": {
                        "note": {
                            "type": "STRING",
                            "description": "The note content.",
                        },
                        "pageNumbers": {
                            "type": "ARRAY",
                            "items": {"type": "INTEGER"},
                            "description": "The page numbers referenced in the note.",
                        },
                    },
                    "required": ["note", "pageNumbers"],
                },
            }
        },
        "required": ["notes"],
    },
)


def build_notes_prompt(paper: str) -> str:
    return (
        "Take notes on the following scientific paper.\n"
        "Write the notes so that a reader who has only seen the notes understands the paper in full.\n"
        "Rules:\n"
        "- Include specific quotes and details from the paper.\n"
        "- Cover the whole paper, keeping each note focused on one specific part of it.\n"
        "- Include the results of every experiment and the steps needed to reproduce them.\n"
        "- Do not write notes such as 'The authors discuss how well XYZ works'; explain what XYZ is and how it works.\n"
        "- Every note must list the page numbers it draws on.\n"
        "Respond by calling the formatNotes tool.\n"
        f"\nPaper:\n{paper}"
    )


def parse_notes(calls: Sequence[dict]) -> List[Note]:
    notes: List[Note] = []
    try:
        for args in calls:
            notes.extend(Note.model_validate(item) for item in args.get("notes") or [])
    except (ValidationError, AttributeError, TypeError) as exc:
        LOGGER.error("Model returned notes that do not match the schema: %s", exc)
        raise GenerationError("notes did not match the expected schema") from exc
    return notes


class NoteGenerator:
    def __init__(self, llm: GeminiToolCaller) -> None:
        self._llm = llm

    def generate(self, segments: Sequence[TextSegment], deadline: Optional[Deadline] = None) -> List[Note]:
        prompt = build_notes_prompt(format_segments(segments))
        notes = parse_notes(self._llm.call_tool(prompt, NOTES_TOOL, deadline=deadline))
        if not notes:
            raise GenerationError("model returned no notes")
        LOGGER.info("Generated %s notes", len(notes))
        return notes
