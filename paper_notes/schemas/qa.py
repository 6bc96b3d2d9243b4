"""Question answering request/response models."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field


class QARequest(BaseModel):
    question: str = Field(min_length=1)
    paperUrl: str = Field(min_length=1)


class QAAnswer(BaseModel):
    answer: str
    followupQuestions: List[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    model_config = ConfigDict(json_schema_extra={"example": {"error": "download_pdf_failed"}})

    error: str
