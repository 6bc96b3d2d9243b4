"""Pydantic models for note taking requests and responses."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, PositiveInt


class Note(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    note: str = Field(min_length=1)
    page_numbers: List[PositiveInt] = Field(alias="pageNumbers", min_length=1)


class TakeNotesRequest(BaseModel):
    name: str = Field(min_length=1)
    paperUrl: str = Field(min_length=1)
    pagesToDelete: Optional[str] = None

    def pages_to_delete(self) -> List[int]:
        if not self.pagesToDelete:
            return []
        return parse_pages_to_delete(self.pagesToDelete)


def parse_pages_to_delete(raw: str) -> List[int]:
    """Parse a comma separated page list, dropping non-numeric and non-positive tokens.

    >>> parse_pages_to_delete("1, x, -2, 4")
    [1, 4]
    """

    pages: List[int] = []
    for token in raw.split(","):
        token = token.strip()
        try:
            value = int(token)
        except ValueError:
            continue
        if value > 0:
            pages.append(value)
    return pages
