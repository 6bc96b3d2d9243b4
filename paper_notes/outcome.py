"""Result type for best-effort sub-operations.

Indexing, QA logging and similarity search return an ``Outcome`` instead of
raising.  The caller inspects ``ok``, logs the error and moves on, which
keeps the intentionally non-fatal failures visible in the signatures.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from paper_notes.errors import PaperNotesError

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    value: Optional[T] = None
    error: Optional[PaperNotesError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def attempt(cls, func: Callable[..., T], *args, **kwargs) -> "Outcome[T]":
        """Run ``func`` and capture a ``PaperNotesError`` as the error variant.

        Anything that is not a ``PaperNotesError`` is a programming error and
        propagates.
        """

        try:
            return cls(value=func(*args, **kwargs))
        except PaperNotesError as exc:
            return cls(error=exc)
