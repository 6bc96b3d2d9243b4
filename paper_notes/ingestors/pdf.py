"""PDF to text segment conversion.

Extraction runs through an ordered list of tiers.  The hosted Unstructured
partition API gives the best layout-aware elements and is tried first when a
key is configured; ``pypdf`` is used for its pure-Python implementation so
the local fallback works without extra system libraries.  The input bytes are
staged to a temporary file once and the file is removed whatever the outcome.
"""

from __future__ import annotations

import contextlib
import logging
import uuid
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

import requests
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from paper_notes.config import Settings
from paper_notes.deadline import Deadline, io_timeout
from paper_notes.documents import TextSegment
from paper_notes.errors import ExtractionError, PaperNotesError

LOGGER = logging.getLogger(__name__)


class TierError(RuntimeError):
    """Raised by a single tier. The extractor moves on to the next one."""


@contextlib.contextmanager
def staged_pdf(data: bytes, directory: Path) -> Iterator[Path]:
    """Write ``data`` to a uniquely named file and remove it on exit."""

    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{uuid.uuid4().hex}.pdf"
    path.write_bytes(data)
    try:
        yield path
    finally:
        try:
            path.unlink()
        except FileNotFoundError:
            pass


class ExtractionTier:
    name = "tier"
    timeout: Optional[float] = None

    def load(self, path: Path, timeout: Optional[float]) -> List[TextSegment]:
        raise NotImplementedError


class UnstructuredTier(ExtractionTier):
    """High-fidelity extraction through the Unstructured partition API."""

    name = "unstructured"

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.unstructured_api_key
        self._url = settings.unstructured_api_url
        self._strategy = settings.unstructured_strategy
        self.timeout = settings.extraction_timeout

    def load(self, path: Path, timeout: Optional[float]) -> List[TextSegment]:
        try:
            with path.open("rb") as handle:
                response = requests.post(
                    self._url,
                    headers={"accept": "application/json", "unstructured-api-key": self._api_key},
                    files={"files": (path.name, handle, "application/pdf")},
                    data={"strategy": self._strategy},
                    timeout=timeout,
                )
            response.raise_for_status()
            elements = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise TierError(f"Unstructured request failed: {exc}") from exc

        if not isinstance(elements, list):
            raise TierError(f"Unexpected Unstructured payload: {type(elements).__name__}")

        try:
            return self._to_segments(elements)
        except Exception as exc:
            raise TierError(f"Malformed Unstructured element: {exc!r}") from exc

    def _to_segments(self, elements: List[object]) -> List[TextSegment]:
        segments: List[TextSegment] = []
        for element in elements:
            if not isinstance(element, dict):
                continue
            text = (element.get("text") or "").strip()
            if not text:
                continue
            element_meta = element.get("metadata") or {}
            metadata = {"source": self.name, "category": element.get("type")}
            if element_meta.get("page_number") is not None:
                metadata["page_number"] = element_meta["page_number"]
            segments.append(TextSegment(content=text, metadata=metadata))
        return segments


class PypdfTier(ExtractionTier):
    """Page-level text straight from the PDF structure."""

    name = "pypdf"

    def load(self, path: Path, timeout: Optional[float]) -> List[TextSegment]:
        try:
            reader = PdfReader(str(path))
            return [
                TextSegment(
                    content=(page.extract_text() or "").strip(),
                    metadata={"source": self.name, "page_number": number},
                )
                for number, page in enumerate(reader.pages, start=1)
            ]
        except (PyPdfError, ValueError, OSError) as exc:
            raise TierError(f"pypdf could not parse the document: {exc}") from exc
        except Exception as exc:
            # pypdf raises KeyError/TypeError on broken fonts and xref tables
            raise TierError(f"pypdf failed while extracting text: {exc!r}") from exc


def default_tiers(settings: Settings) -> List[ExtractionTier]:
    tiers: List[ExtractionTier] = []
    if settings.unstructured_api_key:
        tiers.append(UnstructuredTier(settings))
    tiers.append(PypdfTier())
    return tiers


class DocumentExtractor:
    def __init__(self, settings: Settings, tiers: Optional[Sequence[ExtractionTier]] = None) -> None:
        self._staging_dir = settings.staging_dir
        self._tiers = list(tiers) if tiers is not None else default_tiers(settings)

    @property
    def tiers(self) -> List[ExtractionTier]:
        return list(self._tiers)

    def extract(self, data: bytes, deadline: Optional[Deadline] = None) -> List[TextSegment]:
        try:
            with staged_pdf(data, self._staging_dir) as path:
                segments = self._run_tiers(path, deadline)
        except OSError as exc:
            LOGGER.error("Unable to stage PDF under %s: %s", self._staging_dir, exc)
            raise ExtractionError("could not stage PDF") from exc
        if not segments:
            raise ExtractionError("all extraction tiers failed")
        return segments

    def _run_tiers(self, path: Path, deadline: Optional[Deadline]) -> List[TextSegment]:
        for tier in self._tiers:
            try:
                segments = tier.load(path, io_timeout(deadline, tier.timeout))
            except TierError as exc:
                LOGGER.warning("Extraction tier %s failed: %s", tier.name, exc)
                continue
            except PaperNotesError:
                raise
            except Exception:
                LOGGER.exception("Extraction tier %s raised unexpectedly", tier.name)
                continue
            if segments:
                LOGGER.info("Extracted %s segments with %s", len(segments), tier.name)
                return segments
            LOGGER.warning("Extraction tier %s returned no segments", tier.name)
        return []
