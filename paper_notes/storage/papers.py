"""Paper and QA log persistence on top of OpenSearch documents.

Papers are keyed by a hash of their source URL.  ``add_paper`` overwrites
any document under the same id, so two ingestions of one URL racing past the
existence check both succeed and the last write wins.  No lock is taken.
"""

from __future__ import annotations

import logging
from typing import Optional

import requests

from paper_notes.config import Settings
from paper_notes.deadline import Deadline, io_timeout
from paper_notes.documents import Paper, QARecord
from paper_notes.errors import PersistenceError
from paper_notes.search.opensearch_client import OpenSearchClient

LOGGER = logging.getLogger(__name__)


class PaperStore:
    def __init__(self, client: OpenSearchClient, settings: Settings) -> None:
        self._client = client
        self._papers_index = settings.papers_index
        self._qa_index = settings.qa_index
        self._timeout = settings.http_timeout

    def get_paper(self, url: str, deadline: Optional[Deadline] = None) -> Optional[Paper]:
        try:
            source = self._client.get_document(
                self._papers_index,
                OpenSearchClient.doc_id_for(url),
                timeout=io_timeout(deadline, self._timeout),
            )
        except requests.RequestException as exc:
            LOGGER.error("Failed to load paper %s: %s", url, exc)
            raise PersistenceError("could not read paper") from exc
        if source is None:
            return None
        try:
            return Paper.from_document(source)
        except (KeyError, ValueError) as exc:
            LOGGER.error("Stored paper %s is malformed: %s", url, exc)
            raise PersistenceError("stored paper is malformed") from exc

    def has_paper(self, url: str, deadline: Optional[Deadline] = None) -> bool:
        return self.get_paper(url, deadline=deadline) is not None

    def add_paper(self, paper: Paper, deadline: Optional[Deadline] = None) -> None:
        try:
            self._client.put_document(
                self._papers_index,
                OpenSearchClient.doc_id_for(paper.url),
                paper.to_document(),
                timeout=io_timeout(deadline, self._timeout),
            )
        except requests.RequestException as exc:
            LOGGER.error("Failed to save paper %s: %s", paper.url, exc)
            raise PersistenceError("could not save paper") from exc
        LOGGER.info("Saved paper %s with %s notes", paper.url, len(paper.notes))

    def save_qa(self, record: QARecord, deadline: Optional[Deadline] = None) -> str:
        try:
            return self._client.add_document(
                self._qa_index,
                record.to_document(),
                timeout=io_timeout(deadline, self._timeout),
            )
        except requests.RequestException as exc:
            LOGGER.error("Failed to record QA for question %r: %s", record.question, exc)
            raise PersistenceError("could not record QA") from exc
