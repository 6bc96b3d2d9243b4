"""Utilities for interacting with OpenSearch.

The client talks to the OpenSearch REST API via ``requests`` so the module
stays lightweight and works even when the Python ``opensearch-py`` package is
unavailable in the execution environment.  It backs both the paper store and
the segment vector index.  Transport errors are raised as
``requests.RequestException``; callers translate them into service errors.
"""

from __future__ import annotations

import json
import logging
from hashlib import sha1
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urljoin

import requests

from paper_notes.config import Settings

LOGGER = logging.getLogger(__name__)


class OpenSearchClient:
    """A minimal OpenSearch helper focused on documents and k-NN search."""

    def __init__(self, settings: Settings) -> None:
        self._base_url = str(settings.os_url)
        self._timeout = settings.http_timeout
        self._ensured: set = set()

    def _url(self, path: str) -> str:
        return urljoin(self._base_url, path)

    def _timeout_for(self, timeout: Optional[float]) -> float:
        return timeout if timeout is not None else self._timeout

    def ensure_index(self, index: str, mapping: Dict[str, Any], timeout: Optional[float] = None) -> None:
        """Create ``index`` with ``mapping`` if it does not already exist."""

        if index in self._ensured:
            return
        index_url = self._url(f"/{index}")
        response = requests.head(index_url, timeout=self._timeout_for(timeout))
        if response.status_code == 404:
            create = requests.put(
                index_url,
                data=json.dumps(mapping),
                headers={"Content-Type": "application/json"},
                timeout=self._timeout_for(timeout),
            )
            # Another request may have created it in the meantime.
            if create.status_code != 400 or "resource_already_exists" not in create.text:
                create.raise_for_status()
            LOGGER.info("Created OpenSearch index %s", index)
        else:
            response.raise_for_status()
        self._ensured.add(index)

    def get_document(self, index: str, doc_id: str, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """Return the ``_source`` of a document, or None when it does not exist."""

        response = requests.get(
            self._url(f"/{index}/_doc/{doc_id}"),
            timeout=self._timeout_for(timeout),
        )
        if response.status_code == 404:
            return None
        response.raise_for_status()
        payload = response.json()
        if not payload.get("found", False):
            return None
        return payload.get("_source")

    def put_document(self, index: str, doc_id: str, body: Dict[str, Any], timeout: Optional[float] = None) -> None:
        """Create or overwrite a document under an explicit id."""

        response = requests.put(
            self._url(f"/{index}/_doc/{doc_id}"),
            params={"refresh": "true"},
            data=json.dumps(body),
            headers={"Content-Type": "application/json"},
            timeout=self._timeout_for(timeout),
        )
        response.raise_for_status()

    def add_document(self, index: str, body: Dict[str, Any], timeout: Optional[float] = None) -> str:
        """Append a document with a generated id and return that id."""

        response = requests.post(
            self._url(f"/{index}/_doc"),
            data=json.dumps(body),
            headers={"Content-Type": "application/json"},
            timeout=self._timeout_for(timeout),
        )
        response.raise_for_status()
        return response.json().get("_id", "")

    def bulk_index(self, index: str, documents: Iterable[Dict[str, Any]], timeout: Optional[float] = None) -> int:
        """Index a batch of documents via the OpenSearch bulk API.

        Each document must carry a ``doc_key`` used as its id.  Returns the
        number of documents the cluster accepted.
        """

        lines: List[str] = []
        for document in documents:
            action = {"index": {"_index": index, "_id": document["doc_key"]}}
            lines.append(json.dumps(action))
            lines.append(json.dumps(document))
        if not lines:
            return 0
        payload = "\n".join(lines) + "\n"
        response = requests.post(
            self._url(f"/{index}/_bulk"),
            params={"refresh": "true"},
            data=payload,
            headers={"Content-Type": "application/x-ndjson"},
            timeout=self._timeout_for(timeout),
        )
        response.raise_for_status()
        data = response.json()
        items = data.get("items", [])
        failed = [item for item in items if item.get("index", {}).get("error")]
        if data.get("errors"):
            LOGGER.error("Bulk indexing into %s reported %s errors", index, len(failed))
        return len(items) - len(failed)

    def knn_search(
        self,
        index: str,
        query_vector: List[float],
        k: int,
        filter_clauses: Optional[List[Dict[str, Any]]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Execute a k-NN search, optionally restricted by filter clauses."""

        if not query_vector:
            return {}
        body: Dict[str, Any] = {
            "size": max(k, 1),
            "_source": {"excludes": ["content_vector"]},
            "query": {
                "knn": {
                    "content_vector": {
                        "vector": query_vector,
                        "k": max(k, 1),
                    }
                }
            },
        }
        if filter_clauses:
            filter_query: Dict[str, Any]
            if len(filter_clauses) == 1:
                filter_query = filter_clauses[0]
            else:
                filter_query = {"bool": {"filter": filter_clauses}}
            body["query"]["knn"]["content_vector"]["filter"] = filter_query

        response = requests.post(
            self._url(f"/{index}/_search"),
            headers={"Content-Type": "application/json"},
            data=json.dumps(body),
            timeout=self._timeout_for(timeout),
        )
        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            LOGGER.error("OpenSearch k-NN search failed: %s -- response=%s", exc, response.text)
            raise
        return response.json()

    @staticmethod
    def doc_id_for(key: str) -> str:
        """Return a stable document id for an arbitrary key such as a paper URL.

        Ids are capped at 512 bytes by OpenSearch, so long URLs are hashed.
        """

        return sha1(key.encode("utf-8")).hexdigest()
