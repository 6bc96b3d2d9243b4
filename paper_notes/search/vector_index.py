"""Segment embeddings stored as k-NN vectors in OpenSearch."""

from __future__ import annotations

import logging
from hashlib import sha1
from typing import Any, Dict, List, Optional, Sequence

import requests

from paper_notes.config import Settings
from paper_notes.deadline import Deadline, io_timeout
from paper_notes.documents import TextSegment
from paper_notes.errors import PersistenceError, RetrievalError
from paper_notes.search.embedding import OllamaEmbeddingClient
from paper_notes.search.opensearch_client import OpenSearchClient

LOGGER = logging.getLogger(__name__)


def build_segment_mapping(dims: int) -> Dict[str, Any]:
    return {
        "settings": {
            "index": {
                "number_of_shards": 1,
                "number_of_replicas": 0,
                "knn": True,
            }
        },
        "mappings": {
            "properties": {
                "content": {"type": "text"},
                "content_vector": {
                    "type": "knn_vector",
                    "dimension": dims,
                    "method": {
                        "name": "hnsw",
                        "engine": "lucene",
                        "space_type": "cosinesimil",
                    },
                },
                "url": {"type": "keyword"},
                "source": {"type": "keyword"},
                "page_number": {"type": "integer"},
                "doc_key": {"type": "keyword"},
                "content_hash": {"type": "keyword"},
                "metadata": {"type": "object", "enabled": False},
            }
        },
    }


class VectorIndex:
    """Embeds text segments and runs similarity search scoped by paper URL.

    Entries are a cache: a paper whose segments were never indexed is still
    answerable from its stored full text.
    """

    def __init__(self, client: OpenSearchClient, embedder: OllamaEmbeddingClient, settings: Settings) -> None:
        self._client = client
        self._embedder = embedder
        self._index = settings.segments_index
        self._timeout = settings.http_timeout

    def add_segments(self, segments: Sequence[TextSegment], deadline: Optional[Deadline] = None) -> int:
        """Embed and index every segment, returning how many were stored."""

        documents: List[Dict[str, Any]] = []
        skipped = 0
        try:
            for position, segment in enumerate(segments):
                if not segment.content.strip():
                    skipped += 1
                    continue
                url = segment.metadata.get("url", "")
                vectors = self._embedder.embed([segment.content], timeout=io_timeout(deadline, self._timeout))
                if not vectors or not vectors[0]:
                    skipped += 1
                    continue
                documents.append(
                    {
                        "doc_key": f"{OpenSearchClient.doc_id_for(url)}::{position}",
                        "content": segment.content,
                        "url": url,
                        "source": segment.metadata.get("source"),
                        "page_number": segment.metadata.get("page_number"),
                        "content_hash": sha1(segment.content.encode("utf-8")).hexdigest(),
                        "metadata": segment.metadata,
                        "content_vector": vectors[0],
                    }
                )
            if not documents:
                raise PersistenceError("no segment could be embedded")
            timeout = io_timeout(deadline, self._timeout)
            self._client.ensure_index(self._index, build_segment_mapping(len(documents[0]["content_vector"])), timeout=timeout)
            indexed = self._client.bulk_index(self._index, documents, timeout=timeout)
        except requests.RequestException as exc:
            LOGGER.error("Vector indexing into %s failed: %s", self._index, exc)
            raise PersistenceError("vector indexing failed") from exc

        if indexed == 0:
            raise PersistenceError(f"{self._index} rejected all {len(documents)} segments")
        if skipped:
            LOGGER.warning("Skipped %s segments without text or embedding", skipped)
        return indexed

    def similarity_search(
        self,
        query: str,
        k: int,
        url: str,
        deadline: Optional[Deadline] = None,
    ) -> List[TextSegment]:
        try:
            vectors = self._embedder.embed([query], timeout=io_timeout(deadline, self._timeout))
            if not vectors or not vectors[0]:
                raise RetrievalError("query embedding failed")
            response = self._client.knn_search(
                self._index,
                vectors[0],
                k,
                [{"term": {"url": url}}],
                timeout=io_timeout(deadline, self._timeout),
            )
        except requests.RequestException as exc:
            LOGGER.error("Similarity search on %s failed: %s", self._index, exc)
            raise RetrievalError("similarity search failed") from exc

        segments: List[TextSegment] = []
        for hit in response.get("hits", {}).get("hits", []):
            source = hit.get("_source", {})
            metadata = dict(source.get("metadata") or {}, url=source.get("url", url))
            segments.append(TextSegment(content=source.get("content", ""), metadata=metadata))
        return segments
