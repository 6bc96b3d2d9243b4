"""Embedding utilities backed by Ollama's HTTP API."""

from __future__ import annotations

import contextlib
import logging
from typing import Iterable, List, Optional
from urllib.parse import urljoin

import requests

from paper_notes.config import Settings

LOGGER = logging.getLogger(__name__)


class OllamaEmbeddingClient:
    """Direct HTTP client that talks to Ollama's embedding API.

    ``embed`` returns one vector per input text.  A text whose request failed
    gets an empty list so callers can decide whether partial results are
    acceptable.
    """

    def __init__(self, settings: Settings) -> None:
        base_url = str(settings.ollama_url)
        self._model = settings.ollama_embed_model
        self._timeout = settings.http_timeout
        self._candidate_endpoints = [
            urljoin(base_url, "/api/embeddings"),
            urljoin(base_url, "/api/embed"),
        ]
        self._active_endpoint: Optional[str] = None

    def embed(self, texts: Iterable[str], timeout: Optional[float] = None) -> List[List[float]]:
        vectors: List[List[float]] = []
        for text in texts:
            vector = self._fetch_embedding(text, timeout if timeout is not None else self._timeout)
            vectors.append(vector if vector is not None else [])
        return vectors

    def _fetch_embedding(self, text: str, timeout: float) -> Optional[List[float]]:
        endpoints = [self._active_endpoint] if self._active_endpoint else list(self._candidate_endpoints)
        for endpoint in filter(None, endpoints):
            try:
                vector = self._post_embedding(endpoint, text, timeout)
                if vector is not None:
                    self._active_endpoint = endpoint
                    return vector
            except requests.HTTPError as exc:
                if exc.response is not None and exc.response.status_code == 404:
                    if endpoint == self._active_endpoint:
                        self._active_endpoint = None
                    continue
                LOGGER.error("Embedding request failed: %s", exc)
                break
            except requests.RequestException as exc:
                LOGGER.error("Embedding request failed: %s", exc)
                break
        return None

    def _post_embedding(self, endpoint: str, text: str, timeout: float) -> Optional[List[float]]:
        if endpoint.endswith("/api/embed"):
            payload = {"model": self._model, "input": text}
        else:
            payload = {"model": self._model, "prompt": text}
        response = requests.post(endpoint, json=payload, timeout=timeout)
        if response.status_code == 400:
            error_message = ""
            with contextlib.suppress(ValueError):
                error_message = response.json().get("error", "")
            LOGGER.warning("Ollama rejected embedding request for model '%s': %s", self._model, error_message)
        response.raise_for_status()
        data = response.json()
        vector = data.get("embedding")
        if vector is None and isinstance(data.get("embeddings"), list) and data["embeddings"]:
            vector = data["embeddings"][0]
        if isinstance(vector, list):
            return vector
        LOGGER.warning("Unexpected embedding payload: %s", data)
        return None
