"""Retrieve raw PDF bytes from HTTP(S) URLs or the local filesystem."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse
from urllib.request import url2pathname

import requests

from paper_notes.config import Settings
from paper_notes.deadline import Deadline, io_timeout
from paper_notes.errors import DownloadError

LOGGER = logging.getLogger(__name__)

HTTP_URL = re.compile(r"^https?://", re.IGNORECASE)
DRIVE_PATH = re.compile(r"^[A-Za-z]:\\")


def looks_like_local_path(url: str) -> bool:
    """Return True for drive-letter, rooted or backslash paths that are not HTTP URLs."""

    if HTTP_URL.match(url):
        return False
    return bool(DRIVE_PATH.match(url)) or url.startswith("/") or "\\" in url


def file_url_to_path(url: str) -> Path:
    parsed = urlparse(url)
    return Path(url2pathname(parsed.path))


class PdfFetcher:
    """Single-attempt PDF download. The caller decides what a failure means."""

    def __init__(self, settings: Settings) -> None:
        self._timeout = settings.fetch_timeout
        self._headers = {
            "User-Agent": "paper-notes/0.1",
            "Accept": "application/pdf,*/*;q=0.8",
        }

    def fetch(self, url: str, deadline: Optional[Deadline] = None) -> bytes:
        try:
            if url.lower().startswith("file://"):
                return file_url_to_path(url).read_bytes()
            if looks_like_local_path(url):
                return Path(url).read_bytes()
            response = requests.get(
                url,
                headers=self._headers,
                timeout=io_timeout(deadline, self._timeout),
            )
            response.raise_for_status()
            return response.content
        except (OSError, requests.RequestException) as exc:
            LOGGER.error("Failed to load PDF from %s: %s", url, exc)
            raise DownloadError(f"could not download {url}") from exc
