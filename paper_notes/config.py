"""Application configuration module.

This module centralises environment configuration using pydantic's
``BaseSettings``.  A ``Settings`` instance is built once by the API layer and
handed to every component constructor, so business logic never reads the
process environment directly.
"""

import tempfile
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, HttpUrl
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    gemini_api_key: Optional[str] = Field(
        default=None,
        description="Gemini API key. Required for note generation and QA.",
    )
    gemini_model: str = Field(
        default="gemini-2.5-flash",
        description="LLM model identifier used for notes and answers.",
    )
    generation_temperature: float = Field(default=0.0, ge=0.0)
    generation_timeout: float = Field(default=60.0, gt=0)
    unstructured_api_key: Optional[str] = Field(
        default=None,
        description="Optional Unstructured API key. Enables hi-res extraction.",
    )
    unstructured_api_url: str = Field(
        default="https://api.unstructuredapp.io/general/v0/general",
        description="Partition endpoint of the Unstructured API.",
    )
    unstructured_strategy: str = Field(default="hi_res")
    extraction_timeout: float = Field(default=60.0, gt=0)
    fetch_timeout: float = Field(default=30.0, gt=0)
    request_timeout: float = Field(
        default=60.0,
        gt=0,
        description="Overall budget in seconds for one /take_notes or /qa call.",
    )
    http_timeout: float = Field(
        default=10.0,
        description="Default HTTP timeout in seconds for store and embedding calls.",
    )
    os_url: HttpUrl = Field(
        default="http://opensearch:9200",
        description="Base URL of the OpenSearch cluster.",
    )
    papers_index: str = Field(default="papers")
    qa_index: str = Field(default="paper_qa")
    segments_index: str = Field(default="paper_segments")
    ollama_url: HttpUrl = Field(
        default="http://ollama:11434",
        description="Base URL of the Ollama instance providing embeddings.",
    )
    ollama_embed_model: str = Field(default="nomic-embed-text")
    qa_top_k: int = Field(default=8, ge=1)
    staging_dir: Path = Field(
        default=Path(tempfile.gettempdir()) / "paper_notes",
        description="Directory where PDFs are staged while being parsed.",
    )
    allowed_origins: List[str] = Field(default_factory=list)
    api_key: Optional[str] = Field(
        default=None,
        description="Optional static API key for simple authn.",
    )
    log_level: str = Field(default="INFO")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached settings instance.

    Using ``lru_cache`` keeps configuration loading inexpensive while still
    allowing tests to override environment variables by clearing the cache.
    """

    return Settings()
