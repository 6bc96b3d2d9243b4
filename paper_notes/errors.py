"""Error taxonomy shared by the ingestion pipeline and the QA engine.

Every component catches the failures of the external system it talks to and
re-raises one of these kinds, chaining the original exception.  Only the
``code`` attribute crosses the HTTP boundary.
"""


class PaperNotesError(Exception):
    """Base class for all errors surfaced by the service."""

    code = "internal_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class ConfigError(PaperNotesError):
    """A required capability credential is missing."""

    code = "config_missing"


class DownloadError(PaperNotesError):
    code = "download_pdf_failed"


class PdfEditError(PaperNotesError):
    code = "pdf_edit_failed"


class ExtractionError(PaperNotesError):
    """Raised when every extraction tier failed."""

    code = "pdf_parse_failed"


class GenerationError(PaperNotesError):
    """The language model call failed or returned unusable output."""

    code = "generation_failed"


class PersistenceError(PaperNotesError):
    code = "database_failed"


class PaperNotFoundError(PaperNotesError):
    code = "paper_not_found"


class RetrievalError(PaperNotesError):
    """Similarity search failed. Never fatal to a QA call."""

    code = "retrieval_failed"


class DeadlineExceededError(PaperNotesError):
    code = "request_timeout"
