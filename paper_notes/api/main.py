"""FastAPI application exposing note taking and question answering endpoints."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from paper_notes.config import get_settings
from paper_notes.deadline import Deadline
from paper_notes.errors import PaperNotesError
from paper_notes.pipeline import IngestionPipeline
from paper_notes.qa.engine import QAEngine
from paper_notes.schemas.notes import Note, TakeNotesRequest
from paper_notes.schemas.qa import ErrorResponse, QAAnswer, QARequest
from paper_notes.services import get_pipeline, get_qa_engine

LOGGER = logging.getLogger(__name__)

settings = get_settings()
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="paper_notes API", version="0.1.0")

if settings.allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

ERROR_RESPONSES = {400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}


def verify_api_key(x_api_key: Optional[str] = Header(default=None)) -> None:
    if settings.api_key and x_api_key != settings.api_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


def request_deadline() -> Deadline:
    return Deadline(settings.request_timeout)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({str(error["loc"][-1]) for error in exc.errors() if len(error.get("loc", ())) > 1})
    message = f"Missing required fields: {', '.join(fields)}" if fields else "Invalid request body"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


@app.exception_handler(PaperNotesError)
async def service_error_handler(request: Request, exc: PaperNotesError) -> JSONResponse:
    LOGGER.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": exc.code})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    LOGGER.error("%s %s failed unexpectedly", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": PaperNotesError.code},
    )


@app.get("/", response_class=PlainTextResponse)
def liveness() -> str:
    return "ok"


@app.post(
    "/take_notes",
    response_model=List[Note],
    responses=ERROR_RESPONSES,
    dependencies=[Depends(verify_api_key)],
)
def take_notes(
    request: TakeNotesRequest,
    pipeline: IngestionPipeline = Depends(get_pipeline),
    deadline: Deadline = Depends(request_deadline),
):
    pages = request.pages_to_delete()
    if pages != sorted(set(pages)):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "pagesToDelete must be ascending without duplicates"},
        )
    return pipeline.take_notes(request.paperUrl, request.name, pages, deadline=deadline)


@app.post(
    "/qa",
    response_model=List[QAAnswer],
    responses=ERROR_RESPONSES,
    dependencies=[Depends(verify_api_key)],
)
def qa(
    request: QARequest,
    engine: QAEngine = Depends(get_qa_engine),
    deadline: Deadline = Depends(request_deadline),
):
    return engine.answer(request.question, request.paperUrl, deadline=deadline)
