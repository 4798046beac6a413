"""FastAPI backend: auth-gated transcription and history over a document store."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Header, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..config import ServerSettings
from ..exceptions import TranscriptionError, ValidationError, VoiceClipError
from ..history import HistoryService, build_record, save_best_effort
from ..models import AudioBlob, HistoryDay, TranscriptionRecord
from ..storage import HistoryStore, MongoHistoryStore
from ..transcriber import GroqTranscriber, TranscriptionClient

MAX_UPLOAD_BYTES = 25 * 1024 * 1024


class RequestRejected(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TranscriptionPayload(CamelModel):
    text: str
    duration_seconds: float


class TranscribeResponse(BaseModel):
    success: bool = True
    data: TranscriptionPayload


class HistoryDayPayload(BaseModel):
    date: str
    count: int


class HistoryDaysResponse(BaseModel):
    success: bool = True
    data: List[HistoryDayPayload]


class RecordPayload(CamelModel):
    id: str
    text: str
    duration_seconds: float
    cost_usd: float
    timestamp: datetime
    date: str


class HistoryRecordsResponse(BaseModel):
    success: bool = True
    data: List[RecordPayload]


class CreateHistoryRequest(CamelModel):
    text: Optional[str] = None
    duration_seconds: Optional[float] = Field(default=None, allow_inf_nan=False)
    timestamp: Optional[datetime] = None
    date: Optional[str] = None


class CreatedPayload(BaseModel):
    id: str


class CreatedResponse(BaseModel):
    success: bool = True
    data: CreatedPayload


class HealthResponse(BaseModel):
    status: str = "ok"


def _record_to_payload(record: TranscriptionRecord) -> RecordPayload:
    return RecordPayload(
        id=record.id,
        text=record.text,
        duration_seconds=record.duration_seconds,
        cost_usd=record.cost_usd,
        timestamp=record.timestamp,
        date=record.date,
    )


def _day_to_payload(day: HistoryDay) -> HistoryDayPayload:
    return HistoryDayPayload(date=day.date, count=day.count)


def require_api_key(request: Request, x_api_key: Optional[str] = Header(None)) -> None:
    expected = request.app.state.settings.api_key
    if not expected:
        raise RequestRejected(500, "API key not configured")
    if not x_api_key or x_api_key != expected:
        raise RequestRejected(401, "Invalid or missing API key")


def get_history(request: Request) -> HistoryService:
    return request.app.state.history


def get_transcriber(request: Request) -> TranscriptionClient:
    return request.app.state.transcriber


transcribe_router = APIRouter(prefix="/api/transcribe", dependencies=[Depends(require_api_key)])
history_router = APIRouter(prefix="/api/history", dependencies=[Depends(require_api_key)])


@transcribe_router.post("", response_model=TranscribeResponse)
async def transcribe(
    audio: Optional[UploadFile] = File(None),
    save: Optional[str] = None,
    transcriber: TranscriptionClient = Depends(get_transcriber),
    history: HistoryService = Depends(get_history),
) -> TranscribeResponse:
    if audio is None:
        raise RequestRejected(400, "No audio file provided")
    content = await audio.read()
    if len(content) > MAX_UPLOAD_BYTES:
        raise RequestRejected(400, "Audio file exceeds the 25 MB limit")

    blob = AudioBlob(
        data=content,
        mime_type=audio.content_type or "application/octet-stream",
        filename=audio.filename or "audio",
    )
    result = await run_in_threadpool(transcriber.transcribe, blob)
    logging.info("Transcribed %d bytes into %d characters", len(content), len(result.text))

    # Only an absent value or the literal "true" saves.
    if save is None or save == "true":
        record = build_record(result.text, result.duration_seconds)
        await run_in_threadpool(save_best_effort, history.store, record)

    return TranscribeResponse(
        data=TranscriptionPayload(text=result.text, duration_seconds=result.duration_seconds)
    )


@history_router.get("/days", response_model=HistoryDaysResponse)
async def history_days(history: HistoryService = Depends(get_history)) -> HistoryDaysResponse:
    days = await run_in_threadpool(history.list_days)
    return HistoryDaysResponse(data=[_day_to_payload(day) for day in days])


@history_router.get("/{date}", response_model=HistoryRecordsResponse)
async def history_by_date(date: str, history: HistoryService = Depends(get_history)) -> HistoryRecordsResponse:
    records = await run_in_threadpool(history.list_by_date, date)
    return HistoryRecordsResponse(data=[_record_to_payload(record) for record in records])


@history_router.post("", response_model=CreatedResponse)
async def add_history(
    payload: CreateHistoryRequest,
    history: HistoryService = Depends(get_history),
) -> CreatedResponse:
    record_id = await run_in_threadpool(
        history.add,
        payload.text,
        payload.duration_seconds,
        payload.timestamp,
        payload.date,
    )
    return CreatedResponse(data=CreatedPayload(id=record_id))


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(
    store: Optional[HistoryStore] = None,
    transcriber: Optional[TranscriptionClient] = None,
    settings: Optional[ServerSettings] = None,
) -> FastAPI:
    """Build the backend. The store is connected for the lifetime of the app."""

    settings = settings or ServerSettings.from_env()
    if store is None:
        store = MongoHistoryStore(settings.mongodb_uri, settings.db_name)
    if transcriber is None:
        transcriber = GroqTranscriber(settings.groq_api_key, model=settings.transcription_model)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await run_in_threadpool(store.connect)
        logging.info("History store connected")
        try:
            yield
        finally:
            await run_in_threadpool(store.disconnect)
            logging.info("History store disconnected")

    app = FastAPI(
        title="voiceclip API",
        description="Transcription and history backend for voiceclip clients.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.history = HistoryService(store)
    app.state.transcriber = transcriber

    @app.exception_handler(RequestRejected)
    async def handle_api_error(_request: Request, exc: RequestRejected) -> JSONResponse:
        return _error(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(_request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return _error(400, message)

    @app.exception_handler(ValidationError)
    async def handle_validation(_request: Request, exc: ValidationError) -> JSONResponse:
        return _error(400, str(exc))

    @app.exception_handler(TranscriptionError)
    async def handle_transcription(_request: Request, exc: TranscriptionError) -> JSONResponse:
        logging.error("Transcription failed: %s", exc)
        return _error(500, str(exc))

    @app.exception_handler(VoiceClipError)
    async def handle_voiceclip(_request: Request, exc: VoiceClipError) -> JSONResponse:
        logging.error("Request failed: %s", exc)
        return _error(500, str(exc))

    @app.get("/api/health", response_model=HealthResponse)
    async def healthcheck() -> HealthResponse:
        return HealthResponse()

    app.include_router(transcribe_router)
    app.include_router(history_router)
    return app


def run(host: Optional[str] = None, port: Optional[int] = None, log_level: str = "info") -> None:  # pragma: no cover
    import uvicorn

    settings = ServerSettings.from_env()
    uvicorn.run(
        "voiceclip.api:create_app",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        log_level=log_level,
    )


__all__ = ["create_app", "run"]
