from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from fastapi import FastAPI, File, Form, Header, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from datachat.chat_service import ChatService
from datachat.models import ChatMessage, ChatSession, Dataset, utc_now_iso
from datachat.orchestrator import AnalysisOrchestrator
from datachat.settings import ModelNotConfiguredError, ModelSettings, configure_logging
from datachat.store import JsonFileStore
from datachat.uploads import UploadError, read_upload

DATA_DIR = Path(os.getenv("DATACHAT_DATA_DIR", "data_store"))
NOT_CONFIGURED_DETAIL = "AI model is not configured. Set OPENAI_API_KEY (or the Azure OpenAI settings)."

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="AI Data Chat Backend", version="0.1.0")
_chat_service: ChatService | None = None

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten this in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class CreateSessionRequest(BaseModel):
    title: str | None = None


class RenameSessionRequest(BaseModel):
    title: str = Field(min_length=1)


class SendMessageRequest(BaseModel):
    message: str = Field(min_length=1)
    dataset_ids: list[str] = Field(default_factory=list)


class DatasetSummary(BaseModel):
    id: str
    name: str
    columns: list[str]
    row_count: int
    created_at: str


class ChatTurnResponse(BaseModel):
    session_id: str
    user_message: ChatMessage
    assistant_message: ChatMessage


def _get_chat_service() -> ChatService:
    global _chat_service
    if _chat_service is None:
        store = JsonFileStore(DATA_DIR)
        _chat_service = ChatService(store, AnalysisOrchestrator(store, ModelSettings.from_env()))
    return _chat_service


def _owner_from_header(x_user_id: str | None) -> str:
    if x_user_id and x_user_id.strip():
        return x_user_id.strip()
    raise HTTPException(status_code=401, detail="Missing X-User-Id header.")


def _require_session(service: ChatService, owner_id: str, session_id: str) -> ChatSession:
    session = service.store.get_session(owner_id, session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Chat session not found.")
    return session


def _dataset_summary(dataset: Dataset) -> DatasetSummary:
    return DatasetSummary(
        id=dataset.id,
        name=dataset.name,
        columns=dataset.columns,
        row_count=len(dataset.records),
        created_at=dataset.created_at,
    )


@app.get("/health")
def health_check() -> dict[str, str]:
    return {"status": "ok", "timestamp": utc_now_iso()}


@app.post("/datasets", response_model=DatasetSummary)
async def upload_dataset(
    file: UploadFile = File(...),
    name: str | None = Form(default=None),
    sheet_name: str | None = Query(default=None, description="Excel sheet to load. Defaults to first sheet."),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> DatasetSummary:
    owner_id = _owner_from_header(x_user_id)
    filename = file.filename or "uploaded_file"
    content = await file.read()
    try:
        records = read_upload(filename, content, sheet_name=sheet_name)
    except UploadError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    dataset = Dataset(owner_id=owner_id, name=(name or "").strip() or filename, records=records)
    _get_chat_service().store.save_dataset(dataset)
    logger.info("Stored dataset %s (%d rows) for owner %s", dataset.id, len(records), owner_id)
    return _dataset_summary(dataset)


@app.get("/datasets")
def list_datasets(x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> dict[str, Any]:
    owner_id = _owner_from_header(x_user_id)
    datasets = _get_chat_service().store.list_datasets(owner_id)
    return {"datasets": [_dataset_summary(dataset).model_dump() for dataset in datasets]}


@app.delete("/datasets/{dataset_id}")
def delete_dataset(dataset_id: str, x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> dict[str, Any]:
    owner_id = _owner_from_header(x_user_id)
    if not _get_chat_service().store.delete_dataset(owner_id, dataset_id):
        raise HTTPException(status_code=404, detail="Dataset not found.")
    return {"dataset_id": dataset_id, "deleted": True}


@app.post("/sessions", response_model=ChatSession)
def create_session(
    payload: CreateSessionRequest | None = None, x_user_id: str | None = Header(default=None, alias="X-User-Id")
) -> ChatSession:
    owner_id = _owner_from_header(x_user_id)
    return _get_chat_service().create_session(owner_id, payload.title if payload else None)


@app.get("/sessions")
def list_sessions(x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> dict[str, Any]:
    owner_id = _owner_from_header(x_user_id)
    return {"sessions": [session.model_dump() for session in _get_chat_service().list_sessions(owner_id)]}


@app.patch("/sessions/{session_id}", response_model=ChatSession)
def rename_session(
    session_id: str, payload: RenameSessionRequest, x_user_id: str | None = Header(default=None, alias="X-User-Id")
) -> ChatSession:
    owner_id = _owner_from_header(x_user_id)
    session = _get_chat_service().rename_session(owner_id, session_id, payload.title)
    if session is None:
        raise HTTPException(status_code=404, detail="Chat session not found.")
    return session


@app.delete("/sessions/{session_id}")
def delete_session(session_id: str, x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> dict[str, Any]:
    owner_id = _owner_from_header(x_user_id)
    if not _get_chat_service().store.delete_session(owner_id, session_id):
        raise HTTPException(status_code=404, detail="Chat session not found.")
    return {"session_id": session_id, "deleted": True}


@app.get("/sessions/{session_id}/messages")
async def get_messages(session_id: str, x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> dict[str, Any]:
    owner_id = _owner_from_header(x_user_id)
    service = _get_chat_service()
    _require_session(service, owner_id, session_id)
    history = await service.load_history(owner_id, session_id)
    return {"session_id": session_id, "messages": [message.model_dump() for message in history]}


@app.post("/sessions/{session_id}/messages", response_model=ChatTurnResponse)
async def send_message(
    session_id: str, payload: SendMessageRequest, x_user_id: str | None = Header(default=None, alias="X-User-Id")
) -> ChatTurnResponse:
    owner_id = _owner_from_header(x_user_id)
    service = _get_chat_service()
    _require_session(service, owner_id, session_id)
    try:
        turn = await service.send_message(owner_id, session_id, payload.message, payload.dataset_ids)
    except ModelNotConfiguredError as exc:
        logger.error("Chat turn rejected: %s", exc)
        raise HTTPException(status_code=503, detail=NOT_CONFIGURED_DETAIL) from exc
    return ChatTurnResponse(
        session_id=session_id,
        user_message=turn.user_message,
        assistant_message=turn.assistant_message,
    )


@app.delete("/sessions/{session_id}/messages")
def clear_session_messages(
    session_id: str, x_user_id: str | None = Header(default=None, alias="X-User-Id")
) -> dict[str, Any]:
    owner_id = _owner_from_header(x_user_id)
    service = _get_chat_service()
    _require_session(service, owner_id, session_id)
    return {"session_id": session_id, "deleted": service.clear_history(session_id=session_id, owner_id=owner_id)}


@app.delete("/messages")
def clear_all_messages(x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> dict[str, Any]:
    owner_id = _owner_from_header(x_user_id)
    return {"deleted": _get_chat_service().clear_history(owner_id=owner_id)}
