"""FastAPI application exposing a live actiontap session."""

from __future__ import annotations

import asyncio
from datetime import date, datetime
from typing import List, Literal, Optional

from fastapi import FastAPI, HTTPException, Response, status
from pydantic import BaseModel, Field

from .. import config as config_mod
from ..config import ConfigError
from ..models import ActionItem, ItemStatus, SessionState, TranscriptSegment
from ..session import MeetingSession
from ..sources import HttpStreamSource, QueueSource, StreamError

app = FastAPI(
    title="actiontap API",
    description="Live action item extraction from meeting transcription streams.",
    version="0.1.0",
)

_session: Optional[MeetingSession] = None
_push_source: Optional[QueueSource] = None


class HealthResponse(BaseModel):
    status: str = "ok"
    state: SessionState


class SegmentPayload(BaseModel):
    id: str
    text: str
    captured_at: datetime
    is_local_speaker: bool
    device_label: str


class ActionItemPayload(BaseModel):
    id: str
    text: str
    assignee: str
    due_date: Optional[date]
    status: ItemStatus
    error_detail: Optional[str] = None


class SessionPayload(BaseModel):
    state: SessionState
    transcript: str
    buffering: str
    segments: List[SegmentPayload] = Field(default_factory=list)
    action_items: List[ActionItemPayload] = Field(default_factory=list)
    summary: str = ""
    stop_stalled: bool = False
    last_error: Optional[str] = None


class StartRequest(BaseModel):
    source: Literal["push", "http"] = "push"
    url: Optional[str] = None
    meeting_title: Optional[str] = None


class ChunkRequest(BaseModel):
    text: str
    is_input: bool = False
    device: Optional[str] = None


class SubmitRequest(BaseModel):
    include_errors: bool = False


class SubmitResponse(BaseModel):
    submitted: int
    sent: int
    failed: int
    action_items: List[ActionItemPayload]


class SettingsPayload(BaseModel):
    notion_api_key_set: bool
    notion_database_id: Optional[str]
    auto_submit: bool
    meeting_title: str
    source_url: str
    stop_timeout: float
    scan_window: int
    api_timeout: float


class SettingsUpdate(BaseModel):
    notion_api_key: Optional[str] = None
    notion_database_id: Optional[str] = None
    auto_submit: Optional[bool] = None
    meeting_title: Optional[str] = None
    source_url: Optional[str] = None
    stop_timeout: Optional[float] = Field(default=None, gt=0)
    scan_window: Optional[int] = Field(default=None, ge=0)
    api_timeout: Optional[float] = Field(default=None, gt=0)


def get_session() -> MeetingSession:
    global _session
    if _session is None:
        try:
            cfg = config_mod.load_config()
        except ConfigError as exc:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
        _session = MeetingSession(config=cfg)
    return _session


def _segment_to_payload(segment: TranscriptSegment) -> SegmentPayload:
    return SegmentPayload(
        id=segment.id,
        text=segment.text,
        captured_at=segment.captured_at,
        is_local_speaker=segment.is_local_speaker,
        device_label=segment.device_label,
    )


def _item_to_payload(item: ActionItem) -> ActionItemPayload:
    return ActionItemPayload(
        id=item.id,
        text=item.text,
        assignee=item.assignee,
        due_date=item.due_date,
        status=item.status,
        error_detail=item.error_detail,
    )


def _session_to_payload(session: MeetingSession) -> SessionPayload:
    return SessionPayload(
        state=session.state,
        transcript=session.transcript,
        buffering=session.buffering,
        segments=[_segment_to_payload(segment) for segment in session.segments],
        action_items=[_item_to_payload(item) for item in session.items],
        summary=session.summary,
        stop_stalled=session.stop_stalled,
        last_error=str(session.last_error) if session.last_error else None,
    )


def _settings_to_payload(cfg: config_mod.Config) -> SettingsPayload:
    return SettingsPayload(
        notion_api_key_set=bool(cfg.notion_api_key),
        notion_database_id=cfg.notion_database_id,
        auto_submit=cfg.auto_submit,
        meeting_title=cfg.meeting_title,
        source_url=cfg.source_url,
        stop_timeout=cfg.stop_timeout,
        scan_window=cfg.scan_window,
        api_timeout=cfg.api_timeout,
    )


@app.on_event("shutdown")
async def close_session() -> None:
    global _session, _push_source
    if _session is not None:
        await _session.aclose()
    _session = None
    _push_source = None


@app.get("/health", response_model=HealthResponse)
async def healthcheck() -> HealthResponse:
    return HealthResponse(state=get_session().state)


@app.get("/session", response_model=SessionPayload)
async def get_session_state() -> SessionPayload:
    return _session_to_payload(get_session())


@app.post("/session/start", response_model=SessionPayload, status_code=status.HTTP_201_CREATED)
async def start_session(request: StartRequest) -> SessionPayload:
    global _push_source
    session = get_session()
    if request.meeting_title:
        session.config.meeting_title = request.meeting_title

    if request.source == "http":
        source = HttpStreamSource(request.url or session.config.source_url)
        _push_source = None
    else:
        source = QueueSource()
        _push_source = source
    await session.start(source)
    return _session_to_payload(session)


@app.post("/session/chunks", response_model=SessionPayload)
async def push_chunk(request: ChunkRequest) -> SessionPayload:
    session = get_session()
    source = _push_source
    if source is None or session.state is not SessionState.STREAMING:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No push stream is active.")

    metadata = {"isInput": request.is_input}
    if request.device:
        metadata["device"] = request.device
    try:
        source.push(request.text, metadata)
    except StreamError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    joined = asyncio.ensure_future(source.join())
    done, _ = await asyncio.wait({joined}, timeout=session.config.stop_timeout)
    if not done:
        joined.cancel()
    return _session_to_payload(session)


@app.post("/session/stop", response_model=SessionPayload)
async def stop_session(response: Response) -> SessionPayload:
    session = get_session()
    stopped = await session.stop(timeout=session.config.stop_timeout)
    if not stopped:
        # Still draining; the operator may force-stop from here.
        response.status_code = status.HTTP_202_ACCEPTED
    return _session_to_payload(session)


@app.post("/session/force-stop", response_model=SessionPayload)
async def force_stop_session() -> SessionPayload:
    session = get_session()
    if not session.force_stop():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="The session is not stopping.")
    return _session_to_payload(session)


@app.post("/session/clear", response_model=SessionPayload)
async def clear_session() -> SessionPayload:
    session = get_session()
    session.clear()
    return _session_to_payload(session)


@app.get("/action-items", response_model=list[ActionItemPayload])
async def list_action_items() -> list[ActionItemPayload]:
    return [_item_to_payload(item) for item in get_session().items]


@app.post("/action-items/submit", response_model=SubmitResponse)
async def submit_action_items(request: Optional[SubmitRequest] = None) -> SubmitResponse:
    session = get_session()
    try:
        batch = await session.submit_pending(include_errors=bool(request and request.include_errors))
    except ConfigError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return SubmitResponse(
        submitted=len(batch),
        sent=sum(1 for item in batch if item.status is ItemStatus.SENT),
        failed=sum(1 for item in batch if item.status is ItemStatus.ERROR),
        action_items=[_item_to_payload(item) for item in session.items],
    )


@app.get("/settings", response_model=SettingsPayload)
async def get_settings() -> SettingsPayload:
    return _settings_to_payload(get_session().config)


@app.put("/settings", response_model=SettingsPayload)
async def update_settings(update: SettingsUpdate) -> SettingsPayload:
    session = get_session()
    changes = update.model_dump(exclude_none=True)
    try:
        config_mod.update_config(**changes)
        cfg = config_mod.load_config()
    except ConfigError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    await session.update_config(cfg)
    if changes.get("auto_submit") and cfg.has_credentials and session.pending_items():
        session.submit_automatically()
    return _settings_to_payload(cfg)
