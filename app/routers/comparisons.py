"""
QuoteCompare API endpoints.

POST /api/comparisons                  - register files, start extraction in background
GET  /api/comparisons                  - list comparisons, newest first
GET  /api/comparisons/{id}             - one comparison with price ranges
POST /api/comparisons/{id}/advance     - run extraction for submitted / failed
POST /api/comparisons/{id}/regenerate  - re-run extraction on demand
POST /api/comparisons/{id}/memo        - generate the approval memo
WS   /api/comparisons/{id}/stream      - realtime updates
"""
from __future__ import annotations

import asyncio
import logging
from functools import lru_cache
from typing import List

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    HTTPException,
    WebSocket,
    WebSocketDisconnect,
)
from fastapi.concurrency import run_in_threadpool

from app.clients import ExtractionClient, LocalDocumentStore, MemoClient
from app.database import SessionLocal
from app.errors import DataAbsent, InvalidSubmission, MemoFailure, RecordNotFound
from app.pipeline import build_detail
from app.schemas import (
    ComparisonCreate,
    ComparisonDetail,
    ComparisonRecord,
    ComparisonSummary,
)
from app.services import (
    ChangeNotifier,
    ComparisonRepository,
    LifecycleController,
    notifier,
)

logger = logging.getLogger(__name__)
router = APIRouter()


# ── dependencies ─────────────────────────────────────────────────────────
def get_session_factory():
    return SessionLocal


@lru_cache
def get_extraction_client() -> ExtractionClient:
    return ExtractionClient()


@lru_cache
def get_memo_client() -> MemoClient:
    return MemoClient()


def get_document_store() -> LocalDocumentStore:
    return LocalDocumentStore()


def get_notifier() -> ChangeNotifier:
    return notifier


def get_controller(
    session_factory=Depends(get_session_factory),
    extractor=Depends(get_extraction_client),
    memo_writer=Depends(get_memo_client),
    documents=Depends(get_document_store),
    change_notifier: ChangeNotifier = Depends(get_notifier),
) -> LifecycleController:
    return LifecycleController(
        repository=ComparisonRepository(session_factory),
        extractor=extractor,
        documents=documents,
        notifier=change_notifier,
        memo_writer=memo_writer,
    )


def transform_summary(record: ComparisonRecord) -> ComparisonSummary:
    """ComparisonRecord를 대시보드 요약으로 변환"""
    return ComparisonSummary(
        id=record.id,
        title=record.title,
        status=record.status,
        item_count=len(record.items),
        vendor_count=len(record.vendors),
        total_value=record.total_value,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


# ── POST /api/comparisons ────────────────────────────────────────────────
@router.post("/comparisons", response_model=ComparisonDetail, status_code=201)
def create_comparison(
    req: ComparisonCreate,
    background_tasks: BackgroundTasks,
    controller: LifecycleController = Depends(get_controller),
):
    logger.info("Submit: title=%s  files=%d", req.title, len(req.files))
    try:
        record = controller.submit(req.title, req.files)
    except InvalidSubmission as e:
        raise HTTPException(status_code=400, detail=str(e))

    background_tasks.add_task(controller.advance, record.id)
    return build_detail(record)


# ── GET /api/comparisons ─────────────────────────────────────────────────
@router.get("/comparisons", response_model=List[ComparisonSummary])
def list_comparisons(controller: LifecycleController = Depends(get_controller)):
    records = controller.list()
    logger.info("Found %d comparisons in database", len(records))
    return [transform_summary(r) for r in records]


# ── GET /api/comparisons/{record_id} ─────────────────────────────────────
@router.get("/comparisons/{record_id}", response_model=ComparisonDetail)
def get_comparison(record_id: str, controller: LifecycleController = Depends(get_controller)):
    try:
        return build_detail(controller.get(record_id))
    except RecordNotFound:
        logger.warning("Comparison not found: %s", record_id)
        raise HTTPException(status_code=404, detail="Comparison not found")


# ── POST /api/comparisons/{record_id}/advance ────────────────────────────
@router.post("/comparisons/{record_id}/advance", response_model=ComparisonDetail)
def advance_comparison(record_id: str, controller: LifecycleController = Depends(get_controller)):
    try:
        return build_detail(controller.advance(record_id))
    except RecordNotFound:
        raise HTTPException(status_code=404, detail="Comparison not found")


# ── POST /api/comparisons/{record_id}/regenerate ─────────────────────────
@router.post("/comparisons/{record_id}/regenerate", response_model=ComparisonDetail)
def regenerate_comparison(record_id: str, controller: LifecycleController = Depends(get_controller)):
    try:
        return build_detail(controller.regenerate(record_id))
    except RecordNotFound:
        raise HTTPException(status_code=404, detail="Comparison not found")


# ── POST /api/comparisons/{record_id}/memo ───────────────────────────────
@router.post("/comparisons/{record_id}/memo", response_model=ComparisonDetail)
def generate_memo(record_id: str, controller: LifecycleController = Depends(get_controller)):
    try:
        return build_detail(controller.generate_memo(record_id))
    except RecordNotFound:
        raise HTTPException(status_code=404, detail="Comparison not found")
    except DataAbsent as e:
        raise HTTPException(status_code=409, detail=str(e))
    except MemoFailure as e:
        logger.error("Memo generation failed for %s: %s", record_id, e)
        raise HTTPException(status_code=502, detail=str(e))


# ── WS /api/comparisons/{record_id}/stream ───────────────────────────────
@router.websocket("/comparisons/{record_id}/stream")
async def stream_comparison(
    websocket: WebSocket,
    record_id: str,
    controller: LifecycleController = Depends(get_controller),
    change_notifier: ChangeNotifier = Depends(get_notifier),
):
    await websocket.accept()
    subscription = change_notifier.subscribe(record_id)
    try:
        record = await run_in_threadpool(controller.get, record_id)
    except RecordNotFound:
        subscription.close()
        await websocket.close(code=4404, reason="Comparison not found")
        return

    # Current state first, then every published update
    await websocket.send_json(build_detail(record).model_dump(mode="json"))

    async def pump():
        async for payload in subscription:
            await websocket.send_json(payload)

    sender = asyncio.create_task(pump())
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Subscriber left %s", record_id)
    finally:
        sender.cancel()
        subscription.close()
