from __future__ import annotations

import asyncio
import json
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, List, Optional

from databases import Database
from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles

from photo_ingest.config import resolve_config
from photo_ingest.errors import (
    BackpressureRejected,
    ErrorType,
    IngestError,
    SchedulerClosed,
)
from photo_ingest.events import Event, JobCompleted, JobFailed
from photo_ingest.logs import setup_logging
from photo_ingest.models import IngestConfig
from photo_ingest.queue.models import FileItem, JobPayload
from photo_ingest.resources import HostInfo
from photo_ingest.service import IngestService, build_service
from photo_ingest.storage import BlobStore, CatalogStore, SQLCatalogStore, init_db

SSE_POLL_S = 1.0


def _error_detail(error: IngestError) -> dict:
    return {"code": error.code, "message": error.message}


def _http_error(error: IngestError) -> HTTPException:
    """Map a domain error to an HTTP status."""
    if isinstance(error, (BackpressureRejected, SchedulerClosed)):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif error.error_type == ErrorType.TRANSIENT:
        code = status.HTTP_502_BAD_GATEWAY
    else:
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    return HTTPException(status_code=code, detail=_error_detail(error))


def _service(request: Request) -> IngestService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "NOT_READY", "message": "service is starting up"},
        )
    return service


def create_app(
    config: Optional[IngestConfig] = None,
    catalog: Optional[CatalogStore] = None,
    blob_store: Optional[BlobStore] = None,
    host: Optional[HostInfo] = None,
) -> FastAPI:
    """Build the API.

    Without an injected ``catalog`` the lifespan creates the catalog tables
    and connects to ``config.database.url``.
    """
    config = config or resolve_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(config.logging.level, config.logging.file)
        database = None
        store = catalog
        if store is None:
            init_db(config.database.url)
            database = Database(config.database.url)
            await database.connect()
            store = SQLCatalogStore(database)

        service = build_service(config, store, blob_store=blob_store, host=host)
        await service.start()
        app.state.service = service
        try:
            yield
        finally:
            await service.stop()
            app.state.service = None
            if database is not None:
                await database.disconnect()

    app = FastAPI(title="Photo Ingest", lifespan=lifespan)
    app.state.service = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # For dev
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if config.storage.backend == "local" and blob_store is None:
        os.makedirs(config.storage.local_root, exist_ok=True)
        app.mount("/media", StaticFiles(directory=config.storage.local_root), name="media")

    # --- API ENDPOINTS ---

    @app.get("/")
    async def root():
        return {"message": "Photo Ingest API", "docs": "/docs", "health": "/health"}

    @app.get("/health")
    async def health_check(request: Request):
        service = request.app.state.service
        return {
            "status": "ok" if service is not None else "starting",
            "scheduler_running": bool(service and service.scheduler.running),
            "blob_storage": bool(service and service.pipeline.blob_store.is_configured()),
        }

    @app.get("/config")
    async def get_config(request: Request):
        return _service(request).config.model_dump()

    # --- JOB ENDPOINTS ---

    @app.post("/jobs")
    async def create_job(
        request: Request,
        files: List[UploadFile] = File(...),
        owner_id: str = Form(...),
        parent_name: str = Form(...),
        batch_label: str = Form(""),
        session_id: str = Form(""),
        priority: int = Form(0),
        sync: bool = Form(False),
    ):
        """Submit a batch of images.

        Queued by default (202). With ``sync=true`` the batch is processed
        inline and the outcome returned (200).
        """
        service = _service(request)
        items = []
        for upload in files:
            data = await upload.read()
            items.append(
                FileItem(
                    name=upload.filename or "upload",
                    size=len(data),
                    mime_type=upload.content_type or "application/octet-stream",
                    data=data,
                )
            )
        payload = JobPayload(
            owner_id=owner_id,
            batch_label=batch_label,
            parent_name=parent_name,
            session_id=session_id,
            files=items,
        )

        if sync:
            try:
                outcome = await service.scheduler.process_now(payload)
            except IngestError as e:
                raise _http_error(e)
            return {"status": "completed", "outcome": outcome.model_dump(mode="json")}

        try:
            job = service.scheduler.submit(payload, priority=priority)
        except IngestError as e:
            raise _http_error(e)
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content={"job_id": job.id, "status": "queued"},
        )

    @app.get("/jobs/{job_id}")
    async def get_job(job_id: str, request: Request):
        job = _service(request).scheduler.get_job(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found")
        return job.summary()

    @app.delete("/jobs/{job_id}")
    async def cancel_job(job_id: str, request: Request):
        scheduler = _service(request).scheduler
        job = scheduler.get_job(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found")
        if not scheduler.cancel(job_id):
            raise HTTPException(
                status_code=409,
                detail={"code": "JOB_FINISHED", "message": f"job is already {job.status.value}"},
            )
        return {"job_id": job_id, "cancel_requested": True, "status": job.status.value}

    # --- STATS ---

    @app.get("/queue/status")
    async def queue_status(request: Request, session_id: Optional[str] = None):
        scheduler = _service(request).scheduler
        if session_id:
            stats = scheduler.get_stats_for_session(session_id)
            return {
                **stats.model_dump(),
                "is_processing_complete": stats.is_processing_complete,
                "progress": stats.progress,
            }
        return scheduler.get_stats().model_dump()

    # --- SERVER-SENT EVENTS ---

    async def event_generator(session_id: str, request: Request) -> AsyncGenerator[str, None]:
        """
        SSE generator forwarding this session's job events.

        Starts with a ``status`` snapshot and ends once every job of the
        session is finished.
        """
        service = _service(request)
        scheduler = service.scheduler
        inbox: asyncio.Queue = asyncio.Queue()

        def forward(event: Event) -> None:
            if event.session_id == session_id:
                inbox.put_nowait(event)

        service.events.subscribe(Event, forward)
        try:
            stats = scheduler.get_stats_for_session(session_id)
            yield _sse("status", {**stats.model_dump(), "progress": stats.progress})
            if stats.total_jobs and stats.is_processing_complete:
                return

            while True:
                if await request.is_disconnected():
                    break
                try:
                    event = await asyncio.wait_for(inbox.get(), timeout=SSE_POLL_S)
                except asyncio.TimeoutError:
                    continue
                yield _sse(type(event).__name__, event.model_dump())
                if isinstance(event, (JobCompleted, JobFailed)):
                    stats = scheduler.get_stats_for_session(session_id)
                    if stats.is_processing_complete:
                        yield _sse("status", {**stats.model_dump(), "progress": stats.progress})
                        break
        finally:
            service.events.unsubscribe(Event, forward)

    @app.get("/sessions/{session_id}/events")
    async def session_events(session_id: str, request: Request):
        _service(request)
        return StreamingResponse(
            event_generator(session_id, request), media_type="text/event-stream"
        )

    return app


def _sse(event: str, data: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
