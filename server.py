from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from docforge_backend.assembly import SourceDocument, parse_raster_target
from docforge_backend.config import (
    ARTIFACT_TTL_SECONDS,
    ARTIFACTS_ROOT,
    DOWNLOAD_GRACE_SECONDS,
    FONT_SIZE,
    LOG_LEVEL,
    MAX_MERGE_FILES,
    MAX_UPLOAD_BYTES,
    PAGE_HEIGHT,
    PAGE_MARGIN,
    PAGE_WIDTH,
    SWEEP_INTERVAL_SECONDS,
    TRANSFER_TIMEOUT_SECONDS,
)
from docforge_backend.errors import ArtifactNotFound, ValidationError
from docforge_backend.operations import (
    AssemblyOperation,
    LayoutOperation,
    MergeOperation,
    TranscodeOperation,
    perform,
)
from docforge_backend.renderer import PdfRenderer, render_text_pdf
from docforge_backend.retrieval import RetrievalGateway
from docforge_backend.scheduler import DeferredDeletionScheduler, SweepScheduler
from docforge_backend.store import ArtifactStore
from docforge_backend.text_layout import PageGeometry


logger = logging.getLogger(__name__)

DOWNLOAD_PREFIX = "/api/files/download"


class TextToPdfRequest(BaseModel):
    text: str
    page_width: float = PAGE_WIDTH
    page_height: float = PAGE_HEIGHT
    margin: float = PAGE_MARGIN
    font_size: float = FONT_SIZE


class UploadTooLarge(Exception):
    pass


def _success(data: dict, message: str) -> JSONResponse:
    return JSONResponse({"success": True, "message": message, "data": data})


def _error(message: str, status_code: int, errors: Optional[list] = None) -> JSONResponse:
    return JSONResponse(
        {"success": False, "message": message, "errors": errors},
        status_code=status_code,
    )


def _expires_in(seconds: float) -> str:
    minutes = int(seconds // 60)
    return f"{minutes} minutes" if minutes else f"{int(seconds)} seconds"


async def _read_upload(file: UploadFile) -> SourceDocument:
    # Limit read to refuse oversized uploads without buffering them whole.
    data = await file.read(MAX_UPLOAD_BYTES + 1)
    if len(data) > MAX_UPLOAD_BYTES:
        raise UploadTooLarge(file.filename or "upload")
    return SourceDocument(filename=file.filename or "upload", content_type=file.content_type, data=data)


def create_app(
    store: Optional[ArtifactStore] = None,
    renderer: PdfRenderer = render_text_pdf,
    ttl_seconds: float = ARTIFACT_TTL_SECONDS,
    sweep_interval_seconds: float = SWEEP_INTERVAL_SECONDS,
    grace_seconds: float = DOWNLOAD_GRACE_SECONDS,
    transfer_timeout: float = TRANSFER_TIMEOUT_SECONDS,
) -> FastAPI:
    store = store or ArtifactStore(ARTIFACTS_ROOT)
    sweeper = SweepScheduler(store, ttl_seconds=ttl_seconds, interval_seconds=sweep_interval_seconds)
    deferred = DeferredDeletionScheduler(store, delay_seconds=grace_seconds)
    gateway = RetrievalGateway(store, deferred, grace_seconds=grace_seconds, transfer_timeout=transfer_timeout)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # The sweep task runs a pass immediately, then every interval.
        sweeper.start()
        try:
            yield
        finally:
            await sweeper.stop()
            await deferred.shutdown()

    app = FastAPI(lifespan=lifespan)
    app.state.store = store
    app.state.sweeper = sweeper
    app.state.deferred = deferred
    app.state.gateway = gateway

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return _error(str(exc), 400)

    @app.exception_handler(UploadTooLarge)
    async def _upload_too_large(request: Request, exc: UploadTooLarge) -> JSONResponse:
        return _error(f"File too large: {exc}", 413)

    async def _assemble(operation: AssemblyOperation, message: str, extra: dict) -> JSONResponse:
        result = await perform(operation, renderer)
        try:
            artifact = await asyncio.to_thread(
                store.create, result.content_kind, result.data, label=result.label
            )
        except OSError:
            logger.exception("Failed to store %s artifact", result.label)
            return _error("Failed to store the generated file", 500)

        data = {
            "artifact_id": artifact.artifact_id,
            "filename": artifact.artifact_id,
            "download_url": f"{DOWNLOAD_PREFIX}/{artifact.artifact_id}",
            "file_size": artifact.size_bytes,
            "content_type": artifact.content_kind.media_type,
            "expires_in": _expires_in(ttl_seconds),
        }
        if result.page_count is not None:
            data["page_count"] = result.page_count
        if isinstance(operation, TranscodeOperation):
            data["converted_size"] = artifact.size_bytes
        data.update(extra)
        return _success(data, message)

    @app.post("/api/files/pdf/combine")
    async def combine_pdfs(files: list[UploadFile] = File(...)) -> JSONResponse:
        if len(files) > MAX_MERGE_FILES:
            return _error(f"At most {MAX_MERGE_FILES} PDF files can be combined", 400)
        documents = tuple([await _read_upload(f) for f in files])
        return await _assemble(MergeOperation(documents), "PDFs combined successfully", {})

    @app.post("/api/files/image/convert")
    async def convert_image(file: UploadFile = File(...), target_format: str = Form(...)) -> JSONResponse:
        target = parse_raster_target(target_format)
        image = await _read_upload(file)
        return await _assemble(
            TranscodeOperation(image, target),
            "Image converted successfully",
            {"original_size": len(image.data), "format": target.value},
        )

    @app.post("/api/files/text-to-pdf")
    async def text_to_pdf(payload: TextToPdfRequest) -> JSONResponse:
        geometry = PageGeometry(
            width=payload.page_width,
            height=payload.page_height,
            margin=payload.margin,
            font_size=payload.font_size,
        )
        return await _assemble(LayoutOperation(payload.text, geometry), "Text converted to PDF", {})

    @app.get(DOWNLOAD_PREFIX + "/{artifact_id}")
    async def download_file(artifact_id: str) -> Response:
        try:
            return gateway.get(artifact_id)
        except ArtifactNotFound:
            return _error("File not found or expired", 404)

    @app.get("/api/health")
    async def health() -> JSONResponse:
        return JSONResponse(
            {
                "ok": True,
                "artifacts": len(store.list()),
                "pending_deletions": deferred.pending,
                "last_sweep_at": sweeper.last_sweep_at,
            }
        )

    return app


app = create_app()


if __name__ == "__main__":
    # Convenience: python server.py
    import uvicorn

    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    port = int(os.environ.get("PORT", "8010"))
    uvicorn.run("server:app", host="127.0.0.1", port=port, reload=False)
