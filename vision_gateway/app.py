from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable, List, Optional

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from .config import MAX_FILES, Settings
from .errors import AnalyzeError, ValidationError, error_body
from .gemini_captioner import GeminiCaptioner
from .io import TempFileStore
from .pipeline import Annotator, Captioner, analyze_batch, collect_reports, describe_image
from .vision_client import VisionAnnotator

logger = logging.getLogger(__name__)

DISCONNECT_POLL_S = 0.5


async def _run_until_disconnect(request: Request, func: Callable[..., Any], *args: Any) -> Any:
    """
    Run blocking `func(*args, cancel)` in the threadpool. If the client goes
    away meanwhile, set `cancel` so no further upstream calls are started.
    """
    cancel = threading.Event()
    task = asyncio.ensure_future(run_in_threadpool(func, *args, cancel))
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_S)
            if done:
                return task.result()
            if not cancel.is_set() and await request.is_disconnected():
                logger.info("Client disconnected from %s; cancelling analysis", request.url.path)
                cancel.set()
    finally:
        if not task.done():
            cancel.set()


def _validate_batch(images: Optional[List[UploadFile]]) -> List[UploadFile]:
    if not images:
        raise ValidationError("No images uploaded")
    if len(images) > MAX_FILES:
        raise ValidationError(f"Too many images: at most {MAX_FILES} per request")
    return images


def create_app(
    settings: Settings,
    annotator: Optional[Annotator] = None,
    captioner: Optional[Captioner] = None,
    store: Optional[TempFileStore] = None,
) -> FastAPI:
    """
    Build the HTTP app. Clients default to the real Vision/Gemini clients
    configured from `settings`; tests pass fakes.
    """
    annotator = annotator if annotator is not None else VisionAnnotator.from_settings(settings)
    captioner = captioner if captioner is not None else GeminiCaptioner.from_settings(settings)
    store = store if store is not None else TempFileStore(settings.upload_dir)

    logger.info(
        "Vision Gateway config: model=%s upload_dir=%s vision_timeout=%.1fs gemini_timeout=%.1fs cors_origins=%s",
        settings.gemini_model,
        settings.upload_dir,
        settings.vision_timeout_s,
        settings.gemini_timeout_s,
        ",".join(settings.cors_origins),
    )

    app = FastAPI(title="Vision Gateway", description="Image annotation + captioning gateway", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(AnalyzeError)
    async def analyze_error_handler(request: Request, exc: AnalyzeError) -> JSONResponse:
        return JSONResponse(status_code=500, content={"error": error_body(exc, "Failed to analyze images")})

    def _analyze_uploads(files: List[UploadFile], cancel: threading.Event) -> List[dict]:
        triples = [(f.filename or "upload", f.file, f.content_type) for f in files]
        with store.session(triples) as uploads:
            outcomes = analyze_batch(
                uploads,
                annotator,
                captioner,
                release=store.release,
                cancel=cancel,
                fail_fast=True,
            )
        return [report.to_json() for report in collect_reports(outcomes)]

    def _describe_upload(file: UploadFile, cancel: threading.Event) -> str:
        with store.session([(file.filename or "upload", file.file, file.content_type)]) as uploads:
            return describe_image(uploads[0], captioner, cancel=cancel)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post("/api/analyze")
    async def analyze(request: Request, images: Optional[List[UploadFile]] = File(None)):
        files = _validate_batch(images)
        logger.info("Analyzing %d image(s)", len(files))
        try:
            results = await _run_until_disconnect(request, _analyze_uploads, files)
        except Exception as e:
            logger.exception("Error processing images")
            if isinstance(e, AnalyzeError):
                raise
            return JSONResponse(status_code=500, content={"error": "Failed to analyze images"})
        return {"results": results}

    @app.post("/analyze")
    async def analyze_single(request: Request, image: Optional[UploadFile] = File(None)):
        if image is None:
            raise ValidationError("No image uploaded")
        try:
            description = await _run_until_disconnect(request, _describe_upload, image)
        except Exception:
            logger.exception("Error describing image %s", image.filename)
            return JSONResponse(status_code=500, content={"error": "Failed to analyze image"})
        return {"description": description}

    return app
