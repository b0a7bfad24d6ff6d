# backend/app.py

import logging
from typing import AsyncIterator, List

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from config.settings import settings
from .errors import SessionNotFound, ThumbnailError, ValidationError
from .job_driver import JobDriver
from .model import (
    GenerateResponse,
    GenerationRequest,
    JobRequest,
    JobResult,
    Prediction,
    RefinementRequest,
    SelectRequest,
    StylePreset,
    ThumbnailSession,
)
from .prompt_composer import compose, compose_refinement, list_styles
from .provider_client import ProviderClient
from .session import SessionStore, get_redis_client

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Thumbnail Generator Service")

# One driver shared by all requests; it holds no per-job state
driver = JobDriver(ProviderClient.from_settings())


def get_driver() -> JobDriver:
    return driver


async def get_session_store() -> AsyncIterator[SessionStore]:
    rds = await get_redis_client()
    try:
        yield SessionStore(rds)
    finally:
        await rds.aclose()


@app.exception_handler(ThumbnailError)
async def thumbnail_error_handler(request: Request, exc: ThumbnailError) -> JSONResponse:
    logger.error("%s %s failed: %s: %s", request.method, request.url.path, type(exc).__name__, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "type": type(exc).__name__},
    )


def _job_result(prediction: Prediction) -> JobResult:
    return JobResult(
        job_id=prediction.id,
        status=prediction.status,
        images=prediction.output_urls() if prediction.status == "succeeded" else [],
        error_message=str(prediction.error) if prediction.error else None,
    )


@app.get("/health")
async def health(jobs: JobDriver = Depends(get_driver)):
    return {"status": "ok", "provider_configured": jobs.client.is_configured}


@app.get("/styles", response_model=List[StylePreset])
async def styles():
    return list_styles()


@app.post("/generate", response_model=GenerateResponse)
async def generate(
    req: GenerationRequest,
    jobs: JobDriver = Depends(get_driver),
    store: SessionStore = Depends(get_session_store),
):
    if not req.main_text.strip():
        raise ValidationError("Main text is required")

    prompt = compose(req)
    logger.info("Full prompt: %s", prompt)

    await store.acquire(req.session_id)
    try:
        session = await store.load_or_new(req.session_id)
        session.last_request = req
        session.thumbnails = []
        session.selected_index = None
        await store.save(session)

        images = await jobs.run_generation(prompt, req.num_outputs)

        session.thumbnails = images
        await store.save(session)
    finally:
        await store.release(req.session_id)

    return GenerateResponse(session_id=req.session_id, prompt=prompt, images=images)


@app.post("/refine", response_model=GenerateResponse)
async def refine(
    req: RefinementRequest,
    jobs: JobDriver = Depends(get_driver),
    store: SessionStore = Depends(get_session_store),
):
    if not req.instruction.strip():
        raise ValidationError("Refinement instruction is required")

    await store.acquire(req.session_id)
    try:
        session = await store.load(req.session_id)
        if session is None or session.last_request is None:
            raise SessionNotFound("No previous generation to refine")

        index = req.selected_index if req.selected_index is not None else session.selected_index
        if index is None or not 0 <= index < len(session.thumbnails):
            raise ValidationError("Select a thumbnail to refine")

        prompt = compose_refinement(req.instruction, session.last_request)
        logger.info("Refinement prompt: %s", prompt)

        images = await jobs.run_generation(prompt, req.num_outputs)

        session.thumbnails = images
        session.selected_index = None
        await store.save(session)
    finally:
        await store.release(req.session_id)

    return GenerateResponse(session_id=req.session_id, prompt=prompt, images=images)


@app.get("/sessions/{session_id}", response_model=ThumbnailSession)
async def get_session(session_id: str, store: SessionStore = Depends(get_session_store)):
    session = await store.load(session_id)
    if session is None:
        raise SessionNotFound()
    return session


@app.post("/sessions/{session_id}/select", response_model=ThumbnailSession)
async def select_thumbnail(
    session_id: str,
    req: SelectRequest,
    store: SessionStore = Depends(get_session_store),
):
    session = await store.load(session_id)
    if session is None:
        raise SessionNotFound()
    if not 0 <= req.index < len(session.thumbnails):
        raise ValidationError(f"No thumbnail at index {req.index}")

    session.selected_index = req.index
    await store.save(session)
    return session


@app.post("/jobs", response_model=JobResult)
async def create_job(req: JobRequest, jobs: JobDriver = Depends(get_driver)):
    """
    Submit a prediction without waiting for it; poll GET /jobs/{job_id}.
    """
    prediction = await jobs.submit(req.prompt, req.num_outputs)
    return _job_result(prediction)


@app.get("/jobs/{job_id}", response_model=JobResult)
async def get_job(job_id: str, jobs: JobDriver = Depends(get_driver)):
    logger.info("Checking status for prediction: %s", job_id)
    prediction = await jobs.status(job_id)
    return _job_result(prediction)
