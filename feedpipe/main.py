from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime
import logging

from .config import load_config
from .services.errors import AcquisitionError, AllTiersExhausted, ExtractionEmpty
from .services.fetchers.types import TierPreferences
from .services.pipeline import AcquisitionPipeline, AcquisitionResult, BatchResult
from .validators import validate_batch, validate_fetch_url

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

config = load_config()

app = FastAPI(title="feedpipe", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Pydantic Models
class ErrorDetail(BaseModel):
    code: str
    message: str


class ContentItem(BaseModel):
    url: str
    ok: bool
    tier: Optional[str] = None
    strategy: str = "none"
    degraded: bool = False
    html: Optional[str] = None
    error: Optional[ErrorDetail] = None


class BatchRequest(BaseModel):
    urls: List[str]
    cookie: Optional[str] = None
    browser: Optional[bool] = None
    render: Optional[bool] = None
    layered: bool = False
    limit: Optional[int] = None
    drop_empty: bool = False


class BatchResponse(BaseModel):
    ok: bool
    credential_source: str
    failed: int
    items: List[ContentItem]


def _error_detail(error: Exception) -> ErrorDetail:
    if isinstance(error, AllTiersExhausted):
        return ErrorDetail(code="ALL_TIERS_EXHAUSTED", message=str(error))
    if isinstance(error, ExtractionEmpty):
        return ErrorDetail(code="EXTRACTION_EMPTY", message=str(error))
    return ErrorDetail(code="ACQUISITION_FAILED", message=str(error))


def _to_item(result: AcquisitionResult) -> ContentItem:
    return ContentItem(
        url=result.url,
        ok=result.ok,
        tier=result.tier_used.label if result.tier_used else None,
        strategy=result.outcome.matched_strategy.value,
        degraded=result.outcome.degraded,
        html=result.html,
        error=_error_detail(result.error) if result.error is not None else None,
    )


def _preferences(pipeline: AcquisitionPipeline, browser: Optional[bool],
                 render: Optional[bool]) -> TierPreferences:
    """Query/Body-Flags überschreiben die Prozess-Defaults"""
    defaults = pipeline.default_preferences()
    return TierPreferences(
        allow_browser_tier=defaults.allow_browser_tier if browser is None else browser,
        allow_external_render_tier=defaults.allow_external_render_tier if render is None else render,
    )


def _raise_if_empty(batch: BatchResult) -> None:
    try:
        batch.raise_if_empty()
    except AcquisitionError as e:
        detail = _error_detail(e)
        raise HTTPException(status_code=502, detail={"error": detail.model_dump()})


def get_pipeline(request: Request) -> AcquisitionPipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        detail = ErrorDetail(code="PIPELINE_UNAVAILABLE", message="Pipeline not initialized")
        raise HTTPException(status_code=503, detail={"error": detail.model_dump()})
    return pipeline


# Health Check Endpoints
@app.get("/health/ready")
async def health_ready():
    return {"status": "ready", "timestamp": datetime.now().isoformat()}


@app.get("/health/live")
async def health_live():
    return {"status": "alive", "timestamp": datetime.now().isoformat()}


# API Endpoints
@app.get("/api/content", response_model=ContentItem)
async def content_endpoint(
    request: Request,
    url: str,
    cookie: Optional[str] = Query(None),
    browser: Optional[bool] = Query(None),
    render: Optional[bool] = Query(None),
    layered: bool = Query(False),
    pipeline: AcquisitionPipeline = Depends(get_pipeline),
):
    """
    Holt eine einzelne Ressource über die Tier-Kette.

    502 wenn alle erlaubten Tiers gescheitert sind.
    """
    url = validate_fetch_url(url)
    batch = await pipeline.acquire_batch(
        [url],
        query_credential=cookie,
        header_credential=request.headers.get("cookie"),
        preferences=_preferences(pipeline, browser, render),
        limit=1,
        layered=layered,
    )
    _raise_if_empty(batch)
    return _to_item(batch.results[0])


@app.post("/api/batch", response_model=BatchResponse)
async def batch_endpoint(
    body: BatchRequest,
    request: Request,
    pipeline: AcquisitionPipeline = Depends(get_pipeline),
):
    """
    Holt mehrere Ressourcen; Reihenfolge der Antwort = Reihenfolge der URLs.

    Einzelne fehlgeschlagene Items machen den Batch nicht kaputt; nur wenn
    kein einziges Item erfolgreich war, antwortet der Endpoint mit 502.
    """
    urls = validate_batch(body.urls, limit=body.limit)
    batch = await pipeline.acquire_batch(
        urls,
        query_credential=body.cookie,
        header_credential=request.headers.get("cookie"),
        preferences=_preferences(pipeline, body.browser, body.render),
        limit=body.limit,
        layered=body.layered,
    )
    _raise_if_empty(batch)

    results = batch.drop_empty() if body.drop_empty else batch.results
    return BatchResponse(
        ok=not batch.errors,
        credential_source=batch.credential_source.value,
        failed=len(batch.errors),
        items=[_to_item(result) for result in results],
    )


# Startup Event
@app.on_event("startup")
async def startup_event():
    """Baut die Pipeline einmal pro Prozess"""
    pipeline = AcquisitionPipeline.from_config(config)
    await pipeline.__aenter__()
    app.state.pipeline = pipeline
    logger.info("Application started")


# Shutdown Event - Browser und HTTP-Client freigeben
@app.on_event("shutdown")
async def shutdown_event():
    pipeline = getattr(app.state, "pipeline", None)
    if pipeline is None:
        return
    try:
        await pipeline.close()
        logger.info("Pipeline closed")
    except Exception as e:
        logger.error(f"Error closing pipeline: {e}")
    finally:
        app.state.pipeline = None


def run():
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
