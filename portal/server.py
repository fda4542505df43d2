"""
Resource Portal Server

FastAPI server for browsing resources and asking questions about them.

Endpoints:
- GET /health: Health check
- GET /api/resources: Filtered, sorted, paginated listing
- GET /api/resources/metadata: Facet values for the filters
- GET /api/resources/popular: Most used resources
- POST /api/resources/{id}/view|share|download: Usage tracking
- POST /api/sync: Reconcile with the content source
- POST /api/ask: Answer a question (JSON or Server-Sent Events)

Pipeline (ask):
1. Validate the question
2. Refresh embeddings if the records changed
3. Embed the question (cached) and rank records
4. Compose the answer, streaming chunks when requested
"""

import json
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .common.config import PortalConfig, load_config, ensure_directories
from .common.embedding_service import EmbeddingService, create_embedding_service
from .common.errors import PortalError, SourceFetchError, ValidationError
from .common.llm_client import LLMClient, create_llm_client
from .common.record_store import RecordStore
from .common.schemas.record import Record, UsageCounter
from .retriever.composer import AnswerComposer
from .retriever.embedder import EmbeddingGenerator
from .retriever.index import EmbeddingIndex
from .retriever.pipeline import GENERIC_ERROR_MESSAGE, AnswerPipeline, validate_question
from .retriever.query_cache import QueryEmbeddingCache
from .retriever.query_engine import DEFAULT_PAGE_SIZE, ResourceFilter, ResourceQueryEngine
from .retriever.ranker import SimilarityRanker
from .sync.handlers import BaseSource, create_source
from .sync.reconciler import ContentReconciler, should_sync


@dataclass
class PortalServices:
    """Everything the endpoints need, wired together"""
    config: PortalConfig
    store: RecordStore
    source: BaseSource
    reconciler: ContentReconciler
    index: EmbeddingIndex
    query_cache: QueryEmbeddingCache
    pipeline: AnswerPipeline
    query_engine: ResourceQueryEngine
    embedding_service: EmbeddingService
    llm_client: LLMClient


def build_services(
    config: PortalConfig,
    source: Optional[BaseSource] = None,
    embedding_service: Optional[EmbeddingService] = None,
    llm_client: Optional[LLMClient] = None,
    store: Optional[RecordStore] = None,
) -> PortalServices:
    """
    Wire the sync and retriever components from config.

    Any component passed in is used instead of the one config describes.
    """
    store = store or RecordStore()
    source = source or create_source(config)
    embedding_service = embedding_service or create_embedding_service(config)
    llm_client = llm_client or create_llm_client(config)

    generator = EmbeddingGenerator(
        embedding_service,
        batch_size=config.embedding.batch_size,
        stagger_seconds=config.embedding.stagger_seconds,
        batch_delay_seconds=config.embedding.batch_delay_seconds,
        retry_attempts=config.embedding.retry_attempts,
    )
    index = EmbeddingIndex(store, generator)
    query_cache = QueryEmbeddingCache(
        generator.embed_text,
        ttl=timedelta(hours=config.retriever.query_cache_ttl_hours),
    )
    composer = AnswerComposer(llm_client, max_tokens=config.llm.max_tokens)
    pipeline = AnswerPipeline(
        index=index,
        query_cache=query_cache,
        ranker=SimilarityRanker(threshold=config.retriever.similarity_threshold),
        composer=composer,
        top_k=config.retriever.topk,
    )

    return PortalServices(
        config=config,
        store=store,
        source=source,
        reconciler=ContentReconciler(source, store, index=index),
        index=index,
        query_cache=query_cache,
        pipeline=pipeline,
        query_engine=ResourceQueryEngine(store),
        embedding_service=embedding_service,
        llm_client=llm_client,
    )


# Global state
services: Optional[PortalServices] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize components on startup"""
    global services

    print("[Portal] Starting up...")

    ensure_directories()
    config = load_config()
    print(f"[Portal] Loaded config (LLM provider: {config.llm.provider}, embedding mode: {config.embedding.mode})")

    services = build_services(config)
    print(f"[Portal] Content source: {services.source.source_name}")
    print(f"[Portal] Embedding service {'ready' if services.embedding_service.is_available else 'not available'}")
    print(f"[Portal] LLM client {'ready' if services.llm_client.is_available else 'not available'}")

    try:
        report = await services.reconciler.reconcile()
        print(f"[Portal] Initial sync: {len(services.store)} records ({report.created} new)")
    except SourceFetchError as e:
        print(f"[Portal] Warning: initial sync failed: {e}")

    if services.embedding_service.is_available:
        services.index.schedule_refresh()

    print("[Portal] Ready to serve requests")

    yield

    # Cleanup
    print("[Portal] Shutting down...")
    await services.source.close()


app = FastAPI(
    title="Resource Portal",
    description="Resource browsing and question answering over a mirrored content source",
    version="0.1.0",
    lifespan=lifespan
)


# =============================================================================
# Request/Response Models
# =============================================================================

class AskRequest(BaseModel):
    """Question request"""
    question: str
    stream: bool = False


# =============================================================================
# Helpers
# =============================================================================

def _require_services() -> PortalServices:
    if services is None:
        raise HTTPException(status_code=503, detail="Portal not initialized")
    return services


def _split(value: Optional[str]) -> list:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def _parse_int(value: Optional[str], name: str, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name}: {value!r}")


def _parse_record_id(record_id: str) -> int:
    try:
        return int(record_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid resource ID")


def _record_json(record: Record) -> dict:
    return record.model_dump(mode="json")


async def _run_sync(svc: PortalServices) -> dict:
    try:
        report = await svc.reconciler.reconcile()
    except SourceFetchError as e:
        print(f"[Portal] Sync failed, keeping {len(svc.store)} existing records: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to sync resources: {e}")
    return report.to_dict()


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/health")
async def health():
    """Health check endpoint"""
    svc = services
    return {
        "status": "healthy",
        "service": "resource-portal",
        "initialized": svc is not None,
        "records": len(svc.store) if svc else 0,
        "last_synced": svc.store.last_synced.isoformat() if svc and svc.store.last_synced else None,
        "embedding_available": svc.embedding_service.is_available if svc else False,
        "embeddings_stale": svc.index.needs_update if svc else True,
        "llm_available": svc.llm_client.is_available if svc else False,
        "query_cache": svc.query_cache.stats() if svc else {},
    }


@app.get("/api/resources")
async def list_resources(
    types: Optional[str] = None,
    products: Optional[str] = None,
    audiences: Optional[str] = None,
    solutions: Optional[str] = None,
    messagingStages: Optional[str] = None,
    contentVisibility: Optional[str] = None,
    search: Optional[str] = None,
    sortBy: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    sync: Optional[str] = None,
):
    """
    List resources matching comma-separated filters.

    A sync with the content source runs first when requested with
    sync=true or when the store is empty, at most once per sync interval.
    """
    svc = _require_services()

    try:
        resource_filter = ResourceFilter.parse(
            types=_split(types),
            products=_split(products),
            audiences=_split(audiences),
            solutions=_split(solutions),
            stages=_split(messagingStages),
            visibility=[v.lower() for v in _split(contentVisibility)],
            search=search or None,
            **({"sort_by": sortBy} if sortBy else {}),
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail={"message": str(e), "errors": e.errors})

    page_number = _parse_int(page, "page", 1)
    page_size = _parse_int(limit, "limit", DEFAULT_PAGE_SIZE)

    wants_sync = sync == "true" or len(svc.store) == 0
    interval = timedelta(minutes=svc.config.sync.interval_minutes)
    if wants_sync and should_sync(svc.store.last_synced, interval):
        await _run_sync(svc)

    if svc.embedding_service.is_available:
        svc.index.schedule_refresh()

    try:
        result = svc.query_engine.query(resource_filter, page=page_number, page_size=page_size)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "resources": [_record_json(r) for r in result.items],
        "pagination": {
            "page": result.page,
            "limit": result.page_size,
            "total": result.total,
            "totalPages": result.total_pages,
        },
    }


@app.get("/api/resources/metadata")
async def resource_metadata():
    """Facet values available for filtering"""
    svc = _require_services()
    facets = svc.query_engine.get_facets()
    facets["lastSynced"] = svc.store.last_synced.isoformat() if svc.store.last_synced else None
    return facets


@app.get("/api/resources/popular")
async def popular_resources(limit: Optional[str] = None):
    """Most used resources"""
    svc = _require_services()
    try:
        records = svc.query_engine.popular(_parse_int(limit, "limit", 5))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return [_record_json(r) for r in records]


async def _track(record_id: str, counter: UsageCounter) -> dict:
    svc = _require_services()
    updated = svc.store.increment(_parse_record_id(record_id), counter)
    if updated is None:
        raise HTTPException(status_code=404, detail="Resource not found")
    return {"success": True, "id": updated.id, counter.value: getattr(updated, counter.value)}


@app.post("/api/resources/{record_id}/view")
async def track_view(record_id: str):
    return await _track(record_id, UsageCounter.VIEW)


@app.post("/api/resources/{record_id}/share")
async def track_share(record_id: str):
    return await _track(record_id, UsageCounter.SHARE)


@app.post("/api/resources/{record_id}/download")
async def track_download(record_id: str):
    return await _track(record_id, UsageCounter.DOWNLOAD)


@app.post("/api/sync")
async def sync_resources():
    """Reconcile the store with the content source now"""
    svc = _require_services()
    report = await _run_sync(svc)
    if svc.embedding_service.is_available:
        svc.index.schedule_refresh()
    return report


@app.post("/api/ask")
async def ask(request: Request):
    """
    Answer a question about the resources.

    With "stream": true the response is a Server-Sent Events stream of
    chunk frames followed by exactly one done or error frame.
    """
    svc = _require_services()

    try:
        body = await request.json()
        ask_request = AskRequest.model_validate(body)
        question = validate_question(ask_request.question)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=400, detail="Invalid JSON")
    except PydanticValidationError as e:
        raise HTTPException(
            status_code=400,
            detail={"message": "Invalid question format", "errors": e.errors(include_url=False)},
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail={"message": "Invalid question format", "errors": [str(e)]})

    if ask_request.stream:
        async def frames():
            async for frame in svc.pipeline.stream_frames(question):
                yield frame.encode()

        return StreamingResponse(
            frames(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    try:
        answer = await svc.pipeline.ask(question, stream=False)
    except PortalError as e:
        print(f"[Portal] Failed to answer question: {e}")
        return JSONResponse(status_code=500, content={"message": GENERIC_ERROR_MESSAGE})

    return answer.to_dict()


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server():
    """Run the portal server"""
    import uvicorn

    config = load_config()
    port = config.server.port

    print(f"[Portal] Starting server on port {port}")
    uvicorn.run(
        "portal.server:app",
        host=config.server.host,
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
