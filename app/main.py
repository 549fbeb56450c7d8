from contextlib import asynccontextmanager
import time

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

load_dotenv()

from .routers import recommend, metrics
from app.db.repo import init_db, save_block
from app.services.catalog import DrillCatalog
from app.services.recommender import DrillRecommendationSystem
from app.services.retrieval import DrillIndex
from app.utils import slog
from app.utils.logging import configure_logging
from app.utils.metrics import record_request, record_endpoint


def build_system() -> DrillRecommendationSystem:
    """One recommender per process; the index connects lazily on first request."""
    return DrillRecommendationSystem(
        index=DrillIndex(),
        catalog=DrillCatalog(),
        recorder=save_block,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    try:
        init_db()
    except Exception as e:
        # block log is optional; recommendations still work without it
        logger.warning(f"[startup] block log unavailable: {e}")
    yield


app = FastAPI(
    title="Drill Blocks API",
    lifespan=lifespan,
)
app.state.recommender = build_system()

app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])


@app.middleware("http")
async def _logging_middleware(request, call_next):
    start = time.perf_counter()
    req_id = slog.new_request_id()
    client_ip = request.client.host if request.client else None
    try:
        response = await call_next(request)
    except Exception as e:
        latency_ms = int((time.perf_counter() - start) * 1000)
        ctx = getattr(request.state, "log_context", {})
        slog.log_event(
            "request.error",
            request_id=req_id,
            path=str(request.url.path),
            method=request.method,
            latency_ms=latency_ms,
            client_ip=client_ip,
            error=str(e),
            **(ctx or {}),
        )
        raise
    latency_ms = int((time.perf_counter() - start) * 1000)
    ctx = getattr(request.state, "log_context", {}) or {}
    ctx.setdefault("rate_limited", response.status_code == 429)
    slog.finalize_request_log(
        request_id=req_id,
        method=request.method,
        path=str(request.url.path),
        status=response.status_code,
        latency_ms=latency_ms,
        client_ip=client_ip,
        ctx=ctx,
    )
    # --- metrics wiring (recommendation endpoints only) ---
    if request.url.path.startswith("/recommend"):
        record_request(latency_ms=latency_ms, error_kind=ctx.get("error_kind"))
    record_endpoint(method=request.method, path=str(request.url.path), latency_ms=latency_ms)

    response.headers["X-Request-ID"] = req_id
    return response


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(recommend.router)
app.include_router(metrics.router)
