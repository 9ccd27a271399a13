"""
BGE AI Gateway API
==================

FastAPI service exposing the provider router to the school site.

One ProviderRouter is built per process in the lifespan and handed to the
handlers through a dependency.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bge_ai.api.auth import Caller, get_caller, require_privileged
from bge_ai.api.rate_limiter import RateLimiter, check_rate_limit
from bge_ai.api.validation import AnalyzeRequest, ChatRequest, ProcessRequest
from bge_ai.llm.models import ProviderId
from bge_ai.llm.provider_router import ProviderRouter
from bge_ai.utils.config import Config
from bge_ai.utils.errors import BGEAIError, InvalidRequestError
from bge_ai.utils.logging import (
    clear_context,
    get_logger,
    set_request_id,
    setup_structured_logging,
)

logger = get_logger(__name__)


def get_router(request: Request) -> ProviderRouter:
    """FastAPI dependency returning the process-wide router."""
    return request.app.state.router


def status_code_for(exc: BGEAIError) -> int:
    if isinstance(exc, InvalidRequestError):
        return 400
    return 503 if exc.recoverable else 500


ai = APIRouter(prefix="/ai", tags=["ai"], dependencies=[Depends(check_rate_limit)])


# =============================================================================
# AI Endpoints
# =============================================================================

@ai.post("/process")
async def process(
    body: ProcessRequest,
    router: ProviderRouter = Depends(get_router),
    caller: Caller = Depends(get_caller),
):
    """Route one request to the best available provider."""
    response = await router.route(body.to_ai_request())
    return response.to_dict()


@ai.post("/chat")
async def chat(
    body: ChatRequest,
    router: ProviderRouter = Depends(get_router),
    caller: Caller = Depends(get_caller),
):
    """Conversational turn; the last few history entries become context."""
    response = await router.route(body.to_ai_request())
    return {
        "message": {
            "id": f"msg_{uuid.uuid4().hex}",
            "role": "assistant",
            "content": response.text,
            "timestamp": response.timestamp.isoformat(),
            "provider": response.provider_used.value,
            "model": response.model_name,
            "confidence": response.confidence,
        },
        "conversationId": body.conversation_id or f"conv_{uuid.uuid4().hex}",
        "metadata": {
            "tokensUsed": response.tokens_used,
            "isFallback": response.is_fallback,
        },
    }


@ai.post("/analyze")
async def analyze(
    body: AnalyzeRequest,
    router: ProviderRouter = Depends(get_router),
    caller: Caller = Depends(get_caller),
):
    """Analysis of educational content, preferring the secondary provider."""
    response = await router.route(body.to_ai_request())
    return {
        "analysis": response.text,
        "analysisType": body.analysis_type,
        "subject": body.subject,
        "grade": body.grade,
        "confidence": response.confidence,
        "provider": response.provider_used.value,
        "model": response.model_name,
        "metadata": {
            "timestamp": response.timestamp.isoformat(),
            "tokensUsed": response.tokens_used,
            "contentLength": len(body.content),
            "isFallback": response.is_fallback,
        },
    }


# =============================================================================
# Health & Administration
# =============================================================================

@ai.get("/health")
async def health(router: ProviderRouter = Depends(get_router)):
    """
    Provider health.

    Returns:
        - Overall status (operational when a remote provider is available, degraded otherwise)
        - Per-provider status and usage
        - Totals
    """
    health = router.get_health()
    remote_up = any(
        health[pid].status.available for pid in health if pid is not ProviderId.LOCAL
    )
    return {
        "status": "operational" if remote_up else "degraded",
        "providers": {pid.value: h.to_dict() for pid, h in health.items()},
        "availableProviders": [p.value for p in router.available_providers()],
        "totals": router.totals(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@ai.get("/stats")
async def stats(
    router: ProviderRouter = Depends(get_router),
    caller: Caller = Depends(get_caller),
):
    """Full statistics for administrators, basic ones for everybody else."""
    return {
        "detail": "full" if caller.privileged else "basic",
        "stats": router.get_stats(privileged=caller.privileged),
    }


@ai.get("/providers")
async def providers(router: ProviderRouter = Depends(get_router)):
    summary = router.get_provider_summary()
    summary["status"] = {
        pid.value: h.status.to_dict() for pid, h in router.get_health().items()
    }
    return summary


@ai.post("/reload")
async def reload(
    router: ProviderRouter = Depends(get_router),
    caller: Caller = Depends(require_privileged),
):
    """Re-probe the remote providers (administrators only)."""
    logger.info("api.providers.reload", extra={"caller": caller.user_id})
    await router.reload()
    return {"reloaded": True, "stats": router.get_stats(privileged=True)}


@ai.post("/stats/reset")
async def reset_stats(
    router: ProviderRouter = Depends(get_router),
    caller: Caller = Depends(require_privileged),
):
    """Zero usage counters (administrators only)."""
    router.reset_usage()
    return {"reset": True, "stats": router.get_stats(privileged=True)}


# =============================================================================
# Application Factory
# =============================================================================

def create_app(
    config: Optional[Config] = None,
    router: Optional[ProviderRouter] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Configuration (defaults to Config.load_default())
        router: Pre-built router; when given, the app does not close it on shutdown
    """
    config = config or Config.load_default()
    owns_router = router is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager - runs on startup and shutdown."""
        if config.logging.configure:
            setup_structured_logging(
                level=config.logging.level,
                format_type=config.logging.format,
                log_file=Path(config.logging.log_file) if config.logging.log_file else None,
            )

        logger.info("API starting up...")
        if app.state.router is None:
            app.state.router = ProviderRouter.from_config(config)

        if config.router.probe_on_startup:
            await app.state.router.reload()

        logger.info(
            "api.startup.complete",
            extra={"available": [p.value for p in app.state.router.available_providers()]}
        )

        yield

        logger.info("API shutting down...")
        if owns_router:
            await app.state.router.aclose()
            app.state.router = None

    app = FastAPI(
        title="BGE AI Gateway",
        description="Multi-provider AI assistant for Bachillerato Héroes de la Patria",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.router = router
    app.state.rate_limiter = RateLimiter(enabled=config.api.rate_limit_enabled)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        set_request_id(request_id)
        try:
            response = await call_next(request)
        finally:
            clear_context()
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(BGEAIError)
    async def bge_ai_error_handler(request: Request, exc: BGEAIError):
        """Structured body for gateway errors."""
        status_code = status_code_for(exc)
        log_extra: Dict[str, Any] = {
            "error_code": exc.error_code,
            "category": exc.category.value,
            "recoverable": exc.recoverable,
            "context": exc.context,
            "status_code": status_code,
        }
        if status_code < 500:
            logger.info(f"Request rejected: {exc.error_code}", extra=log_extra)
        else:
            logger.error(f"Gateway error: {exc.error_code}", extra=log_extra)
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    app.include_router(ai)

    @app.get("/")
    async def root():
        return {"name": "BGE AI Gateway", "version": "1.0.0", "docs": "/docs"}

    return app


app = create_app()
