from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .disclosure_analyzer import DisclosureAnalyzer
from .edinet import EdinetClient
from .edinet.router import router as edinet_router
from .errors import DashboardError, ValidationError
from .mock_data import default_company_table
from .models import CompanyQuery, ResolutionOutcome, SessionSnapshot
from .orchestrator import QuerySession, ResolutionOrchestrator

logger = logging.getLogger("uvicorn.error")
settings = get_settings()

app = FastAPI(title="Rental Real Estate Dashboard Backend", version="0.3.0")
app.include_router(edinet_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_allow_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 検索状態はプロセス内で1つだけ保持する（単一ユーザー前提）
_query_session: Optional[QuerySession] = None


@app.exception_handler(DashboardError)
async def handle_dashboard_error(request: Request, exc: DashboardError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail or exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def get_disclosure_analyzer(settings: Settings = Depends(get_settings)) -> DisclosureAnalyzer:
    return DisclosureAnalyzer.from_settings(settings)


def build_orchestrator(settings: Settings) -> ResolutionOrchestrator:
    return ResolutionOrchestrator(
        default_company_table() if settings.use_mock_data else None,
        EdinetClient.from_settings(settings) if settings.use_edinet else None,
        DisclosureAnalyzer.from_settings(settings) if settings.use_gemini else None,
        use_registry=settings.use_edinet,
        use_model=settings.use_gemini,
    )


def get_query_session() -> QuerySession:
    global _query_session
    if _query_session is None:
        _query_session = QuerySession(build_orchestrator(get_settings()))
    return _query_session


@app.get("/api/ping")
def ping() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/api/analyze")
async def analyze_company(
    request: CompanyQuery,
    analyzer: DisclosureAnalyzer = Depends(get_disclosure_analyzer),
) -> Dict[str, Any]:
    """Geminiで有価証券報告書の賃貸等不動産を読み取る"""
    company_name = (request.company_name or "").strip()
    if not company_name:
        raise ValidationError("企業名が指定されていません")
    analysis = await run_in_threadpool(analyzer.analyze, company_name)
    return analysis.to_response()


@app.post("/api/resolve", response_model=ResolutionOutcome)
async def resolve_company(
    request: CompanyQuery,
    session: QuerySession = Depends(get_query_session),
) -> ResolutionOutcome:
    """デモデータ → EDINET → Gemini の順に企業を検索"""
    outcome = await session.submit(request.company_name)
    if outcome is None:
        raise HTTPException(status_code=409, detail="新しい検索が開始されたため、この検索は破棄されました")
    return outcome


@app.get("/api/resolve/state", response_model=SessionSnapshot)
def get_resolve_state(session: QuerySession = Depends(get_query_session)) -> SessionSnapshot:
    return session.snapshot()


@app.delete("/api/resolve/state", response_model=SessionSnapshot)
def reset_resolve_state(session: QuerySession = Depends(get_query_session)) -> SessionSnapshot:
    session.reset()
    return session.snapshot()


@app.on_event("startup")
def log_startup() -> None:
    settings = get_settings()
    logger.info("Gemini models: %s", ", ".join(settings.gemini_models))
    logger.info(
        "Sources: mock=%s, edinet=%s, gemini=%s",
        settings.use_mock_data,
        settings.use_edinet,
        settings.use_gemini,
    )
    if settings.use_gemini and not settings.gemini_api_key:
        logger.warning("GEMINI_API_KEY is not set; Gemini requests will fail")
    if settings.edinet_api_key:
        logger.info("EDINET Subscription-Key is configured")
