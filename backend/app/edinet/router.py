"""FastAPI router for EDINET document endpoints."""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..config import Settings, get_settings
from ..errors import NotFoundError, RegistryUnavailable, TransportError, ValidationError
from ..extractor import extract_from_document
from ..models import ExtractionResult
from .client import EdinetClient
from .models import DocumentSearchResponse

logger = logging.getLogger("uvicorn.error")
router = APIRouter(prefix="/api/edinet", tags=["edinet"])

SEARCH_HINT = "企業名を正確に入力してください（例：トヨタ自動車株式会社）"


def get_edinet_client(settings: Settings = Depends(get_settings)) -> EdinetClient:
    """EDINETクライアントを取得"""
    return EdinetClient.from_settings(settings)


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise ValidationError(f"日付の形式が正しくありません（YYYY-MM-DD）: {value}") from exc


@router.get("/search", response_model=DocumentSearchResponse)
async def search_documents(
    company_name: Optional[str] = Query(default=None, alias="companyName"),
    search_date: Optional[str] = Query(default=None, alias="date"),
    client: EdinetClient = Depends(get_edinet_client),
) -> DocumentSearchResponse:
    """企業名で有価証券報告書を検索"""
    name = (company_name or "").strip()
    if not name:
        raise ValidationError("企業名が指定されていません")

    try:
        documents = await client.find_annual_reports(name, search_date=_parse_date(search_date))
    except RegistryUnavailable as exc:
        logger.error(f"EDINET API エラー: {exc}")
        raise TransportError("EDINETからのデータ取得に失敗しました", detail=exc.detail or exc.message) from exc

    if not documents:
        raise NotFoundError("該当する有価証券報告書が見つかりません", hint=SEARCH_HINT)
    return DocumentSearchResponse(documents=documents)


@router.get("/document", response_model=ExtractionResult)
async def get_document(
    doc_id: Optional[str] = Query(default=None, alias="docId"),
    client: EdinetClient = Depends(get_edinet_client),
) -> ExtractionResult:
    """書類を取得して賃貸等不動産の数値を抽出"""
    if not doc_id:
        raise ValidationError("書類IDが指定されていません")

    try:
        content = await client.fetch_document_content(doc_id)
    except TransportError as exc:
        logger.error(f"EDINET書類取得エラー: docID={doc_id}: {exc}")
        raise TransportError("書類の取得に失敗しました", detail=exc.message) from exc
    return extract_from_document(content)
