"""EDINET API v2 クライアント"""
from __future__ import annotations

import asyncio
import codecs
import logging
from datetime import date, timedelta
from typing import Any, Dict, Iterable, Iterator, List, Optional

import httpx
from pydantic import ValidationError as SchemaError

from ..config import Settings
from ..errors import RegistryUnavailable, TransportError
from .models import DocumentContent, RegistryDocumentRef

logger = logging.getLogger("uvicorn.error")

BASE_URL = "https://api.edinet-fsa.go.jp/api/v2"

DOCUMENT_LIST_TYPE = 2  # 提出書類一覧及びメタデータ
CSV_DOCUMENT_TYPE = 5  # CSV
ZIP_MAGIC = b"PK\x03\x04"


def recent_business_day(today: date) -> date:
    """土日の場合は直前の金曜日を返す"""
    weekday = today.weekday()
    if weekday == 5:
        return today - timedelta(days=1)
    if weekday == 6:
        return today - timedelta(days=2)
    return today


def iter_scan_dates(start: date, lookback_days: int = 90, step_days: int = 7) -> Iterator[date]:
    """start から step_days 刻みで遡る検索日（土日は除外）"""
    for offset in range(0, lookback_days, step_days):
        candidate = start - timedelta(days=offset)
        if candidate.weekday() >= 5:
            continue
        yield candidate


def dedupe_documents(documents: Iterable[RegistryDocumentRef]) -> List[RegistryDocumentRef]:
    seen = set()
    unique: List[RegistryDocumentRef] = []
    for doc in documents:
        if doc.doc_id in seen:
            continue
        seen.add(doc.doc_id)
        unique.append(doc)
    return unique


def _decode_csv(body: bytes) -> str:
    # EDINETのCSVはUTF-16(BOM付き)。念のためUTF-8/CP932も受け付ける
    if body.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        return body.decode("utf-16")
    try:
        return body.decode("utf-8-sig")
    except UnicodeDecodeError:
        return body.decode("cp932", errors="replace")


class EdinetClient:
    """EDINET API v2 クライアント

    Subscription-Key は任意。設定されている場合のみクエリに付与する。
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = BASE_URL,
        timeout: float = 10.0,
        lookback_days: int = 90,
        step_days: int = 7,
        request_interval: float = 0.1,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.lookback_days = lookback_days
        self.step_days = step_days
        self.request_interval = request_interval
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "EdinetClient":
        options: Dict[str, Any] = dict(
            api_key=settings.edinet_api_key,
            base_url=settings.edinet_api_base_url,
            timeout=settings.edinet_timeout_seconds,
            lookback_days=settings.edinet_lookback_days,
            step_days=settings.edinet_scan_step_days,
            request_interval=settings.edinet_request_interval_seconds,
        )
        options.update(overrides)
        return cls(**options)

    async def _get(self, path: str, params: Dict[str, Any]) -> httpx.Response:
        if self.api_key:
            params["Subscription-Key"] = self.api_key
        url = f"{self.base_url}/{path}"
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            return await client.get(url, params=params)

    # ========================================
    # 書類一覧API
    # ========================================

    async def search_documents(self, company_name: str, search_date: date) -> List[RegistryDocumentRef]:
        """指定日の書類一覧から、提出者名に company_name を含む有価証券報告書を返す"""
        date_str = search_date.isoformat()
        try:
            response = await self._get("documents.json", {"date": date_str, "type": DOCUMENT_LIST_TYPE})
        except httpx.HTTPError as exc:
            raise RegistryUnavailable(f"EDINET API connection error ({date_str}): {exc}") from exc

        if not response.is_success:
            raise RegistryUnavailable(
                f"EDINET API error: {response.status_code}",
                status_code=response.status_code,
                detail=response.text[:500],
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise RegistryUnavailable(f"EDINET API returned a non-JSON body ({date_str})") from exc
        if not isinstance(payload, dict):
            raise RegistryUnavailable(
                f"EDINET API returned an unexpected body ({date_str})",
                detail=str(payload)[:500],
            )

        # 認証エラー等はHTTP 200のままボディ側のステータスで返ってくる
        status = str((payload.get("metadata") or {}).get("status") or payload.get("StatusCode") or "200")
        if status != "200":
            raise RegistryUnavailable(
                f"EDINET API error: {status}",
                status_code=int(status) if status.isdigit() else None,
                detail=str(payload)[:500],
            )

        documents: List[RegistryDocumentRef] = []
        for item in payload.get("results") or []:
            try:
                doc = RegistryDocumentRef.model_validate(item)
            except SchemaError:
                logger.debug("Skipping malformed EDINET entry: %s", item)
                continue
            if doc.is_annual_securities_report and company_name in doc.filer_name:
                documents.append(doc)
        return documents

    async def search_extended_period(
        self, company_name: str, today: Optional[date] = None
    ) -> List[RegistryDocumentRef]:
        """週次で日付を遡って検索する（最初に見つかった日で打ち切り）

        日付ごとの失敗はログに残して続行し、全日付が失敗した場合のみ
        RegistryUnavailable を送出する。
        """
        start = recent_business_day(today or date.today())
        found: List[RegistryDocumentRef] = []
        attempted = 0
        failures = 0
        last_error: Optional[RegistryUnavailable] = None

        for search_date in iter_scan_dates(start, self.lookback_days, self.step_days):
            if attempted:
                await asyncio.sleep(self.request_interval)
            attempted += 1
            try:
                documents = await self.search_documents(company_name, search_date)
            except RegistryUnavailable as exc:
                failures += 1
                last_error = exc
                logger.warning(f"EDINET検索エラー ({search_date.isoformat()}): {exc}")
                continue
            if documents:
                logger.info(f"EDINET書類発見: {company_name} ({search_date.isoformat()}, {len(documents)}件)")
                found.extend(documents)
                break

        if attempted and failures == attempted:
            raise RegistryUnavailable(
                "EDINETからのデータ取得に失敗しました",
                status_code=last_error.upstream_status if last_error else None,
                detail=str(last_error) if last_error else None,
            )
        return dedupe_documents(found)

    async def find_annual_reports(
        self,
        company_name: str,
        search_date: Optional[date] = None,
        today: Optional[date] = None,
    ) -> List[RegistryDocumentRef]:
        """指定日（省略時は直近営業日）を検索し、なければ期間を広げて検索する"""
        today = today or date.today()
        first_date = search_date or recent_business_day(today)
        try:
            documents = await self.search_documents(company_name, first_date)
        except RegistryUnavailable as exc:
            # 期間検索で同日を含めて再試行される
            logger.warning(f"EDINET検索エラー ({first_date.isoformat()}): {exc}")
            documents = []
        if documents:
            return dedupe_documents(documents)
        return await self.search_extended_period(company_name, today=today)

    # ========================================
    # 書類取得API
    # ========================================

    async def fetch_document_content(self, doc_id: str) -> DocumentContent:
        """書類のCSV表現を取得する。取得できない場合はバイナリ経路（未実装）に回す"""
        try:
            response = await self._get(f"documents/{doc_id}", {"type": CSV_DOCUMENT_TYPE})
        except httpx.HTTPError as exc:
            raise TransportError(f"書類の取得に失敗しました: {exc}") from exc

        if not response.is_success:
            logger.warning(f"EDINET CSV取得エラー: docID={doc_id}, status={response.status_code}")
            return self._fetch_binary_document(
                doc_id, reason=f"CSV形式の取得に失敗しました（HTTP {response.status_code}）"
            )

        body = response.content
        if body.startswith(ZIP_MAGIC):
            return self._fetch_binary_document(doc_id, reason="CSV形式はZIPアーカイブで提供されています")
        return DocumentContent(doc_id=doc_id, text=_decode_csv(body))

    def _fetch_binary_document(self, doc_id: str, *, reason: str) -> DocumentContent:
        # TODO: type=1 (ZIP) を展開してXBRLの RentalRealEstate 系タグを読む
        logger.info(f"XBRL/ZIP解析は未実装のためスキップ: docID={doc_id} ({reason})")
        return DocumentContent(
            doc_id=doc_id,
            available=False,
            note=f"{reason}。XBRL/ZIP形式の解析は未実装です。",
        )
