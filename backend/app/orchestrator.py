"""Resolution of a company name into one rental real estate record.

Sources are consulted one at a time: the demo table, then EDINET, then
Gemini. Every call ends in exactly one of found / not_found / error.
"""
from __future__ import annotations

import asyncio
import logging
import random
from typing import Optional

from .disclosure_analyzer import DisclosureAnalyzer
from .edinet import DocumentContent, EdinetClient, RegistryDocumentRef
from .errors import DashboardError, ResponseUnparseable, TransportError, ValidationError
from .extractor import extract_from_document
from .geo import build_map_locations
from .mock_data import CompanyLookup
from .models import DataSource, FinancialRecord, QueryState, ResolutionOutcome, SessionSnapshot

logger = logging.getLogger(__name__)

MESSAGE_REGISTRY_UNAVAILABLE = "EDINET APIへの接続に失敗しました"
MESSAGE_NOT_FOUND = "該当する有価証券報告書が見つかりません。企業名を正確に入力してください（例：トヨタ自動車株式会社）"
MESSAGE_DOCUMENT_UNPARSED = "{filer_name}の有価証券報告書を発見しましたが、賃貸等不動産データの解析には追加実装が必要です。"


def _fiscal_year(document: RegistryDocumentRef) -> Optional[str]:
    # periodEnd: "2024-03-31" -> "2024年3月期"
    if not document.period_end:
        return None
    parts = document.period_end.split("-")
    if len(parts) < 2 or not parts[0].isdigit() or not parts[1].isdigit():
        return None
    return f"{parts[0]}年{int(parts[1])}月期"


def _document_hint(document: RegistryDocumentRef) -> str:
    return f"{document.label}（書類ID: {document.doc_id}）"


class ResolutionOrchestrator:
    def __init__(
        self,
        lookup: Optional[CompanyLookup],
        registry: Optional[EdinetClient],
        analyzer: Optional[DisclosureAnalyzer],
        *,
        use_registry: bool = True,
        use_model: bool = True,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.lookup = lookup
        self.registry = registry
        self.analyzer = analyzer
        self.use_registry = use_registry and registry is not None
        self.use_model = use_model and analyzer is not None
        self._rng = rng or random.Random()

    async def resolve(self, company_name: Optional[str]) -> ResolutionOutcome:
        name = (company_name or "").strip()
        if not name:
            raise ValidationError("企業名が指定されていません")
        try:
            return await self._resolve(name)
        except DashboardError as exc:
            logger.warning("Resolution failed for %s: %s", name, exc)
            return self._error(exc.message, detail=exc.detail)

    async def _resolve(self, name: str) -> ResolutionOutcome:
        if self.lookup is not None:
            record = self.lookup.lookup(name)
            if record is not None:
                logger.info("Mock data hit: %s", name)
                return self._found(record)

        registry_available: Optional[bool] = None
        located: Optional[RegistryDocumentRef] = None
        if self.use_registry:
            try:
                documents = await self.registry.find_annual_reports(name)
            except TransportError as exc:
                logger.warning("EDINET search failed for %s: %s", name, exc)
                return self._error(
                    MESSAGE_REGISTRY_UNAVAILABLE,
                    detail=exc.detail or exc.message,
                    registry_available=False,
                )
            registry_available = True
            if documents:
                located = documents[0]
                outcome = await self._from_document(located)
                if outcome is not None:
                    return outcome

        if self.use_model:
            return await self._from_model(name, located, registry_available)

        if located is not None:
            return ResolutionOutcome(
                state=QueryState.NOT_FOUND,
                message=MESSAGE_DOCUMENT_UNPARSED.format(filer_name=located.filer_name or name),
                detail=_document_hint(located),
                registry_available=registry_available,
            )
        return ResolutionOutcome(
            state=QueryState.NOT_FOUND,
            message=MESSAGE_NOT_FOUND,
            registry_available=registry_available,
        )

    async def _from_document(self, document: RegistryDocumentRef) -> Optional[ResolutionOutcome]:
        """書類から数値が読めた場合のみ found を返す"""
        try:
            content = await self.registry.fetch_document_content(document.doc_id)
        except TransportError as exc:
            logger.warning("EDINET document fetch failed (%s): %s", document.doc_id, exc)
            content = DocumentContent(doc_id=document.doc_id, available=False, note=exc.message)

        extraction = extract_from_document(content)
        if not extraction.raw_data_available:
            logger.info("No figures extracted from %s: %s", document.doc_id, extraction.message)
            return None

        record = FinancialRecord(
            company_name=document.filer_name or extraction.company_name or "",
            book_value=extraction.book_value,
            market_value=extraction.market_value,
            unrealized_gain=extraction.unrealized_gain,
            properties=extraction.properties,
            source=DataSource.REGISTRY,
            doc_id=document.doc_id,
            fiscal_year=_fiscal_year(document),
            source_document=document.label,
            note=extraction.message,
        )
        return self._found(record, registry_available=True)

    async def _from_model(
        self,
        name: str,
        located: Optional[RegistryDocumentRef],
        registry_available: Optional[bool],
    ) -> ResolutionOutcome:
        hint = _document_hint(located) if located is not None else None
        try:
            analysis = await asyncio.to_thread(self.analyzer.analyze, name, hint)
        except ResponseUnparseable as exc:
            return self._error(exc.message, detail=exc.raw_text[:1000], registry_available=registry_available)
        except DashboardError as exc:
            logger.warning("Gemini analysis failed for %s: %s", name, exc)
            return self._error(exc.message, detail=exc.detail, registry_available=registry_available)

        if analysis.found and analysis.record is not None:
            return self._found(analysis.record, registry_available=registry_available)

        detail = None
        if located is not None:
            detail = MESSAGE_DOCUMENT_UNPARSED.format(filer_name=located.filer_name or name)
        return ResolutionOutcome(
            state=QueryState.NOT_FOUND,
            message=analysis.note,
            detail=detail,
            registry_available=registry_available,
        )

    def _found(self, record: FinancialRecord, registry_available: Optional[bool] = None) -> ResolutionOutcome:
        return ResolutionOutcome(
            state=QueryState.FOUND,
            data=record,
            registry_available=registry_available,
            map_locations=build_map_locations(record, self._rng),
        )

    @staticmethod
    def _error(
        message: str,
        detail: Optional[str] = None,
        registry_available: Optional[bool] = None,
    ) -> ResolutionOutcome:
        return ResolutionOutcome(
            state=QueryState.ERROR,
            message=message,
            detail=detail,
            registry_available=registry_available,
        )


class QuerySession:
    """検索状態を1つだけ保持する。新しい検索が来たら実行中の検索は破棄する"""

    def __init__(self, orchestrator: ResolutionOrchestrator) -> None:
        self._orchestrator = orchestrator
        self._task: Optional[asyncio.Task] = None
        self._generation = 0
        self.state = QueryState.IDLE
        self.query: Optional[str] = None
        self.outcome: Optional[ResolutionOutcome] = None

    def _cancel_running(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def submit(self, company_name: Optional[str]) -> Optional[ResolutionOutcome]:
        """Resolve a query. Returns None when a newer query superseded this one."""
        name = (company_name or "").strip()
        if not name:
            raise ValidationError("企業名が指定されていません")

        self._cancel_running()
        self._generation += 1
        generation = self._generation
        self.state = QueryState.SEARCHING
        self.query = name
        self.outcome = None

        task = asyncio.ensure_future(self._orchestrator.resolve(name))
        self._task = task
        try:
            outcome = await task
        except asyncio.CancelledError:
            if generation != self._generation:
                return None
            self.state = QueryState.IDLE
            raise
        except Exception:
            if generation == self._generation:
                self.state = QueryState.ERROR
            raise

        if generation != self._generation:
            return None
        self.state = outcome.state
        self.outcome = outcome
        return outcome

    def reset(self) -> None:
        self._cancel_running()
        self._generation += 1
        self.state = QueryState.IDLE
        self.query = None
        self.outcome = None

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(state=self.state, query=self.query, outcome=self.outcome)
