"""Tests for the resolution orchestrator and the query session."""
import asyncio
import random

import httpx
import pytest

from backend.app.disclosure_analyzer import DisclosureAnalyzer
from backend.app.edinet import DocumentContent, EdinetClient, RegistryDocumentRef
from backend.app.errors import ModelUnavailable, RegistryUnavailable, ResponseUnparseable, TransportError, ValidationError
from backend.app.gemini import GeminiClient
from backend.app.mock_data import default_company_table
from backend.app.models import (
    DataSource,
    FinancialRecord,
    ModelAnalysis,
    QueryState,
    ResolutionOutcome,
)
from backend.app.orchestrator import (
    MESSAGE_NOT_FOUND,
    MESSAGE_REGISTRY_UNAVAILABLE,
    QuerySession,
    ResolutionOrchestrator,
)

CSV_WITH_FIGURES = "賃貸等不動産,帳簿価額,2000000000\n賃貸等不動産,時価,3500000000"
CSV_WITHOUT_FIGURES = "売上高,1000000000"


class FakeRegistry:
    def __init__(self, documents=None, content=None, search_error=None, fetch_error=None):
        self.documents = documents or []
        self.content = content
        self.search_error = search_error
        self.fetch_error = fetch_error
        self.searched = []
        self.fetched = []

    async def find_annual_reports(self, company_name):
        self.searched.append(company_name)
        if self.search_error:
            raise self.search_error
        return list(self.documents)

    async def fetch_document_content(self, doc_id):
        self.fetched.append(doc_id)
        if self.fetch_error:
            raise self.fetch_error
        return self.content


class FakeAnalyzer:
    def __init__(self, analysis=None, error=None):
        self.analysis = analysis
        self.error = error
        self.calls = []

    def analyze(self, company_name, document_hint=None):
        self.calls.append((company_name, document_hint))
        if self.error:
            raise self.error
        return self.analysis


class FakeResponse:
    """本文がHTMLの200応答"""

    text = "<html>Bad Gateway</html>"

    def __init__(self, status_code=200):
        self.status_code = status_code

    def json(self):
        raise ValueError("Expecting value: line 1 column 1 (char 0)")


def _document(doc_id="S100TEST", filer_name="テスト不動産株式会社"):
    return RegistryDocumentRef(
        doc_id=doc_id,
        filer_name=filer_name,
        ordinance_code="010",
        form_code="030000",
        period_end="2024-03-31",
        doc_description="有価証券報告書－第50期(2023/04/01－2024/03/31)",
    )


def _model_found(name="テスト不動産株式会社"):
    record = FinancialRecord(company_name=name, book_value=100, market_value=160, source=DataSource.MODEL)
    return ModelAnalysis(found=True, company_name=name, record=record, model="gemini-2.5-flash")


def _model_not_found(note="賃貸等不動産の開示がありません"):
    return ModelAnalysis(found=False, company_name="テスト", note=note)


def _orchestrator(registry=None, analyzer=None, use_registry=True, use_model=True):
    return ResolutionOrchestrator(
        default_company_table(),
        registry,
        analyzer,
        use_registry=use_registry,
        use_model=use_model,
        rng=random.Random(0),
    )


class TestMockTable:
    @pytest.mark.asyncio
    async def test_nagaoka_is_served_without_network(self):
        """Test a demo company never reaches EDINET or Gemini."""
        registry = FakeRegistry()
        analyzer = FakeAnalyzer()
        outcome = await _orchestrator(registry, analyzer).resolve("株式会社ナガオカ")

        assert outcome.state == QueryState.FOUND
        assert outcome.found is True
        assert outcome.data.source == DataSource.MOCK
        assert outcome.data.book_value == 2845
        assert outcome.data.market_value == 4210
        assert outcome.data.unrealized_gain == 1365
        assert len(outcome.data.properties) == 4
        assert len(outcome.map_locations) == 4
        assert registry.searched == []
        assert analyzer.calls == []

    @pytest.mark.asyncio
    async def test_lookup_is_exact_match(self):
        """Test the static table needs the exact name."""
        registry = FakeRegistry()
        outcome = await _orchestrator(registry, use_model=False).resolve("ナガオカ")

        assert outcome.state == QueryState.NOT_FOUND
        assert registry.searched == ["ナガオカ"]

    @pytest.mark.asyncio
    async def test_lookup_returns_copies(self):
        """Test callers cannot mutate the static table."""
        orchestrator = _orchestrator()
        first = await orchestrator.resolve("サンプル不動産")
        first.data.properties.clear()
        second = await orchestrator.resolve("サンプル不動産")

        assert len(second.data.properties) == 2
        assert second.data.unrealized_gain == -400

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["", "   ", None])
    async def test_empty_name(self, name):
        """Test a blank name is rejected."""
        with pytest.raises(ValidationError):
            await _orchestrator().resolve(name)


class TestRegistryPath:
    @pytest.mark.asyncio
    async def test_transport_error_is_not_not_found(self):
        """Test an EDINET outage is an error, not a miss."""
        registry = FakeRegistry(search_error=RegistryUnavailable("EDINETからのデータ取得に失敗しました", detail="HTTP 500"))
        analyzer = FakeAnalyzer(_model_found())
        outcome = await _orchestrator(registry, analyzer).resolve("テスト")

        assert outcome.state == QueryState.ERROR
        assert outcome.message == MESSAGE_REGISTRY_UNAVAILABLE
        assert outcome.detail == "HTTP 500"
        assert outcome.registry_available is False
        assert analyzer.calls == []

    @pytest.mark.asyncio
    async def test_document_with_figures(self):
        """Test figures from the filing are returned as a registry record."""
        registry = FakeRegistry([_document()], DocumentContent(doc_id="S100TEST", text=CSV_WITH_FIGURES))
        analyzer = FakeAnalyzer()
        outcome = await _orchestrator(registry, analyzer).resolve("テスト")

        assert outcome.state == QueryState.FOUND
        assert outcome.data.source == DataSource.REGISTRY
        assert outcome.data.company_name == "テスト不動産株式会社"
        assert outcome.data.doc_id == "S100TEST"
        assert outcome.data.book_value == 2000
        assert outcome.data.unrealized_gain == 1500
        assert outcome.data.fiscal_year == "2024年3月期"
        assert outcome.registry_available is True
        assert registry.fetched == ["S100TEST"]
        assert analyzer.calls == []

    @pytest.mark.asyncio
    async def test_document_without_figures_and_no_model(self):
        """Test a filing without figures is not found when Gemini is off."""
        registry = FakeRegistry([_document()], DocumentContent(doc_id="S100TEST", text=CSV_WITHOUT_FIGURES))
        outcome = await _orchestrator(registry, FakeAnalyzer(), use_model=False).resolve("テスト")

        assert outcome.state == QueryState.NOT_FOUND
        assert "テスト不動産株式会社" in outcome.message
        assert "追加実装" in outcome.message
        assert "S100TEST" in outcome.detail

    @pytest.mark.asyncio
    async def test_document_without_figures_falls_through_to_model(self):
        """Test a filing without figures is handed to Gemini with a hint."""
        registry = FakeRegistry([_document()], DocumentContent(doc_id="S100TEST", text=CSV_WITHOUT_FIGURES))
        analyzer = FakeAnalyzer(_model_found())
        outcome = await _orchestrator(registry, analyzer).resolve("テスト")

        assert outcome.state == QueryState.FOUND
        assert outcome.data.source == DataSource.MODEL
        assert analyzer.calls[0][0] == "テスト"
        assert "S100TEST" in analyzer.calls[0][1]

    @pytest.mark.asyncio
    async def test_fetch_failure_degrades_like_missing_figures(self):
        """Test a failed fetch behaves like a filing without figures."""
        registry = FakeRegistry([_document()], fetch_error=TransportError("書類の取得に失敗しました"))
        outcome = await _orchestrator(registry, use_model=False).resolve("テスト")

        assert outcome.state == QueryState.NOT_FOUND
        assert "追加実装" in outcome.message


class TestModelPath:
    @pytest.mark.asyncio
    async def test_no_documents_goes_to_model(self):
        """Test Gemini is asked when no filing exists."""
        registry = FakeRegistry()
        analyzer = FakeAnalyzer(_model_found())
        outcome = await _orchestrator(registry, analyzer).resolve("テスト")

        assert outcome.state == QueryState.FOUND
        assert outcome.data.source == DataSource.MODEL
        assert outcome.registry_available is True
        assert analyzer.calls == [("テスト", None)]

    @pytest.mark.asyncio
    async def test_model_not_found_carries_note(self):
        """Test the model note becomes the not-found message."""
        analyzer = FakeAnalyzer(_model_not_found("注記が見つかりませんでした"))
        outcome = await _orchestrator(FakeRegistry(), analyzer).resolve("テスト")

        assert outcome.state == QueryState.NOT_FOUND
        assert outcome.found is False
        assert outcome.data is None
        assert outcome.message == "注記が見つかりませんでした"

    @pytest.mark.asyncio
    async def test_model_unavailable_is_error(self):
        """Test exhausted models end in the error state."""
        error = ModelUnavailable("Gemini APIからの応答を取得できませんでした", last_error=RuntimeError("503"))
        outcome = await _orchestrator(FakeRegistry(), FakeAnalyzer(error=error)).resolve("テスト")

        assert outcome.state == QueryState.ERROR
        assert outcome.message == "Gemini APIからの応答を取得できませんでした"
        assert outcome.detail == "503"

    @pytest.mark.asyncio
    async def test_unparseable_reply_is_error_with_raw_text(self):
        """Test the raw reply is kept as the error detail."""
        error = ResponseUnparseable("AIからの応答を解析できませんでした", raw_text="すみません")
        outcome = await _orchestrator(FakeRegistry(), FakeAnalyzer(error=error)).resolve("テスト")

        assert outcome.state == QueryState.ERROR
        assert outcome.message == "AIからの応答を解析できませんでした"
        assert outcome.detail == "すみません"

    @pytest.mark.asyncio
    async def test_undecodable_model_reply_is_error(self, monkeypatch):
        """Test HTML replies from every model end the query in the error state."""
        calls = []

        def fake_post(url, json, timeout):
            calls.append(url)
            return FakeResponse(200)

        monkeypatch.setattr("backend.app.gemini.requests.post", fake_post)
        analyzer = DisclosureAnalyzer(
            GeminiClient(api_key="key").generate_text,
            ("model-a", "model-b"),
            sleep=lambda seconds: None,
        )
        outcome = await _orchestrator(FakeRegistry(), analyzer).resolve("未知の会社")

        assert outcome.state == QueryState.ERROR
        assert outcome.found is False
        assert outcome.message == "Gemini APIからの応答を取得できませんでした"
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_registry_disabled_goes_straight_to_model(self):
        """Test EDINET is skipped when disabled."""
        registry = FakeRegistry()
        analyzer = FakeAnalyzer(_model_found())
        outcome = await _orchestrator(registry, analyzer, use_registry=False).resolve("テスト")

        assert outcome.state == QueryState.FOUND
        assert outcome.registry_available is None
        assert registry.searched == []


class TestNoDocumentsEndToEnd:
    """未知の企業: 全期間でEDINETに書類がない場合"""

    @staticmethod
    def _empty_registry():
        calls = []

        def handler(request):
            calls.append(request.url.params.get("date"))
            return httpx.Response(200, json={"metadata": {"status": "200"}, "results": []})

        client = EdinetClient(transport=httpx.MockTransport(handler), request_interval=0)
        return client, calls

    @pytest.mark.asyncio
    async def test_without_model(self):
        """Test the full scan ends not found with the example hint."""
        registry, calls = self._empty_registry()
        analyzer = FakeAnalyzer(_model_found())
        outcome = await _orchestrator(registry, analyzer, use_model=False).resolve("存在しない株式会社")

        assert outcome.state == QueryState.NOT_FOUND
        assert outcome.message == MESSAGE_NOT_FOUND
        assert "例：トヨタ自動車株式会社" in outcome.message
        assert len(calls) == 14  # 直近営業日 + 週次13日
        assert analyzer.calls == []

    @pytest.mark.asyncio
    async def test_with_model(self):
        """Test Gemini is asked after the full scan finds nothing."""
        registry, calls = self._empty_registry()
        analyzer = FakeAnalyzer(_model_not_found())
        outcome = await _orchestrator(registry, analyzer).resolve("存在しない株式会社")

        assert outcome.state == QueryState.NOT_FOUND
        assert outcome.message == "賃貸等不動産の開示がありません"
        assert len(calls) == 14
        assert analyzer.calls == [("存在しない株式会社", None)]


class GatedOrchestrator:
    """名前ごとに解放されるまで待つ"""

    def __init__(self):
        self.gates = {}
        self.started = []

    def _gate(self, name):
        return self.gates.setdefault(name, asyncio.Event())

    def release(self, name):
        self._gate(name).set()

    async def resolve(self, name):
        self.started.append(name)
        await self._gate(name).wait()
        return ResolutionOutcome(state=QueryState.NOT_FOUND, message=f"{name}: 該当なし")


class TestQuerySession:
    @pytest.mark.asyncio
    async def test_submit_updates_state(self):
        """Test a submitted query ends in its outcome state."""
        session = QuerySession(_orchestrator())
        assert session.state == QueryState.IDLE

        outcome = await session.submit("株式会社ナガオカ")

        assert outcome.state == QueryState.FOUND
        snapshot = session.snapshot()
        assert snapshot.state == QueryState.FOUND
        assert snapshot.query == "株式会社ナガオカ"
        assert snapshot.outcome is outcome

    @pytest.mark.asyncio
    async def test_last_query_wins(self):
        """Test a superseded query never overwrites the newer one."""
        orchestrator = GatedOrchestrator()
        session = QuerySession(orchestrator)

        first = asyncio.create_task(session.submit("A社"))
        await asyncio.sleep(0)
        assert session.state == QueryState.SEARCHING

        second = asyncio.create_task(session.submit("B社"))
        await asyncio.sleep(0)
        orchestrator.release("A社")
        orchestrator.release("B社")

        assert await first is None
        outcome = await second
        assert outcome.message == "B社: 該当なし"
        assert session.query == "B社"
        assert session.outcome is outcome
        assert session.state == QueryState.NOT_FOUND

    @pytest.mark.asyncio
    async def test_reset_returns_to_idle(self):
        """Test reset clears the outcome."""
        session = QuerySession(_orchestrator())
        await session.submit("サンプル不動産")

        session.reset()

        assert session.state == QueryState.IDLE
        assert session.query is None
        assert session.outcome is None

    @pytest.mark.asyncio
    async def test_reset_discards_running_query(self):
        """Test a query running during reset is discarded."""
        orchestrator = GatedOrchestrator()
        session = QuerySession(orchestrator)

        pending = asyncio.create_task(session.submit("A社"))
        await asyncio.sleep(0)
        session.reset()

        assert await pending is None
        assert session.state == QueryState.IDLE

    @pytest.mark.asyncio
    async def test_empty_query_is_rejected(self):
        """Test a blank query is rejected."""
        session = QuerySession(GatedOrchestrator())
        with pytest.raises(ValidationError):
            await session.submit(" ")
        assert session.state == QueryState.IDLE
