"""Pydantic models for the rental real estate dashboard."""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator
from pydantic.alias_generators import to_camel

# 金額はすべて百万円単位
Amount = Union[int, float]


class DataSource(str, Enum):
    """データの出典"""
    MOCK = "mock"        # デモ用データ
    REGISTRY = "edinet"  # EDINET書類から抽出
    MODEL = "gemini"     # Geminiによる読み取り


class QueryState(str, Enum):
    """検索の状態"""
    IDLE = "idle"
    SEARCHING = "searching"
    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _difference(book_value: Optional[Amount], market_value: Optional[Amount]) -> Optional[Amount]:
    if book_value is None or market_value is None:
        return None
    return market_value - book_value


class PropertyRecord(CamelModel):
    """個別物件（帳簿価額・時価が両方わかるものだけを保持）"""
    id: str
    name: str
    location: str = ""  # 都道府県・市区町村程度の粒度
    book_value: Amount
    market_value: Amount


class FinancialRecord(CamelModel):
    """賃貸等不動産の集計結果"""
    company_name: str
    book_value: Optional[Amount] = None  # 帳簿価額
    market_value: Optional[Amount] = None  # 時価
    unrealized_gain: Optional[Amount] = None  # 含み損益
    properties: List[PropertyRecord] = Field(default_factory=list)
    source: DataSource
    doc_id: Optional[str] = None  # EDINET書類ID
    fiscal_year: Optional[str] = None
    source_document: Optional[str] = None
    note: Optional[str] = None

    @model_validator(mode="after")
    def _backfill_unrealized_gain(self) -> "FinancialRecord":
        if self.unrealized_gain is None:
            self.unrealized_gain = _difference(self.book_value, self.market_value)
        return self


class ExtractionResult(CamelModel):
    """Values read from an EDINET document body."""
    book_value: Optional[Amount] = None
    market_value: Optional[Amount] = None
    unrealized_gain: Optional[Amount] = None
    properties: List[PropertyRecord] = Field(default_factory=list)
    raw_data_available: bool = False
    message: str
    company_name: Optional[str] = None

    @model_validator(mode="after")
    def _backfill_unrealized_gain(self) -> "ExtractionResult":
        if self.unrealized_gain is None:
            self.unrealized_gain = _difference(self.book_value, self.market_value)
        return self


class ModelAnalysis(BaseModel):
    """Normalized Gemini answer for one company."""
    found: bool
    company_name: str
    record: Optional[FinancialRecord] = None
    note: Optional[str] = None
    model: Optional[str] = None

    def to_response(self) -> Dict[str, Any]:
        if self.record is not None:
            payload = self.record.model_dump(by_alias=True, mode="json")
        else:
            payload = {
                "companyName": self.company_name,
                "bookValue": None,
                "marketValue": None,
                "unrealizedGain": None,
                "properties": [],
                "source": DataSource.MODEL.value,
                "note": self.note,
            }
        payload["found"] = self.found
        return payload


class MapLocation(CamelModel):
    """地図表示用の概略位置（ジオコーディングではない）"""
    id: str
    name: str
    lat: float
    lng: float
    value: Optional[Amount] = None


class CompanyQuery(CamelModel):
    company_name: Optional[str] = None


class ResolutionOutcome(CamelModel):
    state: QueryState
    data: Optional[FinancialRecord] = None
    message: Optional[str] = None
    detail: Optional[str] = None  # 診断用の補足（例外メッセージなど）
    registry_available: Optional[bool] = None
    map_locations: List[MapLocation] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def found(self) -> bool:
        return self.state == QueryState.FOUND and self.data is not None

    @model_validator(mode="after")
    def _require_explanation(self) -> "ResolutionOutcome":
        if self.state == QueryState.FOUND and self.data is None:
            raise ValueError("found outcome requires data")
        if self.state != QueryState.FOUND and not self.message:
            raise ValueError("an outcome without data must explain why")
        return self


class SessionSnapshot(CamelModel):
    state: QueryState
    query: Optional[str] = None
    outcome: Optional[ResolutionOutcome] = None
