"""デモ用の賃貸等不動産データ（金額は百万円）"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Protocol

from .models import DataSource, FinancialRecord, PropertyRecord


class CompanyLookup(Protocol):
    def lookup(self, company_name: str) -> Optional[FinancialRecord]:
        ...


class StaticCompanyTable:
    """企業名の完全一致で引く読み取り専用テーブル"""

    def __init__(self, records: Iterable[FinancialRecord]):
        self._records: Dict[str, FinancialRecord] = {record.company_name: record for record in records}

    def lookup(self, company_name: str) -> Optional[FinancialRecord]:
        record = self._records.get(company_name)
        if record is None:
            return None
        return record.model_copy(deep=True)

    def names(self) -> List[str]:
        return list(self._records)


def _property(index: int, name: str, location: str, book_value: int, market_value: int) -> PropertyRecord:
    return PropertyRecord(
        id=str(index),
        name=name,
        location=location,
        book_value=book_value,
        market_value=market_value,
    )


DEMO_COMPANIES: List[FinancialRecord] = [
    FinancialRecord(
        company_name="株式会社ナガオカ",
        book_value=2845,
        market_value=4210,
        unrealized_gain=1365,
        properties=[
            _property(1, "梅田オフィスビル", "大阪府大阪市北区", 1200, 1850),
            _property(2, "京都商業施設", "京都府京都市", 800, 1100),
            _property(3, "神戸倉庫", "兵庫県神戸市", 450, 580),
            _property(4, "大津レジデンス", "滋賀県大津市", 395, 680),
        ],
        source=DataSource.MOCK,
    ),
    FinancialRecord(
        company_name="サンプル不動産",
        book_value=5200,
        market_value=4800,
        unrealized_gain=-400,
        properties=[
            _property(1, "新宿オフィスタワー", "東京都新宿区", 3000, 2700),
            _property(2, "横浜倉庫", "神奈川県横浜市", 2200, 2100),
        ],
        source=DataSource.MOCK,
    ),
]


def default_company_table() -> StaticCompanyTable:
    return StaticCompanyTable(DEMO_COMPANIES)
