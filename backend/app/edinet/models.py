"""Pydantic models for the EDINET API."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

# 有価証券報告書（企業内容等の開示に関する内閣府令 第三号様式）
ANNUAL_REPORT_ORDINANCE_CODE = "010"
ANNUAL_REPORT_FORM_CODE = "030000"


class RegistryDocumentRef(BaseModel):
    """書類一覧APIの1件分（必要な項目のみ）"""
    model_config = ConfigDict(populate_by_name=True)

    doc_id: str = Field(alias="docID")
    filer_name: str = Field(default="", alias="filerName")
    ordinance_code: Optional[str] = Field(default=None, alias="ordinanceCode")
    form_code: Optional[str] = Field(default=None, alias="formCode")
    edinet_code: Optional[str] = Field(default=None, alias="edinetCode")
    sec_code: Optional[str] = Field(default=None, alias="secCode")
    doc_type_code: Optional[str] = Field(default=None, alias="docTypeCode")
    period_start: Optional[str] = Field(default=None, alias="periodStart")
    period_end: Optional[str] = Field(default=None, alias="periodEnd")
    submit_date_time: Optional[str] = Field(default=None, alias="submitDateTime")
    doc_description: Optional[str] = Field(default=None, alias="docDescription")

    @property
    def is_annual_securities_report(self) -> bool:
        return (
            self.ordinance_code == ANNUAL_REPORT_ORDINANCE_CODE
            and self.form_code == ANNUAL_REPORT_FORM_CODE
        )

    @property
    def label(self) -> str:
        """画面やメッセージに出す書類名"""
        return self.doc_description or f"{self.filer_name} 有価証券報告書"


class DocumentSearchResponse(BaseModel):
    documents: List[RegistryDocumentRef]


@dataclass
class DocumentContent:
    """書類取得APIの結果。バイナリ形式は未対応のため available=False になる"""
    doc_id: str
    text: str = ""
    available: bool = True
    note: Optional[str] = None
