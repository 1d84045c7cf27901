# EDINET API v2 連携モジュール
from .client import EdinetClient, dedupe_documents, iter_scan_dates, recent_business_day
from .models import (
    ANNUAL_REPORT_FORM_CODE,
    ANNUAL_REPORT_ORDINANCE_CODE,
    DocumentContent,
    DocumentSearchResponse,
    RegistryDocumentRef,
)

__all__ = [
    "EdinetClient",
    "dedupe_documents",
    "iter_scan_dates",
    "recent_business_day",
    "ANNUAL_REPORT_FORM_CODE",
    "ANNUAL_REPORT_ORDINANCE_CODE",
    "DocumentContent",
    "DocumentSearchResponse",
    "RegistryDocumentRef",
]
