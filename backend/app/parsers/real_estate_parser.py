"""Parser for Gemini answers about rental real estate disclosures."""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional

from ..errors import ResponseUnparseable
from ..models import Amount, DataSource, FinancialRecord, ModelAnalysis, PropertyRecord

logger = logging.getLogger(__name__)

JSON_PATTERN = re.compile(r"\{.*\}", re.DOTALL)
AMOUNT_PATTERN = re.compile(r"^(?P<sign>[-△▲])?(?P<number>\d+(?:\.\d+)?)$")
AMOUNT_SUFFIXES = ("百万円", "百万")

MESSAGE_UNPARSEABLE = "AIからの応答を解析できませんでした"
MESSAGE_NOT_DISCLOSED = "有価証券報告書に賃貸等不動産の開示が見つかりませんでした。"
MESSAGE_NO_FIGURES = "賃貸等不動産の帳簿価額・時価を特定できませんでした。"


def extract_json_object(text: str) -> Dict[str, Any]:
    """Return the JSON object embedded in a model reply.

    The widest ``{...}`` span is tried first. When that span is not valid JSON
    (e.g. trailing prose containing braces) the first complete object starting
    at the first ``{`` is decoded instead.
    """
    match = JSON_PATTERN.search(text)
    if match:
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
        try:
            parsed, _ = json.JSONDecoder().raw_decode(text[match.start():])
        except json.JSONDecodeError as exc:
            logger.warning("Failed to decode Gemini JSON: %s", exc)
            parsed = None
        if isinstance(parsed, dict):
            return parsed
    raise ResponseUnparseable(MESSAGE_UNPARSEABLE, raw_text=text)


def _parse_amount(value: Any) -> Optional[Amount]:
    """数値または "1,234" / "1,234百万円" 形式の文字列を百万円単位の数値に変換"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if not isinstance(value, str):
        return None
    cleaned = value.strip().replace(",", "").replace("，", "")
    for suffix in AMOUNT_SUFFIXES:
        if cleaned.endswith(suffix):
            cleaned = cleaned[: -len(suffix)].strip()
            break
    match = AMOUNT_PATTERN.match(cleaned)
    if not match:
        return None
    number = match.group("number")
    amount: Amount = float(number) if "." in number else int(number)
    return -amount if match.group("sign") else amount


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_properties(items: Any) -> List[PropertyRecord]:
    if not isinstance(items, list):
        return []
    properties: List[PropertyRecord] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        book_value = _parse_amount(item.get("bookValue"))
        market_value = _parse_amount(item.get("marketValue"))
        if book_value is None or market_value is None:
            logger.debug("Dropping property without both values: %s", item)
            continue
        properties.append(
            PropertyRecord(
                id=str(len(properties) + 1),
                name=_clean_text(item.get("name")) or f"物件{len(properties) + 1}",
                location=_clean_text(item.get("location")) or "",
                book_value=book_value,
                market_value=market_value,
            )
        )
    return properties


def parse_model_payload(
    payload: Dict[str, Any],
    requested_name: str,
    model: Optional[str] = None,
) -> ModelAnalysis:
    """Normalize a decoded Gemini payload into a ModelAnalysis.

    Args:
        payload: JSON object returned by the model
        requested_name: Company name the user asked for
        model: Gemini model that produced the payload

    Returns:
        ModelAnalysis with a FinancialRecord when figures were disclosed
    """
    company_name = _clean_text(payload.get("companyName")) or requested_name
    note = _clean_text(payload.get("note"))

    if not _as_bool(payload.get("found")):
        return ModelAnalysis(
            found=False,
            company_name=company_name,
            note=note or MESSAGE_NOT_DISCLOSED,
            model=model,
        )

    book_value = _parse_amount(payload.get("bookValue"))
    market_value = _parse_amount(payload.get("marketValue"))
    if book_value is None and market_value is None:
        return ModelAnalysis(
            found=False,
            company_name=company_name,
            note=f"{MESSAGE_NO_FIGURES}{note}" if note else MESSAGE_NO_FIGURES,
            model=model,
        )

    record = FinancialRecord(
        company_name=company_name,
        book_value=book_value,
        market_value=market_value,
        unrealized_gain=_parse_amount(payload.get("unrealizedGain")),
        properties=_parse_properties(payload.get("properties")),
        source=DataSource.MODEL,
        fiscal_year=_clean_text(payload.get("fiscalYear")),
        source_document=_clean_text(payload.get("sourceDocument")),
        note=note,
    )
    return ModelAnalysis(found=True, company_name=company_name, record=record, note=note, model=model)
