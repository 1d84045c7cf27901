"""Heuristic extraction of rental real estate figures from EDINET CSV text."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .edinet.models import DocumentContent
from .models import ExtractionResult

logger = logging.getLogger(__name__)

YEN_PER_MILLION = 1_000_000

# 識別子（jpcrp030000 など）や日付に埋め込まれた数字は対象外。小数は部分一致させずに丸ごと捕捉する
NUMBER_PATTERN = re.compile(
    r"(?<![A-Za-z0-9_.\-/])(?P<sign>[-△▲])?(?P<digits>\d[\d,]*)(?P<fraction>\.\d+)?(?![A-Za-z0-9_.\-/]|,\d)"
)

# 行内に単位表記がある場合はそちらを優先する
UNIT_DIVISORS: Tuple[Tuple[str, int], ...] = (
    ("百万円", 1),
    ("千円", 1_000),
)

COMPANY_NAME_LABELS = ("提出者名", "会社名", "filername", "companyname", "filer name", "company name")

MESSAGE_EXTRACTED = "賃貸等不動産データを抽出しました。"
MESSAGE_PARTIAL = "賃貸等不動産データの一部（{fields}）のみ抽出できました。"
MESSAGE_NO_FIGURES = "賃貸等不動産の記載は見つかりましたが、数値を読み取れませんでした。詳細な解析にはGemini AIが必要です。"
MESSAGE_NOT_MENTIONED = "この企業の有価証券報告書には賃貸等不動産の記載がない可能性があります。"

FIELD_LABELS = {
    "book_value": "帳簿価額",
    "market_value": "時価",
}


@dataclass(frozen=True)
class DomainVocabulary:
    """Decides whether a line belongs to the rental real estate note."""
    keywords: Tuple[str, ...]
    conjunction: Tuple[str, ...] = ()

    def matches(self, lowered_line: str) -> bool:
        if any(keyword.lower() in lowered_line for keyword in self.keywords):
            return True
        return bool(self.conjunction) and all(term in lowered_line for term in self.conjunction)


@dataclass(frozen=True)
class ExtractionRule:
    """Maps a keyword set on a candidate line to a target field."""
    field: str
    keywords: Tuple[str, ...]
    unit_divisor: int = YEN_PER_MILLION

    def matches(self, lowered_line: str) -> bool:
        return any(keyword.lower() in lowered_line for keyword in self.keywords)


RENTAL_REAL_ESTATE = DomainVocabulary(
    keywords=(
        "賃貸等不動産",
        "投資不動産",
        "RentalRealEstate",
        "InvestmentProperty",
        "InvestmentProperties",
    ),
    conjunction=("rental", "real", "estate"),
)

DEFAULT_RULES: Tuple[ExtractionRule, ...] = (
    ExtractionRule(
        field="book_value",
        keywords=("帳簿価額", "貸借対照表計上額", "BookValue", "CarryingAmount", "carrying", "book"),
    ),
    ExtractionRule(
        field="market_value",
        keywords=("時価", "公正価値", "FairValue", "MarketValue", "fair", "market"),
    ),
)


def parse_first_number(line: str) -> Optional[int]:
    """Return the first standalone integer literal on the line, or None.

    A decimal literal such as ``4,210.5`` yields None rather than a
    truncated integer.
    """
    match = NUMBER_PATTERN.search(line)
    if not match or match.group("fraction"):
        return None
    digits = match.group("digits").replace(",", "")
    try:
        value = int(digits)
    except ValueError:
        return None
    return -value if match.group("sign") else value


def _unit_divisor(line: str, default: int) -> int:
    for label, divisor in UNIT_DIVISORS:
        if label in line:
            return divisor
    return default


def _to_millions(value: int, divisor: int) -> int:
    quotient = abs(value) // divisor
    return -quotient if value < 0 else quotient


def _split_fields(line: str) -> List[str]:
    delimiter = "\t" if "\t" in line else ","
    return [field.strip().strip("\"'").strip() for field in line.split(delimiter)]


def find_company_name(lines: Iterable[str]) -> Optional[str]:
    """提出者名・会社名の行から2列目を企業名として取り出す"""
    for line in lines:
        lowered = line.lower()
        if not any(label in lowered for label in COMPANY_NAME_LABELS):
            continue
        fields = _split_fields(line)
        if len(fields) >= 2 and fields[1]:
            return fields[1]
    return None


def _as_lines(source: Union[str, Iterable[str]]) -> List[str]:
    if isinstance(source, str):
        return source.lstrip("\ufeff").splitlines()
    return [line for line in source]


def extract_real_estate_values(
    source: Union[str, Iterable[str]],
    *,
    vocabulary: DomainVocabulary = RENTAL_REAL_ESTATE,
    rules: Sequence[ExtractionRule] = DEFAULT_RULES,
) -> ExtractionResult:
    """Scan delimited text for book/market values of rental real estate.

    A line is a candidate when it matches the domain vocabulary. The first
    rule whose keywords appear on the line decides the target field, and the
    first candidate line per field wins. Values are converted to millions of
    yen by integer division.
    """
    lines = _as_lines(source)
    values: Dict[str, int] = {}
    mentioned = False

    for line in lines:
        lowered = line.lower()
        if not vocabulary.matches(lowered):
            continue
        mentioned = True
        rule = next((candidate for candidate in rules if candidate.matches(lowered)), None)
        if rule is None or rule.field in values:
            continue
        raw_value = parse_first_number(line)
        if raw_value is None:
            continue
        divisor = _unit_divisor(line, rule.unit_divisor)
        values[rule.field] = _to_millions(raw_value, divisor)
        logger.debug("Extracted %s=%s from line: %s", rule.field, values[rule.field], line[:200])

    book_value = values.get("book_value")
    market_value = values.get("market_value")
    raw_data_available = book_value is not None or market_value is not None

    if book_value is not None and market_value is not None:
        message = MESSAGE_EXTRACTED
    elif raw_data_available:
        fields = "・".join(FIELD_LABELS[name] for name in ("book_value", "market_value") if name in values)
        message = MESSAGE_PARTIAL.format(fields=fields)
    elif mentioned:
        message = MESSAGE_NO_FIGURES
    else:
        message = MESSAGE_NOT_MENTIONED

    return ExtractionResult(
        book_value=book_value,
        market_value=market_value,
        properties=[],
        raw_data_available=raw_data_available,
        message=message,
        company_name=find_company_name(lines),
    )


def extract_from_document(content: DocumentContent) -> ExtractionResult:
    """書類取得結果から抽出する。本文が取得できなかった場合はその理由を返す"""
    if not content.available:
        return ExtractionResult(raw_data_available=False, message=content.note or MESSAGE_NOT_MENTIONED)
    return extract_real_estate_values(content.text)
