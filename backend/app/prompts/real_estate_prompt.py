"""Gemini prompt for reading rental real estate disclosures."""
from typing import Optional

REAL_ESTATE_PROMPT = """
あなたは日本の上場企業の有価証券報告書に精通した証券アナリストです。

「{company_name}」の最新の有価証券報告書から、賃貸等不動産の情報を調べてください。

## 対象となる注記
- 日本基準（JGAAP）: 連結財務諸表注記の「賃貸等不動産関係」
- IFRS: 「投資不動産」の注記（公正価値の開示を含む）

## 出力形式
以下のJSONのみを返してください。説明文やマークダウンは不要です。
```json
{{
  "companyName": "正式な企業名（文字列）",
  "found": true または false,
  "bookValue": 帳簿価額（数値、百万円単位）,
  "marketValue": 期末時価（数値、百万円単位）,
  "unrealizedGain": 含み損益 = 時価 - 帳簿価額（数値、百万円単位）,
  "properties": [
    {{
      "name": "物件名（文字列）",
      "location": "所在地（都道府県・市区町村程度、文字列）",
      "bookValue": 帳簿価額（数値、百万円単位）,
      "marketValue": 時価（数値、百万円単位）
    }}
  ],
  "fiscalYear": "対象の事業年度（例: 2024年3月期）",
  "sourceDocument": "参照した書類（例: 第80期 有価証券報告書 連結財務諸表注記「賃貸等不動産関係」）",
  "note": "補足事項（文字列）"
}}
```

## ルール
- 金額はすべて百万円単位の数値で記載すること（単位文字やカンマは付けない）
- properties には個別に開示されている物件のみを含めること。個別開示がなければ空配列にする
- 確実な情報がない場合は数値を推測せず、found を false にして note に理由を書くこと
- 架空の数値や物件を作らないこと
- sourceDocument には具体的な書類名と注記名を必ず記載すること
""".strip()

DOCUMENT_HINT_TEMPLATE = """

## 参考
EDINETで次の書類が見つかっています: {document_hint}
可能であればこの書類の記載に基づいて回答してください。
""".rstrip()


def build_real_estate_prompt(company_name: str, document_hint: Optional[str] = None) -> str:
    prompt = REAL_ESTATE_PROMPT.format(company_name=company_name)
    if document_hint:
        prompt += DOCUMENT_HINT_TEMPLATE.format(document_hint=document_hint)
    return prompt
