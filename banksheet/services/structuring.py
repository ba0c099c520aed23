"""
Structuring service.

Sends extracted statement content to an AI structuring backend (any
OpenAI-compatible chat endpoint; Gemini by default) and normalizes the answer
into a canonical transaction table. Anything that goes wrong on the way,
from a timeout to a malformed response, lands in the deterministic fallback:
``structure`` never raises.
"""
import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog
from openai import OpenAI
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from banksheet.config import Settings, get_settings
from banksheet.services.document_extractor import ExtractedTable, TableColumn

logger = structlog.get_logger(__name__)

# Fixed confidence reported by the fallback. Must stay below the primary
# path's minimum accepted confidence.
FALLBACK_CONFIDENCE = 0.2

TRANSACTION_COLUMNS = [
    TableColumn(name="Date", key="date"),
    TableColumn(name="Description", key="description"),
    TableColumn(name="Debit", key="debit"),
    TableColumn(name="Credit", key="credit"),
    TableColumn(name="Balance", key="balance"),
    TableColumn(name="Category", key="category"),
]

# Checked in order, case-insensitively
KNOWN_BANKS = [
    ("bank of america", "Bank of America"),
    ("wells fargo", "Wells Fargo"),
    ("citibank", "Citibank"),
    ("chase", "Chase"),
    ("capital one", "Capital One"),
    ("hsbc", "HSBC"),
    ("barclays", "Barclays"),
    ("bank central asia", "BCA"),
    ("bank mandiri", "Bank Mandiri"),
    ("bank negara indonesia", "BNI"),
    ("bank rakyat indonesia", "BRI"),
]

SYSTEM_PROMPT = """You are a bank statement parser AI. Your task is to extract structured transaction data from bank statements.

Rules:
1. Output ONLY valid JSON with this exact structure:
{
  "bank_name": "string",
  "statement_period": "YYYY-MM-DD to YYYY-MM-DD",
  "transactions": [
    {
      "date": "YYYY-MM-DD",
      "description": "string",
      "debit": number|null,
      "credit": number|null,
      "balance": number,
      "category": "string|null"
    }
  ],
  "confidence_score": 0.0-1.0,
  "warnings": ["array", "of", "warnings"]
}

2. Debit = money leaving account (positive number)
3. Credit = money entering account (positive number)
4. Balance = running balance after transaction
5. If amount is unclear, set confidence_score < 0.8
6. Never invent data - if uncertain, set confidence_score low
7. Detect bank name from statement content
8. Extract statement period if available
9. Categorize transactions (e.g., "Food", "Salary", "Utilities", "Transfer")
10. Handle multiple currencies if present"""

_CODE_FENCE = re.compile(r"^\s*```(?:json)?\s*|\s*```\s*$", re.IGNORECASE)


class StructuringFailed(Exception):
    """The structuring backend could not produce a usable result."""


def _parse_amount(value: Any) -> Any:
    """Accept 1234.5, "1,234.50", "$12" and "(12.00)"."""
    if value is None or isinstance(value, (int, float)):
        return value
    text = str(value).strip().replace(",", "").replace("$", "").replace(" ", "")
    if not text:
        return None
    if text.startswith("(") and text.endswith(")"):
        text = "-" + text[1:-1]
    return text


class TransactionRow(BaseModel):
    """One transaction as returned by the backend."""

    model_config = ConfigDict(extra="ignore")

    date: Optional[str] = None
    description: Optional[str] = None
    debit: Optional[float] = None
    credit: Optional[float] = None
    balance: Optional[float] = None
    category: Optional[str] = None

    @field_validator("debit", "credit", "balance", mode="before")
    @classmethod
    def _amount(cls, value: Any) -> Any:
        return _parse_amount(value)

    @field_validator("date", "description", "category", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        if value is None:
            return None
        return str(value)


class StatementExtraction(BaseModel):
    """Schema the backend's JSON answer must satisfy."""

    model_config = ConfigDict(extra="ignore")

    bank_name: Optional[str] = None
    statement_period: Optional[str] = None
    transactions: List[TransactionRow]
    confidence_score: float = Field(ge=0.0, le=1.0)
    warnings: List[str] = Field(default_factory=list)


def parse_structuring_response(raw_text: Optional[str]) -> StatementExtraction:
    """
    Validate a raw backend answer.

    Returns the typed extraction, or raises StructuringFailed for any schema
    violation. This is the only place backend output is interpreted.
    """
    if not raw_text or not raw_text.strip():
        raise StructuringFailed("empty response")

    cleaned = _CODE_FENCE.sub("", raw_text.strip())
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise StructuringFailed(f"response is not JSON: {e}") from e

    if not isinstance(payload, dict) or not isinstance(payload.get("transactions"), list):
        raise StructuringFailed("response has no transactions array")

    try:
        return StatementExtraction.model_validate(payload)
    except ValidationError as e:
        raise StructuringFailed(f"response failed validation: {e.error_count()} errors") from e


def detect_bank(content: str) -> Optional[str]:
    """Find a known bank name in raw text."""
    lowered = (content or "").lower()
    for needle, name in KNOWN_BANKS:
        if needle in lowered:
            return name
    return None


@dataclass
class StructuredResult:
    """Canonical transaction table produced by either path."""

    columns: List[TableColumn]
    rows: List[Dict[str, Any]]
    confidence_score: float
    detected_bank: Optional[str]
    source: str
    needs_review: bool = False
    warnings: List[str] = field(default_factory=list)

    def to_preview(self, file_type: str) -> Dict[str, Any]:
        """Shape stored as the job's preview data."""
        return {
            "columns": [c.to_dict() for c in self.columns],
            "rows": self.rows,
            "confidenceScore": self.confidence_score,
            "detectedBank": self.detected_bank,
            "fileType": file_type,
            "source": self.source,
            "needsReview": self.needs_review,
            "warnings": self.warnings,
        }


class StructuringService:
    """
    Adapter in front of the AI structuring backend.

    The primary path accepts a backend answer only if it validates and its
    confidence is at least ``min_confidence``; answers below
    ``review_threshold`` are kept but flagged for review.
    """

    MAX_TOKENS = 4096
    TEMPERATURE = 0.4

    def __init__(
        self,
        client: Optional[OpenAI] = None,
        model: str = "gemini-2.5-flash",
        max_chars: int = 10000,
        min_confidence: float = 0.3,
        review_threshold: float = 0.85,
    ):
        self._client = client
        self.model = model
        self.max_chars = max_chars
        self.min_confidence = min_confidence
        self.review_threshold = review_threshold

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "StructuringService":
        settings = settings or get_settings()
        client = None
        if settings.structuring_api_key:
            client = OpenAI(
                api_key=settings.structuring_api_key,
                base_url=settings.structuring_base_url,
                timeout=float(settings.processing_timeout_seconds),
                max_retries=0,
            )
        else:
            logger.warning("structuring_backend_not_configured")
        return cls(
            client=client,
            model=settings.structuring_model,
            max_chars=settings.structuring_max_chars,
            min_confidence=settings.structuring_min_confidence,
            review_threshold=settings.ai_confidence_threshold,
        )

    def structure(
        self,
        content: str,
        file_type: str,
        table: Optional[ExtractedTable] = None,
    ) -> StructuredResult:
        """
        Turn extracted content into a transaction table.

        Args:
            content: Extracted text (or JSON rows for spreadsheets).
            file_type: Declared MIME type, passed to the backend as context.
            table: Table read from a spreadsheet, used by the fallback.

        Returns:
            StructuredResult from the backend or from the fallback.
        """
        try:
            extraction = self._call_backend(content, file_type)
            if extraction.confidence_score < self.min_confidence:
                raise StructuringFailed(
                    f"confidence {extraction.confidence_score:.2f} below {self.min_confidence:.2f}"
                )
        except StructuringFailed as e:
            logger.warning("structuring_fallback", reason=str(e), file_type=file_type)
            return self.fallback(content, table)

        result = self._to_result(extraction)
        if table is not None and (len(content or "") > self.max_chars or len(result.rows) < len(table.rows)):
            return self._keep_table(result, table)
        return result

    def _keep_table(self, result: StructuredResult, table: ExtractedTable) -> StructuredResult:
        """Backend saw only part of the sheet; keep every original row."""
        logger.warning(
            "structuring_incomplete_table",
            table_rows=len(table.rows),
            structured_rows=len(result.rows),
        )
        return StructuredResult(
            columns=list(table.columns),
            rows=list(table.rows),
            confidence_score=result.confidence_score,
            detected_bank=result.detected_bank,
            source="ai",
            needs_review=True,
            warnings=result.warnings + [
                f"Statement too large for automatic structuring; showing all {len(table.rows)} original rows"
            ],
        )

    def _call_backend(self, content: str, file_type: str) -> StatementExtraction:
        if self._client is None:
            raise StructuringFailed("structuring backend not configured")

        prompt = (
            f"Parse the following {file_type} bank statement content:\n\n"
            f"{(content or '')[: self.max_chars]}\n\n"
            "Return ONLY the JSON response as specified in the rules."
        )

        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.TEMPERATURE,
                max_tokens=self.MAX_TOKENS,
                response_format={"type": "json_object"},
            )
            raw_text = response.choices[0].message.content
        except Exception as e:
            raise StructuringFailed(f"backend call failed: {type(e).__name__}") from e

        return parse_structuring_response(raw_text)

    def _to_result(self, extraction: StatementExtraction) -> StructuredResult:
        warnings = list(extraction.warnings)
        rows = []
        for index, txn in enumerate(extraction.transactions, start=1):
            if txn.debit is not None and txn.credit is not None:
                warnings.append(f"Row {index} has both debit and credit")
            rows.append(txn.model_dump())

        confidence = extraction.confidence_score
        logger.info("structuring_succeeded", rows=len(rows), confidence=confidence)

        return StructuredResult(
            columns=list(TRANSACTION_COLUMNS),
            rows=rows,
            confidence_score=confidence,
            detected_bank=extraction.bank_name or None,
            source="ai",
            needs_review=confidence < self.review_threshold,
            warnings=warnings,
        )

    def fallback(self, content: str, table: Optional[ExtractedTable] = None) -> StructuredResult:
        """
        Deterministic extraction used when the backend is unusable.

        Only the bank name is inferred from free text. A spreadsheet's own
        table is passed through as-is.
        """
        if table is not None:
            columns, rows = list(table.columns), list(table.rows)
        else:
            columns, rows = list(TRANSACTION_COLUMNS), []

        return StructuredResult(
            columns=columns,
            rows=rows,
            confidence_score=FALLBACK_CONFIDENCE,
            detected_bank=detect_bank(content),
            source="fallback",
            needs_review=True,
            warnings=["Automatic structuring unavailable; manual review needed"],
        )
