"""
Document extractor service.

Turns the raw bytes of an uploaded statement into plain text and, for
spreadsheets, a row/column table. PDFs are read with pdfplumber and
spreadsheets with openpyxl; both are treated as black boxes.
"""
import io
import json
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pdfplumber
import structlog
from openpyxl import load_workbook

from banksheet.exceptions import UnsupportedFormatError

logger = structlog.get_logger(__name__)

PDF_TYPE = "application/pdf"
XLS_TYPE = "application/vnd.ms-excel"
XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

SPREADSHEET_TYPES = (XLS_TYPE, XLSX_TYPE)
SUPPORTED_TYPES = (PDF_TYPE,) + SPREADSHEET_TYPES

# pdfplumber metadata key -> exposed key
PDF_METADATA_KEYS = {
    "Title": "title",
    "Author": "author",
    "Subject": "subject",
    "Creator": "creator",
    "Producer": "producer",
    "CreationDate": "creationDate",
    "ModDate": "modificationDate",
}


@dataclass
class TableColumn:
    """Column of an extracted or structured table."""

    name: str
    key: str

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "key": self.key}


@dataclass
class ExtractedTable:
    """Row/column table read from the first worksheet."""

    columns: List[TableColumn]
    rows: List[Dict[str, Any]]


@dataclass
class ExtractionResult:
    """Output of a single extraction."""

    text: str = ""
    table: Optional[ExtractedTable] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def content(self) -> str:
        """Content handed to the structuring service."""
        if self.table is not None:
            return json.dumps(self.table.rows, default=str)
        return self.text


def _json_safe(value: Any) -> Any:
    """Cell value that survives a JSON column."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return str(value)


class DocumentExtractor:
    """
    Service for reading statement files.

    ``extract`` never retries anything itself: a file that cannot be opened as
    its declared type raises UnsupportedFormatError, which callers treat as
    permanent.
    """

    def extract(self, data: bytes, declared_type: str) -> ExtractionResult:
        """
        Extract text and/or a table from file bytes.

        Args:
            data: Raw file content.
            declared_type: MIME type declared at intake.

        Returns:
            ExtractionResult with text, optional table and metadata.

        Raises:
            UnsupportedFormatError: If the file cannot be parsed as declared.
        """
        if declared_type == PDF_TYPE:
            return self._extract_pdf(data)
        if declared_type in SPREADSHEET_TYPES:
            return self._extract_spreadsheet(data, declared_type)
        raise UnsupportedFormatError(declared_type, reason="unsupported type")

    def _extract_pdf(self, data: bytes) -> ExtractionResult:
        try:
            with pdfplumber.open(io.BytesIO(data)) as pdf:
                page_texts = [page.extract_text() or "" for page in pdf.pages]
                raw_metadata = pdf.metadata or {}
                page_count = len(pdf.pages)
        except Exception as e:
            logger.warning("pdf_extraction_failed", error=str(e))
            raise UnsupportedFormatError(PDF_TYPE, reason=str(e)) from e

        metadata: Dict[str, Any] = {
            exposed: _json_safe(raw_metadata.get(key))
            for key, exposed in PDF_METADATA_KEYS.items()
        }
        metadata["pageCount"] = page_count

        text = "\n".join(t for t in page_texts if t)
        logger.info("pdf_extracted", pages=page_count, characters=len(text))

        # Scanned PDFs legitimately produce no text; the structuring step
        # reports that as low confidence.
        return ExtractionResult(text=text, metadata=metadata)

    def _extract_spreadsheet(self, data: bytes, declared_type: str) -> ExtractionResult:
        try:
            wb = load_workbook(filename=io.BytesIO(data), read_only=True, data_only=True)
        except Exception as e:
            logger.warning("spreadsheet_extraction_failed", error=str(e))
            raise UnsupportedFormatError(declared_type, reason=str(e)) from e

        try:
            if not wb.worksheets:
                raise UnsupportedFormatError(declared_type, reason="no worksheets")
            ws = wb.worksheets[0]
            raw_rows = [list(row) for row in ws.iter_rows(values_only=True)]
            worksheet_count = len(wb.worksheets)
            worksheet_name = ws.title
        finally:
            wb.close()

        table = self._build_table(raw_rows)

        logger.info(
            "spreadsheet_extracted",
            worksheet=worksheet_name,
            rows=len(table.rows),
            columns=len(table.columns),
        )

        return ExtractionResult(
            text="",
            table=table,
            metadata={
                "worksheetName": worksheet_name,
                "worksheetCount": worksheet_count,
                "rowCount": len(raw_rows),
                "columnCount": len(table.columns),
            },
        )

    def _build_table(self, raw_rows: List[List[Any]]) -> ExtractedTable:
        """Row 1 names the columns; empty header cells become ``col_N``."""
        column_count = max((len(r) for r in raw_rows), default=0)
        header = raw_rows[0] if raw_rows else []

        columns = []
        for index in range(column_count):
            key = f"col_{index + 1}"
            value = header[index] if index < len(header) else None
            name = str(value).strip() if value is not None else ""
            columns.append(TableColumn(name=name or key, key=key))

        rows = []
        for raw in raw_rows[1:]:
            if all(v is None or (isinstance(v, str) and not v.strip()) for v in raw):
                continue
            rows.append({
                columns[i].key: _json_safe(raw[i]) if i < len(raw) else None
                for i in range(column_count)
            })

        return ExtractedTable(columns=columns, rows=rows)


def get_document_extractor() -> DocumentExtractor:
    """Get a DocumentExtractor instance."""
    return DocumentExtractor()
