"""
Statement workbook builder.

Generates the downloadable spreadsheet from a job's stored preview data. The
output depends only on the columns and rows passed in, so it is rebuilt on
every download instead of being cached.
"""

import io
from typing import Any, Dict, List, Optional

import structlog
from openpyxl import Workbook
from openpyxl.utils import get_column_letter

from banksheet.services.excel_builder.styles import STATEMENT_STYLE, StatementStyle

logger = structlog.get_logger(__name__)

SHEET_TITLE = "Statement"


class StatementWorkbookBuilder:
    """Writes a column/row table into a single styled worksheet."""

    def __init__(self, style: Optional[StatementStyle] = None):
        self.style = style or STATEMENT_STYLE

    def build(self, columns: List[Dict[str, str]], rows: List[Dict[str, Any]]) -> bytes:
        """
        Build an .xlsx file.

        Args:
            columns: ``[{"name": ..., "key": ...}]`` in display order.
            rows: Row dicts keyed by column key.

        Returns:
            Workbook bytes.
        """
        wb = Workbook()
        ws = wb.active
        ws.title = SHEET_TITLE

        keys = [c.get("key") or c.get("name") for c in columns]

        for col_idx, column in enumerate(columns, start=1):
            cell = ws.cell(row=1, column=col_idx, value=column.get("name") or keys[col_idx - 1])
            cell.font = self.style.header_font
            cell.fill = self.style.header_fill
            cell.border = self.style.header_border
            cell.alignment = self.style.header_alignment
            ws.column_dimensions[get_column_letter(col_idx)].width = self.style.column_width

        for row_idx, row in enumerate(rows, start=2):
            for col_idx, key in enumerate(keys, start=1):
                cell = ws.cell(row=row_idx, column=col_idx, value=row.get(key))
                if cell.data_type == "f":
                    # Statement text is data, never a formula
                    cell.data_type = "s"
                number_format = self.style.number_formats.get(key)
                if number_format and isinstance(cell.value, (int, float)):
                    cell.number_format = number_format

        ws.freeze_panes = "A2"

        buffer = io.BytesIO()
        wb.save(buffer)
        wb.close()

        logger.info("statement_workbook_built", columns=len(columns), rows=len(rows))
        return buffer.getvalue()


def get_workbook_builder() -> StatementWorkbookBuilder:
    """Get a StatementWorkbookBuilder instance."""
    return StatementWorkbookBuilder()
