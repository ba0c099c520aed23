"""
Excel Builder module for BankSheet.

Generates the downloadable statement spreadsheet from structured job data.
"""

from banksheet.services.excel_builder.builder import StatementWorkbookBuilder, get_workbook_builder
from banksheet.services.excel_builder.styles import STATEMENT_STYLE, StatementStyle

__all__ = [
    "StatementWorkbookBuilder",
    "get_workbook_builder",
    "STATEMENT_STYLE",
    "StatementStyle",
]
