"""
Styles for generated statement workbooks.

Defines header and cell styling plus number formats for known columns.
"""

from dataclasses import dataclass, field
from typing import Dict

from openpyxl.styles import Alignment, Border, Font, PatternFill, Side


@dataclass
class StatementStyle:
    """Styling applied to a statement worksheet."""

    name: str
    header_font: Font
    header_fill: PatternFill
    header_border: Border
    header_alignment: Alignment
    column_width: int = 20
    # column key -> number format
    number_formats: Dict[str, str] = field(default_factory=dict)


AMOUNT_FORMAT = "#,##0.00"

STATEMENT_STYLE = StatementStyle(
    name="Statement",
    header_font=Font(bold=True, size=11),
    header_fill=PatternFill("solid", fgColor="FF22C55E"),  # Brand green
    header_border=Border(bottom=Side(style="thin", color="000000")),
    header_alignment=Alignment(horizontal="center", vertical="center"),
    column_width=20,
    number_formats={
        "debit": AMOUNT_FORMAT,
        "credit": AMOUNT_FORMAT,
        "balance": AMOUNT_FORMAT,
    },
)
