from __future__ import annotations

from datetime import date
from typing import Literal, Optional, Union

from pydantic import Field

from fintrack.schemas.common import CamelModel

RawCell = Union[str, int, float, None]
RawGrid = list[list[RawCell]]

TransactionType = Literal["income", "expense"]


class ParsedTransaction(CamelModel):
    date: date
    sender: str = ""
    bank: str = ""
    description: str = ""
    debit: float = Field(0, ge=0)
    credit: float = Field(0, ge=0)
    balance: Optional[float] = None

    def exclusivity_defect(self) -> str | None:
        """Exactly one of debit/credit must be non-zero."""
        if self.debit == 0 and self.credit == 0:
            return "both debit and credit are zero"
        if self.debit > 0 and self.credit > 0:
            return "both debit and credit are non-zero"
        return None


class ClassifiedTransaction(ParsedTransaction):
    type: TransactionType
    category: str
    amount: float
    is_valid: bool = True


class ColumnMapping(CamelModel):
    date: int
    description: int
    debit: Optional[int] = None
    credit: Optional[int] = None
    sender: Optional[int] = None
    bank: Optional[int] = None
    balance: Optional[int] = None


class RowDefect(CamelModel):
    row: int
    reason: str


class LayoutMetadata(CamelModel):
    """
    total_rows: transactions parsed from the sheet.
    total_data_rows: every row of the uploaded grid, header and skipped rows included.
    """

    total_rows: int
    total_data_rows: int
    skipped_rows: int = 0
    defects: list[RowDefect] = Field(default_factory=list)


class LayoutResult(CamelModel):
    header_row: int
    column_mapping: ColumnMapping
    transactions: list[ParsedTransaction]
    metadata: LayoutMetadata


class ParseStatementRequest(CamelModel):
    data: RawGrid = Field(default_factory=list)


class ClassifyRequest(CamelModel):
    transactions: list[ParsedTransaction] = Field(default_factory=list)


class ClassificationSummary(CamelModel):
    total: int
    income: float
    expense: float
    income_count: int
    expense_count: int


class ClassificationResult(CamelModel):
    transactions: list[ClassifiedTransaction]
    summary: ClassificationSummary
    mode: Literal["ai", "fallback"] = "ai"


class ImportTransaction(CamelModel):
    date: date
    sender: str = ""
    description: str = ""
    type: TransactionType
    category: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)


class BulkImportRequest(CamelModel):
    transactions: list[ImportTransaction] = Field(default_factory=list)


class BulkImportResponse(CamelModel):
    success: bool = True
    imported: int
    message: str
