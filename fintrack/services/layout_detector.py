"""
Detect the layout of an unknown bank statement grid and extract transactions.

The model only sees the first `settings.import_sample_rows` rows and answers
with the header row index plus a column mapping; every row after the header
is then parsed locally with that mapping. Statements whose header or first
data rows sit beyond the sampled rows cannot be detected.
"""
from __future__ import annotations

import logging
import re
from datetime import date, timedelta
from typing import Any

from fintrack.core.config import settings
from fintrack.core.errors import EmptyResultError, InsufficientRowsError, MalformedResponseError
from fintrack.schemas.statement import (
    ColumnMapping,
    LayoutMetadata,
    LayoutResult,
    ParsedTransaction,
    RawCell,
    RawGrid,
    RowDefect,
)
from fintrack.services.ai_client import create_chat_completion
from fintrack.services.json_payload import ModelOutputError, decode_model_json

logger = logging.getLogger("fintrack.import")

PARSE_TEMPERATURE = 0.1
EXCEL_EPOCH = date(1899, 12, 30)
MAX_EXCEL_SERIAL = 2958465  # 9999-12-31

LAYOUT_SYSTEM_PROMPT = "You are a precise data parser. Return ONLY valid JSON. No explanations. No markdown. Just JSON."

OPTIONAL_COLUMNS = ("sender", "bank", "debit", "credit", "balance")


def _is_empty(cell: RawCell) -> bool:
    return cell is None or (isinstance(cell, str) and not cell.strip())


def _cell(row: list[RawCell], index: int | None) -> RawCell:
    if index is None or index < 0 or index >= len(row):
        return None
    return row[index]


def _text(cell: RawCell) -> str:
    if cell is None:
        return ""
    if isinstance(cell, float) and cell.is_integer():
        return str(int(cell))
    return str(cell).strip()


def build_sample_text(grid: RawGrid, sample_size: int, preview_chars: int) -> str:
    lines = []
    for idx, row in enumerate(grid[:sample_size]):
        cells = [f'Col{ci}="{_text(c)[:preview_chars]}"' for ci, c in enumerate(row) if not _is_empty(c)]
        if cells:
            lines.append(f"Row {idx}: " + ", ".join(cells))
    return "\n".join(lines)


def build_layout_prompt(sample_text: str, total_rows: int, sample_size: int) -> str:
    return f"""Analyze the structure of this bank statement. Total {total_rows} rows.

Bank statements often have many account/info rows at the top before the real transaction table.

Sample data (first {sample_size} rows, empty cells omitted):
{sample_text}

Find the header row of the transaction table. Typical column titles: "Date" / "Ngày giao dịch",
"Remitter" / "Đối tác", "Bank", "Details" / "Diễn giải", "Debit" / "Nợ", "Credit" / "Có", "Balance" / "Số dư".

Return ONLY this JSON (no explanation):
{{
  "headerRow": <row number with column headers>,
  "columnMapping": {{
    "date": <column index for transaction date>,
    "sender": <column index for counterparty/remitter or null>,
    "bank": <column index for counterparty bank or null>,
    "description": <column index for details/description>,
    "debit": <column index for debit (money out) or null>,
    "credit": <column index for credit (money in) or null>,
    "balance": <column index for running balance or null>
  }}
}}"""


def _yyyymmdd(n: int) -> date | None:
    if not 19000101 <= n <= 29991231:
        return None
    try:
        return date(n // 10000, (n // 100) % 100, n % 100)
    except ValueError:
        return None


def _from_serial(n: float) -> date | None:
    if not 0 < n <= MAX_EXCEL_SERIAL:
        return None
    # Excel counts a fictitious 1900-02-29, so serials below 61 come out one day early.
    return EXCEL_EPOCH + timedelta(days=int(n))


def normalize_date(cell: RawCell) -> date | None:
    """Serial numbers, yyyymmdd integers and common date strings -> calendar date."""
    if _is_empty(cell) or isinstance(cell, bool):
        return None
    if isinstance(cell, (int, float)):
        if float(cell).is_integer():
            as_ymd = _yyyymmdd(int(cell))
            if as_ymd:
                return as_ymd
        return _from_serial(cell)
    text = str(cell).strip()
    token = re.split(r"[\sT]", text, maxsplit=1)[0]
    if token.isdigit():
        n = int(token)
        return _yyyymmdd(n) if len(token) == 8 else _from_serial(n)
    try:
        m = re.fullmatch(r"(\d{4})[/\-.](\d{1,2})[/\-.](\d{1,2})", token)
        if m:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        m = re.fullmatch(r"(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{2}|\d{4})", token)
        if m:
            year = int(m.group(3))
            if year < 100:
                year += 2000
            # Day-first, as printed on the statements this importer targets.
            return date(year, int(m.group(2)), int(m.group(1)))
    except ValueError:
        return None
    return None


def parse_amount(cell: RawCell) -> float:
    """Absolute amount with grouping separators removed ("1.000.000", "1,234.50", "150 000 VND")."""
    if _is_empty(cell) or isinstance(cell, bool):
        return 0.0
    if isinstance(cell, (int, float)):
        return abs(float(cell))
    num = re.sub(r"[^\d,.]", "", str(cell))
    if not num:
        return 0.0
    dots, commas = num.count("."), num.count(",")
    if dots and commas:
        decimal_sep = "." if num.rfind(".") > num.rfind(",") else ","
        head, _, tail = num.rpartition(decimal_sep)
        if len(tail) == 3:
            num = re.sub(r"[,.]", "", num)
        else:
            num = re.sub(r"[,.]", "", head) + "." + tail
    elif dots > 1 or commas > 1:
        num = re.sub(r"[,.]", "", num)
    elif dots == 1 or commas == 1:
        head, _, tail = num.replace(",", ".").partition(".")
        num = head + tail if len(tail) == 3 else f"{head or '0'}.{tail or '0'}"
    try:
        return abs(float(num))
    except ValueError:
        return 0.0


def _column_index(value: Any, width: int) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        m = re.fullmatch(r"\s*(?:col(?:umn)?\s*)?(\d+)\s*", value, re.IGNORECASE)
        if not m:
            return None
        value = m.group(1)
    try:
        idx = int(value)
    except (TypeError, ValueError):
        return None
    return idx if 0 <= idx < width else None


def coerce_structure(structure: Any, grid: RawGrid) -> tuple[int, ColumnMapping]:
    """Validate the model's {headerRow, columnMapping} answer against the grid."""
    if not isinstance(structure, dict):
        raise MalformedResponseError("The AI response is not a JSON object. Please try again.")
    raw_mapping = structure.get("columnMapping") or structure.get("column_mapping")
    raw_header = structure.get("headerRow", structure.get("header_row"))
    if raw_header is None or not isinstance(raw_mapping, dict):
        raise MalformedResponseError(
            "Could not determine the file structure. Check that the file is a bank statement."
        )
    try:
        header_row = int(raw_header)
    except (TypeError, ValueError) as e:
        raise MalformedResponseError(f"Invalid header row in AI response: {raw_header!r}") from e
    if not -1 <= header_row < len(grid):
        raise MalformedResponseError(f"Header row {header_row} is outside the statement ({len(grid)} rows).")
    width = max((len(r) for r in grid), default=0)
    date_col = _column_index(raw_mapping.get("date"), width)
    description_col = _column_index(raw_mapping.get("description"), width)
    optional = {name: _column_index(raw_mapping.get(name), width) for name in OPTIONAL_COLUMNS}
    if date_col is None or description_col is None:
        raise MalformedResponseError("The AI response is missing the date or description column.")
    if optional["debit"] is None and optional["credit"] is None:
        raise MalformedResponseError("The AI response maps neither a debit nor a credit column.")
    return header_row, ColumnMapping(date=date_col, description=description_col, **optional)


def extract_transactions(
    grid: RawGrid, header_row: int, mapping: ColumnMapping
) -> tuple[list[ParsedTransaction], int, list[RowDefect]]:
    """Parse every row after the header. Returns (transactions, skipped row count, defects)."""
    transactions: list[ParsedTransaction] = []
    defects: list[RowDefect] = []
    skipped = 0
    for i in range(header_row + 1, len(grid)):
        row = grid[i] or []
        debit_cell = _cell(row, mapping.debit)
        credit_cell = _cell(row, mapping.credit)
        if all(_is_empty(c) for c in row) or (_is_empty(debit_cell) and _is_empty(credit_cell)):
            skipped += 1
            continue
        tx_date = normalize_date(_cell(row, mapping.date))
        if tx_date is None:
            skipped += 1
            continue
        balance_cell = _cell(row, mapping.balance)
        tx = ParsedTransaction(
            date=tx_date,
            sender=_text(_cell(row, mapping.sender)),
            bank=_text(_cell(row, mapping.bank)),
            description=_text(_cell(row, mapping.description)),
            debit=parse_amount(debit_cell),
            credit=parse_amount(credit_cell),
            balance=None if _is_empty(balance_cell) else parse_amount(balance_cell),
        )
        defect = tx.exclusivity_defect()
        if defect:
            defects.append(RowDefect(row=i, reason=defect))
            continue
        transactions.append(tx)
    return transactions, skipped, defects


async def detect_layout(grid: RawGrid) -> LayoutResult:
    if not grid or len(grid) < 2:
        raise InsufficientRowsError()
    sample_size = min(settings.import_sample_rows, len(grid))
    sample_text = build_sample_text(grid, sample_size, settings.import_cell_preview_chars)
    logger.info("layout_detect rows=%s sample_rows=%s chars=%s", len(grid), sample_size, len(sample_text))

    completion = await create_chat_completion(
        [{"role": "user", "content": build_layout_prompt(sample_text, len(grid), sample_size)}],
        temperature=PARSE_TEMPERATURE,
        system_message=LAYOUT_SYSTEM_PROMPT,
        allow_fallback=False,
    )
    try:
        structure = decode_model_json(completion.content)
    except ModelOutputError as e:
        logger.warning("layout_detect_malformed provider=%s raw=%r", completion.provider, completion.content[:300])
        raise MalformedResponseError(
            "The AI returned invalid data. Try again or check the spreadsheet format."
        ) from e
    header_row, mapping = coerce_structure(structure, grid)
    transactions, skipped, defects = extract_transactions(grid, header_row, mapping)
    logger.info(
        "layout_detected header_row=%s parsed=%s skipped=%s defects=%s",
        header_row,
        len(transactions),
        skipped,
        len(defects),
    )
    if not transactions:
        raise EmptyResultError(
            "Statement format not recognized: no transactions could be read. Check that the file is a bank statement."
        )
    return LayoutResult(
        header_row=header_row,
        column_mapping=mapping,
        transactions=transactions,
        metadata=LayoutMetadata(
            total_rows=len(transactions),
            total_data_rows=len(grid),
            skipped_rows=skipped,
            defects=defects,
        ),
    )
