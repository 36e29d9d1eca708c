from __future__ import annotations

import json
import unittest
from datetime import date
from unittest import mock

from fintrack.core.errors import EmptyResultError, InsufficientRowsError, MalformedResponseError
from fintrack.schemas.statement import ColumnMapping
from fintrack.services.ai_client import ChatCompletion
from fintrack.services.layout_detector import (
    build_sample_text,
    coerce_structure,
    detect_layout,
    extract_transactions,
    normalize_date,
    parse_amount,
)

STATEMENT = [
    ["VIETCOMBANK ACCOUNT STATEMENT"],
    ["Account no: 0123456789", None, None, "Period: 01/2024"],
    ["Date", "Description", "Debit", "Credit", "Balance"],
    ["15/01/2024", "ATM WITHDRAWAL", "150,000", None, "1,000,000"],
    ["16/01/2024 08:30:00", "ACME CORP SALARY", None, "5.000.000", "6.000.000"],
    ["17/01/2024", "REVERSAL", "100", "200", None],
    [None, None, None, None, None],
    ["Total", None, "150,000", "5.000.000"],
]

STRUCTURE = {
    "headerRow": 2,
    "columnMapping": {"date": 0, "sender": None, "description": 1, "debit": 2, "credit": 3, "balance": 4},
}


def _completion(content: str) -> ChatCompletion:
    return ChatCompletion(content=content, provider="groq", model="test-model")


class NormalizationTests(unittest.TestCase):
    def test_dates(self):
        self.assertEqual(normalize_date(20240115), date(2024, 1, 15))
        self.assertEqual(normalize_date(45306), date(2024, 1, 15))
        self.assertEqual(normalize_date(45306.5), date(2024, 1, 15))
        self.assertEqual(normalize_date("2024-01-15"), date(2024, 1, 15))
        self.assertEqual(normalize_date("15/01/2024"), date(2024, 1, 15))
        self.assertEqual(normalize_date("15-01-2024 10:30"), date(2024, 1, 15))
        self.assertEqual(normalize_date("20240115"), date(2024, 1, 15))
        self.assertIsNone(normalize_date("Total"))
        self.assertIsNone(normalize_date(None))
        self.assertIsNone(normalize_date("31/02/2024"))

    def test_amounts(self):
        self.assertEqual(parse_amount("1.000.000"), 1000000.0)
        self.assertEqual(parse_amount("1,234.50"), 1234.5)
        self.assertEqual(parse_amount("1.234,50"), 1234.5)
        self.assertEqual(parse_amount("150,000"), 150000.0)
        self.assertEqual(parse_amount("150 000 VND"), 150000.0)
        self.assertEqual(parse_amount("12.5"), 12.5)
        self.assertEqual(parse_amount(-250000), 250000.0)
        self.assertEqual(parse_amount(None), 0.0)
        self.assertEqual(parse_amount("n/a"), 0.0)

    def test_sample_text_truncates_and_omits_empty_cells(self):
        grid = [["x" * 80, None, "  "], ["a", "b"]]
        text = build_sample_text(grid, sample_size=1, preview_chars=50)
        self.assertEqual(text, 'Row 0: Col0="' + "x" * 50 + '"')


class ExtractionTests(unittest.TestCase):
    def test_extract_skips_noise_and_reports_defects(self):
        mapping = ColumnMapping(date=0, description=1, debit=2, credit=3, balance=4)
        transactions, skipped, defects = extract_transactions(STATEMENT, 2, mapping)
        self.assertEqual(len(transactions), 2)
        self.assertEqual(skipped, 2)
        self.assertEqual([d.row for d in defects], [5])
        withdrawal, salary = transactions
        self.assertEqual(withdrawal.date, date(2024, 1, 15))
        self.assertEqual(withdrawal.debit, 150000.0)
        self.assertEqual(withdrawal.credit, 0.0)
        self.assertEqual(withdrawal.balance, 1000000.0)
        self.assertEqual(salary.credit, 5000000.0)
        for tx in transactions:
            self.assertIsNone(tx.exclusivity_defect())

    def test_coerce_structure_accepts_col_labels(self):
        header, mapping = coerce_structure(
            {"headerRow": "2", "columnMapping": {"date": "Col0", "description": "col1", "credit": 3}}, STATEMENT
        )
        self.assertEqual(header, 2)
        self.assertEqual((mapping.date, mapping.description, mapping.debit, mapping.credit), (0, 1, None, 3))

    def test_coerce_structure_rejects_incomplete_mapping(self):
        with self.assertRaises(MalformedResponseError):
            coerce_structure({"headerRow": 2, "columnMapping": {"date": 0, "debit": 2}}, STATEMENT)
        with self.assertRaises(MalformedResponseError):
            coerce_structure({"headerRow": 2, "columnMapping": {"date": 0, "description": 1}}, STATEMENT)
        with self.assertRaises(MalformedResponseError):
            coerce_structure({"columnMapping": STRUCTURE["columnMapping"]}, STATEMENT)
        with self.assertRaises(MalformedResponseError):
            coerce_structure([1, 2], STATEMENT)


class DetectLayoutTests(unittest.IsolatedAsyncioTestCase):
    async def test_detects_layout_and_parses_rows(self):
        stub = mock.AsyncMock(return_value=_completion("```json\n" + json.dumps(STRUCTURE) + "\n```"))
        with mock.patch("fintrack.services.layout_detector.create_chat_completion", stub):
            result = await detect_layout(STATEMENT)
        self.assertEqual(result.header_row, 2)
        self.assertEqual(result.column_mapping.debit, 2)
        self.assertEqual(len(result.transactions), 2)
        self.assertEqual(result.metadata.total_data_rows, len(STATEMENT))
        self.assertEqual(result.metadata.skipped_rows, 2)
        self.assertEqual(len(result.metadata.defects), 1)
        kwargs = stub.await_args.kwargs
        self.assertEqual(kwargs["temperature"], 0.1)
        self.assertFalse(kwargs["allow_fallback"])
        body = result.model_dump(by_alias=True)
        self.assertIn("columnMapping", body)
        self.assertIn("totalDataRows", body["metadata"])

    async def test_prompt_only_carries_sampled_rows(self):
        grid = [["Date", "Description", "Debit"]] + [[f"{d:02d}/01/2024", f"ROW {d}", "1000"] for d in range(1, 29)] * 2
        stub = mock.AsyncMock(return_value=_completion(json.dumps({"headerRow": 0, "columnMapping": {"date": 0, "description": 1, "debit": 2}})))
        with mock.patch("fintrack.services.layout_detector.create_chat_completion", stub):
            result = await detect_layout(grid)
        prompt = stub.await_args.args[0][0]["content"]
        self.assertIn("Row 34:", prompt)
        self.assertNotIn("Row 35:", prompt)
        self.assertEqual(len(result.transactions), len(grid) - 1)

    async def test_insufficient_rows(self):
        stub = mock.AsyncMock()
        with mock.patch("fintrack.services.layout_detector.create_chat_completion", stub):
            with self.assertRaises(InsufficientRowsError):
                await detect_layout([["Date", "Amount"]])
        stub.assert_not_awaited()

    async def test_unparseable_model_output(self):
        stub = mock.AsyncMock(return_value=_completion("Sorry, I cannot read this statement."))
        with mock.patch("fintrack.services.layout_detector.create_chat_completion", stub):
            with self.assertRaises(MalformedResponseError) as ctx:
                await detect_layout(STATEMENT)
        self.assertEqual(ctx.exception.status_code, 400)

    async def test_no_transactions_found(self):
        structure = {"headerRow": 7, "columnMapping": STRUCTURE["columnMapping"]}
        stub = mock.AsyncMock(return_value=_completion(json.dumps(structure)))
        with mock.patch("fintrack.services.layout_detector.create_chat_completion", stub):
            with self.assertRaises(EmptyResultError) as ctx:
                await detect_layout(STATEMENT)
        self.assertIn("not recognized", ctx.exception.details)


if __name__ == "__main__":
    unittest.main()
