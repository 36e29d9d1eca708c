from __future__ import annotations

import unittest
import uuid
from datetime import date
from types import SimpleNamespace
from unittest import mock

from fintrack.db.base import Base
from fintrack.db.session import DatabaseManager
from fintrack.models import Budget, Transaction, User
from fintrack.services.ai_client import ChatCompletion
from fintrack.services.advisor import build_context, chat_with_advisor
from fintrack.core.errors import ValidationError
from fintrack.services.analysis import analysis_window, analyze_finances, compute_stats, income_stability


def _t(type_: str, category: str, amount: float, day: date = date(2024, 5, 10)):
    return SimpleNamespace(type=type_, category=category, amount=amount, date=day)


class PeriodStatsTests(unittest.TestCase):
    def test_window(self):
        self.assertEqual(analysis_window(date(2024, 5, 1)), ("monthly", date(2024, 4, 1), "last month"))
        self.assertEqual(analysis_window(date(2024, 1, 1))[1], date(2023, 12, 1))
        self.assertEqual(analysis_window(date(2024, 5, 15)), ("weekly", date(2024, 5, 8), "the last 7 days"))

    def test_compute_stats(self):
        rows = [
            _t("income", "Salary", 10_000_000),
            _t("expense", "Food & Dining", 2_000_000),
            _t("expense", "Housing", 4_000_000),
            _t("expense", "Food & Dining", 1_000_000),
        ]
        stats = compute_stats(rows)
        self.assertEqual(stats.income, 10_000_000)
        self.assertEqual(stats.expense, 7_000_000)
        self.assertEqual(stats.balance, 3_000_000)
        self.assertEqual(stats.savings_rate, "30.0")
        self.assertEqual(stats.top_expense_categories, [("Housing", 4_000_000), ("Food & Dining", 3_000_000)])
        self.assertIsNone(stats.income_stability)

    def test_savings_rate_without_income(self):
        self.assertEqual(compute_stats([_t("expense", "Shopping", 10)]).savings_rate, "0.0")

    def test_income_stability(self):
        stable = income_stability([10_000_000, 10_500_000, 9_500_000])
        self.assertTrue(stable.is_stable)
        unstable = income_stability([1_000_000, 9_000_000])
        self.assertFalse(unstable.is_stable)
        self.assertEqual(unstable.variance_percent, "80.0")

    def test_chat_context(self):
        context = build_context([_t("income", "Salary", 100), _t("expense", "Housing", 40)], budget_count=2)
        self.assertIn("May 2024", context)
        self.assertIn("Housing: 40", context)
        self.assertIn("Budgets set: 2 categories", context)
        self.assertEqual(build_context([], budget_count=0), "")


class AnalyzeFinancesTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.manager = DatabaseManager("sqlite://")
        Base.metadata.create_all(self.manager.get_connection())
        self.addCleanup(self.manager.dispose)
        self.db = self.manager.session()
        self.addCleanup(self.db.close)
        self.user = User(email="an@example.com", name="An", password_hash="x", password_salt="y")
        self.db.add(self.user)
        self.db.commit()

    async def test_no_records_skips_backend(self):
        stub = mock.AsyncMock()
        with mock.patch("fintrack.services.analysis.create_chat_completion", stub):
            result = await analyze_finances(self.db, self.user.id, today=date(2024, 5, 15))
        stub.assert_not_awaited()
        self.assertIn("No transactions", result.summary)
        self.assertEqual(result.analysis_mode, "weekly")

    async def test_summary_from_backend(self):
        self.db.add_all(
            [
                Transaction(user_id=self.user.id, type="income", category="Salary", amount=5000, date=date(2024, 5, 12)),
                Transaction(user_id=self.user.id, type="expense", category="Housing", amount=2000, date=date(2024, 5, 13)),
                Transaction(user_id=self.user.id, type="expense", category="Shopping", amount=999, date=date(2024, 4, 1)),
                Transaction(user_id=uuid.uuid4(), type="expense", category="Shopping", amount=777, date=date(2024, 5, 13)),
            ]
        )
        self.db.commit()
        completion = ChatCompletion(content="Solid week.", provider="groq", model="m")
        stub = mock.AsyncMock(return_value=completion)
        with mock.patch("fintrack.services.analysis.create_chat_completion", stub):
            result = await analyze_finances(self.db, self.user.id, today=date(2024, 5, 15))
        self.assertEqual(result.summary, "Solid week.")
        self.assertEqual(result.stats.income, 5000)
        self.assertEqual(result.stats.expense, 2000)
        self.assertEqual(result.stats.savings_rate, "60.0")
        self.assertEqual(stub.await_args.kwargs["temperature"], 0.7)
        body = result.model_dump(by_alias=True)
        self.assertIn("topExpenseCategories", body)
        self.assertIn("savingsRate", body["stats"])

    async def test_chat_requires_message(self):
        with self.assertRaises(ValidationError):
            await chat_with_advisor(self.db, self.user.id, "   ")

    async def test_chat_sends_context(self):
        self.db.add(Transaction(user_id=self.user.id, type="expense", category="Housing", amount=2000, date=date(2024, 5, 13)))
        self.db.add(Budget(user_id=self.user.id, category="Housing", limit=3000, month=5, year=2024))
        self.db.commit()
        stub = mock.AsyncMock(return_value=ChatCompletion(content="Cut rent.", provider="groq", model="m", usage={"total_tokens": 9}))
        with mock.patch("fintrack.services.advisor.create_chat_completion", stub):
            result = await chat_with_advisor(self.db, self.user.id, "How am I doing?", today=date(2024, 5, 15))
        self.assertEqual(result.response, "Cut rent.")
        self.assertEqual(result.usage, {"total_tokens": 9})
        messages = stub.await_args.args[0]
        self.assertEqual(messages[0]["role"], "system")
        self.assertIn("Budgets set: 1 categories", messages[0]["content"])
        self.assertEqual(messages[-1], {"role": "user", "content": "How am I doing?"})


if __name__ == "__main__":
    unittest.main()
