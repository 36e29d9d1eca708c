from __future__ import annotations

import json
import unittest
from datetime import date
from unittest import mock

from fintrack.core.errors import ClassificationServiceError, DataQualityError, UpstreamServiceError, ValidationError
from fintrack.schemas.statement import ParsedTransaction
from fintrack.services.ai_client import ChatCompletion
from fintrack.services.categories import coerce_category, match_category
from fintrack.services.classifier import build_classification_prompt, classify_transactions, parse_classifications


def _tx(**kwargs) -> ParsedTransaction:
    kwargs.setdefault("date", date(2024, 1, 15))
    return ParsedTransaction(**kwargs)


ATM = _tx(description="ATM WITHDRAWAL", debit=150000)
SALARY = _tx(sender="ACME CORP", description="SALARY", credit=5000000)


def _patched(content: str):
    completion = ChatCompletion(content=content, provider="groq", model="test-model")
    return (
        mock.patch("fintrack.services.classifier.ai_backend_configured", return_value=True),
        mock.patch("fintrack.services.classifier.create_chat_completion", mock.AsyncMock(return_value=completion)),
    )


class CategoryTests(unittest.TestCase):
    def test_match_is_case_insensitive_and_type_scoped(self):
        self.assertEqual(match_category("expense", "food & dining"), "Food & Dining")
        self.assertEqual(match_category("income", "SALARY"), "Salary")
        self.assertIsNone(match_category("expense", "Salary"))
        self.assertIsNone(match_category("income", "Crypto"))

    def test_aliases_and_fallback(self):
        self.assertEqual(match_category("expense", "Ăn uống"), "Food & Dining")
        self.assertEqual(match_category("income", "Lương"), "Salary")
        self.assertEqual(coerce_category("expense", "Khác"), "Other")
        self.assertEqual(coerce_category("expense", "Lương"), "Other")
        self.assertEqual(coerce_category("income", None), "Other")


class ParseClassificationsTests(unittest.TestCase):
    def test_accepts_array_or_wrapped_object(self):
        items = [{"index": 1, "type": "expense", "category": "Shopping"}]
        self.assertEqual(parse_classifications(json.dumps(items))[1]["category"], "Shopping")
        wrapped = json.dumps({"classifications": items})
        self.assertIn(1, parse_classifications(wrapped))

    def test_prompt_bounds_item_text(self):
        tx = _tx(description="X" * 500, debit=10)
        prompt = build_classification_prompt([tx], text_chars=100)
        self.assertNotIn("X" * 101, prompt)
        self.assertIn("Debit: 10", prompt)


class ClassifyTransactionsTests(unittest.IsolatedAsyncioTestCase):
    async def test_debit_is_expense_even_when_model_disagrees(self):
        answer = json.dumps([{"index": 1, "type": "income", "category": "Salary"}])
        backend, completion = _patched(answer)
        with backend, completion, self.assertLogs("fintrack.import", level="WARNING") as logs:
            result = await classify_transactions([ATM])
        tx = result.transactions[0]
        self.assertEqual(tx.type, "expense")
        self.assertEqual(tx.category, "Other")
        self.assertEqual(tx.amount, 150000)
        self.assertTrue(any("classifier_type_overridden" in line for line in logs.output))
        self.assertTrue(any("classifier_category_coerced" in line for line in logs.output))

    async def test_credit_salary_is_income(self):
        answer = json.dumps([{"index": 1, "type": "income", "category": "Salary"}])
        backend, completion = _patched(answer)
        with backend, completion as stub:
            result = await classify_transactions([SALARY])
        tx = result.transactions[0]
        self.assertEqual((tx.type, tx.category, tx.amount), ("income", "Salary", 5000000))
        self.assertEqual(result.mode, "ai")
        self.assertEqual(result.summary.income, 5000000)
        self.assertEqual(result.summary.income_count, 1)
        self.assertFalse(stub.await_args.kwargs["allow_fallback"])
        self.assertEqual(stub.await_args.kwargs["temperature"], 0.1)

    async def test_hallucinated_category_is_coerced(self):
        answer = json.dumps(
            [
                {"index": 1, "type": "expense", "category": "Crypto Losses"},
                {"index": 2, "type": "income", "category": "lương"},
            ]
        )
        backend, completion = _patched(answer)
        with backend, completion:
            result = await classify_transactions([ATM, SALARY])
        self.assertEqual([t.category for t in result.transactions], ["Other", "Salary"])

    async def test_missing_index_defaults_to_fallback(self):
        backend, completion = _patched(json.dumps([{"index": 2, "category": "Salary"}]))
        with backend, completion:
            result = await classify_transactions([ATM, SALARY])
        self.assertEqual(result.transactions[0].category, "Other")
        self.assertEqual(result.transactions[1].category, "Salary")

    async def test_malformed_output_falls_back(self):
        backend, completion = _patched("I think these are mostly groceries.")
        with backend, completion:
            result = await classify_transactions([ATM, SALARY])
        self.assertEqual(result.mode, "fallback")
        self.assertEqual([t.type for t in result.transactions], ["expense", "income"])
        self.assertEqual([t.category for t in result.transactions], ["Other", "Other"])

    async def test_fallback_without_backend_is_deterministic(self):
        stub = mock.AsyncMock()
        with mock.patch("fintrack.services.classifier.ai_backend_configured", return_value=False), mock.patch(
            "fintrack.services.classifier.create_chat_completion", stub
        ):
            first = await classify_transactions([ATM, SALARY])
            second = await classify_transactions([ATM, SALARY])
        stub.assert_not_awaited()
        self.assertEqual(first.mode, "fallback")
        self.assertEqual(first.model_dump(), second.model_dump())

    async def test_upstream_failure_carries_suggestion(self):
        err = UpstreamServiceError(429, "Rate limit reached for model", provider="groq")
        with mock.patch("fintrack.services.classifier.ai_backend_configured", return_value=True), mock.patch(
            "fintrack.services.classifier.create_chat_completion", mock.AsyncMock(side_effect=err)
        ):
            with self.assertRaises(ClassificationServiceError) as ctx:
                await classify_transactions([ATM])
        content = ctx.exception.to_content()
        self.assertEqual(content["status"], 429)
        self.assertIn("429", content["suggestion"])
        self.assertEqual(content["error"], "Failed to classify transactions")

    async def test_rejects_empty_and_ambiguous_input(self):
        with self.assertRaises(ValidationError):
            await classify_transactions([])
        with self.assertRaises(DataQualityError) as ctx:
            await classify_transactions([ATM, _tx(description="BOTH", debit=1, credit=1), _tx(description="NONE")])
        self.assertIn("#2", ctx.exception.details)
        self.assertIn("#3", ctx.exception.details)


if __name__ == "__main__":
    unittest.main()
