"""
Assign income/expense type and a taxonomy category to parsed statement rows.

The model's answer is advisory. The type always comes from the debit/credit
sign and categories outside the taxonomy of that type are replaced with the
fallback category.
"""
from __future__ import annotations

import logging
from typing import Any

from fintrack.core.ai_runtime import ai_backend_configured
from fintrack.core.errors import (
    ClassificationServiceError,
    DataQualityError,
    UpstreamServiceError,
    ValidationError,
    suggestion_for_status,
)
from fintrack.core.config import settings
from fintrack.schemas.statement import (
    ClassificationResult,
    ClassificationSummary,
    ClassifiedTransaction,
    ParsedTransaction,
)
from fintrack.services.ai_client import create_chat_completion
from fintrack.services.categories import EXPENSE_CATEGORIES, FALLBACK_CATEGORY, INCOME_CATEGORIES, match_category
from fintrack.services.json_payload import ModelOutputError, decode_model_json

logger = logging.getLogger("fintrack.import")

CLASSIFY_TEMPERATURE = 0.1
CLASSIFY_SUGGESTION = "Please try again later or check the submitted data."

CLASSIFY_SYSTEM_PROMPT = (
    "You are a financial transaction classifier. You MUST be 100% accurate. Debit = expense, Credit = income. "
    "You MUST ONLY use categories from the provided list - never create new ones. "
    f'If unsure, use "{FALLBACK_CATEGORY}". Always respond with valid JSON only.'
)


def resolve_type(tx: ParsedTransaction) -> str:
    return "expense" if tx.debit > 0 else "income"


def _clip(text: str, limit: int) -> str:
    text = " ".join((text or "").split())
    return text if len(text) <= limit else text[: limit - 1] + "…"


def build_classification_prompt(transactions: list[ParsedTransaction], text_chars: int) -> str:
    lines = []
    for idx, tx in enumerate(transactions, start=1):
        side = f"Debit: {tx.debit:g}" if tx.debit > 0 else f"Credit: {tx.credit:g}"
        lines.append(
            f"{idx}. Date: {tx.date.isoformat()}, Sender: {_clip(tx.sender, text_chars)}, "
            f"Description: {_clip(tx.description, text_chars)}, {side}"
        )
    listing = "\n".join(lines)
    return f"""Classify the following bank transactions as accurately as possible.

TYPE RULES (never break them):
- "Debit" (debit > 0) is ALWAYS an expense: money left the account.
- "Credit" (credit > 0) is ALWAYS income: money entered the account.

Typical expenses: purchases, services, transfers to other people, ATM withdrawals, bills, food, transport, entertainment.
Typical income: salary, transfers received, refunds, interest, investment returns, sales.

ALLOWED CATEGORIES - choose ONLY from these lists, copy the label exactly:
Expense categories: {", ".join(EXPENSE_CATEGORIES)}
Income categories: {", ".join(INCOME_CATEGORIES)}
If unsure, use "{FALLBACK_CATEGORY}".

Transactions:
{listing}

Return a JSON array only, one item per transaction:
[
  {{"index": 1, "type": "income" or "expense", "category": "one label from the lists above"}}
]"""


def parse_classifications(content: str) -> dict[int, dict[str, Any]]:
    """Map 1-based transaction index -> {type, category} from the model output."""
    data = decode_model_json(content)
    if isinstance(data, dict):
        data = data.get("classifications") or data.get("transactions") or data.get("results")
    if not isinstance(data, list):
        raise ModelOutputError("Classification output must be a JSON array.")
    out: dict[int, dict[str, Any]] = {}
    for item in data:
        if not isinstance(item, dict):
            continue
        try:
            index = int(item.get("index"))
        except (TypeError, ValueError):
            continue
        out[index] = item
    return out


def merge_classifications(
    transactions: list[ParsedTransaction], classifications: dict[int, dict[str, Any]]
) -> list[ClassifiedTransaction]:
    merged: list[ClassifiedTransaction] = []
    for idx, tx in enumerate(transactions, start=1):
        tx_type = resolve_type(tx)
        hint = classifications.get(idx) or {}
        suggested_type = str(hint.get("type") or "").strip().lower()
        if suggested_type and suggested_type != tx_type:
            logger.warning("classifier_type_overridden index=%s suggested=%s resolved=%s", idx, suggested_type, tx_type)
        raw_category = hint.get("category")
        category = match_category(tx_type, raw_category)
        if category is None:
            if raw_category:
                logger.warning(
                    "classifier_category_coerced index=%s type=%s category=%r fallback=%s",
                    idx,
                    tx_type,
                    raw_category,
                    FALLBACK_CATEGORY,
                )
            category = FALLBACK_CATEGORY
        merged.append(
            ClassifiedTransaction(
                **tx.model_dump(),
                type=tx_type,
                category=category,
                amount=tx.debit if tx.debit > 0 else tx.credit,
                is_valid=True,
            )
        )
    return merged


def summarize(transactions: list[ClassifiedTransaction]) -> ClassificationSummary:
    income = [t for t in transactions if t.type == "income"]
    expense = [t for t in transactions if t.type == "expense"]
    return ClassificationSummary(
        total=len(transactions),
        income=sum(t.amount for t in income),
        expense=sum(t.amount for t in expense),
        income_count=len(income),
        expense_count=len(expense),
    )


def _check_input(transactions: list[ParsedTransaction]) -> None:
    if not transactions:
        raise ValidationError("No transactions provided")
    defects = [f"#{i} ({d})" for i, tx in enumerate(transactions, start=1) if (d := tx.exclusivity_defect())]
    if defects:
        raise DataQualityError(
            "Each transaction needs exactly one non-zero debit or credit amount. Invalid rows: " + ", ".join(defects[:20])
        )


async def classify_transactions(transactions: list[ParsedTransaction]) -> ClassificationResult:
    _check_input(transactions)
    classifications: dict[int, dict[str, Any]] = {}
    mode = "ai"
    if not ai_backend_configured():
        logger.warning("classifier_fallback reason=no_backend count=%s", len(transactions))
        mode = "fallback"
    else:
        prompt = build_classification_prompt(transactions, settings.classify_text_chars)
        try:
            completion = await create_chat_completion(
                [{"role": "user", "content": prompt}],
                temperature=CLASSIFY_TEMPERATURE,
                system_message=CLASSIFY_SYSTEM_PROMPT,
                allow_fallback=False,
            )
        except UpstreamServiceError as e:
            raise ClassificationServiceError(
                e.status_code,
                e.details,
                suggestion=suggestion_for_status(e.status_code, CLASSIFY_SUGGESTION),
                provider=e.provider,
            ) from e
        try:
            classifications = parse_classifications(completion.content)
        except ModelOutputError:
            logger.warning(
                "classifier_fallback reason=malformed_output provider=%s raw=%r",
                completion.provider,
                completion.content[:200],
            )
            mode = "fallback"
    merged = merge_classifications(transactions, classifications)
    logger.info("classified count=%s mode=%s", len(merged), mode)
    return ClassificationResult(transactions=merged, summary=summarize(merged), mode=mode)
