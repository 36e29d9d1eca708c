"""Free-form financial advice chat grounded on the user's recent records."""
from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fintrack.core.errors import ValidationError
from fintrack.models.budget import Budget
from fintrack.models.transaction import Transaction
from fintrack.schemas.ai import ChatResponse
from fintrack.services.ai_client import create_chat_completion

CHAT_TEMPERATURE = 0.7
CONTEXT_DAYS = 90
CONTEXT_LIMIT = 100

FINANCIAL_ADVISOR_PROMPT = """You are a smart and friendly personal finance advisor.
Your job is to:
- Analyse the user's transactions and budgets
- Give sensible, specific and easy to understand financial advice
- Help the user manage spending more effectively
- Answer in the user's language, in a friendly and professional tone

Always:
- Base your answer on the user's actual data
- Quote concrete numbers when analysing
- Explain clearly and simply
- Encourage good financial habits
- Suggest concrete actions

Avoid:
- Generic advice
- Unnecessary jargon
- Negative judgement
"""


def build_context(transactions: list[Transaction], budget_count: int) -> str:
    if not transactions:
        return ""
    monthly: dict[str, dict[str, float]] = defaultdict(lambda: {"income": 0.0, "expense": 0.0})
    by_category: dict[str, float] = defaultdict(float)
    for t in transactions:
        key = t.date.strftime("%B %Y")
        amount = float(t.amount)
        if t.type == "income":
            monthly[key]["income"] += amount
        else:
            monthly[key]["expense"] += amount
            by_category[t.category] += amount
    months = "\n".join(
        f"{month}:\n  - Income: {s['income']:,.0f}\n  - Expenses: {s['expense']:,.0f}\n"
        f"  - Remaining: {s['income'] - s['expense']:,.0f}"
        for month, s in monthly.items()
    )
    categories = "\n".join(
        f"- {c}: {a:,.0f}" for c, a in sorted(by_category.items(), key=lambda kv: kv[1], reverse=True)
    )
    return f"""USER FINANCIAL DATA (last 3 months):

Monthly totals:
{months}

Expenses by category:
{categories or "- (none)"}

Budgets set: {budget_count} categories

Answer the user's question based on the data above."""


async def chat_with_advisor(db: Session, owner_id: UUID, message: str, today: date | None = None) -> ChatResponse:
    message = (message or "").strip()
    if not message:
        raise ValidationError("Message is required")
    since = (today or date.today()) - timedelta(days=CONTEXT_DAYS)
    transactions = (
        db.execute(
            select(Transaction)
            .where(Transaction.user_id == owner_id, Transaction.date >= since)
            .order_by(Transaction.date.desc())
            .limit(CONTEXT_LIMIT)
        )
        .scalars()
        .all()
    )
    budget_count = db.execute(select(func.count(Budget.id)).where(Budget.user_id == owner_id)).scalar() or 0
    context = build_context(list(transactions), budget_count)
    messages = []
    if context:
        messages.append({"role": "system", "content": context})
    messages.append({"role": "user", "content": message})
    completion = await create_chat_completion(
        messages,
        temperature=CHAT_TEMPERATURE,
        system_message=FINANCIAL_ADVISOR_PROMPT,
    )
    return ChatResponse(
        response=completion.content or "Sorry, I cannot answer right now.",
        usage=completion.usage,
    )
