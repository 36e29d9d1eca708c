"""Period statistics and the short AI summary shown on the dashboard."""
from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fintrack.models.transaction import Transaction
from fintrack.schemas.ai import AnalysisResponse, AnalysisStats, CategoryAmount, IncomeStability
from fintrack.services.ai_client import create_chat_completion

ADVICE_TEMPERATURE = 0.7
STABLE_INCOME_MAX_CV = 20.0

ANALYSIS_SYSTEM_PROMPT = "You are a personal finance advisor. Answer VERY briefly, in exactly 3 easy sentences."


@dataclass
class PeriodStats:
    income: float = 0.0
    expense: float = 0.0
    top_expense_categories: list[tuple[str, float]] = field(default_factory=list)
    income_stability: IncomeStability | None = None

    @property
    def balance(self) -> float:
        return self.income - self.expense

    @property
    def savings_rate(self) -> str:
        if self.income <= 0:
            return "0.0"
        return f"{self.balance / self.income * 100:.1f}"


def analysis_window(today: date) -> tuple[str, date, str]:
    """Monthly review of the previous month on the 1st, otherwise the last 7 days."""
    if today.day == 1:
        last_month = today - timedelta(days=1)
        return "monthly", last_month.replace(day=1), "last month"
    return "weekly", today - timedelta(days=7), "the last 7 days"


def income_stability(amounts: list[float]) -> IncomeStability | None:
    """Coefficient of variation of income amounts; None with fewer than two records."""
    if len(amounts) < 2:
        return None
    avg = sum(amounts) / len(amounts)
    variance = sum((a - avg) ** 2 for a in amounts) / len(amounts)
    cv = math.sqrt(variance) / avg * 100 if avg > 0 else 0.0
    return IncomeStability(is_stable=cv <= STABLE_INCOME_MAX_CV, variance_percent=f"{cv:.1f}")


def compute_stats(transactions: list[Transaction], top: int = 5) -> PeriodStats:
    stats = PeriodStats()
    by_category: dict[str, float] = defaultdict(float)
    incomes: list[float] = []
    for t in transactions:
        amount = float(t.amount)
        if t.type == "income":
            stats.income += amount
            incomes.append(amount)
        else:
            stats.expense += amount
            by_category[t.category] += amount
    stats.top_expense_categories = sorted(by_category.items(), key=lambda kv: kv[1], reverse=True)[:top]
    stats.income_stability = income_stability(incomes)
    return stats


def _money(value: float) -> str:
    return f"{value:,.0f}"


def build_analysis_prompt(stats: PeriodStats, period_label: str) -> str:
    top = "\n".join(f"- {c}: {_money(a)}" for c, a in stats.top_expense_categories[:3]) or "- (no expenses)"
    return f"""Financial review for {period_label}:

Data:
- Income: {_money(stats.income)}
- Expenses: {_money(stats.expense)}
- Balance: {_money(stats.balance)}
- Savings rate: {stats.savings_rate}%

Top expenses:
{top}

Give a VERY short review in exactly 3 sentences:
1. Overall assessment of the financial situation (1 sentence)
2. Comment on the most notable spending (1 sentence)
3. One short piece of advice (1 sentence)

Plain text only, no markdown."""


def _response(summary: str, stats: PeriodStats, period_label: str, mode: str) -> AnalysisResponse:
    return AnalysisResponse(
        summary=summary,
        stats=AnalysisStats(
            income=stats.income,
            expense=stats.expense,
            balance=stats.balance,
            savings_rate=stats.savings_rate,
        ),
        top_expense_categories=[CategoryAmount(category=c, amount=a) for c, a in stats.top_expense_categories],
        income_stability=stats.income_stability,
        period=period_label,
        analysis_mode=mode,
    )


async def analyze_finances(db: Session, owner_id: UUID, today: date | None = None) -> AnalysisResponse:
    mode, start, period_label = analysis_window(today or date.today())
    rows = (
        db.execute(
            select(Transaction)
            .where(Transaction.user_id == owner_id, Transaction.date >= start)
            .order_by(Transaction.date.desc())
        )
        .scalars()
        .all()
    )
    stats = compute_stats(list(rows))
    if not rows:
        return _response(
            f"No transactions in {period_label}. Add some transactions to get AI insights!",
            stats,
            period_label,
            mode,
        )
    completion = await create_chat_completion(
        [{"role": "user", "content": build_analysis_prompt(stats, period_label)}],
        temperature=ADVICE_TEMPERATURE,
        system_message=ANALYSIS_SYSTEM_PROMPT,
    )
    summary = completion.content or "Could not generate an analysis right now."
    return _response(summary, stats, period_label, mode)
