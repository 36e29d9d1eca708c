"""Closed category taxonomy, one set per transaction type."""
from __future__ import annotations

FALLBACK_CATEGORY = "Other"

EXPENSE_CATEGORIES: tuple[str, ...] = (
    "Food & Dining",
    "Transportation",
    "Shopping",
    "Entertainment",
    "Education",
    "Healthcare",
    "Housing",
    "Bills & Utilities",
    FALLBACK_CATEGORY,
)

INCOME_CATEGORIES: tuple[str, ...] = (
    "Salary",
    "Bonus",
    "Investment",
    "Sales",
    "Freelance",
    FALLBACK_CATEGORY,
)

# Vietnamese labels used by earlier versions of the app and by statements.
CATEGORY_ALIASES: dict[str, str] = {
    "ăn uống": "Food & Dining",
    "di chuyển": "Transportation",
    "mua sắm": "Shopping",
    "giải trí": "Entertainment",
    "học tập": "Education",
    "y tế": "Healthcare",
    "nhà cửa": "Housing",
    "hóa đơn": "Bills & Utilities",
    "lương": "Salary",
    "thưởng": "Bonus",
    "đầu tư": "Investment",
    "bán hàng": "Sales",
    "khác": FALLBACK_CATEGORY,
}


def categories_for(tx_type: str) -> tuple[str, ...]:
    return INCOME_CATEGORIES if tx_type == "income" else EXPENSE_CATEGORIES


def match_category(tx_type: str, value: object) -> str | None:
    """Canonical taxonomy label for `value` under `tx_type`, or None when it is not a member."""
    if not isinstance(value, str):
        return None
    key = " ".join(value.split()).casefold()
    if not key:
        return None
    allowed = categories_for(tx_type)
    for name in allowed:
        if name.casefold() == key:
            return name
    alias = CATEGORY_ALIASES.get(key)
    if alias in allowed:
        return alias
    return None


def coerce_category(tx_type: str, value: object) -> str:
    return match_category(tx_type, value) or FALLBACK_CATEGORY
