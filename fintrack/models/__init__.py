from fintrack.models.budget import Budget
from fintrack.models.push_subscription import PushSubscription
from fintrack.models.saving import Saving, SavingType
from fintrack.models.transaction import Transaction
from fintrack.models.user import User

__all__ = [
    "Budget",
    "PushSubscription",
    "Saving",
    "SavingType",
    "Transaction",
    "User",
]
