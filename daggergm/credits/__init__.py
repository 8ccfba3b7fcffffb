"""Per-user credit balances, costs and purchasable packages."""

from daggergm.credits.costs import (
    CREDIT_COSTS,
    CREDIT_PACKAGES,
    CreditPackage,
    CreditType,
    get_credit_cost,
    get_credit_package,
    list_credit_packages,
)
from daggergm.credits.ledger import CreditLedger
from daggergm.credits.models import (
    CreditAddResult,
    CreditConsumptionResult,
    CreditRefundResult,
    CreditTransaction,
    TransactionType,
)
from daggergm.credits.store import CreditStore, InMemoryCreditStore, SupabaseCreditStore

__all__ = [
    "CREDIT_COSTS",
    "CREDIT_PACKAGES",
    "CreditAddResult",
    "CreditConsumptionResult",
    "CreditLedger",
    "CreditPackage",
    "CreditRefundResult",
    "CreditStore",
    "CreditTransaction",
    "CreditType",
    "InMemoryCreditStore",
    "SupabaseCreditStore",
    "TransactionType",
    "get_credit_cost",
    "get_credit_package",
    "list_credit_packages",
]
