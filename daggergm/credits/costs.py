"""Credit costs per action and the credit packages sold through Stripe."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional


class CreditType(str, Enum):
    ADVENTURE = "adventure"
    EXPANSION = "expansion"
    EXPORT = "export"


CREDIT_COSTS: Dict[CreditType, int] = {
    CreditType.ADVENTURE: 1,
    CreditType.EXPANSION: 1,
    CreditType.EXPORT: 0,
}


def get_credit_cost(credit_type: CreditType) -> int:
    return CREDIT_COSTS[CreditType(credit_type)]


@dataclass(frozen=True)
class CreditPackage:
    """A one-time purchasable bundle of credits."""

    id: str
    name: str
    credits: int
    price_cents: int

    @property
    def price_per_credit_cents(self) -> float:
        return round(self.price_cents / self.credits, 2)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "credits": self.credits,
            "price_cents": self.price_cents,
            "price_per_credit_cents": self.price_per_credit_cents,
        }


CREDIT_PACKAGES: Dict[str, CreditPackage] = {
    "credits_5": CreditPackage(id="credits_5", name="5 Adventure Credits", credits=5, price_cents=500),
    "credits_15": CreditPackage(id="credits_15", name="15 Adventure Credits", credits=15, price_cents=1200),
    "credits_30": CreditPackage(id="credits_30", name="30 Adventure Credits", credits=30, price_cents=2100),
}


def get_credit_package(package_id: str) -> Optional[CreditPackage]:
    return CREDIT_PACKAGES.get(package_id)


def list_credit_packages() -> List[CreditPackage]:
    return sorted(CREDIT_PACKAGES.values(), key=lambda package: package.credits)
