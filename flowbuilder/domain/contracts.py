from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple


@dataclass(frozen=True)
class ServiceOutput:
    payload: Dict[str, Any]
    status_code: int = 200


@dataclass(frozen=True)
class MaterialLine:
    material_id: int
    quantity: float


@dataclass(frozen=True)
class QuoteLine:
    material_id: int
    price: float
    quantity: float
    discount_rate: float = 0.0
    external_ref: str | None = None

    @property
    def total_price(self) -> float:
        return round(self.price * self.quantity, 4)

    @property
    def original_unit_price(self) -> float:
        # price is the net unit price; the list price is recovered from the discount.
        if self.discount_rate <= 0:
            return self.price
        return round(self.price / (1 - self.discount_rate / 100.0), 4)


@dataclass(frozen=True)
class RfqInput:
    name: str
    deadline: str
    materials: Tuple[MaterialLine, ...]
    suppliers: Tuple[int, ...]
    description: str | None = None


@dataclass(frozen=True)
class QuoteInput:
    duration: int
    items: Tuple[QuoteLine, ...]
    notes: str | None = None


@dataclass(frozen=True)
class AuthLoginInput:
    email: str
    password: str


@dataclass(frozen=True)
class AuthRegisterInput:
    company_name: str
    name: str
    email: str
    password: str


@dataclass(frozen=True)
class SupplierCreateInput:
    name: str
    contact_name: str
    email: str
    address: str | None = None
    phone: str | None = None
    trade_specialty: str | None = None
    description: str | None = None
    notes: str | None = None
