"""
Domain events: fan-out engine 唯一认识的输入格式。

Orchestrator / verification cascade / ledger 调用方构造这些对象交给 notify()，
engine 只负责算收件人 + 套模板，不做其他业务判断。
构造时做 payload 校验，非法 payload 在任何写入之前抛 ValidationError。
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

from ..exceptions import ValidationError


def _require_choice(field_name: str, value: str, choices: tuple) -> None:
    if value not in choices:
        raise ValidationError(
            message=f"{field_name} must be one of {', '.join(choices)}.",
            code='INVALID_EVENT_PAYLOAD',
            detail={'field': field_name, 'value': value},
        )


@dataclass(frozen=True)
class NewRFQ:
    rfq_id: Any
    category_id: Any
    product_name: str
    hospital_name: str


@dataclass(frozen=True)
class QuotationSubmitted:
    quotation_id: Any
    rfq_id: Any
    hospital_id: Any
    supplier_name: str
    product_name: str
    total_price: Decimal

    def __post_init__(self):
        try:
            price = Decimal(str(self.total_price))
        except InvalidOperation:
            price = None
        if price is None or not price.is_finite() or price <= 0:
            raise ValidationError(
                message='total_price must be a positive number.',
                code='INVALID_EVENT_PAYLOAD',
                detail={'field': 'total_price', 'value': str(self.total_price)},
            )


@dataclass(frozen=True)
class QuotationStatusChanged:
    quotation_id: Any
    supplier_id: Any
    status: str          # accepted / rejected
    hospital_name: str
    product_name: str

    def __post_init__(self):
        _require_choice('status', self.status, ('accepted', 'rejected'))


@dataclass(frozen=True)
class VerificationDecided:
    identity_id: Any
    outcome: str         # approved / rejected
    organization_name: str
    organization_kind: str = 'supplier'
    reason: Optional[str] = None

    def __post_init__(self):
        _require_choice('outcome', self.outcome, ('approved', 'rejected'))
        _require_choice('organization_kind', self.organization_kind, ('hospital', 'supplier'))


@dataclass(frozen=True)
class RFQClosed:
    rfq_id: Any
    product_name: str
    hospital_name: str


@dataclass(frozen=True)
class LowCredits:
    supplier_id: Any
    balance: int


DomainEvent = Union[
    NewRFQ,
    QuotationSubmitted,
    QuotationStatusChanged,
    VerificationDecided,
    RFQClosed,
    LowCredits,
]
