"""
Credit purchase state machine.

    selected ──checkout_started──▶ payment_pending ──payment_confirmed──▶ confirmed
        │                               │
        └─────────payment_failed────────┴──────────────▶ failed

"选了套餐" 和 "发了 credits" 是两个不同状态：只有 confirmed 这一步调用 record_transaction，
由外部支付确认事件驱动。上游支付网关保证确认事件的幂等重放，
所以对已 confirmed 的 purchase 再确认一次直接返回原结果，不会重复加 credits。
"""

import logging
from dataclasses import dataclass

from django.db import IntegrityError, transaction
from django.utils import timezone

from ..access import require_supplier_member
from ..exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..locking import lock_row
from ..models import CreditPackage, CreditPurchase
from .service import record_transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PurchaseResult:
    purchase: CreditPurchase
    new_balance: int
    credits_added: int
    replayed: bool = False


def _invalid_transition(purchase, target):
    return ConflictError(
        message=f"Cannot move purchase from {purchase.status} to {target}",
        code='INVALID_PURCHASE_TRANSITION',
        detail={'purchase_id': str(purchase.id), 'status': purchase.status, 'target': target},
    )


def _require_reference(payment_reference):
    if not isinstance(payment_reference, str) or not payment_reference.strip():
        raise ValidationError(message='payment_reference is required', code='PAYMENT_REFERENCE_REQUIRED')
    return payment_reference.strip()


def initiate_purchase(caller, package_id):
    """
    Supplier 选择套餐。只创建 selected 状态的 purchase 并返回价格信息，不碰余额。
    """
    supplier = require_supplier_member(caller)

    if caller.verification_status != 'approved' or supplier.verification_status != 'approved':
        raise ForbiddenError(
            message='Your account must be verified before purchasing credits',
            code='SUPPLIER_NOT_APPROVED',
        )

    package = CreditPackage.objects.filter(pk=package_id, is_active=True).first()
    if package is None:
        raise NotFoundError(
            message='Credit package not found or inactive',
            code='PACKAGE_NOT_FOUND',
            detail={'package_id': str(package_id)},
        )

    purchase = CreditPurchase.objects.create(
        supplier=supplier,
        package=package,
        credits=package.credits,
        price_kes=package.price_kes,
        initiated_by=caller,
    )
    logger.info(
        "[purchase] supplier=%s selected package=%s (%d credits, KES %d) purchase=%s",
        supplier.id, package.id, package.credits, package.price_kes, purchase.id,
    )
    return purchase


def _lock_by_id(purchase_id):
    return lock_row(
        CreditPurchase.objects.all(),
        NotFoundError(
            message='Credit purchase not found',
            code='PURCHASE_NOT_FOUND',
            detail={'purchase_id': str(purchase_id)},
        ),
        pk=purchase_id,
    )


def _lock_by_reference(payment_reference):
    return lock_row(
        CreditPurchase.objects.all(),
        NotFoundError(
            message='No purchase matches this payment reference',
            code='PURCHASE_NOT_FOUND',
            detail={'payment_reference': payment_reference},
        ),
        payment_reference=payment_reference,
    )


def mark_payment_pending(purchase_id, payment_reference):
    """外部 checkout 已创建，把支付流水号挂到 purchase 上。"""
    payment_reference = _require_reference(payment_reference)

    try:
        with transaction.atomic():
            purchase = _lock_by_id(purchase_id)

            if purchase.status == 'payment_pending' and purchase.payment_reference == payment_reference:
                return purchase
            if purchase.status != 'selected':
                raise _invalid_transition(purchase, 'payment_pending')

            purchase.status = 'payment_pending'
            purchase.payment_reference = payment_reference
            purchase.save(update_fields=['status', 'payment_reference', 'updated_at'])
    except IntegrityError:
        raise ConflictError(
            message='Payment reference already used by another purchase',
            code='DUPLICATE_PAYMENT_REFERENCE',
            detail={'payment_reference': payment_reference},
        )

    logger.info("[purchase] purchase=%s payment pending ref=%s", purchase.id, payment_reference)
    return purchase


def confirm_purchase(payment_reference):
    """
    支付成功：唯一写 ledger 的状态转换。purchase 行锁 + ledger 写入在同一个事务里。
    """
    payment_reference = _require_reference(payment_reference)

    with transaction.atomic():
        purchase = _lock_by_reference(payment_reference)

        if purchase.status == 'confirmed':
            logger.info("[purchase] purchase=%s already confirmed, replay ignored", purchase.id)
            return PurchaseResult(
                purchase=purchase,
                new_balance=purchase.transaction.balance_after,
                credits_added=purchase.credits,
                replayed=True,
            )
        if purchase.status != 'payment_pending':
            raise _invalid_transition(purchase, 'confirmed')

        package = purchase.package
        entry = record_transaction(
            supplier_id=purchase.supplier_id,
            kind='purchase',
            amount=purchase.credits,
            description=f"Purchased {package.name} ({purchase.credits} credits for KES {purchase.price_kes})",
            package=package,
            processed_by=purchase.initiated_by,
        )

        purchase.status = 'confirmed'
        purchase.transaction = entry.transaction
        purchase.confirmed_at = timezone.now()
        purchase.save(update_fields=['status', 'transaction', 'confirmed_at', 'updated_at'])

    logger.info(
        "[purchase] purchase=%s confirmed, +%d credits → balance %d",
        purchase.id, purchase.credits, entry.new_balance,
    )
    return PurchaseResult(purchase=purchase, new_balance=entry.new_balance, credits_added=purchase.credits)


def fail_purchase(payment_reference=None, reason='', purchase_id=None):
    """checkout 之前放弃的 purchase 还没有支付流水号，可以用 purchase_id 定位。"""
    if purchase_id is None:
        payment_reference = _require_reference(payment_reference)

    with transaction.atomic():
        if purchase_id is not None:
            purchase = _lock_by_id(purchase_id)
        else:
            purchase = _lock_by_reference(payment_reference)

        if purchase.status == 'failed':
            return purchase
        if purchase.status not in ('selected', 'payment_pending'):
            raise _invalid_transition(purchase, 'failed')

        purchase.status = 'failed'
        purchase.failure_reason = reason or ''
        purchase.save(update_fields=['status', 'failure_reason', 'updated_at'])

    logger.warning("[purchase] purchase=%s failed: %s", purchase.id, reason or 'no reason given')
    return purchase
