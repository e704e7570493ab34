"""
Credit ledger: supplier 余额的唯一事实来源。

写路径只有 record_transaction()：
  1. 锁 supplier 行（select_for_update nowait），拿不到锁按 LEDGER_LOCK_RETRIES 有限重试，
     耗尽后抛 ConflictError(LEDGER_BUSY, retryable=True)，不会无限阻塞
  2. 条件更新 credits = credits + amount（扣减时要求结果 >= 0），这是数据库层面的 CAS，
     不做 "先读余额再写回" 的 read-modify-write
  3. 读回新余额，追加一行 CreditTransaction(balance_after=新余额)
  2、3 在同一个 transaction.atomic() 里，余额和流水永远不会被观察到分开。

Ledger 行不可修改 / 删除，见 models.CreditTransaction。
"""

import logging
import time
from dataclasses import dataclass

from django.conf import settings
from django.db import OperationalError, transaction
from django.db.models import F, Max, Sum

from ..access import require_admin, resolve_supplier_scope
from ..exceptions import ConflictError, NotFoundError, ValidationError
from ..models import CreditTransaction, Supplier

logger = logging.getLogger(__name__)

TRANSACTION_KINDS = ('purchase', 'deduction', 'refund', 'admin_adjustment')

# kind → amount 必须的符号；admin_adjustment 两个方向都可以
_KIND_SIGN = {
    'purchase': 1,
    'refund': 1,
    'deduction': -1,
    'admin_adjustment': 0,
}


@dataclass(frozen=True)
class LedgerEntry:
    new_balance: int
    transaction: CreditTransaction


class _LockUnavailable(Exception):
    pass


def validate_transaction_input(kind, amount, description):
    errors = []

    if kind not in TRANSACTION_KINDS:
        errors.append({'field': 'kind', 'message': f"kind must be one of {', '.join(TRANSACTION_KINDS)}."})

    if isinstance(amount, bool) or not isinstance(amount, int):
        errors.append({'field': 'amount', 'message': 'amount must be an integer.'})
    elif amount == 0:
        errors.append({'field': 'amount', 'message': 'amount must not be zero.'})
    elif kind in _KIND_SIGN:
        sign = _KIND_SIGN[kind]
        if sign > 0 and amount < 0:
            errors.append({'field': 'amount', 'message': f'{kind} amount must be positive.'})
        elif sign < 0 and amount > 0:
            errors.append({'field': 'amount', 'message': f'{kind} amount must be negative.'})

    if not isinstance(description, str) or not description.strip():
        errors.append({'field': 'description', 'message': 'description is required.'})
    elif len(description) > 500:
        errors.append({'field': 'description', 'message': 'description must be at most 500 characters.'})

    if errors:
        raise ValidationError(
            message='Invalid credit transaction.',
            code='INVALID_TRANSACTION',
            detail={'errors': errors},
        )


def _lock_supplier(supplier_id):
    try:
        return Supplier.objects.select_for_update(nowait=True).get(pk=supplier_id)
    except Supplier.DoesNotExist:
        raise NotFoundError(
            message='Supplier not found',
            code='SUPPLIER_NOT_FOUND',
            detail={'supplier_id': str(supplier_id)},
        )
    except OperationalError as exc:
        raise _LockUnavailable(str(exc)) from exc


def _append(supplier, kind, amount, description, rfq, quotation, package, processed_by):
    balance_filter = {'pk': supplier.pk}
    if amount < 0:
        # 扣减后余额不能为负；条件写在 UPDATE 的 WHERE 里
        balance_filter['credits__gte'] = -amount

    updated = Supplier.objects.filter(**balance_filter).update(credits=F('credits') + amount)
    if not updated:
        raise ConflictError(
            message=f"Insufficient credits: balance {supplier.credits}, required {-amount}",
            code='INSUFFICIENT_CREDITS',
            detail={'balance': supplier.credits, 'required': -amount},
        )

    new_balance = Supplier.objects.values_list('credits', flat=True).get(pk=supplier.pk)
    last_sequence = (
        CreditTransaction.objects.filter(supplier_id=supplier.pk)
        .aggregate(last=Max('sequence'))['last']
    ) or 0

    tx = CreditTransaction.objects.create(
        supplier_id=supplier.pk,
        sequence=last_sequence + 1,
        kind=kind,
        amount=amount,
        balance_after=new_balance,
        description=description.strip(),
        rfq=rfq,
        quotation=quotation,
        package=package,
        processed_by=processed_by,
    )
    return LedgerEntry(new_balance=new_balance, transaction=tx)


def record_transaction(supplier_id, kind, amount, description,
                       rfq=None, quotation=None, package=None, processed_by=None):
    """
    追加一条 credit 流水并返回 LedgerEntry(new_balance, transaction)。

    只给内部调用方使用（orchestrator / purchase 确认 / admin 调整），不直接暴露给终端用户。
    可以嵌套在调用方的 transaction.atomic() 里（此时每次尝试是一个 savepoint），
    任何失败都不会留下半条记录。

    Raises:
        ValidationError: kind / amount / description 不合法
        NotFoundError:   supplier 不存在
        ConflictError:   INSUFFICIENT_CREDITS（余额不足）/ LEDGER_BUSY（锁重试耗尽，可重试）
    """
    validate_transaction_input(kind, amount, description)

    attempts = max(1, settings.LEDGER_LOCK_RETRIES)
    for attempt in range(1, attempts + 1):
        try:
            with transaction.atomic():
                supplier = _lock_supplier(supplier_id)
                entry = _append(supplier, kind, amount, description, rfq, quotation, package, processed_by)
        except _LockUnavailable as exc:
            logger.warning(
                "[ledger] supplier=%s row locked (attempt %d/%d): %s",
                supplier_id, attempt, attempts, exc,
            )
            if attempt < attempts:
                time.sleep(settings.LEDGER_LOCK_BACKOFF * attempt)
            continue

        logger.info(
            "[ledger] supplier=%s %s %+d → balance %d",
            supplier_id, kind, amount, entry.new_balance,
        )
        return entry

    raise ConflictError(
        message='Credit ledger is busy for this supplier, please retry.',
        code='LEDGER_BUSY',
        detail={'supplier_id': str(supplier_id), 'retryable': True},
    )


# ── read paths ─────────────────────────────────────────────────────────────

def _get_supplier(supplier_id):
    try:
        return Supplier.objects.get(pk=supplier_id)
    except Supplier.DoesNotExist:
        raise NotFoundError(
            message='Supplier not found',
            code='SUPPLIER_NOT_FOUND',
            detail={'supplier_id': str(supplier_id)},
        )


def get_balance(caller, supplier_id=None):
    supplier = _get_supplier(resolve_supplier_scope(caller, supplier_id))
    return {'supplier_id': supplier.id, 'credits': supplier.credits}


def get_history(caller, supplier_id=None):
    """流水列表，最新的在前。"""
    supplier = _get_supplier(resolve_supplier_scope(caller, supplier_id))
    return list(
        CreditTransaction.objects.filter(supplier=supplier)
        .select_related('package', 'processed_by')
        .order_by('-sequence')
    )


def get_credit_summary(caller, supplier_id=None):
    supplier = _get_supplier(resolve_supplier_scope(caller, supplier_id))
    transactions = CreditTransaction.objects.filter(supplier=supplier)

    purchased = transactions.filter(kind='purchase').aggregate(total=Sum('amount'))['total'] or 0
    spent = transactions.filter(kind='deduction').aggregate(total=Sum('amount'))['total'] or 0
    refunded = transactions.filter(kind='refund').aggregate(total=Sum('amount'))['total'] or 0

    return {
        'supplier_id': supplier.id,
        'credits': supplier.credits,
        'total_purchased': purchased,
        'total_spent': abs(spent),
        'total_refunded': refunded,
        'transaction_count': transactions.count(),
    }


# ── admin ──────────────────────────────────────────────────────────────────

def adjust_credits(caller, supplier_id, amount, reason):
    """Admin 手工调整余额，正数加、负数扣；扣减同样受余额下限约束。"""
    admin = require_admin(caller)

    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError(message='A reason is required for credit adjustments', code='REASON_REQUIRED')

    entry = record_transaction(
        supplier_id=supplier_id,
        kind='admin_adjustment',
        amount=amount,
        description=f"Admin adjustment: {reason.strip()}",
        processed_by=admin,
    )
    logger.info("[ledger] admin=%s adjusted supplier=%s by %+d", admin.id, supplier_id, amount)
    return entry
