"""
RFQ / Quotation orchestrator.

CRUD 本身很薄，重点是它发出的领域事件：
- create_rfq           → NewRFQ
- submit_quotation     → ledger deduction + QuotationSubmitted (+ LowCredits)
- withdraw_quotation   → ledger refund
- decide_quotation     → QuotationStatusChanged
- update_rfq_status    → RFQClosed（关闭时）

每个入口一个 transaction.atomic()：扣 credit 失败时报价本身也不会留下。
View 层不需要处理异常，exception_handler 统一兜底。
"""

import logging
import uuid
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Sum

from .access import require_hospital_member, require_supplier_member
from .exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from .ledger import record_transaction
from .locking import lock_row
from .models import RFQ, Category, CreditTransaction, Quotation
from .notifications import (
    LowCredits,
    NewRFQ,
    QuotationStatusChanged,
    QuotationSubmitted,
    RFQClosed,
    notify,
)

logger = logging.getLogger(__name__)

URGENCY_LEVELS = ('standard', 'urgent', 'emergency')
RFQ_STATUSES = ('open', 'closed', 'fulfilled')
CENT = Decimal('0.01')
# PositiveIntegerField 在所有后端上的安全上限
MAX_QUANTITY = 2147483647


# ── validation helpers ─────────────────────────────────────────────────────

def _raise_if_errors(errors, message):
    if errors:
        raise ValidationError(message=message, code='VALIDATION_ERROR', detail={'errors': errors})


def _required_text(data, field_name, errors, max_length=None):
    value = data.get(field_name)
    if not isinstance(value, str) or not value.strip():
        errors.append({'field': field_name, 'message': f'{field_name} is required.'})
        return None
    value = value.strip()
    if max_length and len(value) > max_length:
        errors.append({'field': field_name, 'message': f'{field_name} must be at most {max_length} characters.'})
    return value


def _decimal_limit(model, field_name):
    """DecimalField 能存的上限（不含）：max_digits=12, decimal_places=2 → 10**10。"""
    model_field = model._meta.get_field(field_name)
    return Decimal(10) ** (model_field.max_digits - model_field.decimal_places)


def _positive_decimal(data, field_name, errors, limit):
    """解析金额：至少 0.01，quantize 后必须能存进对应的 DecimalField。"""
    raw = data.get(field_name)
    value = None
    if not isinstance(raw, bool):
        try:
            value = Decimal(str(raw))
        except InvalidOperation:
            value = None

    if value is None or not value.is_finite():
        errors.append({'field': field_name, 'message': f'{field_name} must be a number.'})
        return None
    if value >= limit:
        errors.append({'field': field_name, 'message': f'{field_name} must be less than {limit}.'})
        return None

    value = value.quantize(CENT)
    if value < CENT:
        errors.append({'field': field_name, 'message': f'{field_name} must be at least {CENT}.'})
        return None
    if value >= limit:
        # 9999999999.999 这类值 quantize 后会进位到上限
        errors.append({'field': field_name, 'message': f'{field_name} must be less than {limit}.'})
        return None
    return value


def _uuid_value(data, field_name, errors):
    raw = data.get(field_name)
    if raw in (None, ''):
        errors.append({'field': field_name, 'message': f'{field_name} is required.'})
        return None
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        errors.append({'field': field_name, 'message': f'{field_name} must be a valid UUID.'})
        return None


# ── RFQ ────────────────────────────────────────────────────────────────────

def create_rfq(caller, data):
    """医院发布 RFQ，通知该分类下所有已审核、启用的 supplier。"""
    hospital = require_hospital_member(caller)

    if hospital.verification_status != 'approved':
        raise ForbiddenError(
            message='Your hospital account must be approved before creating RFQs',
            code='HOSPITAL_NOT_APPROVED',
        )

    errors = []
    product_name = _required_text(data, 'product_name', errors, max_length=200)
    unit = _required_text(data, 'unit', errors, max_length=50)
    delivery_location = _required_text(data, 'delivery_location', errors, max_length=300)

    quantity = data.get('quantity')
    if isinstance(quantity, bool) or not isinstance(quantity, int) or not 0 < quantity <= MAX_QUANTITY:
        errors.append({'field': 'quantity', 'message': f'quantity must be an integer between 1 and {MAX_QUANTITY}.'})

    urgency = data.get('urgency', 'standard')
    if urgency not in URGENCY_LEVELS:
        errors.append({'field': 'urgency', 'message': f"urgency must be one of {', '.join(URGENCY_LEVELS)}."})

    category_id = _uuid_value(data, 'category_id', errors)
    _raise_if_errors(errors, 'RFQ validation failed.')

    category = Category.objects.filter(pk=category_id, is_active=True).first()
    if category is None:
        raise NotFoundError(
            message='Category not found or inactive',
            code='CATEGORY_NOT_FOUND',
            detail={'category_id': str(category_id)},
        )

    with transaction.atomic():
        rfq = RFQ.objects.create(
            hospital=hospital,
            category=category,
            product_name=product_name,
            quantity=quantity,
            unit=unit,
            delivery_location=delivery_location,
            urgency=urgency,
            specifications=(data.get('specifications') or '').strip(),
            created_by=caller,
        )
        notify(NewRFQ(
            rfq_id=rfq.id,
            category_id=category.id,
            product_name=rfq.product_name,
            hospital_name=hospital.name,
        ))

    logger.info("[rfq] hospital=%s created rfq=%s in category=%s", hospital.id, rfq.id, category.id)
    return rfq


def _get_rfq_for_update(rfq_id):
    return lock_row(
        RFQ.objects.all(),
        NotFoundError(message='RFQ not found', code='RFQ_NOT_FOUND', detail={'rfq_id': str(rfq_id)}),
        pk=rfq_id,
    )


def update_rfq_status(caller, rfq_id, status):
    hospital = require_hospital_member(caller)

    if status not in RFQ_STATUSES:
        raise ValidationError(
            message=f"status must be one of {', '.join(RFQ_STATUSES)}.",
            code='INVALID_RFQ_STATUS',
        )

    with transaction.atomic():
        rfq = _get_rfq_for_update(rfq_id)
        if rfq.hospital_id != hospital.id:
            raise ForbiddenError(message="You can only update your hospital's RFQs", code='NOT_OWNER')

        previous = rfq.status
        if previous == status:
            return rfq

        rfq.status = status
        rfq.save(update_fields=['status'])

        if status == 'closed':
            notify(RFQClosed(
                rfq_id=rfq.id,
                product_name=rfq.product_name,
                hospital_name=rfq.hospital.name,
            ))

    logger.info("[rfq] rfq=%s status %s → %s", rfq.id, previous, status)
    return rfq


# ── Quotation ──────────────────────────────────────────────────────────────

def submit_quotation(caller, rfq_id, data):
    """
    Supplier 报价。报价 + 扣 credit + 通知医院 在同一个事务里。

    Raises:
        ForbiddenError:  不是 supplier / supplier 未审核或被停用
        NotFoundError:   RFQ 不存在
        ConflictError:   RFQ 已关闭 / 已经报过价 / 余额不足 / ledger 忙
        ValidationError: 价格等输入不合法
    """
    supplier = require_supplier_member(caller)

    if supplier.verification_status != 'approved' or not supplier.is_active:
        raise ForbiddenError(
            message='Your supplier account must be approved and active to submit quotations',
            code='SUPPLIER_NOT_APPROVED',
        )

    errors = []
    unit_price = _positive_decimal(data, 'unit_price', errors, _decimal_limit(Quotation, 'unit_price'))
    _raise_if_errors(errors, 'Quotation validation failed.')

    cost = settings.QUOTATION_CREDIT_COST

    try:
        with transaction.atomic():
            rfq = _get_rfq_for_update(rfq_id)
            if rfq.status != 'open':
                raise ConflictError(
                    message='This RFQ is no longer accepting quotations',
                    code='RFQ_NOT_OPEN',
                    detail={'rfq_id': str(rfq.id), 'status': rfq.status},
                )
            if Quotation.objects.filter(rfq=rfq, supplier=supplier).exists():
                raise ConflictError(
                    message='You have already submitted a quotation for this RFQ',
                    code='DUPLICATE_QUOTATION',
                    detail={'rfq_id': str(rfq.id)},
                )

            total_price = unit_price * rfq.quantity
            total_limit = _decimal_limit(Quotation, 'total_price')
            if total_price >= total_limit:
                raise ValidationError(
                    message='Quotation validation failed.',
                    code='VALIDATION_ERROR',
                    detail={'errors': [{
                        'field': 'unit_price',
                        'message': f'unit_price x quantity ({rfq.quantity}) must be less than {total_limit}.',
                    }]},
                )

            quotation = Quotation.objects.create(
                rfq=rfq,
                supplier=supplier,
                unit_price=unit_price,
                total_price=total_price,
                delivery_time=(data.get('delivery_time') or '').strip(),
                notes=(data.get('notes') or '').strip(),
                submitted_by=caller,
            )

            new_balance = supplier.credits
            if cost > 0:
                entry = record_transaction(
                    supplier_id=supplier.id,
                    kind='deduction',
                    amount=-cost,
                    description=f"Quotation submitted for {rfq.product_name}",
                    rfq=rfq,
                    quotation=quotation,
                    processed_by=caller,
                )
                new_balance = entry.new_balance

            notify(QuotationSubmitted(
                quotation_id=quotation.id,
                rfq_id=rfq.id,
                hospital_id=rfq.hospital_id,
                supplier_name=supplier.company_name,
                product_name=rfq.product_name,
                total_price=quotation.total_price,
            ))

            if cost > 0 and new_balance <= settings.LOW_CREDIT_THRESHOLD:
                notify(LowCredits(supplier_id=supplier.id, balance=new_balance))

    except IntegrityError:
        # 并发下两个请求同时通过了 exists() 检查，唯一约束兜底
        raise ConflictError(
            message='You have already submitted a quotation for this RFQ',
            code='DUPLICATE_QUOTATION',
            detail={'rfq_id': str(rfq_id)},
        )

    logger.info(
        "[quotation] supplier=%s quoted rfq=%s total=%s (balance %d)",
        supplier.id, rfq_id, quotation.total_price, new_balance,
    )
    return quotation


def _get_quotation_for_update(quotation_id):
    # 只锁 quotation 本身；rfq / hospital 按需懒加载
    return lock_row(
        Quotation.objects.all(),
        NotFoundError(
            message='Quotation not found',
            code='QUOTATION_NOT_FOUND',
            detail={'quotation_id': str(quotation_id)},
        ),
        pk=quotation_id,
    )


def withdraw_quotation(caller, quotation_id):
    """撤回还没被处理的报价，退回提交时扣的 credit。"""
    supplier = require_supplier_member(caller)

    with transaction.atomic():
        quotation = _get_quotation_for_update(quotation_id)
        if quotation.supplier_id != supplier.id:
            raise ForbiddenError(message='You can only withdraw your own quotations', code='NOT_OWNER')
        if quotation.status != 'pending':
            raise ConflictError(
                message=f"Only pending quotations can be withdrawn (current: {quotation.status})",
                code='QUOTATION_NOT_PENDING',
            )

        quotation.status = 'withdrawn'
        quotation.save(update_fields=['status'])

        # 退回当初真实扣掉的数额（提交时可能是免费的）
        charged = -(
            CreditTransaction.objects.filter(quotation=quotation, kind='deduction')
            .aggregate(total=Sum('amount'))['total'] or 0
        )
        if charged > 0:
            record_transaction(
                supplier_id=supplier.id,
                kind='refund',
                amount=charged,
                description=f"Refund for withdrawn quotation on {quotation.rfq.product_name}",
                rfq=quotation.rfq,
                quotation=quotation,
                processed_by=caller,
            )

    logger.info("[quotation] quotation=%s withdrawn, refunded %d credit(s)", quotation.id, charged)
    return quotation


def decide_quotation(caller, quotation_id, status):
    """医院接受 / 拒绝报价，通知该 supplier 的所有账号。"""
    hospital = require_hospital_member(caller)

    if status not in ('accepted', 'rejected'):
        raise ValidationError(message='status must be accepted or rejected.', code='INVALID_QUOTATION_STATUS')

    with transaction.atomic():
        quotation = _get_quotation_for_update(quotation_id)
        rfq = quotation.rfq
        if rfq.hospital_id != hospital.id:
            raise ForbiddenError(message="You can only decide on your hospital's quotations", code='NOT_OWNER')
        if quotation.status != 'pending':
            raise ConflictError(
                message=f"Quotation has already been {quotation.status}",
                code='QUOTATION_NOT_PENDING',
            )

        quotation.status = status
        quotation.save(update_fields=['status'])

        notify(QuotationStatusChanged(
            quotation_id=quotation.id,
            supplier_id=quotation.supplier_id,
            status=status,
            hospital_name=rfq.hospital.name,
            product_name=rfq.product_name,
        ))

    logger.info("[quotation] hospital=%s %s quotation=%s", hospital.id, status, quotation.id)
    return quotation
