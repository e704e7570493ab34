"""
Notification fan-out engine.

notify(event) → 算收件人集合 → 每个收件人插一条 Notification。

新增事件类型只需：
  1. 在 events.py 新建 dataclass
  2. 在此处写一个 _recipients_xxx / 模板函数，并在 _REGISTRY 加一行
  不需要修改调用方。

收件人按 identity id 去重（set），同一个人不会因为命中多条规则收到两条。
engine 在调用方的 transaction 里同步执行；邮件投递挂在 on_commit 上，
事务回滚时不会发出任何邮件。
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Optional

from django.conf import settings
from django.db import transaction

from ..exceptions import ValidationError
from ..models import Category, Notification, Quotation, Supplier, User
from .events import (
    DomainEvent,
    LowCredits,
    NewRFQ,
    QuotationStatusChanged,
    QuotationSubmitted,
    RFQClosed,
    VerificationDecided,
)

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_MESSAGE = (
    "Your {kind} registration has been reviewed and could not be approved. "
    "Please contact support for more information."
)


@dataclass
class Fanout:
    """一个事件展开后的结果：收件人集合 + 每条通知共用的内容。"""

    recipients: set
    type: str
    title: str
    message: str
    rfq_id: Optional[Any] = None
    quotation_id: Optional[Any] = None
    metadata: dict = field(default_factory=dict)


def format_kes(amount) -> str:
    amount = Decimal(str(amount))
    if amount == amount.to_integral_value():
        return f"KES {int(amount):,}"
    return f"KES {amount:,.2f}"


# ── recipient helpers ──────────────────────────────────────────────────────

def supplier_member_ids(supplier_ids) -> set:
    return set(
        User.objects.filter(supplier_id__in=supplier_ids).values_list('id', flat=True)
    )


def hospital_member_ids(hospital_id) -> set:
    return set(
        User.objects.filter(hospital_id=hospital_id).values_list('id', flat=True)
    )


# ── per-event expansion ────────────────────────────────────────────────────

def _expand_new_rfq(event: NewRFQ) -> Fanout:
    matching_suppliers = Supplier.objects.filter(
        verification_status='approved',
        is_active=True,
        categories__id=event.category_id,
    ).values_list('id', flat=True)

    category_name = (
        Category.objects.filter(pk=event.category_id).values_list('name', flat=True).first()
    )

    return Fanout(
        recipients=supplier_member_ids(list(matching_suppliers)),
        type='new_rfq',
        title='New RFQ Available',
        message=(
            f"{event.hospital_name} posted a new RFQ for {event.product_name} "
            f"in {category_name or 'your category'}"
        ),
        rfq_id=event.rfq_id,
        metadata={
            'hospital_name': event.hospital_name,
            'product_name': event.product_name,
        },
    )


def _expand_quotation_submitted(event: QuotationSubmitted) -> Fanout:
    return Fanout(
        recipients=hospital_member_ids(event.hospital_id),
        type='quotation_submitted',
        title='New Quotation Received',
        message=(
            f"{event.supplier_name} submitted a quotation for {event.product_name} "
            f"- {format_kes(event.total_price)}"
        ),
        rfq_id=event.rfq_id,
        quotation_id=event.quotation_id,
        metadata={
            'supplier_name': event.supplier_name,
            'product_name': event.product_name,
            'price': float(event.total_price),
        },
    )


def _expand_quotation_status_changed(event: QuotationStatusChanged) -> Fanout:
    if event.status == 'accepted':
        notification_type = 'quotation_accepted'
        title = 'Quotation Accepted!'
        message = (
            f"Congratulations! {event.hospital_name} accepted your quotation for "
            f"{event.product_name}. Check the details to contact them."
        )
    else:
        notification_type = 'quotation_rejected'
        title = 'Quotation Not Selected'
        message = (
            f"{event.hospital_name} did not select your quotation for "
            f"{event.product_name}. Keep trying!"
        )

    return Fanout(
        recipients=supplier_member_ids([event.supplier_id]),
        type=notification_type,
        title=title,
        message=message,
        quotation_id=event.quotation_id,
        metadata={
            'hospital_name': event.hospital_name,
            'product_name': event.product_name,
        },
    )


def _expand_verification_decided(event: VerificationDecided) -> Fanout:
    kind_label = event.organization_kind.capitalize()

    if event.outcome == 'approved':
        if event.organization_kind == 'hospital':
            message = f'Your hospital "{event.organization_name}" has been approved by our admin team.'
        else:
            message = f'Your supplier account "{event.organization_name}" has been approved by our admin team.'
        return Fanout(
            recipients={event.identity_id},
            type='account_verified',
            title=f'{kind_label} Account Approved',
            message=message,
        )

    reason = (event.reason or '').strip()
    return Fanout(
        recipients={event.identity_id},
        type='account_rejected',
        title=f'{kind_label} Account Rejected',
        message=reason or DEFAULT_REJECTION_MESSAGE.format(kind=event.organization_kind),
    )


def _expand_rfq_closed(event: RFQClosed) -> Fanout:
    quoting_suppliers = Quotation.objects.filter(
        rfq_id=event.rfq_id, status='pending',
    ).values_list('supplier_id', flat=True)

    return Fanout(
        recipients=supplier_member_ids(list(quoting_suppliers)),
        type='rfq_closed',
        title='RFQ Closed',
        message=(
            f"{event.hospital_name} closed the RFQ for {event.product_name}. "
            f"No further quotations are being considered."
        ),
        rfq_id=event.rfq_id,
        metadata={
            'hospital_name': event.hospital_name,
            'product_name': event.product_name,
        },
    )


def _expand_low_credits(event: LowCredits) -> Fanout:
    return Fanout(
        recipients=supplier_member_ids([event.supplier_id]),
        type='low_credits',
        title='Low Credit Balance',
        message=(
            f"Your credit balance is {event.balance}. "
            f"Purchase credits to keep responding to RFQs."
        ),
        metadata={'balance': event.balance},
    )


_REGISTRY: dict[type, Callable[[Any], Fanout]] = {
    NewRFQ: _expand_new_rfq,
    QuotationSubmitted: _expand_quotation_submitted,
    QuotationStatusChanged: _expand_quotation_status_changed,
    VerificationDecided: _expand_verification_decided,
    RFQClosed: _expand_rfq_closed,
    LowCredits: _expand_low_credits,
}


def expand(event: DomainEvent) -> Fanout:
    handler = _REGISTRY.get(type(event))
    if handler is None:
        raise ValidationError(
            message=f"Unknown notification event: {type(event).__name__}.",
            code='UNKNOWN_EVENT',
            detail={'known_events': [cls.__name__ for cls in _REGISTRY]},
        )
    return handler(event)


def notify(event: DomainEvent) -> list[Notification]:
    """
    展开事件并写入通知，返回新建的 Notification 列表。

    必须在调用方的 transaction.atomic() 内调用：插入失败会让整个领域事件回滚。
    """
    fanout = expand(event)

    notifications = [
        Notification(
            recipient_id=recipient_id,
            type=fanout.type,
            title=fanout.title,
            message=fanout.message,
            rfq_id=fanout.rfq_id,
            quotation_id=fanout.quotation_id,
            metadata=fanout.metadata,
        )
        for recipient_id in sorted(fanout.recipients, key=str)
    ]
    created = Notification.objects.bulk_create(notifications)

    logger.info(
        "[fanout] %s → %d notification(s) of type %s",
        type(event).__name__, len(created), fanout.type,
    )

    if created and settings.NOTIFICATION_EMAILS_ENABLED:
        _schedule_emails([n.id for n in created])

    return created


def _schedule_emails(notification_ids):
    from marketplace.tasks import send_notification_email

    def _dispatch():
        for notification_id in notification_ids:
            send_notification_email.delay(str(notification_id))

    transaction.on_commit(_dispatch)
