"""
Verification cascade + admin 审核工作台。

decide_organization() 把 admin 的 approve / reject 写到 organization，
再级联到创建者 identity，并给创建者发一条通知。三次写入在同一个事务里：
不会出现 organization 已 approved、identity 还是 pending 的半成品状态。

重复审核的规则：
- 相同结果再审一次 → 幂等，不写库、不发通知（changed=False）
- 已审核过又给相反结果 → ConflictError(ALREADY_DECIDED)
"""

import logging
from dataclasses import dataclass

from django.core.files.storage import default_storage
from django.db import transaction
from django.db.models import Count

from .access import require_admin
from .exceptions import ConflictError, NotFoundError, ValidationError
from .locking import lock_row
from .models import RFQ, Hospital, Supplier, User
from .notifications import VerificationDecided, notify

logger = logging.getLogger(__name__)

OUTCOMES = ('approved', 'rejected')
VERIFICATION_STATUSES = ('pending', 'approved', 'rejected')

_ORGANIZATION_MODELS = {
    'hospital': Hospital,
    'supplier': Supplier,
}


@dataclass(frozen=True)
class DecisionResult:
    organization: object
    outcome: str
    changed: bool
    creator_updated: bool
    notification: object = None


def _organization_model(kind):
    model = _ORGANIZATION_MODELS.get(kind)
    if model is None:
        raise ValidationError(
            message=f"Unknown organization kind: {kind!r}.",
            code='UNKNOWN_ORGANIZATION_KIND',
            detail={'known_kinds': list(_ORGANIZATION_MODELS)},
        )
    return model


def decide_organization(caller, kind, organization_id, outcome, reason=None):
    """
    Admin 审核 hospital / supplier。

    Raises:
        UnauthenticatedError / ForbiddenError: 不是 admin
        ValidationError: outcome / kind 非法
        NotFoundError:   organization 不存在
        ConflictError:   已审核过且结果相反
    """
    admin = require_admin(caller)
    model = _organization_model(kind)

    if outcome not in OUTCOMES:
        raise ValidationError(
            message=f"outcome must be one of {', '.join(OUTCOMES)}.",
            code='INVALID_OUTCOME',
            detail={'outcome': outcome},
        )

    with transaction.atomic():
        organization = lock_row(
            model.objects.all(),
            NotFoundError(
                message=f"{kind.capitalize()} not found",
                code=f"{kind.upper()}_NOT_FOUND",
                detail={f"{kind}_id": str(organization_id)},
            ),
            pk=organization_id,
        )

        current = organization.verification_status
        if current == outcome:
            logger.info("[verification] %s=%s already %s, no-op", kind, organization.id, outcome)
            return DecisionResult(organization=organization, outcome=outcome, changed=False, creator_updated=False)
        if current != 'pending':
            raise ConflictError(
                message=f"{kind.capitalize()} has already been {current}",
                code='ALREADY_DECIDED',
                detail={f"{kind}_id": str(organization.id), 'current_status': current},
            )

        # 1. organization
        organization.verification_status = outcome
        organization.save(update_fields=['verification_status'])

        # 2. 创建者 identity（找不到只记日志，organization 这边的结果仍然有效）
        creator = None
        if organization.created_by_id is not None:
            creator = lock_row(User.objects.all(), pk=organization.created_by_id)

        if creator is None:
            logger.warning(
                "[verification] %s=%s has no creator identity, cascade skipped",
                kind, organization.id,
            )
            return DecisionResult(organization=organization, outcome=outcome, changed=True, creator_updated=False)

        creator.verification_status = outcome
        creator.save(update_fields=['verification_status'])

        # 3. 通知创建者
        created = notify(VerificationDecided(
            identity_id=creator.id,
            outcome=outcome,
            organization_name=organization.display_name,
            organization_kind=kind,
            reason=reason,
        ))

    logger.info(
        "[verification] admin=%s %s %s=%s (creator=%s)",
        admin.id, outcome, kind, organization.id, creator.id,
    )
    return DecisionResult(
        organization=organization,
        outcome=outcome,
        changed=True,
        creator_updated=True,
        notification=created[0] if created else None,
    )


# ── admin listings ─────────────────────────────────────────────────────────

def document_url(reference):
    """外部 storage 引用 → URL；没有上传文件时返回 None。"""
    if not reference:
        return None
    return default_storage.url(reference)


def _validate_status_filter(status):
    if status is not None and status not in VERIFICATION_STATUSES:
        raise ValidationError(
            message=f"status must be one of {', '.join(VERIFICATION_STATUSES)}.",
            code='INVALID_STATUS_FILTER',
            detail={'status': status},
        )


def list_hospitals(caller, status=None):
    require_admin(caller)
    _validate_status_filter(status)

    qs = Hospital.objects.select_related('created_by').order_by('-created_at')
    if status:
        qs = qs.filter(verification_status=status)
    return list(qs)


def list_suppliers(caller, status=None):
    require_admin(caller)
    _validate_status_filter(status)

    qs = (
        Supplier.objects.select_related('created_by')
        .prefetch_related('categories')
        .order_by('-created_at')
    )
    if status:
        qs = qs.filter(verification_status=status)
    return list(qs)


def list_users(caller, account_type=None):
    """Admin 用户列表，可按 account_type 过滤；toggle_user_active 需要的 id 从这里拿。"""
    require_admin(caller)

    account_types = [choice for choice, _ in User.ACCOUNT_TYPE_CHOICES]
    if account_type is not None and account_type not in account_types:
        raise ValidationError(
            message=f"account_type must be one of {', '.join(account_types)}.",
            code='INVALID_ACCOUNT_TYPE_FILTER',
            detail={'account_type': account_type},
        )

    qs = User.objects.order_by('-created_at')
    if account_type:
        qs = qs.filter(account_type=account_type)
    return list(qs)


def list_rfqs(caller, status=None):
    """RFQ 监控：带医院 / 分类 / 创建者和报价数量。"""
    require_admin(caller)

    rfq_statuses = [choice for choice, _ in RFQ.STATUS_CHOICES]
    if status is not None and status not in rfq_statuses:
        raise ValidationError(
            message=f"status must be one of {', '.join(rfq_statuses)}.",
            code='INVALID_STATUS_FILTER',
            detail={'status': status},
        )

    qs = (
        RFQ.objects.select_related('hospital', 'category', 'created_by')
        .annotate(quotation_count=Count('quotations'))
        .order_by('-created_at')
    )
    if status:
        qs = qs.filter(status=status)
    return list(qs)


def get_admin_stats(caller):
    require_admin(caller)
    return {
        'pending_hospitals': Hospital.objects.filter(verification_status='pending').count(),
        'pending_suppliers': Supplier.objects.filter(verification_status='pending').count(),
        'open_rfqs': RFQ.objects.filter(status='open').count(),
        'total_users': User.objects.count(),
        'total_hospitals': Hospital.objects.count(),
        'total_suppliers': Supplier.objects.count(),
    }


def toggle_user_active(caller, user_id):
    """软停用 / 恢复账号。admin 不能停用自己。"""
    admin = require_admin(caller)

    with transaction.atomic():
        user = lock_row(
            User.objects.all(),
            NotFoundError(message='User not found', code='USER_NOT_FOUND', detail={'user_id': str(user_id)}),
            pk=user_id,
        )

        if user.id == admin.id:
            raise ConflictError(message='You cannot deactivate your own account', code='SELF_DEACTIVATION')

        user.is_active = not user.is_active
        user.save(update_fields=['is_active'])

    logger.info("[admin] admin=%s set user=%s is_active=%s", admin.id, user.id, user.is_active)
    return user
