"""
Admin 自有的 hospital / supplier 账号。

Admin 可以给自己挂一个 hospital 和一个 supplier，用来走完整的 RFQ / 报价流程做测试和运营。
这类 organization 直接是 approved，is_admin_owned=True，创建者就是 admin 本人。

Admin supplier 的初始额度走 ledger（admin_adjustment），不直接写 credits 字段。
"""

import logging
import uuid

from django.conf import settings
from django.db import transaction

from .access import require_admin
from .exceptions import ConflictError, NotFoundError, ValidationError
from .ledger import record_transaction
from .locking import lock_row
from .models import Category, Hospital, Supplier, User

logger = logging.getLogger(__name__)


def _contact_fields(data, name_field, errors):
    cleaned = {}
    for field_name in (name_field, 'email', 'phone'):
        value = data.get(field_name)
        if not isinstance(value, str) or not value.strip():
            errors.append({'field': field_name, 'message': f'{field_name} is required.'})
        else:
            cleaned[field_name] = value.strip()
    return cleaned


def _raise_if_errors(errors):
    if errors:
        raise ValidationError(
            message='Admin account validation failed.',
            code='VALIDATION_ERROR',
            detail={'errors': errors},
        )


def _category_ids(data, errors):
    raw = data.get('categories')
    if not isinstance(raw, list) or not raw:
        errors.append({'field': 'categories', 'message': 'Select at least one category.'})
        return []
    try:
        return [uuid.UUID(str(value)) for value in raw]
    except ValueError:
        errors.append({'field': 'categories', 'message': 'categories must be a list of UUIDs.'})
        return []


def setup_admin_hospital(caller, data):
    """
    给 admin 建一个自有 hospital 并挂到 admin 身上。

    Raises:
        ForbiddenError:  不是 admin
        ValidationError: name / email / phone 缺失
        ConflictError:   admin 已经有 hospital
    """
    admin = require_admin(caller)

    errors = []
    fields = _contact_fields(data, 'name', errors)
    _raise_if_errors(errors)

    with transaction.atomic():
        admin = lock_row(User.objects.all(), pk=admin.pk)
        if admin.hospital_id is not None:
            raise ConflictError(
                message='Admin hospital already exists',
                code='ADMIN_HOSPITAL_EXISTS',
                detail={'hospital_id': str(admin.hospital_id)},
            )

        hospital = Hospital.objects.create(
            name=fields['name'],
            contact_person=admin.name or 'Admin',
            email=fields['email'],
            phone=fields['phone'],
            hospital_code=f"ADMIN-{uuid.uuid4().hex[:12].upper()}",
            verification_status='approved',
            is_admin_owned=True,
            created_by=admin,
        )
        admin.hospital = hospital
        admin.save(update_fields=['hospital'])

    logger.info("[admin] admin=%s set up admin-owned hospital=%s", admin.id, hospital.id)
    return hospital


def setup_admin_supplier(caller, data):
    """
    给 admin 建一个自有 supplier，并通过 ledger 发放 ADMIN_SUPPLIER_CREDITS 额度。

    Raises:
        ForbiddenError:  不是 admin
        ValidationError: 字段缺失 / categories 为空或不是 UUID
        NotFoundError:   category 不存在或已停用
        ConflictError:   admin 已经有 supplier
    """
    admin = require_admin(caller)

    errors = []
    fields = _contact_fields(data, 'company_name', errors)
    category_ids = _category_ids(data, errors)
    _raise_if_errors(errors)

    categories = list(Category.objects.filter(pk__in=category_ids, is_active=True))
    missing = set(category_ids) - {c.id for c in categories}
    if missing:
        raise NotFoundError(
            message='Category not found or inactive',
            code='CATEGORY_NOT_FOUND',
            detail={'category_ids': sorted(str(c) for c in missing)},
        )

    with transaction.atomic():
        admin = lock_row(User.objects.all(), pk=admin.pk)
        if admin.supplier_id is not None:
            raise ConflictError(
                message='Admin supplier already exists',
                code='ADMIN_SUPPLIER_EXISTS',
                detail={'supplier_id': str(admin.supplier_id)},
            )

        supplier = Supplier.objects.create(
            company_name=fields['company_name'],
            contact_person=admin.name or 'Admin',
            email=fields['email'],
            phone=fields['phone'],
            verification_status='approved',
            is_active=True,
            is_admin_owned=True,
            created_by=admin,
        )
        supplier.categories.set(categories)

        admin.supplier = supplier
        admin.save(update_fields=['supplier'])

        allowance = settings.ADMIN_SUPPLIER_CREDITS
        if allowance > 0:
            record_transaction(
                supplier_id=supplier.id,
                kind='admin_adjustment',
                amount=allowance,
                description='Admin-owned supplier allowance',
                processed_by=admin,
            )
        supplier.refresh_from_db(fields=['credits'])

    logger.info("[admin] admin=%s set up admin-owned supplier=%s", admin.id, supplier.id)
    return supplier


def get_admin_accounts(caller):
    admin = require_admin(caller)
    return {
        'hospital': admin.hospital,
        'supplier': admin.supplier,
    }
