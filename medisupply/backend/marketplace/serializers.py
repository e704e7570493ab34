"""
Response serializers: ORM 对象 → JSON-able dict。

只负责「输出格式化」，不做任何解析或校验。
输入校验都在 service 层，失败时抛 BaseAppException。
"""

from .verification import document_url


def _iso(value):
    return value.isoformat() if value else None


def _id(value):
    return str(value) if value is not None else None


def _creator(organization):
    creator = organization.created_by
    if creator is None:
        return None
    return {'id': str(creator.id), 'name': creator.name, 'email': creator.email}


# ── identity / organizations ───────────────────────────────────────────────

def serialize_user(user):
    return {
        'id': str(user.id),
        'name': user.name,
        'email': user.email,
        'account_type': user.account_type,
        'verification_status': user.verification_status,
        'is_active': user.is_active,
        'hospital_id': _id(user.hospital_id),
        'supplier_id': _id(user.supplier_id),
    }


def serialize_hospital(hospital):
    return {
        'id': str(hospital.id),
        'name': hospital.name,
        'contact_person': hospital.contact_person,
        'phone': hospital.phone,
        'email': hospital.email,
        'hospital_code': hospital.hospital_code,
        'verification_status': hospital.verification_status,
        'medical_license_url': document_url(hospital.medical_license),
        'is_admin_owned': hospital.is_admin_owned,
        'created_by': _creator(hospital),
        'created_at': _iso(hospital.created_at),
    }


def serialize_supplier(supplier):
    return {
        'id': str(supplier.id),
        'company_name': supplier.company_name,
        'contact_person': supplier.contact_person,
        'phone': supplier.phone,
        'email': supplier.email,
        'verification_status': supplier.verification_status,
        'is_active': supplier.is_active,
        'credits': supplier.credits,
        'categories': [c.name for c in supplier.categories.all()],
        'cr12_url': document_url(supplier.cr12),
        'is_admin_owned': supplier.is_admin_owned,
        'created_by': _creator(supplier),
        'created_at': _iso(supplier.created_at),
    }


def serialize_decision(result):
    """Admin 审核结果。"""
    return {
        'id': str(result.organization.id),
        'verification_status': result.organization.verification_status,
        'changed': result.changed,
        'creator_updated': result.creator_updated,
    }


# ── ledger ─────────────────────────────────────────────────────────────────

def serialize_transaction(tx):
    return {
        'id': str(tx.id),
        'sequence': tx.sequence,
        'kind': tx.kind,
        'amount': tx.amount,
        'balance_after': tx.balance_after,
        'description': tx.description,
        'rfq_id': _id(tx.rfq_id),
        'quotation_id': _id(tx.quotation_id),
        'package_id': _id(tx.package_id),
        'processed_by': _id(tx.processed_by_id),
        'created_at': _iso(tx.created_at),
    }


def serialize_ledger_entry(entry):
    return {
        'new_balance': entry.new_balance,
        'transaction': serialize_transaction(entry.transaction),
    }


def serialize_package(package):
    return {
        'id': str(package.id),
        'name': package.name,
        'credits': package.credits,
        'price_kes': package.price_kes,
        'description': package.description,
        'display_order': package.display_order,
        'is_active': package.is_active,
    }


def serialize_purchase(purchase):
    response = {
        'id': str(purchase.id),
        'supplier_id': str(purchase.supplier_id),
        'package': {
            'id': str(purchase.package_id),
            'name': purchase.package.name,
        },
        'credits': purchase.credits,
        'price_kes': purchase.price_kes,
        'status': purchase.status,
        'payment_reference': purchase.payment_reference,
        'created_at': _iso(purchase.created_at),
    }

    if purchase.status == 'confirmed':
        response['confirmed_at'] = _iso(purchase.confirmed_at)
        response['transaction_id'] = _id(purchase.transaction_id)
    elif purchase.status == 'failed':
        response['failure_reason'] = purchase.failure_reason

    return response


def serialize_purchase_result(result):
    response = serialize_purchase(result.purchase)
    response['new_balance'] = result.new_balance
    response['credits_added'] = result.credits_added
    response['replayed'] = result.replayed
    return response


# ── notifications ──────────────────────────────────────────────────────────

def serialize_notification(notification):
    return {
        'id': str(notification.id),
        'type': notification.type,
        'title': notification.title,
        'message': notification.message,
        'is_read': notification.is_read,
        'rfq_id': _id(notification.rfq_id),
        'quotation_id': _id(notification.quotation_id),
        'metadata': notification.metadata,
        'created_at': _iso(notification.created_at),
    }


def serialize_notification_list(notifications):
    results = [serialize_notification(n) for n in notifications]
    return {
        'count': len(results),
        'notifications': results,
    }


# ── marketplace ────────────────────────────────────────────────────────────

def serialize_rfq(rfq):
    return {
        'id': str(rfq.id),
        'hospital_id': str(rfq.hospital_id),
        'category_id': str(rfq.category_id),
        'product_name': rfq.product_name,
        'quantity': rfq.quantity,
        'unit': rfq.unit,
        'delivery_location': rfq.delivery_location,
        'urgency': rfq.urgency,
        'specifications': rfq.specifications,
        'status': rfq.status,
        'created_at': _iso(rfq.created_at),
    }


def serialize_quotation(quotation):
    return {
        'id': str(quotation.id),
        'rfq_id': str(quotation.rfq_id),
        'supplier_id': str(quotation.supplier_id),
        'unit_price': str(quotation.unit_price),
        'total_price': str(quotation.total_price),
        'delivery_time': quotation.delivery_time,
        'notes': quotation.notes,
        'status': quotation.status,
        'created_at': _iso(quotation.created_at),
    }


def serialize_admin_rfq(rfq):
    """Admin RFQ 监控：在 serialize_rfq 基础上带上医院 / 分类 / 创建者名字和报价数量。"""
    response = serialize_rfq(rfq)
    response['hospital_name'] = rfq.hospital.name
    response['category_name'] = rfq.category.name
    response['creator_name'] = rfq.created_by.name if rfq.created_by_id else None
    response['quotation_count'] = getattr(rfq, 'quotation_count', None)
    return response


def serialize_admin_accounts(accounts):
    hospital = accounts['hospital']
    supplier = accounts['supplier']
    return {
        'has_hospital': hospital is not None,
        'has_supplier': supplier is not None,
        'hospital': serialize_hospital(hospital) if hospital else None,
        'supplier': serialize_supplier(supplier) if supplier else None,
    }
