"""
HTTP 入口。

View 只做三件事：解析请求 → 调 service → 用 serializer 输出。
权限和业务校验都在 service 层；抛出的 BaseAppException 由
EXCEPTION_HANDLER（unified_exception_handler）统一转成 JSON。
"""

import hmac
import logging
import uuid

from django.conf import settings
from django.http import JsonResponse
from rest_framework.views import APIView

from . import admin_accounts, services, verification
from .exceptions import UnauthenticatedError, ValidationError
from .ledger import adjust_credits, get_balance, get_credit_summary, get_history
from .ledger.packages import create_package, list_active_packages, list_all_packages, update_package
from .ledger.purchases import confirm_purchase, fail_purchase, initiate_purchase, mark_payment_pending
from .notifications.inbox import list_notifications, mark_all_as_read, mark_as_read, unread_count
from .serializers import (
    serialize_admin_accounts,
    serialize_admin_rfq,
    serialize_decision,
    serialize_hospital,
    serialize_ledger_entry,
    serialize_notification,
    serialize_notification_list,
    serialize_package,
    serialize_purchase,
    serialize_purchase_result,
    serialize_quotation,
    serialize_rfq,
    serialize_supplier,
    serialize_transaction,
    serialize_user,
)

logger = logging.getLogger(__name__)


# ── request helpers ────────────────────────────────────────────────────────

def _body(request):
    data = request.data
    if not isinstance(data, dict):
        raise ValidationError(message='Request body must be a JSON object', code='INVALID_BODY')
    return data


def _uuid_param(request, name):
    raw = request.query_params.get(name)
    if raw in (None, ''):
        return None
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise ValidationError(
            message=f'{name} must be a valid UUID',
            code='INVALID_ID',
            detail={name: raw},
        )


def _uuid_field(data, name):
    raw = data.get(name)
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        raise ValidationError(
            message=f'{name} must be a valid UUID',
            code='INVALID_ID',
            detail={name: raw},
        )


def _int_param(request, name):
    raw = request.query_params.get(name)
    if raw in (None, ''):
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(message=f'{name} must be an integer', code='INVALID_PARAMETER', detail={name: raw})


def _bool_param(request, name):
    return request.query_params.get(name, '').lower() in ('1', 'true', 'yes')


# ── admin: verification ────────────────────────────────────────────────────

class _OrganizationDecisionView(APIView):
    """POST admin/<kind>s/<id>/decision/ - approve / reject"""

    kind = None

    def post(self, request, organization_id):
        data = _body(request)
        result = verification.decide_organization(
            request.user,
            self.kind,
            organization_id,
            data.get('outcome'),
            reason=data.get('reason') or None,
        )
        return JsonResponse(serialize_decision(result))


class HospitalDecisionView(_OrganizationDecisionView):
    kind = 'hospital'


class SupplierDecisionView(_OrganizationDecisionView):
    kind = 'supplier'


class AdminHospitalListView(APIView):
    """GET admin/hospitals/?status=pending"""

    def get(self, request):
        hospitals = verification.list_hospitals(request.user, status=request.query_params.get('status') or None)
        results = [serialize_hospital(h) for h in hospitals]
        return JsonResponse({'count': len(results), 'hospitals': results})


class AdminSupplierListView(APIView):
    """GET admin/suppliers/?status=pending"""

    def get(self, request):
        suppliers = verification.list_suppliers(request.user, status=request.query_params.get('status') or None)
        results = [serialize_supplier(s) for s in suppliers]
        return JsonResponse({'count': len(results), 'suppliers': results})


class AdminStatsView(APIView):
    def get(self, request):
        return JsonResponse(verification.get_admin_stats(request.user))


class AdminUserListView(APIView):
    """GET admin/users/?account_type=supplier"""

    def get(self, request):
        users = verification.list_users(request.user, account_type=request.query_params.get('account_type') or None)
        results = [serialize_user(u) for u in users]
        return JsonResponse({'count': len(results), 'users': results})


class ToggleUserActiveView(APIView):
    def post(self, request, user_id):
        user = verification.toggle_user_active(request.user, user_id)
        return JsonResponse(serialize_user(user))


class AdminRFQListView(APIView):
    """GET admin/rfqs/?status=open"""

    def get(self, request):
        rfqs = verification.list_rfqs(request.user, status=request.query_params.get('status') or None)
        results = [serialize_admin_rfq(r) for r in rfqs]
        return JsonResponse({'count': len(results), 'rfqs': results})


# ── admin: 自有账号 ────────────────────────────────────────────────────────

class AdminAccountsView(APIView):
    def get(self, request):
        return JsonResponse(serialize_admin_accounts(admin_accounts.get_admin_accounts(request.user)))


class AdminHospitalSetupView(APIView):
    """POST admin/accounts/hospital/ - {name, email, phone}"""

    def post(self, request):
        hospital = admin_accounts.setup_admin_hospital(request.user, _body(request))
        return JsonResponse(serialize_hospital(hospital), status=201)


class AdminSupplierSetupView(APIView):
    """POST admin/accounts/supplier/ - {company_name, email, phone, categories: [id, ...]}"""

    def post(self, request):
        supplier = admin_accounts.setup_admin_supplier(request.user, _body(request))
        return JsonResponse(serialize_supplier(supplier), status=201)


# ── admin: credits ─────────────────────────────────────────────────────────

class AdjustCreditsView(APIView):
    """POST admin/suppliers/<id>/credits/adjust/ - {amount, reason}"""

    def post(self, request, supplier_id):
        data = _body(request)
        entry = adjust_credits(request.user, supplier_id, data.get('amount'), data.get('reason'))
        return JsonResponse(serialize_ledger_entry(entry))


class AdminPackageListView(APIView):
    def get(self, request):
        packages = list_all_packages(request.user)
        return JsonResponse({'packages': [serialize_package(p) for p in packages]})

    def post(self, request):
        package = create_package(request.user, _body(request))
        return JsonResponse(serialize_package(package), status=201)


class AdminPackageDetailView(APIView):
    def patch(self, request, package_id):
        package = update_package(request.user, package_id, _body(request))
        return JsonResponse(serialize_package(package))


# ── credits ────────────────────────────────────────────────────────────────

class CreditBalanceView(APIView):
    """GET credits/balance/ (admin: ?supplier_id=)"""

    def get(self, request):
        balance = get_balance(request.user, _uuid_param(request, 'supplier_id'))
        return JsonResponse({'supplier_id': str(balance['supplier_id']), 'credits': balance['credits']})


class CreditHistoryView(APIView):
    def get(self, request):
        transactions = get_history(request.user, _uuid_param(request, 'supplier_id'))
        results = [serialize_transaction(tx) for tx in transactions]
        return JsonResponse({'count': len(results), 'transactions': results})


class CreditSummaryView(APIView):
    def get(self, request):
        summary = get_credit_summary(request.user, _uuid_param(request, 'supplier_id'))
        summary['supplier_id'] = str(summary['supplier_id'])
        return JsonResponse(summary)


class CreditPackageListView(APIView):
    """GET credits/packages/ - 公开的套餐列表"""

    def get(self, request):
        return JsonResponse({'packages': [serialize_package(p) for p in list_active_packages()]})


class CreditPurchaseView(APIView):
    """POST credits/purchases/ - {package_id}，返回待支付的 purchase"""

    def post(self, request):
        data = _body(request)
        purchase = initiate_purchase(request.user, _uuid_field(data, 'package_id'))
        return JsonResponse(serialize_purchase(purchase), status=201)


class PaymentConfirmationView(APIView):
    """
    POST payments/confirmations/ - 外部支付流程的回调。

    不走 bearer token，用共享密钥头 X-Payment-Signature 认证。
    body: {"event": "checkout_started" | "payment_confirmed" | "payment_failed", ...}
    """

    authentication_classes = []

    def _check_signature(self, request):
        secret = settings.PAYMENT_WEBHOOK_SECRET
        signature = request.headers.get('X-Payment-Signature', '')
        if not secret or not hmac.compare_digest(signature.encode(), secret.encode()):
            logger.warning("[payments] rejected confirmation with invalid signature")
            raise UnauthenticatedError(message='Invalid payment signature', code='INVALID_SIGNATURE')

    def post(self, request):
        self._check_signature(request)
        data = _body(request)
        event = data.get('event')

        if event == 'checkout_started':
            purchase = mark_payment_pending(_uuid_field(data, 'purchase_id'), data.get('payment_reference'))
            return JsonResponse(serialize_purchase(purchase))

        if event == 'payment_confirmed':
            result = confirm_purchase(data.get('payment_reference'))
            return JsonResponse(serialize_purchase_result(result))

        if event == 'payment_failed':
            if data.get('payment_reference'):
                purchase = fail_purchase(data['payment_reference'], reason=data.get('reason') or '')
            else:
                purchase = fail_purchase(
                    reason=data.get('reason') or '',
                    purchase_id=_uuid_field(data, 'purchase_id'),
                )
            return JsonResponse(serialize_purchase(purchase))

        raise ValidationError(
            message=f'Unknown payment event: {event!r}',
            code='UNKNOWN_PAYMENT_EVENT',
            detail={'known_events': ['checkout_started', 'payment_confirmed', 'payment_failed']},
        )


# ── notifications ──────────────────────────────────────────────────────────

class NotificationListView(APIView):
    """GET notifications/?limit=20&unread_only=1"""

    def get(self, request):
        notifications = list_notifications(
            request.user,
            limit=_int_param(request, 'limit'),
            unread_only=_bool_param(request, 'unread_only'),
        )
        return JsonResponse(serialize_notification_list(notifications))


class UnreadCountView(APIView):
    def get(self, request):
        return JsonResponse({'unread_count': unread_count(request.user)})


class NotificationReadView(APIView):
    def post(self, request, notification_id):
        notification = mark_as_read(request.user, notification_id)
        return JsonResponse(serialize_notification(notification))


class NotificationReadAllView(APIView):
    def post(self, request):
        return JsonResponse({'marked': mark_all_as_read(request.user)})


# ── marketplace ────────────────────────────────────────────────────────────

class RFQCreateView(APIView):
    def post(self, request):
        rfq = services.create_rfq(request.user, _body(request))
        return JsonResponse(serialize_rfq(rfq), status=201)


class RFQStatusView(APIView):
    """PATCH rfqs/<id>/status/ - {status}"""

    def patch(self, request, rfq_id):
        rfq = services.update_rfq_status(request.user, rfq_id, _body(request).get('status'))
        return JsonResponse(serialize_rfq(rfq))


class QuotationCreateView(APIView):
    def post(self, request, rfq_id):
        quotation = services.submit_quotation(request.user, rfq_id, _body(request))
        return JsonResponse(serialize_quotation(quotation), status=201)


class QuotationWithdrawView(APIView):
    def post(self, request, quotation_id):
        quotation = services.withdraw_quotation(request.user, quotation_id)
        return JsonResponse(serialize_quotation(quotation))


class QuotationDecisionView(APIView):
    """POST quotations/<id>/decision/ - {status: accepted | rejected}"""

    def post(self, request, quotation_id):
        quotation = services.decide_quotation(request.user, quotation_id, _body(request).get('status'))
        return JsonResponse(serialize_quotation(quotation))
