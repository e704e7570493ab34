"""
Unit tests for the RFQ / Quotation orchestrator (marketplace.services).

重点：每个操作发出的领域事件 + 报价扣 credit 的原子性。
"""
import uuid
from decimal import Decimal

import pytest

from marketplace import services
from marketplace.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from marketplace.models import CreditTransaction, Notification, Quotation, Supplier
from tests.conftest import (
    CategoryFactory,
    HospitalFactory,
    QuotationFactory,
    RFQFactory,
    SupplierFactory,
    UserFactory,
)


def _rfq_payload(category, **overrides):
    payload = {
        'category_id': str(category.id),
        'product_name': 'Surgical Gloves',
        'quantity': 100,
        'unit': 'boxes',
        'delivery_location': 'Nairobi',
    }
    payload.update(overrides)
    return payload


def _credits(supplier):
    return Supplier.objects.get(pk=supplier.pk).credits


# ===================================================================
# create_rfq
# ===================================================================

@pytest.mark.django_db
class TestCreateRFQ:

    def test_creates_rfq_and_notifies_matching_suppliers(self, hospital_user, hospital, category, supplier_user):
        rfq = services.create_rfq(hospital_user, _rfq_payload(category))

        assert rfq.hospital_id == hospital.id
        assert rfq.status == 'open'
        assert rfq.urgency == 'standard'

        n = Notification.objects.get(recipient=supplier_user)
        assert n.type == 'new_rfq'
        assert n.rfq_id == rfq.id
        assert n.message == f'{hospital.name} posted a new RFQ for Surgical Gloves in PPE'

    def test_unapproved_hospital_forbidden(self, category):
        hospital = HospitalFactory(verification_status='pending')
        user = UserFactory(account_type='hospital', hospital=hospital)

        with pytest.raises(ForbiddenError) as exc_info:
            services.create_rfq(user, _rfq_payload(category))
        assert exc_info.value.code == 'HOSPITAL_NOT_APPROVED'

    def test_supplier_cannot_create_rfq(self, supplier_user, category):
        with pytest.raises(ForbiddenError):
            services.create_rfq(supplier_user, _rfq_payload(category))

    def test_validation_errors_collected(self, hospital_user, category):
        with pytest.raises(ValidationError) as exc_info:
            services.create_rfq(hospital_user, _rfq_payload(category, quantity=0, unit='', urgency='asap'))

        fields = {e['field'] for e in exc_info.value.detail['errors']}
        assert fields == {'quantity', 'unit', 'urgency'}

    @pytest.mark.parametrize('category_id', ['not-a-uuid', 12345, None])
    def test_malformed_category_id_is_field_error(self, hospital_user, category_id):
        with pytest.raises(ValidationError) as exc_info:
            services.create_rfq(hospital_user, {
                'category_id': category_id,
                'product_name': 'Surgical Gloves',
                'quantity': 100,
                'unit': 'boxes',
                'delivery_location': 'Nairobi',
            })

        assert [e['field'] for e in exc_info.value.detail['errors']] == ['category_id']

    def test_quantity_out_of_range(self, hospital_user, category):
        with pytest.raises(ValidationError) as exc_info:
            services.create_rfq(hospital_user, _rfq_payload(category, quantity=2 ** 31))
        assert [e['field'] for e in exc_info.value.detail['errors']] == ['quantity']

    def test_inactive_category(self, hospital_user):
        category = CategoryFactory(is_active=False)
        with pytest.raises(NotFoundError) as exc_info:
            services.create_rfq(hospital_user, _rfq_payload(category))
        assert exc_info.value.code == 'CATEGORY_NOT_FOUND'


# ===================================================================
# submit_quotation
# ===================================================================

@pytest.mark.django_db
class TestSubmitQuotation:

    def test_submit_deducts_credit_and_notifies_hospital(self, supplier_user, supplier, hospital_user, hospital):
        rfq = RFQFactory(hospital=hospital, quantity=100)

        quotation = services.submit_quotation(supplier_user, rfq.id, {'unit_price': '125'})

        assert quotation.total_price == Decimal('12500.00')
        assert _credits(supplier) == 9

        tx = CreditTransaction.objects.get(supplier=supplier)
        assert tx.kind == 'deduction'
        assert tx.amount == -1
        assert tx.quotation_id == quotation.id
        assert tx.rfq_id == rfq.id

        n = Notification.objects.get(recipient=hospital_user)
        assert n.type == 'quotation_submitted'
        assert n.message.endswith('- KES 12,500')

    def test_duplicate_quotation_conflict(self, supplier_user, supplier):
        rfq = RFQFactory()
        services.submit_quotation(supplier_user, rfq.id, {'unit_price': 10})

        with pytest.raises(ConflictError) as exc_info:
            services.submit_quotation(supplier_user, rfq.id, {'unit_price': 12})

        assert exc_info.value.code == 'DUPLICATE_QUOTATION'
        assert _credits(supplier) == 9
        assert Quotation.objects.count() == 1

    def test_insufficient_credits_rolls_back_everything(self, category):
        broke = SupplierFactory(credits=0, categories=[category])
        user = UserFactory(account_type='supplier', supplier=broke)
        rfq = RFQFactory()
        notifications_before = Notification.objects.count()

        with pytest.raises(ConflictError) as exc_info:
            services.submit_quotation(user, rfq.id, {'unit_price': 10})

        assert exc_info.value.code == 'INSUFFICIENT_CREDITS'
        assert Quotation.objects.count() == 0
        assert CreditTransaction.objects.count() == 0
        assert Notification.objects.count() == notifications_before

    def test_closed_rfq(self, supplier_user):
        rfq = RFQFactory(status='closed')
        with pytest.raises(ConflictError) as exc_info:
            services.submit_quotation(supplier_user, rfq.id, {'unit_price': 10})
        assert exc_info.value.code == 'RFQ_NOT_OPEN'

    def test_unknown_rfq(self, supplier_user):
        with pytest.raises(NotFoundError):
            services.submit_quotation(supplier_user, uuid.uuid4(), {'unit_price': 10})

    @pytest.mark.parametrize('price', [None, 0, -3, 'cheap'])
    def test_invalid_price(self, supplier_user, supplier, price):
        with pytest.raises(ValidationError):
            services.submit_quotation(supplier_user, RFQFactory().id, {'unit_price': price})
        assert _credits(supplier) == 10

    @pytest.mark.parametrize('price', ['0.001', '0.004', True, 'NaN', 'Infinity', '99999999999999', '1e30'])
    def test_out_of_range_price_is_field_error(self, supplier_user, supplier, price):
        with pytest.raises(ValidationError) as exc_info:
            services.submit_quotation(supplier_user, RFQFactory().id, {'unit_price': price})

        assert exc_info.value.code == 'VALIDATION_ERROR'
        assert [e['field'] for e in exc_info.value.detail['errors']] == ['unit_price']
        assert Quotation.objects.count() == 0
        assert _credits(supplier) == 10

    def test_smallest_price_accepted(self, supplier_user):
        quotation = services.submit_quotation(supplier_user, RFQFactory(quantity=3).id, {'unit_price': '0.006'})
        assert quotation.unit_price == Decimal('0.01')
        assert quotation.total_price == Decimal('0.03')

    def test_total_price_overflow_rejected_before_any_write(self, supplier_user, supplier):
        rfq = RFQFactory(quantity=1000)

        with pytest.raises(ValidationError) as exc_info:
            services.submit_quotation(supplier_user, rfq.id, {'unit_price': '9999999999'})

        assert exc_info.value.detail['errors'][0]['field'] == 'unit_price'
        assert Quotation.objects.count() == 0
        assert CreditTransaction.objects.count() == 0
        assert _credits(supplier) == 10

    def test_large_price_round_trips(self, supplier_user):
        rfq = RFQFactory(quantity=10)
        services.submit_quotation(supplier_user, rfq.id, {'unit_price': '9999999999.99'})

        stored = Quotation.objects.get(rfq=rfq)
        assert stored.unit_price == Decimal('9999999999.99')
        assert stored.total_price == Decimal('99999999999.90')

    def test_inactive_supplier_forbidden(self, supplier_user, supplier):
        supplier.is_active = False
        supplier.save()
        with pytest.raises(ForbiddenError) as exc_info:
            services.submit_quotation(supplier_user, RFQFactory().id, {'unit_price': 10})
        assert exc_info.value.code == 'SUPPLIER_NOT_APPROVED'

    def test_low_balance_warning(self, settings, category):
        settings.LOW_CREDIT_THRESHOLD = 5
        low = SupplierFactory(credits=6, categories=[category])
        user = UserFactory(account_type='supplier', supplier=low)

        services.submit_quotation(user, RFQFactory().id, {'unit_price': 10})

        n = Notification.objects.get(recipient=user, type='low_credits')
        assert n.metadata == {'balance': 5}

    def test_no_low_balance_warning_above_threshold(self, settings, supplier_user):
        settings.LOW_CREDIT_THRESHOLD = 5
        services.submit_quotation(supplier_user, RFQFactory().id, {'unit_price': 10})
        assert not Notification.objects.filter(type='low_credits').exists()

    def test_free_quotations_skip_ledger(self, settings, supplier_user, supplier):
        settings.QUOTATION_CREDIT_COST = 0
        services.submit_quotation(supplier_user, RFQFactory().id, {'unit_price': 10})
        assert _credits(supplier) == 10
        assert CreditTransaction.objects.count() == 0


# ===================================================================
# withdraw_quotation
# ===================================================================

@pytest.mark.django_db
class TestWithdrawQuotation:

    def test_withdraw_refunds_credit(self, supplier_user, supplier):
        rfq = RFQFactory()
        quotation = services.submit_quotation(supplier_user, rfq.id, {'unit_price': 10})

        withdrawn = services.withdraw_quotation(supplier_user, quotation.id)

        assert withdrawn.status == 'withdrawn'
        assert _credits(supplier) == 10
        refund = CreditTransaction.objects.get(supplier=supplier, kind='refund')
        assert refund.amount == 1
        assert refund.quotation_id == quotation.id

    def test_free_quotation_withdraw_has_no_refund(self, supplier_user, supplier):
        quotation = QuotationFactory(supplier=supplier)
        services.withdraw_quotation(supplier_user, quotation.id)
        assert not CreditTransaction.objects.filter(kind='refund').exists()

    def test_other_supplier_forbidden(self, supplier_user):
        quotation = QuotationFactory()
        with pytest.raises(ForbiddenError):
            services.withdraw_quotation(supplier_user, quotation.id)

    def test_only_pending(self, supplier_user, supplier):
        quotation = QuotationFactory(supplier=supplier, status='accepted')
        with pytest.raises(ConflictError) as exc_info:
            services.withdraw_quotation(supplier_user, quotation.id)
        assert exc_info.value.code == 'QUOTATION_NOT_PENDING'


# ===================================================================
# decide_quotation
# ===================================================================

@pytest.mark.django_db
class TestDecideQuotation:

    @pytest.mark.parametrize('status, notification_type', [
        ('accepted', 'quotation_accepted'),
        ('rejected', 'quotation_rejected'),
    ])
    def test_decision_notifies_supplier(self, hospital_user, hospital, status, notification_type):
        quotation = QuotationFactory(rfq=RFQFactory(hospital=hospital))

        result = services.decide_quotation(hospital_user, quotation.id, status)

        assert result.status == status
        n = Notification.objects.get(recipient_id=quotation.submitted_by_id)
        assert n.type == notification_type

    def test_other_hospital_forbidden(self, hospital_user):
        quotation = QuotationFactory()
        with pytest.raises(ForbiddenError) as exc_info:
            services.decide_quotation(hospital_user, quotation.id, 'accepted')
        assert exc_info.value.code == 'NOT_OWNER'

    def test_already_decided(self, hospital_user, hospital):
        quotation = QuotationFactory(rfq=RFQFactory(hospital=hospital), status='rejected')
        with pytest.raises(ConflictError):
            services.decide_quotation(hospital_user, quotation.id, 'accepted')

    def test_invalid_status(self, hospital_user, hospital):
        quotation = QuotationFactory(rfq=RFQFactory(hospital=hospital))
        with pytest.raises(ValidationError):
            services.decide_quotation(hospital_user, quotation.id, 'withdrawn')


# ===================================================================
# update_rfq_status
# ===================================================================

@pytest.mark.django_db
class TestUpdateRFQStatus:

    def test_closing_notifies_pending_quoters(self, hospital_user, hospital):
        rfq = RFQFactory(hospital=hospital)
        pending = QuotationFactory(rfq=rfq)
        QuotationFactory(rfq=rfq, status='rejected')

        result = services.update_rfq_status(hospital_user, rfq.id, 'closed')

        assert result.status == 'closed'
        recipients = list(Notification.objects.filter(type='rfq_closed').values_list('recipient_id', flat=True))
        assert recipients == [pending.submitted_by_id]

    def test_fulfilled_sends_nothing(self, hospital_user, hospital):
        rfq = RFQFactory(hospital=hospital)
        QuotationFactory(rfq=rfq)

        services.update_rfq_status(hospital_user, rfq.id, 'fulfilled')

        assert Notification.objects.count() == 0

    def test_same_status_noop(self, hospital_user, hospital):
        rfq = RFQFactory(hospital=hospital, status='closed')
        QuotationFactory(rfq=rfq)
        services.update_rfq_status(hospital_user, rfq.id, 'closed')
        assert Notification.objects.count() == 0

    def test_other_hospital_forbidden(self, hospital_user):
        with pytest.raises(ForbiddenError):
            services.update_rfq_status(hospital_user, RFQFactory().id, 'closed')

    def test_invalid_status(self, hospital_user, hospital):
        with pytest.raises(ValidationError):
            services.update_rfq_status(hospital_user, RFQFactory(hospital=hospital).id, 'deleted')
