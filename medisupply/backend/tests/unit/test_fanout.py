"""
Unit tests for the notification fan-out engine.

每个事件：收件人集合对不对、每人一条、类型和文案对不对。
"""
from decimal import Decimal
from unittest.mock import patch

import pytest

from marketplace.exceptions import ValidationError
from marketplace.models import Notification
from marketplace.notifications import (
    LowCredits,
    NewRFQ,
    QuotationStatusChanged,
    QuotationSubmitted,
    RFQClosed,
    VerificationDecided,
    notify,
)
from marketplace.notifications.fanout import expand, format_kes
from tests.conftest import (
    CategoryFactory,
    HospitalFactory,
    QuotationFactory,
    RFQFactory,
    SupplierFactory,
    UserFactory,
)


def _recipients(created):
    return sorted(str(n.recipient_id) for n in created)


class TestFormatKes:

    def test_whole_amount(self):
        assert format_kes(Decimal('12500.00')) == 'KES 12,500'

    def test_fractional_amount(self):
        assert format_kes(Decimal('99.5')) == 'KES 99.50'


@pytest.mark.django_db
class TestNewRFQ:

    def test_only_matching_approved_active_suppliers(self):
        ppe = CategoryFactory(name='PPE')
        other = CategoryFactory(name='Lab')

        matching = SupplierFactory(categories=[ppe, other])
        pending = SupplierFactory(categories=[ppe], verification_status='pending')
        inactive = SupplierFactory(categories=[ppe], is_active=False)
        wrong_category = SupplierFactory(categories=[other])

        a = UserFactory(supplier=matching)
        b = UserFactory(supplier=matching)
        for s in (pending, inactive, wrong_category):
            UserFactory(supplier=s)

        rfq = RFQFactory(category=ppe)
        created = notify(NewRFQ(
            rfq_id=rfq.id, category_id=ppe.id, product_name='N95 Masks', hospital_name='Aga Khan',
        ))

        assert _recipients(created) == sorted([str(a.id), str(b.id)])
        assert all(n.type == 'new_rfq' for n in created)
        assert created[0].title == 'New RFQ Available'
        assert created[0].message == 'Aga Khan posted a new RFQ for N95 Masks in PPE'
        assert created[0].rfq_id == rfq.id

    def test_no_matching_suppliers_creates_nothing(self):
        category = CategoryFactory()
        rfq = RFQFactory(category=category)

        created = notify(NewRFQ(
            rfq_id=rfq.id, category_id=category.id, product_name='Gauze', hospital_name='MP Shah',
        ))

        assert created == []
        assert Notification.objects.count() == 0


@pytest.mark.django_db
class TestQuotationSubmitted:

    def test_notifies_every_hospital_member(self):
        hospital = HospitalFactory()
        owner = UserFactory(account_type='hospital', hospital=hospital)
        staff = UserFactory(account_type='hospital_staff', hospital=hospital)
        UserFactory(account_type='hospital', hospital=HospitalFactory())

        quotation = QuotationFactory(rfq=RFQFactory(hospital=hospital))
        created = notify(QuotationSubmitted(
            quotation_id=quotation.id,
            rfq_id=quotation.rfq_id,
            hospital_id=hospital.id,
            supplier_name='MedEquip Ltd',
            product_name='Surgical Gloves',
            total_price=Decimal('12500.00'),
        ))

        # RFQFactory 也会建一个 hospital 账号（created_by）
        expected = {str(owner.id), str(staff.id), str(quotation.rfq.created_by_id)}
        assert set(_recipients(created)) == expected
        n = created[0]
        assert n.type == 'quotation_submitted'
        assert n.title == 'New Quotation Received'
        assert n.message == 'MedEquip Ltd submitted a quotation for Surgical Gloves - KES 12,500'
        assert n.metadata['price'] == 12500.0

    @pytest.mark.parametrize('price', [Decimal('0'), Decimal('-5'), 'abc', Decimal('NaN')])
    def test_non_positive_price_rejected(self, price):
        with pytest.raises(ValidationError) as exc_info:
            QuotationSubmitted(
                quotation_id=None, rfq_id=None, hospital_id=None,
                supplier_name='x', product_name='y', total_price=price,
            )
        assert exc_info.value.code == 'INVALID_EVENT_PAYLOAD'


@pytest.mark.django_db
class TestQuotationStatusChanged:

    @pytest.mark.parametrize('status, expected_type, expected_title', [
        ('accepted', 'quotation_accepted', 'Quotation Accepted!'),
        ('rejected', 'quotation_rejected', 'Quotation Not Selected'),
    ])
    def test_type_follows_status(self, status, expected_type, expected_title):
        supplier = SupplierFactory()
        member = UserFactory(supplier=supplier)
        quotation = QuotationFactory(supplier=supplier)

        created = notify(QuotationStatusChanged(
            quotation_id=quotation.id,
            supplier_id=supplier.id,
            status=status,
            hospital_name='Kenyatta',
            product_name='Syringes',
        ))

        recipients = set(_recipients(created))
        assert str(member.id) in recipients
        assert str(quotation.submitted_by_id) in recipients
        assert {n.type for n in created} == {expected_type}
        assert created[0].title == expected_title
        assert 'Kenyatta' in created[0].message

    def test_invalid_status_rejected(self):
        with pytest.raises(ValidationError):
            QuotationStatusChanged(
                quotation_id=None, supplier_id=None, status='withdrawn',
                hospital_name='x', product_name='y',
            )


@pytest.mark.django_db
class TestVerificationDecided:

    def test_single_recipient(self):
        user = UserFactory()
        created = notify(VerificationDecided(
            identity_id=user.id, outcome='rejected', organization_name='X', reason='   ',
        ))
        assert len(created) == 1
        assert created[0].type == 'account_rejected'
        assert created[0].message.startswith('Your supplier registration has been reviewed')


@pytest.mark.django_db
class TestRFQClosed:

    def test_only_suppliers_with_pending_quotations(self):
        rfq = RFQFactory()
        pending = QuotationFactory(rfq=rfq)
        QuotationFactory(rfq=rfq, status='withdrawn')
        QuotationFactory()  # 其他 RFQ

        created = notify(RFQClosed(rfq_id=rfq.id, product_name='Gloves', hospital_name='Nairobi West'))

        assert _recipients(created) == [str(pending.submitted_by_id)]
        assert created[0].type == 'rfq_closed'


@pytest.mark.django_db
class TestLowCredits:

    def test_supplier_members_notified(self):
        supplier = SupplierFactory()
        member = UserFactory(supplier=supplier)

        created = notify(LowCredits(supplier_id=supplier.id, balance=2))

        assert _recipients(created) == [str(member.id)]
        assert created[0].message == 'Your credit balance is 2. Purchase credits to keep responding to RFQs.'
        assert created[0].metadata == {'balance': 2}


class TestRegistry:

    def test_unknown_event(self):
        with pytest.raises(ValidationError) as exc_info:
            expand(object())
        assert exc_info.value.code == 'UNKNOWN_EVENT'


@pytest.mark.django_db
class TestEmailScheduling:

    @patch('marketplace.tasks.send_notification_email')
    def test_emails_dispatched_after_commit(self, mock_task, settings, django_capture_on_commit_callbacks):
        settings.NOTIFICATION_EMAILS_ENABLED = True
        supplier = SupplierFactory()
        UserFactory(supplier=supplier)
        UserFactory(supplier=supplier)

        with django_capture_on_commit_callbacks(execute=True):
            created = notify(LowCredits(supplier_id=supplier.id, balance=1))
            mock_task.delay.assert_not_called()

        assert mock_task.delay.call_count == 2
        dispatched = {c.args[0] for c in mock_task.delay.call_args_list}
        assert dispatched == {str(n.id) for n in created}

    @patch('marketplace.tasks.send_notification_email')
    def test_disabled_by_default(self, mock_task, django_capture_on_commit_callbacks):
        supplier = SupplierFactory()
        UserFactory(supplier=supplier)

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            notify(LowCredits(supplier_id=supplier.id, balance=1))

        assert callbacks == []
        mock_task.delay.assert_not_called()
