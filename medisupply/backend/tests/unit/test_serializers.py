"""
Unit tests for serializer functions.

覆盖 serialize_purchase 的 status 分支、organization 的创建者 / 文件 URL、quotation 价格格式。
"""
from decimal import Decimal

import pytest

from marketplace.ledger.purchases import confirm_purchase, initiate_purchase, mark_payment_pending
from marketplace.serializers import (
    serialize_hospital,
    serialize_notification_list,
    serialize_purchase,
    serialize_quotation,
    serialize_supplier,
)
from tests.conftest import (
    CategoryFactory,
    CreditPackageFactory,
    HospitalFactory,
    NotificationFactory,
    QuotationFactory,
    SupplierFactory,
    UserFactory,
)


@pytest.mark.django_db
class TestSerializePurchase:

    def test_selected(self, supplier_user):
        purchase = initiate_purchase(supplier_user, CreditPackageFactory(name='Starter').id)
        result = serialize_purchase(purchase)

        assert result['status'] == 'selected'
        assert result['package']['name'] == 'Starter'
        assert result['payment_reference'] is None
        assert 'confirmed_at' not in result
        assert 'failure_reason' not in result

    def test_confirmed(self, supplier_user):
        purchase = initiate_purchase(supplier_user, CreditPackageFactory().id)
        mark_payment_pending(purchase.id, 'PAY-9')
        confirmed = confirm_purchase('PAY-9').purchase

        result = serialize_purchase(confirmed)

        assert result['status'] == 'confirmed'
        assert result['confirmed_at'] is not None
        assert result['transaction_id'] == str(confirmed.transaction_id)


@pytest.mark.django_db
class TestSerializeOrganizations:

    def test_hospital_with_creator_and_license(self, settings):
        settings.MEDIA_URL = '/media/'
        creator = UserFactory(name='Jane', email='jane@hospital.co.ke')
        hospital = HospitalFactory(created_by=creator, medical_license='licenses/kh.pdf')

        result = serialize_hospital(hospital)

        assert result['created_by'] == {'id': str(creator.id), 'name': 'Jane', 'email': 'jane@hospital.co.ke'}
        assert result['medical_license_url'] == '/media/licenses/kh.pdf'

    def test_supplier_without_documents(self):
        supplier = SupplierFactory(categories=[CategoryFactory(name='PPE')], created_by=None)

        result = serialize_supplier(supplier)

        assert result['categories'] == ['PPE']
        assert result['cr12_url'] is None
        assert result['created_by'] is None


@pytest.mark.django_db
def test_quotation_prices_are_strings():
    quotation = QuotationFactory(unit_price=Decimal('12.50'), total_price=Decimal('1250.00'))
    result = serialize_quotation(quotation)
    assert result['unit_price'] == '12.50'
    assert result['total_price'] == '1250.00'


@pytest.mark.django_db
def test_notification_list_count():
    user = UserFactory()
    notifications = NotificationFactory.create_batch(2, recipient=user)
    result = serialize_notification_list(notifications)
    assert result['count'] == 2
    assert {n['id'] for n in result['notifications']} == {str(n.id) for n in notifications}
