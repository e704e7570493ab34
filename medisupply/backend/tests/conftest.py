"""
Shared fixtures for all tests.

factory-boy factories live here so both unit/ and integration/ can import them.
"""
from decimal import Decimal

import factory
import pytest
from django.test import Client

from marketplace.models import (
    RFQ,
    Category,
    CreditPackage,
    Hospital,
    Notification,
    Quotation,
    Supplier,
    User,
)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

class UserFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = User

    token_identifier = factory.Sequence(lambda n: f'token-{n}')
    name = factory.Sequence(lambda n: f'User {n}')
    email = factory.Sequence(lambda n: f'user{n}@example.co.ke')
    account_type = 'supplier'
    verification_status = 'approved'


class CategoryFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Category

    name = factory.Sequence(lambda n: f'Category {n}')


class HospitalFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Hospital

    name = factory.Sequence(lambda n: f'Hospital {n}')
    contact_person = 'Dr. Wanjiku'
    phone = '+254700000000'
    email = factory.Sequence(lambda n: f'hospital{n}@example.co.ke')
    hospital_code = factory.Sequence(lambda n: f'HOSP-{1000 + n}')
    verification_status = 'approved'


class SupplierFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Supplier

    company_name = factory.Sequence(lambda n: f'Supplier {n} Ltd')
    contact_person = 'Otieno'
    phone = '+254711000000'
    email = factory.Sequence(lambda n: f'supplier{n}@example.co.ke')
    credits = 0
    verification_status = 'approved'

    @factory.post_generation
    def categories(self, create, extracted, **kwargs):
        if create and extracted:
            self.categories.set(extracted)


class CreditPackageFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = CreditPackage

    name = factory.Sequence(lambda n: f'Package {n}')
    credits = 10
    price_kes = 500


class RFQFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = RFQ

    hospital = factory.SubFactory(HospitalFactory)
    category = factory.SubFactory(CategoryFactory)
    product_name = 'Surgical Gloves'
    quantity = 100
    unit = 'boxes'
    delivery_location = 'Nairobi'
    created_by = factory.SubFactory(
        UserFactory,
        account_type='hospital',
        hospital=factory.SelfAttribute('..hospital'),
    )


class QuotationFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Quotation

    rfq = factory.SubFactory(RFQFactory)
    supplier = factory.SubFactory(SupplierFactory)
    unit_price = Decimal('125.00')
    total_price = Decimal('12500.00')
    submitted_by = factory.SubFactory(
        UserFactory,
        supplier=factory.SelfAttribute('..supplier'),
    )


class NotificationFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Notification

    recipient = factory.SubFactory(UserFactory)
    type = 'new_rfq'
    title = 'New RFQ Available'
    message = 'Hospital 1 posted a new RFQ for Surgical Gloves in Category 1'


def auth(user):
    """Django test Client 用的 Authorization 头。"""
    return {'HTTP_AUTHORIZATION': f'Bearer {user.token_identifier}'}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def api_client():
    """Django test client for integration tests."""
    return Client()


@pytest.fixture
def admin_user(db):
    return UserFactory(account_type='admin', name='Admin')


@pytest.fixture
def hospital(db):
    return HospitalFactory()


@pytest.fixture
def hospital_user(hospital):
    return UserFactory(account_type='hospital', hospital=hospital)


@pytest.fixture
def category(db):
    return CategoryFactory(name='PPE')


@pytest.fixture
def supplier(category):
    return SupplierFactory(credits=10, categories=[category])


@pytest.fixture
def supplier_user(supplier):
    return UserFactory(account_type='supplier', supplier=supplier)
