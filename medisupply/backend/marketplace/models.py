import uuid
from django.db import models

from .exceptions import ForbiddenError


VERIFICATION_STATUS_CHOICES = [
    ('pending', 'Pending'),
    ('approved', 'Approved'),
    ('rejected', 'Rejected'),
]


class User(models.Model):
    """
    Marketplace identity.

    账号由外部 auth provider 签发，这里只保存 token_identifier 用来反查调用者。
    verification_status 只能由 verification cascade 修改；账号从不删除，用 is_active 软停用。
    """

    ACCOUNT_TYPE_CHOICES = [
        ('hospital', 'Hospital'),
        ('supplier', 'Supplier'),
        ('hospital_staff', 'Hospital Staff'),
        ('admin', 'Admin'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    token_identifier = models.CharField(max_length=255, unique=True)
    name = models.CharField(max_length=200)
    email = models.EmailField()
    phone = models.CharField(max_length=30, blank=True)
    account_type = models.CharField(max_length=20, choices=ACCOUNT_TYPE_CHOICES)
    verification_status = models.CharField(max_length=20, choices=VERIFICATION_STATUS_CHOICES, default='pending')
    is_active = models.BooleanField(default=True)
    hospital = models.ForeignKey(
        'Hospital', on_delete=models.SET_NULL, blank=True, null=True, related_name='members',
    )
    supplier = models.ForeignKey(
        'Supplier', on_delete=models.SET_NULL, blank=True, null=True, related_name='members',
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'users'
        indexes = [
            models.Index(fields=['verification_status'], name='users_verification_idx'),
            models.Index(fields=['email'], name='users_email_idx'),
        ]

    def __str__(self):
        return f"{self.name} <{self.email}>"

    @property
    def is_admin(self):
        return self.account_type == 'admin'


class Category(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = 'categories'

    def __str__(self):
        return self.name


class Hospital(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    contact_person = models.CharField(max_length=200)
    phone = models.CharField(max_length=30)
    email = models.EmailField()
    hospital_code = models.CharField(max_length=50, unique=True)
    # 外部 storage 的不透明引用，URL 通过 default_storage.url() 解析
    medical_license = models.CharField(max_length=500, blank=True)
    verification_status = models.CharField(max_length=20, choices=VERIFICATION_STATUS_CHOICES, default='pending')
    is_admin_owned = models.BooleanField(default=False)
    created_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, related_name='registered_hospitals',
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'hospitals'
        indexes = [models.Index(fields=['verification_status'], name='hospitals_verification_idx')]

    def __str__(self):
        return self.name

    @property
    def display_name(self):
        return self.name


class Supplier(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    company_name = models.CharField(max_length=200)
    contact_person = models.CharField(max_length=200)
    phone = models.CharField(max_length=30)
    email = models.EmailField()
    cr12 = models.CharField(max_length=500, blank=True)
    categories = models.ManyToManyField(Category, blank=True, related_name='suppliers')
    # 派生余额，只能经由 ledger.record_transaction 修改
    credits = models.IntegerField(default=0)
    verification_status = models.CharField(max_length=20, choices=VERIFICATION_STATUS_CHOICES, default='pending')
    is_active = models.BooleanField(default=True)
    is_admin_owned = models.BooleanField(default=False)
    created_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, related_name='registered_suppliers',
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'suppliers'
        indexes = [models.Index(fields=['verification_status'], name='suppliers_verification_idx')]

    def __str__(self):
        return self.company_name

    @property
    def display_name(self):
        return self.company_name


class RFQ(models.Model):
    URGENCY_CHOICES = [
        ('standard', 'Standard'),
        ('urgent', 'Urgent'),
        ('emergency', 'Emergency'),
    ]
    STATUS_CHOICES = [
        ('open', 'Open'),
        ('closed', 'Closed'),
        ('fulfilled', 'Fulfilled'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    hospital = models.ForeignKey(Hospital, on_delete=models.CASCADE, related_name='rfqs')
    category = models.ForeignKey(Category, on_delete=models.PROTECT, related_name='rfqs')
    product_name = models.CharField(max_length=200)
    quantity = models.PositiveIntegerField()
    unit = models.CharField(max_length=50)
    delivery_location = models.CharField(max_length=300)
    urgency = models.CharField(max_length=20, choices=URGENCY_CHOICES, default='standard')
    specifications = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='open')
    created_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name='rfqs')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'rfqs'
        indexes = [models.Index(fields=['status'], name='rfqs_status_idx')]


class Quotation(models.Model):
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('accepted', 'Accepted'),
        ('rejected', 'Rejected'),
        ('withdrawn', 'Withdrawn'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    rfq = models.ForeignKey(RFQ, on_delete=models.CASCADE, related_name='quotations')
    supplier = models.ForeignKey(Supplier, on_delete=models.CASCADE, related_name='quotations')
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    total_price = models.DecimalField(max_digits=14, decimal_places=2)
    delivery_time = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    submitted_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name='quotations')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'quotations'
        constraints = [
            models.UniqueConstraint(fields=['rfq', 'supplier'], name='uq_quotation_rfq_supplier'),
        ]


class CreditPackage(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=100)
    credits = models.PositiveIntegerField()
    price_kes = models.PositiveIntegerField()
    description = models.TextField(blank=True)
    display_order = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = 'credit_packages'
        ordering = ['display_order']


class CreditTransactionQuerySet(models.QuerySet):
    """Ledger 只允许追加：批量 update / delete 一律拒绝。"""

    def update(self, **kwargs):
        raise ForbiddenError(
            message='Credit transactions are append-only and cannot be updated.',
            code='LEDGER_IMMUTABLE',
        )

    def delete(self):
        raise ForbiddenError(
            message='Credit transactions are append-only and cannot be deleted.',
            code='LEDGER_IMMUTABLE',
        )


class CreditTransaction(models.Model):
    KIND_CHOICES = [
        ('purchase', 'Purchase'),
        ('deduction', 'Deduction'),
        ('refund', 'Refund'),
        ('admin_adjustment', 'Admin Adjustment'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    # 自增序号，保证同一毫秒内写入的两行仍有确定的先后顺序
    sequence = models.BigIntegerField(editable=False)
    supplier = models.ForeignKey(Supplier, on_delete=models.PROTECT, related_name='credit_transactions')
    kind = models.CharField(max_length=20, choices=KIND_CHOICES)
    amount = models.IntegerField()
    balance_after = models.IntegerField()
    description = models.CharField(max_length=500)
    rfq = models.ForeignKey(RFQ, on_delete=models.PROTECT, blank=True, null=True, related_name='+')
    quotation = models.ForeignKey(Quotation, on_delete=models.PROTECT, blank=True, null=True, related_name='+')
    package = models.ForeignKey(CreditPackage, on_delete=models.PROTECT, blank=True, null=True, related_name='+')
    processed_by = models.ForeignKey(User, on_delete=models.PROTECT, blank=True, null=True, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)

    objects = CreditTransactionQuerySet.as_manager()

    class Meta:
        db_table = 'credit_transactions'
        constraints = [
            models.UniqueConstraint(fields=['supplier', 'sequence'], name='uq_credit_tx_supplier_sequence'),
        ]
        indexes = [models.Index(fields=['supplier', '-sequence'], name='credit_tx_supplier_seq_idx')]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ForbiddenError(
                message='Credit transactions are append-only and cannot be updated.',
                code='LEDGER_IMMUTABLE',
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ForbiddenError(
            message='Credit transactions are append-only and cannot be deleted.',
            code='LEDGER_IMMUTABLE',
        )


class CreditPurchase(models.Model):
    """
    两阶段购买：selected → payment_pending → confirmed | failed。

    只有 confirmed 这一步才写 ledger，由外部支付确认事件驱动。
    """

    STATUS_CHOICES = [
        ('selected', 'Selected'),
        ('payment_pending', 'Payment Pending'),
        ('confirmed', 'Confirmed'),
        ('failed', 'Failed'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    supplier = models.ForeignKey(Supplier, on_delete=models.PROTECT, related_name='credit_purchases')
    package = models.ForeignKey(CreditPackage, on_delete=models.PROTECT, related_name='purchases')
    credits = models.PositiveIntegerField()
    price_kes = models.PositiveIntegerField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='selected')
    payment_reference = models.CharField(max_length=255, unique=True, blank=True, null=True)
    failure_reason = models.TextField(blank=True)
    initiated_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name='credit_purchases')
    transaction = models.OneToOneField(
        CreditTransaction, on_delete=models.PROTECT, blank=True, null=True, related_name='purchase',
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    confirmed_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        db_table = 'credit_purchases'


class Notification(models.Model):
    TYPE_CHOICES = [
        ('new_rfq', 'New RFQ'),
        ('quotation_submitted', 'Quotation Submitted'),
        ('quotation_accepted', 'Quotation Accepted'),
        ('quotation_rejected', 'Quotation Rejected'),
        ('rfq_closed', 'RFQ Closed'),
        ('account_verified', 'Account Verified'),
        ('account_rejected', 'Account Rejected'),
        ('low_credits', 'Low Credits'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    recipient = models.ForeignKey(User, on_delete=models.CASCADE, related_name='notifications')
    type = models.CharField(max_length=30, choices=TYPE_CHOICES)
    title = models.CharField(max_length=200)
    message = models.TextField()
    is_read = models.BooleanField(default=False)
    rfq = models.ForeignKey(RFQ, on_delete=models.SET_NULL, blank=True, null=True, related_name='+')
    quotation = models.ForeignKey(Quotation, on_delete=models.SET_NULL, blank=True, null=True, related_name='+')
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'notifications'
        indexes = [
            models.Index(fields=['recipient', 'is_read'], name='notif_recipient_read_idx'),
            models.Index(fields=['recipient', '-created_at'], name='notif_recipient_created_idx'),
        ]
