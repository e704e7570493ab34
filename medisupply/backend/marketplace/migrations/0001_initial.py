import uuid

import django.db.models.deletion
from django.db import migrations, models

VERIFICATION_STATUS_CHOICES = [
    ('pending', 'Pending'),
    ('approved', 'Approved'),
    ('rejected', 'Rejected'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Category',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=200)),
                ('description', models.TextField(blank=True)),
                ('is_active', models.BooleanField(default=True)),
            ],
            options={
                'db_table': 'categories',
            },
        ),
        migrations.CreateModel(
            name='CreditPackage',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=100)),
                ('credits', models.PositiveIntegerField()),
                ('price_kes', models.PositiveIntegerField()),
                ('description', models.TextField(blank=True)),
                ('display_order', models.IntegerField(default=0)),
                ('is_active', models.BooleanField(default=True)),
            ],
            options={
                'db_table': 'credit_packages',
                'ordering': ['display_order'],
            },
        ),
        migrations.CreateModel(
            name='User',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('token_identifier', models.CharField(max_length=255, unique=True)),
                ('name', models.CharField(max_length=200)),
                ('email', models.EmailField(max_length=254)),
                ('phone', models.CharField(blank=True, max_length=30)),
                ('account_type', models.CharField(
                    choices=[
                        ('hospital', 'Hospital'),
                        ('supplier', 'Supplier'),
                        ('hospital_staff', 'Hospital Staff'),
                        ('admin', 'Admin'),
                    ],
                    max_length=20,
                )),
                ('verification_status', models.CharField(
                    choices=VERIFICATION_STATUS_CHOICES, default='pending', max_length=20,
                )),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'db_table': 'users',
                'indexes': [
                    models.Index(fields=['verification_status'], name='users_verification_idx'),
                    models.Index(fields=['email'], name='users_email_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Hospital',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=200)),
                ('contact_person', models.CharField(max_length=200)),
                ('phone', models.CharField(max_length=30)),
                ('email', models.EmailField(max_length=254)),
                ('hospital_code', models.CharField(max_length=50, unique=True)),
                ('medical_license', models.CharField(blank=True, max_length=500)),
                ('verification_status', models.CharField(
                    choices=VERIFICATION_STATUS_CHOICES, default='pending', max_length=20,
                )),
                ('is_admin_owned', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('created_by', models.ForeignKey(
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='registered_hospitals',
                    to='marketplace.user',
                )),
            ],
            options={
                'db_table': 'hospitals',
                'indexes': [
                    models.Index(fields=['verification_status'], name='hospitals_verification_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Supplier',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('company_name', models.CharField(max_length=200)),
                ('contact_person', models.CharField(max_length=200)),
                ('phone', models.CharField(max_length=30)),
                ('email', models.EmailField(max_length=254)),
                ('cr12', models.CharField(blank=True, max_length=500)),
                ('credits', models.IntegerField(default=0)),
                ('verification_status', models.CharField(
                    choices=VERIFICATION_STATUS_CHOICES, default='pending', max_length=20,
                )),
                ('is_active', models.BooleanField(default=True)),
                ('is_admin_owned', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('categories', models.ManyToManyField(
                    blank=True, related_name='suppliers', to='marketplace.category',
                )),
                ('created_by', models.ForeignKey(
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='registered_suppliers',
                    to='marketplace.user',
                )),
            ],
            options={
                'db_table': 'suppliers',
                'indexes': [
                    models.Index(fields=['verification_status'], name='suppliers_verification_idx'),
                ],
            },
        ),
        migrations.AddField(
            model_name='user',
            name='hospital',
            field=models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name='members',
                to='marketplace.hospital',
            ),
        ),
        migrations.AddField(
            model_name='user',
            name='supplier',
            field=models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name='members',
                to='marketplace.supplier',
            ),
        ),
        migrations.CreateModel(
            name='RFQ',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('product_name', models.CharField(max_length=200)),
                ('quantity', models.PositiveIntegerField()),
                ('unit', models.CharField(max_length=50)),
                ('delivery_location', models.CharField(max_length=300)),
                ('urgency', models.CharField(
                    choices=[('standard', 'Standard'), ('urgent', 'Urgent'), ('emergency', 'Emergency')],
                    default='standard',
                    max_length=20,
                )),
                ('specifications', models.TextField(blank=True)),
                ('status', models.CharField(
                    choices=[('open', 'Open'), ('closed', 'Closed'), ('fulfilled', 'Fulfilled')],
                    default='open',
                    max_length=20,
                )),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('category', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='rfqs',
                    to='marketplace.category',
                )),
                ('created_by', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='rfqs',
                    to='marketplace.user',
                )),
                ('hospital', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='rfqs',
                    to='marketplace.hospital',
                )),
            ],
            options={
                'db_table': 'rfqs',
                'indexes': [
                    models.Index(fields=['status'], name='rfqs_status_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Quotation',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('unit_price', models.DecimalField(decimal_places=2, max_digits=12)),
                ('total_price', models.DecimalField(decimal_places=2, max_digits=14)),
                ('delivery_time', models.CharField(blank=True, max_length=100)),
                ('notes', models.TextField(blank=True)),
                ('status', models.CharField(
                    choices=[
                        ('pending', 'Pending'),
                        ('accepted', 'Accepted'),
                        ('rejected', 'Rejected'),
                        ('withdrawn', 'Withdrawn'),
                    ],
                    default='pending',
                    max_length=20,
                )),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('rfq', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='quotations',
                    to='marketplace.rfq',
                )),
                ('submitted_by', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='quotations',
                    to='marketplace.user',
                )),
                ('supplier', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='quotations',
                    to='marketplace.supplier',
                )),
            ],
            options={
                'db_table': 'quotations',
                'constraints': [
                    models.UniqueConstraint(fields=('rfq', 'supplier'), name='uq_quotation_rfq_supplier'),
                ],
            },
        ),
        migrations.CreateModel(
            name='CreditTransaction',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('sequence', models.BigIntegerField(editable=False)),
                ('kind', models.CharField(
                    choices=[
                        ('purchase', 'Purchase'),
                        ('deduction', 'Deduction'),
                        ('refund', 'Refund'),
                        ('admin_adjustment', 'Admin Adjustment'),
                    ],
                    max_length=20,
                )),
                ('amount', models.IntegerField()),
                ('balance_after', models.IntegerField()),
                ('description', models.CharField(max_length=500)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('package', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='+',
                    to='marketplace.creditpackage',
                )),
                ('processed_by', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='+',
                    to='marketplace.user',
                )),
                ('quotation', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='+',
                    to='marketplace.quotation',
                )),
                ('rfq', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='+',
                    to='marketplace.rfq',
                )),
                ('supplier', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='credit_transactions',
                    to='marketplace.supplier',
                )),
            ],
            options={
                'db_table': 'credit_transactions',
                'indexes': [
                    models.Index(fields=['supplier', '-sequence'], name='credit_tx_supplier_seq_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('supplier', 'sequence'), name='uq_credit_tx_supplier_sequence'),
                ],
            },
        ),
        migrations.CreateModel(
            name='CreditPurchase',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('credits', models.PositiveIntegerField()),
                ('price_kes', models.PositiveIntegerField()),
                ('status', models.CharField(
                    choices=[
                        ('selected', 'Selected'),
                        ('payment_pending', 'Payment Pending'),
                        ('confirmed', 'Confirmed'),
                        ('failed', 'Failed'),
                    ],
                    default='selected',
                    max_length=20,
                )),
                ('payment_reference', models.CharField(blank=True, max_length=255, null=True, unique=True)),
                ('failure_reason', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('confirmed_at', models.DateTimeField(blank=True, null=True)),
                ('initiated_by', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='credit_purchases',
                    to='marketplace.user',
                )),
                ('package', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='purchases',
                    to='marketplace.creditpackage',
                )),
                ('supplier', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='credit_purchases',
                    to='marketplace.supplier',
                )),
                ('transaction', models.OneToOneField(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='purchase',
                    to='marketplace.credittransaction',
                )),
            ],
            options={
                'db_table': 'credit_purchases',
            },
        ),
        migrations.CreateModel(
            name='Notification',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('type', models.CharField(
                    choices=[
                        ('new_rfq', 'New RFQ'),
                        ('quotation_submitted', 'Quotation Submitted'),
                        ('quotation_accepted', 'Quotation Accepted'),
                        ('quotation_rejected', 'Quotation Rejected'),
                        ('rfq_closed', 'RFQ Closed'),
                        ('account_verified', 'Account Verified'),
                        ('account_rejected', 'Account Rejected'),
                        ('low_credits', 'Low Credits'),
                    ],
                    max_length=30,
                )),
                ('title', models.CharField(max_length=200)),
                ('message', models.TextField()),
                ('is_read', models.BooleanField(default=False)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('quotation', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='+',
                    to='marketplace.quotation',
                )),
                ('recipient', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='notifications',
                    to='marketplace.user',
                )),
                ('rfq', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='+',
                    to='marketplace.rfq',
                )),
            ],
            options={
                'db_table': 'notifications',
                'indexes': [
                    models.Index(fields=['recipient', 'is_read'], name='notif_recipient_read_idx'),
                    models.Index(fields=['recipient', '-created_at'], name='notif_recipient_created_idx'),
                ],
            },
        ),
    ]
