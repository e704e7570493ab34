from django.urls import path

from . import views

urlpatterns = [
    # admin
    path('admin/hospitals/', views.AdminHospitalListView.as_view(), name='admin-hospital-list'),
    path('admin/hospitals/<uuid:organization_id>/decision/', views.HospitalDecisionView.as_view(),
         name='admin-hospital-decision'),
    path('admin/suppliers/', views.AdminSupplierListView.as_view(), name='admin-supplier-list'),
    path('admin/suppliers/<uuid:organization_id>/decision/', views.SupplierDecisionView.as_view(),
         name='admin-supplier-decision'),
    path('admin/suppliers/<uuid:supplier_id>/credits/adjust/', views.AdjustCreditsView.as_view(),
         name='admin-credit-adjust'),
    path('admin/stats/', views.AdminStatsView.as_view(), name='admin-stats'),
    path('admin/users/', views.AdminUserListView.as_view(), name='admin-user-list'),
    path('admin/users/<uuid:user_id>/toggle-active/', views.ToggleUserActiveView.as_view(),
         name='admin-user-toggle-active'),
    path('admin/rfqs/', views.AdminRFQListView.as_view(), name='admin-rfq-list'),
    path('admin/accounts/', views.AdminAccountsView.as_view(), name='admin-accounts'),
    path('admin/accounts/hospital/', views.AdminHospitalSetupView.as_view(), name='admin-account-hospital'),
    path('admin/accounts/supplier/', views.AdminSupplierSetupView.as_view(), name='admin-account-supplier'),
    path('admin/credit-packages/', views.AdminPackageListView.as_view(), name='admin-package-list'),
    path('admin/credit-packages/<uuid:package_id>/', views.AdminPackageDetailView.as_view(),
         name='admin-package-detail'),

    # credits
    path('credits/balance/', views.CreditBalanceView.as_view(), name='credit-balance'),
    path('credits/history/', views.CreditHistoryView.as_view(), name='credit-history'),
    path('credits/summary/', views.CreditSummaryView.as_view(), name='credit-summary'),
    path('credits/packages/', views.CreditPackageListView.as_view(), name='credit-packages'),
    path('credits/purchases/', views.CreditPurchaseView.as_view(), name='credit-purchase'),
    path('payments/confirmations/', views.PaymentConfirmationView.as_view(), name='payment-confirmation'),

    # notifications
    path('notifications/', views.NotificationListView.as_view(), name='notification-list'),
    path('notifications/unread-count/', views.UnreadCountView.as_view(), name='notification-unread-count'),
    path('notifications/read-all/', views.NotificationReadAllView.as_view(), name='notification-read-all'),
    path('notifications/<uuid:notification_id>/read/', views.NotificationReadView.as_view(),
         name='notification-read'),

    # marketplace
    path('rfqs/', views.RFQCreateView.as_view(), name='rfq-create'),
    path('rfqs/<uuid:rfq_id>/status/', views.RFQStatusView.as_view(), name='rfq-status'),
    path('rfqs/<uuid:rfq_id>/quotations/', views.QuotationCreateView.as_view(), name='quotation-create'),
    path('quotations/<uuid:quotation_id>/withdraw/', views.QuotationWithdrawView.as_view(),
         name='quotation-withdraw'),
    path('quotations/<uuid:quotation_id>/decision/', views.QuotationDecisionView.as_view(),
         name='quotation-decision'),
]
