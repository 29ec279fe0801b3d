"""
URL configuration for the billing API.
"""

from django.urls import path

from . import views

app_name = "sales"

urlpatterns = [
    path("api/billing/settle/", views.settle_transaction, name="billing_settle"),
    path("api/billing/preview/", views.preview_transaction, name="billing_preview"),
    path(
        "api/billing/transactions/",
        views.TransactionListView.as_view(),
        name="billing_transaction_list",
    ),
    path(
        "api/billing/transactions/<uuid:id>/",
        views.TransactionDetailView.as_view(),
        name="billing_transaction_detail",
    ),
    path(
        "api/billing/reconciliations/",
        views.ReconciliationCaseListView.as_view(),
        name="billing_reconciliation_list",
    ),
    path(
        "api/billing/reconciliations/<uuid:case_id>/resolve/",
        views.resolve_reconciliation_case,
        name="billing_reconciliation_resolve",
    ),
]
