"""
Views for the billing API.

Settlement runs in its own database transaction, so the settle and resolve
views opt out of ATOMIC_REQUESTS.
"""

import logging
import uuid

from django.db import transaction
from django.shortcuts import get_object_or_404

from rest_framework import generics, permissions, status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from apps.core.permissions import (
    HasStoreAccess,
    get_accessible_store_ids,
    user_can_access_store,
    user_is_store_manager,
)

from .exceptions import (
    BillingConcurrencyError,
    BillingValidationError,
    PartialSettlementError,
)
from .models import ReconciliationCase, Transaction
from .serializers import (
    PricingResultSerializer,
    ReconciliationCaseSerializer,
    SettlementPreviewSerializer,
    SettlementSerializer,
    TransactionDetailSerializer,
    TransactionListSerializer,
)
from .settlement import TransactionWriter

logger = logging.getLogger(__name__)


def billing_error_response(error):
    """Map a billing error to its HTTP response."""
    if isinstance(error, BillingConcurrencyError):
        return Response(error.as_dict(), status=status.HTTP_409_CONFLICT)
    return Response(error.as_dict(), status=status.HTTP_400_BAD_REQUEST)


def store_forbidden_response(store_id):
    return Response(
        {"detail": f"You do not have access to store {store_id}.", "code": "forbidden"},
        status=status.HTTP_403_FORBIDDEN,
    )


class StoreScopedQuerysetMixin:
    """Limit a queryset to the stores the requesting user staffs."""

    store_lookup = "store_id"

    def scope_to_user_stores(self, queryset):
        store_ids = get_accessible_store_ids(self.request.user)
        if store_ids is None:
            return queryset
        return queryset.filter(**{f"{self.store_lookup}__in": store_ids})

    def filter_by_store_param(self, queryset):
        """Apply ?store=<uuid>; a malformed id matches nothing."""
        store_id = self.request.query_params.get("store")
        if not store_id:
            return queryset
        try:
            store_id = uuid.UUID(store_id)
        except ValueError:
            return queryset.none()
        return queryset.filter(**{self.store_lookup: store_id})


@transaction.non_atomic_requests
@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated, HasStoreAccess])
def settle_transaction(request):
    """
    Settle a cart into a transaction.

    Request body:
    {
        "store_id": "uuid",
        "customer_id": "uuid" (optional),
        "items": [
            {
                "item_type": "service|product",
                "item_id": "uuid",
                "quantity": 1,
                "unit_price": "100.00" (only used with is_custom_price),
                "is_custom_price": false (optional)
            }
        ],
        "payment_method": "cash|card|upi",
        "points_to_redeem": 0 (optional),
        "expected_total": "2360.00" (optional, total shown by the preview),
        "notes": "" (optional)
    }

    Responses:
    - 201 with the transaction and its items
    - 202 when the transaction was recorded but needs reconciliation
    - 400 for invalid requests, 409 for retryable conflicts
    """
    serializer = SettlementSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    if not user_can_access_store(request.user, data["store_id"]):
        return store_forbidden_response(data["store_id"])

    try:
        txn = TransactionWriter().settle(
            data["store_id"],
            data.get("customer_id"),
            data["items"],
            data["payment_method"],
            request.user.pk,
            data["points_to_redeem"],
            expected_total=data.get("expected_total"),
            notes=data.get("notes", ""),
        )
    except PartialSettlementError as e:
        payload = TransactionDetailSerializer(e.transaction).data
        payload["error"] = e.as_dict()
        payload["reconciliation_case"] = str(e.reconciliation_case.pk)
        return Response(payload, status=status.HTTP_202_ACCEPTED)
    except (BillingValidationError, BillingConcurrencyError) as e:
        return billing_error_response(e)

    return Response(TransactionDetailSerializer(txn).data, status=status.HTTP_201_CREATED)


@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated, HasStoreAccess])
def preview_transaction(request):
    """
    Price a cart without settling it.

    Takes the settle request body without payment fields and returns the
    pricing breakdown the settlement would produce right now.
    """
    serializer = SettlementPreviewSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    if not user_can_access_store(request.user, data["store_id"]):
        return store_forbidden_response(data["store_id"])

    try:
        pricing = TransactionWriter().preview(
            data["store_id"],
            data.get("customer_id"),
            data["items"],
            data["points_to_redeem"],
        )
    except BillingValidationError as e:
        return billing_error_response(e)

    return Response(PricingResultSerializer(pricing).data)


class TransactionListView(StoreScopedQuerysetMixin, generics.ListAPIView):
    """
    List settled transactions, newest first.

    Supports filtering by store (?store=<uuid>) and status (?status=committed).
    """

    serializer_class = TransactionListSerializer
    permission_classes = [permissions.IsAuthenticated, HasStoreAccess]

    def get_queryset(self):
        queryset = Transaction.objects.select_related("customer").order_by("-created_at")
        queryset = self.scope_to_user_stores(queryset)

        queryset = self.filter_by_store_param(queryset)

        status_filter = self.request.query_params.get("status")
        if status_filter:
            queryset = queryset.filter(status=status_filter)

        return queryset


class TransactionDetailView(StoreScopedQuerysetMixin, generics.RetrieveAPIView):
    """Retrieve a transaction with its items."""

    serializer_class = TransactionDetailSerializer
    permission_classes = [permissions.IsAuthenticated, HasStoreAccess]
    lookup_field = "id"

    def get_queryset(self):
        queryset = Transaction.objects.select_related("store", "customer", "staff")
        queryset = queryset.prefetch_related("items")
        return self.scope_to_user_stores(queryset)


class ReconciliationCaseListView(StoreScopedQuerysetMixin, generics.ListAPIView):
    """
    List reconciliation cases.

    Supports filtering by status (?status=open) and store (?store=<uuid>).
    """

    serializer_class = ReconciliationCaseSerializer
    permission_classes = [permissions.IsAuthenticated, HasStoreAccess]
    store_lookup = "transaction__store_id"

    def get_queryset(self):
        queryset = ReconciliationCase.objects.select_related("transaction").order_by("-created_at")
        queryset = self.scope_to_user_stores(queryset)

        status_filter = self.request.query_params.get("status")
        if status_filter:
            queryset = queryset.filter(status=status_filter)

        queryset = self.filter_by_store_param(queryset)

        return queryset


@transaction.non_atomic_requests
@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated, HasStoreAccess])
def resolve_reconciliation_case(request, case_id):
    """
    Apply the missing side effects of a partially settled transaction.

    Only store managers may resolve cases.
    """
    case = get_object_or_404(
        ReconciliationCase.objects.select_related("transaction"), id=case_id
    )
    store_id = case.transaction.store_id
    if not user_can_access_store(request.user, store_id):
        return store_forbidden_response(store_id)
    if not user_is_store_manager(request.user, store_id):
        return Response(
            {
                "detail": "Only store managers can resolve reconciliation cases.",
                "code": "forbidden",
            },
            status=status.HTTP_403_FORBIDDEN,
        )

    try:
        case = TransactionWriter().resolve_reconciliation(case, resolved_by=request.user)
    except (BillingValidationError, BillingConcurrencyError) as e:
        logger.warning(f"Could not resolve reconciliation case {case_id}: {e}")
        return billing_error_response(e)

    return Response(ReconciliationCaseSerializer(case).data)
