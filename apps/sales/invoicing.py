"""
Invoice number generation.

Numbers look like ``INV-20240615-0001``: a configurable prefix, the store's
local date and a four digit sequence that restarts every day. The sequence
lives in an InvoiceSequence row per store and day which is locked for the
rest of the calling transaction, so concurrent terminals of one store take
turns and never receive the same number.
"""

import logging

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from .models import InvoiceSequence

logger = logging.getLogger(__name__)


def format_invoice_number(prefix, period, value):
    return f"{prefix}-{period}-{value:04d}"


class InvoiceSequencer:
    """
    Hands out per store invoice numbers.

    Must be called inside the transaction that writes the invoice; the
    counter row lock is released when that transaction ends.
    """

    def __init__(self, prefix=None):
        self.prefix = prefix or getattr(settings, "BILLING_INVOICE_PREFIX", "INV")

    def next(self, store, on_date=None) -> str:
        """
        Reserve the next invoice number for a store.

        Args:
            store: Store instance
            on_date: Date the invoice is issued on (defaults to today, local time)

        Returns:
            Invoice number string
        """
        on_date = on_date or timezone.localdate()
        period = on_date.strftime("%Y%m%d")

        with transaction.atomic():
            sequence, created = InvoiceSequence.objects.select_for_update().get_or_create(
                store=store, period=period
            )
            if created:
                logger.info(f"Started invoice sequence for store {store.code} on {period}")

            InvoiceSequence.objects.filter(pk=sequence.pk).update(
                last_value=F("last_value") + 1, updated_at=timezone.now()
            )
            sequence.refresh_from_db(fields=["last_value"])

        return format_invoice_number(self.prefix, period, sequence.last_value)
