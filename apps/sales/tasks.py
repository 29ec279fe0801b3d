"""
Celery tasks run after a settlement commits.
"""

import logging

from django.core.mail import mail_admins

from celery import shared_task

from .models import ReconciliationCase, Transaction
from .signals import transaction_settled

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3)
def notify_transaction_settled(self, transaction_id: str):
    """
    Announce a committed transaction to ``transaction_settled`` receivers.

    Args:
        transaction_id: UUID of the committed Transaction
    """
    try:
        txn = Transaction.objects.select_related("store", "customer").get(id=transaction_id)
    except Transaction.DoesNotExist:
        logger.error(f"Transaction {transaction_id} not found")
        return

    if not txn.is_settled():
        logger.info(f"Transaction {txn.invoice_number} is {txn.status}; not announcing")
        return

    try:
        responses = transaction_settled.send_robust(sender=Transaction, transaction=txn)
    except Exception as exc:
        logger.error(f"Failed to announce transaction {transaction_id}: {str(exc)}")
        raise self.retry(exc=exc, countdown=60 * (2**self.request.retries))

    for receiver, response in responses:
        if isinstance(response, Exception):
            logger.error(
                f"Receiver {receiver} failed for transaction {txn.invoice_number}: {response}"
            )

    logger.info(f"Announced settled transaction {txn.invoice_number}")
    return len(responses)


@shared_task(bind=True, max_retries=3)
def send_reconciliation_alert(self, case_id: str):
    """
    Email the site admins about a transaction that needs reconciliation.

    Args:
        case_id: UUID of the ReconciliationCase
    """
    try:
        case = ReconciliationCase.objects.select_related("transaction__store").get(id=case_id)
    except ReconciliationCase.DoesNotExist:
        logger.error(f"ReconciliationCase {case_id} not found")
        return

    if case.status != ReconciliationCase.OPEN:
        return

    txn = case.transaction
    subject = f"Reconciliation required for {txn.invoice_number} ({txn.store.name})"
    message = (
        f"Transaction {txn.invoice_number} in store {txn.store.name} was recorded "
        f"without its {case.describe_missing()}. "
        f"The failure happened during the {case.get_stage_display().lower()} update.\n\n"
        f"Total: {txn.total_amount}\n"
        f"Customer: {txn.customer_id or 'walk-in'}\n"
        f"Error: {case.error_message}\n\n"
        f"Resolve the case with POST /api/billing/reconciliations/{case.pk}/resolve/"
    )

    try:
        mail_admins(subject, message, fail_silently=False)
    except Exception as exc:
        logger.error(f"Failed to send reconciliation alert for case {case_id}: {str(exc)}")
        raise self.retry(exc=exc, countdown=60 * (2**self.request.retries))

    logger.info(f"Sent reconciliation alert for case {case_id}")
