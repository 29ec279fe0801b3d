"""
Signals sent by the billing engine after a settlement is durable.

Receivers (receipts, customer messaging, reporting) connect to
``transaction_settled``; it is sent from a Celery task scheduled on commit,
never from inside the settlement's database transaction.
"""

from django.dispatch import Signal

# Sent with ``transaction`` (a committed Transaction)
transaction_settled = Signal()
