"""
Errors raised by the billing and settlement engine.

Three families, each mapped to a distinct API response:
- Validation errors: rejected before any write, fixable by correcting input
- Concurrency errors: another terminal won a race; re-fetch and retry
- Partial settlement: the transaction is recorded but a side effect failed
"""


class BillingError(Exception):
    """Base class for all billing errors."""

    code = "billing_error"
    retryable = False

    def __init__(self, message="", **context):
        super().__init__(message)
        self.context = context

    def as_dict(self):
        data = {"detail": str(self), "code": self.code, "retryable": self.retryable}
        data.update({key: str(value) for key, value in self.context.items()})
        return data


class BillingValidationError(BillingError):
    """Raised when the request itself is invalid."""

    code = "invalid_request"


class EmptyCartError(BillingValidationError):
    """Raised when a settlement or preview has no line items."""

    code = "empty_cart"


class InvalidLineItemError(BillingValidationError):
    """Raised when a line item has a bad price, quantity, type or reference."""

    code = "invalid_line_item"


class InvalidStateError(BillingValidationError):
    """Raised when pricing inputs would produce an impossible discount or tax state."""

    code = "invalid_state"


class UnknownReferenceError(BillingValidationError):
    """Raised when the store, customer or staff member does not exist."""

    code = "unknown_reference"


class PricingMismatchError(BillingValidationError):
    """Raised when the client-previewed total differs from the server total."""

    code = "pricing_mismatch"


class BillingConcurrencyError(BillingError):
    """Raised when a concurrent settlement changed the state this one depended on."""

    code = "concurrency_conflict"
    retryable = True


class InvoiceGenerationError(BillingConcurrencyError):
    """Raised when no unique invoice number could be written in the allowed attempts."""

    code = "invoice_generation_failed"


class InsufficientStockError(BillingConcurrencyError):
    """Raised when a product does not have enough stock for the sale."""

    code = "insufficient_stock"


class InsufficientPointsError(BillingConcurrencyError):
    """Raised when a customer's point balance cannot cover the redemption."""

    code = "insufficient_points"


class PartialSettlementError(BillingError):
    """
    Raised after commit when the transaction was recorded but a stock or
    loyalty update failed and a reconciliation case was opened.
    """

    code = "partial_settlement"

    def __init__(self, message, transaction, reconciliation_case):
        super().__init__(message)
        self.transaction = transaction
        self.reconciliation_case = reconciliation_case
