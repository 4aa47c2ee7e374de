"""Error classes raised while wrapping and forwarding an invoice."""


class WrapperError(Exception):
    """Base class for every expected failure of a wrap operation."""

    def __init__(self, message, status_code=None, response_data=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_data = response_data


class ConfigInvalid(WrapperError):
    """Represents a missing or invalid configuration value."""


class LndApiError(WrapperError):
    """Represents an error when interacting with the LND REST API."""


class LndTimeoutError(LndApiError):
    """A request to LND did not complete within its timeout."""


class InvalidAmount(WrapperError):
    """A computed amount or expiry is not a finite non-negative integer."""


class DecodeFailed(WrapperError):
    """The original payment request could not be decoded."""


class WrappedInvoiceUnavailable(WrapperError):
    """The hold invoice does not exist after the create attempt."""


class InvalidWrappedState(WrapperError):
    """The hold invoice was found in a state (or shape) we cannot continue from."""


class SubscriptionFailed(WrapperError):
    """The invoice subscription broke or delivered an unreadable message."""


class AcceptanceTimeout(SubscriptionFailed):
    """No payer locked funds before the configured deadline."""


class InvoiceCanceled(WrapperError):
    """The hold invoice was canceled before funds were locked."""


class InvoiceSettledPrematurely(WrapperError):
    """The hold invoice was settled without being accepted first."""


class ForwardingFailed(WrapperError):
    """Paying the original invoice did not yield a preimage.

    ``payment_error`` is the node's error text, unchanged. ``cancel_error``
    holds the failure of the compensating cancel, if any.
    """

    def __init__(self, message, payment_error=None, cancel_error=None, **kwargs):
        super().__init__(message, **kwargs)
        self.payment_error = payment_error
        self.cancel_error = cancel_error

    def __str__(self):
        if self.cancel_error is None:
            return self.message
        return f"{self.message} (cancel of wrapped invoice also failed: {self.cancel_error})"


class SettlementFailed(WrapperError):
    """The original invoice was paid but the hold invoice could not be settled."""
