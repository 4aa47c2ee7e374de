import hashlib
from contextlib import contextmanager

import pytest

from invoice_wrapper.errors import LndApiError
from invoice_wrapper.models import (
    FeeSchedule,
    InvoiceState,
    OriginalInvoice,
    PaymentOutcome,
    WrappedInvoice,
)

PREIMAGE = "abc123"
PAYMENT_HASH = hashlib.sha256(bytes.fromhex(PREIMAGE)).hexdigest()
NOW = 1_700_000_000


class FakeGateway:
    """In-memory stand-in for LndRestClient that records every call."""

    def __init__(self, original, wrapped=None, updates=(), pay_outcome=None):
        self.original = original
        self.wrapped = wrapped
        self.updates = list(updates)
        self.pay_outcome = pay_outcome or PaymentOutcome(preimage=PREIMAGE)
        self.create_error = None
        self.lookup_error = None
        self.stream_error = None
        self.cancel_error = None
        self.settle_error = None
        self.calls = []
        self.subscription_closed = None

    def called(self, name):
        return [args for call, args in self.calls if call == name]

    def decode_payreq(self, payment_request):
        self.calls.append(("decode_payreq", (payment_request,)))
        return self.original

    def add_hold_invoice(self, payment_hash, value_msat, expiry_seconds, memo="", description_hash=""):
        self.calls.append(
            ("add_hold_invoice", (payment_hash, value_msat, expiry_seconds, memo, description_hash))
        )
        if self.create_error:
            raise self.create_error
        return {}

    def lookup_invoice(self, payment_hash):
        self.calls.append(("lookup_invoice", (payment_hash,)))
        if self.lookup_error:
            raise self.lookup_error
        return self.wrapped

    @contextmanager
    def subscribe_invoice(self, payment_hash, read_timeout=None):
        self.calls.append(("subscribe_invoice", (payment_hash, read_timeout)))
        self.subscription_closed = False
        try:
            yield self._stream()
        finally:
            self.subscription_closed = True

    def _stream(self):
        for update in self.updates:
            yield update
        if self.stream_error:
            raise self.stream_error

    def pay_invoice(self, payment_request, fee_limit_msat):
        self.calls.append(("pay_invoice", (payment_request, fee_limit_msat)))
        if isinstance(self.pay_outcome, LndApiError):
            raise self.pay_outcome
        return self.pay_outcome

    def cancel_invoice(self, payment_hash):
        self.calls.append(("cancel_invoice", (payment_hash,)))
        if self.cancel_error:
            raise self.cancel_error
        return {}

    def settle_invoice(self, preimage):
        self.calls.append(("settle_invoice", (preimage,)))
        if self.settle_error:
            raise self.settle_error
        return {}


@pytest.fixture
def fee_schedule():
    """0% plus the minimum fixed fee."""
    return FeeSchedule(percent=0.0, fixed_msat=1000)


@pytest.fixture
def original_invoice():
    return OriginalInvoice(
        payment_request="lnbc500n1original",
        payment_hash=PAYMENT_HASH,
        amount_msat=50_000,
        timestamp=NOW - 600,
        expiry_seconds=3600,
        description="coffee",
    )


@pytest.fixture
def open_wrapped():
    return WrappedInvoice(
        payment_hash=PAYMENT_HASH,
        amount_msat=51_000,
        expiry_seconds=3000,
        state=InvoiceState.OPEN,
        payment_request="lnbc510n1wrapped",
    )


@pytest.fixture
def gateway(original_invoice, open_wrapped):
    return FakeGateway(
        original_invoice,
        wrapped=open_wrapped,
        updates=[{"state": "OPEN"}, {"state": "ACCEPTED"}],
    )
