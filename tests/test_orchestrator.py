from dataclasses import replace

import pytest

from invoice_wrapper.errors import (
    AcceptanceTimeout,
    DecodeFailed,
    ForwardingFailed,
    InvalidWrappedState,
    InvoiceCanceled,
    InvoiceSettledPrematurely,
    LndApiError,
    LndTimeoutError,
    SettlementFailed,
    WrappedInvoiceUnavailable,
)
from invoice_wrapper.models import InvoiceState, PaymentOutcome
from invoice_wrapper.orchestrator import WrapOrchestrator

from conftest import NOW, PAYMENT_HASH, PREIMAGE


def run(gateway, fee_schedule, **kwargs):
    lines = []
    orchestrator = WrapOrchestrator(gateway, fee_schedule, progress=lines.append, **kwargs)
    return orchestrator.wrap("lnbc500n1original", now=NOW), lines


def call_names(gateway):
    return [call for call, _ in gateway.calls]


def test_end_to_end(gateway, fee_schedule):
    result, lines = run(gateway, fee_schedule)

    assert gateway.called("add_hold_invoice") == [(PAYMENT_HASH, 51_000, 3000, "coffee", "")]
    assert gateway.called("pay_invoice") == [("lnbc500n1original", 1000)]
    assert gateway.called("settle_invoice") == [(PREIMAGE,)]
    assert not gateway.called("cancel_invoice")
    assert call_names(gateway) == [
        "decode_payreq",
        "add_hold_invoice",
        "lookup_invoice",
        "subscribe_invoice",
        "pay_invoice",
        "settle_invoice",
    ]
    assert result.preimage == PREIMAGE
    assert result.fee_msat == 1000
    assert result.wrapped.payment_hash == result.original.payment_hash
    assert "Pay the wrapped invoice: lnbc510n1wrapped" in lines
    assert lines[-1] == "Done!"


def test_create_timeout_then_lookup_behaves_like_success(gateway, fee_schedule):
    gateway.create_error = LndTimeoutError("hung")
    result, _ = run(gateway, fee_schedule)
    assert result.preimage == PREIMAGE
    assert gateway.called("settle_invoice") == [(PREIMAGE,)]


def test_already_accepted_skips_watcher(gateway, fee_schedule, open_wrapped):
    gateway.create_error = LndApiError("invoice with payment hash already exists")
    gateway.wrapped = replace(open_wrapped, state=InvoiceState.ACCEPTED, payment_request=None)

    result, _ = run(gateway, fee_schedule)

    assert not gateway.called("subscribe_invoice")
    assert gateway.called("settle_invoice") == [(PREIMAGE,)]
    assert result.wrapped.state == InvoiceState.ACCEPTED


@pytest.mark.parametrize("state", [InvoiceState.CANCELED, InvoiceState.SETTLED])
def test_terminal_state_on_lookup(gateway, fee_schedule, open_wrapped, state):
    gateway.wrapped = replace(open_wrapped, state=state)
    with pytest.raises(InvalidWrappedState):
        run(gateway, fee_schedule)
    assert call_names(gateway) == ["decode_payreq", "add_hold_invoice", "lookup_invoice"]


def test_unavailable_wrapped_invoice_has_no_side_effects(gateway, fee_schedule):
    gateway.create_error = LndApiError("boom")
    gateway.wrapped = None
    with pytest.raises(WrappedInvoiceUnavailable):
        run(gateway, fee_schedule)
    assert not gateway.called("cancel_invoice")
    assert not gateway.called("settle_invoice")


def test_canceled_before_accepted_never_pays(gateway, fee_schedule):
    gateway.updates = [{"state": "OPEN"}, {"state": "CANCELED"}]
    with pytest.raises(InvoiceCanceled):
        run(gateway, fee_schedule)
    assert not gateway.called("pay_invoice")
    assert not gateway.called("cancel_invoice")
    assert gateway.subscription_closed is True


def test_settled_before_accepted(gateway, fee_schedule):
    gateway.updates = [{"state": "SETTLED"}]
    with pytest.raises(InvoiceSettledPrematurely):
        run(gateway, fee_schedule)
    assert not gateway.called("pay_invoice")


def test_forwarding_failure_cancels_once(gateway, fee_schedule):
    gateway.pay_outcome = PaymentOutcome(error="insufficient local balance")

    with pytest.raises(ForwardingFailed) as excinfo:
        run(gateway, fee_schedule)

    assert gateway.called("cancel_invoice") == [(PAYMENT_HASH,)]
    assert not gateway.called("settle_invoice")
    assert excinfo.value.payment_error == "insufficient local balance"


def test_settlement_failure_surfaces_without_cancel(gateway, fee_schedule):
    gateway.settle_error = LndApiError("settle failed")
    with pytest.raises(SettlementFailed):
        run(gateway, fee_schedule)
    assert not gateway.called("cancel_invoice")


def test_acceptance_timeout_cancels_open_invoice(gateway, fee_schedule):
    gateway.updates = []
    gateway.stream_error = LndTimeoutError("read timed out")

    with pytest.raises(AcceptanceTimeout):
        run(gateway, fee_schedule, accept_timeout_seconds=60)

    assert gateway.called("cancel_invoice") == [(PAYMENT_HASH,)]
    assert not gateway.called("pay_invoice")


def test_decode_failure_has_no_side_effects(gateway, fee_schedule):
    def broken_decode(payment_request):
        raise LndApiError("invalid index of 1")

    gateway.decode_payreq = broken_decode
    with pytest.raises(DecodeFailed):
        run(gateway, fee_schedule)
    assert gateway.calls == []


def test_zero_amount_invoice_is_rejected(gateway, fee_schedule, original_invoice):
    gateway.original = replace(original_invoice, amount_msat=0)
    with pytest.raises(DecodeFailed):
        run(gateway, fee_schedule)
    assert call_names(gateway) == ["decode_payreq"]
