"""
End-to-end wrap of one invoice.

Step 1 = Decode the original invoice
Step 2 = Create the wrapped ("hold") invoice:
         - same payment hash
         - same expiry time
         - same memo or description hash
         - amount = original amount + wrapper fee
Step 3 = Wait until the wrapped invoice is paid and funds are locked
Step 4 = Pay the original invoice to obtain the preimage
Step 5 = Settle the wrapped invoice with that preimage, or cancel it if step 4 failed
"""

import logging

from .errors import AcceptanceTimeout, DecodeFailed, InvalidWrappedState, LndApiError
from .fees import calculate_wrapped_amount, calculate_wrapped_expiry
from .models import InvoiceState, WrapResult
from .payment import PaymentExecutor, SettlementCoordinator
from .watcher import AcceptanceWatcher
from .wrapped_invoice import WrappedInvoiceManager

logger = logging.getLogger(__name__)


def _log_progress(text):
    logger.info(text)


class WrapOrchestrator:
    """
    Runs steps 1-5 for one payment request at a time.

    No state is kept between calls to wrap(), so several threads may share an
    orchestrator as long as each wraps a different payment hash.
    """

    def __init__(self, gateway, fee_schedule, accept_timeout_seconds=None, progress=None):
        self.gateway = gateway
        self.fee_schedule = fee_schedule
        self.accept_timeout_seconds = accept_timeout_seconds
        self.progress = progress or _log_progress
        self.manager = WrappedInvoiceManager(gateway)
        self.executor = PaymentExecutor(gateway)
        self.coordinator = SettlementCoordinator(gateway)

    def decode(self, payment_request):
        try:
            original = self.gateway.decode_payreq(payment_request)
        except LndApiError as e:
            raise DecodeFailed(f"Failed to decode invoice: {e}", status_code=e.status_code)
        if original.amount_msat <= 0:
            raise DecodeFailed("Invoices without an amount cannot be wrapped")
        return original

    def wrap(self, payment_request, now=None) -> WrapResult:
        original = self.decode(payment_request)
        self.progress(
            f"Original invoice decoded: hash {original.payment_hash}, "
            f"{original.amount_msat} msat, expires at {original.expires_at}"
        )

        wrapped_amount = calculate_wrapped_amount(original.amount_msat, self.fee_schedule)
        wrapped_expiry = calculate_wrapped_expiry(original.timestamp, original.expiry_seconds, now=now)
        self.progress(
            f"Wrapped amount: {wrapped_amount} msat "
            f"(fee {wrapped_amount - original.amount_msat} msat), expiry {wrapped_expiry}s"
        )

        wrapped = self.manager.create_or_recover(original, wrapped_amount, wrapped_expiry)

        if wrapped.state == InvoiceState.OPEN:
            self.progress(f"Pay the wrapped invoice: {wrapped.payment_request}")
            self._wait_for_lock(wrapped)
        elif wrapped.state == InvoiceState.CANCELED:
            raise InvalidWrappedState("Wrapped invoice was canceled")
        elif wrapped.state == InvoiceState.SETTLED:
            raise InvalidWrappedState("Wrapped invoice is already settled")
        self.progress("Wrapped invoice state = ACCEPTED")

        self.progress("Paying original invoice to obtain preimage...")
        outcome = self.executor.attempt(
            original.payment_request,
            self.fee_schedule.fixed_msat,
            payment_hash=original.payment_hash,
        )
        if outcome.succeeded:
            self.progress(f"Original invoice paid, preimage = {outcome.preimage}")
            self.progress("Settling wrapped invoice...")
        else:
            self.progress("Canceling wrapped invoice...")
        preimage = self.coordinator.resolve(wrapped, outcome)

        self.progress("Done!")
        return WrapResult(original=original, wrapped=wrapped, preimage=preimage)

    def _wait_for_lock(self, wrapped):
        watcher = AcceptanceWatcher(self.gateway, timeout_seconds=self.accept_timeout_seconds)
        try:
            watcher.wait_for_lock(wrapped.payment_hash)
        except AcceptanceTimeout as e:
            # Nobody paid in time; stop a late payer from locking funds we no longer watch.
            cancel_error = self.coordinator.cancel(wrapped.payment_hash)
            if cancel_error is not None:
                raise AcceptanceTimeout(
                    f"{e.message} (cancel of wrapped invoice also failed: {cancel_error})"
                )
            raise
