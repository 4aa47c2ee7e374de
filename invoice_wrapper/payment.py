"""Paying the original invoice and resolving the wrapped one."""

import hashlib
import logging

from .errors import ForwardingFailed, LndApiError, SettlementFailed
from .models import PaymentOutcome

logger = logging.getLogger(__name__)


class PaymentExecutor:
    def __init__(self, gateway):
        self.gateway = gateway

    def attempt(self, payment_request, fee_limit_msat, payment_hash=None):
        """
        Pays ``payment_request`` with routing fees capped at ``fee_limit_msat``.

        Never raises for a failed payment; the failure is returned as a
        PaymentOutcome carrying LND's error text so the caller can compensate.
        """
        try:
            outcome = self.gateway.pay_invoice(payment_request, fee_limit_msat)
        except LndApiError as e:
            # No answer from the node does not mean no payment: the HTLC may still be in flight.
            logger.warning(
                f"Payment of original invoice {payment_hash or payment_request[:40]} has an "
                f"unknown outcome, treating it as failed. Check the node before reusing the hash: {e}"
            )
            return PaymentOutcome(error=e.message)

        if outcome.error:
            return outcome
        if not outcome.preimage:
            return PaymentOutcome(error="Missing preimage")
        if payment_hash and hashlib.sha256(bytes.fromhex(outcome.preimage)).hexdigest() != payment_hash:
            return PaymentOutcome(error=f"Preimage {outcome.preimage} does not match hash {payment_hash}")
        return outcome

    def forward(self, payment_request, fee_limit_msat, payment_hash=None):
        """Like attempt(), but returns the preimage or raises ForwardingFailed."""
        outcome = self.attempt(payment_request, fee_limit_msat, payment_hash=payment_hash)
        if not outcome.succeeded:
            raise ForwardingFailed(
                f"Failed to pay original invoice: {outcome.error}", payment_error=outcome.error
            )
        return outcome.preimage


class SettlementCoordinator:
    """Issues exactly one settle or one cancel for a wrapped invoice."""

    def __init__(self, gateway):
        self.gateway = gateway

    def resolve(self, wrapped, outcome):
        if outcome.succeeded:
            self._settle(wrapped, outcome.preimage)
            return outcome.preimage

        cancel_error = self.cancel(wrapped.payment_hash)
        raise ForwardingFailed(
            f"Failed to pay original invoice: {outcome.error}",
            payment_error=outcome.error,
            cancel_error=cancel_error,
        )

    def cancel(self, payment_hash):
        """Best-effort cancel. Returns the error instead of raising it."""
        logger.info(f"Canceling wrapped invoice {payment_hash}")
        try:
            self.gateway.cancel_invoice(payment_hash)
        except LndApiError as e:
            logger.error(f"Cancel of wrapped invoice {payment_hash} failed: {e}")
            return e
        logger.info(f"Wrapped invoice {payment_hash} canceled")
        return None

    def _settle(self, wrapped, preimage):
        logger.info(f"Settling wrapped invoice {wrapped.payment_hash}")
        try:
            self.gateway.settle_invoice(preimage)
        except LndApiError as e:
            # Original is paid but our funds stay locked; needs manual settle.
            logger.critical(
                f"Settle of wrapped invoice {wrapped.payment_hash} failed after paying the original, "
                f"preimage {preimage}: {e}"
            )
            raise SettlementFailed(
                f"Failed to settle wrapped invoice {wrapped.payment_hash} with preimage {preimage}: {e}",
                status_code=e.status_code,
                response_data=e.response_data,
            )
        logger.info(f"Wrapped invoice {wrapped.payment_hash} settled")
