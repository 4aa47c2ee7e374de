"""Idempotent creation of the wrapped ("hold") invoice."""

import logging

from .errors import InvalidWrappedState, LndApiError, LndTimeoutError, WrappedInvoiceUnavailable

logger = logging.getLogger(__name__)


class WrappedInvoiceManager:
    def __init__(self, gateway):
        self.gateway = gateway

    def create_or_recover(self, original, wrapped_amount_msat, wrapped_expiry_seconds):
        """
        Creates the hold invoice for ``original`` and returns it as the node sees it.

        The create call either times out (the LND end-point hangs), fails because
        an earlier run already created the invoice, or succeeds. Its outcome is
        only logged: the lookup by payment hash that follows decides whether the
        wrapped invoice exists and in which state.
        """
        # description_hash takes precedence; LND rejects memo and hash together
        if original.description_hash:
            memo, description_hash = "", original.description_hash
        else:
            memo, description_hash = original.description, ""

        try:
            self.gateway.add_hold_invoice(
                original.payment_hash,
                wrapped_amount_msat,
                wrapped_expiry_seconds,
                memo=memo,
                description_hash=description_hash,
            )
            logger.info(f"Hold invoice created for hash {original.payment_hash}")
        except LndTimeoutError as e:
            logger.warning(f"Hold invoice creation did not answer in time, checking node: {e}")
        except LndApiError as e:
            logger.warning(f"Hold invoice creation failed, checking whether it exists: {e}")

        try:
            wrapped = self.gateway.lookup_invoice(original.payment_hash)
        except LndApiError as e:
            raise WrappedInvoiceUnavailable(
                f"Lookup of wrapped invoice {original.payment_hash} failed: {e}"
            )
        if wrapped is None:
            raise WrappedInvoiceUnavailable(
                f"Wrapped invoice for hash {original.payment_hash} does not exist after create"
            )

        if wrapped.payment_hash != original.payment_hash:
            raise InvalidWrappedState(
                f"Node returned invoice {wrapped.payment_hash} for hash {original.payment_hash}"
            )
        if wrapped.amount_msat < wrapped_amount_msat:
            raise InvalidWrappedState(
                f"Existing wrapped invoice asks {wrapped.amount_msat} msat, "
                f"less than the required {wrapped_amount_msat} msat"
            )
        logger.info(
            f"Wrapped invoice {wrapped.payment_hash}: {wrapped.amount_msat} msat, state {wrapped.state.value}"
        )
        return wrapped
