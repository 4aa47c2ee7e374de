"""Blocking wait until a payer locks funds on the wrapped invoice."""

import logging
import time
from enum import Enum

from .errors import (
    AcceptanceTimeout,
    InvoiceCanceled,
    InvoiceSettledPrematurely,
    LndApiError,
    LndTimeoutError,
    SubscriptionFailed,
)
from .models import InvoiceState

logger = logging.getLogger(__name__)


class WatchState(Enum):
    WAITING = "WAITING"
    LOCKED = "LOCKED"
    FAILED = "FAILED"


class AcceptanceWatcher:
    """
    Follows the invoice subscription of one payment hash.

    WAITING moves to LOCKED on the first ACCEPTED update and to FAILED on
    CANCELED, SETTLED, an unreadable update or a broken connection. OPEN
    updates keep it WAITING. Without ``timeout_seconds`` the wait is unbounded.
    """

    def __init__(self, gateway, timeout_seconds=None):
        self.gateway = gateway
        self.timeout_seconds = timeout_seconds
        self.state = WatchState.WAITING

    def _fail(self, error):
        self.state = WatchState.FAILED
        return error

    def wait_for_lock(self, payment_hash):
        self.state = WatchState.WAITING
        started = time.monotonic()
        try:
            with self.gateway.subscribe_invoice(
                payment_hash, read_timeout=self.timeout_seconds
            ) as updates:
                for update in updates:
                    if self._handle(payment_hash, update):
                        return
                    if self._deadline_passed(started):
                        raise self._fail(self._timeout_error(payment_hash))
        except LndTimeoutError:
            if self.timeout_seconds is None:
                raise self._fail(SubscriptionFailed(f"Subscription for {payment_hash} timed out"))
            raise self._fail(self._timeout_error(payment_hash))
        except LndApiError as e:
            # requests reports a streaming read timeout as a ConnectionError
            if self._deadline_passed(started):
                raise self._fail(self._timeout_error(payment_hash))
            raise self._fail(SubscriptionFailed(f"Subscription for {payment_hash} failed: {e}"))

        raise self._fail(
            SubscriptionFailed(f"Subscription for {payment_hash} ended before the invoice was accepted")
        )

    def _handle(self, payment_hash, update):
        """Returns True once locked, raises on a terminal state, False to keep waiting."""
        if not isinstance(update, dict) or not update.get("state"):
            raise self._fail(SubscriptionFailed(f"Malformed invoice update: {update!r}"))

        state = update["state"]
        logger.debug(f"Invoice {payment_hash} update: state {state}")
        if state == InvoiceState.ACCEPTED.value:
            self.state = WatchState.LOCKED
            logger.info(f"Wrapped invoice {payment_hash} accepted, funds locked")
            return True
        if state == InvoiceState.CANCELED.value:
            raise self._fail(InvoiceCanceled("Wrapped invoice was canceled"))
        if state == InvoiceState.SETTLED.value:
            raise self._fail(
                InvoiceSettledPrematurely("Wrapped invoice was settled - should have been accepted first")
            )
        if state == InvoiceState.OPEN.value:
            return False
        raise self._fail(SubscriptionFailed(f"Unknown invoice state in update: {state!r}"))

    def _deadline_passed(self, started):
        if self.timeout_seconds is None:
            return False
        return time.monotonic() - started >= self.timeout_seconds

    def _timeout_error(self, payment_hash):
        return AcceptanceTimeout(
            f"Wrapped invoice {payment_hash} not paid within {self.timeout_seconds}s"
        )
