"""Value types shared by the wrapper components."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class InvoiceState(str, Enum):
    OPEN = "OPEN"
    ACCEPTED = "ACCEPTED"
    SETTLED = "SETTLED"
    CANCELED = "CANCELED"


@dataclass(frozen=True)
class FeeSchedule:
    """Fee charged for wrapping: a percentage of the amount plus a fixed part."""

    percent: float
    fixed_msat: int


@dataclass(frozen=True)
class OriginalInvoice:
    """The caller's payment request, decoded once by the node."""

    payment_request: str
    payment_hash: str
    amount_msat: int
    timestamp: int
    expiry_seconds: int
    description: str = ""
    description_hash: str = ""

    @property
    def expires_at(self) -> int:
        return self.timestamp + self.expiry_seconds


@dataclass(frozen=True)
class WrappedInvoice:
    """Hold invoice as last reported by the node.

    Never mutated locally; a newer node response replaces the whole record.
    """

    payment_hash: str
    amount_msat: int
    expiry_seconds: int
    state: InvoiceState
    payment_request: Optional[str] = None


@dataclass(frozen=True)
class PaymentOutcome:
    """Result of paying the original invoice: a preimage or the node's error text."""

    preimage: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.preimage is not None and self.error is None


@dataclass(frozen=True)
class WrapResult:
    """Summary of a completed wrap: what was paid, what was settled."""

    original: OriginalInvoice
    wrapped: WrappedInvoice
    preimage: str

    @property
    def fee_msat(self) -> int:
        return self.wrapped.amount_msat - self.original.amount_msat
