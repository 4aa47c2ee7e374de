"""Wraps a Lightning invoice in a fee-inflated hold invoice sharing its payment hash."""

from .config import WrapperConfig, load_config
from .errors import WrapperError
from .lnd_rest import LndRestClient
from .models import FeeSchedule, InvoiceState, OriginalInvoice, WrappedInvoice, WrapResult
from .orchestrator import WrapOrchestrator

__version__ = "0.1.0"

__all__ = [
    "FeeSchedule",
    "InvoiceState",
    "LndRestClient",
    "OriginalInvoice",
    "WrapOrchestrator",
    "WrapResult",
    "WrappedInvoice",
    "WrapperConfig",
    "WrapperError",
    "load_config",
]
