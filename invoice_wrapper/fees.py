"""Amount and expiry of the wrapped invoice."""

import math
import time
from fractions import Fraction

from .errors import InvalidAmount


def _require_non_negative_int(value, name):
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"Invalid {name}: integer expected, got {value!r}")
    if value < 0:
        raise InvalidAmount(f"Invalid {name}: must not be negative, got {value}")
    return value


def calculate_fee_msat(original_amount_msat, fee_schedule):
    """Fee charged on top of the original amount, rounded up to a whole msat."""
    return calculate_wrapped_amount(original_amount_msat, fee_schedule) - original_amount_msat


def calculate_wrapped_amount(original_amount_msat, fee_schedule):
    """
    Returns ceil(amount + amount * percent / 100 + fixed) in msat.

    The percentage is taken at its decimal value so that e.g. 0.1% of 1000
    is exactly 1 msat, not 1.0000000000000002.
    """
    amount = _require_non_negative_int(original_amount_msat, "original amount")
    fixed = _require_non_negative_int(fee_schedule.fixed_msat, "fixed fee")
    percent = fee_schedule.percent
    if not isinstance(percent, (int, float)) or not math.isfinite(percent) or percent < 0:
        raise InvalidAmount(f"Invalid fee percent: {percent!r}")

    exact = amount + amount * Fraction(str(percent)) / 100 + fixed
    return _require_non_negative_int(math.ceil(exact), "wrapped amount")


def calculate_wrapped_expiry(original_timestamp, original_expiry_seconds, now=None):
    """Seconds from now until the original invoice expires.

    LND treats an expiry of 0 as "use the default", which would outlive the
    original invoice, so an already expired original is rejected.
    """
    timestamp = _require_non_negative_int(original_timestamp, "original timestamp")
    expiry = _require_non_negative_int(original_expiry_seconds, "original expiry")
    if now is None:
        now = int(time.time())
    remaining = (timestamp + expiry) - int(now)
    # an expiry of 0 would make LND fall back to its default expiry
    if remaining <= 0:
        raise InvalidAmount(f"Original invoice expired {-remaining} seconds ago")
    return remaining
