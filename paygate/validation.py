# paygate/validation.py
from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, localcontext
from typing import Any

from web3 import Web3

from paygate.errors import InputError

WEI_PER_ETHER = 10**18
MAX_WEI = 2**256 - 1

# ASCII digits only: Decimal() would also take "1_0" and non-Latin digits.
_AMOUNT_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$", re.ASCII)


def _d(x: Any) -> Decimal:
    if isinstance(x, Decimal):
        return x
    return Decimal(str(x).strip())


def is_address(value: Any) -> bool:
    # Web3.is_address also accepts raw bytes; callers always speak hex strings.
    return isinstance(value, str) and Web3.is_address(value)


def parse_address(value: Any, *, field: str = "address") -> str:
    """Validate an account address and return it in checksum form."""
    if not is_address(value):
        raise InputError(f"Invalid Ethereum address in '{field}'.")
    return Web3.to_checksum_address(value)


def parse_amount(value: Any) -> Decimal:
    """Parse a caller-supplied display-unit amount.

    Accepts JSON numbers and numeric strings. Booleans, NaN, infinities,
    zero, negatives and values finer than one wei are rejected.
    """
    if value is None or isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
        raise InputError("Invalid amount.")
    if isinstance(value, str) and not _AMOUNT_RE.match(value.strip()):
        raise InputError("Invalid amount.")
    try:
        amt = _d(value)
    except (InvalidOperation, ValueError):
        raise InputError("Invalid amount.") from None

    if not amt.is_finite() or amt <= 0:
        raise InputError("Invalid amount.")
    if amt.adjusted() > 60:
        raise InputError("Invalid amount: too large.")

    with localcontext() as ctx:
        ctx.prec = 100
        wei = amt * WEI_PER_ETHER
    if wei != wei.to_integral_value():
        raise InputError("Invalid amount: more than 18 decimal places.")
    if wei > MAX_WEI:
        raise InputError("Invalid amount: too large.")
    return amt


def to_wei(amount: Decimal) -> int:
    return int(Web3.to_wei(amount, "ether"))


def format_ether(wei: int) -> str:
    """Render a wei value as ether, always with a fractional part ("1.5", "0.0")."""
    sign = "-" if wei < 0 else ""
    whole, frac = divmod(abs(int(wei)), WEI_PER_ETHER)
    frac_str = str(frac).rjust(18, "0").rstrip("0") or "0"
    return f"{sign}{whole}.{frac_str}"
