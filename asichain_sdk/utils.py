"""
Utility functions for the ASI chain SDK.
"""
import re
import urllib.parse
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional, Union

from .config import ATOMIC_MULTIPLIER, TOKEN_DECIMALS, TOKEN_SYMBOL

_DEPLOY_ID_PATTERN = re.compile(r"DeployId is:\s*([a-fA-F0-9]+)")


def to_atomic(amount: Union[str, int, float, Decimal]) -> int:
    """
    Convert a display amount (e.g. "10.5") to atomic units.

    Rounds half-up at the eighth decimal place.

    Raises:
        ValueError: If the amount is not a finite, non-negative number
    """
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {amount!r}")
    if not value.is_finite() or value < 0:
        raise ValueError(f"Amount must be a finite, non-negative number, got: {amount!r}")
    return int((value * ATOMIC_MULTIPLIER).to_integral_value(rounding=ROUND_HALF_UP))


def to_display(atomic: int, digits: int = TOKEN_DECIMALS) -> Decimal:
    """Convert atomic units to a display amount with a fixed number of fractional digits"""
    return (Decimal(atomic) / ATOMIC_MULTIPLIER).quantize(Decimal(1).scaleb(-digits), rounding=ROUND_DOWN)


def format_balance(atomic: int, show_currency: bool = True) -> str:
    """Human-readable balance, trailing zeros trimmed"""
    value = to_display(atomic).normalize()
    text = "0" if value == 0 else format(value, "f")
    return f"{text} {TOKEN_SYMBOL}" if show_currency else text


def extract_deploy_id(response: Any) -> Optional[str]:
    """
    Pull the deploy id out of a ``/api/deploy`` response.

    The node answers either with the bare signature, with
    ``"Success! DeployId is: <hex>"``, or with a JSON object.
    """
    if isinstance(response, str):
        match = _DEPLOY_ID_PATTERN.search(response)
        if match:
            return match.group(1)
        stripped = response.strip().strip('"')
        return stripped or None

    if isinstance(response, dict):
        for key in ("signature", "deployId", "sig"):
            value = response.get(key)
            if isinstance(value, str) and value:
                return value

    return None


def is_mixed_content(origin_scheme: Optional[str], url: str) -> bool:
    """True when a secure origin would have to talk to a plain-http endpoint"""
    if not origin_scheme or origin_scheme.rstrip(":").lower() != "https":
        return False
    return urllib.parse.urlparse(url).scheme == "http"


def short_id(deploy_id: str, length: int = 12) -> str:
    """Truncated deploy id for log lines"""
    return deploy_id if len(deploy_id) <= length else f"{deploy_id[:length]}…"
