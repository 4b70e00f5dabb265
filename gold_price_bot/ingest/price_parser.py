"""Price text parsing."""

import re
from decimal import Decimal, InvalidOperation

from gold_price_bot.ingest.base import PriceParseError

# Currency symbols, thousands separators and any whitespace
_STRIP_PATTERN = re.compile(r"[$,\s€£¥]")

# Leading numeric prefix, e.g. "2048.75" in "2048.75USD"
_NUMBER_PATTERN = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


def parse_price(price_text: str | None) -> Decimal:
    """Parse a price string into a Decimal; 0 when no number can be read."""
    if not price_text:
        return Decimal(0)

    cleaned = _STRIP_PATTERN.sub("", price_text)
    match = _NUMBER_PATTERN.match(cleaned)
    if not match:
        return Decimal(0)

    try:
        price = Decimal(match.group(0))
    except InvalidOperation:
        return Decimal(0)

    return price if price.is_finite() else Decimal(0)


def require_positive_price(price_text: str | None) -> Decimal:
    """Parse and reject anything that is not a positive price."""
    price = parse_price(price_text)
    if price <= 0:
        raise PriceParseError(price_text or "", price)
    return price
