import html
import re
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import bleach

CENTS = Decimal("0.01")


def sanitize_input(value: Optional[str]) -> str:
    """Clean a free-text search term.

    Markup is stripped entirely (bleach with no allowed tags), NUL bytes and
    SQL comment/statement separators are dropped. Entities bleach escapes are
    turned back into text so a search for ``Tools & Co`` still matches.
    """
    if value is None:
        return ""
    val = value.replace("\x00", "")
    val = html.unescape(bleach.clean(val, tags=set(), strip=True))
    val = re.sub(r"(--|;)", "", val)
    return val.strip()


# Money is stored rounded to 2 decimals
def round_amount(value) -> Decimal:
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
