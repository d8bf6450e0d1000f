"""Kubernetes resource quantities such as "250m" or "256Mi"."""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import ROUND_CEILING, Decimal

_BINARY = {"Ki": 2**10, "Mi": 2**20, "Gi": 2**30, "Ti": 2**40, "Pi": 2**50, "Ei": 2**60}
_DECIMAL = {
    "n": Decimal("1e-9"),
    "u": Decimal("1e-6"),
    "m": Decimal("1e-3"),
    "": Decimal(1),
    "k": Decimal("1e3"),
    "M": Decimal("1e6"),
    "G": Decimal("1e9"),
    "T": Decimal("1e12"),
    "P": Decimal("1e15"),
    "E": Decimal("1e18"),
}
_PATTERN = re.compile(r"^([+-]?(?:\d+(?:\.\d*)?|\.\d+))([eE][+-]?\d+|[a-zA-Z]*)$")


@dataclass(frozen=True)
class Quantity:
    """A parsed quantity; ``str()`` gives the text it was parsed from."""

    amount: Decimal
    text: str

    def __str__(self) -> str:
        return self.text

    def milli_value(self) -> int:
        """Value in thousandths, rounded up."""
        return int((self.amount * 1000).to_integral_value(rounding=ROUND_CEILING))

    def value(self) -> int:
        """Whole value, rounded up."""
        return int(self.amount.to_integral_value(rounding=ROUND_CEILING))

    def is_zero(self) -> bool:
        return self.amount == 0


def parse_quantity(text: str | int | float) -> Quantity:
    """Parse a quantity string; raise ValueError if it is malformed."""
    raw = str(text).strip()
    match = _PATTERN.match(raw)
    if not match:
        raise ValueError(f"quantities must match the regular expression: {raw!r}")
    number, suffix = match.groups()
    amount = Decimal(number)
    if suffix in _BINARY:
        amount *= _BINARY[suffix]
    elif suffix in _DECIMAL:
        amount *= _DECIMAL[suffix]
    elif suffix[:1] in ("e", "E") and len(suffix) > 1:
        amount = amount.scaleb(int(suffix[1:]))
    else:
        raise ValueError(f"unable to parse quantity's suffix: {raw!r}")
    return Quantity(amount=amount, text=raw)