from decimal import Decimal, InvalidOperation, ROUND_HALF_UP


def parse_cents(amount_text: str) -> int:
    """Convert ``"12.34"`` to ``1234``. Raises ``ValueError`` on bad input."""
    try:
        amount = Decimal(str(amount_text).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {amount_text!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {amount_text!r}")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_cents(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(cents), 100)
    return f"{sign}{whole}.{frac:02d}"
