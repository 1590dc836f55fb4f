from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")

# Demo conversion table, 1 USD in each currency
CRYPTO_RATES = {
    "USDC": Decimal("1"),
    "USDT": Decimal("1"),
    "ETH": Decimal("0.00055"),
    "BTC": Decimal("0.000025"),
}


def to_money(value) -> Decimal:
    if isinstance(value, float):
        value = repr(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(amount) -> int:
    return int((to_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def total_amount(hourly_rate, duration_minutes: int) -> Decimal:
    return to_money(Decimal(hourly_rate) * duration_minutes / 60)


def refund_amount(hourly_rate, booked_minutes: int, actual_minutes: int) -> Decimal:
    """Money owed back for the unused part of a booked call; 0 when the call ran full length."""
    if actual_minutes >= booked_minutes:
        return to_money(0)
    return to_money(Decimal(hourly_rate) * (booked_minutes - actual_minutes) / 60)


def developer_earnings(total, refund) -> Decimal:
    return to_money(Decimal(total) - Decimal(refund))


def hours_from_minutes(minutes: int) -> Decimal:
    """Hours for a running total of minutes; round once, at the end."""
    return to_money(Decimal(minutes) / 60)


def convert_crypto(amount, currency: str):
    rate = CRYPTO_RATES.get((currency or "").upper(), Decimal("1"))
    return (Decimal(amount) * rate).quantize(Decimal("0.00000001"), rounding=ROUND_HALF_UP)
