from typing import Mapping


def convert(
    amount: float,
    from_currency: str,
    to_currency: str,
    rates: Mapping[str, float],
) -> float:
    """
    Convert ``amount`` between two currencies quoted against a common base.

    Unknown currencies leave the amount untouched so a missing quote degrades
    one figure instead of failing the whole aggregation.
    """
    from_rate = rates.get(from_currency.strip().upper())
    to_rate = rates.get(to_currency.strip().upper())
    if not from_rate or not to_rate:
        return float(amount)
    return float(amount) * to_rate / from_rate
