# vetclinic/services/billing_math.py
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Tuple

from vetclinic.core.config import settings

ZERO = Decimal("0.00")


def D(x) -> Decimal:
    try:
        return Decimal(str(x or 0))
    except InvalidOperation:
        return Decimal("0")


def money2(x) -> Decimal:
    return D(x).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def compute_line(qty, unit_price, tax_rate) -> Dict[str, Decimal]:
    """
    net = qty * unit_price
    tax = net * rate / 100
    total = net + tax
    Each value rounded half-up to cents.
    """
    net = money2(D(qty) * D(unit_price))
    tax = money2(net * D(tax_rate) / Decimal("100"))
    return {
        "net_amount": net,
        "tax_amount": tax,
        "line_total": money2(net + tax),
    }


def tax_rate_label(rate) -> str:
    # 7.00 -> "IGIC_7%", 6.50 -> "IGIC_6.5%"
    r = D(rate).normalize()
    return f"{settings.TAX_LABEL}_{r:f}%"


def compute_totals(
    lines: Iterable[Tuple[Any, Any, Any]],
) -> Dict[str, Any]:
    """
    lines: (quantity, unit_price, tax_rate) tuples.

    Returns subtotal, tax_amount, total, the per-rate breakdown
    {label: {"base": float, "tax": float}} and the computed lines in order.
    """
    subtotal = ZERO
    tax_total = ZERO
    per_rate: Dict[str, Dict[str, Decimal]] = {}
    computed: List[Dict[str, Decimal]] = []

    for qty, price, rate in lines:
        amounts = compute_line(qty, price, rate)
        computed.append(amounts)

        subtotal += amounts["net_amount"]
        tax_total += amounts["tax_amount"]

        bucket = per_rate.setdefault(tax_rate_label(rate), {
            "base": ZERO,
            "tax": ZERO
        })
        bucket["base"] += amounts["net_amount"]
        bucket["tax"] += amounts["tax_amount"]

    breakdown = {
        label: {"base": float(money2(v["base"])), "tax": float(money2(v["tax"]))}
        for label, v in per_rate.items()
    }

    return {
        "subtotal": money2(subtotal),
        "tax_amount": money2(tax_total),
        "total": money2(subtotal + tax_total),
        "tax_breakdown": breakdown,
        "lines": computed,
    }


def money_eq_or_above(paid, total) -> bool:
    """paid >= total within CURRENCY_EPSILON."""
    return D(paid) >= D(total) - settings.CURRENCY_EPSILON


def exceeds_total(paid, total) -> bool:
    return D(paid) > D(total) + settings.CURRENCY_EPSILON
