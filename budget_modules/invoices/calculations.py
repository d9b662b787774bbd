"""
Invoice line arithmetic.

Pure functions.  ZERO I/O.

    base  = quantity * unit_price
    vat   = base * vat_rate / 100
    irpf  = base * irpf_rate / 100
    total = base + vat - irpf

Every amount is rounded half-up to 2 decimal places; ``vat`` and
``irpf`` are computed from the rounded base, and ``total`` from the
rounded parts, so the stored parts always add up to the stored total.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from budget_kernel.db.types import round_money
from budget_modules.invoices.models import InvoiceItem, ItemAmounts

HUNDRED = Decimal("100")


def compute_item_amounts(
    quantity: Decimal,
    unit_price: Decimal,
    vat_rate: Decimal,
    irpf_rate: Decimal,
) -> ItemAmounts:
    base = round_money(quantity * unit_price)
    vat = round_money(base * vat_rate / HUNDRED)
    irpf = round_money(base * irpf_rate / HUNDRED)
    return ItemAmounts(
        base_amount=base,
        vat_amount=vat,
        irpf_amount=irpf,
        total_amount=round_money(base + vat - irpf),
    )


def sum_items(items: Iterable[InvoiceItem]) -> ItemAmounts:
    """Invoice-level totals: plain sums of the item amounts."""
    base = vat = irpf = total = Decimal("0")
    for item in items:
        base += item.base_amount
        vat += item.vat_amount
        irpf += item.irpf_amount
        total += item.total_amount
    return ItemAmounts(base, vat, irpf, total)
