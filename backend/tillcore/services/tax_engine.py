# Overview: Pure tax-inclusive pricing math shared by cart preview and invoice creation.

"""
Tax Engine (pure, no I/O)

Prices are tax-inclusive. Tax is EXTRACTED from an amount, never added:

    tax = amount - amount / (1 + rate/100)

Rates are basis points (1800 = 18%), amounts are integer cents. Arithmetic is
done in Decimal and rounded half-up to whole cents only at the edges
(per-line tax, per-component totals, invoice tax).

DISCOUNT ORDER OF OPERATIONS:
An invoice-level discount is spread over every line proportionally BEFORE tax
is extracted:

    ratio         = after_discount_subtotal / pre_discount_subtotal
    taxable_line  = line_total * ratio
    line_tax      = extract_tax(taxable_line, rate)

so the discount shrinks the tax base. compute_cart_totals() is the one place
this happens; invoice_service and the preview endpoint both call it.

ROUNDING:
Rounded per-line taxes and rounded per-component totals are each reconciled
against the rounded invoice tax (the residual cent goes to the largest share),
so items, breakdown and header always add up exactly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Sequence

from ..errors import ValidationFailure


BPS_PER_UNIT = Decimal(10000)
MAX_RATE_BPS = 10000

ZERO = Decimal(0)
_WHOLE_CENT = Decimal(1)


@dataclass(frozen=True)
class TaxComponent:
    name: str
    rate_bps: int


@dataclass(frozen=True)
class TaxRates:
    """What the engine needs from a TaxSlab (see TaxSlab.to_rates)."""
    slab_id: int | None
    name: str
    rate_bps: int
    components: tuple[TaxComponent, ...] = ()


@dataclass(frozen=True)
class CartLine:
    line_total_cents: int
    rates: TaxRates | None = None


@dataclass(frozen=True)
class TaxBreakdownLine:
    tax_name: str
    amount_cents: int

    def to_dict(self) -> dict:
        return {"tax_name": self.tax_name, "amount_cents": self.amount_cents}


@dataclass
class CartTotals:
    subtotal_cents: int
    discount_amount_cents: int
    total_cents: int
    tax_amount_cents: int
    line_tax_cents: list[int] = field(default_factory=list)
    breakdown: list[TaxBreakdownLine] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "subtotal_cents": self.subtotal_cents,
            "discount_amount_cents": self.discount_amount_cents,
            "total_cents": self.total_cents,
            "tax_amount_cents": self.tax_amount_cents,
            "line_tax_cents": list(self.line_tax_cents),
            "tax_breakdown": [b.to_dict() for b in self.breakdown],
        }


def to_cents(value: Decimal) -> int:
    """Round a Decimal amount of cents half-up to an int."""
    return int(value.quantize(_WHOLE_CENT, rounding=ROUND_HALF_UP))


def extract_tax(amount, rate_bps: int) -> Decimal:
    """
    Tax contained in a tax-inclusive amount.

    Zero (or negative) rates return exactly 0 without dividing.
    """
    if rate_bps <= 0:
        return ZERO
    amount = Decimal(amount)
    return amount - amount / (1 + Decimal(rate_bps) / BPS_PER_UNIT)


def split_tax(tax_amount: Decimal, rates: TaxRates) -> list[tuple[str, Decimal]]:
    """
    Proportional component split: component_i = tax * (r_i / R).

    No components -> the whole amount under the slab's own name. If the
    components do not cover the full rate, the uncovered share also goes to
    the slab name so the parts always sum to tax_amount.
    """
    if rates.rate_bps <= 0:
        return []
    if not rates.components:
        return [(rates.name, tax_amount)]

    total_rate = Decimal(rates.rate_bps)
    parts: list[tuple[str, Decimal]] = []
    allocated = ZERO
    for component in rates.components:
        share = tax_amount * (Decimal(component.rate_bps) / total_rate)
        parts.append((component.name, share))
        allocated += share

    covered_bps = sum(c.rate_bps for c in rates.components)
    if covered_bps < rates.rate_bps:
        parts.append((rates.name, tax_amount - allocated))
    return parts


def validate_rate_bps(rate_bps, field_name: str = "rate_bps") -> int:
    if isinstance(rate_bps, bool) or not isinstance(rate_bps, int):
        raise ValidationFailure(f"{field_name} must be an integer number of basis points")
    if rate_bps < 0 or rate_bps > MAX_RATE_BPS:
        raise ValidationFailure(f"{field_name} must be between 0 and {MAX_RATE_BPS}")
    return rate_bps


def compute_discount(subtotal_cents: int, discount_type: str, discount_value: int) -> int:
    """
    Discount amount in cents.

    FIXED:      discount_value is cents
    PERCENTAGE: discount_value is basis points of the subtotal (half-up)

    The discount never exceeds the subtotal.
    """
    if discount_value is None:
        discount_value = 0
    if isinstance(discount_value, bool) or not isinstance(discount_value, int):
        raise ValidationFailure("discount_value must be an integer")
    if discount_value < 0:
        raise ValidationFailure("discount_value cannot be negative")

    if discount_type == "FIXED":
        amount = discount_value
    elif discount_type == "PERCENTAGE":
        validate_rate_bps(discount_value, "discount_value")
        amount = to_cents(Decimal(subtotal_cents) * Decimal(discount_value) / BPS_PER_UNIT)
    else:
        raise ValidationFailure("discount_type must be FIXED or PERCENTAGE")

    return min(amount, subtotal_cents)


def _reconcile(exact: Sequence[Decimal], target_cents: int) -> list[int]:
    rounded = [to_cents(v) for v in exact]
    residual = target_cents - sum(rounded)
    if residual and rounded:
        largest = max(range(len(exact)), key=lambda i: exact[i])
        rounded[largest] += residual
    return rounded


def compute_cart_totals(
    lines: Sequence[CartLine],
    discount_type: str = "FIXED",
    discount_value: int = 0,
) -> CartTotals:
    """
    Subtotal, discount, total, per-line tax and component breakdown for a cart.

    total = subtotal - discount (tax is already inside the prices).
    """
    subtotal = sum(line.line_total_cents for line in lines)
    discount = compute_discount(subtotal, discount_type, discount_value)
    after_discount = subtotal - discount

    if subtotal == 0:
        return CartTotals(
            subtotal_cents=0,
            discount_amount_cents=discount,
            total_cents=after_discount,
            tax_amount_cents=0,
            line_tax_cents=[0] * len(lines),
            breakdown=[],
        )

    ratio = Decimal(after_discount) / Decimal(subtotal)

    line_taxes: list[Decimal] = []
    buckets: dict[str, Decimal] = {}
    for line in lines:
        if line.rates is None or line.rates.rate_bps <= 0:
            line_taxes.append(ZERO)
            continue
        taxable = Decimal(line.line_total_cents) * ratio
        tax = extract_tax(taxable, line.rates.rate_bps)
        line_taxes.append(tax)
        for name, amount in split_tax(tax, line.rates):
            buckets[name] = buckets.get(name, ZERO) + amount

    tax_total = to_cents(sum(line_taxes, ZERO))

    names = list(buckets.keys())
    bucket_cents = _reconcile([buckets[n] for n in names], tax_total)

    return CartTotals(
        subtotal_cents=subtotal,
        discount_amount_cents=discount,
        total_cents=after_discount,
        tax_amount_cents=tax_total,
        line_tax_cents=_reconcile(line_taxes, tax_total),
        breakdown=[TaxBreakdownLine(n, c) for n, c in zip(names, bucket_cents)],
    )
