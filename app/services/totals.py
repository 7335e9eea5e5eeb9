"""Line-item totals for quotations.

Amounts are computed with Decimal and rounded half-up to the cent, per line
and again on the aggregated sums. Bad numeric input counts as zero so a
quotation can always be saved from partial client data.
"""
from decimal import Decimal, DecimalException, InvalidOperation, ROUND_HALF_UP

CENT = Decimal('0.01')
ZERO = Decimal('0')
HUNDRED = Decimal('100')
# Numeric(18, 2) holds 16 integer digits
MAX_LINE_AMOUNT = Decimal('10') ** 15


def to_decimal(value) -> Decimal:
    """Coerce anything to a finite Decimal, falling back to 0."""
    if value is None or isinstance(value, bool):
        return ZERO
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return ZERO
    if not result.is_finite():
        return ZERO
    return result


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _item_quantity(item):
    qty = item.get('qty')
    if qty is None:
        qty = item.get('quantity')
    return to_decimal(qty)


def calculate_line(item: dict):
    """Annotate a single line item with its computed amounts.

    Returns ``(line, (taxable, discount_amount, tax_amount))``: a new dict with
    unknown input keys carried over, plus the unrounded Decimals that the
    aggregate sums are built from.
    """
    qty = _item_quantity(item)
    unit_price = to_decimal(item.get('unit_price'))
    discount_percent = to_decimal(item.get('discount_percent'))
    tax_rate = to_decimal(item.get('tax_rate'))

    try:
        gross = qty * unit_price
        discount_amount = gross * discount_percent / HUNDRED
        taxable = gross - discount_amount
        tax_amount = taxable * tax_rate / HUNDRED
        line_total = taxable + tax_amount
        out_of_range = any(
            abs(round_money(amount)) >= MAX_LINE_AMOUNT
            for amount in (discount_amount, taxable, tax_amount, line_total)
        )
    except DecimalException:
        out_of_range = True

    if out_of_range:
        # a line that cannot be priced at cent precision counts as zero
        qty = unit_price = discount_percent = tax_rate = ZERO
        discount_amount = taxable = tax_amount = line_total = ZERO

    line = dict(item)
    line.pop('quantity', None)
    line.update({
        'qty': float(qty),
        'unit_price': float(unit_price),
        'discount_percent': float(discount_percent),
        'tax_rate': float(tax_rate),
        'discount_amount': float(round_money(discount_amount)),
        'taxable_amount': float(round_money(taxable)),
        'tax_amount': float(round_money(tax_amount)),
        'total_amount': float(round_money(line_total)),
    })
    return line, (taxable, discount_amount, tax_amount)


def calculate_totals(items=None) -> dict:
    """Compute normalized items and quotation totals.

    Args:
        items: ordered list of dicts with ``qty`` (or ``quantity``),
            ``unit_price``, ``discount_percent`` and ``tax_rate``.

    Returns:
        dict with ``items`` (JSON-safe, floats) and Decimal ``subtotal``,
        ``total_discount``, ``tax_total`` and ``grand_total``, where
        ``grand_total == subtotal + tax_total`` exactly.
    """
    subtotal = ZERO
    total_discount = ZERO
    tax_total = ZERO
    normalized = []

    for item in items or []:
        if not isinstance(item, dict):
            item = {}
        line, (taxable, discount_amount, tax_amount) = calculate_line(item)
        subtotal += taxable
        total_discount += discount_amount
        tax_total += tax_amount
        normalized.append(line)

    subtotal = round_money(subtotal)
    total_discount = round_money(total_discount)
    tax_total = round_money(tax_total)

    return {
        'items': normalized,
        'subtotal': subtotal,
        'total_discount': total_discount,
        'tax_total': tax_total,
        'grand_total': subtotal + tax_total,
    }
