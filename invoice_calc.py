"""Invoice totals: subtotal, tax amount and total from line items and a tax rate."""
from collections import namedtuple

InvoiceTotals = namedtuple('InvoiceTotals', ['subtotal', 'tax_amount', 'total'])


def parse_quantity(value):
    """Quantity as typed in the form; unparseable (or zero) input becomes 1."""
    try:
        quantity = int(value)
    except (TypeError, ValueError):
        try:
            quantity = int(float(value))
        except (TypeError, ValueError, OverflowError):
            return 1
    return quantity or 1


def parse_price(value):
    """Price as typed in the form; unparseable input becomes 0."""
    try:
        price = float(value)
    except (TypeError, ValueError):
        return 0.0
    if price != price:  # NaN
        return 0.0
    return price


def parse_tax_rate(value):
    return parse_price(value)


def line_total(quantity, price):
    return parse_quantity(quantity) * parse_price(price)


def calculate_totals(items, tax_rate):
    """
    Compute (subtotal, tax_amount, total) for a list of line items.

    Every entry counts, including ones with an empty description.
    Negative quantities and prices are passed through unchanged.
    """
    subtotal = sum(line_total(item.get('quantity'), item.get('price')) for item in items)
    tax_amount = subtotal * (parse_tax_rate(tax_rate) / 100)
    return InvoiceTotals(subtotal, tax_amount, subtotal + tax_amount)


def normalize_items(items):
    # Stored shape of each row, with its line total recomputed
    rows = []
    for item in items:
        quantity = parse_quantity(item.get('quantity'))
        price = parse_price(item.get('price'))
        rows.append({
            'description': item.get('description') or '',
            'quantity': quantity,
            'price': price,
            'total': quantity * price,
        })
    return rows
