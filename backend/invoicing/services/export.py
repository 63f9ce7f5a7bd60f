from __future__ import annotations

import csv
import io
from typing import Iterable, List, Optional, Sequence

from ..dataclasses import AdditionalCharge, InvoiceBreakdown, PricedLine
from .invoice_rules import InvoiceRules, get_invoice_rules_instance
from .utils import ONE, format_4

EXPORT_HEADER = [
    "Data", "Rastreio", "CodigoPedido", "Categoria", "Subcategoria",
    "Servico", "Quantidade", "PrecoUnitario", "Subtotal",
]
PLACEHOLDER = "-"


def _format_date(line: PricedLine) -> str:
    if line.record.date is None:
        return PLACEHOLDER
    return line.record.date.strftime("%d/%m/%Y")


def line_row(line: PricedLine, rules: InvoiceRules) -> List[str]:
    labels = rules.export_labels
    item = line.item
    if item is None:
        category = subcategory = labels['unresolved_category']
        description = labels['unresolved_description']
    else:
        category = item.category or labels['unresolved_category']
        subcategory = item.subcategory or labels['unresolved_category']
        description = item.description
    return [
        _format_date(line),
        line.record.tracking_code,
        line.record.order_code,
        category,
        subcategory,
        description,
        format_4(line.effective_quantity),
        format_4(line.unit_price),
        format_4(line.subtotal),
    ]


def charge_row(charge: AdditionalCharge, rules: InvoiceRules) -> List[str]:
    labels = rules.export_labels
    category = labels['refund_category'] if charge.is_refund else labels['additional_charge_category']
    amount = format_4(charge.signed_amount)
    return [
        PLACEHOLDER, PLACEHOLDER, PLACEHOLDER, category, PLACEHOLDER,
        charge.description, format_4(ONE), amount, amount,
    ]


def export_rows(
    breakdown: InvoiceBreakdown,
    additional_charges: Sequence[AdditionalCharge] = (),
    rules: Optional[InvoiceRules] = None,
) -> List[List[str]]:
    """
    Flat export of an invoice: header, one row per customer-visible usage line
    in input order, then regular charges, then refunds (negated).
    """
    rules = rules or get_invoice_rules_instance()
    rows = [list(EXPORT_HEADER)]
    rows.extend(line_row(line, rules) for line in breakdown.lines)
    rows.extend(charge_row(c, rules) for c in additional_charges if not c.is_refund)
    rows.extend(charge_row(c, rules) for c in additional_charges if c.is_refund)
    return rows


def render_csv(rows: Iterable[Sequence[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerows(rows)
    return buffer.getvalue()
