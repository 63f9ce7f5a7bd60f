from __future__ import annotations

import logging
import re
from decimal import Decimal
from typing import Dict, Iterable, List, Sequence

from ..dataclasses import (
    AdditionalCharge,
    Aggregation,
    CategoryTotal,
    CostPerOrder,
    Invoice,
    OrderGroup,
    PricedLine,
    StateShippingTotal,
)
from .invoice_rules import InvoiceRules
from .utils import ZERO, d

logger = logging.getLogger(__name__)

CATEGORY_EPSILON = Decimal("0.001")
UF_PATTERN = re.compile(r"\b([A-Z]{2})\b")


def line_category(line: PricedLine, rules: InvoiceRules) -> str:
    if line.item is None or not (line.item.category or "").strip():
        return rules.labels['no_category']
    return line.item.category


def line_order_code(line: PricedLine, rules: InvoiceRules) -> str:
    return (line.record.order_code or "").strip() or rules.labels['no_order']


def group_by_order(lines: Iterable[PricedLine], rules: InvoiceRules) -> Dict[str, OrderGroup]:
    """
    orderCode -> category -> lines, for customer-visible lines only.

    Groups keep first-encountered order and lines keep input order. Unresolved
    lines are listed under the fallback category but add nothing to totals.
    """
    groups: Dict[str, OrderGroup] = {}
    for line in lines:
        if not line.visible:
            continue
        order_code = line_order_code(line, rules)
        group = groups.get(order_code)
        if group is None:
            group = groups[order_code] = OrderGroup(order_code=order_code)
        group.categories.setdefault(line_category(line, rules), []).append(line)
        if line.counts_toward_totals:
            group.order_total += line.subtotal
    return groups


def sum_charges(additional_charges: Iterable[AdditionalCharge]) -> Dict[str, Decimal]:
    """Positive total of regular charges and negative total of refunds."""
    additional = ZERO
    refunds = ZERO
    for charge in additional_charges:
        if charge.is_refund:
            refunds += charge.signed_amount
        else:
            additional += d(charge.amount)
    return {'additional': additional, 'refunds': refunds}


def build_category_totals(
    invoice: Invoice,
    additional_charges: Sequence[AdditionalCharge],
    rules: InvoiceRules,
) -> List[CategoryTotal]:
    """
    Invoice summary rows: stored invoice totals plus locally summed charges.

    Near-zero rows are dropped and the rest sorted by magnitude, largest first.
    """
    labels = rules.labels
    charges = sum_charges(additional_charges)
    candidates = [
        CategoryTotal(labels['shipping'], d(invoice.total_shipping)),
        CategoryTotal(labels['logistics'], d(invoice.total_logistics)),
        CategoryTotal(labels['storage'], d(invoice.total_storage)),
        CategoryTotal(labels['extra_costs'], d(invoice.total_extra_costs)),
        CategoryTotal(labels['additional_costs'], charges['additional']),
        CategoryTotal(labels['refunds'], charges['refunds'], is_discount=True),
    ]
    survivors = [total for total in candidates if abs(total.amount) >= CATEGORY_EPSILON]
    return sorted(survivors, key=lambda total: abs(total.amount), reverse=True)


def aggregate(
    lines: Sequence[PricedLine],
    invoice: Invoice,
    additional_charges: Sequence[AdditionalCharge],
    rules: InvoiceRules,
) -> Aggregation:
    order_groups = group_by_order(lines, rules)
    category_totals = build_category_totals(invoice, additional_charges, rules)
    logger.debug(f"Aggregated {len(lines)} lines into {len(order_groups)} order groups")
    return Aggregation(category_totals=category_totals, order_groups=order_groups)


def cost_per_order(lines: Iterable[PricedLine], invoice: Invoice, rules: InvoiceRules) -> CostPerOrder:
    order_codes = {
        line.record.order_code.strip()
        for line in lines
        if rules.is_real_order(line.record.order_code)
    }
    count = len(order_codes)
    per_order = d(invoice.total_amount) / count if count else ZERO
    return CostPerOrder(order_count=count, cost_per_order=per_order)


def normalize_state(raw: str, rules: InvoiceRules) -> str:
    unknown = rules.labels['unknown_state']
    state = (raw or "").strip().upper()
    if not state or state == unknown:
        return unknown
    match = UF_PATTERN.search(state)
    if match:
        return match.group(1)
    return state[:2]


def shipping_totals_by_state(lines: Iterable[PricedLine], rules: InvoiceRules) -> List[StateShippingTotal]:
    counts: Dict[str, int] = {}
    totals: Dict[str, Decimal] = {}
    for line in lines:
        if not line.counts_toward_totals or not rules.is_shipping_category(line.item.category):
            continue
        state = normalize_state(line.record.state, rules)
        counts[state] = counts.get(state, 0) + 1
        totals[state] = totals.get(state, ZERO) + line.subtotal

    rows = [StateShippingTotal(state, counts[state], totals[state]) for state in totals]
    return sorted(rows, key=lambda row: row.subtotal, reverse=True)
