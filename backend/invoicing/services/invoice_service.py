from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from ..dataclasses import (
    AdditionalCharge,
    CatalogItem,
    Invoice,
    InvoiceBreakdown,
    LineIssue,
    LookupContext,
    PricedLine,
    TotalsDiscrepancy,
    UsageRecord,
)
from .aggregator import aggregate, cost_per_order, shipping_totals_by_state, sum_charges
from .catalog_resolver import CatalogResolver
from .classifier import classify
from .invoice_rules import InvoiceRules, get_invoice_rules_instance
from .line_pricing import price_line
from .utils import ZERO, d
from .visibility import is_visible

logger = logging.getLogger(__name__)

RECONCILIATION_TOLERANCE = Decimal("0.01")


def price_usage_record(record: UsageRecord, resolver: CatalogResolver, rules: InvoiceRules) -> PricedLine:
    context = LookupContext(order_code=record.order_code, quantity=record.quantity)
    resolution = resolver.resolve(record.catalog_item_id, context)

    if not resolution.is_resolved:
        logger.warning(
            f"Usage record {record.id} (order {record.order_code or '-'}): catalog reference "
            f"'{record.catalog_item_id or ''}' could not be resolved; excluded from totals"
        )
        return PricedLine(
            record=record,
            resolution=resolution,
            variant=None,
            quantity_basis=None,
            effective_quantity=d(record.quantity),
            issues=[LineIssue.UNRESOLVED_REFERENCE],
        )

    item = resolution.item
    variant = classify(item, rules)
    price = price_line(record, item, variant, rules)
    return PricedLine(
        record=record,
        resolution=resolution,
        variant=variant,
        quantity_basis=price.quantity_basis,
        unit_price=price.unit_price,
        effective_quantity=price.effective_quantity,
        subtotal=price.subtotal,
        issues=list(price.issues),
        visible=is_visible(item, rules),
    )


def price_usage_records(
    usage_records: Iterable[UsageRecord],
    catalog: Iterable[CatalogItem],
    rules: Optional[InvoiceRules] = None,
) -> List[PricedLine]:
    """Price every record against one catalog snapshot, with a resolver owned by this call."""
    rules = rules or get_invoice_rules_instance()
    resolver = CatalogResolver(catalog, rules)
    return [price_usage_record(record, resolver, rules) for record in usage_records]


def compute_total(lines: Iterable[PricedLine], invoice: Invoice, additional_charges: Sequence[AdditionalCharge]) -> Decimal:
    """Customer-visible line subtotals plus signed charges plus the stored, non-itemized extra costs."""
    lines_total = sum((line.subtotal for line in lines if line.counts_toward_totals), ZERO)
    charges = sum_charges(additional_charges)
    return lines_total + charges['additional'] + charges['refunds'] + d(invoice.total_extra_costs)


def check_reconciliation(invoice: Invoice, computed_total: Decimal) -> Optional[TotalsDiscrepancy]:
    """
    Compare the recomputed total against the stored one.

    The stored total stays authoritative; a mismatch (usually catalog drift)
    is only reported.
    """
    stored_total = d(invoice.total_amount)
    if abs(computed_total - stored_total) <= RECONCILIATION_TOLERANCE:
        return None
    logger.info(
        f"Invoice {invoice.id} ({invoice.reference_month}): recomputed total {computed_total:.2f} "
        f"differs from stored total {stored_total:.2f}"
    )
    return TotalsDiscrepancy(stored_total=stored_total, computed_total=computed_total)


def build_invoice_breakdown(
    invoice: Invoice,
    usage_records: Sequence[UsageRecord],
    catalog: Sequence[CatalogItem],
    additional_charges: Sequence[AdditionalCharge] = (),
    rules: Optional[InvoiceRules] = None,
) -> InvoiceBreakdown:
    """
    Price, filter and group an invoice's usage records for display and export.

    All inputs must already be fetched. The invoice and charge records are
    read only.
    """
    rules = rules or get_invoice_rules_instance()
    additional_charges = list(additional_charges)

    priced = price_usage_records(usage_records, catalog, rules)
    visible = [line for line in priced if line.visible]
    hidden = [line for line in priced if not line.visible]
    unresolved = [line for line in priced if not line.is_resolved]

    aggregation = aggregate(priced, invoice, additional_charges, rules)
    computed_total = compute_total(visible, invoice, additional_charges)

    missing_prices = sum(1 for line in priced if LineIssue.MISSING_CATALOG_PRICE in line.issues)
    logger.info(
        f"Invoice {invoice.id}: priced {len(priced)} lines "
        f"({len(hidden)} hidden, {len(unresolved)} unresolved, {missing_prices} without price) "
        f"into {len(aggregation.order_groups)} orders"
    )

    return InvoiceBreakdown(
        invoice=invoice,
        lines=visible,
        hidden_lines=hidden,
        unresolved_lines=unresolved,
        category_totals=aggregation.category_totals,
        order_groups=aggregation.order_groups,
        computed_total=computed_total,
        cost_per_order=cost_per_order(priced, invoice, rules),
        shipping_by_state=shipping_totals_by_state(visible, rules),
        discrepancy=check_reconciliation(invoice, computed_total),
    )
