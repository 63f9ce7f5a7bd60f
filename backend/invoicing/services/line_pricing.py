from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from ..dataclasses import CatalogItem, LineIssue, LinePrice, LineVariant, QuantityBasis, UsageRecord
from .invoice_rules import InvoiceRules
from .utils import ONE, ZERO, apply_margin, d, d_or_none

logger = logging.getLogger(__name__)


def fixed_unit_price(item: CatalogItem) -> Optional[Decimal]:
    """
    Margin-inclusive sale price of a flat-rate item.

    Falls back to base cost plus margin when the stored sale price is unusable.
    Returns None when neither gives a positive price.
    """
    sale_price = d_or_none(item.sale_unit_price)
    if sale_price is not None and sale_price > 0:
        return sale_price

    base_cost = d_or_none(item.base_cost)
    if base_cost is not None and base_cost > 0:
        return apply_margin(base_cost, d_or_none(item.margin_percent))

    return None


def variable_unit_price(cost_basis: Decimal, item: CatalogItem) -> Decimal:
    return apply_margin(cost_basis, d_or_none(item.margin_percent))


def price_line(record: UsageRecord, item: CatalogItem, variant: LineVariant, rules: InvoiceRules) -> LinePrice:
    """
    Compute unit price, effective quantity and subtotal of one usage line.

    FIXED lines multiply the catalog price by the recorded count. VARIABLE and
    TAX_WITH_FLOOR lines read the recorded quantity as a cost basis, apply the
    item margin and bill a single unit; tax lines are then raised to the floor.
    Values are left unrounded.
    """
    quantity = d(record.quantity)

    if variant == LineVariant.FIXED:
        unit_price = fixed_unit_price(item)
        if unit_price is None:
            logger.warning(
                f"Catalog item {item.id} ('{item.description}') has no usable price; "
                f"line {record.id} priced at 0"
            )
            return LinePrice(
                unit_price=ZERO,
                effective_quantity=quantity,
                subtotal=ZERO,
                quantity_basis=QuantityBasis.COUNT,
                issues=(LineIssue.MISSING_CATALOG_PRICE,),
            )
        return LinePrice(
            unit_price=unit_price,
            effective_quantity=quantity,
            subtotal=unit_price * quantity,
            quantity_basis=QuantityBasis.COUNT,
        )

    unit_price = variable_unit_price(quantity, item)
    if variant == LineVariant.TAX_WITH_FLOOR and unit_price < rules.tax_floor:
        logger.debug(f"Tax line {record.id}: {unit_price} raised to floor {rules.tax_floor}")
        unit_price = rules.tax_floor

    return LinePrice(
        unit_price=unit_price,
        effective_quantity=ONE,
        subtotal=unit_price,
        quantity_basis=QuantityBasis.COST_BASIS,
    )
