from __future__ import annotations

from typing import Optional

from ..dataclasses import CatalogItem
from .classifier import is_tax_item
from .invoice_rules import InvoiceRules


def is_always_visible(item: CatalogItem, rules: InvoiceRules) -> bool:
    return (
        rules.is_shipping_category(item.category)
        or rules.is_storage_category(item.category)
        or is_tax_item(item, rules)
    )


def is_suppressed(item: CatalogItem, rules: InvoiceRules) -> bool:
    if is_always_visible(item, rules):
        return False
    if rules.is_sentinel_price(item.sale_unit_price):
        return True
    if rules.is_internal_category(item.category):
        return True
    description = item.description or ""
    return any(marker in description for marker in rules.internal_markers)


def is_visible(item: Optional[CatalogItem], rules: InvoiceRules) -> bool:
    """Whether a line priced from `item` is shown to the customer. Unresolved lines stay visible."""
    if item is None:
        return True
    return not is_suppressed(item, rules)
