from __future__ import annotations

from ..dataclasses import CatalogItem, LineVariant
from .invoice_rules import InvoiceRules, normalize_text


def is_tax_item(item: CatalogItem, rules: InvoiceRules) -> bool:
    if rules.is_tax_category(item.category):
        return True
    return rules.tax_keyword in normalize_text(item.description)


def is_template_item(item: CatalogItem, rules: InvoiceRules) -> bool:
    """
    Placeholder items carry a cost basis in the usage record instead of a fixed
    price. They are recognised by a sentinel sale price on a shipping or tax
    entry, or on any entry whose description mentions the template keyword.
    """
    if not rules.is_sentinel_price(item.sale_unit_price):
        return False
    if rules.is_shipping_category(item.category) or rules.is_tax_category(item.category):
        return True
    return rules.template_keyword in normalize_text(item.description)


def classify(item: CatalogItem, rules: InvoiceRules) -> LineVariant:
    """
    Pricing variant for a resolved catalog entry.

    Precedence: tax first, then shipping/returns and templates, then fixed.
    Display suppression is decided separately in visibility.is_visible.
    """
    if is_tax_item(item, rules):
        return LineVariant.TAX_WITH_FLOOR
    if rules.is_shipping_category(item.category) or is_template_item(item, rules):
        return LineVariant.VARIABLE
    return LineVariant.FIXED
