"""
Invoice Rules Configuration

This module loads, validates and exposes the rules that drive invoice pricing:
which catalog categories count as shipping, storage, tax or internal costs,
the sentinel prices that mark placeholder items, the tax price floor and the
labels used for the invoice summary and export.
"""

import json
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, FrozenSet, List, Tuple

from django.conf import settings

from .utils import d

logger = logging.getLogger(__name__)


class InvoiceRulesError(Exception):
    """Base exception for invoice rules related errors"""
    pass


class ConfigurationError(InvoiceRulesError):
    """Raised when there are issues with the configuration file"""
    pass


class ValidationError(InvoiceRulesError):
    """Raised when invoice rules validation fails"""
    pass


REQUIRED_KEYS = [
    'version', 'categories', 'tax_keyword', 'template_keyword', 'internal_markers',
    'sentinel_prices', 'tax_floor', 'tax_fallback_max_quantity',
    'synthetic_order_prefixes', 'labels', 'export',
]
CATEGORY_GROUPS = ['shipping', 'storage', 'tax', 'internal']
LABEL_KEYS = [
    'shipping', 'logistics', 'storage', 'extra_costs', 'additional_costs',
    'refunds', 'no_order', 'no_category', 'unknown_state',
]
EXPORT_KEYS = [
    'additional_charge_category', 'refund_category',
    'unresolved_category', 'unresolved_description',
]


def normalize_text(value) -> str:
    """Case- and whitespace-insensitive form used for category and description matching."""
    return " ".join(str(value or "").split()).casefold()


@dataclass(frozen=True)
class InvoiceRules:
    version: str
    shipping_categories: FrozenSet[str]
    storage_categories: FrozenSet[str]
    tax_categories: FrozenSet[str]
    internal_categories: FrozenSet[str]
    tax_keyword: str
    template_keyword: str
    internal_markers: Tuple[str, ...]
    sentinel_prices: FrozenSet[Decimal]
    tax_floor: Decimal
    tax_fallback_max_quantity: Decimal
    synthetic_order_prefixes: Tuple[str, ...]
    labels: Dict[str, str]
    export_labels: Dict[str, str]

    def is_shipping_category(self, category: str) -> bool:
        return normalize_text(category) in self.shipping_categories

    def is_storage_category(self, category: str) -> bool:
        return normalize_text(category) in self.storage_categories

    def is_tax_category(self, category: str) -> bool:
        return normalize_text(category) in self.tax_categories

    def is_internal_category(self, category: str) -> bool:
        return normalize_text(category) in self.internal_categories

    def is_sentinel_price(self, price) -> bool:
        if price is None:
            return False
        return d(price) in self.sentinel_prices

    def is_real_order(self, order_code: str) -> bool:
        """Storage/material-intake buckets and blank codes are not shippable orders."""
        code = normalize_text(order_code)
        if not code:
            return False
        return not any(code.startswith(prefix) for prefix in self.synthetic_order_prefixes)


def load_invoice_rules(config_path: str = None) -> dict:
    """
    Load invoice rules from JSON configuration file

    Args:
        config_path: Path to the invoice rules JSON file. If None, uses the
            INVOICING_RULES_PATH setting or the bundled default.

    Returns:
        dict: Parsed invoice rules configuration

    Raises:
        ConfigurationError: If file cannot be loaded or parsed
    """
    if config_path is None:
        config_path = getattr(settings, 'INVOICING_RULES_PATH', None)
    if config_path is None:
        config_path = Path(__file__).parent.parent / "config" / "invoice_rules.json"

    try:
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigurationError(f"Invoice rules configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            rules = json.load(f)

        logger.info(f"Successfully loaded invoice rules from {config_path}")
        return rules

    except ConfigurationError:
        raise
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in invoice rules file: {e}")
    except Exception as e:
        raise ConfigurationError(f"Error loading invoice rules configuration: {e}")


def validate_invoice_rules(rules: dict) -> List[str]:
    """
    Validate that invoice rules are complete and consistent

    Args:
        rules: Invoice rules configuration dictionary

    Returns:
        List[str]: List of validation errors (empty if valid)
    """
    errors = []

    for key in REQUIRED_KEYS:
        if key not in rules:
            errors.append(f"Missing required top-level key: {key}")

    if 'categories' in rules:
        errors.extend(_validate_categories(rules['categories']))

    for key in ('tax_floor', 'tax_fallback_max_quantity'):
        if key in rules:
            errors.extend(_validate_non_negative_decimal(key, rules[key]))

    if 'sentinel_prices' in rules:
        if not isinstance(rules['sentinel_prices'], list):
            errors.append("sentinel_prices must be a list")
        else:
            for price in rules['sentinel_prices']:
                errors.extend(_validate_non_negative_decimal('sentinel_prices', price))

    for key in ('internal_markers', 'synthetic_order_prefixes'):
        if key in rules and not isinstance(rules[key], list):
            errors.append(f"{key} must be a list")

    if 'labels' in rules:
        errors.extend(_validate_label_block('labels', rules['labels'], LABEL_KEYS))
    if 'export' in rules:
        errors.extend(_validate_label_block('export', rules['export'], EXPORT_KEYS))

    errors.extend(_cross_validate_categories(rules.get('categories', {})))

    if not errors:
        logger.info("Invoice rules validation passed")
    else:
        logger.warning(f"Invoice rules validation found {len(errors)} errors")

    return errors


def build_invoice_rules(raw: dict) -> InvoiceRules:
    """Turn a validated rules dict into the immutable InvoiceRules used by the engine."""
    errors = validate_invoice_rules(raw)
    if errors:
        raise ValidationError(f"Invoice rules validation failed: {errors}")

    categories = raw['categories']
    return InvoiceRules(
        version=str(raw['version']),
        shipping_categories=frozenset(normalize_text(c) for c in categories['shipping']),
        storage_categories=frozenset(normalize_text(c) for c in categories['storage']),
        tax_categories=frozenset(normalize_text(c) for c in categories['tax']),
        internal_categories=frozenset(normalize_text(c) for c in categories['internal']),
        tax_keyword=normalize_text(raw['tax_keyword']),
        template_keyword=normalize_text(raw['template_keyword']),
        internal_markers=tuple(raw['internal_markers']),
        sentinel_prices=frozenset(d(p) for p in raw['sentinel_prices']),
        tax_floor=d(raw['tax_floor']),
        tax_fallback_max_quantity=d(raw['tax_fallback_max_quantity']),
        synthetic_order_prefixes=tuple(normalize_text(p) for p in raw['synthetic_order_prefixes']),
        labels=dict(raw['labels']),
        export_labels=dict(raw['export']),
    )


# Private helper functions

def _validate_categories(categories) -> List[str]:
    """Validate the category group mapping"""
    errors = []
    if not isinstance(categories, dict):
        return ["categories must be a dictionary"]

    for group in CATEGORY_GROUPS:
        if group not in categories:
            errors.append(f"Missing category group: {group}")
            continue
        names = categories[group]
        if not isinstance(names, list):
            errors.append(f"Category group '{group}' must be a list")
        elif not names:
            errors.append(f"Category group '{group}' cannot be empty")
    return errors


def _validate_non_negative_decimal(key: str, value) -> List[str]:
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return [f"{key} must be a decimal number, got {value!r}"]
    if not number.is_finite() or number < 0:
        return [f"{key} must be a non-negative number, got {value!r}"]
    return []


def _validate_label_block(block: str, labels, required: List[str]) -> List[str]:
    if not isinstance(labels, dict):
        return [f"{block} must be a dictionary"]
    return [f"Missing label '{key}' in {block}" for key in required if not labels.get(key)]


def _cross_validate_categories(categories) -> List[str]:
    """A category name may belong to one group only, otherwise precedence becomes ambiguous."""
    errors = []
    if not isinstance(categories, dict):
        return errors

    seen: Dict[str, str] = {}
    for group in CATEGORY_GROUPS:
        names = categories.get(group)
        if not isinstance(names, list):
            continue
        for name in names:
            key = normalize_text(name)
            if key in seen and seen[key] != group:
                errors.append(f"Category '{name}' listed in both '{seen[key]}' and '{group}'")
            seen.setdefault(key, group)
    return errors


# Convenience functions for common operations

def get_invoice_rules_instance() -> InvoiceRules:
    """Get a cached instance of invoice rules (singleton pattern)"""
    if not hasattr(get_invoice_rules_instance, '_cached_rules'):
        raw = load_invoice_rules()
        try:
            get_invoice_rules_instance._cached_rules = build_invoice_rules(raw)
        except ValidationError as e:
            logger.error(str(e))
            raise

    return get_invoice_rules_instance._cached_rules


def clear_invoice_rules_cache():
    """Clear the cached invoice rules (useful for testing or config updates)"""
    if hasattr(get_invoice_rules_instance, '_cached_rules'):
        delattr(get_invoice_rules_instance, '_cached_rules')
