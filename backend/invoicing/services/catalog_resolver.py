"""
Catalog reference resolution

Usage records point at catalog entries by id, but the catalog is fetched fresh
while invoices were generated against an older snapshot. The resolver indexes
one snapshot and resolves references in three steps: exact id, a per-session
memo of previously seen stale references, and finally the fallbacks
(normalized description match, then the tax-line heuristic).

One resolver instance covers one rendering/export pass over one catalog
snapshot. It must not be shared between passes.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from ..dataclasses import CatalogItem, LookupContext, Resolution, ResolutionSource
from .classifier import is_tax_item
from .invoice_rules import InvoiceRules, normalize_text
from .utils import d_or_none

logger = logging.getLogger(__name__)

MemoKey = Tuple[str, bool, bool]


class CatalogResolver:
    def __init__(self, catalog: Iterable[CatalogItem], rules: InvoiceRules):
        self.rules = rules
        self.catalog: List[CatalogItem] = list(catalog)
        self._by_id: Dict[str, CatalogItem] = {}
        self._by_description: Dict[str, CatalogItem] = {}
        self._memo: Dict[MemoKey, Resolution] = {}
        self._tax_item: Optional[CatalogItem] = None
        self._tax_item_loaded = False

        for item in self.catalog:
            # first occurrence wins for both indexes
            self._by_id.setdefault(str(item.id), item)
            key = normalize_text(item.description)
            if key:
                self._by_description.setdefault(key, item)

        logger.debug(f"Indexed {len(self._by_id)} catalog items ({len(self._by_description)} descriptions)")

    @property
    def memo_size(self) -> int:
        return len(self._memo)

    @property
    def tax_item(self) -> Optional[CatalogItem]:
        """The catalog's tax entry, chosen once per snapshot (first by catalog order)."""
        if not self._tax_item_loaded:
            self._tax_item = self._select_tax_item()
            self._tax_item_loaded = True
        return self._tax_item

    def find_by_description(self, text: Optional[str]) -> Optional[CatalogItem]:
        key = normalize_text(text)
        if not key:
            return None
        return self._by_description.get(key)

    def resolve(self, catalog_item_id: Optional[str], context: Optional[LookupContext] = None) -> Resolution:
        """
        Resolve a usage record's catalog reference.

        NOT_FOUND is a normal result: the caller shows the line as unresolved.
        A record with no reference was never assigned a service, so the stale
        reference fallbacks do not apply to it.
        """
        reference = str(catalog_item_id) if catalog_item_id is not None else ""
        if not reference.strip():
            return Resolution(None, ResolutionSource.NOT_FOUND)

        item = self._by_id.get(reference)
        if item is not None:
            return Resolution(item, ResolutionSource.EXACT_ID)

        context = context or LookupContext()
        key = self._memo_key(reference, context)
        memoized = self._memo.get(key)
        if memoized is not None:
            return memoized

        resolution = self._resolve_stale(reference, context)
        self._memo[key] = resolution
        return resolution

    def _memo_key(self, reference: str, context: LookupContext) -> MemoKey:
        # only what the fallbacks read from the context goes into the key
        return reference, self.rules.is_real_order(context.order_code), self._is_small_quantity(context.quantity)

    def _resolve_stale(self, reference: str, context: LookupContext) -> Resolution:
        item = self.find_by_description(reference)
        if item is not None:
            logger.info(f"Stale reference '{reference}' resolved by description to catalog item {item.id}")
            return Resolution(item, ResolutionSource.DESCRIPTION)

        item = self._guess_tax_item(context)
        if item is not None:
            logger.info(
                f"Stale reference '{reference}' on order {context.order_code} "
                f"assumed to be tax line -> catalog item {item.id}"
            )
            return Resolution(item, ResolutionSource.TAX_FALLBACK)

        logger.debug(f"No fallback matched catalog reference '{reference}' (order {context.order_code or '-'})")
        return Resolution(None, ResolutionSource.NOT_FOUND)

    def _guess_tax_item(self, context: LookupContext) -> Optional[CatalogItem]:
        """Low-quantity unresolved lines on a real order are most likely tax lines."""
        if not self.rules.is_real_order(context.order_code):
            return None
        if not self._is_small_quantity(context.quantity):
            return None
        return self.tax_item

    def _is_small_quantity(self, quantity) -> bool:
        value: Optional[Decimal] = d_or_none(quantity)
        if value is None:
            return False
        return value <= self.rules.tax_fallback_max_quantity

    def _select_tax_item(self) -> Optional[CatalogItem]:
        by_category = [item for item in self.catalog if self.rules.is_tax_category(item.category)]
        candidates = by_category or [item for item in self.catalog if is_tax_item(item, self.rules)]
        if not candidates:
            logger.debug("Catalog has no tax item; tax fallback disabled")
            return None
        if len(candidates) > 1:
            logger.warning(
                f"Catalog has {len(candidates)} tax items "
                f"({', '.join(str(c.id) for c in candidates)}); using first: {candidates[0].id}"
            )
        return candidates[0]
