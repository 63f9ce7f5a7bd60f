from __future__ import annotations

from dataclasses import dataclass, field
import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from .services.utils import ZERO


class LineVariant(str, Enum):
    FIXED = "FIXED"
    VARIABLE = "VARIABLE"
    TAX_WITH_FLOOR = "TAX_WITH_FLOOR"


class QuantityBasis(str, Enum):
    """What UsageRecord.quantity means for a given line."""
    COUNT = "COUNT"            # number of units, multiplied by a unit price
    COST_BASIS = "COST_BASIS"  # raw cost that the margin is applied to


class ResolutionSource(str, Enum):
    EXACT_ID = "EXACT_ID"
    DESCRIPTION = "DESCRIPTION"
    TAX_FALLBACK = "TAX_FALLBACK"
    NOT_FOUND = "NOT_FOUND"


class LineIssue(str, Enum):
    UNRESOLVED_REFERENCE = "UNRESOLVED_REFERENCE"
    MISSING_CATALOG_PRICE = "MISSING_CATALOG_PRICE"


@dataclass(frozen=True)
class CatalogItem:
    id: str
    category: str
    description: str
    subcategory: str = ""
    metric: str = ""
    base_cost: Optional[Decimal] = None
    margin_percent: Optional[Decimal] = None
    sale_unit_price: Optional[Decimal] = None


@dataclass(frozen=True)
class UsageRecord:
    id: str
    order_code: str
    catalog_item_id: Optional[str]
    quantity: Decimal
    date: Optional[datetime.date] = None
    tracking_code: str = ""
    state: str = ""
    zip_code: str = ""


@dataclass(frozen=True)
class AdditionalCharge:
    id: str
    description: str
    amount: Decimal
    category: str = ""
    is_refund: bool = False
    refund_reason: str = ""

    @property
    def signed_amount(self) -> Decimal:
        # refunds are stored as positive magnitudes
        return -abs(self.amount) if self.is_refund else self.amount


@dataclass(frozen=True)
class Invoice:
    id: str
    reference_month: str
    total_amount: Decimal
    due_date: Optional[datetime.date] = None
    total_shipping: Decimal = ZERO
    total_logistics: Decimal = ZERO
    total_storage: Decimal = ZERO
    total_extra_costs: Decimal = ZERO
    total_additional_costs: Decimal = ZERO
    shipment_count: int = 0
    status: str = "Pendente"


@dataclass(frozen=True)
class LookupContext:
    order_code: str = ""
    quantity: Optional[Decimal] = None


@dataclass(frozen=True)
class Resolution:
    item: Optional[CatalogItem]
    source: ResolutionSource

    @property
    def is_resolved(self) -> bool:
        return self.item is not None


@dataclass(frozen=True)
class LinePrice:
    unit_price: Decimal
    effective_quantity: Decimal
    subtotal: Decimal
    quantity_basis: QuantityBasis
    issues: tuple = ()


@dataclass
class PricedLine:
    record: UsageRecord
    resolution: Resolution
    variant: Optional[LineVariant]
    quantity_basis: Optional[QuantityBasis]
    unit_price: Decimal = ZERO
    effective_quantity: Decimal = ZERO
    subtotal: Decimal = ZERO
    issues: List[LineIssue] = field(default_factory=list)
    visible: bool = True

    @property
    def item(self) -> Optional[CatalogItem]:
        return self.resolution.item

    @property
    def is_resolved(self) -> bool:
        return self.resolution.is_resolved

    @property
    def counts_toward_totals(self) -> bool:
        return self.visible and self.is_resolved


@dataclass
class OrderGroup:
    order_code: str
    categories: Dict[str, List[PricedLine]] = field(default_factory=dict)
    order_total: Decimal = ZERO

    @property
    def lines(self) -> List[PricedLine]:
        return [line for lines in self.categories.values() for line in lines]

    def category_total(self, category: str) -> Decimal:
        return sum(
            (line.subtotal for line in self.categories.get(category, []) if line.is_resolved),
            ZERO,
        )


@dataclass(frozen=True)
class CategoryTotal:
    label: str
    amount: Decimal
    is_discount: bool = False


@dataclass(frozen=True)
class TotalsDiscrepancy:
    """Recomputed total does not match the stored one. Advisory only."""
    stored_total: Decimal
    computed_total: Decimal

    @property
    def difference(self) -> Decimal:
        return self.computed_total - self.stored_total


@dataclass(frozen=True)
class CostPerOrder:
    order_count: int
    cost_per_order: Decimal


@dataclass(frozen=True)
class StateShippingTotal:
    state: str
    shipment_count: int
    subtotal: Decimal


@dataclass
class Aggregation:
    category_totals: List[CategoryTotal]
    order_groups: Dict[str, OrderGroup]


@dataclass
class InvoiceBreakdown:
    invoice: Invoice
    lines: List[PricedLine]
    hidden_lines: List[PricedLine]
    unresolved_lines: List[PricedLine]
    category_totals: List[CategoryTotal]
    order_groups: Dict[str, OrderGroup]
    computed_total: Decimal
    cost_per_order: CostPerOrder
    shipping_by_state: List[StateShippingTotal] = field(default_factory=list)
    discrepancy: Optional[TotalsDiscrepancy] = None
