from __future__ import annotations

from typing import List

from rest_framework import serializers

from .dataclasses import AdditionalCharge, CatalogItem, Invoice, UsageRecord
from .services.aggregator import line_category
from .services.invoice_rules import get_invoice_rules_instance
from .services.utils import ZERO


def _money_field(**kwargs):
    return serializers.DecimalField(max_digits=18, decimal_places=4, **kwargs)


def _money(value):
    return _money_field().to_representation(value)


def _enum_value(value):
    return value.value if value is not None else None


# ---------- INPUT (raw rows from collaborators -> engine dataclasses) ----------
class CatalogItemSerializer(serializers.Serializer):
    id = serializers.CharField()
    category = serializers.CharField(allow_blank=True)
    subcategory = serializers.CharField(allow_blank=True, required=False, default="")
    description = serializers.CharField(allow_blank=True)
    metric = serializers.CharField(allow_blank=True, required=False, default="")
    base_cost = serializers.DecimalField(max_digits=None, decimal_places=None, required=False, allow_null=True, default=None)
    margin_percent = serializers.DecimalField(max_digits=None, decimal_places=None, required=False, allow_null=True, default=None)
    sale_unit_price = serializers.DecimalField(max_digits=None, decimal_places=None, required=False, allow_null=True, default=None)

    def create(self, validated_data):
        return CatalogItem(**validated_data)


class UsageRecordSerializer(serializers.Serializer):
    id = serializers.CharField()
    order_code = serializers.CharField(allow_blank=True)
    catalog_item_id = serializers.CharField(allow_blank=True, allow_null=True, required=False, default=None)
    quantity = serializers.DecimalField(max_digits=None, decimal_places=None)
    date = serializers.DateField(required=False, allow_null=True, default=None)
    tracking_code = serializers.CharField(allow_blank=True, required=False, default="")
    state = serializers.CharField(allow_blank=True, required=False, default="")
    zip_code = serializers.CharField(allow_blank=True, required=False, default="")

    def create(self, validated_data):
        if validated_data.get("catalog_item_id") == "":
            validated_data["catalog_item_id"] = None
        return UsageRecord(**validated_data)


class AdditionalChargeSerializer(serializers.Serializer):
    id = serializers.CharField()
    description = serializers.CharField()
    amount = serializers.DecimalField(max_digits=None, decimal_places=None)
    category = serializers.CharField(allow_blank=True, required=False, default="")
    is_refund = serializers.BooleanField(required=False, default=False)
    refund_reason = serializers.CharField(allow_blank=True, required=False, default="")

    def validate(self, attrs):
        if attrs.get("is_refund") and attrs["amount"] < 0:
            raise serializers.ValidationError({"amount": "Refund amounts are stored as positive values."})
        return attrs

    def create(self, validated_data):
        return AdditionalCharge(**validated_data)


class InvoiceSerializer(serializers.Serializer):
    id = serializers.CharField()
    reference_month = serializers.CharField()
    due_date = serializers.DateField(required=False, allow_null=True, default=None)
    total_amount = _money_field()
    total_shipping = _money_field(required=False, default=ZERO)
    total_logistics = _money_field(required=False, default=ZERO)
    total_storage = _money_field(required=False, default=ZERO)
    total_extra_costs = _money_field(required=False, default=ZERO)
    total_additional_costs = _money_field(required=False, default=ZERO)
    shipment_count = serializers.IntegerField(required=False, default=0, min_value=0)
    status = serializers.CharField(required=False, default="Pendente")

    def create(self, validated_data):
        return Invoice(**validated_data)


def build_many(serializer_class, rows) -> List:
    """Validate raw rows and build engine objects; raises serializers.ValidationError."""
    serializer = serializer_class(data=list(rows), many=True)
    serializer.is_valid(raise_exception=True)
    return serializer.save()


# ---------- OUTPUT (breakdown -> renderer payload) ----------
class PricedLineSerializer(serializers.Serializer):
    record_id = serializers.CharField(source="record.id")
    date = serializers.DateField(source="record.date")
    tracking_code = serializers.CharField(source="record.tracking_code")
    order_code = serializers.CharField(source="record.order_code")
    state = serializers.CharField(source="record.state")
    catalog_item_id = serializers.SerializerMethodField()
    category = serializers.SerializerMethodField()
    description = serializers.SerializerMethodField()
    resolution = serializers.SerializerMethodField()
    variant = serializers.SerializerMethodField()
    quantity_basis = serializers.SerializerMethodField()
    raw_quantity = _money_field(source="record.quantity")
    effective_quantity = _money_field()
    unit_price = _money_field()
    subtotal = _money_field()
    issues = serializers.SerializerMethodField()

    def get_catalog_item_id(self, line):
        return line.item.id if line.item is not None else line.record.catalog_item_id

    def get_category(self, line):
        return line_category(line, self.context.get("rules") or get_invoice_rules_instance())

    def get_description(self, line):
        return line.item.description if line.item is not None else None

    def get_resolution(self, line):
        return line.resolution.source.value

    def get_variant(self, line):
        return _enum_value(line.variant)

    def get_quantity_basis(self, line):
        return _enum_value(line.quantity_basis)

    def get_issues(self, line):
        return [issue.value for issue in line.issues]


class CategoryTotalSerializer(serializers.Serializer):
    label = serializers.CharField()
    amount = _money_field()
    is_discount = serializers.BooleanField()


class OrderGroupSerializer(serializers.Serializer):
    order_code = serializers.CharField()
    order_total = _money_field()
    categories = serializers.SerializerMethodField()

    def get_categories(self, group):
        return [
            {
                "category": category,
                "total": _money(group.category_total(category)),
                "lines": PricedLineSerializer(lines, many=True, context=self.context).data,
            }
            for category, lines in group.categories.items()
        ]


class CostPerOrderSerializer(serializers.Serializer):
    order_count = serializers.IntegerField()
    cost_per_order = _money_field()


class StateShippingTotalSerializer(serializers.Serializer):
    state = serializers.CharField()
    shipment_count = serializers.IntegerField()
    subtotal = _money_field()


class TotalsDiscrepancySerializer(serializers.Serializer):
    stored_total = _money_field()
    computed_total = _money_field()
    difference = _money_field()


class InvoiceBreakdownSerializer(serializers.Serializer):
    invoice_id = serializers.CharField(source="invoice.id")
    reference_month = serializers.CharField(source="invoice.reference_month")
    due_date = serializers.DateField(source="invoice.due_date")
    status = serializers.CharField(source="invoice.status")
    total_amount = _money_field(source="invoice.total_amount")
    computed_total = _money_field()
    category_totals = CategoryTotalSerializer(many=True)
    orders = serializers.SerializerMethodField()
    unresolved_lines = PricedLineSerializer(many=True)
    hidden_line_count = serializers.SerializerMethodField()
    cost_per_order = CostPerOrderSerializer()
    shipping_by_state = StateShippingTotalSerializer(many=True)
    discrepancy = TotalsDiscrepancySerializer(allow_null=True)

    def get_orders(self, breakdown):
        return OrderGroupSerializer(list(breakdown.order_groups.values()), many=True, context=self.context).data

    def get_hidden_line_count(self, breakdown):
        return len(breakdown.hidden_lines)
