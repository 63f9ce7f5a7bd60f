from decimal import Decimal

import pytest

from ..dataclasses import AdditionalCharge, CatalogItem, Invoice, UsageRecord
from ..services.invoice_rules import clear_invoice_rules_cache, get_invoice_rules_instance


def make_item(item_id, category, description, sale_unit_price="10.00", base_cost=None, margin_percent=None, subcategory=""):
    return CatalogItem(
        id=item_id,
        category=category,
        subcategory=subcategory,
        description=description,
        base_cost=Decimal(base_cost) if base_cost is not None else None,
        margin_percent=Decimal(margin_percent) if margin_percent is not None else None,
        sale_unit_price=Decimal(sale_unit_price) if sale_unit_price is not None else None,
    )


def make_record(record_id, order_code, catalog_item_id, quantity, state="", tracking_code="", date=None):
    return UsageRecord(
        id=record_id,
        order_code=order_code,
        catalog_item_id=catalog_item_id,
        quantity=Decimal(str(quantity)),
        tracking_code=tracking_code,
        state=state,
        date=date,
    )


@pytest.fixture
def rules():
    clear_invoice_rules_cache()
    yield get_invoice_rules_instance()
    clear_invoice_rules_cache()


@pytest.fixture
def catalog():
    return [
        make_item("ENV-1", "Envios", "Envio PAC (template)", sale_unit_price="1.00", margin_percent="10"),
        make_item("RET-1", "Retornos", "Logística reversa", sale_unit_price="1.00", margin_percent="20"),
        make_item("PP-1", "Pick & Pack", "Separação por item", sale_unit_price="2.50", base_cost="2.00", margin_percent="25"),
        make_item("ARM-1", "Armazenamento", "Armazenagem por unidade", sale_unit_price="0.10"),
        make_item("DIF-1", "Difal", "DIFAL por pedido", sale_unit_price="1.00", base_cost="1.00", margin_percent="200"),
        make_item("INT-1", "Custos Internos", "Conferência interna", sale_unit_price="5.00"),
        make_item("TP-1", "Pick & Pack", "Embalagem especial (TP)", sale_unit_price="4.00"),
        make_item("SEG-1", "Seguro de envio", "Seguro template", sale_unit_price="0.01", margin_percent="0"),
    ]


@pytest.fixture
def invoice():
    return Invoice(
        id="INV-2024-08",
        reference_month="Agosto/2024",
        total_amount=Decimal("150.00"),
        total_shipping=Decimal("60.00"),
        total_logistics=Decimal("40.00"),
        total_storage=Decimal("30.00"),
        total_extra_costs=Decimal("0"),
        total_additional_costs=Decimal("20.00"),
        shipment_count=3,
    )


@pytest.fixture
def additional_charges():
    return [
        AdditionalCharge(id="C1", description="Etiquetas extras", amount=Decimal("25.00"), category="Outro"),
        AdditionalCharge(id="C2", description="Avaria no pedido PED-2", amount=Decimal("5.00"), is_refund=True,
                         refund_reason="Produto danificado"),
    ]
