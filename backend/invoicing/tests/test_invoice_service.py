"""
End-to-end tests for building an invoice breakdown from usage records.
"""

from decimal import Decimal

from ..dataclasses import Invoice, LineIssue, LineVariant, ResolutionSource
from ..services.invoice_service import build_invoice_breakdown, check_reconciliation
from .conftest import make_record


def _records():
    return [
        make_record("1", "PED-1", "PP-1", "2", state="SP"),
        make_record("2", "PED-1", "ENV-1", "18.00", state="SP"),
        make_record("3", "PED-1", "Z999", "2"),
        make_record("4", "PED-1", "INT-1", "1"),
        make_record("5", "PED-2", "ENV-1", "10.00", state="RJ"),
        make_record("6", "PED-2", "DIF-1", "0.50"),
        make_record("7", "ARMAZENAGEM (Unidades)", "ARM-1", "250"),
        make_record("8", "ARMAZENAGEM (Unidades)", "Z999", "2"),
    ]


class TestBuildInvoiceBreakdown:
    def test_stale_reference_on_real_order_is_priced_as_tax(self, rules, catalog, invoice):
        breakdown = build_invoice_breakdown(invoice, _records(), catalog, rules=rules)
        line = next(l for l in breakdown.lines if l.record.id == "3")
        assert line.resolution.source == ResolutionSource.TAX_FALLBACK
        assert line.variant == LineVariant.TAX_WITH_FLOOR
        # cost basis 2 at 200% margin
        assert line.unit_price == Decimal("6")
        assert line.effective_quantity == Decimal("1")

    def test_stale_reference_on_storage_bucket_is_unresolved(self, rules, catalog, invoice):
        breakdown = build_invoice_breakdown(invoice, _records(), catalog, rules=rules)
        assert [l.record.id for l in breakdown.unresolved_lines] == ["8"]
        line = breakdown.unresolved_lines[0]
        assert line.issues == [LineIssue.UNRESOLVED_REFERENCE]
        assert line.subtotal == Decimal("0")
        storage = breakdown.order_groups["ARMAZENAGEM (Unidades)"]
        assert storage.order_total == Decimal("25.00")
        assert line in storage.categories["Outros"]

    def test_unassigned_records_are_not_billed(self, rules, catalog, invoice):
        """Rows with no catalog reference stay unresolved on a real order"""
        records = [
            make_record("1", "PED-1", None, "1"),
            make_record("2", "PED-1", "", "2"),
            make_record("3", "PED-1", "PP-1", "1"),
        ]
        breakdown = build_invoice_breakdown(invoice, records, catalog, rules=rules)
        assert [l.record.id for l in breakdown.unresolved_lines] == ["1", "2"]
        assert all(l.resolution.source == ResolutionSource.NOT_FOUND for l in breakdown.unresolved_lines)
        assert breakdown.order_groups["PED-1"].order_total == Decimal("2.50")
        assert breakdown.computed_total == Decimal("2.50")

    def test_each_unresolved_line_is_logged(self, rules, catalog, invoice, caplog):
        records = [
            make_record("1", "ARMAZENAGEM", "Z999", "2"),
            make_record("2", "ARMAZENAGEM", "Z999", "3"),
        ]
        build_invoice_breakdown(invoice, records, catalog, rules=rules)
        warnings = [r.getMessage() for r in caplog.records if "could not be resolved" in r.getMessage()]
        assert len(warnings) == 2
        assert "Usage record 1" in warnings[0]
        assert "Usage record 2" in warnings[1]

    def test_hidden_lines(self, rules, catalog, invoice):
        breakdown = build_invoice_breakdown(invoice, _records(), catalog, rules=rules)
        assert [l.record.id for l in breakdown.hidden_lines] == ["4"]
        assert all(l.record.id != "4" for l in breakdown.lines)

    def test_order_totals(self, rules, catalog, invoice):
        breakdown = build_invoice_breakdown(invoice, _records(), catalog, rules=rules)
        assert list(breakdown.order_groups) == ["PED-1", "PED-2", "ARMAZENAGEM (Unidades)"]
        # 2 * 2.50 + 18.00 * 1.10 + 6.00 (tax fallback)
        assert breakdown.order_groups["PED-1"].order_total == Decimal("30.80")
        # 10.00 * 1.10 + floor 3.00
        assert breakdown.order_groups["PED-2"].order_total == Decimal("14.00")

    def test_computed_total_and_charges(self, rules, catalog, invoice, additional_charges):
        breakdown = build_invoice_breakdown(invoice, _records(), catalog, additional_charges, rules=rules)
        # 30.80 + 14.00 + 25.00 storage + 25.00 charge - 5.00 refund
        assert breakdown.computed_total == Decimal("89.80")
        assert breakdown.invoice.total_amount == Decimal("150.00")
        assert breakdown.discrepancy is not None
        assert breakdown.discrepancy.difference == Decimal("-60.20")

    def test_category_totals_from_invoice_and_charges(self, rules, catalog, invoice, additional_charges):
        breakdown = build_invoice_breakdown(invoice, _records(), catalog, additional_charges, rules=rules)
        assert [(t.label, t.amount) for t in breakdown.category_totals] == [
            ("Envios", Decimal("60.00")),
            ("Custos Logísticos", Decimal("40.00")),
            ("Armazenamento", Decimal("30.00")),
            ("Custos Adicionais", Decimal("25.00")),
            ("Reembolsos", Decimal("-5.00")),
        ]

    def test_summaries(self, rules, catalog, invoice):
        breakdown = build_invoice_breakdown(invoice, _records(), catalog, rules=rules)
        assert breakdown.cost_per_order.order_count == 2
        assert breakdown.cost_per_order.cost_per_order == Decimal("75")
        assert [s.state for s in breakdown.shipping_by_state] == ["SP", "RJ"]

    def test_every_line_has_one_order_and_category(self, rules, catalog, invoice):
        breakdown = build_invoice_breakdown(invoice, _records(), catalog, rules=rules)
        seen = [l.record.id for g in breakdown.order_groups.values() for l in g.lines]
        assert sorted(seen) == sorted(l.record.id for l in breakdown.lines)
        assert len(seen) == len(set(seen))

    def test_inputs_are_not_mutated(self, rules, catalog, invoice, additional_charges):
        records = _records()
        before = (list(records), list(catalog), list(additional_charges), invoice)
        build_invoice_breakdown(invoice, records, catalog, additional_charges, rules=rules)
        assert (records, catalog, additional_charges, invoice) == before

    def test_passes_are_independent(self, rules, catalog, invoice):
        first = build_invoice_breakdown(invoice, _records(), catalog, rules=rules)
        shrunk = [item for item in catalog if item.id != "DIF-1"]
        second = build_invoice_breakdown(invoice, _records(), shrunk, rules=rules)
        assert next(l for l in first.lines if l.record.id == "3").is_resolved
        assert not next(l for l in second.lines if l.record.id == "3").is_resolved

    def test_uses_cached_rules_by_default(self, rules, catalog, invoice):
        breakdown = build_invoice_breakdown(invoice, _records(), catalog)
        assert breakdown.order_groups["PED-2"].order_total == Decimal("14.00")


class TestReconciliation:
    def _invoice(self, total):
        return Invoice(id="INV", reference_month="Agosto/2024", total_amount=Decimal(total))

    def test_within_tolerance(self):
        assert check_reconciliation(self._invoice("100.00"), Decimal("100.005")) is None

    def test_mismatch_is_advisory(self, caplog):
        invoice = self._invoice("100.00")
        discrepancy = check_reconciliation(invoice, Decimal("97.30"))
        assert discrepancy.stored_total == Decimal("100.00")
        assert discrepancy.computed_total == Decimal("97.30")
        assert invoice.total_amount == Decimal("100.00")
        assert "differs from stored total" in caplog.text
