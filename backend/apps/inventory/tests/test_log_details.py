from decimal import Decimal
from types import SimpleNamespace

from django.test import SimpleTestCase

from apps.inventory.errors import UnparsableLogDetails
from apps.inventory.log_details import deducted_amount, describe, movement, restored_by_source
from apps.inventory.models import LogAction


class DeductedAmountTests(SimpleTestCase):
    def test_current_payload(self):
        self.assertEqual(deducted_amount({"v": 2, "quantity_change": "-12.50"}), Decimal("12.50"))

    def test_positive_change_deducted_nothing(self):
        self.assertEqual(deducted_amount({"quantity_change": "3.00"}), Decimal("0.00"))

    def test_direction_payload(self):
        self.assertEqual(
            deducted_amount({"quantity_adjusted": 4, "adjustment_direction": "Decrease"}),
            Decimal("4"),
        )
        self.assertEqual(
            deducted_amount({"quantity_adjusted": 4, "adjustment_direction": "increase"}),
            Decimal("0.00"),
        )

    def test_before_after_payload(self):
        self.assertEqual(deducted_amount({"original_quantity": "10", "new_quantity": "7.25"}), Decimal("2.75"))

    def test_unknown_shape_raises(self):
        with self.assertRaises(UnparsableLogDetails):
            deducted_amount({"amount": "5"})
        with self.assertRaises(UnparsableLogDetails):
            deducted_amount("-5")

    def test_non_numeric_value_raises(self):
        with self.assertRaises(UnparsableLogDetails):
            deducted_amount({"quantity_change": "a lot"})


class PayloadTests(SimpleTestCase):
    def test_movement_drops_empty_extras(self):
        details = movement(Decimal("-1.5"), "kg", reason=None, sale_id="s1")

        self.assertEqual(details, {"v": 2, "quantity_change": "-1.50", "unit": "kg", "sale_id": "s1"})

    def test_restored_by_source_sums_per_entry(self):
        logs = [
            SimpleNamespace(details={"sources": [{"log_id": "a", "amount": "1.00"}, {"log_id": "b", "amount": "2"}]}),
            SimpleNamespace(details={"sources": [{"log_id": "a", "amount": "0.50"}]}),
            SimpleNamespace(details={}),
        ]

        self.assertEqual(restored_by_source(logs), {"a": Decimal("1.50"), "b": Decimal("2")})

    def test_describe_adjustment(self):
        log = SimpleNamespace(
            action=LogAction.ADJUSTMENT_WASTE,
            details={"quantity_change": "-3.00", "unit": "kg", "reason": "Dropped tray"},
        )

        summary = describe(log)

        self.assertEqual(summary["title"], "Adjustment: waste")
        self.assertEqual(summary["quantity"], "-3.00 kg")
        self.assertIn("Reason: Dropped tray", summary["description"])

    def test_describe_portion_restore(self):
        log = SimpleNamespace(
            action=LogAction.PORTION_RESTORED,
            details={"portion_label": "RIB-HBR-B1-01", "previous_status": "spoiled", "new_status": "unused"},
        )

        summary = describe(log)

        self.assertEqual(summary["title"], "Portion restored")
        self.assertEqual(summary["description"], "Portion RIB-HBR-B1-01. spoiled -> unused")
