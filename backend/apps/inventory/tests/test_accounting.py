from decimal import Decimal

from django.test import TestCase

from apps.catalog.models import InventoryItem, TrackingType
from apps.inventory.errors import (
    CrossBranchMismatch,
    CrossItemMismatch,
    ImmutableFieldViolation,
    InsufficientStock,
    InvalidQuantity,
    InvalidStateTransition,
    MissingReason,
    PermissionDenied,
    UnknownReference,
    UnparsableLogDetails,
)
from apps.inventory.models import AdjustmentType, Batch, LedgerLog, LogAction, Portion, PortionStatus
from apps.inventory.services import accounting
from apps.inventory.tests.base import LedgerFixturesMixin


class ReceiveBatchTests(LedgerFixturesMixin, TestCase):
    def test_measured_batch_numbers_are_sequential_per_branch_and_item(self):
        first = self.receive(self.flour, "25")
        second = self.receive(self.flour, "10")
        other_branch = self.receive(self.flour, "5", branch=self.branch_y)

        self.assertEqual(first.batch_number, 1)
        self.assertEqual(second.batch_number, 2)
        self.assertEqual(other_branch.batch_number, 1)
        self.assertEqual(first.remaining_quantity, Decimal("25.00"))

    def test_portioned_batch_creates_labelled_unused_portions(self):
        batch = self.receive(self.steak, 3)

        labels = list(batch.portions.order_by("portion_number").values_list("label", flat=True))
        self.assertEqual(labels, ["RIB-HBR-B1-01", "RIB-HBR-B1-02", "RIB-HBR-B1-03"])
        self.assertFalse(batch.portions.exclude(status=PortionStatus.UNUSED).exists())
        log = LedgerLog.objects.get(batch=batch)
        self.assertEqual(log.action, LogAction.BATCH_CREATED)
        self.assertEqual(log.details["portions_created"], 3)

    def test_portioned_batch_rejects_fractional_quantity(self):
        with self.assertRaises(InvalidQuantity):
            self.receive(self.steak, "2.5")
        self.assertFalse(Batch.objects.exists())

    def test_staff_cannot_receive_for_another_branch(self):
        with self.assertRaises(PermissionDenied):
            accounting.receive_batch(self.flour, self.branch_x, "5", self.cook_y)


class MeasuredDeductionTests(LedgerFixturesMixin, TestCase):
    def test_sale_deducts_oldest_batch_first(self):
        older = self.receive(self.flour, "5", days_ago=2)
        newer = self.receive(self.flour, "10", days_ago=1)

        logs = accounting.deduct_for_sale(self.flour, self.branch_x, self.cook_x, quantity="8")

        older.refresh_from_db()
        newer.refresh_from_db()
        self.assertEqual(older.remaining_quantity, Decimal("0.00"))
        self.assertEqual(newer.remaining_quantity, Decimal("7.00"))
        self.assertEqual([log.batch_id for log in logs], [older.id, newer.id])
        self.assertEqual(logs[0].details["quantity_change"], "-5.00")
        self.assertEqual(logs[1].details["quantity_change"], "-3.00")

    def test_deducting_exactly_the_remaining_stock_succeeds(self):
        batch = self.receive(self.flour, "100")

        accounting.deduct_for_sale(self.flour, self.branch_x, self.cook_x, quantity="100.00")

        batch.refresh_from_db()
        self.assertEqual(batch.remaining_quantity, Decimal("0.00"))

    def test_deducting_one_cent_more_than_available_changes_nothing(self):
        batch = self.receive(self.flour, "100")

        with self.assertRaises(InsufficientStock):
            accounting.deduct_for_sale(self.flour, self.branch_x, self.cook_x, quantity="100.01")

        batch.refresh_from_db()
        self.assertEqual(batch.remaining_quantity, Decimal("100.00"))
        self.assertFalse(LedgerLog.objects.filter(action=LogAction.DEDUCTED_FOR_SALE).exists())

    def test_stock_at_another_branch_is_not_available(self):
        self.receive(self.flour, "50", branch=self.branch_y)

        with self.assertRaises(InsufficientStock):
            accounting.deduct_for_sale(self.flour, self.branch_x, self.cook_x, quantity="1")


class PortionDeductionTests(LedgerFixturesMixin, TestCase):
    def test_count_picks_oldest_unused_portions(self):
        older = self.receive(self.steak, 2, days_ago=3)
        newer = self.receive(self.steak, 2, days_ago=1)

        logs = accounting.deduct_for_sale(self.steak, self.branch_x, self.cook_x, quantity=3)

        self.assertEqual(len(logs), 3)
        self.assertEqual(older.portions.filter(status=PortionStatus.USED).count(), 2)
        self.assertEqual(newer.portions.filter(status=PortionStatus.USED).count(), 1)
        older.refresh_from_db()
        newer.refresh_from_db()
        self.assertEqual(older.remaining_quantity, Decimal("0.00"))
        self.assertEqual(newer.remaining_quantity, Decimal("1.00"))

    def test_explicit_portions_must_be_unused(self):
        batch = self.receive(self.steak, 2)
        first = self.portion_ids(batch, 1)
        accounting.deduct_for_sale(self.steak, self.branch_x, self.cook_x, portion_ids=first)

        with self.assertRaises(InvalidStateTransition):
            accounting.deduct_for_sale(self.steak, self.branch_x, self.cook_x, portion_ids=first)

    def test_explicit_portions_must_be_held_by_the_branch(self):
        batch = self.receive(self.steak, 2, branch=self.branch_y)

        with self.assertRaises(CrossBranchMismatch):
            accounting.deduct_for_sale(
                self.steak,
                self.branch_x,
                self.cook_x,
                portion_ids=self.portion_ids(batch, 1),
            )

    def test_explicit_portions_must_belong_to_the_item(self):
        batch = self.receive(self.steak, 1)
        fillet = InventoryItem.objects.create(
            name="Fillet",
            code="FIL",
            unit="pc",
            tracking_type=TrackingType.BY_PORTION,
        )

        with self.assertRaises(CrossItemMismatch):
            accounting.deduct_for_sale(fillet, self.branch_x, self.cook_x, portion_ids=self.portion_ids(batch))

    def test_measured_items_cannot_address_portions(self):
        batch = self.receive(self.steak, 1)

        with self.assertRaises(InvalidQuantity):
            accounting.deduct_for_sale(self.flour, self.branch_x, self.cook_x, portion_ids=self.portion_ids(batch))


class AdjustmentTests(LedgerFixturesMixin, TestCase):
    def test_waste_then_restore_returns_quantity(self):
        batch = self.receive(self.flour, "100")

        [waste_log] = accounting.record_adjustment(
            AdjustmentType.WASTE,
            self.flour,
            self.branch_x,
            self.cook_x,
            batch_id=batch.id,
            quantity="30",
        )
        batch.refresh_from_db()
        self.assertEqual(batch.remaining_quantity, Decimal("70.00"))
        self.assertEqual(waste_log.action, LogAction.ADJUSTMENT_WASTE)
        self.assertEqual(waste_log.details["quantity_change"], "-30.00")

        restore_log = accounting.restore_quantity(batch.id, {waste_log.id: "30"}, "Found in store room", self.manager_x)

        batch.refresh_from_db()
        self.assertEqual(batch.remaining_quantity, Decimal("100.00"))
        self.assertEqual(restore_log.action, LogAction.QUANTITY_RESTORED)
        self.assertEqual(restore_log.details["sources"][0]["log_id"], str(waste_log.id))
        self.assertEqual(restore_log.details["sources"][0]["amount"], "30.00")

    def test_restore_cannot_exceed_what_the_entry_deducted(self):
        batch = self.receive(self.flour, "100")
        [log] = accounting.record_adjustment(
            AdjustmentType.SPOILAGE,
            self.flour,
            self.branch_x,
            self.cook_x,
            batch_id=batch.id,
            quantity="10",
        )
        accounting.restore_quantity(batch.id, {log.id: "6"}, "Partial recount", self.manager_x)

        with self.assertRaises(InvalidQuantity):
            accounting.restore_quantity(batch.id, {log.id: "4.01"}, "Second recount", self.manager_x)

        batch.refresh_from_db()
        self.assertEqual(batch.remaining_quantity, Decimal("96.00"))

    def test_adjustment_cannot_exceed_remaining(self):
        batch = self.receive(self.flour, "5")

        with self.assertRaises(InsufficientStock):
            accounting.record_adjustment(
                AdjustmentType.THEFT,
                self.flour,
                self.branch_x,
                self.cook_x,
                batch_id=batch.id,
                quantity="5.01",
            )

    def test_other_and_missing_require_a_reason(self):
        batch = self.receive(self.flour, "5")

        for adjustment_type in (AdjustmentType.OTHER, AdjustmentType.MISSING):
            with self.assertRaises(MissingReason):
                accounting.record_adjustment(
                    adjustment_type,
                    self.flour,
                    self.branch_x,
                    self.cook_x,
                    batch_id=batch.id,
                    quantity="1",
                    reason="  ",
                )

    def test_adjustment_on_batch_of_other_branch_is_rejected(self):
        batch = self.receive(self.flour, "5", branch=self.branch_y)

        with self.assertRaises(CrossBranchMismatch):
            accounting.record_adjustment(
                AdjustmentType.DAMAGE,
                self.flour,
                self.branch_x,
                self.cook_x,
                batch_id=batch.id,
                quantity="1",
            )

    def test_staff_of_other_branch_cannot_adjust(self):
        batch = self.receive(self.flour, "5")

        with self.assertRaises(PermissionDenied):
            accounting.record_adjustment(
                AdjustmentType.DAMAGE,
                self.flour,
                self.branch_x,
                self.cook_y,
                batch_id=batch.id,
                quantity="1",
            )

    def test_spoiled_portions_can_be_restored_one_by_one(self):
        batch = self.receive(self.steak, 5)
        p1, p2 = self.portion_ids(batch, 2)

        logs = accounting.record_adjustment(
            AdjustmentType.SPOILAGE,
            self.steak,
            self.branch_x,
            self.cook_x,
            portion_ids=[p1, p2],
        )
        self.assertEqual([log.action for log in logs], [LogAction.ADJUSTMENT_SPOILAGE] * 2)
        self.assertEqual(Portion.objects.get(id=p1).status, PortionStatus.SPOILED)
        self.assertEqual(Portion.objects.get(id=p2).status, PortionStatus.SPOILED)
        batch.refresh_from_db()
        self.assertEqual(batch.remaining_quantity, Decimal("3.00"))

        [restore_log] = accounting.restore_portions([p1], "Mislabelled", self.manager_x)

        self.assertEqual(Portion.objects.get(id=p1).status, PortionStatus.UNUSED)
        self.assertEqual(Portion.objects.get(id=p2).status, PortionStatus.SPOILED)
        self.assertEqual(restore_log.action, LogAction.PORTION_RESTORED)
        self.assertEqual(restore_log.details["original_adjustment"]["log_id"], str(logs[0].id))
        batch.refresh_from_db()
        self.assertEqual(batch.remaining_quantity, Decimal("4.00"))

    def test_staff_meal_marks_portion_consumed(self):
        batch = self.receive(self.steak, 1)

        accounting.record_adjustment(
            AdjustmentType.STAFF_MEAL,
            self.steak,
            self.branch_x,
            self.cook_x,
            portion_ids=self.portion_ids(batch),
        )

        self.assertEqual(batch.portions.get().status, PortionStatus.CONSUMED)

    def test_used_portion_cannot_be_restored(self):
        batch = self.receive(self.steak, 1)
        ids = self.portion_ids(batch)
        accounting.deduct_for_sale(self.steak, self.branch_x, self.cook_x, portion_ids=ids)

        with self.assertRaises(InvalidStateTransition):
            accounting.restore_portions(ids, "Wrong order", self.manager_x)

    def test_restores_need_elevated_staff(self):
        batch = self.receive(self.steak, 1)
        ids = self.portion_ids(batch)
        accounting.record_adjustment(AdjustmentType.WASTE, self.steak, self.branch_x, self.cook_x, portion_ids=ids)

        with self.assertRaises(PermissionDenied):
            accounting.restore_portions(ids, "Wrong order", self.cook_x)


class LegacyRestoreTests(LedgerFixturesMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.batch = self.receive(self.flour, "100")
        accounting.record_adjustment(
            AdjustmentType.WASTE,
            self.flour,
            self.branch_x,
            self.cook_x,
            batch_id=self.batch.id,
            quantity="40",
        )

    def legacy_entry(self, details):
        return LedgerLog.objects.create(batch=self.batch, action=LogAction.ADJUSTMENT_DAMAGE, details=details)

    def test_direction_shape_is_understood(self):
        log = self.legacy_entry({"quantity_adjusted": "12", "adjustment_direction": "decrease"})

        accounting.restore_quantity(self.batch.id, {log.id: "12"}, "Legacy fix", self.owner)

        self.batch.refresh_from_db()
        self.assertEqual(self.batch.remaining_quantity, Decimal("72.00"))

    def test_before_after_shape_is_understood(self):
        log = self.legacy_entry({"original_quantity": "70", "new_quantity": "62.5"})

        with self.assertRaises(InvalidQuantity):
            accounting.restore_quantity(self.batch.id, {log.id: "7.51"}, "Legacy fix", self.owner)
        accounting.restore_quantity(self.batch.id, {log.id: "7.50"}, "Legacy fix", self.owner)

        self.batch.refresh_from_db()
        self.assertEqual(self.batch.remaining_quantity, Decimal("67.50"))

    def test_unknown_shape_is_a_hard_error(self):
        log = self.legacy_entry({"note": "lost some"})

        with self.assertRaises(UnparsableLogDetails):
            accounting.restore_quantity(self.batch.id, {log.id: "1"}, "Legacy fix", self.owner)

        self.batch.refresh_from_db()
        self.assertEqual(self.batch.remaining_quantity, Decimal("60.00"))

    def test_restore_never_exceeds_quantity_received(self):
        log = self.legacy_entry({"quantity_change": "-45"})

        with self.assertRaises(InvalidQuantity):
            accounting.restore_quantity(self.batch.id, {log.id: "45"}, "Legacy fix", self.owner)

    def test_malformed_entry_id_is_an_unknown_reference(self):
        with self.assertRaises(UnknownReference):
            accounting.restore_quantity(self.batch.id, {"not-an-id": "1"}, "Legacy fix", self.owner)

        self.batch.refresh_from_db()
        self.assertEqual(self.batch.remaining_quantity, Decimal("60.00"))


class CorrectBatchCountTests(LedgerFixturesMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.batch = self.receive(self.flour, "20")
        accounting.deduct_for_sale(self.flour, self.branch_x, self.cook_x, quantity="5")

    def assert_counts(self, received, remaining):
        self.batch.refresh_from_db()
        self.assertEqual(self.batch.quantity_received, Decimal(received))
        self.assertEqual(self.batch.remaining_quantity, Decimal(remaining))

    def test_raising_the_count_moves_both_counters(self):
        log = accounting.correct_batch_count(self.batch.id, "25", "Delivery note misread", self.manager_x)

        self.assert_counts("25", "20")
        self.assertEqual(log.action, LogAction.BATCH_COUNT_CORRECTED)
        self.assertEqual(log.details["previous_quantity_received"], "20.00")
        self.assertEqual(log.details["new_quantity_received"], "25.00")

    def test_lowering_the_count_down_to_what_was_consumed(self):
        accounting.correct_batch_count(self.batch.id, "10", "Recount", self.manager_x)
        self.assert_counts("10", "5")

        accounting.correct_batch_count(self.batch.id, "5", "Recount", self.manager_x)
        self.assert_counts("5", "0")

    def test_lowering_below_consumption_is_rejected_without_change(self):
        with self.assertRaises(InsufficientStock):
            accounting.correct_batch_count(self.batch.id, "3", "Recount", self.manager_x)

        self.assert_counts("20", "15")
        self.assertFalse(LedgerLog.objects.filter(action=LogAction.BATCH_COUNT_CORRECTED).exists())

    def test_only_elevated_staff_with_a_reason(self):
        with self.assertRaises(PermissionDenied):
            accounting.correct_batch_count(self.batch.id, "25", "Recount", self.cook_x)
        with self.assertRaises(MissingReason):
            accounting.correct_batch_count(self.batch.id, "25", "", self.manager_x)

    def test_portioned_batches_cannot_be_recounted(self):
        batch = self.receive(self.steak, 4)

        with self.assertRaises(ImmutableFieldViolation):
            accounting.correct_batch_count(batch.id, "5", "Recount", self.manager_x)
