from decimal import Decimal

from rest_framework import status
from rest_framework.test import APITestCase

from apps.inventory.models import LedgerLog, LogAction, PortionStatus
from apps.inventory.tests.base import LedgerFixturesMixin


class InventoryApiTestCase(LedgerFixturesMixin, APITestCase):
    def setUp(self):
        super().setUp()
        self.act_as(self.cook_x)

    def act_as(self, staff):
        self.client.credentials(HTTP_X_API_KEY="dev-api-key", HTTP_X_STAFF_ID=str(staff.id))


class BatchApiTests(InventoryApiTestCase):
    def test_receive_batch_returns_201(self):
        payload = {
            "item": str(self.steak.id),
            "branch": str(self.branch_x.id),
            "quantity_received": "3",
            "expiration_date": "2030-01-31",
            "label": "Dry aged",
        }

        response = self.client.post("/api/v1/batches/", payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        body = response.json()
        self.assertEqual(body["batch_number"], 1)
        self.assertEqual(body["remaining_quantity"], "3.00")

        portions = self.client.get(f"/api/v1/batches/{body['id']}/portions/", {"available": "true"})
        self.assertEqual(
            [row["label"] for row in portions.json()],
            ["RIB-HBR-B1-01", "RIB-HBR-B1-02", "RIB-HBR-B1-03"],
        )

    def test_receive_without_staff_header_returns_403(self):
        self.client.credentials(HTTP_X_API_KEY="dev-api-key")

        response = self.client.post(
            "/api/v1/batches/",
            {"item": str(self.flour.id), "branch": str(self.branch_x.id), "quantity_received": "1"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.json()["code"], "permission_denied")

    def test_list_batches_filters_by_branch(self):
        self.receive(self.flour, "5")
        self.receive(self.flour, "5", branch=self.branch_y)

        response = self.client.get("/api/v1/batches/", {"branch": str(self.branch_y.id)})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row["branch_code"] for row in response.json()], ["OLD"])

    def test_unknown_batch_returns_404(self):
        response = self.client.get("/api/v1/batches/00000000-0000-0000-0000-000000000000/")

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class AdjustmentApiTests(InventoryApiTestCase):
    def test_adjust_and_restore_quantity(self):
        batch = self.receive(self.flour, "100")

        response = self.client.post(
            "/api/v1/adjustments/",
            {
                "adjustment_type": "waste",
                "item": str(self.flour.id),
                "branch": str(self.branch_x.id),
                "batch": str(batch.id),
                "quantity": "30",
            },
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        [log] = response.json()
        self.assertEqual(log["action"], LogAction.ADJUSTMENT_WASTE)
        self.assertEqual(log["summary"]["quantity"], "-30.00 kg")

        restorable = self.client.get(f"/api/v1/batches/{batch.id}/restorable-adjustments/").json()
        self.assertEqual(restorable[0]["restorable"], "30.00")

        self.act_as(self.manager_x)
        response = self.client.post(
            f"/api/v1/batches/{batch.id}/restore-quantity/",
            {"amounts": {log["id"]: "30"}, "reason": "Counted again"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json()["batch"]["remaining_quantity"], "100.00")
        self.assertEqual(response.json()["log"]["action"], LogAction.QUANTITY_RESTORED)

    def test_restore_quantity_with_malformed_entry_id_returns_400(self):
        batch = self.receive(self.flour, "100")
        self.act_as(self.manager_x)

        response = self.client.post(
            f"/api/v1/batches/{batch.id}/restore-quantity/",
            {"amounts": {"not-an-id": "1"}, "reason": "Counted again"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()["code"], "validation_error")
        self.assertIn("amounts", response.json()["field_errors"])

    def test_over_adjustment_returns_conflict_envelope(self):
        batch = self.receive(self.flour, "5")

        response = self.client.post(
            "/api/v1/adjustments/",
            {
                "adjustment_type": "damage",
                "item": str(self.flour.id),
                "branch": str(self.branch_x.id),
                "batch": str(batch.id),
                "quantity": "5.01",
            },
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.json()["code"], "insufficient_stock")
        self.assertIn("quantity", response.json()["field_errors"])

    def test_missing_reason_returns_400(self):
        batch = self.receive(self.flour, "5")

        response = self.client.post(
            "/api/v1/adjustments/",
            {
                "adjustment_type": "other",
                "item": str(self.flour.id),
                "branch": str(self.branch_x.id),
                "batch": str(batch.id),
                "quantity": "1",
            },
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()["code"], "missing_reason")

    def test_measured_adjustment_requires_batch(self):
        response = self.client.post(
            "/api/v1/adjustments/",
            {
                "adjustment_type": "waste",
                "item": str(self.flour.id),
                "branch": str(self.branch_x.id),
                "quantity": "1",
            },
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()["code"], "validation_error")
        self.assertIn("batch", response.json()["field_errors"])

    def test_restore_portion_requires_manager(self):
        batch = self.receive(self.steak, 2)
        portion_id = str(self.portion_ids(batch, 1)[0])
        self.client.post(
            "/api/v1/adjustments/",
            {
                "adjustment_type": "spoilage",
                "item": str(self.steak.id),
                "branch": str(self.branch_x.id),
                "portion_ids": [portion_id],
            },
            format="json",
        )
        payload = {"portion_ids": [portion_id], "reason": "Smell test passed"}

        denied = self.client.post("/api/v1/portions/restore/", payload, format="json")
        self.act_as(self.manager_x)
        allowed = self.client.post("/api/v1/portions/restore/", payload, format="json")

        self.assertEqual(denied.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(allowed.status_code, status.HTTP_200_OK)
        self.assertEqual(batch.portions.get(id=portion_id).status, PortionStatus.UNUSED)

    def test_correct_count(self):
        batch = self.receive(self.flour, "20")
        self.act_as(self.owner)

        response = self.client.post(
            f"/api/v1/batches/{batch.id}/correct-count/",
            {"corrected_quantity": "25", "reason": "Invoice says 25"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json()["batch"]["quantity_received"], "25.00")
        self.assertEqual(response.json()["batch"]["remaining_quantity"], "25.00")


class LedgerApiTests(InventoryApiTestCase):
    def test_filters_by_action_and_search(self):
        flour_batch = self.receive(self.flour, "10")
        self.receive(self.steak, 1)
        self.client.post(
            "/api/v1/adjustments/",
            {
                "adjustment_type": "expiry",
                "item": str(self.flour.id),
                "branch": str(self.branch_x.id),
                "batch": str(flour_batch.id),
                "quantity": "2",
            },
            format="json",
        )

        by_action = self.client.get("/api/v1/ledger/", {"action": [LogAction.BATCH_CREATED]})
        by_search = self.client.get("/api/v1/ledger/", {"search": "flour"})

        self.assertEqual(by_action.status_code, status.HTTP_200_OK)
        self.assertEqual(len(by_action.json()), 2)
        self.assertEqual(
            sorted(row["action"] for row in by_search.json()),
            [LogAction.ADJUSTMENT_EXPIRY, LogAction.BATCH_CREATED],
        )
        self.assertEqual(LedgerLog.objects.count(), 3)

    def test_unknown_action_is_rejected(self):
        response = self.client.get("/api/v1/ledger/", {"action": "teleported"})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class StockApiTests(InventoryApiTestCase):
    def test_branch_overview_requires_branch(self):
        response = self.client.get("/api/v1/stock/")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_item_stock(self):
        self.receive(self.flour, "12.5")

        response = self.client.get(f"/api/v1/stock/items/{self.flour.id}/", {"branch": str(self.branch_x.id)})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Decimal(response.json()["current_stock"]), Decimal("12.5"))
        self.assertEqual(response.json()["status"], "in_stock")

    def test_branch_overview_lists_stocked_items(self):
        response = self.client.get("/api/v1/stock/", {"branch": str(self.branch_x.id)})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(sorted(row["code"] for row in response.json()), ["FLR", "RIB"])
