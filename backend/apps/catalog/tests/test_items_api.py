from rest_framework import status
from rest_framework.test import APITestCase

from apps.catalog.models import BranchStocking, InventoryCategory, InventoryItem, TrackingType
from apps.core.models import Branch, StaffMember, StaffRole
from apps.inventory.services.accounting import receive_batch


class InventoryItemApiTests(APITestCase):
    def setUp(self):
        self.client.credentials(HTTP_X_API_KEY="dev-api-key")
        self.harbour = Branch.objects.create(name="Harbour", code="HBR")
        self.old_town = Branch.objects.create(name="Old Town", code="OLD")

    def item_payload(self, **overrides):
        payload = {
            "name": "Tomatoes",
            "code": "tom",
            "unit": "kg",
            "tracking_type": TrackingType.BY_MEASURE,
            "days_to_warn_before_expiry": 2,
            "stockings": [{"branch": str(self.harbour.id), "low_stock_threshold": "5.00"}],
        }
        payload.update(overrides)
        return payload

    def test_create_item_with_stockings(self):
        response = self.client.post("/api/v1/inventory-items/", self.item_payload(), format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        item = InventoryItem.objects.get()
        self.assertEqual(item.code, "TOM")
        self.assertEqual(item.stockings.get().branch, self.harbour)

    def test_update_replaces_stockings(self):
        item_id = self.client.post("/api/v1/inventory-items/", self.item_payload(), format="json").json()["id"]

        response = self.client.patch(
            f"/api/v1/inventory-items/{item_id}/",
            {"stockings": [{"branch": str(self.old_town.id), "low_stock_threshold": "1"}]},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(
            list(BranchStocking.objects.filter(item_id=item_id).values_list("branch__code", flat=True)),
            ["OLD"],
        )

    def test_duplicate_branch_in_stockings_is_rejected(self):
        stockings = [{"branch": str(self.harbour.id)}, {"branch": str(self.harbour.id)}]

        response = self.client.post("/api/v1/inventory-items/", self.item_payload(stockings=stockings), format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("stockings", response.json()["field_errors"])

    def test_filters(self):
        self.client.post("/api/v1/inventory-items/", self.item_payload(), format="json")
        self.client.post(
            "/api/v1/inventory-items/",
            self.item_payload(name="Lamb chop", code="LMB", unit="pc", tracking_type=TrackingType.BY_PORTION, stockings=[]),
            format="json",
        )

        by_branch = self.client.get("/api/v1/inventory-items/", {"branch": str(self.harbour.id)})
        by_type = self.client.get("/api/v1/inventory-items/", {"tracking_type": TrackingType.BY_PORTION})
        by_text = self.client.get("/api/v1/inventory-items/", {"q": "tom"})

        self.assertEqual([row["code"] for row in by_branch.json()], ["TOM"])
        self.assertEqual([row["code"] for row in by_type.json()], ["LMB"])
        self.assertEqual([row["code"] for row in by_text.json()], ["TOM"])

    def test_tracking_type_is_locked_once_stock_was_received(self):
        item_id = self.client.post("/api/v1/inventory-items/", self.item_payload(), format="json").json()["id"]
        manager = StaffMember.objects.create(name="Cy", branch=self.harbour, role=StaffRole.MANAGER)
        receive_batch(InventoryItem.objects.get(id=item_id), self.harbour, "3", manager)

        response = self.client.patch(
            f"/api/v1/inventory-items/{item_id}/",
            {"tracking_type": TrackingType.BY_PORTION},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.json()["code"], "immutable_field")
        self.assertEqual(InventoryItem.objects.get(id=item_id).tracking_type, TrackingType.BY_MEASURE)

    def test_code_is_locked_once_stock_was_received(self):
        item_id = self.client.post("/api/v1/inventory-items/", self.item_payload(), format="json").json()["id"]
        manager = StaffMember.objects.create(name="Cy", branch=self.harbour, role=StaffRole.MANAGER)
        receive_batch(InventoryItem.objects.get(id=item_id), self.harbour, "3", manager)

        response = self.client.patch(f"/api/v1/inventory-items/{item_id}/", {"code": "TOMATO"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("code", response.json()["field_errors"])
        self.assertEqual(InventoryItem.objects.get(id=item_id).code, "TOM")

    def test_code_can_change_before_first_batch(self):
        item_id = self.client.post("/api/v1/inventory-items/", self.item_payload(), format="json").json()["id"]

        response = self.client.patch(f"/api/v1/inventory-items/{item_id}/", {"code": "tomato"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(InventoryItem.objects.get(id=item_id).code, "TOMATO")

    def test_code_with_label_separator_is_rejected(self):
        response = self.client.post("/api/v1/inventory-items/", self.item_payload(code="tom-red"), format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("code", response.json()["field_errors"])
        self.assertFalse(InventoryItem.objects.exists())


class InventoryCategoryApiTests(APITestCase):
    def setUp(self):
        self.client.credentials(HTTP_X_API_KEY="dev-api-key")

    def test_create_and_list_categories(self):
        response = self.client.post("/api/v1/inventory-categories/", {"name": "Dairy"}, format="json")
        listed = self.client.get("/api/v1/inventory-categories/")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(InventoryCategory.objects.get().name, "Dairy")
        self.assertEqual([row["name"] for row in listed.json()], ["Dairy"])
