from datetime import timedelta
from decimal import Decimal

from django.utils import timezone

from apps.catalog.models import BranchStocking, InventoryItem, TrackingType
from apps.core.models import Branch, StaffMember, StaffRole
from apps.inventory.services import accounting


class LedgerFixturesMixin:
    """Two branches with staff, one measured and one portioned item."""

    def setUp(self):
        super().setUp()
        self.branch_x = Branch.objects.create(name="Harbour", code="HBR")
        self.branch_y = Branch.objects.create(name="Old Town", code="OLD")
        self.cook_x = StaffMember.objects.create(name="Ana", branch=self.branch_x, role=StaffRole.STAFF)
        self.cook_y = StaffMember.objects.create(name="Bo", branch=self.branch_y, role=StaffRole.STAFF)
        self.manager_x = StaffMember.objects.create(name="Cy", branch=self.branch_x, role=StaffRole.MANAGER)
        self.owner = StaffMember.objects.create(name="Di", role=StaffRole.OWNER)
        self.flour = InventoryItem.objects.create(
            name="Flour",
            code="FLR",
            unit="kg",
            tracking_type=TrackingType.BY_MEASURE,
            days_to_warn_before_expiry=3,
        )
        self.steak = InventoryItem.objects.create(
            name="Ribeye",
            code="RIB",
            unit="pc",
            tracking_type=TrackingType.BY_PORTION,
            days_to_warn_before_expiry=2,
        )
        for branch in (self.branch_x, self.branch_y):
            BranchStocking.objects.create(branch=branch, item=self.flour, low_stock_threshold=Decimal("10"))
            BranchStocking.objects.create(branch=branch, item=self.steak, low_stock_threshold=Decimal("2"))

    def receive(self, item, quantity, branch=None, days_ago=0, **options):
        return accounting.receive_batch(
            item,
            branch or self.branch_x,
            quantity,
            self.manager_x if (branch or self.branch_x) == self.branch_x else self.owner,
            received_at=timezone.now() - timedelta(days=days_ago),
            **options,
        )

    def portion_ids(self, batch, count=None):
        ids = list(batch.portions.order_by("portion_number").values_list("id", flat=True))
        return ids[:count] if count is not None else ids
