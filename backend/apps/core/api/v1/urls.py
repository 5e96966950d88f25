from django.urls import path

from apps.core.api.v1.views import BranchDetailView, BranchListView, HealthView, StaffMemberListView


urlpatterns = [
    path("health", HealthView.as_view(), name="health"),
    path("branches/", BranchListView.as_view(), name="branch-list"),
    path("branches/<uuid:branch_id>/", BranchDetailView.as_view(), name="branch-detail"),
    path("staff/", StaffMemberListView.as_view(), name="staff-list"),
]
