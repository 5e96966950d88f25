from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.core.api.v1.serializers import BranchSerializer, BranchWriteSerializer, StaffMemberSerializer
from apps.core.models import Branch, StaffMember


TRUTHY = {"1", "true", "True"}


class HealthView(APIView):
    authentication_classes = []
    permission_classes = []

    def get(self, request):
        return Response({"status": "ok", "service": "stockroom", "version": "v1"})


class BranchListView(APIView):
    def get(self, request):
        include_inactive = request.query_params.get("include_inactive") in TRUTHY
        queryset = Branch.objects.all() if include_inactive else Branch.objects.filter(is_active=True)
        queryset = queryset.order_by("name")
        return Response(BranchSerializer(queryset, many=True).data)

    def post(self, request):
        serializer = BranchWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        branch = serializer.save()
        return Response(BranchSerializer(branch).data, status=status.HTTP_201_CREATED)


class BranchDetailView(APIView):
    def get(self, request, branch_id):
        return Response(BranchSerializer(get_object_or_404(Branch, id=branch_id)).data)

    def patch(self, request, branch_id):
        branch = get_object_or_404(Branch, id=branch_id)
        serializer = BranchWriteSerializer(branch, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(BranchSerializer(branch).data)


class StaffMemberListView(APIView):
    def get(self, request):
        queryset = StaffMember.objects.filter(is_active=True)
        branch_id = request.query_params.get("branch")
        if branch_id:
            queryset = queryset.filter(branch_id=branch_id)
        return Response(StaffMemberSerializer(queryset.order_by("name"), many=True).data)

    def post(self, request):
        serializer = StaffMemberSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        staff = serializer.save()
        return Response(StaffMemberSerializer(staff).data, status=status.HTTP_201_CREATED)
