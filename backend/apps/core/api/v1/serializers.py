from django.db.models import Q
from rest_framework import serializers

from apps.core.codes import CODE_RE, normalize_code
from apps.core.models import ELEVATED_ROLES, Branch, StaffMember
from apps.transfers.models import Transfer, TransferStatus


class BranchSerializer(serializers.ModelSerializer):
    class Meta:
        model = Branch
        fields = ("id", "name", "code", "is_active", "created_at")


class BranchWriteSerializer(serializers.ModelSerializer):
    class Meta:
        model = Branch
        fields = ("name", "code", "is_active")
        extra_kwargs = {"is_active": {"required": False}}

    def validate_code(self, value):
        normalized = normalize_code(value)
        if not normalized:
            raise serializers.ValidationError("Branch code is required.")
        if not CODE_RE.match(normalized):
            raise serializers.ValidationError("Use letters, digits and underscores only.")
        if self.instance is not None and normalized != self.instance.code and self.instance.batches.exists():
            # Portion labels embed the branch code.
            raise serializers.ValidationError("Code cannot change once the branch holds stock.")
        return normalized

    def validate_is_active(self, value):
        branch = self.instance
        if branch is None or value:
            return value
        pending = Transfer.objects.filter(
            Q(source_branch=branch) | Q(destination_branch=branch),
            status=TransferStatus.PENDING,
        )
        if pending.exists():
            raise serializers.ValidationError("Branch has pending transfers.")
        return value


class StaffMemberSerializer(serializers.ModelSerializer):
    is_elevated = serializers.BooleanField(read_only=True)
    branch_code = serializers.CharField(source="branch.code", read_only=True, default=None)

    class Meta:
        model = StaffMember
        fields = ("id", "name", "branch", "branch_code", "role", "is_active", "is_elevated")
        read_only_fields = ("id",)

    def validate(self, attrs):
        role = attrs.get("role", getattr(self.instance, "role", None))
        branch = attrs.get("branch", getattr(self.instance, "branch", None))
        if branch is None and role not in ELEVATED_ROLES:
            raise serializers.ValidationError({"branch": "Staff members need a home branch."})
        return attrs
