"""
Request validation for the HQ administration endpoints (staff
permissions and clinic tenants).
"""
import bleach
from rest_framework import serializers

from clinics.models import Clinic, UserPermission

ASSIGNABLE_ROLES = ['admin', 'clinic_admin', 'manager', 'therapist', 'staff']


def _clean(v):
    return bleach.clean((v or '').strip(), strip=True)


class UsersQuerySerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=ASSIGNABLE_ROLES, required=False,
                                   error_messages={'invalid_choice': '不正なロール指定です'})
    clinic_id = serializers.UUIDField(required=False)
    search = serializers.CharField(required=False, allow_blank=True, max_length=100)


class PermissionAssignSerializer(serializers.Serializer):
    user_id = serializers.UUIDField()
    role = serializers.ChoiceField(choices=ASSIGNABLE_ROLES)
    clinic_id = serializers.UUIDField(required=False, allow_null=True)
    clinic_scope_ids = serializers.ListField(child=serializers.UUIDField(), required=False)

    def validate(self, attrs):
        if attrs['role'] != 'admin' and not attrs.get('clinic_id'):
            raise serializers.ValidationError({'clinic_id': ['clinic_id が必須です']})
        return attrs


class PermissionUpdateSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=ASSIGNABLE_ROLES, required=False)
    clinic_id = serializers.UUIDField(required=False, allow_null=True)
    clinic_scope_ids = serializers.ListField(child=serializers.UUIDField(), required=False)
    revoke = serializers.BooleanField(required=False)

    def validate(self, attrs):
        if not attrs.get('revoke') and not ({'role', 'clinic_id', 'clinic_scope_ids'} & set(attrs)):
            raise serializers.ValidationError('更新対象が指定されていません')
        return attrs


class TenantsQuerySerializer(serializers.Serializer):
    search = serializers.CharField(required=False, allow_blank=True, max_length=100)
    is_active = serializers.BooleanField(required=False, allow_null=True, default=None)
    include_kpi = serializers.BooleanField(required=False, default=False)


class _ClinicFields(serializers.Serializer):
    address = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=500)
    phone_number = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=50)
    is_active = serializers.BooleanField(required=False)
    parent_id = serializers.UUIDField(required=False, allow_null=True)

    def validate_name(self, v):
        v = _clean(v)
        if not v:
            raise serializers.ValidationError('クリニック名は必須です')
        return v

    def validate_address(self, v):
        return _clean(v) or None

    def validate_phone_number(self, v):
        return _clean(v) or None


class ClinicCreateSerializer(_ClinicFields):
    name = serializers.CharField(max_length=255, error_messages={'required': 'クリニック名は必須です'})


class ClinicUpdateSerializer(_ClinicFields):
    name = serializers.CharField(required=False, max_length=255)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError('更新対象が指定されていません')
        return attrs


def permission_to_dict(p: UserPermission) -> dict:
    user = p.staff
    return {
        'id': p.id,
        'user_id': str(p.staff_id),
        'role': p.role,
        'clinic_id': p.clinic_id_str,
        'clinic_name': p.clinic.name if p.clinic_id else None,
        'clinic_scope_ids': [str(c) for c in (p.clinic_scope_ids or [])],
        'username': user.username,
        'profile_email': user.email or None,
        'profile_name': user.get_full_name() or None,
        'created_at': p.created_at.isoformat() if p.created_at else None,
    }


def clinic_to_dict(c: Clinic) -> dict:
    return {
        'id': str(c.id),
        'name': c.name,
        'address': c.address,
        'phone_number': c.phone_number,
        'is_active': c.is_active,
        'parent_id': str(c.parent_id) if c.parent_id else None,
        'created_at': c.created_at.isoformat() if c.created_at else None,
    }
