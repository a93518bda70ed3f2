import bleach
from rest_framework import serializers


def _clean(v):
    return bleach.clean((v or '').strip(), strip=True)


class ClinicQuerySerializer(serializers.Serializer):
    clinic_id = serializers.UUIDField(error_messages={'invalid': '有効なクリニックIDを指定してください'})


class CustomersQuerySerializer(ClinicQuerySerializer):
    q = serializers.CharField(required=False, allow_blank=True, max_length=100,
                              error_messages={'max_length': '検索クエリは100文字以内で入力してください'})
    id = serializers.UUIDField(required=False, error_messages={'invalid': '有効な顧客IDを指定してください'})

    def validate_q(self, v):
        v = (v or '').strip()
        return v or None


class CustomerDeleteQuerySerializer(ClinicQuerySerializer):
    id = serializers.UUIDField()


class _CustomerFields(serializers.Serializer):
    email = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=255)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=2000)
    customAttributes = serializers.DictField(required=False, allow_null=True)

    def validate_email(self, v):
        v = _clean(v)
        if v:
            serializers.EmailField().run_validators(v)
        return v or None

    def validate_notes(self, v):
        return _clean(v) or None

    def validate(self, attrs):
        unknown = set(self.initial_data) - set(self.fields)
        if unknown:
            raise serializers.ValidationError({k: ['不明なフィールドです'] for k in sorted(unknown)})
        return attrs


class CustomerCreateSerializer(_CustomerFields):
    clinic_id = serializers.UUIDField()
    name = serializers.CharField(max_length=255)
    phone = serializers.CharField(max_length=32)

    def validate_name(self, v):
        v = _clean(v)
        if not v:
            raise serializers.ValidationError('氏名は必須です')
        return v

    def validate_phone(self, v):
        v = _clean(v)
        if not v:
            raise serializers.ValidationError('電話番号は必須です')
        return v


class CustomerUpdateSerializer(_CustomerFields):
    clinic_id = serializers.UUIDField()
    id = serializers.UUIDField()
    name = serializers.CharField(required=False, max_length=255)
    phone = serializers.CharField(required=False, max_length=32)

    def validate_name(self, v):
        v = _clean(v)
        if not v:
            raise serializers.ValidationError('氏名は必須です')
        return v

    def validate_phone(self, v):
        v = _clean(v)
        if not v:
            raise serializers.ValidationError('電話番号は必須です')
        return v


class PatientCreateSerializer(serializers.Serializer):
    """Body of the legacy ``POST /api/patients`` endpoint."""
    clinic_id = serializers.UUIDField()
    name = serializers.CharField(max_length=255)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    email = serializers.EmailField(required=False, allow_blank=True, allow_null=True, max_length=255)
    registration_date = serializers.DateField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=2000)

    def validate_name(self, v):
        v = _clean(v)
        if not v:
            raise serializers.ValidationError('氏名は必須です')
        return v

    def validate_phone(self, v):
        return _clean(v)


def customer_to_dict(p) -> dict:
    return {
        'id': str(p.id),
        'clinic_id': str(p.clinic_id),
        'name': p.name,
        'phone': p.phone,
        'email': p.email,
        'notes': p.notes,
        'customAttributes': p.custom_attributes,
        'registrationDate': p.registration_date.isoformat() if p.registration_date else None,
        'createdAt': p.created_at.isoformat() if p.created_at else None,
        'updatedAt': p.updated_at.isoformat() if p.updated_at else None,
    }
