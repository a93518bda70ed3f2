import bleach
from rest_framework import serializers

from clinics.models import Menu


class MenuOptionSerializer(serializers.Serializer):
    id = serializers.CharField(max_length=64)
    name = serializers.CharField(max_length=100)
    priceDelta = serializers.IntegerField(default=0)
    durationDeltaMinutes = serializers.IntegerField(default=0)
    isActive = serializers.BooleanField(default=True)


class MenusQuerySerializer(serializers.Serializer):
    clinic_id = serializers.UUIDField(error_messages={'invalid': '有効なクリニックIDを指定してください'})


class MenuDeleteQuerySerializer(MenusQuerySerializer):
    id = serializers.UUIDField()


class _StrictMenuSerializer(serializers.Serializer):
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=2000)
    options = MenuOptionSerializer(many=True, required=False)

    def validate_name(self, v):
        v = bleach.clean(v.strip(), strip=True)
        if not v:
            raise serializers.ValidationError('メニュー名は必須です')
        return v

    def validate(self, attrs):
        unknown = set(self.initial_data) - set(self.fields)
        if unknown:
            raise serializers.ValidationError({k: ['不明なフィールドです'] for k in sorted(unknown)})
        return attrs


class MenuCreateSerializer(_StrictMenuSerializer):
    clinic_id = serializers.UUIDField()
    name = serializers.CharField(max_length=255)
    price = serializers.IntegerField(min_value=0)
    durationMinutes = serializers.IntegerField(min_value=1)
    isActive = serializers.BooleanField(default=True)
    displayOrder = serializers.IntegerField(required=False, min_value=0)


class MenuUpdateSerializer(_StrictMenuSerializer):
    clinic_id = serializers.UUIDField()
    id = serializers.UUIDField()
    name = serializers.CharField(required=False, max_length=255)
    price = serializers.IntegerField(required=False, min_value=0)
    durationMinutes = serializers.IntegerField(required=False, min_value=1)
    isActive = serializers.BooleanField(required=False)
    displayOrder = serializers.IntegerField(required=False, min_value=0)


# body field -> model attribute
MENU_FIELDS = (
    ('name', 'name'),
    ('description', 'description'),
    ('price', 'price'),
    ('durationMinutes', 'duration_minutes'),
    ('isActive', 'is_active'),
    ('displayOrder', 'display_order'),
    ('options', 'options'),
)


def menu_to_dict(m: Menu) -> dict:
    return {
        'id': str(m.id),
        'clinic_id': str(m.clinic_id),
        'name': m.name,
        'durationMinutes': m.duration_minutes,
        'price': m.price,
        'description': m.description or '',
        'isActive': m.is_active,
        'displayOrder': m.display_order,
        'options': m.options or [],
    }
