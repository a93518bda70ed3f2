from rest_framework import serializers


class RevenueQuerySerializer(serializers.Serializer):
    clinic_id = serializers.UUIDField()
    period = serializers.ChoiceField(choices=['week', 'month', 'year'], required=False, default='month')
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)

    def validate(self, attrs):
        start, end = attrs.get('start_date'), attrs.get('end_date')
        if start and end and start > end:
            raise serializers.ValidationError({'end_date': ['日付範囲が無効です']})
        return attrs


class RevenueCreateSerializer(serializers.Serializer):
    clinic_id = serializers.UUIDField()
    patient_id = serializers.UUIDField(required=False, allow_null=True)
    visit_id = serializers.UUIDField(required=False, allow_null=True)
    menu_id = serializers.UUIDField(required=False, allow_null=True)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    insurance_revenue = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False, default=0)
    private_revenue = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False, default=0)
    revenue_date = serializers.DateField(required=False)


class StaffCreateSerializer(serializers.Serializer):
    clinic_id = serializers.UUIDField()
    username = serializers.CharField(max_length=150)
    name = serializers.CharField(max_length=150)
    email = serializers.EmailField(required=False, allow_blank=True)
    password = serializers.CharField(min_length=8, write_only=True, required=False)
    role = serializers.ChoiceField(choices=['clinic_admin', 'manager', 'therapist', 'staff'], default='staff')

    def validate_username(self, v):
        from clinics.models import User
        v = v.strip()
        if User.objects.filter(username=v).exists():
            raise serializers.ValidationError('このユーザー名は既に使用されています')
        return v


class NotificationsQuerySerializer(serializers.Serializer):
    clinic_id = serializers.UUIDField()
    type = serializers.CharField(required=False, max_length=32)
    limit = serializers.IntegerField(required=False, min_value=1, default=50)

    def validate_limit(self, v):
        return min(v, 100)
