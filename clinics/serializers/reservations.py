from rest_framework import serializers

from clinics.models import Reservation

STATUS_VALUES = [s for s, _ in Reservation.STATUS_CHOICES]
CHANNEL_VALUES = [c for c, _ in Reservation.CHANNEL_CHOICES]


class OptionSelectionSerializer(serializers.Serializer):
    optionId = serializers.CharField()
    name = serializers.CharField()
    priceDelta = serializers.FloatField(default=0)
    durationDeltaMinutes = serializers.FloatField(default=0)


class ReservationsQuerySerializer(serializers.Serializer):
    clinic_id = serializers.UUIDField(error_messages={'invalid': 'clinic_id はUUID形式で指定してください'})
    id = serializers.UUIDField(required=False)
    start_date = serializers.DateTimeField(required=False, input_formats=['iso-8601', '%Y-%m-%d'])
    end_date = serializers.DateTimeField(required=False, input_formats=['iso-8601', '%Y-%m-%d'])
    staff_id = serializers.UUIDField(required=False)


class ReservationDeleteQuerySerializer(serializers.Serializer):
    clinic_id = serializers.UUIDField()
    id = serializers.UUIDField()


class _StrictSerializer(serializers.Serializer):
    def validate(self, attrs):
        unknown = set(self.initial_data) - set(self.fields)
        if unknown:
            raise serializers.ValidationError({k: ['不明なフィールドです'] for k in sorted(unknown)})
        start, end = attrs.get('startTime'), attrs.get('endTime')
        if start and end and end <= start:
            raise serializers.ValidationError({'endTime': ['終了時刻は開始時刻より後にしてください']})
        return attrs


class ReservationCreateSerializer(_StrictSerializer):
    clinic_id = serializers.UUIDField()
    customerId = serializers.UUIDField()
    menuId = serializers.UUIDField()
    staffId = serializers.UUIDField()
    startTime = serializers.DateTimeField()
    endTime = serializers.DateTimeField()
    channel = serializers.ChoiceField(choices=CHANNEL_VALUES)
    notes = serializers.CharField(required=False, allow_blank=True)
    selectedOptions = OptionSelectionSerializer(many=True, required=False)


class ReservationUpdateSerializer(_StrictSerializer):
    clinic_id = serializers.UUIDField()
    id = serializers.UUIDField()
    status = serializers.ChoiceField(choices=STATUS_VALUES, required=False)
    startTime = serializers.DateTimeField(required=False)
    endTime = serializers.DateTimeField(required=False)
    staffId = serializers.UUIDField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    selectedOptions = OptionSelectionSerializer(many=True, required=False)


def reservation_to_dict(r: Reservation) -> dict:
    return {
        'id': str(r.id),
        'customerId': str(r.customer_id),
        'customerName': r.customer.name if r.customer_id else None,
        'menuId': str(r.menu_id),
        'menuName': r.menu.name if r.menu_id else None,
        'staffId': str(r.staff_id),
        'staffName': (r.staff.get_full_name() or r.staff.username) if r.staff_id else None,
        'startTime': r.start_time.isoformat(),
        'endTime': r.end_time.isoformat(),
        'status': r.status,
        'channel': r.channel,
        'notes': r.notes,
        'selectedOptions': r.selected_options or [],
    }
