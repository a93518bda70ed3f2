"""
Per-category validation for clinic settings documents.

Every category has a default document returned when nothing has been
stored yet and a serializer that validates the document on save.
Fields are optional; only the keys sent are checked and persisted.
"""
from rest_framework import serializers

DEFAULT_SETTINGS = {
    'clinic_basic': {
        'name': '', 'zipCode': '', 'address': '', 'phone': '', 'fax': '',
        'email': '', 'website': '', 'description': '', 'logoUrl': None,
    },
    'clinic_hours': {'hoursByDay': {}, 'holidays': [], 'specialClosures': []},
    'booking_calendar': {
        'slotMinutes': 30,
        'maxConcurrent': 3,
        'weekStartDay': 1,
        'allowOnlineBooking': False,
        'maxAdvanceBookingDays': 30,
        'minAdvanceBookingHours': 2,
        'allowCancellation': True,
        'cancellationDeadlineHours': 24,
        'defaultCalendarView': 'week',
    },
    'communication': {
        'emailEnabled': False, 'smsEnabled': False, 'lineEnabled': False, 'pushEnabled': False,
        'smtpSettings': {'host': '', 'port': 587, 'user': '', 'password': ''},
        'templates': [],
    },
    'system_security': {
        'passwordPolicy': {
            'minLength': 8, 'requireUppercase': True, 'requireNumbers': True, 'requireSymbols': False,
        },
        'twoFactorEnabled': False,
        'sessionTimeout': 30,
        'loginAttempts': 5,
        'lockoutDuration': 15,
    },
    'system_backup': {
        'autoBackup': False, 'backupFrequency': 'daily', 'backupTime': '03:00',
        'retentionDays': 30, 'cloudStorage': False, 'storageProvider': 'aws',
    },
    'services_pricing': {'menus': [], 'categories': [], 'insuranceOptions': []},
    'insurance_billing': {'insuranceTypes': [], 'receiptSettings': {}, 'billingCycle': 'monthly'},
    'data_management': {'importMode': 'update', 'exportFormat': 'csv', 'retentionDays': 365},
}

VALID_CATEGORIES = list(DEFAULT_SETTINGS)


class ClinicBasicSerializer(serializers.Serializer):
    name = serializers.CharField(error_messages={'blank': '院名は必須です', 'required': '院名は必須です'})
    zipCode = serializers.CharField(required=False, allow_blank=True)
    address = serializers.CharField(required=False, allow_blank=True)
    phone = serializers.CharField(required=False, allow_blank=True)
    fax = serializers.CharField(required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True,
                                   error_messages={'invalid': '有効なメールアドレスを入力してください'})
    website = serializers.URLField(required=False, allow_blank=True,
                                   error_messages={'invalid': '有効なURLを入力してください'})
    description = serializers.CharField(required=False, allow_blank=True, max_length=500,
                                        error_messages={'max_length': '紹介文は500文字以内で入力してください'})
    logoUrl = serializers.CharField(required=False, allow_null=True, allow_blank=True)


class ClinicHoursSerializer(serializers.Serializer):
    hoursByDay = serializers.DictField(required=False)
    holidays = serializers.ListField(child=serializers.CharField(), required=False)
    specialClosures = serializers.ListField(required=False)


class BookingCalendarSerializer(serializers.Serializer):
    slotMinutes = serializers.IntegerField(required=False, min_value=5, max_value=180, error_messages={
        'min_value': '予約枠は5分以上にしてください', 'max_value': '予約枠は180分以内にしてください'})
    maxConcurrent = serializers.IntegerField(required=False, min_value=1, max_value=100,
                                             error_messages={'min_value': '同時予約数は1以上にしてください'})
    weekStartDay = serializers.IntegerField(required=False, min_value=0, max_value=6)
    allowOnlineBooking = serializers.BooleanField(required=False)
    maxAdvanceBookingDays = serializers.IntegerField(required=False, min_value=1, max_value=365)
    minAdvanceBookingHours = serializers.IntegerField(required=False, min_value=0, max_value=48)
    allowCancellation = serializers.BooleanField(required=False)
    cancellationDeadlineHours = serializers.IntegerField(required=False, min_value=0, max_value=168)
    defaultCalendarView = serializers.ChoiceField(choices=['day', 'week', 'month'], required=False)


class SmtpSettingsSerializer(serializers.Serializer):
    host = serializers.CharField(required=False, allow_blank=True)
    port = serializers.IntegerField(required=False, min_value=1, max_value=65535)
    user = serializers.CharField(required=False, allow_blank=True)
    password = serializers.CharField(required=False, allow_blank=True)


class CommunicationSerializer(serializers.Serializer):
    emailEnabled = serializers.BooleanField(required=False)
    smsEnabled = serializers.BooleanField(required=False)
    lineEnabled = serializers.BooleanField(required=False)
    pushEnabled = serializers.BooleanField(required=False)
    smtpSettings = SmtpSettingsSerializer(required=False)
    templates = serializers.ListField(required=False)


class PasswordPolicySerializer(serializers.Serializer):
    minLength = serializers.IntegerField(required=False, min_value=4, max_value=128)
    requireUppercase = serializers.BooleanField(required=False)
    requireNumbers = serializers.BooleanField(required=False)
    requireSymbols = serializers.BooleanField(required=False)


class SystemSecuritySerializer(serializers.Serializer):
    passwordPolicy = PasswordPolicySerializer(required=False)
    twoFactorEnabled = serializers.BooleanField(required=False)
    sessionTimeout = serializers.IntegerField(required=False, min_value=5, max_value=480)
    loginAttempts = serializers.IntegerField(required=False, min_value=1, max_value=10)
    lockoutDuration = serializers.IntegerField(required=False, min_value=1, max_value=1440)


class SystemBackupSerializer(serializers.Serializer):
    autoBackup = serializers.BooleanField(required=False)
    backupFrequency = serializers.ChoiceField(choices=['daily', 'weekly', 'monthly'], required=False)
    backupTime = serializers.CharField(required=False)
    retentionDays = serializers.IntegerField(required=False, min_value=1, max_value=365)
    cloudStorage = serializers.BooleanField(required=False)
    storageProvider = serializers.ChoiceField(choices=['aws', 'gcp', 'azure'], required=False)


class ServicesPricingSerializer(serializers.Serializer):
    menus = serializers.ListField(required=False)
    categories = serializers.ListField(required=False)
    insuranceOptions = serializers.ListField(required=False)


class InsuranceBillingSerializer(serializers.Serializer):
    insuranceTypes = serializers.ListField(required=False)
    receiptSettings = serializers.DictField(required=False)
    billingCycle = serializers.ChoiceField(choices=['weekly', 'biweekly', 'monthly'], required=False)


class DataManagementSerializer(serializers.Serializer):
    importMode = serializers.ChoiceField(choices=['update', 'replace', 'merge'], required=False)
    exportFormat = serializers.ChoiceField(choices=['csv', 'excel', 'pdf', 'json'], required=False)
    retentionDays = serializers.IntegerField(required=False, min_value=30, max_value=3650)


CATEGORY_SERIALIZERS = {
    'clinic_basic': ClinicBasicSerializer,
    'clinic_hours': ClinicHoursSerializer,
    'booking_calendar': BookingCalendarSerializer,
    'communication': CommunicationSerializer,
    'system_security': SystemSecuritySerializer,
    'system_backup': SystemBackupSerializer,
    'services_pricing': ServicesPricingSerializer,
    'insurance_billing': InsuranceBillingSerializer,
    'data_management': DataManagementSerializer,
}


class SettingsQuerySerializer(serializers.Serializer):
    clinic_id = serializers.UUIDField(error_messages={'required': 'clinic_idは必須です'})
    category = serializers.ChoiceField(choices=VALID_CATEGORIES, error_messages={
        'required': 'categoryは必須です',
        'invalid_choice': f"不正なcategoryです。有効な値: {', '.join(VALID_CATEGORIES)}",
    })


class SettingsUpdateSerializer(SettingsQuerySerializer):
    settings = serializers.DictField(error_messages={'required': 'settingsは必須です'})

    def validate(self, attrs):
        doc = CATEGORY_SERIALIZERS[attrs['category']](data=attrs['settings'])
        if not doc.is_valid():
            raise serializers.ValidationError({'settings': doc.errors})
        attrs['settings'] = doc.validated_data
        return attrs
