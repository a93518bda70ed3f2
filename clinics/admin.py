"""
Django admin registrations for the clinic models.

Superusers can inspect tenants, staff permissions and business records
at ``/admin/``.  Audit log entries are read-only.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import (
    AuditLog,
    Clinic,
    ClinicSetting,
    Menu,
    Notification,
    Patient,
    Reservation,
    Revenue,
    User,
    UserPermission,
    Visit,
)


@admin.register(Clinic)
class ClinicAdmin(admin.ModelAdmin):
    list_display = ('name', 'parent', 'phone_number', 'is_active', 'created_at')
    list_filter = ('is_active',)
    search_fields = ('id', 'name')


class UserPermissionInline(admin.StackedInline):
    model = UserPermission
    can_delete = False
    fk_name = 'staff'


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    inlines = (UserPermissionInline,)
    list_display = ('username', 'email', 'is_staff', 'is_superuser')


@admin.register(UserPermission)
class UserPermissionAdmin(admin.ModelAdmin):
    list_display = ('staff', 'role', 'clinic', 'updated_at')
    list_filter = ('role', 'clinic')
    search_fields = ('staff__username', 'staff__email')


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('name', 'phone', 'clinic', 'is_deleted', 'created_at')
    list_filter = ('clinic', 'is_deleted')
    search_fields = ('name', 'phone', 'email')


@admin.register(Menu)
class MenuAdmin(admin.ModelAdmin):
    list_display = ('name', 'clinic', 'price', 'duration_minutes', 'display_order', 'is_active', 'is_deleted')
    list_filter = ('clinic', 'is_active', 'is_deleted')


@admin.register(Visit)
class VisitAdmin(admin.ModelAdmin):
    list_display = ('patient', 'clinic', 'staff', 'visit_date', 'satisfaction_score')
    list_filter = ('clinic',)
    date_hierarchy = 'visit_date'


@admin.register(Revenue)
class RevenueAdmin(admin.ModelAdmin):
    list_display = ('clinic', 'revenue_date', 'amount', 'insurance_revenue', 'private_revenue')
    list_filter = ('clinic',)
    date_hierarchy = 'revenue_date'


@admin.register(Reservation)
class ReservationAdmin(admin.ModelAdmin):
    list_display = ('customer', 'staff', 'clinic', 'start_time', 'end_time', 'status', 'channel')
    list_filter = ('clinic', 'status', 'channel')
    search_fields = ('customer__name',)


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('title', 'clinic', 'type', 'is_read', 'created_at')
    list_filter = ('clinic', 'type', 'is_read')


@admin.register(ClinicSetting)
class ClinicSettingAdmin(admin.ModelAdmin):
    list_display = ('clinic', 'category', 'updated_by', 'updated_at')
    list_filter = ('category',)


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ('event_type', 'user_email', 'target_table', 'target_id', 'success', 'created_at')
    list_filter = ('event_type', 'success')
    search_fields = ('user_email', 'target_id', 'error_message')
    readonly_fields = [f.name for f in AuditLog._meta.fields]
