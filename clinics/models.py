"""
Database models for the clinic portal backend.

Clinics are the tenants of the system: every record that carries
business data (patients, visits, revenues, reservations, notifications
and settings) is scoped by ``clinic``.  A clinic may belong to a parent
clinic (the headquarters of an organisation with several branches).
Staff principals are :class:`User` rows and their role and clinic scope
live in :class:`UserPermission`.
"""
from __future__ import annotations

import uuid

from django.contrib.auth.models import AbstractUser
from django.db import models


class Clinic(models.Model):
    """A single tenant (branch) of the portal."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    address = models.CharField(max_length=500, blank=True, null=True)
    phone_number = models.CharField(max_length=50, blank=True, null=True)
    # 本部 (headquarters) of a branch; NULL for top-level organisations
    parent = models.ForeignKey(
        'self', null=True, blank=True, on_delete=models.SET_NULL, related_name='branches'
    )
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'clinics'
        ordering = ['name']

    def __str__(self) -> str:
        return f"{self.name} ({self.id})"


class User(AbstractUser):
    """Staff principal.

    Role and clinic binding are not stored here; they belong to the
    permission record so that a user without one is authenticated but
    not authorised for anything.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    def __str__(self) -> str:
        return self.username


class UserPermission(models.Model):
    """Role and clinic scope of a staff user."""
    ROLE_CHOICES = [
        ('admin', 'Headquarters administrator'),
        ('clinic_admin', 'Clinic administrator'),
        ('manager', 'Manager'),
        ('therapist', 'Therapist'),
        ('staff', 'Staff'),
        ('customer', 'Customer'),
        # deprecated, mapped to clinic_admin at the authorization boundary
        ('clinic_manager', 'Clinic manager (deprecated)'),
    ]
    staff = models.OneToOneField(User, on_delete=models.CASCADE, related_name='permission')
    role = models.CharField(max_length=32, choices=ROLE_CHOICES, default='staff')
    clinic = models.ForeignKey(
        Clinic, null=True, blank=True, on_delete=models.SET_NULL, related_name='permissions'
    )
    # Explicit multi-clinic scope (list of clinic UUID strings). Empty means
    # the user is scoped to its home clinic only.
    clinic_scope_ids = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'user_permissions'

    @property
    def clinic_id_str(self) -> str | None:
        return str(self.clinic_id) if self.clinic_id else None

    def __str__(self) -> str:
        return f"{self.staff} ({self.role} @ {self.clinic_id})"


class Patient(models.Model):
    """A patient (customer) registered at a clinic."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='patients')
    name = models.CharField(max_length=255)
    phone = models.CharField(max_length=32, blank=True)
    email = models.EmailField(max_length=255, blank=True, null=True)
    notes = models.TextField(blank=True, null=True)
    custom_attributes = models.JSONField(blank=True, null=True)
    registration_date = models.DateField(null=True, blank=True)
    is_deleted = models.BooleanField(default=False, db_index=True)
    created_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='patients_created'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'patients'
        indexes = [models.Index(fields=['clinic', 'created_at'], name='patients_clinic__0b1e6f_idx')]

    def __str__(self) -> str:
        return f"{self.name} ({self.clinic_id})"


class Menu(models.Model):
    """A treatment menu offered by a clinic."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='menus')
    name = models.CharField(max_length=255)
    price = models.PositiveIntegerField(default=0)
    duration_minutes = models.PositiveIntegerField(default=30)
    description = models.TextField(blank=True, null=True)
    # bookable add-ons: [{id, name, priceDelta, durationDeltaMinutes, isActive}]
    options = models.JSONField(default=list, blank=True)
    display_order = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)
    is_deleted = models.BooleanField(default=False, db_index=True)
    created_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='menus_created'
    )

    class Meta:
        db_table = 'menus'

    def __str__(self) -> str:
        return self.name


class Visit(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='visits')
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='visits')
    staff = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='visits'
    )
    menu = models.ForeignKey(Menu, null=True, blank=True, on_delete=models.SET_NULL, related_name='visits')
    visit_date = models.DateField(db_index=True)
    satisfaction_score = models.PositiveSmallIntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'visits'
        indexes = [models.Index(fields=['clinic', 'visit_date'], name='visits_clinic__5d7c2a_idx')]

    def __str__(self) -> str:
        return f"visit {self.patient_id} @ {self.visit_date}"


class Revenue(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='revenues')
    patient = models.ForeignKey(
        Patient, null=True, blank=True, on_delete=models.SET_NULL, related_name='revenues'
    )
    visit = models.ForeignKey(Visit, null=True, blank=True, on_delete=models.SET_NULL, related_name='revenues')
    menu = models.ForeignKey(Menu, null=True, blank=True, on_delete=models.SET_NULL, related_name='revenues')
    revenue_date = models.DateField(db_index=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    insurance_revenue = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    private_revenue = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'revenues'
        indexes = [models.Index(fields=['clinic', 'revenue_date'], name='revenues_clinic__8a4f1c_idx')]

    def __str__(self) -> str:
        return f"{self.amount} @ {self.revenue_date}"


class Reservation(models.Model):
    STATUS_CHOICES = [
        ('tentative', 'tentative'),
        ('confirmed', 'confirmed'),
        ('arrived', 'arrived'),
        ('completed', 'completed'),
        ('cancelled', 'cancelled'),
        ('no_show', 'no_show'),
        ('unconfirmed', 'unconfirmed'),
        ('trial', 'trial'),
    ]
    CHANNEL_CHOICES = [
        ('line', 'LINE'),
        ('web', 'Web'),
        ('phone', 'Phone'),
        ('walk_in', 'Walk-in'),
    ]
    # statuses that no longer occupy the staff member's time slot
    INACTIVE_STATUSES = ('cancelled', 'no_show')

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='reservations')
    customer = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='reservations')
    menu = models.ForeignKey(Menu, on_delete=models.PROTECT, related_name='reservations')
    staff = models.ForeignKey(User, on_delete=models.PROTECT, related_name='reservations')
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='unconfirmed', db_index=True)
    channel = models.CharField(max_length=16, choices=CHANNEL_CHOICES)
    notes = models.TextField(blank=True, null=True)
    selected_options = models.JSONField(default=list, blank=True)
    created_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='reservations_created'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'reservations'
        indexes = [
            models.Index(fields=['clinic', 'start_time'], name='reservation_clinic__3e9b0d_idx'),
            models.Index(fields=['clinic', 'staff', 'start_time'], name='reservation_clinic__7c21aa_idx'),
        ]

    def __str__(self) -> str:
        return f"reservation {self.customer_id} {self.start_time:%F %T}"


class Notification(models.Model):
    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='notifications')
    user = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.CASCADE, related_name='notifications'
    )
    title = models.CharField(max_length=255)
    message = models.TextField(blank=True)
    type = models.CharField(max_length=32, default='info', db_index=True)
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'notifications'
        indexes = [models.Index(fields=['clinic', 'created_at'], name='notificatio_clinic__4b8e21_idx')]

    def __str__(self) -> str:
        return f"{self.type}: {self.title}"


class ClinicSetting(models.Model):
    """Per-clinic settings document for one category."""
    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='settings')
    category = models.CharField(max_length=64)
    settings = models.JSONField(default=dict)
    updated_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'clinic_settings'
        unique_together = [('clinic', 'category')]

    def __str__(self) -> str:
        return f"{self.clinic_id}:{self.category}"


class AuditLog(models.Model):
    EVENT_CHOICES = (
        ('login', 'login'),
        ('logout', 'logout'),
        ('failed_login', 'failed_login'),
        ('data_access', 'data_access'),
        ('data_modify', 'data_modify'),
        ('data_delete', 'data_delete'),
        ('admin_action', 'admin_action'),
        ('unauthorized_access', 'unauthorized_access'),
    )
    event_type = models.CharField(max_length=32, choices=EVENT_CHOICES)
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    user_email = models.CharField(max_length=255, blank=True, null=True)
    target_table = models.CharField(max_length=64, blank=True, null=True)
    target_id = models.CharField(max_length=255, blank=True, null=True)
    clinic_id = models.CharField(max_length=64, blank=True, null=True)
    ip_address = models.GenericIPAddressField(blank=True, null=True)
    user_agent = models.TextField(blank=True, null=True)
    details = models.JSONField(default=dict, blank=True)
    success = models.BooleanField(default=True)
    error_message = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        indexes = [
            models.Index(fields=['event_type', 'created_at'], name='audit_logs_event_t_2f6a9c_idx'),
            models.Index(fields=['target_table', 'target_id', 'created_at'], name='audit_logs_target__9d3e47_idx'),
        ]

    def __str__(self):
        return f"{self.event_type}:{self.user_id}@{self.created_at:%F %T}"
