"""
URL mappings for the clinic portal API.

Trailing slashes are deliberately omitted to match the front-end's
endpoint table (``APPEND_SLASH`` is off).
"""
from django.urls import path, include

from .auth_views import jwt_logout_view, jwt_refresh_view, login_view, profile_view
from .views import health
from .views.admin_settings import admin_settings
from .views.admin_tenants import admin_tenant_detail, admin_tenants
from .views.admin_users import admin_user_detail, admin_users
from .views.clinics import accessible_clinics
from .views.customers import customers
from .views.dashboard import dashboard
from .views.menus import menus
from .views.notifications import admin_notifications
from .views.patients import customers_analysis, patients
from .views.reservations import reservations
from .views.revenue import revenue
from .views.staff import staff


urlpatterns = [
    path('', include('django_prometheus.urls')),
    path('healthz', health.healthz, name='healthz'),
    # Authentication
    path('api/auth/login', login_view, name='login_view'),
    path('api/auth/refresh', jwt_refresh_view, name='jwt_refresh_view'),
    path('api/auth/logout', jwt_logout_view, name='jwt_logout_view'),
    path('api/auth/profile', profile_view, name='profile_view'),
    # Clinics
    path('api/clinics/accessible', accessible_clinics, name='accessible_clinics'),
    # Patients / customers
    path('api/customers/analysis', customers_analysis, name='customers_analysis'),
    path('api/customers', customers, name='customers'),
    path('api/patients', patients, name='patients'),
    # Operations
    path('api/menus', menus, name='menus'),
    path('api/reservations', reservations, name='reservations'),
    path('api/revenue', revenue, name='revenue'),
    path('api/staff', staff, name='staff'),
    path('api/dashboard', dashboard, name='dashboard'),
    # Admin
    path('api/admin/notifications', admin_notifications, name='admin_notifications'),
    path('api/admin/settings', admin_settings, name='admin_settings'),
    path('api/admin/users', admin_users, name='admin_users'),
    path('api/admin/users/<int:permission_id>', admin_user_detail, name='admin_user_detail'),
    path('api/admin/tenants', admin_tenants, name='admin_tenants'),
    path('api/admin/tenants/<uuid:clinic_id>', admin_tenant_detail, name='admin_tenant_detail'),
]
