from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny

from clinics import roles
from clinics.models import Notification
from clinics.responses import success_response
from clinics.serializers.analytics import NotificationsQuerySerializer
from clinics.services.guards import process_api_request


def notification_to_dict(n: Notification) -> dict:
    return {
        'id': n.id,
        'clinic_id': str(n.clinic_id),
        'user_id': str(n.user_id) if n.user_id else None,
        'title': n.title,
        'message': n.message,
        'type': n.type,
        'is_read': n.is_read,
        'created_at': n.created_at.isoformat(),
    }


@api_view(['GET'])
@permission_classes([AllowAny])
def admin_notifications(request):
    """Latest notifications of a clinic (admin UI roles only)."""
    q = NotificationsQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    clinic_id = str(vd['clinic_id'])

    guard = process_api_request(request, clinic_id=clinic_id, allowed_roles=roles.ADMIN_UI_ROLES)
    if not guard.success:
        return guard.error

    qs = Notification.objects.filter(clinic_id=clinic_id)
    if vd.get('type'):
        qs = qs.filter(type=vd['type'])
    rows = qs.order_by('-created_at', '-id')[:vd['limit']]
    return success_response({'notifications': [notification_to_dict(n) for n in rows]})
