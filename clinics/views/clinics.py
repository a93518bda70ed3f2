from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny

from clinics.models import Clinic
from clinics.responses import success_response
from clinics.services.guards import ensure_clinic_access, get_clinic_scope


@api_view(['GET'])
@permission_classes([AllowAny])
def accessible_clinics(request):
    """Active clinics the caller may switch to, plus its home clinic id."""
    ctx = ensure_clinic_access(request, '/api/clinics/accessible', None, require_clinic_match=False)
    scope = get_clinic_scope(ctx.permissions)
    clinics = Clinic.objects.filter(id__in=list(scope), is_active=True).order_by('name')
    return success_response({
        'clinics': [
            {
                'id': str(c.id),
                'name': c.name,
                'parentId': str(c.parent_id) if c.parent_id else None,
            }
            for c in clinics
        ],
        'currentClinicId': ctx.permissions.clinic_id_str,
    })
