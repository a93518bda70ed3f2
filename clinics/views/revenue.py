from __future__ import annotations

from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny

from clinics.models import Menu, Patient, Revenue, Visit
from clinics.responses import error_response, success_response
from clinics.serializers.analytics import RevenueCreateSerializer, RevenueQuerySerializer
from clinics.services import audit
from clinics.services.analytics import generate_revenue_analysis
from clinics.services.guards import ensure_clinic_access

PATH = '/api/revenue'


def _analysis(request):
    q = RevenueQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    clinic_id = str(vd['clinic_id'])
    ctx = ensure_clinic_access(request, PATH, clinic_id, require_clinic_match=True)
    data = generate_revenue_analysis(ctx.store, clinic_id, vd['period'],
                                     vd.get('start_date'), vd.get('end_date'))
    return success_response(data)


def _record(request):
    s = RevenueCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    clinic_id = str(vd['clinic_id'])
    ctx = ensure_clinic_access(request, PATH, clinic_id, require_clinic_match=True)

    # referenced rows must belong to the same clinic
    errors = {}
    for key, model in (('patient_id', Patient), ('visit_id', Visit), ('menu_id', Menu)):
        if vd.get(key) and not model.objects.filter(id=vd[key], clinic_id=clinic_id).exists():
            errors[key] = ['リソースが見つかりません']
    if errors:
        return error_response('入力値にエラーがあります', 400, details=errors)

    rev = Revenue.objects.create(
        clinic_id=clinic_id,
        patient_id=vd.get('patient_id'),
        visit_id=vd.get('visit_id'),
        menu_id=vd.get('menu_id'),
        revenue_date=vd.get('revenue_date') or timezone.localdate(),
        amount=vd['amount'],
        insurance_revenue=vd.get('insurance_revenue') or 0,
        private_revenue=vd.get('private_revenue') or 0,
    )
    ip, _ = audit.get_request_info(request)
    audit.log_data_modify(ctx.user.pk, ctx.user.email or '', 'revenues', rev.id,
                          {'amount': str(rev.amount)}, clinic_id, ip)
    return success_response({
        'id': str(rev.id),
        'clinic_id': clinic_id,
        'revenue_date': rev.revenue_date.isoformat(),
        'amount': float(rev.amount),
        'insurance_revenue': float(rev.insurance_revenue),
        'private_revenue': float(rev.private_revenue),
    }, status=201)


@api_view(['GET', 'POST'])
@permission_classes([AllowAny])
def revenue(request):
    if request.method == 'GET':
        return _analysis(request)
    return _record(request)
