"""
Patient analysis endpoints.

``GET /api/customers/analysis`` is the canonical analysis endpoint.
``GET /api/patients`` is kept for older front-ends and returns exactly
the same payload (the middleware marks it as deprecated); ``POST
/api/patients`` registers a patient.
"""
from __future__ import annotations

from rest_framework import serializers
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny

from clinics.models import Patient
from clinics.responses import success_response
from clinics.serializers.customers import PatientCreateSerializer, customer_to_dict
from clinics.services import audit
from clinics.services.analytics import generate_patient_analysis
from clinics.services.guards import ensure_clinic_access

ANALYSIS_TYPES = ['conversion', 'ltv', 'churn', 'segment']


class AnalysisQuerySerializer(serializers.Serializer):
    clinic_id = serializers.UUIDField(error_messages={'invalid': '有効なクリニックIDを指定してください'})
    analysis = serializers.ChoiceField(choices=ANALYSIS_TYPES, required=False, error_messages={
        'invalid_choice': f"不正なanalysisです。有効な値: {', '.join(ANALYSIS_TYPES)}",
    })


def _patient_analysis(request, path: str):
    q = AnalysisQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    clinic_id = str(q.validated_data['clinic_id'])

    ctx = ensure_clinic_access(request, path, clinic_id, require_clinic_match=True)
    ip, _ = audit.get_request_info(request)
    audit.log_data_access(
        ctx.user.pk, ctx.user.email or '', 'patient_visit_summary', clinic_id, clinic_id, ip,
        details={'analysis_type': q.validated_data.get('analysis'), 'request_params': dict(request.query_params.items())},
    )
    return success_response(generate_patient_analysis(ctx.store, clinic_id))


@api_view(['GET'])
@permission_classes([AllowAny])
def customers_analysis(request):
    return _patient_analysis(request, '/api/customers/analysis')


@api_view(['GET', 'POST'])
@permission_classes([AllowAny])
def patients(request):
    if request.method == 'GET':
        return _patient_analysis(request, '/api/patients')

    s = PatientCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    clinic_id = str(vd['clinic_id'])
    ctx = ensure_clinic_access(request, '/api/patients', clinic_id, require_clinic_match=True)

    patient = Patient.objects.create(
        clinic_id=clinic_id,
        name=vd['name'],
        phone=vd.get('phone') or '',
        email=vd.get('email') or None,
        notes=vd.get('notes') or None,
        registration_date=vd.get('registration_date'),
        created_by=ctx.user,
    )
    ip, _ = audit.get_request_info(request)
    audit.log_data_modify(ctx.user.pk, ctx.user.email or '', 'patients', patient.id,
                          {'created': True}, clinic_id, ip)
    return success_response(customer_to_dict(patient), status=201)
