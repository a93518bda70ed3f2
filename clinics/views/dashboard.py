"""
Clinic dashboard: today's figures, a seven-day revenue chart and the
visit heatmap.  A failing heatmap procedure is logged and yields an
empty heatmap instead of failing the dashboard.
"""
from __future__ import annotations

from datetime import timedelta

from django.db.models import Sum
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny

from clinics.exceptions import AppError, log_error
from clinics.models import Revenue, Visit
from clinics.responses import success_response
from clinics.serializers.customers import ClinicQuerySerializer
from clinics.services.guards import ensure_clinic_access

PATH = '/api/dashboard'


@api_view(['GET'])
@permission_classes([AllowAny])
def dashboard(request):
    q = ClinicQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    clinic_id = str(q.validated_data['clinic_id'])
    ctx = ensure_clinic_access(request, PATH, clinic_id)

    today = timezone.localdate()
    today_rev = Revenue.objects.filter(clinic_id=clinic_id, revenue_date=today).aggregate(
        total=Sum('amount'), insurance=Sum('insurance_revenue'), private=Sum('private_revenue'))
    patients_today = (
        Visit.objects.filter(clinic_id=clinic_id, visit_date=today)
        .values('patient_id').distinct().count()
    )

    chart = (
        Revenue.objects.filter(clinic_id=clinic_id, revenue_date__gte=today - timedelta(days=7))
        .values('revenue_date')
        .annotate(total=Sum('amount'), insurance=Sum('insurance_revenue'), private=Sum('private_revenue'))
        .order_by('revenue_date')
    )

    try:
        heatmap = ctx.store.rpc('get_hourly_visit_pattern', clinic_uuid=clinic_id)
    except AppError as exc:
        log_error(exc, endpoint=PATH, user_id=ctx.user.pk, method='GET', params={'clinic_id': clinic_id})
        heatmap = []

    return success_response({
        'dailyData': {
            'revenue': float(today_rev['total'] or 0),
            'patients': patients_today,
            'insuranceRevenue': float(today_rev['insurance'] or 0),
            'privateRevenue': float(today_rev['private'] or 0),
        },
        'revenueChartData': [
            {
                'name': row['revenue_date'].isoformat(),
                '総売上': float(row['total'] or 0),
                '保険診療': float(row['insurance'] or 0),
                '自費診療': float(row['private'] or 0),
            }
            for row in chart
        ],
        'heatmapData': heatmap or [],
        'alerts': [],
    })
