"""
Request-scoped data access facade.

:class:`ClinicDataStore` exposes the reporting views and the named
stored procedures the analytics code relies on.  Views return plain
dict rows (JSON friendly) rather than model instances; procedures are
invoked by name through :meth:`ClinicDataStore.rpc`.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from django.db import DatabaseError
from django.db.models import Avg, Count, DecimalField, F, Max, OuterRef, Subquery, Sum, Value
from django.db.models.functions import Coalesce
from django.utils import timezone

from clinics.exceptions import AppError, ErrorCode
from clinics.models import Patient, Reservation, Revenue, Visit

logger = logging.getLogger(__name__)

# churn risk reaches 100 after this many days without a visit
CHURN_HORIZON_DAYS = 90
CHURN_VISIT_CREDIT = 4
CHURN_VISIT_CREDIT_CAP = 5


def visit_category(visit_count: int) -> Optional[str]:
    if visit_count <= 0:
        return None
    if visit_count == 1:
        return 'first_only'
    if visit_count < 5:
        return 'light_repeat'
    if visit_count < 10:
        return 'moderate_repeat'
    return 'heavy_repeat'


def churn_risk_score(days_since_last_visit: Optional[int], visit_count: int) -> int:
    """Score in ``[0, 100]``; patients who never visited score 100."""
    if days_since_last_visit is None or visit_count <= 0:
        return 100
    score = round(days_since_last_visit * 100 / CHURN_HORIZON_DAYS)
    score -= CHURN_VISIT_CREDIT * min(visit_count, CHURN_VISIT_CREDIT_CAP)
    return max(0, min(100, score))


def _money(value) -> float:
    return float(value or 0)


class ClinicDataStore:
    """Reporting views and stored procedures over the clinic tables."""

    def __init__(self, user=None):
        self.user = user
        self._procedures: Dict[str, Callable[..., Any]] = {
            'calculate_patient_ltv': self.calculate_patient_ltv,
            'calculate_churn_risk_score': self.calculate_churn_risk_score,
            'get_hourly_revenue_pattern': self.get_hourly_revenue_pattern,
            'get_hourly_visit_pattern': self.get_hourly_visit_pattern,
        }

    # ------------------------------------------------------------------
    # views
    # ------------------------------------------------------------------
    def patient_visit_summary(self, clinic_id) -> List[Dict[str, Any]]:
        revenue_total = (
            Revenue.objects.filter(patient=OuterRef('pk'))
            .values('patient')
            .annotate(total=Sum('amount'))
            .values('total')
        )
        qs = (
            Patient.objects.filter(clinic_id=clinic_id, is_deleted=False)
            .annotate(
                visit_count=Count('visits', distinct=True),
                last_visit_date=Max('visits__visit_date'),
                total_revenue=Coalesce(
                    Subquery(revenue_total, output_field=DecimalField(max_digits=14, decimal_places=2)),
                    Value(Decimal('0')),
                    output_field=DecimalField(max_digits=14, decimal_places=2),
                ),
            )
            .order_by(F('last_visit_date').desc(nulls_last=True), 'name')
        )
        rows = []
        for p in qs:
            rows.append({
                'patient_id': str(p.id),
                'patient_name': p.name,
                'clinic_id': str(p.clinic_id),
                'visit_count': p.visit_count,
                'total_revenue': _money(p.total_revenue),
                'last_visit_date': p.last_visit_date.isoformat() if p.last_visit_date else None,
                'first_visit_date': p.registration_date.isoformat() if p.registration_date else None,
                'visit_category': visit_category(p.visit_count),
            })
        return rows

    def staff_performance_summary(self, clinic_id) -> List[Dict[str, Any]]:
        visit_stats = (
            Visit.objects.filter(clinic_id=clinic_id, staff__isnull=False)
            .values('staff_id', 'staff__username', 'staff__first_name', 'staff__last_name')
            .annotate(
                total_visits=Count('id'),
                unique_patients=Count('patient', distinct=True),
                working_days=Count('visit_date', distinct=True),
                average_satisfaction=Avg('satisfaction_score'),
            )
        )
        revenue_by_staff = {
            row['visit__staff_id']: row['total']
            for row in Revenue.objects.filter(clinic_id=clinic_id, visit__staff__isnull=False)
            .values('visit__staff_id')
            .annotate(total=Sum('amount'))
        }
        rows = []
        for row in visit_stats:
            full_name = f"{row['staff__last_name']} {row['staff__first_name']}".strip()
            avg = row['average_satisfaction']
            rows.append({
                'staff_id': str(row['staff_id']),
                'staff_name': full_name or row['staff__username'],
                'clinic_id': str(clinic_id),
                'total_visits': row['total_visits'],
                'unique_patients': row['unique_patients'],
                'working_days': row['working_days'],
                'revenue_generated': _money(revenue_by_staff.get(row['staff_id'])),
                'average_satisfaction': round(float(avg), 2) if avg is not None else None,
            })
        rows.sort(key=lambda r: r['revenue_generated'], reverse=True)
        return rows

    def revenue_rows(self, clinic_id, start_date: Optional[date] = None,
                     end_date: Optional[date] = None) -> List[Dict[str, Any]]:
        qs = Revenue.objects.filter(clinic_id=clinic_id).select_related('menu')
        if start_date:
            qs = qs.filter(revenue_date__gte=start_date)
        if end_date:
            qs = qs.filter(revenue_date__lte=end_date)
        return [
            {
                'id': str(r.id),
                'revenue_date': r.revenue_date.isoformat(),
                'amount': _money(r.amount),
                'insurance_revenue': _money(r.insurance_revenue),
                'private_revenue': _money(r.private_revenue),
                'menu_id': str(r.menu_id) if r.menu_id else None,
                'menu_name': r.menu.name if r.menu_id else None,
                'patient_id': str(r.patient_id) if r.patient_id else None,
            }
            for r in qs.order_by('revenue_date')
        ]

    def visit_count_between(self, clinic_id, start: date, end: date) -> int:
        """Visits with ``start <= visit_date < end``."""
        return Visit.objects.filter(clinic_id=clinic_id, visit_date__gte=start, visit_date__lt=end).count()

    def staff_daily_performance(self, clinic_id, since: date) -> List[Dict[str, Any]]:
        rows = (
            Visit.objects.filter(clinic_id=clinic_id, staff__isnull=False, visit_date__gte=since)
            .values('staff_id', 'staff__username', 'visit_date')
            .annotate(patients=Count('patient', distinct=True), satisfaction=Avg('satisfaction_score'),
                      revenue=Sum('revenues__amount'))
            .order_by('-visit_date')
        )
        return [
            {
                'staff_id': str(r['staff_id']),
                'staff_name': r['staff__username'],
                'date': r['visit_date'].isoformat(),
                'patients': r['patients'],
                'revenue': _money(r['revenue']),
                'satisfaction': round(float(r['satisfaction']), 2) if r['satisfaction'] is not None else 0,
            }
            for r in rows
        ]

    # ------------------------------------------------------------------
    # stored procedures
    # ------------------------------------------------------------------
    def rpc(self, name: str, **params) -> Any:
        procedure = self._procedures.get(name)
        if procedure is None:
            raise AppError(ErrorCode.DATABASE_ERROR, f'unknown procedure: {name}', 500)
        try:
            return procedure(**params)
        except TypeError as exc:
            raise AppError(ErrorCode.DATABASE_ERROR, f'invalid arguments for {name}', 500,
                           details={'error': str(exc)}) from exc
        except DatabaseError as exc:
            logger.exception('procedure %s failed', name)
            raise AppError(ErrorCode.DATABASE_ERROR, status_code=500) from exc

    def calculate_patient_ltv(self, patient_uuid) -> float:
        total = Revenue.objects.filter(patient_id=patient_uuid).aggregate(total=Sum('amount'))['total']
        return _money(total)

    def calculate_churn_risk_score(self, patient_uuid) -> int:
        stats = Visit.objects.filter(patient_id=patient_uuid).aggregate(
            visits=Count('id'), last=Max('visit_date'))
        if not stats['visits']:
            return churn_risk_score(None, 0)
        days = (timezone.localdate() - stats['last']).days
        return churn_risk_score(max(days, 0), stats['visits'])

    def get_hourly_revenue_pattern(self, clinic_uuid) -> List[Dict[str, Any]]:
        buckets: Dict[int, List[float]] = defaultdict(lambda: [0.0, 0])
        for created_at, amount in Revenue.objects.filter(clinic_id=clinic_uuid).values_list('created_at', 'amount'):
            hour = timezone.localtime(created_at).hour
            buckets[hour][0] += _money(amount)
            buckets[hour][1] += 1
        return [
            {'hour': hour, 'total_revenue': round(total, 2), 'transaction_count': int(count)}
            for hour, (total, count) in sorted(buckets.items())
        ]

    def get_hourly_visit_pattern(self, clinic_uuid) -> List[Dict[str, Any]]:
        counts: Dict[tuple, int] = defaultdict(int)
        starts = Reservation.objects.filter(
            clinic_id=clinic_uuid, status__in=('completed', 'arrived')
        ).values_list('start_time', flat=True)
        for start in starts:
            local = timezone.localtime(start)
            # 0 = Sunday
            counts[(local.isoweekday() % 7, local.hour)] += 1
        return [
            {'day_of_week': dow, 'hour': hour, 'visit_count': count}
            for (dow, hour), count in sorted(counts.items())
        ]
