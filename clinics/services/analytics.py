"""
Derived analytics built on top of :class:`ClinicDataStore`.

Each generator fetches the reporting rows once, then maps, filters and
sorts them in Python.  Per-row procedure calls are issued sequentially;
the first failing call aborts the whole analysis.
"""
from __future__ import annotations

from collections import OrderedDict
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.utils import timezone

from .datastore import ClinicDataStore


SEGMENT_LABELS = OrderedDict([
    ('first_only', '初診のみ'),
    ('light_repeat', '軽度リピート'),
    ('moderate_repeat', '中度リピート'),
    ('heavy_repeat', '高度リピート'),
])


def risk_category(score: float) -> str:
    if score > 75:
        return 'high'
    if score > 50:
        return 'medium'
    return 'low'


def _percent_change(current: float, previous: float) -> float:
    if not previous:
        return 0
    return round((current - previous) / previous * 100, 1)


def _month_start(d: date) -> date:
    return d.replace(day=1)


def _previous_month_start(d: date) -> date:
    return (_month_start(d) - timedelta(days=1)).replace(day=1)


def _next_month_start(d: date) -> date:
    return (_month_start(d) + timedelta(days=32)).replace(day=1)


def _one_year_earlier(d: date) -> date:
    if d.month == 2 and d.day == 29:
        return d.replace(year=d.year - 1, day=28)
    return d.replace(year=d.year - 1)


# ---------------------------------------------------------------------
# Patients
# ---------------------------------------------------------------------
def _conversion(patients: List[dict]) -> Dict[str, Any]:
    new = sum(1 for p in patients if p['visit_count'] == 1)
    returning = sum(1 for p in patients if p['visit_count'] > 1)
    total = new + returning
    rate = round(returning / total * 100, 2) if total else 0
    return {
        'newPatients': new,
        'returnPatients': returning,
        'conversionRate': rate,
        'stages': [
            {'name': '初回来院', 'value': total},
            {'name': '2回目来院', 'value': returning},
            {'name': '継続通院', 'value': sum(1 for p in patients if p['visit_count'] >= 5)},
        ],
    }


def _segments(patients: List[dict]) -> Dict[str, Any]:
    if not patients:
        return {}
    return {
        'visit': [
            {'label': label, 'value': sum(1 for p in patients if p['visit_category'] == key)}
            for key, label in SEGMENT_LABELS.items()
        ]
    }


def generate_patient_analysis(store: ClinicDataStore, clinic_id) -> Dict[str, Any]:
    """Conversion, risk, LTV and segmentation for the patients of one clinic."""
    ltv_limit = getattr(settings, 'ANALYTICS_LTV_LIMIT', 20)
    risk_limit = getattr(settings, 'ANALYTICS_RISK_LIMIT', 20)
    follow_up_threshold = getattr(settings, 'ANALYTICS_FOLLOW_UP_THRESHOLD', 60)
    follow_up_limit = getattr(settings, 'ANALYTICS_FOLLOW_UP_LIMIT', 10)

    patients = store.patient_visit_summary(clinic_id)

    ltv_ranking = []
    for p in patients[:ltv_limit]:
        ltv = store.rpc('calculate_patient_ltv', patient_uuid=p['patient_id'])
        ltv_ranking.append({
            'patient_id': p['patient_id'],
            'name': p['patient_name'],
            'ltv': ltv or 0,
            'visit_count': p['visit_count'],
            'total_revenue': p['total_revenue'],
        })
    ltv_ranking.sort(key=lambda r: r['ltv'], reverse=True)

    risk_scores = []
    for p in patients:
        score = store.rpc('calculate_churn_risk_score', patient_uuid=p['patient_id'])
        score = float(score or 0)
        risk_scores.append({
            'patient_id': p['patient_id'],
            'name': p['patient_name'],
            'riskScore': score,
            'lastVisit': p['last_visit_date'],
            'category': risk_category(score),
        })
    risk_scores.sort(key=lambda r: r['riskScore'], reverse=True)

    follow_up = [
        {
            'patient_id': r['patient_id'],
            'name': r['name'],
            'reason': f"{r['riskScore']:g}%の離脱リスク",
            'lastVisit': r['lastVisit'],
            'action': '電話フォロー推奨',
        }
        for r in risk_scores if r['riskScore'] > follow_up_threshold
    ][:follow_up_limit]

    today = timezone.localdate()
    this_month = store.visit_count_between(clinic_id, _month_start(today), _next_month_start(today))
    last_month = store.visit_count_between(clinic_id, _previous_month_start(today), _month_start(today))
    average = round(sum(p['visit_count'] for p in patients) / len(patients), 2) if patients else 0

    return {
        'conversionData': _conversion(patients),
        'visitCounts': {
            'average': average,
            'monthlyChange': _percent_change(this_month, last_month),
        },
        'riskScores': risk_scores[:risk_limit],
        'ltvRanking': ltv_ranking,
        'segmentData': _segments(patients),
        'followUpList': follow_up,
        'totalPatients': len(patients),
        'activePatients': sum(1 for p in patients if p['visit_count'] > 1),
    }


# ---------------------------------------------------------------------
# Revenue
# ---------------------------------------------------------------------
def period_start(period: str, today: date) -> date:
    if period == 'week':
        return today - timedelta(days=7)
    if period == 'month':
        return _month_start(today)
    return today.replace(month=1, day=1)


def generate_revenue_analysis(
    store: ClinicDataStore,
    clinic_id,
    period: str = 'month',
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> Dict[str, Any]:
    today = timezone.localdate()
    if not (start_date and end_date):
        start_date, end_date = period_start(period, today), None
    rows = store.revenue_rows(clinic_id, start_date, end_date)

    menus: Dict[str, dict] = {}
    for r in rows:
        name = r['menu_name'] or 'その他'
        m = menus.setdefault(name, {'menu_id': r['menu_id'], 'menu_name': name,
                                    'total_revenue': 0.0, 'transaction_count': 0})
        m['total_revenue'] += r['amount']
        m['transaction_count'] += 1
    menu_ranking = sorted(menus.values(), key=lambda m: m['total_revenue'], reverse=True)[:10]

    daily: Dict[str, dict] = {}
    for r in rows:
        d = daily.setdefault(r['revenue_date'], {'date': r['revenue_date'], 'total_revenue': 0.0,
                                                 'insurance_revenue': 0.0, 'private_revenue': 0.0,
                                                 'transaction_count': 0})
        d['total_revenue'] += r['amount']
        d['insurance_revenue'] += r['insurance_revenue']
        d['private_revenue'] += r['private_revenue']
        d['transaction_count'] += 1
    trends = sorted(daily.values(), key=lambda d: d['date'])

    hourly = store.rpc('get_hourly_revenue_pattern', clinic_uuid=clinic_id)

    last_year_start = _one_year_earlier(start_date)
    last_year_end = _one_year_earlier(end_date or today)
    last_year_total = sum(r['amount'] for r in store.revenue_rows(clinic_id, last_year_start, last_year_end))

    current_total = sum(r['amount'] for r in rows)
    today_key = today.isoformat()
    return {
        'dailyRevenue': daily.get(today_key, {}).get('total_revenue', 0.0),
        'weeklyRevenue': sum(d['total_revenue'] for d in trends[-7:]),
        'monthlyRevenue': sum(d['total_revenue'] for d in trends),
        'totalRevenue': current_total,
        'insuranceRevenue': sum(r['insurance_revenue'] for r in rows),
        'selfPayRevenue': sum(r['private_revenue'] for r in rows),
        'menuRanking': menu_ranking,
        'hourlyRevenue': hourly or [],
        'growthRate': f'{_percent_change(current_total, last_year_total)}%',
        'revenueTrends': trends,
        'period': {'start': start_date.isoformat(), 'end': end_date.isoformat() if end_date else None},
    }


# ---------------------------------------------------------------------
# Staff
# ---------------------------------------------------------------------
def generate_staff_analysis(store: ClinicDataStore, clinic_id) -> Dict[str, Any]:
    staff = store.staff_performance_summary(clinic_id)
    count = max(len(staff), 1)

    metrics = {
        'dailyPatients': round(sum(s['total_visits'] / max(s['working_days'], 1) for s in staff) / count, 2),
        'totalRevenue': sum(s['revenue_generated'] for s in staff),
        'averageSatisfaction': round(sum(s['average_satisfaction'] or 0 for s in staff) / count, 2),
    }
    ranking = [
        {
            'staff_id': s['staff_id'],
            'name': s['staff_name'],
            'revenue': s['revenue_generated'],
            'patients': s['unique_patients'],
            'satisfaction': s['average_satisfaction'] or 0,
        }
        for s in sorted(staff, key=lambda s: s['revenue_generated'], reverse=True)[:10]
    ]
    correlation = [
        {
            'name': s['staff_name'],
            'satisfaction': s['average_satisfaction'] or 0,
            'revenue': s['revenue_generated'],
            'patients': s['unique_patients'],
        }
        for s in staff
    ]

    trends: Dict[str, List[dict]] = {}
    for row in store.staff_daily_performance(clinic_id, _month_start(timezone.localdate())):
        trends.setdefault(row['staff_name'], []).append({
            'date': row['date'],
            'revenue': row['revenue'],
            'patients': row['patients'],
            'satisfaction': row['satisfaction'],
        })

    return {
        'staffMetrics': metrics,
        'revenueRanking': ranking,
        'satisfactionCorrelation': correlation,
        'performanceTrends': trends,
        'totalStaff': len(staff),
        'activeStaff': sum(1 for s in staff if s['working_days'] > 0),
    }


def generate_clinic_kpi(store: ClinicDataStore, clinic_id) -> Dict[str, Any]:
    """Headline figures of one clinic for the tenant overview."""
    staff = store.staff_performance_summary(clinic_id)
    score = None
    if staff:
        per_staff = sum(s['revenue_generated'] for s in staff) / len(staff)
        # 100,000 yen per staff member is one point, capped at 5
        score = min(5, round(per_staff / 100000, 1))
    return {
        'revenue': sum(r['amount'] for r in store.revenue_rows(clinic_id)),
        'patients': sum(1 for p in store.patient_visit_summary(clinic_id) if p['visit_count'] > 0),
        'staff_performance_score': score,
    }
