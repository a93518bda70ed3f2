from datetime import date

import pytest
from django.test import override_settings

from clinics.exceptions import AppError, ErrorCode
from clinics.services.analytics import (
    generate_patient_analysis,
    generate_revenue_analysis,
    generate_staff_analysis,
    period_start,
    risk_category,
)


class FakeStore:
    """In-memory stand-in for ClinicDataStore."""

    def __init__(self, patients=(), ltv=None, risk=None, visits=(0, 0), revenue=None, staff=(), fail_on=None):
        self.patients = list(patients)
        self.ltv = ltv or {}
        self.risk = risk or {}
        self.visits = list(visits)
        self.revenue = dict(revenue or {})
        self.staff = list(staff)
        self.fail_on = fail_on
        self.calls = []

    def patient_visit_summary(self, clinic_id):
        return self.patients

    def visit_count_between(self, clinic_id, start, end):
        return self.visits.pop(0)

    def revenue_rows(self, clinic_id, start_date=None, end_date=None):
        return self.revenue.get(start_date, [])

    def staff_performance_summary(self, clinic_id):
        return self.staff

    def staff_daily_performance(self, clinic_id, since):
        return []

    def rpc(self, name, **params):
        self.calls.append((name, params))
        if name == self.fail_on:
            raise AppError(ErrorCode.DATABASE_ERROR, status_code=500)
        if name == 'calculate_patient_ltv':
            return self.ltv.get(params['patient_uuid'], 0)
        if name == 'calculate_churn_risk_score':
            return self.risk.get(params['patient_uuid'], 0)
        return []


def _patient(pid, visits, category, last='2026-09-01'):
    return {
        'patient_id': pid, 'patient_name': f'患者{pid}', 'clinic_id': 'c', 'visit_count': visits,
        'total_revenue': 1000.0 * visits, 'last_visit_date': last, 'first_visit_date': None,
        'visit_category': category,
    }


@pytest.mark.parametrize('score, expected', [(90, 'high'), (76, 'high'), (75, 'medium'), (51, 'medium'), (50, 'low')])
def test_risk_category(score, expected):
    assert risk_category(score) == expected


def test_patient_analysis_shape():
    store = FakeStore(
        patients=[_patient('p1', 1, 'first_only'), _patient('p2', 6, 'moderate_repeat'),
                  _patient('p3', 2, 'light_repeat')],
        ltv={'p1': 1000, 'p2': 9000, 'p3': 4000},
        risk={'p1': 80, 'p2': 10, 'p3': 65},
        visits=[12, 10],
    )
    result = generate_patient_analysis(store, 'c')

    assert result['totalPatients'] == 3
    assert result['activePatients'] == 2
    conversion = result['conversionData']
    assert conversion['newPatients'] == 1
    assert conversion['returnPatients'] == 2
    assert conversion['conversionRate'] == 66.67
    assert [s['value'] for s in conversion['stages']] == [3, 2, 1]
    assert result['visitCounts'] == {'average': 3.0, 'monthlyChange': 20.0}
    assert [r['patient_id'] for r in result['ltvRanking']] == ['p2', 'p3', 'p1']
    assert [r['category'] for r in result['riskScores']] == ['high', 'medium', 'low']
    assert [f['patient_id'] for f in result['followUpList']] == ['p1', 'p3']
    assert result['followUpList'][0]['reason'] == '80%の離脱リスク'
    labels = {s['label']: s['value'] for s in result['segmentData']['visit']}
    assert labels == {'初診のみ': 1, '軽度リピート': 1, '中度リピート': 1, '高度リピート': 0}


def test_patient_analysis_without_patients():
    result = generate_patient_analysis(FakeStore(), 'c')
    assert result['segmentData'] == {}
    assert result['conversionData']['conversionRate'] == 0
    assert result['visitCounts'] == {'average': 0, 'monthlyChange': 0}
    assert result['riskScores'] == [] and result['followUpList'] == []


@override_settings(ANALYTICS_LTV_LIMIT=1, ANALYTICS_FOLLOW_UP_LIMIT=1)
def test_patient_analysis_limits():
    store = FakeStore(
        patients=[_patient('p1', 1, 'first_only'), _patient('p2', 1, 'first_only')],
        risk={'p1': 90, 'p2': 95},
    )
    result = generate_patient_analysis(store, 'c')
    assert len(result['ltvRanking']) == 1
    assert [f['patient_id'] for f in result['followUpList']] == ['p2']
    ltv_calls = [c for c in store.calls if c[0] == 'calculate_patient_ltv']
    assert len(ltv_calls) == 1


def test_patient_analysis_aborts_on_first_failing_call():
    store = FakeStore(patients=[_patient('p1', 1, 'first_only'), _patient('p2', 1, 'first_only')],
                      fail_on='calculate_patient_ltv')
    with pytest.raises(AppError):
        generate_patient_analysis(store, 'c')
    assert len(store.calls) == 1


def test_period_start():
    today = date(2026, 10, 19)
    assert period_start('week', today) == date(2026, 10, 12)
    assert period_start('month', today) == date(2026, 10, 1)
    assert period_start('year', today) == date(2026, 1, 1)


def test_revenue_analysis_totals():
    rows = [
        {'id': '1', 'revenue_date': '2026-10-01', 'amount': 3000.0, 'insurance_revenue': 900.0,
         'private_revenue': 2100.0, 'menu_id': 'm1', 'menu_name': '整体', 'patient_id': None},
        {'id': '2', 'revenue_date': '2026-10-01', 'amount': 5000.0, 'insurance_revenue': 0.0,
         'private_revenue': 5000.0, 'menu_id': 'm2', 'menu_name': '鍼灸', 'patient_id': None},
        {'id': '3', 'revenue_date': '2026-10-02', 'amount': 5000.0, 'insurance_revenue': 0.0,
         'private_revenue': 5000.0, 'menu_id': 'm2', 'menu_name': '鍼灸', 'patient_id': None},
    ]
    store = FakeStore(revenue={date(2026, 10, 1): rows})
    result = generate_revenue_analysis(store, 'c', start_date=date(2026, 10, 1), end_date=date(2026, 10, 31))

    assert result['totalRevenue'] == 13000.0
    assert result['insuranceRevenue'] == 900.0
    assert result['selfPayRevenue'] == 12100.0
    assert [m['menu_name'] for m in result['menuRanking']] == ['鍼灸', '整体']
    assert result['menuRanking'][0]['transaction_count'] == 2
    assert [d['date'] for d in result['revenueTrends']] == ['2026-10-01', '2026-10-02']
    assert result['revenueTrends'][0]['total_revenue'] == 8000.0
    # no revenue a year earlier
    assert result['growthRate'] == '0%'
    assert result['period'] == {'start': '2026-10-01', 'end': '2026-10-31'}
    assert ('get_hourly_revenue_pattern', {'clinic_uuid': 'c'}) in store.calls


def test_staff_analysis():
    staff = [
        {'staff_id': 's1', 'staff_name': '佐藤', 'clinic_id': 'c', 'total_visits': 10, 'unique_patients': 8,
         'working_days': 5, 'revenue_generated': 50000.0, 'average_satisfaction': 4.5},
        {'staff_id': 's2', 'staff_name': '鈴木', 'clinic_id': 'c', 'total_visits': 4, 'unique_patients': 4,
         'working_days': 2, 'revenue_generated': 20000.0, 'average_satisfaction': None},
    ]
    result = generate_staff_analysis(FakeStore(staff=staff), 'c')

    assert result['totalStaff'] == 2
    assert result['activeStaff'] == 2
    assert result['staffMetrics'] == {'dailyPatients': 2.0, 'totalRevenue': 70000.0, 'averageSatisfaction': 2.25}
    assert [r['staff_id'] for r in result['revenueRanking']] == ['s1', 's2']
    assert result['revenueRanking'][1]['satisfaction'] == 0
    assert result['performanceTrends'] == {}


def test_staff_analysis_empty():
    result = generate_staff_analysis(FakeStore(), 'c')
    assert result['totalStaff'] == 0
    assert result['staffMetrics']['totalRevenue'] == 0
