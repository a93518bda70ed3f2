from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from clinics.exceptions import AppError
from clinics.models import Patient, Revenue, Visit
from clinics.services.datastore import ClinicDataStore, churn_risk_score, visit_category

pytestmark = pytest.mark.django_db


def _visit(patient, days_ago, staff=None, amount=None, score=None):
    day = timezone.localdate() - timedelta(days=days_ago)
    visit = Visit.objects.create(clinic=patient.clinic, patient=patient, staff=staff,
                                 visit_date=day, satisfaction_score=score)
    if amount is not None:
        Revenue.objects.create(clinic=patient.clinic, patient=patient, visit=visit,
                               revenue_date=day, amount=Decimal(amount))
    return visit


@pytest.mark.parametrize('count, expected', [
    (0, None), (1, 'first_only'), (4, 'light_repeat'), (5, 'moderate_repeat'), (10, 'heavy_repeat'),
])
def test_visit_category(count, expected):
    assert visit_category(count) == expected


def test_churn_risk_score_bounds():
    assert churn_risk_score(None, 0) == 100
    assert churn_risk_score(0, 3) == 0
    assert churn_risk_score(90, 1) == 96
    assert churn_risk_score(400, 1) == 100
    # visit credit is capped
    assert churn_risk_score(45, 5) == churn_risk_score(45, 20) == 30


def test_patient_visit_summary(clinic_a, clinic_b, patient_a):
    _visit(patient_a, 30, amount='3000')
    _visit(patient_a, 2, amount='5000')
    never = Patient.objects.create(clinic=clinic_a, name='未来院')
    Patient.objects.create(clinic=clinic_a, name='削除済み', is_deleted=True)
    Patient.objects.create(clinic=clinic_b, name='他院')

    rows = ClinicDataStore().patient_visit_summary(clinic_a.id)

    assert [r['patient_name'] for r in rows] == ['山田太郎', '未来院']
    first = rows[0]
    assert first['visit_count'] == 2
    assert first['total_revenue'] == 8000.0
    assert first['visit_category'] == 'light_repeat'
    assert first['last_visit_date'] == (timezone.localdate() - timedelta(days=2)).isoformat()
    assert rows[1]['patient_id'] == str(never.id)
    assert rows[1]['visit_count'] == 0
    assert rows[1]['visit_category'] is None


def test_staff_performance_summary_sorted_by_revenue(clinic_a, patient_a, therapist_a, staff_a):
    _visit(patient_a, 1, staff=therapist_a, amount='1000', score=4)
    _visit(patient_a, 2, staff=staff_a, amount='9000', score=5)
    _visit(patient_a, 3, staff=staff_a, score=3)

    rows = ClinicDataStore().staff_performance_summary(clinic_a.id)

    assert [r['staff_id'] for r in rows] == [str(staff_a.pk), str(therapist_a.pk)]
    top = rows[0]
    assert top['total_visits'] == 2
    assert top['working_days'] == 2
    assert top['unique_patients'] == 1
    assert top['revenue_generated'] == 9000.0
    assert top['average_satisfaction'] == 4.0


def test_rpc_ltv_and_churn(patient_a):
    _visit(patient_a, 10, amount='2500')
    _visit(patient_a, 45, amount='500')
    store = ClinicDataStore()
    assert store.rpc('calculate_patient_ltv', patient_uuid=patient_a.id) == 3000.0
    assert store.rpc('calculate_churn_risk_score', patient_uuid=patient_a.id) == churn_risk_score(10, 2)


def test_rpc_churn_for_patient_without_visits(patient_a):
    assert ClinicDataStore().rpc('calculate_churn_risk_score', patient_uuid=patient_a.id) == 100


def test_rpc_hourly_revenue_pattern(patient_a):
    _visit(patient_a, 0, amount='1200')
    _visit(patient_a, 0, amount='800')
    pattern = ClinicDataStore().rpc('get_hourly_revenue_pattern', clinic_uuid=patient_a.clinic_id)
    assert len(pattern) == 1
    assert pattern[0]['total_revenue'] == 2000.0
    assert pattern[0]['transaction_count'] == 2
    assert 0 <= pattern[0]['hour'] <= 23


def test_rpc_unknown_procedure():
    with pytest.raises(AppError) as exc:
        ClinicDataStore().rpc('drop_everything')
    assert exc.value.code == 'DATABASE_ERROR'
    assert exc.value.status_code == 500


def test_rpc_bad_arguments():
    with pytest.raises(AppError) as exc:
        ClinicDataStore().rpc('calculate_patient_ltv', clinic_uuid='x')
    assert exc.value.code == 'DATABASE_ERROR'
