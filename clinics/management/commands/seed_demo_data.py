"""
Management command to populate the database with demo data.

Creates an organisation (headquarters) with two branch clinics, staff
with permissions (including a legacy ``clinic_manager`` role), patients
with visits and revenues, reservations and notifications.  Running it
again leaves existing rows untouched.
"""
import random
from datetime import datetime, time, timedelta
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from clinics.models import (
    Clinic,
    Menu,
    Notification,
    Patient,
    Reservation,
    Revenue,
    User,
    UserPermission,
    Visit,
)

DEMO_PASSWORD = 'DemoPass123!'


class Command(BaseCommand):
    help = 'Populate the database with demo clinics, staff and patient records'

    def add_arguments(self, parser):
        parser.add_argument('--patients', type=int, default=12, help='patients per branch')
        parser.add_argument('--seed', type=int, default=42, help='random seed')

    def handle(self, *args, **options):
        rng = random.Random(options['seed'])
        self.stdout.write('Creating demo data...')

        with transaction.atomic():
            hq, branches = self.create_clinics()
            staff = self.create_staff(hq, branches)
            for branch in branches:
                menus = self.create_menus(branch)
                patients = self.create_patients(branch, options['patients'])
                if not Visit.objects.filter(clinic=branch).exists():
                    self.create_visits(rng, branch, patients, menus, staff[branch.name])
                if not Reservation.objects.filter(clinic=branch).exists():
                    self.create_reservations(rng, branch, patients, menus, staff[branch.name])
                self.create_notifications(branch)

        self.stdout.write(self.style.SUCCESS('Demo data ready.'))

    def create_clinics(self):
        hq, _ = Clinic.objects.get_or_create(name='Demo Seikotsuin HQ')
        branches = []
        for name in ('Demo Shibuya', 'Demo Shinjuku'):
            branch, _ = Clinic.objects.get_or_create(name=name, defaults={'parent': hq})
            branches.append(branch)
        return hq, branches

    def _user(self, username, role, clinic, scope=None, **extra):
        user, created = User.objects.get_or_create(
            username=username,
            defaults={'email': f'{username}@example.com', **extra},
        )
        if created:
            user.set_password(DEMO_PASSWORD)
            user.save(update_fields=['password'])
        UserPermission.objects.get_or_create(
            staff=user,
            defaults={'role': role, 'clinic': clinic, 'clinic_scope_ids': scope or []},
        )
        return user

    def create_staff(self, hq, branches):
        all_ids = [str(c.id) for c in branches]
        self._user('hq_admin', 'admin', hq, scope=[str(hq.id)] + all_ids, first_name='本部')
        staff = {}
        for i, branch in enumerate(branches, start=1):
            # legacy role value, normalised to clinic_admin at request time
            self._user(f'manager{i}', 'clinic_manager', branch)
            therapists = [
                self._user(f'therapist{i}_{n}', 'therapist', branch, first_name=f'施術者{n}')
                for n in (1, 2)
            ]
            self._user(f'staff{i}', 'staff', branch)
            staff[branch.name] = therapists
        self.stdout.write(f'  staff users ready (password: {DEMO_PASSWORD})')
        return staff

    def create_menus(self, clinic):
        menus = []
        catalogue = (('整体 30分', 3000, 30), ('鍼灸', 5000, 45), ('骨盤矯正', 6000, 60))
        for order, (name, price, minutes) in enumerate(catalogue):
            menu, _ = Menu.objects.get_or_create(
                clinic=clinic, name=name,
                defaults={'price': price, 'duration_minutes': minutes, 'display_order': order})
            menus.append(menu)
        return menus

    def create_patients(self, clinic, count):
        patients = []
        for n in range(1, count + 1):
            p, _ = Patient.objects.get_or_create(
                clinic=clinic,
                name=f'{clinic.name} 患者{n}',
                defaults={'phone': f'090-0000-{n:04d}', 'registration_date': timezone.localdate()},
            )
            patients.append(p)
        return patients

    def create_visits(self, rng, clinic, patients, menus, therapists):
        today = timezone.localdate()
        for p in patients:
            for _ in range(rng.randint(0, 12)):
                menu = rng.choice(menus)
                visit = Visit.objects.create(
                    clinic=clinic,
                    patient=p,
                    staff=rng.choice(therapists),
                    menu=menu,
                    visit_date=today - timedelta(days=rng.randint(0, 180)),
                    satisfaction_score=rng.randint(3, 5),
                )
                insurance = Decimal(menu.price) * Decimal('0.3') if rng.random() < 0.5 else Decimal(0)
                Revenue.objects.create(
                    clinic=clinic,
                    patient=p,
                    visit=visit,
                    menu=menu,
                    revenue_date=visit.visit_date,
                    amount=Decimal(menu.price),
                    insurance_revenue=insurance,
                    private_revenue=Decimal(menu.price) - insurance,
                )

    def create_reservations(self, rng, clinic, patients, menus, therapists):
        tz = timezone.get_current_timezone()
        day = timezone.localdate()
        for therapist in therapists:
            for hour in (10, 11, 14, 15, 16):
                menu = rng.choice(menus)
                start = datetime.combine(day, time(hour), tzinfo=tz)
                Reservation.objects.create(
                    clinic=clinic,
                    customer=rng.choice(patients),
                    menu=menu,
                    staff=therapist,
                    start_time=start,
                    end_time=start + timedelta(minutes=menu.duration_minutes),
                    status=rng.choice(['confirmed', 'unconfirmed', 'arrived', 'completed']),
                    channel=rng.choice(['line', 'web', 'phone', 'walk_in']),
                )

    def create_notifications(self, clinic):
        for title, kind in (('本日の予約が確定しました', 'info'), ('キャンセルが発生しました', 'warning')):
            Notification.objects.get_or_create(clinic=clinic, title=title, defaults={'type': kind})
