"""
Shared fixtures: users of every role, a doctor with a weekly schedule and a
fake payment gateway.
"""
import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from apps.accounts.models import User
from apps.availability.models import Availability
from apps.doctors.models import Doctor
from core.constants import UserRoles
from core.exceptions import ExternalFailure
from core.utils.time_utils import DAY_NAMES


def weekly_schedule(days=DAY_NAMES, start='09:00', end='12:00'):
    return [
        {
            'day': day,
            'shifts': [{
                'start_time': start,
                'end_time': end,
                'is_active': True,
                'consultation_types': [
                    {'type': 'clinic', 'fee': 500, 'max_patients': 1},
                    {'type': 'video', 'fee': 300, 'max_patients': 1},
                ],
            }],
        }
        for day in days
    ]


class FakeGateway:
    """Records calls instead of talking to Razorpay"""

    def __init__(self, fail=False):
        self.fail = fail
        self.refunds = []
        self.captures = []

    def refund_payment(self, payment_id, amount, reason='', speed='normal'):
        if self.fail:
            raise ExternalFailure('Payment refund failed: gateway down')
        self.refunds.append((payment_id, Decimal(amount)))
        return {
            'refund_id': f"rfnd_{uuid.uuid4().hex[:12]}",
            'payment_id': payment_id,
            'amount': Decimal(amount),
            'status': 'processed',
        }

    def capture_payment(self, payment_id, amount, currency='INR'):
        if self.fail:
            raise ExternalFailure('Payment capture failed: gateway down')
        self.captures.append((payment_id, Decimal(amount)))
        return {'payment_id': payment_id, 'status': 'captured', 'amount_captured': Decimal(amount)}


@pytest.fixture
def patient(db):
    return User.objects.create_user(
        email='patient@example.com', password='secret123', full_name='Asha Patient', role=UserRoles.PATIENT
    )


@pytest.fixture
def other_patient(db):
    return User.objects.create_user(
        email='other@example.com', password='secret123', full_name='Ravi Other', role=UserRoles.PATIENT
    )


@pytest.fixture
def admin_user(db):
    return User.objects.create_user(
        email='admin@example.com', password='secret123', full_name='Clinic Admin', role=UserRoles.ADMIN
    )


@pytest.fixture
def doctor_user(db):
    return User.objects.create_user(
        email='doctor@example.com', password='secret123', full_name='Meera Rao', role=UserRoles.DOCTOR
    )


@pytest.fixture
def doctor(doctor_user):
    return Doctor.objects.create(
        user=doctor_user,
        specialization='General Medicine',
        qualification='MBBS',
        clinic_consultation_fee=Decimal('500.00'),
        video_consultation_fee=Decimal('300.00'),
    )


@pytest.fixture
def other_doctor(db):
    user = User.objects.create_user(
        email='doctor2@example.com', password='secret123', full_name='Kiran Das', role=UserRoles.DOCTOR
    )
    return Doctor.objects.create(user=user, specialization='Dermatology')


@pytest.fixture
def availability(doctor):
    return Availability.objects.create(
        doctor=doctor,
        slot_duration=30,
        buffer_time=0,
        schedule=weekly_schedule(),
        effective_from=timezone.localdate(),
    )


@pytest.fixture
def booking_date():
    return timezone.localdate() + timedelta(days=3)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def failing_gateway():
    return FakeGateway(fail=True)


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def auth_client(api_client):
    def _login(user):
        api_client.force_authenticate(user=user)
        return api_client
    return _login
