"""Tests for the appointment record store (filter object, inserts, status updates)."""

import uuid

import pytest

from conftest import COUNTRY, MONDAY, slot_at
from consular_scheduling.db.enums import NON_BLOCKING_STATUSES, AppointmentStatus
from consular_scheduling.services.appointment_store import (
    AppointmentFilter,
    find_appointments,
    get_appointment,
    insert_appointment,
    update_appointment_status,
)
from consular_scheduling.services.errors import ConcurrencyConflictError, NotFoundError, ValidationError


def _insert(db, org_id, slot, agent_id=None, status=AppointmentStatus.CONFIRMED, **extra):
    appointment = insert_appointment(
        db,
        organization_id=org_id,
        country_code=COUNTRY,
        attendee_id=uuid.uuid4(),
        agent_id=agent_id or uuid.uuid4(),
        date=slot.start.date(),
        start_time=slot.start,
        end_time=slot.end,
        duration_minutes=slot.duration_minutes,
        status=status,
        **extra,
    )
    db.commit()
    return appointment


class TestFindAppointments:
    def test_filters_by_agent_and_orders_by_start(self, db, org_id):
        agent = uuid.uuid4()
        late = _insert(db, org_id, slot_at(MONDAY, 14), agent_id=agent)
        early = _insert(db, org_id, slot_at(MONDAY, 9), agent_id=agent)
        _insert(db, org_id, slot_at(MONDAY, 10))

        found = find_appointments(db, AppointmentFilter(agent_id=agent))
        assert [a.id for a in found] == [early.id, late.id]

    def test_overlap_window_is_half_open(self, db, org_id):
        agent = uuid.uuid4()
        _insert(db, org_id, slot_at(MONDAY, 9, 30), agent_id=agent)  # ends 10:00
        inside = _insert(db, org_id, slot_at(MONDAY, 10, 15), agent_id=agent)
        _insert(db, org_id, slot_at(MONDAY, 11, 0), agent_id=agent)  # starts 11:00

        window = slot_at(MONDAY, 10, 0, duration=60)
        found = find_appointments(
            db,
            AppointmentFilter(agent_id=agent, overlaps_start=window.start, overlaps_end=window.end),
        )
        assert [a.id for a in found] == [inside.id]

    def test_status_filters(self, db, org_id):
        confirmed = _insert(db, org_id, slot_at(MONDAY, 9))
        cancelled = _insert(db, org_id, slot_at(MONDAY, 10), status=AppointmentStatus.CANCELLED)

        blocking = find_appointments(
            db, AppointmentFilter(organization_id=org_id, exclude_statuses=NON_BLOCKING_STATUSES)
        )
        assert [a.id for a in blocking] == [confirmed.id]

        only_cancelled = find_appointments(
            db, AppointmentFilter(organization_id=org_id, statuses=[AppointmentStatus.CANCELLED])
        )
        assert [a.id for a in only_cancelled] == [cancelled.id]

    def test_exclude_ids_limit_and_offset(self, db, org_id):
        rows = [_insert(db, org_id, slot_at(MONDAY, hour)) for hour in (9, 10, 11, 12)]

        found = find_appointments(
            db,
            AppointmentFilter(organization_id=org_id, exclude_ids={rows[0].id}, limit=2, offset=1),
        )
        assert [a.id for a in found] == [rows[2].id, rows[3].id]

    def test_unset_filter_matches_everything(self, db, org_id):
        _insert(db, org_id, slot_at(MONDAY, 9))
        _insert(db, uuid.uuid4(), slot_at(MONDAY, 9))
        assert len(find_appointments(db, AppointmentFilter())) == 2


class TestWrites:
    def test_get_missing_appointment_raises(self, db):
        with pytest.raises(NotFoundError):
            get_appointment(db, uuid.uuid4())

    def test_duration_must_match_window(self, db, org_id):
        slot = slot_at(MONDAY, 9)
        with pytest.raises(ValidationError, match="Duration"):
            insert_appointment(
                db,
                organization_id=org_id,
                country_code=COUNTRY,
                attendee_id=uuid.uuid4(),
                date=MONDAY,
                start_time=slot.start,
                end_time=slot.end,
                duration_minutes=45,
            )

    def test_confirmed_requires_agent(self, db, org_id):
        slot = slot_at(MONDAY, 9)
        with pytest.raises(ValidationError, match="agent"):
            insert_appointment(
                db,
                organization_id=org_id,
                country_code=COUNTRY,
                attendee_id=uuid.uuid4(),
                date=MONDAY,
                start_time=slot.start,
                end_time=slot.end,
                duration_minutes=30,
                status=AppointmentStatus.CONFIRMED,
            )

    def test_insert_defaults_to_pending(self, db, org_id):
        slot = slot_at(MONDAY, 9)
        appointment = insert_appointment(
            db,
            organization_id=org_id,
            country_code=COUNTRY,
            attendee_id=uuid.uuid4(),
            date=MONDAY,
            start_time=slot.start,
            end_time=slot.end,
            duration_minutes=30,
        )
        db.commit()
        assert appointment.status == AppointmentStatus.PENDING.value
        assert appointment.agent_id is None

    def test_datetimes_round_trip_as_aware_utc(self, db, org_id):
        slot = slot_at(MONDAY, 9)
        appointment = _insert(db, org_id, slot)
        db.expire_all()

        reloaded = get_appointment(db, appointment.id)
        assert reloaded.start_time == slot.start
        assert reloaded.start_time.tzinfo is not None

    def test_update_status_applies_changes(self, db, org_id):
        appointment = _insert(db, org_id, slot_at(MONDAY, 9))
        updated = update_appointment_status(
            db,
            appointment.id,
            AppointmentStatus.CANCELLED,
            {"cancellation_reason": "Attendee request"},
        )
        db.commit()

        assert updated.status == AppointmentStatus.CANCELLED.value
        assert updated.cancellation_reason == "Attendee request"

    def test_update_status_compare_and_set(self, db, org_id):
        appointment = _insert(db, org_id, slot_at(MONDAY, 9))

        updated = update_appointment_status(
            db,
            appointment.id,
            AppointmentStatus.COMPLETED,
            expected_status=AppointmentStatus.CONFIRMED,
        )
        db.commit()
        assert updated.status == AppointmentStatus.COMPLETED.value

    def test_update_status_rejects_stale_expected_status(self, db, org_id):
        appointment = _insert(db, org_id, slot_at(MONDAY, 9), status=AppointmentStatus.CANCELLED)

        with pytest.raises(ConcurrencyConflictError):
            update_appointment_status(
                db,
                appointment.id,
                AppointmentStatus.COMPLETED,
                expected_status=AppointmentStatus.CONFIRMED,
            )
        db.rollback()

        assert get_appointment(db, appointment.id).status == AppointmentStatus.CANCELLED.value
