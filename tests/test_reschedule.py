"""Tests for rescheduling (replacement booking + supersede in one transaction)."""

import uuid
from datetime import timedelta

import pytest

from conftest import MONDAY, SATURDAY, slot_at
from consular_scheduling.db.enums import AppointmentStatus
from consular_scheduling.services.appointment_service import book, reschedule, transition
from consular_scheduling.services.appointment_state import StatusAction
from consular_scheduling.services.appointment_store import AppointmentFilter, find_appointments, get_appointment
from consular_scheduling.services.errors import (
    InvalidTransitionError,
    NoAgentAvailableError,
    SlotUnavailableError,
    ValidationError,
)


def _reschedule(db, appointment, slot, **kwargs):
    return reschedule(db, appointment.id, slot.start.date(), slot.start, slot.end, **kwargs)


class TestReschedule:
    def test_moves_appointment_to_new_slot(self, db, hours, agents, booking, clock):
        service_id = uuid.uuid4()
        original = book(db, slot=slot_at(MONDAY, 10), service_id=service_id, **booking)

        replacement = _reschedule(db, original, slot_at(MONDAY, 14), clock=clock)

        old = get_appointment(db, original.id)
        assert old.status == AppointmentStatus.RESCHEDULED.value
        assert old.replaced_by_id == replacement.id

        assert replacement.status == AppointmentStatus.CONFIRMED.value
        assert replacement.attendee_id == original.attendee_id
        assert replacement.service_id == service_id
        assert replacement.rescheduled_from_id == original.id
        assert replacement.start_time == slot_at(MONDAY, 14).start
        assert replacement.id != original.id

    def test_pending_appointment_gets_an_agent(self, db, hours, agents, booking, clock):
        pending = book(db, slot=slot_at(MONDAY, 10), defer_agent=True, **booking)

        replacement = _reschedule(db, pending, slot_at(MONDAY, 11), clock=clock)

        assert replacement.status == AppointmentStatus.CONFIRMED.value
        assert replacement.agent_id == agents[0]
        assert get_appointment(db, pending.id).status == AppointmentStatus.RESCHEDULED.value

    def test_old_slot_is_released(self, db, hours, agents, booking, clock):
        a1, _ = agents
        original = book(db, slot=slot_at(MONDAY, 10), preferred_agent_id=a1, **booking)
        _reschedule(db, original, slot_at(MONDAY, 14), new_agent_id=a1, clock=clock)

        again = book(db, slot=slot_at(MONDAY, 10), preferred_agent_id=a1, **booking)
        assert again.agent_id == a1

    def test_overlap_with_itself_is_allowed(self, db, hours, agents, booking, clock):
        a1, _ = agents
        original = book(db, slot=slot_at(MONDAY, 10, 0, duration=60), preferred_agent_id=a1, **booking)

        replacement = _reschedule(
            db, original, slot_at(MONDAY, 10, 30, duration=60), new_agent_id=a1, clock=clock
        )
        assert replacement.agent_id == a1

    def test_explicit_agent_conflict_leaves_original_untouched(self, db, hours, agents, booking, clock):
        a1, a2 = agents
        book(db, slot=slot_at(MONDAY, 14), preferred_agent_id=a2, **booking)
        original = book(db, slot=slot_at(MONDAY, 10), preferred_agent_id=a1, **booking)

        with pytest.raises(SlotUnavailableError):
            _reschedule(db, original, slot_at(MONDAY, 14), new_agent_id=a2, clock=clock)

        db.expire_all()
        old = get_appointment(db, original.id)
        assert old.status == AppointmentStatus.CONFIRMED.value
        assert old.replaced_by_id is None
        rows = find_appointments(db, AppointmentFilter(attendee_id=booking["attendee_id"]))
        assert len(rows) == 2

    def test_fully_booked_target_leaves_original_untouched(self, db, hours, agents, booking, clock):
        original = book(db, slot=slot_at(MONDAY, 10), **booking)
        book(db, slot=slot_at(MONDAY, 15), **booking)
        book(db, slot=slot_at(MONDAY, 15), **booking)

        with pytest.raises(NoAgentAvailableError):
            _reschedule(db, original, slot_at(MONDAY, 15), clock=clock)

        assert get_appointment(db, original.id).status == AppointmentStatus.CONFIRMED.value

    def test_terminal_appointment_cannot_be_rescheduled(self, db, hours, agents, booking, clock):
        original = book(db, slot=slot_at(MONDAY, 10), **booking)
        transition(db, original.id, StatusAction.complete(), clock=clock)

        with pytest.raises(InvalidTransitionError, match="Cannot reschedule"):
            _reschedule(db, original, slot_at(MONDAY, 14), clock=clock)

    def test_rescheduled_appointment_cannot_be_rescheduled_again(self, db, hours, agents, booking, clock):
        original = book(db, slot=slot_at(MONDAY, 10), **booking)
        _reschedule(db, original, slot_at(MONDAY, 14), clock=clock)

        with pytest.raises(InvalidTransitionError):
            _reschedule(db, original, slot_at(MONDAY, 15), clock=clock)

    def test_new_date_must_match_start(self, db, hours, agents, booking, clock):
        original = book(db, slot=slot_at(MONDAY, 10), **booking)
        target = slot_at(MONDAY, 14)

        with pytest.raises(ValidationError, match="new_date"):
            reschedule(
                db, original.id, MONDAY + timedelta(days=1), target.start, target.end, clock=clock
            )

    def test_closed_day_rejected(self, db, hours, agents, booking, clock):
        original = book(db, slot=slot_at(MONDAY, 10), **booking)
        with pytest.raises(ValidationError, match="closed"):
            _reschedule(db, original, slot_at(SATURDAY, 10), clock=clock)
