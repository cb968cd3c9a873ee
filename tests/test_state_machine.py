"""Tests for the appointment status state machine."""

import uuid

import pytest

from conftest import MONDAY, slot_at
from consular_scheduling.db.enums import AppointmentStatus, TransitionAction
from consular_scheduling.db.models import Appointment
from consular_scheduling.services.appointment_service import book, reschedule, transition
from consular_scheduling.services.appointment_store import get_appointment
from consular_scheduling.services.appointment_state import (
    TERMINAL_STATUSES,
    TRANSITIONS,
    StatusAction,
    allowed_actions,
    apply_transition,
    next_status,
)
from consular_scheduling.services.errors import (
    InvalidTransitionError,
    NoAgentAvailableError,
    NotFoundError,
    SlotUnavailableError,
    ValidationError,
)


class TestTransitionTable:
    """Pure table checks."""

    @pytest.mark.parametrize(
        "current,action,expected",
        [
            (AppointmentStatus.PENDING, TransitionAction.CONFIRM, AppointmentStatus.CONFIRMED),
            (AppointmentStatus.PENDING, TransitionAction.CANCEL, AppointmentStatus.CANCELLED),
            (AppointmentStatus.PENDING, TransitionAction.SUPERSEDE, AppointmentStatus.RESCHEDULED),
            (AppointmentStatus.CONFIRMED, TransitionAction.COMPLETE, AppointmentStatus.COMPLETED),
            (AppointmentStatus.CONFIRMED, TransitionAction.MISS, AppointmentStatus.MISSED),
            (AppointmentStatus.CONFIRMED, TransitionAction.CANCEL, AppointmentStatus.CANCELLED),
            (AppointmentStatus.CONFIRMED, TransitionAction.SUPERSEDE, AppointmentStatus.RESCHEDULED),
        ],
    )
    def test_legal_transitions(self, current, action, expected):
        assert next_status(current, action) == expected

    @pytest.mark.parametrize(
        "current,action",
        [
            (AppointmentStatus.PENDING, TransitionAction.COMPLETE),
            (AppointmentStatus.PENDING, TransitionAction.MISS),
            (AppointmentStatus.CONFIRMED, TransitionAction.CONFIRM),
        ],
    )
    def test_illegal_transitions(self, current, action):
        with pytest.raises(InvalidTransitionError, match=f"Cannot {action.value}"):
            next_status(current, action)

    def test_terminal_statuses_have_no_way_out(self):
        assert TERMINAL_STATUSES == {
            AppointmentStatus.COMPLETED,
            AppointmentStatus.MISSED,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.RESCHEDULED,
        }
        for status in TERMINAL_STATUSES:
            assert allowed_actions(status) == []
            for action in TransitionAction:
                with pytest.raises(InvalidTransitionError):
                    next_status(status, action)

    def test_every_target_is_a_known_status(self):
        for targets in TRANSITIONS.values():
            assert set(targets.values()) <= set(AppointmentStatus)

    def test_apply_transition_mutates_in_memory(self, clock):
        appointment = Appointment(status=AppointmentStatus.PENDING.value, agent_id=None)
        agent_id = uuid.uuid4()

        status = apply_transition(appointment, StatusAction.confirm(agent_id), clock.now())

        assert status == AppointmentStatus.CONFIRMED
        assert appointment.status == AppointmentStatus.CONFIRMED.value
        assert appointment.agent_id == agent_id
        assert appointment.updated_at == clock.now()

    def test_apply_transition_illegal_leaves_record_alone(self, clock):
        appointment = Appointment(status=AppointmentStatus.CANCELLED.value)
        with pytest.raises(InvalidTransitionError):
            apply_transition(appointment, StatusAction.complete(), clock.now())
        assert appointment.status == AppointmentStatus.CANCELLED.value


class TestTransitionService:
    """transition() against the store."""

    def test_complete_on_pending_is_illegal(self, db, hours, booking, clock):
        pending = book(db, slot=slot_at(MONDAY, 10), defer_agent=True, **booking)

        with pytest.raises(InvalidTransitionError, match="Cannot complete appointment with status pending"):
            transition(db, pending.id, StatusAction.complete(), clock=clock)

        assert get_appointment(db, pending.id).status == AppointmentStatus.PENDING.value

    def test_complete_confirmed(self, db, hours, agents, booking, clock):
        confirmed = book(db, slot=slot_at(MONDAY, 10), **booking)
        clock.advance(hours=5)

        completed = transition(db, confirmed.id, StatusAction.complete(), clock=clock)
        assert completed.status == AppointmentStatus.COMPLETED.value
        assert completed.updated_at == clock.now()

    def test_terminal_appointment_cannot_be_cancelled(self, db, hours, agents, booking, clock):
        confirmed = book(db, slot=slot_at(MONDAY, 10), **booking)
        transition(db, confirmed.id, StatusAction.miss(), clock=clock)

        with pytest.raises(InvalidTransitionError):
            transition(db, confirmed.id, StatusAction.cancel(), clock=clock)

    def test_cancel_records_reason_and_time(self, db, hours, agents, booking, clock):
        confirmed = book(db, slot=slot_at(MONDAY, 10), **booking)

        cancelled = transition(db, confirmed.id, StatusAction.cancel("Attendee travelling"), clock=clock)
        assert cancelled.status == AppointmentStatus.CANCELLED.value
        assert cancelled.cancellation_reason == "Attendee travelling"
        assert cancelled.cancelled_at == clock.now()

    def test_confirm_pending_assigns_agent(self, db, hours, agents, booking, clock):
        _, a2 = agents
        pending = book(db, slot=slot_at(MONDAY, 10), defer_agent=True, **booking)

        confirmed = transition(db, pending.id, StatusAction.confirm(a2), clock=clock)
        assert confirmed.status == AppointmentStatus.CONFIRMED.value
        assert confirmed.agent_id == a2

    def test_confirm_without_agent_is_invalid(self, db, hours, agents, booking, clock):
        pending = book(db, slot=slot_at(MONDAY, 10), defer_agent=True, **booking)
        with pytest.raises(ValidationError, match="agent is required"):
            transition(db, pending.id, StatusAction.confirm(), clock=clock)

    def test_confirm_with_busy_agent_conflicts(self, db, hours, agents, booking, clock):
        a1, _ = agents
        book(db, slot=slot_at(MONDAY, 10), preferred_agent_id=a1, **booking)
        pending = book(db, slot=slot_at(MONDAY, 10), defer_agent=True, **booking)

        with pytest.raises(SlotUnavailableError):
            transition(db, pending.id, StatusAction.confirm(a1), clock=clock)

    def test_confirm_with_unqualified_agent(self, db, hours, agents, booking, clock):
        pending = book(db, slot=slot_at(MONDAY, 10), defer_agent=True, **booking)
        with pytest.raises(NoAgentAvailableError):
            transition(db, pending.id, StatusAction.confirm(uuid.uuid4()), clock=clock)

    def test_unknown_appointment(self, db, clock):
        with pytest.raises(NotFoundError):
            transition(db, uuid.uuid4(), StatusAction.cancel(), clock=clock)

    def test_supersede_requires_existing_replacement(self, db, hours, agents, booking, clock):
        confirmed = book(db, slot=slot_at(MONDAY, 10), **booking)
        with pytest.raises(NotFoundError):
            transition(db, confirmed.id, StatusAction.supersede(uuid.uuid4()), clock=clock)


class TestSupersedeReplacement:
    """supersede() only accepts a live replacement of the same attendee."""

    def test_live_replacement_of_same_attendee(self, db, hours, agents, booking, clock):
        original = book(db, slot=slot_at(MONDAY, 10), **booking)
        replacement = book(db, slot=slot_at(MONDAY, 14), defer_agent=True, **booking)

        superseded = transition(db, original.id, StatusAction.supersede(replacement.id), clock=clock)
        assert superseded.status == AppointmentStatus.RESCHEDULED.value
        assert superseded.replaced_by_id == replacement.id

    def test_cannot_replace_itself(self, db, hours, agents, booking, clock):
        original = book(db, slot=slot_at(MONDAY, 10), **booking)

        with pytest.raises(ValidationError, match="cannot replace itself"):
            transition(db, original.id, StatusAction.supersede(original.id), clock=clock)

        db.expire_all()
        unchanged = get_appointment(db, original.id)
        assert unchanged.status == AppointmentStatus.CONFIRMED.value
        assert unchanged.replaced_by_id is None

    def test_cancelled_replacement_rejected(self, db, hours, agents, booking, clock):
        original = book(db, slot=slot_at(MONDAY, 10), **booking)
        cancelled = book(db, slot=slot_at(MONDAY, 14), **booking)
        transition(db, cancelled.id, StatusAction.cancel(), clock=clock)

        with pytest.raises(ValidationError, match="pending or confirmed"):
            transition(db, original.id, StatusAction.supersede(cancelled.id), clock=clock)

        assert get_appointment(db, original.id).status == AppointmentStatus.CONFIRMED.value

    def test_other_attendee_replacement_rejected(self, db, hours, agents, booking, clock):
        original = book(db, slot=slot_at(MONDAY, 10), **booking)
        foreign = book(
            db, slot=slot_at(MONDAY, 14), defer_agent=True, **{**booking, "attendee_id": uuid.uuid4()}
        )

        with pytest.raises(ValidationError, match="another attendee"):
            transition(db, original.id, StatusAction.supersede(foreign.id), clock=clock)

    def test_replacement_of_another_appointment_rejected(self, db, hours, agents, booking, clock):
        first = book(db, slot=slot_at(MONDAY, 9), **booking)
        second = book(db, slot=slot_at(MONDAY, 10), **booking)
        moved = reschedule(
            db, first.id, MONDAY, slot_at(MONDAY, 14).start, slot_at(MONDAY, 14).end, clock=clock
        )

        with pytest.raises(ValidationError, match="rescheduled from another"):
            transition(db, second.id, StatusAction.supersede(moved.id), clock=clock)
