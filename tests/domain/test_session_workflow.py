"""The declared session lifecycle and the generic workflow type."""

from datetime import datetime, timezone

import pytest

from parking_kernel.domain.session import (
    SESSION_WORKFLOW,
    ParkingSession,
    SessionStatus,
    advance,
    normalize_plate,
)
from parking_kernel.domain.workflow import Transition, Workflow
from parking_kernel.exceptions import InvalidTransitionError, ValidationError


def _session(status=SessionStatus.CREATED):
    return ParkingSession(
        id="s-1",
        plate="AB12CD",
        sector_id="centro",
        operator_in_id="op-1",
        started_at=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
        status=status,
    )


class TestSessionWorkflow:
    def test_allowed_actions_from_active(self):
        assert set(SESSION_WORKFLOW.allowed_actions("ACTIVE")) == {
            "checkout",
            "force_checkout",
            "cancel",
        }

    def test_terminal_states(self):
        assert SESSION_WORKFLOW.is_terminal("CLOSED")
        assert SESSION_WORKFLOW.is_terminal("CANCELED")
        assert not SESSION_WORKFLOW.is_terminal("PAID")
        assert SESSION_WORKFLOW.allowed_actions("CANCELED") == ()

    def test_money_moving_transitions(self):
        moving = {t.action for t in SESSION_WORKFLOW.transitions if t.moves_money}
        assert moving == {"checkout", "pay", "force_checkout"}

    def test_happy_path(self):
        session = _session()
        for action, expected in [
            ("check_in", SessionStatus.ACTIVE),
            ("checkout", SessionStatus.TO_PAY),
            ("pay", SessionStatus.PAID),
            ("close", SessionStatus.CLOSED),
        ]:
            session = advance(session, action)
            assert session.status is expected

    def test_advance_applies_changes(self):
        paid = advance(_session(SessionStatus.ACTIVE), "checkout", operator_out_id="op-2")
        assert paid.operator_out_id == "op-2"

    @pytest.mark.parametrize(
        "status, action",
        [
            (SessionStatus.CREATED, "checkout"),
            (SessionStatus.PAID, "cancel"),
            (SessionStatus.TO_PAY, "force_checkout"),
            (SessionStatus.CLOSED, "close"),
            (SessionStatus.CANCELED, "check_in"),
        ],
    )
    def test_undeclared_transition_rejected(self, status, action):
        with pytest.raises(InvalidTransitionError) as exc_info:
            advance(_session(status), action)
        assert exc_info.value.from_state == status.value
        assert exc_info.value.action == action


class TestWorkflowDeclaration:
    def test_unknown_initial_state(self):
        with pytest.raises(ValueError):
            Workflow(
                name="w", description="", initial_state="X",
                states=("A",), transitions=(),
            )

    def test_transition_to_undeclared_state(self):
        with pytest.raises(ValueError):
            Workflow(
                name="w", description="", initial_state="A",
                states=("A",), transitions=(Transition("A", "B", action="go"),),
            )

    def test_terminal_state_cannot_have_exits(self):
        with pytest.raises(ValueError):
            Workflow(
                name="w", description="", initial_state="A",
                states=("A", "B"),
                transitions=(Transition("B", "A", action="back"),),
                terminal_states=("B",),
            )


class TestParkingSession:
    def test_plate_normalized(self):
        assert normalize_plate(" ab 12 cd ") == "AB12CD"
        assert _session().plate == "AB12CD"

    def test_empty_plate_rejected(self):
        with pytest.raises(ValidationError):
            normalize_plate("   ")

    def test_naive_start_rejected(self):
        with pytest.raises(ValidationError):
            ParkingSession(
                id="s", plate="X", sector_id="c", operator_in_id="o",
                started_at=datetime(2024, 1, 1),
            )

    def test_to_dict(self):
        data = _session(SessionStatus.ACTIVE).to_dict()
        assert data["status"] == "ACTIVE"
        assert data["net_amount"] is None
        assert data["started_at"] == "2024-01-01T12:00:00+00:00"
