"""Test the access policy and the state machines."""

import pytest
from itertools import product

from app.src import exceptions, validators
from app.src.db import Bus, Schedule
from app.src.enums import (
    Action,
    ConfirmationStatus,
    Resource,
    Scope,
    UserRole,
    WorkflowStatus,
)
from app.src.permissions import scopeOf
from app.src.schemas import Identity
from app.src.workflows import (
    BUS_WORKFLOW,
    FINAL_CONFIRMATION_STATES,
    SCHEDULE_CONFIRMATION,
)

CRUD = [Action.CREATE, Action.UPDATE, Action.DELETE, Action.READ]


class TestPolicy:
    """Test the scope granted to each role."""

    @pytest.mark.parametrize("resource, action", product(Resource, CRUD))
    def test_admin_manages_everything(self, resource, action):
        assert scopeOf(UserRole.ADMIN, resource, action) == Scope.ANY

    @pytest.mark.parametrize("action", CRUD)
    def test_operator_owns_buses(self, action):
        assert scopeOf(UserRole.BUS_OPERATOR, Resource.BUS, action) == Scope.OWN

    def test_operator_reads_routes_and_schedules(self):
        assert scopeOf(UserRole.BUS_OPERATOR, Resource.ROUTE, Action.READ) == Scope.ANY
        assert (
            scopeOf(UserRole.BUS_OPERATOR, Resource.SCHEDULE, Action.READ) == Scope.ANY
        )
        assert (
            scopeOf(UserRole.BUS_OPERATOR, Resource.SCHEDULE, Action.CONFIRM)
            == Scope.ANY
        )

    @pytest.mark.parametrize(
        "resource, action",
        [
            (Resource.USER, Action.READ),
            (Resource.USER, Action.CREATE),
            (Resource.ROUTE, Action.CREATE),
            (Resource.ROUTE, Action.DELETE),
            (Resource.SCHEDULE, Action.CREATE),
            (Resource.SCHEDULE, Action.UPDATE),
            (Resource.SCHEDULE, Action.DELETE),
        ],
    )
    def test_operator_forbidden(self, resource, action):
        assert scopeOf(UserRole.BUS_OPERATOR, resource, action) is None
        with pytest.raises(exceptions.NoPermission):
            validators.permission(UserRole.BUS_OPERATOR, resource, action)

    @pytest.mark.parametrize("resource, action", product(Resource, Action))
    def test_commuter_reads_public_subset(self, resource, action):
        expected = None
        if action == Action.READ and resource != Resource.USER:
            expected = Scope.PUBLIC
        assert scopeOf(UserRole.COMMUTER, resource, action) == expected

    def test_admin_cannot_confirm(self):
        """Test confirming schedules is left to the operators."""
        assert scopeOf(UserRole.ADMIN, Resource.SCHEDULE, Action.CONFIRM) is None


class TestOwnership:
    """Test ownership scoped checks on buses."""

    def setup_method(self):
        self.caller = Identity(username="op1", user_role=UserRole.BUS_OPERATOR)

    def test_own_bus(self):
        bus = Bus(bus_id="B1", operator_username="op1")
        assert validators.ownership(self.caller, bus, Scope.OWN)

    def test_foreign_bus(self):
        bus = Bus(bus_id="B1", operator_username="op2")
        with pytest.raises(exceptions.NoPermission):
            validators.ownership(self.caller, bus, Scope.OWN)

    def test_any_scope_ignores_owner(self):
        bus = Bus(bus_id="B1", operator_username="op2")
        assert validators.ownership(self.caller, bus, Scope.ANY)


OPERATOR_MOVES = {
    (WorkflowStatus.ACTIVE, WorkflowStatus.INACTIVE),
    (WorkflowStatus.INACTIVE, WorkflowStatus.INACTIVE),
}


class TestBusWorkflow:
    """Test every pair of bus workflow states for each role."""

    @pytest.mark.parametrize("old, new", product(WorkflowStatus, WorkflowStatus))
    def test_admin_moves_freely(self, old, new):
        assert validators.stateTransition(
            BUS_WORKFLOW[UserRole.ADMIN], old, new, Bus.workflow_status
        )

    @pytest.mark.parametrize("old, new", product(WorkflowStatus, WorkflowStatus))
    def test_operator_moves(self, old, new):
        transitions = BUS_WORKFLOW[UserRole.BUS_OPERATOR]
        if (old, new) in OPERATOR_MOVES:
            assert validators.stateTransition(transitions, old, new, Bus.workflow_status)
        else:
            with pytest.raises(exceptions.InvalidStateTransition):
                validators.stateTransition(transitions, old, new, Bus.workflow_status)

    def test_stored_values_match(self):
        """Test the tables accept the plain integers read from the database."""
        transitions = BUS_WORKFLOW[UserRole.BUS_OPERATOR]
        assert validators.stateTransition(
            transitions, 2, WorkflowStatus.INACTIVE, Bus.workflow_status
        )


class TestScheduleConfirmation:
    """Test every pair of confirmation states."""

    @pytest.mark.parametrize(
        "old, new", product(ConfirmationStatus, ConfirmationStatus)
    )
    def test_transitions(self, old, new):
        allowed = old == ConfirmationStatus.PENDING and new in [
            ConfirmationStatus.ACCEPTED,
            ConfirmationStatus.REJECTED,
        ]
        if allowed:
            assert validators.stateTransition(
                SCHEDULE_CONFIRMATION, old, new, Schedule.confirmation_status
            )
        else:
            with pytest.raises(exceptions.InvalidStateTransition):
                validators.stateTransition(
                    SCHEDULE_CONFIRMATION, old, new, Schedule.confirmation_status
                )

    def test_final_states(self):
        assert set(FINAL_CONFIRMATION_STATES) == {
            ConfirmationStatus.ACCEPTED,
            ConfirmationStatus.REJECTED,
        }
