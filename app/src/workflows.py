"""
State machines of the transport entities.

Each table maps a current state to the states it may move to. Bus workflow
tables are per role since operators and admins have different rights.
"""

from app.src.enums import ConfirmationStatus, UserRole, WorkflowStatus


# Activation is an approval step reserved to admins, operators may only withdraw
# a bus that is already in service.
BUS_WORKFLOW: dict[UserRole, dict[WorkflowStatus, list[WorkflowStatus]]] = {
    UserRole.ADMIN: {state: list(WorkflowStatus) for state in WorkflowStatus},
    UserRole.BUS_OPERATOR: {
        WorkflowStatus.PENDING: [],
        WorkflowStatus.ACTIVE: [WorkflowStatus.INACTIVE],
        WorkflowStatus.INACTIVE: [WorkflowStatus.INACTIVE],
    },
}

SCHEDULE_CONFIRMATION: dict[ConfirmationStatus, list[ConfirmationStatus]] = {
    ConfirmationStatus.PENDING: [
        ConfirmationStatus.ACCEPTED,
        ConfirmationStatus.REJECTED,
    ],
    ConfirmationStatus.ACCEPTED: [],
    ConfirmationStatus.REJECTED: [],
}

FINAL_CONFIRMATION_STATES = [
    state for state, targets in SCHEDULE_CONFIRMATION.items() if not targets
]
