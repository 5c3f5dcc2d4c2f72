"""
Validation and permission checks for BusTrack API.

This module centralizes guard logic such as:
- State token validation
- Role-based permission checks against the access policy
- Ownership checks for operator scoped resources
- State transition enforcement
- Referential checks on users

All functions raise appropriate exceptions from `app.src.exceptions`
when validation fails, ensuring consistent error handling.
"""

from typing import Any
from sqlalchemy import Column

from app.src import exceptions, jwt
from app.src.db import Bus, User
from app.src.enums import Action, Resource, Scope, UserRole
from app.src.functions import isValidTransition
from app.src.permissions import scopeOf
from app.src.schemas import Identity


# ---------------------------------------------------------------------------
# Token validation
# ---------------------------------------------------------------------------
def identity(token: str | None, audience: UserRole | None = None) -> Identity:
    """
    Validate the state token taken from the request cookie.

    Args:
        token (str | None): The raw cookie value, None when the cookie is absent.
        audience (UserRole | None): Role the serving application is built for.
            When given, callers of any other role are refused.

    Returns:
        Identity: The verified caller identity.

    Raises:
        exceptions.InvalidToken: If the cookie is missing, expired or tampered with.
        exceptions.NoPermission: If the caller does not belong to the audience.
    """
    if not token:
        raise exceptions.InvalidToken()
    caller = jwt.readToken(token)
    if caller is None:
        raise exceptions.InvalidToken()
    if audience is not None and caller.user_role != audience:
        raise exceptions.NoPermission()
    return caller


# ---------------------------------------------------------------------------
# Permission checks
# ---------------------------------------------------------------------------
def permission(role: UserRole, resource: Resource, action: Action) -> Scope:
    """
    Validate that a role may perform an action on a resource.

    Returns:
        Scope: The scope granted by the access policy.

    Raises:
        exceptions.NoPermission: If the policy grants nothing for the triple.
    """
    scope = scopeOf(role, resource, action)
    if scope is None:
        raise exceptions.NoPermission()
    return scope


def ownership(caller: Identity, bus: Bus, scope: Scope) -> bool:
    """
    Validate that the caller may act on the bus within the granted scope.

    Raises:
        exceptions.NoPermission: If the scope is `OWN` and the bus is operated
            by someone else.
    """
    if scope == Scope.OWN and bus.operator_username != caller.username:
        raise exceptions.NoPermission()
    return True


# ---------------------------------------------------------------------------
# Other validations
# ---------------------------------------------------------------------------
def stateTransition(
    transitions: dict[Any, list[Any]], old_state: Any, new_state: Any, state: Column
) -> bool:
    """
    Validate whether a state transition is allowed.

    Args:
        transitions (dict[Any, list[Any]]): Mapping of valid transitions.
        old_state (Any): Current state value.
        new_state (Any): Desired new state value.
        state (Column): SQLAlchemy column representing the state
            (used to format error messages).

    Raises:
        exceptions.InvalidStateTransition: If the transition is not permitted.
    """
    if not isValidTransition(transitions, old_state, new_state):
        raise exceptions.InvalidStateTransition(state)
    return True


def busOperator(operator: User | None, column: Column) -> User:
    """
    Validate a user referenced as the operator of a bus.

    Raises:
        exceptions.UnknownValue: If the user does not exist.
        exceptions.InvalidOperator: If the user is an admin.
    """
    if operator is None:
        raise exceptions.UnknownValue(column)
    if operator.user_role == UserRole.ADMIN:
        raise exceptions.InvalidOperator()
    return operator


def assignableRole(role: UserRole | None) -> bool:
    """
    Validate a role given to a stored account.

    Raises:
        exceptions.InvalidValue: If the role is the implicit commuter role.
    """
    if role is not None and role not in (UserRole.ADMIN, UserRole.BUS_OPERATOR):
        raise exceptions.InvalidValue(User.user_role)
    return True
