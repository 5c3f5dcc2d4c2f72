"""
Role based access policy for BusTrack API.

Every endpoint resolves its access through a single lookup in `POLICY`,
keyed by `(role, resource, action)`. The value is the scope the caller may
act within:

- `Scope.ANY`    : every record of the resource.
- `Scope.OWN`    : only records operated by the caller (bus ownership).
- `Scope.PUBLIC` : only the publicly visible subset of the resource.

A missing key means the action is forbidden for that role.
"""

from app.src.enums import Action, Resource, Scope, UserRole


POLICY: dict[tuple[UserRole, Resource, Action], Scope] = {
    # Admin
    (UserRole.ADMIN, Resource.USER, Action.CREATE): Scope.ANY,
    (UserRole.ADMIN, Resource.USER, Action.UPDATE): Scope.ANY,
    (UserRole.ADMIN, Resource.USER, Action.DELETE): Scope.ANY,
    (UserRole.ADMIN, Resource.USER, Action.READ): Scope.ANY,
    (UserRole.ADMIN, Resource.ROUTE, Action.CREATE): Scope.ANY,
    (UserRole.ADMIN, Resource.ROUTE, Action.UPDATE): Scope.ANY,
    (UserRole.ADMIN, Resource.ROUTE, Action.DELETE): Scope.ANY,
    (UserRole.ADMIN, Resource.ROUTE, Action.READ): Scope.ANY,
    (UserRole.ADMIN, Resource.BUS, Action.CREATE): Scope.ANY,
    (UserRole.ADMIN, Resource.BUS, Action.UPDATE): Scope.ANY,
    (UserRole.ADMIN, Resource.BUS, Action.DELETE): Scope.ANY,
    (UserRole.ADMIN, Resource.BUS, Action.READ): Scope.ANY,
    (UserRole.ADMIN, Resource.SCHEDULE, Action.CREATE): Scope.ANY,
    (UserRole.ADMIN, Resource.SCHEDULE, Action.UPDATE): Scope.ANY,
    (UserRole.ADMIN, Resource.SCHEDULE, Action.DELETE): Scope.ANY,
    (UserRole.ADMIN, Resource.SCHEDULE, Action.READ): Scope.ANY,
    # Bus operator
    (UserRole.BUS_OPERATOR, Resource.ROUTE, Action.READ): Scope.ANY,
    (UserRole.BUS_OPERATOR, Resource.BUS, Action.CREATE): Scope.OWN,
    (UserRole.BUS_OPERATOR, Resource.BUS, Action.UPDATE): Scope.OWN,
    (UserRole.BUS_OPERATOR, Resource.BUS, Action.DELETE): Scope.OWN,
    (UserRole.BUS_OPERATOR, Resource.BUS, Action.READ): Scope.OWN,
    (UserRole.BUS_OPERATOR, Resource.SCHEDULE, Action.READ): Scope.ANY,
    (UserRole.BUS_OPERATOR, Resource.SCHEDULE, Action.CONFIRM): Scope.ANY,
    # Commuter
    (UserRole.COMMUTER, Resource.ROUTE, Action.READ): Scope.PUBLIC,
    (UserRole.COMMUTER, Resource.BUS, Action.READ): Scope.PUBLIC,
    (UserRole.COMMUTER, Resource.SCHEDULE, Action.READ): Scope.PUBLIC,
}


def scopeOf(role: UserRole, resource: Resource, action: Action) -> Scope | None:
    """Return the scope granted to `role` for `action` on `resource`, or None."""
    return POLICY.get((role, resource, action))
